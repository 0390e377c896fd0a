"""Tests for PredicateBuilder."""

import pytest

from quarry.dialects import MSSQL, MYSQL, PLACEHOLDER, POSTGRES, SQLITE
from quarry.errors import MixedValueTypesError
from quarry.query.predicates import Predicate, PredicateBuilder

from sample_entities import Account, Post, User

P = PLACEHOLDER


@pytest.fixture
def pg_users():
    return PredicateBuilder(User.__descriptor__, POSTGRES)


class TestCompare:
    """Tests for binary comparisons."""

    def test_equality(self, pg_users):
        assert pg_users.compare("WHERE", "name", "alice") == Predicate(f' WHERE "name" = {P}', ["alice"])

    def test_connectives(self, pg_users):
        assert pg_users.compare("AND", "name", "a").fragment.startswith(" AND ")
        assert pg_users.compare("OR", "name", "a").fragment.startswith(" OR ")

    @pytest.mark.parametrize("operator", ["!=", "<>", ">", "<", ">=", "<=", "like", "ILIKE", "not like", "NOT ILIKE"])
    def test_supported_operators(self, pg_users, operator):
        predicate = pg_users.compare("WHERE", "name", "x", operator)
        assert f" {operator.upper()} {P}" in predicate.fragment

    def test_unknown_operator_raises(self, pg_users):
        with pytest.raises(ValueError, match="Unsupported operator"):
            pg_users.compare("WHERE", "name", "x", "===")

    def test_column_case_conversion(self):
        """Test entity-case names are rendered in storage case."""
        builder = PredicateBuilder(Account.__descriptor__, POSTGRES)
        assert builder.compare("WHERE", "firstName", "Ann").fragment == f' WHERE "first_name" = {P}'

    def test_dotted_column(self, pg_users):
        assert pg_users.column("users.createdAt") == '"users"."created_at"'

    def test_dialect_quoting(self):
        assert PredicateBuilder(User.__descriptor__, MYSQL).column("name") == "`name`"
        assert PredicateBuilder(User.__descriptor__, MSSQL).column("name") == "[name]"


class TestJsonRewrite:
    """Tests for dict/list values compared as JSON."""

    def test_postgres(self):
        builder = PredicateBuilder(Post.__descriptor__, POSTGRES)
        predicate = builder.compare("WHERE", "metadata", {"tag": "x"})
        assert predicate == Predicate(f' WHERE "metadata"::jsonb = {P}::jsonb', [{"tag": "x"}])

    def test_mysql(self):
        builder = PredicateBuilder(Post.__descriptor__, MYSQL)
        predicate = builder.compare("AND", "metadata", ["a"])
        assert predicate.fragment == f" AND JSON_UNQUOTE(JSON_EXTRACT(`metadata`, '$')) = {P}"

    def test_sqlite(self):
        builder = PredicateBuilder(Post.__descriptor__, SQLITE)
        predicate = builder.compare("OR", "metadata", {"a": 1}, "!=")
        assert predicate.fragment == f' OR json("metadata") != json({P})'

    def test_mssql(self):
        builder = PredicateBuilder(Post.__descriptor__, MSSQL)
        predicate = builder.compare("WHERE", "metadata", {"a": 1})
        assert predicate.fragment == f" WHERE JSON_QUERY([metadata], '$') = {P}"

    def test_params_keep_raw_values(self):
        """Test the rewrite leaves the parameter list untouched."""
        builder = PredicateBuilder(Post.__descriptor__, POSTGRES)
        value = {"nested": {"a": 1}}
        assert builder.compare("WHERE", "metadata", value).params == [value]

    def test_in_with_json_values(self):
        builder = PredicateBuilder(Post.__descriptor__, POSTGRES)
        predicate = builder.in_("WHERE", "metadata", [{"a": 1}, {"b": 2}])
        assert predicate.fragment == f' WHERE "metadata"::jsonb IN ({P}::jsonb, {P}::jsonb)'

    def test_between_with_json_values(self):
        builder = PredicateBuilder(Post.__descriptor__, POSTGRES)
        predicate = builder.between("AND", "metadata", [1], [2])
        assert predicate.fragment == f' AND "metadata"::jsonb BETWEEN {P}::jsonb AND {P}::jsonb'


class TestBetween:
    """Tests for BETWEEN."""

    def test_between(self, pg_users):
        assert pg_users.between("WHERE", "id", 1, 10) == Predicate(f' WHERE "id" BETWEEN {P} AND {P}', [1, 10])

    def test_not_between(self, pg_users):
        assert pg_users.between("OR", "id", 1, 10, negate=True).fragment == f' OR "id" NOT BETWEEN {P} AND {P}'

    def test_mixed_bounds_rejected(self, pg_users):
        with pytest.raises(MixedValueTypesError):
            pg_users.between("WHERE", "id", 1, {"a": 1})


class TestIn:
    """Tests for IN / NOT IN."""

    def test_in(self, pg_users):
        predicate = pg_users.in_("WHERE", "id", [1, 2, 3])
        assert predicate == Predicate(f' WHERE "id" IN ({P}, {P}, {P})', [1, 2, 3])

    def test_not_in(self, pg_users):
        assert pg_users.in_("AND", "id", (4,), negate=True) == Predicate(f' AND "id" NOT IN ({P})', [4])

    def test_accepts_generators(self, pg_users):
        assert pg_users.in_("WHERE", "id", (i for i in range(2))).params == [0, 1]

    def test_empty_in_matches_nothing(self, pg_users):
        """Test an empty set never renders 'IN ()'."""
        predicate = pg_users.in_("WHERE", "id", [])
        assert predicate == Predicate(" WHERE 1 = 0", [])

    def test_empty_not_in_matches_everything(self, pg_users):
        assert pg_users.in_("AND", "id", [], negate=True) == Predicate(" AND 1 = 1", [])

    def test_mixed_values_rejected(self, pg_users):
        """Test scalars and JSON values cannot share one IN list."""
        with pytest.raises(MixedValueTypesError):
            pg_users.in_("WHERE", "id", [1, {"a": 1}])

    def test_mixed_error_is_value_error(self, pg_users):
        with pytest.raises(ValueError):
            pg_users.in_("WHERE", "id", [[1], 2])


class TestNullAndRaw:
    """Tests for NULL checks and raw predicates."""

    def test_is_null(self, pg_users):
        assert pg_users.null("WHERE", "deleted_at") == Predicate(' WHERE "deleted_at" IS NULL', [])

    def test_is_not_null(self, pg_users):
        assert pg_users.null("OR", "deleted_at", negate=True).fragment == ' OR "deleted_at" IS NOT NULL'

    def test_raw_with_params(self, pg_users):
        predicate = pg_users.raw("AND", f"  LOWER(name) = {P} ", ["bob"])
        assert predicate == Predicate(f" AND LOWER(name) = {P}", ["bob"])

    def test_raw_without_params(self, pg_users):
        assert pg_users.raw("WHERE", "1 = 1") == Predicate(" WHERE 1 = 1", [])

    def test_raw_param_count_mismatch(self, pg_users):
        with pytest.raises(ValueError, match="placeholders"):
            pg_users.raw("WHERE", f"a = {P}", [1, 2])

    def test_raw_sentinel_requires_params(self, pg_users):
        with pytest.raises(ValueError, match="placeholders"):
            pg_users.raw("OR", f"a = {P}")
