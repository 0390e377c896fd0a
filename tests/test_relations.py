"""Tests for relation loading."""

import pytest

from quarry.errors import MissingPrimaryKeyError, UnknownRelationError
from quarry.relations import RelationResolver, ResolvedRelation

from sample_entities import AuditLog, Post, Profile, User


class TestHasMany:
    """Tests for hasMany relations."""

    @pytest.mark.asyncio
    async def test_children_grouped_by_parent(self, driver, make_data_source):
        """Test each parent gets exactly its own children, in driver order."""
        driver.route('FROM "users"', [{"id": 1}, {"id": 2}])
        driver.route(
            'FROM "posts"',
            [
                {"id": 10, "user_id": 1},
                {"id": 11, "user_id": 2},
                {"id": 12, "user_id": 1},
            ],
        )

        users = await make_data_source("postgres").query(User).add_relations("posts").many()

        assert [post.id for post in users[0].posts] == [10, 12]
        assert [post.id for post in users[1].posts] == [11]
        assert all(isinstance(post, Post) for post in users[0].posts)
        assert driver.calls[1] == ('SELECT * FROM "posts" WHERE "user_id" IN ($1, $2)', [1, 2])
        assert len(driver.calls) == 2

    @pytest.mark.asyncio
    async def test_no_children_gives_empty_list(self, driver, make_data_source):
        driver.route('FROM "users"', [{"id": 1}])
        users = await make_data_source().query(User).add_relations("posts").many()
        assert users[0].posts == []

    @pytest.mark.asyncio
    async def test_no_parents_issues_no_lookup(self, driver, make_data_source):
        users = await make_data_source().query(User).add_relations("posts").many()
        assert users == []
        assert len(driver.calls) == 1

    @pytest.mark.asyncio
    async def test_soft_deleted_children_excluded(self, driver, make_data_source):
        driver.route('FROM "posts"', [{"id": 1}])
        await make_data_source("sqlite").query(Post).add_relations("comments").many()
        assert driver.statements[1] == 'SELECT * FROM "comments" WHERE "post_id" IN (?) AND "deleted_at" IS NULL'

    @pytest.mark.asyncio
    async def test_boolean_soft_delete(self, driver, make_data_source):
        driver.route('FROM "posts"', [{"id": 1}])
        await make_data_source("sqlite").query(Post).add_relations("visible_comments").many()
        assert driver.calls[1] == ('SELECT * FROM "comments" WHERE "post_id" IN (?) AND "is_hidden" = ?', [1, False])


class TestHasOne:
    """Tests for hasOne relations."""

    @pytest.mark.asyncio
    async def test_first_match_wins(self, driver, make_data_source):
        driver.route('FROM "users"', [{"id": 1}, {"id": 2}])
        driver.route(
            'FROM "profiles"',
            [{"id": 5, "user_id": 1, "bio": "first"}, {"id": 6, "user_id": 1, "bio": "second"}],
        )

        users = await make_data_source().query(User).add_relations("profile").many()

        assert isinstance(users[0].profile, Profile)
        assert users[0].profile.bio == "first"
        assert users[1].profile is None


class TestBelongsTo:
    """Tests for belongsTo relations."""

    @pytest.mark.asyncio
    async def test_lookup_by_distinct_foreign_keys(self, driver, make_data_source):
        driver.route('FROM "posts"', [{"id": 10, "user_id": 1}, {"id": 11, "user_id": 1}, {"id": 12, "user_id": 2}])
        driver.route('FROM "users"', [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}])

        posts = await make_data_source().query(Post).add_relations("author").many()

        assert driver.calls[1] == ('SELECT * FROM "users" WHERE "id" IN ($1, $2)', [1, 2])
        assert [post.author.name for post in posts] == ["a", "a", "b"]

    @pytest.mark.asyncio
    async def test_null_foreign_key_issues_no_lookup(self, driver, make_data_source):
        """Test a null foreign key resolves to None without a query."""
        driver.route('FROM "posts"', [{"id": 10, "user_id": None}])

        posts = await make_data_source().query(Post).add_relations("author").many()

        assert posts[0].author is None
        assert len(driver.calls) == 1

    @pytest.mark.asyncio
    async def test_missing_related_row(self, driver, make_data_source):
        driver.route('FROM "posts"', [{"id": 10, "user_id": 99}])
        posts = await make_data_source().query(Post).add_relations("author").many()
        assert posts[0].author is None


class TestMultipleRelations:
    """Tests for loading several relations at once."""

    @pytest.mark.asyncio
    async def test_one_lookup_per_relation(self, driver, make_data_source):
        driver.route('FROM "users"', [{"id": 1}])
        driver.route('FROM "posts"', [{"id": 10, "user_id": 1}])
        driver.route('FROM "profiles"', [{"id": 5, "user_id": 1}])

        user = await make_data_source().query(User).add_relations("posts", "profile").one()

        assert len(driver.calls) == 3
        assert [post.id for post in user.posts] == [10]
        assert user.profile.id == 5

    @pytest.mark.asyncio
    async def test_relations_in_to_dict(self, driver, make_data_source):
        driver.route('FROM "users"', [{"id": 1, "name": "a"}])
        driver.route('FROM "posts"', [{"id": 10, "user_id": 1, "title": "t"}])

        user = await make_data_source().query(User).add_relations("posts").one()
        data = user.to_dict()

        assert data["posts"] == [{"id": 10, "user_id": 1, "title": "t", "metadata": None}]
        assert "profile" not in data


class TestValidation:
    """Configuration errors are raised before any query."""

    @pytest.mark.asyncio
    async def test_owner_without_primary_key(self, driver, make_data_source):
        query = make_data_source().query(AuditLog).add_relations("user")
        with pytest.raises(MissingPrimaryKeyError, match="AuditLog"):
            await query.many()
        assert driver.calls == []

    def test_unknown_relation(self):
        resolver = RelationResolver(lambda entity: None)
        with pytest.raises(UnknownRelationError) as exc_info:
            resolver.validate(User.__descriptor__, ["posts", "friends"])
        assert exc_info.value.relation == "friends"

    def test_validate_returns_descriptors(self):
        resolver = RelationResolver(lambda entity: None)
        relations = resolver.validate(User.__descriptor__, ["posts"])
        assert relations[0].name == "posts"
        assert relations[0].related is Post.__descriptor__


class TestResolvedRelation:
    """Tests for ResolvedRelation.for_parent()."""

    def test_has_many_returns_copy(self):
        relation = User.__descriptor__.relation("posts")
        resolved = ResolvedRelation(relation, {1: ["a"]})
        parent = User(id=1)

        first = resolved.for_parent(parent)
        first.append("b")

        assert resolved.for_parent(parent) == ["a"]

    def test_belongs_to_uses_foreign_key(self):
        relation = Post.__descriptor__.relation("author")
        resolved = ResolvedRelation(relation, {7: "author"})
        assert resolved.for_parent(Post(id=1, user_id=7)) == "author"
        assert resolved.for_parent(Post(id=2, user_id=None)) is None
