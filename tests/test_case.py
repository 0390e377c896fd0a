"""Tests for identifier case conversion."""

import pytest

from quarry.case import convert_case


class TestConvertCase:
    """Tests for convert_case."""

    @pytest.mark.parametrize(
        "identifier,convention,expected",
        [
            ("createdAt", "snake", "created_at"),
            ("CreatedAt", "snake", "created_at"),
            ("created_at", "camel", "createdAt"),
            ("created_at", "pascal", "CreatedAt"),
            ("createdAt", "upper", "CREATED_AT"),
            ("CreatedAt", "lower", "created_at"),
            ("HTTPServer", "snake", "http_server"),
            ("userID", "snake", "user_id"),
            ("address2_line", "camel", "address2Line"),
            ("id", "camel", "id"),
        ],
    )
    def test_conversions(self, identifier, convention, expected):
        """Test each convention on common identifier shapes."""
        assert convert_case(identifier, convention) == expected

    def test_none_convention_returns_identifier_unchanged(self):
        """Test 'none' leaves the identifier as written."""
        assert convert_case("Some_MixedName", "none") == "Some_MixedName"

    def test_empty_identifier(self):
        """Test empty input is returned as-is."""
        assert convert_case("", "snake") == ""

    def test_unknown_convention_raises(self):
        """Test an unknown convention is rejected."""
        with pytest.raises(ValueError, match="Unknown case convention"):
            convert_case("name", "kebab")

    @pytest.mark.parametrize("identifier", ["created_at", "user_id", "address2_line", "is_active", "id"])
    def test_snake_camel_round_trip(self, identifier):
        """Test storage -> entity -> storage returns the original identifier."""
        assert convert_case(convert_case(identifier, "camel"), "snake") == identifier

    @pytest.mark.parametrize("identifier", ["createdAt", "userName", "isActive", "address2Line"])
    def test_camel_snake_round_trip(self, identifier):
        """Test entity -> storage -> entity returns the original identifier."""
        assert convert_case(convert_case(identifier, "snake"), "camel") == identifier
