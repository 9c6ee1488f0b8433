"""Tests for field-path naming helpers."""

import pytest

from querykit.core.errors import ConfigurationError
from querykit.filtering.naming import camel_to_snake, split_field_path, squash


class TestCamelToSnake:
    """Tests for camelCase to snake_case conversion."""

    @pytest.mark.parametrize(
        ("segment", "expected"),
        [
            ("createdAt", "created_at"),
            ("CreatedAt", "created_at"),
            ("isVaccinated", "is_vaccinated"),
            ("HTTPStatus", "http_status"),
            ("ownerId2", "owner_id2"),
            ("age_in_months", "age_in_months"),
            ("name", "name"),
        ],
    )
    def test_converts_segment(self, segment, expected):
        """Test that camelCase, PascalCase and snake_case segments map to snake_case."""
        assert camel_to_snake(segment) == expected

    def test_squash_ignores_case_and_underscores(self):
        """Test that squash makes created_at and CREATEDAT equal."""
        assert squash("created_at") == squash("CREATEDAT") == "createdat"


class TestSplitFieldPath:
    """Tests for nested path splitting."""

    def test_single_segment(self):
        """Test that a flat path yields one segment."""
        assert split_field_path("name") == ["name"]

    def test_colon_delimiter(self):
        """Test that ':' separates nested members."""
        assert split_field_path("owner:city") == ["owner", "city"]

    def test_dot_delimiter(self):
        """Test that '.' is accepted as a nesting delimiter too."""
        assert split_field_path("owner.city") == ["owner", "city"]

    def test_strips_whitespace(self):
        """Test that surrounding whitespace is ignored."""
        assert split_field_path(" owner : city ") == ["owner", "city"]

    @pytest.mark.parametrize("path", ["", "   "])
    def test_blank_path_rejected(self, path):
        """Test that a blank path raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            split_field_path(path)

    @pytest.mark.parametrize("path", ["owner:", ":city", "owner::city"])
    def test_empty_segment_rejected(self, path):
        """Test that an empty segment raises ConfigurationError naming the path."""
        with pytest.raises(ConfigurationError) as exc_info:
            split_field_path(path)

        assert exc_info.value.details["field"] == path
