"""
Tests for the predicate builder.

Tests cover:
- Operator semantics against a real (in-memory) database
- Type checks for text, ordering and presence operators
- Nested paths through scalar and collection relationships
- AND / OR combination
- Case policy for pattern operators
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from querykit.core.errors import ConfigurationError, UnsupportedOperatorError, ValidationError
from querykit.domain.enums import FilterOperator, LogicalOperator
from querykit.filtering.predicates import PredicateBuilder, build_predicate
from querykit.schemas.search import FilterCondition, FilterSpecification
from tests.conftest import (
    BASE_TIME,
    acreate_owner_in_db,
    acreate_pet_in_db,
    acreate_tag_in_db,
)
from tests.models import Pet, Species, pet_tags


def cond(field: str, operator: FilterOperator, value=None) -> FilterCondition:
    return FilterCondition(field_path=field, operator=operator, value=value)


async def names(db, spec, builder: PredicateBuilder | None = None) -> list[str]:
    predicate = (builder or PredicateBuilder()).build(Pet, spec)
    stmt = select(Pet.name).order_by(Pet.id)
    if predicate is not None:
        stmt = stmt.where(predicate)
    result = await db.execute(stmt)
    return list(result.scalars().all())


@pytest.fixture
async def zoo(async_db_session):
    """Rex, Max, Tweety and Whiskers with assorted owners, ages and tags."""
    db = async_db_session
    alice = await acreate_owner_in_db(db, name="Alice", city="Lyon")
    bob = await acreate_owner_in_db(db, name="Bob", city=None)
    good = await acreate_tag_in_db(db, "good boy")
    loud = await acreate_tag_in_db(db, "loud")

    rex = await acreate_pet_in_db(
        db, name="Rex", species=Species.DOG, age=3, owner_id=alice.id, nickname="T-Rex"
    )
    max_ = await acreate_pet_in_db(
        db, name="Max", species=Species.DOG, age=None, owner_id=bob.id, nickname=""
    )
    await acreate_pet_in_db(
        db,
        name="Tweety",
        species=Species.BIRD,
        age=1,
        weight=0.2,
        is_vaccinated=False,
        created_at=BASE_TIME + timedelta(days=1),
    )
    await acreate_pet_in_db(db, name="Whiskers", species=Species.CAT, age=7, owner_id=alice.id)

    await db.execute(
        pet_tags.insert(),
        [
            {"pet_id": rex.id, "tag_id": good.id},
            {"pet_id": max_.id, "tag_id": good.id},
            {"pet_id": max_.id, "tag_id": loud.id},
        ],
    )
    await db.commit()
    return db


class TestEquality:
    """Tests for EQUALS and NOT_EQUALS."""

    @pytest.mark.anyio
    async def test_equals_returns_exact_matches(self, zoo):
        """Test that EQUALS on a text member is an exact comparison."""
        assert await names(zoo, cond("name", FilterOperator.EQUALS, "Rex")) == ["Rex"]

    @pytest.mark.anyio
    async def test_equals_is_case_sensitive(self, zoo):
        """Test that EQUALS does not fold case."""
        assert await names(zoo, cond("name", FilterOperator.EQUALS, "rex")) == []

    @pytest.mark.anyio
    async def test_equals_coerces_string_numbers(self, zoo):
        """Test that '3' matches an integer member equal to 3."""
        assert await names(zoo, cond("age", FilterOperator.EQUALS, "3")) == ["Rex"]

    @pytest.mark.anyio
    async def test_not_equals_skips_nulls(self, zoo):
        """Test that NOT_EQUALS does not match rows where the member is null."""
        result = await names(zoo, cond("age", FilterOperator.NOT_EQUALS, 3))
        assert result == ["Tweety", "Whiskers"]

    @pytest.mark.anyio
    async def test_equals_list_means_in(self, zoo):
        """Test that a list value matches any of its elements."""
        result = await names(zoo, cond("species", FilterOperator.EQUALS, ["cat", "BIRD"]))
        assert result == ["Tweety", "Whiskers"]

    @pytest.mark.anyio
    async def test_not_equals_list_means_not_in(self, zoo):
        """Test that NOT_EQUALS with a list excludes every element."""
        result = await names(zoo, cond("name", FilterOperator.NOT_EQUALS, ["Rex", "Max"]))
        assert result == ["Tweety", "Whiskers"]

    @pytest.mark.anyio
    async def test_equals_none_means_is_null(self, zoo):
        """Test that EQUALS null matches rows where the member is null."""
        assert await names(zoo, cond("age", FilterOperator.EQUALS, None)) == ["Max"]

    @pytest.mark.anyio
    async def test_not_equals_none_means_is_not_null(self, zoo):
        """Test that NOT_EQUALS null matches rows with a value."""
        result = await names(zoo, cond("age", FilterOperator.NOT_EQUALS, None))
        assert result == ["Rex", "Tweety", "Whiskers"]

    def test_null_on_non_nullable_rejected(self):
        """Test that comparing a non-nullable member with null raises ValidationError."""
        with pytest.raises(ValidationError):
            build_predicate(Pet, cond("name", FilterOperator.EQUALS, None))

    def test_uncoercible_value_rejected(self):
        """Test that a value of the wrong type raises ValidationError naming the field."""
        with pytest.raises(ValidationError) as exc_info:
            build_predicate(Pet, cond("age", FilterOperator.EQUALS, "three"))

        assert exc_info.value.details["field"] == "age"

    @pytest.mark.anyio
    async def test_date_only_literal_matches_whole_day(self, zoo):
        """Test that EQUALS with a date matches any time on that day."""
        day = (BASE_TIME + timedelta(days=1)).date().isoformat()
        assert await names(zoo, cond("createdAt", FilterOperator.EQUALS, day)) == ["Tweety"]


class TestTextOperators:
    """Tests for CONTAINS, STARTS_WITH and ENDS_WITH."""

    @pytest.mark.anyio
    async def test_contains_is_case_insensitive_by_default(self, zoo):
        """Test that CONTAINS folds case unless configured otherwise."""
        assert await names(zoo, cond("name", FilterOperator.CONTAINS, "EX")) == ["Rex"]

    @pytest.mark.anyio
    async def test_starts_with(self, zoo):
        """Test that STARTS_WITH matches prefixes."""
        assert await names(zoo, cond("name", FilterOperator.STARTS_WITH, "tw")) == ["Tweety"]

    @pytest.mark.anyio
    async def test_ends_with(self, zoo):
        """Test that ENDS_WITH matches suffixes."""
        assert await names(zoo, cond("name", FilterOperator.ENDS_WITH, "ERS")) == ["Whiskers"]

    def test_case_sensitive_builder_does_not_lower(self):
        """Test that a case-sensitive builder compares the raw column."""
        sensitive = PredicateBuilder(case_sensitive=True).build(
            Pet, cond("name", FilterOperator.CONTAINS, "EX")
        )
        insensitive = PredicateBuilder(case_sensitive=False).build(
            Pet, cond("name", FilterOperator.CONTAINS, "EX")
        )

        assert "lower" not in str(sensitive).lower()
        assert "lower" in str(insensitive).lower()

    @pytest.mark.anyio
    async def test_wildcards_are_escaped(self, zoo):
        """Test that '%' and '_' in the value match literally."""
        assert await names(zoo, cond("name", FilterOperator.CONTAINS, "%")) == []
        assert await names(zoo, cond("name", FilterOperator.STARTS_WITH, "R_x")) == []

    @pytest.mark.parametrize("operator", [FilterOperator.CONTAINS, FilterOperator.STARTS_WITH])
    def test_text_operator_on_number_rejected(self, operator):
        """Test that pattern operators on non-text members raise a ValidationError."""
        with pytest.raises(UnsupportedOperatorError) as exc_info:
            build_predicate(Pet, cond("age", operator, "3"))

        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.details["operator"] == operator.value

    def test_text_operator_requires_value(self):
        """Test that CONTAINS without a value raises ValidationError."""
        with pytest.raises(ValidationError):
            build_predicate(Pet, cond("name", FilterOperator.CONTAINS, None))


class TestOrderingOperators:
    """Tests for BIGGER, BIGGER_EQUALS, SMALLER and SMALLER_EQUALS."""

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        ("operator", "expected"),
        [
            (FilterOperator.BIGGER, ["Whiskers"]),
            (FilterOperator.BIGGER_EQUALS, ["Rex", "Whiskers"]),
            (FilterOperator.SMALLER, ["Tweety"]),
            (FilterOperator.SMALLER_EQUALS, ["Rex", "Tweety"]),
        ],
    )
    async def test_numeric_comparisons(self, zoo, operator, expected):
        """Test numeric comparisons against age = 3."""
        assert await names(zoo, cond("age", operator, 3)) == expected

    @pytest.mark.anyio
    async def test_date_only_bigger_starts_next_day(self, zoo):
        """Test that BIGGER than a date excludes the whole of that day."""
        day = BASE_TIME.date().isoformat()
        assert await names(zoo, cond("createdAt", FilterOperator.BIGGER, day)) == ["Tweety"]

    @pytest.mark.anyio
    async def test_date_only_smaller_equals_includes_day(self, zoo):
        """Test that SMALLER_EQUALS a date includes the whole of that day."""
        day = BASE_TIME.date().isoformat()
        result = await names(zoo, cond("createdAt", FilterOperator.SMALLER_EQUALS, day))
        assert result == ["Rex", "Max", "Whiskers"]

    @pytest.mark.parametrize("field", ["isVaccinated", "species"])
    def test_ordering_on_unordered_kind_rejected(self, field):
        """Test that booleans and enums reject ordering operators."""
        with pytest.raises(UnsupportedOperatorError):
            build_predicate(Pet, cond(field, FilterOperator.BIGGER, 1))

    def test_ordering_requires_single_value(self):
        """Test that a list value is rejected for ordering operators."""
        with pytest.raises(ValidationError):
            build_predicate(Pet, cond("age", FilterOperator.BIGGER, [1, 2]))


class TestPresenceOperators:
    """Tests for EMPTY and NOT_EMPTY."""

    @pytest.mark.anyio
    async def test_empty_on_nullable_number(self, zoo):
        """Test that age EMPTY returns exactly the rows where age is null."""
        assert await names(zoo, cond("age", FilterOperator.EMPTY)) == ["Max"]

    @pytest.mark.anyio
    async def test_empty_text_includes_empty_string(self, zoo):
        """Test that EMPTY on text matches null and the empty string."""
        result = await names(zoo, cond("nickname", FilterOperator.EMPTY))
        assert result == ["Max", "Tweety", "Whiskers"]

    @pytest.mark.anyio
    async def test_not_empty_text(self, zoo):
        """Test that NOT_EMPTY on text excludes null and the empty string."""
        assert await names(zoo, cond("nickname", FilterOperator.NOT_EMPTY)) == ["Rex"]

    def test_empty_on_non_nullable_number_rejected(self):
        """Test that EMPTY on a non-nullable non-text member is rejected."""
        with pytest.raises(UnsupportedOperatorError):
            build_predicate(Pet, cond("weight", FilterOperator.EMPTY))

    @pytest.mark.anyio
    async def test_relationship_presence(self, zoo):
        """Test that EMPTY / NOT_EMPTY on a relationship test related rows."""
        assert await names(zoo, cond("owner", FilterOperator.EMPTY)) == ["Tweety"]
        assert await names(zoo, cond("tags", FilterOperator.NOT_EMPTY)) == ["Rex", "Max"]

    @pytest.mark.anyio
    async def test_nested_relationship_presence(self, zoo):
        """Test that presence on a relationship reached through another walks both."""
        result = await names(zoo, cond("owner:pets", FilterOperator.NOT_EMPTY))
        assert sorted(result) == ["Max", "Rex", "Whiskers"]
        assert await names(zoo, cond("owner:pets", FilterOperator.EMPTY)) == ["Tweety"]

    def test_comparison_on_relationship_rejected(self):
        """Test that value operators on a relationship raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            build_predicate(Pet, cond("owner", FilterOperator.EQUALS, 1))


class TestNestedPaths:
    """Tests for filters through relationships."""

    @pytest.mark.anyio
    async def test_scalar_relationship(self, zoo):
        """Test that owner:name filters through has()."""
        result = await names(zoo, cond("owner:name", FilterOperator.EQUALS, "Alice"))
        assert result == ["Rex", "Whiskers"]

    @pytest.mark.anyio
    async def test_collection_relationship(self, zoo):
        """Test that tags:label filters through any()."""
        assert await names(zoo, cond("tags:label", FilterOperator.CONTAINS, "LOUD")) == ["Max"]

    @pytest.mark.anyio
    async def test_nested_empty_includes_missing_parent(self, zoo):
        """Test that owner:city EMPTY matches null cities and pets without an owner."""
        result = await names(zoo, cond("owner:city", FilterOperator.EMPTY))
        assert result == ["Max", "Tweety"]

    def test_unknown_field_rejected(self):
        """Test that an unresolvable path raises ConfigurationError."""
        with pytest.raises(ConfigurationError):
            build_predicate(Pet, cond("owner:country", FilterOperator.EQUALS, "FR"))


class TestCombination:
    """Tests for combining several conditions."""

    @pytest.mark.anyio
    async def test_and_by_default(self, zoo):
        """Test that conditions combine with AND by default."""
        spec = FilterSpecification(
            entries=[
                cond("species", FilterOperator.EQUALS, "dog"),
                cond("age", FilterOperator.NOT_EMPTY),
            ]
        )
        assert await names(zoo, spec) == ["Rex"]

    @pytest.mark.anyio
    async def test_or_when_requested(self, zoo):
        """Test that OR matches rows satisfying any condition."""
        spec = FilterSpecification(
            entries=[
                cond("name", FilterOperator.EQUALS, "Rex"),
                cond("species", FilterOperator.EQUALS, "bird"),
            ],
            logical_operator=LogicalOperator.OR,
        )
        assert await names(zoo, spec) == ["Rex", "Tweety"]

    def test_no_conditions_returns_none(self):
        """Test that an empty specification produces no predicate."""
        assert build_predicate(Pet, FilterSpecification()) is None
        assert build_predicate(Pet, []) is None
        assert build_predicate(Pet, None) is None
