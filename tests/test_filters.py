"""Tests for search/filters.py module.

Covers:
- Tag filter keyword and ANY/ALL selection
- Every variable filter operator, including boundary and vacuous cases
- Rule list composition with AND / OR
"""

from datetime import datetime, timedelta, timezone

import pytest

from papercenter.corpus.models import Variable, VariableType
from papercenter.corpus.snapshot import AssignedDate, AssignedInt, AssignedOption, AssignedText
from papercenter.search.filters import SearchFilters, in_range, start_of_day
from papercenter.search.models import (
    DateRangeValue,
    DateValue,
    FilterLogicalMode,
    IntRangeValue,
    IntValue,
    ListValue,
    RangeBoundInclusion,
    TagFilter,
    TagFilterMode,
    TextValue,
    VariableFilterOperator as Op,
    VariableFilterRule,
)
from corpus_factory import options

OPEN = RangeBoundInclusion.OPEN
CLOSED = RangeBoundInclusion.CLOSED

VARIABLES = {
    "score": Variable(id="score", name="Score", type=VariableType.INT),
    "status": Variable(id="status", name="Status", type=VariableType.LIST),
    "author": Variable(id="author", name="Author", type=VariableType.TEXT),
    "due": Variable(id="due", name="Due", type=VariableType.DATE),
}


def rule(variable_id: str, operator: Op, value=None) -> VariableFilterRule:
    return VariableFilterRule(variable_id=variable_id, operator=operator, value=value)


def evaluate(r: VariableFilterRule, values: dict) -> bool:
    return SearchFilters.evaluate_rule(r, values, VARIABLES)


def ints(*numbers: int) -> dict:
    return {"score": [AssignedInt(n) for n in numbers]}


class TestTagFilter:
    """Tests for SearchFilters.tag_filter_match()."""

    def test_inactive_passes(self) -> None:
        """Blank keyword and empty selection apply no filtering."""
        assert SearchFilters.tag_filter_match(set(), [], TagFilter(name_keyword="   "))

    def test_keyword_is_normalized_substring(self) -> None:
        """Keyword matches case and diacritic insensitively."""
        tag_filter = TagFilter(name_keyword="ÜRG")
        assert SearchFilters.tag_filter_match({"t"}, ["Urgent"], tag_filter)
        assert not SearchFilters.tag_filter_match({"t"}, ["Later"], tag_filter)

    def test_any_mode(self) -> None:
        tag_filter = TagFilter(selected_tag_ids=frozenset({"a", "g"}), mode=TagFilterMode.ANY)
        assert SearchFilters.tag_filter_match({"a", "b"}, [], tag_filter)
        assert not SearchFilters.tag_filter_match({"b"}, [], tag_filter)

    def test_all_mode(self) -> None:
        tag_filter = TagFilter(selected_tag_ids=frozenset({"a", "b"}), mode=TagFilterMode.ALL)
        assert SearchFilters.tag_filter_match({"a", "b", "c"}, [], tag_filter)
        assert not SearchFilters.tag_filter_match({"a"}, [], tag_filter)

    def test_keyword_and_selection_both_required(self) -> None:
        tag_filter = TagFilter(name_keyword="alpha", selected_tag_ids=frozenset({"b"}))
        assert SearchFilters.tag_filter_match({"a", "b"}, ["AlphaTag", "BetaTag"], tag_filter)
        assert not SearchFilters.tag_filter_match({"a"}, ["AlphaTag"], tag_filter)
        assert not SearchFilters.tag_filter_match({"b"}, ["BetaTag"], tag_filter)

    @pytest.mark.parametrize("candidate_ids", [set(), {"a"}, {"b"}, {"a", "b"}, {"a", "b", "c"}])
    def test_all_implies_any(self, candidate_ids) -> None:
        """Whatever ALL accepts, ANY accepts too."""
        selected = frozenset({"a", "b"})
        all_match = SearchFilters.tag_filter_match(
            candidate_ids, [], TagFilter(selected_tag_ids=selected, mode=TagFilterMode.ALL)
        )
        any_match = SearchFilters.tag_filter_match(
            candidate_ids, [], TagFilter(selected_tag_ids=selected, mode=TagFilterMode.ANY)
        )
        assert not all_match or any_match


class TestRuleGuards:
    """Rules that can never match."""

    def test_unknown_variable(self) -> None:
        assert not evaluate(rule("missing", Op.IS_EMPTY), {})

    def test_operator_not_allowed(self) -> None:
        """contains is not an int operator."""
        assert not evaluate(rule("score", Op.CONTAINS, TextValue("1")), ints(1))

    def test_value_type_mismatch(self) -> None:
        """A text value on an int comparison fails."""
        assert not evaluate(rule("score", Op.EQ, TextValue("1")), ints(1))
        assert not evaluate(rule("score", Op.BETWEEN, IntValue(1)), ints(1))

    def test_missing_value(self) -> None:
        assert not evaluate(rule("score", Op.EQ), ints(1))


class TestPresenceOperators:
    """Tests for isSet / isEmpty."""

    @pytest.mark.parametrize("values", [{}, ints(), ints(5), ints(5, 6)])
    def test_complements(self, values) -> None:
        """Exactly one of isSet and isEmpty holds."""
        is_set = evaluate(rule("score", Op.IS_SET), values)
        is_empty = evaluate(rule("score", Op.IS_EMPTY), values)
        assert is_set != is_empty

    def test_is_set(self) -> None:
        assert evaluate(rule("score", Op.IS_SET), ints(0))
        assert not evaluate(rule("score", Op.IS_SET), {})


class TestIntComparison:
    """Tests for eq / neq / gt / gte / lt / lte on ints."""

    def test_any_value_suffices(self) -> None:
        assert evaluate(rule("score", Op.EQ, IntValue(20)), ints(10, 20))
        assert evaluate(rule("score", Op.GT, IntValue(15)), ints(10, 20))
        assert evaluate(rule("score", Op.LT, IntValue(15)), ints(10, 20))

    def test_inclusive_comparisons(self) -> None:
        assert evaluate(rule("score", Op.GTE, IntValue(10)), ints(10))
        assert evaluate(rule("score", Op.LTE, IntValue(10)), ints(10))
        assert not evaluate(rule("score", Op.GT, IntValue(10)), ints(10))
        assert not evaluate(rule("score", Op.LT, IntValue(10)), ints(10))

    def test_neq_requires_all_to_differ(self) -> None:
        assert evaluate(rule("score", Op.NEQ, IntValue(5)), ints(10, 20))
        assert not evaluate(rule("score", Op.NEQ, IntValue(20)), ints(10, 20))

    def test_neq_vacuously_false(self) -> None:
        """neq with no values fails."""
        assert not evaluate(rule("score", Op.NEQ, IntValue(5)), {})

    def test_other_typed_values_ignored(self) -> None:
        """Only int values take part in int comparisons."""
        values = {"score": [AssignedText("10")]}
        assert not evaluate(rule("score", Op.EQ, IntValue(10)), values)


class TestBetween:
    """Tests for between with open and closed bounds."""

    def test_degenerate_open_range_excludes(self) -> None:
        assert not evaluate(rule("score", Op.BETWEEN, IntRangeValue(10, 10, OPEN, OPEN)), ints(10))

    def test_degenerate_closed_range_includes(self) -> None:
        assert evaluate(rule("score", Op.BETWEEN, IntRangeValue(10, 10, CLOSED, CLOSED)), ints(10))

    def test_half_open_range(self) -> None:
        value = IntRangeValue(9, 10, OPEN, CLOSED)
        assert evaluate(rule("score", Op.BETWEEN, value), ints(10))
        assert not evaluate(rule("score", Op.BETWEEN, value), ints(9))

    def test_any_value_in_range(self) -> None:
        assert evaluate(rule("score", Op.BETWEEN, IntRangeValue(15, 25)), ints(10, 20))

    def test_in_range_helper(self) -> None:
        assert in_range(5, 1, 10, CLOSED, CLOSED)
        assert not in_range(1, 1, 10, OPEN, CLOSED)
        assert not in_range(10, 1, 10, CLOSED, OPEN)


class TestDateComparison:
    """Tests for date operators at day granularity."""

    def test_eq_ignores_time_of_day(self) -> None:
        values = {"due": [AssignedDate(datetime(2024, 3, 15, 18, 30))]}
        assert evaluate(rule("due", Op.EQ, DateValue(datetime(2024, 3, 15, 8, 0))), values)

    def test_gt_by_day(self) -> None:
        values = {"due": [AssignedDate(datetime(2024, 3, 15, 23, 59))]}
        assert not evaluate(rule("due", Op.GT, DateValue(datetime(2024, 3, 15))), values)
        assert evaluate(rule("due", Op.GTE, DateValue(datetime(2024, 3, 15))), values)

    def test_date_range(self) -> None:
        values = {"due": [AssignedDate(datetime(2024, 3, 15, 12))]}
        closed = DateRangeValue(datetime(2024, 3, 1), datetime(2024, 3, 15))
        open_upper = DateRangeValue(datetime(2024, 3, 1), datetime(2024, 3, 15), CLOSED, OPEN)
        assert evaluate(rule("due", Op.BETWEEN, closed), values)
        assert not evaluate(rule("due", Op.BETWEEN, open_upper), values)

    def test_start_of_day_aware(self) -> None:
        """Aware datetimes are truncated in local time."""
        aware = datetime(2024, 3, 15, 12, tzinfo=timezone(timedelta(hours=0)))
        assert start_of_day(aware) == aware.astimezone().date()


class TestTextOperators:
    """Tests for contains / equals."""

    def test_contains_normalized(self) -> None:
        values = {"author": [AssignedText("Jane Müller")]}
        assert evaluate(rule("author", Op.CONTAINS, TextValue("MULL")), values)
        assert not evaluate(rule("author", Op.CONTAINS, TextValue("smith")), values)

    def test_equals_normalized(self) -> None:
        values = {"author": [AssignedText("Jane Müller")]}
        assert evaluate(rule("author", Op.EQUALS, TextValue(" jane muller ")), values)
        assert not evaluate(rule("author", Op.EQUALS, TextValue("jane")), values)

    def test_empty_target_fails(self) -> None:
        values = {"author": [AssignedText("Jane")]}
        assert not evaluate(rule("author", Op.CONTAINS, TextValue("   ")), values)


class TestListOperators:
    """Tests for in / notIn."""

    def test_single_value_partition(self) -> None:
        """in and notIn split a candidate with a single value."""
        values = {"status": [AssignedOption("A")]}
        target = ListValue(("A", "B"))
        assert evaluate(rule("status", Op.IN, target), values)
        assert not evaluate(rule("status", Op.NOT_IN, target), values)

    def test_no_value_fails_both(self) -> None:
        target = ListValue(("A", "B"))
        assert not evaluate(rule("status", Op.IN, target), {})
        assert not evaluate(rule("status", Op.NOT_IN, target), {})

    def test_not_in_requires_all_outside(self) -> None:
        values = {"status": [AssignedOption("A"), AssignedOption("C")]}
        assert not evaluate(rule("status", Op.NOT_IN, ListValue(("A",))), values)
        assert evaluate(rule("status", Op.NOT_IN, ListValue(("B",))), values)

    def test_normalized_options(self) -> None:
        values = {"status": [AssignedOption("Öpen")]}
        assert evaluate(rule("status", Op.IN, ListValue(("open",))), values)

    def test_empty_target_fails(self) -> None:
        values = {"status": [AssignedOption("A")]}
        assert not evaluate(rule("status", Op.IN, ListValue(("", "  "))), values)
        assert not evaluate(rule("status", Op.NOT_IN, ListValue(())), values)


class TestRuleComposition:
    """Tests for SearchFilters.variable_filter_match()."""

    def test_no_rules(self) -> None:
        assert SearchFilters.variable_filter_match({}, VARIABLES, options())

    def test_and_mode(self) -> None:
        rules = (rule("score", Op.EQ, IntValue(1)), rule("score", Op.EQ, IntValue(2)))
        assert not SearchFilters.variable_filter_match(ints(1), VARIABLES, options(variable_rules=rules))
        assert SearchFilters.variable_filter_match(ints(1, 2), VARIABLES, options(variable_rules=rules))

    def test_or_mode(self) -> None:
        rules = (rule("score", Op.EQ, IntValue(1)), rule("missing", Op.IS_SET))
        opts = options(variable_rules=rules, variable_rules_mode=FilterLogicalMode.OR)
        assert SearchFilters.variable_filter_match(ints(1), VARIABLES, opts)
        assert not SearchFilters.variable_filter_match(ints(3), VARIABLES, opts)
