"""
Structured filter evaluation for search candidates.

Tag filters check keyword and set membership; variable filters evaluate typed
rules against a candidate's multi-valued variable map.
"""

from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional, Set
import logging

from .models import (
    ALLOWED_OPERATORS,
    DateRangeValue,
    DateValue,
    FilterLogicalMode,
    IntRangeValue,
    IntValue,
    ListValue,
    RangeBoundInclusion,
    SearchOptions,
    TagFilter,
    TagFilterMode,
    TextValue,
    VariableFilterOperator,
    VariableFilterRule,
)
from .text_normalizer import normalize
from ..corpus.models import Variable, VariableType
from ..corpus.snapshot import (
    AssignedDate,
    AssignedInt,
    AssignedOption,
    AssignedText,
    CandidateValue,
    VariableValues,
)

logger = logging.getLogger(__name__)

Op = VariableFilterOperator

_COMPARATORS: Dict[VariableFilterOperator, Callable] = {
    Op.EQ: lambda value, target: value == target,
    Op.GT: lambda value, target: value > target,
    Op.GTE: lambda value, target: value >= target,
    Op.LT: lambda value, target: value < target,
    Op.LTE: lambda value, target: value <= target,
}


def start_of_day(value: datetime) -> date:
    """Truncate a datetime to its calendar day (local time for aware values)."""
    if value.tzinfo is not None:
        value = value.astimezone()
    return value.date()


def in_range(value, minimum, maximum, lower: RangeBoundInclusion, upper: RangeBoundInclusion) -> bool:
    """
    Check a value against a range with independently open/closed bounds.

    Open bounds are exclusive (value > min, value < max), closed bounds are
    inclusive.
    """
    if lower == RangeBoundInclusion.OPEN:
        lower_pass = value > minimum
    else:
        lower_pass = value >= minimum

    if upper == RangeBoundInclusion.OPEN:
        upper_pass = value < maximum
    else:
        upper_pass = value <= maximum

    return lower_pass and upper_pass


class SearchFilters:
    """Evaluates tag filters and variable filter rules."""

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    @staticmethod
    def tag_filter_match(
        candidate_tag_ids: Set[str],
        candidate_tag_names: Iterable[str],
        tag_filter: TagFilter
    ) -> bool:
        """
        Check a candidate against a tag filter.

        Args:
            candidate_tag_ids: Tag ids carried by the candidate
            candidate_tag_names: Resolved tag names carried by the candidate
            tag_filter: Keyword plus ANY/ALL selection

        Returns:
            True if both the keyword and the selection are satisfied
        """
        if not tag_filter.is_active:
            return True

        keyword = tag_filter.name_keyword.strip()
        if not keyword:
            keyword_satisfied = True
        else:
            normalized_keyword = normalize(keyword)
            keyword_satisfied = any(
                normalized_keyword in normalize(name) for name in candidate_tag_names
            )

        selected = tag_filter.selected_tag_ids
        if not selected:
            selection_satisfied = True
        elif tag_filter.mode == TagFilterMode.ALL:
            selection_satisfied = set(selected).issubset(candidate_tag_ids)
        else:
            selection_satisfied = not set(selected).isdisjoint(candidate_tag_ids)

        return keyword_satisfied and selection_satisfied

    # ------------------------------------------------------------------
    # Variables
    # ------------------------------------------------------------------

    @staticmethod
    def variable_filter_match(
        candidate_values: VariableValues,
        variable_by_id: Dict[str, Variable],
        options: SearchOptions
    ) -> bool:
        """
        Combine all variable rules of the options with AND / OR.

        An empty rule list applies no filtering.
        """
        if not options.variable_rules:
            return True

        evaluations = (
            SearchFilters.evaluate_rule(rule, candidate_values, variable_by_id)
            for rule in options.variable_rules
        )

        if options.variable_rules_mode == FilterLogicalMode.OR:
            return any(evaluations)
        return all(evaluations)

    @staticmethod
    def evaluate_rule(
        rule: VariableFilterRule,
        candidate_values: VariableValues,
        variable_by_id: Dict[str, Variable]
    ) -> bool:
        """
        Evaluate one rule against a candidate's values.

        Unknown variables, operators not allowed for the variable type and
        values of the wrong type all evaluate to False.
        """
        variable = variable_by_id.get(rule.variable_id)
        if variable is None:
            logger.debug(f"Rule {rule.id} references unknown variable {rule.variable_id}")
            return False

        if rule.operator not in ALLOWED_OPERATORS[variable.type]:
            logger.debug(
                f"Rule {rule.id}: operator {rule.operator.value} not allowed for "
                f"{variable.type.value} variable {variable.name}"
            )
            return False

        values = candidate_values.get(rule.variable_id, [])

        if rule.operator == Op.IS_SET:
            return len(values) > 0
        if rule.operator == Op.IS_EMPTY:
            return len(values) == 0

        if rule.operator in _COMPARATORS or rule.operator == Op.NEQ:
            return SearchFilters._evaluate_comparison(rule, variable.type, values)
        if rule.operator == Op.BETWEEN:
            return SearchFilters._evaluate_between(rule, variable.type, values)
        if rule.operator in (Op.CONTAINS, Op.EQUALS):
            return SearchFilters._evaluate_text(rule, values)
        if rule.operator in (Op.IN, Op.NOT_IN):
            return SearchFilters._evaluate_list(rule, values)

        return False

    @staticmethod
    def _comparable_values(variable_type: VariableType, values: List[CandidateValue]) -> List:
        if variable_type == VariableType.INT:
            return [v.value for v in values if isinstance(v, AssignedInt)]
        if variable_type == VariableType.DATE:
            return [start_of_day(v.value) for v in values if isinstance(v, AssignedDate)]
        return []

    @staticmethod
    def _comparison_target(variable_type: VariableType, value) -> Optional[object]:
        if variable_type == VariableType.INT and isinstance(value, IntValue):
            return value.value
        if variable_type == VariableType.DATE and isinstance(value, DateValue):
            return start_of_day(value.value)
        return None

    @staticmethod
    def _evaluate_comparison(
        rule: VariableFilterRule,
        variable_type: VariableType,
        values: List[CandidateValue]
    ) -> bool:
        target = SearchFilters._comparison_target(variable_type, rule.value)
        if target is None:
            return False

        present = SearchFilters._comparable_values(variable_type, values)

        # neq requires every present value to differ, and at least one value
        if rule.operator == Op.NEQ:
            return bool(present) and all(value != target for value in present)

        compare = _COMPARATORS[rule.operator]
        return any(compare(value, target) for value in present)

    @staticmethod
    def _evaluate_between(
        rule: VariableFilterRule,
        variable_type: VariableType,
        values: List[CandidateValue]
    ) -> bool:
        value = rule.value
        if variable_type == VariableType.INT and isinstance(value, IntRangeValue):
            minimum, maximum = value.min, value.max
        elif variable_type == VariableType.DATE and isinstance(value, DateRangeValue):
            minimum, maximum = start_of_day(value.min), start_of_day(value.max)
        else:
            return False

        present = SearchFilters._comparable_values(variable_type, values)
        return any(
            in_range(v, minimum, maximum, value.lower, value.upper) for v in present
        )

    @staticmethod
    def _evaluate_text(rule: VariableFilterRule, values: List[CandidateValue]) -> bool:
        if not isinstance(rule.value, TextValue):
            return False

        target = normalize(rule.value.value)
        if not target:
            return False

        texts = [normalize(v.value) for v in values if isinstance(v, AssignedText)]
        if rule.operator == Op.CONTAINS:
            return any(target in text for text in texts)
        return any(text == target for text in texts)

    @staticmethod
    def _evaluate_list(rule: VariableFilterRule, values: List[CandidateValue]) -> bool:
        if not isinstance(rule.value, ListValue):
            return False

        targets = {normalize(option) for option in rule.value.options}
        targets.discard("")
        if not targets:
            return False

        options = [normalize(v.value) for v in values if isinstance(v, AssignedOption)]
        if rule.operator == Op.IN:
            return any(option in targets for option in options)

        # notIn requires every present option to be outside the target set
        return bool(options) and all(option not in targets for option in options)
