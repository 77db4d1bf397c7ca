"""
Search options, structured filter rules and results.

Filter values form a closed union (IntValue | IntRangeValue | TextValue |
DateValue | DateRangeValue | ListValue). Evaluators dispatch on the variant
and treat any other value as a mismatch.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union
import uuid

from dateutil import parser as date_parser

from config.search_config import DEFAULT_SEARCH_OPTIONS
from ..corpus.models import VariableType


# ============================================================================
# Enumerations
# ============================================================================

class SearchField(str, Enum):
    """Text fields a query can be matched against."""
    DOC_TITLE = "docTitle"
    PAGE_GROUP_TITLE = "pageGroupTitle"
    OCR_TEXT = "ocrText"
    NOTE_TITLE_BODY = "noteTitleBody"
    TAG_NAME = "tagName"
    VARIABLE_NAME = "variableName"
    VARIABLE_VALUE = "variableValue"
    VERSION_SNAPSHOT_METADATA = "versionSnapshotMetadata"

    @property
    def title(self) -> str:
        return _FIELD_TITLES[self]


_FIELD_TITLES = {
    SearchField.DOC_TITLE: "Document Title",
    SearchField.PAGE_GROUP_TITLE: "Page Group Title",
    SearchField.OCR_TEXT: "OCR Text",
    SearchField.NOTE_TITLE_BODY: "Notes",
    SearchField.TAG_NAME: "Tag Names",
    SearchField.VARIABLE_NAME: "Variable Names",
    SearchField.VARIABLE_VALUE: "Variable Values",
    SearchField.VERSION_SNAPSHOT_METADATA: "Version Snapshot",
}


class ResultKind(str, Enum):
    DOC = "doc"
    PAGE_GROUP = "pageGroup"
    PAGE = "page"
    OCR_HIT = "ocrHit"
    NOTE_HIT = "noteHit"
    VERSION_METADATA_HIT = "versionMetadataHit"

    @property
    def title(self) -> str:
        return _KIND_TITLES[self]


_KIND_TITLES = {
    ResultKind.DOC: "Document",
    ResultKind.PAGE_GROUP: "Page Group",
    ResultKind.PAGE: "Page",
    ResultKind.OCR_HIT: "OCR",
    ResultKind.NOTE_HIT: "Note",
    ResultKind.VERSION_METADATA_HIT: "Version Metadata",
}


class TagFilterMode(str, Enum):
    ANY = "any"
    ALL = "all"


class FilterLogicalMode(str, Enum):
    AND = "and"
    OR = "or"


class RangeBoundInclusion(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class VariableFilterOperator(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    BETWEEN = "between"

    CONTAINS = "contains"
    EQUALS = "equals"

    IN = "in"
    NOT_IN = "notIn"

    IS_SET = "isSet"
    IS_EMPTY = "isEmpty"

    @property
    def needs_value(self) -> bool:
        return self not in (VariableFilterOperator.IS_SET, VariableFilterOperator.IS_EMPTY)

    @staticmethod
    def allowed_for(variable_type: VariableType) -> Tuple["VariableFilterOperator", ...]:
        return ALLOWED_OPERATORS[variable_type]


_ORDERED_OPERATORS = (
    VariableFilterOperator.EQ,
    VariableFilterOperator.NEQ,
    VariableFilterOperator.GT,
    VariableFilterOperator.GTE,
    VariableFilterOperator.LT,
    VariableFilterOperator.LTE,
    VariableFilterOperator.BETWEEN,
    VariableFilterOperator.IS_SET,
    VariableFilterOperator.IS_EMPTY,
)

ALLOWED_OPERATORS = {
    VariableType.INT: _ORDERED_OPERATORS,
    VariableType.DATE: _ORDERED_OPERATORS,
    VariableType.TEXT: (
        VariableFilterOperator.CONTAINS,
        VariableFilterOperator.EQUALS,
        VariableFilterOperator.IS_SET,
        VariableFilterOperator.IS_EMPTY,
    ),
    VariableType.LIST: (
        VariableFilterOperator.IN,
        VariableFilterOperator.NOT_IN,
        VariableFilterOperator.IS_SET,
        VariableFilterOperator.IS_EMPTY,
    ),
}


# ============================================================================
# Filter values
# ============================================================================

@dataclass(frozen=True)
class IntValue:
    value: int


@dataclass(frozen=True)
class IntRangeValue:
    min: int
    max: int
    lower: RangeBoundInclusion = RangeBoundInclusion.CLOSED
    upper: RangeBoundInclusion = RangeBoundInclusion.CLOSED


@dataclass(frozen=True)
class TextValue:
    value: str


@dataclass(frozen=True)
class DateValue:
    value: datetime


@dataclass(frozen=True)
class DateRangeValue:
    min: datetime
    max: datetime
    lower: RangeBoundInclusion = RangeBoundInclusion.CLOSED
    upper: RangeBoundInclusion = RangeBoundInclusion.CLOSED


@dataclass(frozen=True)
class ListValue:
    options: Tuple[str, ...]


VariableFilterValue = Union[IntValue, IntRangeValue, TextValue, DateValue, DateRangeValue, ListValue]


@dataclass(frozen=True)
class VariableFilterRule:
    variable_id: str
    operator: VariableFilterOperator
    value: Optional[VariableFilterValue] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass(frozen=True)
class TagFilter:
    name_keyword: str = ""
    selected_tag_ids: FrozenSet[str] = frozenset()
    mode: TagFilterMode = TagFilterMode.ANY

    @property
    def is_active(self) -> bool:
        return bool(self.name_keyword.strip()) or bool(self.selected_tag_ids)


@dataclass(frozen=True)
class SearchOptions:
    field_scope: FrozenSet[SearchField] = frozenset(SearchField)
    result_kinds: FrozenSet[ResultKind] = frozenset(ResultKind)
    include_historical_versions: bool = True
    max_results: int = 120
    tag_filter: TagFilter = TagFilter()
    variable_rules: Tuple[VariableFilterRule, ...] = ()
    variable_rules_mode: FilterLogicalMode = FilterLogicalMode.AND

    @property
    def has_structured_filters(self) -> bool:
        return self.tag_filter.is_active or bool(self.variable_rules)

    def with_changes(self, **changes) -> "SearchOptions":
        return replace(self, **changes)

    @classmethod
    def default(cls) -> "SearchOptions":
        return options_from_dict(DEFAULT_SEARCH_OPTIONS)


# ============================================================================
# Results
# ============================================================================

class ViewerSource(str, Enum):
    OCR = "ocr"


@dataclass(frozen=True)
class LaunchContext:
    """Where a viewer should open for a result."""
    logical_page_id: Optional[str] = None
    preferred_version_id: Optional[str] = None
    preferred_source: Optional[ViewerSource] = None
    preferred_note_id: Optional[str] = None


@dataclass(frozen=True)
class SearchResult:
    stable_id: str
    kind: ResultKind
    matched_fields: FrozenSet[SearchField]
    score: int

    doc_id: str
    doc_title: str
    page_group_id: Optional[str]
    page_group_title: Optional[str]
    logical_page_id: Optional[str]
    doc_page_number: Optional[int]
    page_version_id: Optional[str]
    note_id: Optional[str]

    title: str
    subtitle: str
    snippet: str

    @property
    def launch_context(self) -> LaunchContext:
        return LaunchContext(
            logical_page_id=self.logical_page_id,
            preferred_version_id=self.page_version_id,
            preferred_source=ViewerSource.OCR if self.kind == ResultKind.OCR_HIT else None,
            preferred_note_id=self.note_id if self.kind == ResultKind.NOTE_HIT else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.stable_id,
            'kind': self.kind.value,
            'matched_fields': sorted(f.value for f in self.matched_fields),
            'score': self.score,
            'doc_id': self.doc_id,
            'doc_title': self.doc_title,
            'page_group_id': self.page_group_id,
            'page_group_title': self.page_group_title,
            'logical_page_id': self.logical_page_id,
            'doc_page_number': self.doc_page_number,
            'page_version_id': self.page_version_id,
            'note_id': self.note_id,
            'title': self.title,
            'subtitle': self.subtitle,
            'snippet': self.snippet,
        }


# ============================================================================
# Options codec
# ============================================================================

def _parse_datetime(raw) -> datetime:
    if isinstance(raw, datetime):
        return raw
    return date_parser.isoparse(str(raw))


def filter_value_to_dict(value: Optional[VariableFilterValue]) -> Optional[Dict[str, Any]]:
    if value is None:
        return None
    if isinstance(value, IntValue):
        return {'type': 'int', 'value': value.value}
    if isinstance(value, IntRangeValue):
        return {
            'type': 'intRange',
            'min': value.min,
            'max': value.max,
            'lowerInclusion': value.lower.value,
            'upperInclusion': value.upper.value,
        }
    if isinstance(value, TextValue):
        return {'type': 'text', 'value': value.value}
    if isinstance(value, DateValue):
        return {'type': 'date', 'value': value.value.isoformat()}
    if isinstance(value, DateRangeValue):
        return {
            'type': 'dateRange',
            'min': value.min.isoformat(),
            'max': value.max.isoformat(),
            'lowerInclusion': value.lower.value,
            'upperInclusion': value.upper.value,
        }
    if isinstance(value, ListValue):
        return {'type': 'list', 'value': list(value.options)}
    raise TypeError(f"Unsupported filter value: {value!r}")


def filter_value_from_dict(data: Optional[Dict[str, Any]]) -> Optional[VariableFilterValue]:
    """
    Decode a filter value.

    Raises:
        ValueError: If the value type is unknown or fields are malformed
    """
    if data is None:
        return None

    value_type = data.get('type')
    if value_type == 'int':
        return IntValue(int(data['value']))
    if value_type == 'intRange':
        return IntRangeValue(
            min=int(data['min']),
            max=int(data['max']),
            lower=RangeBoundInclusion(data.get('lowerInclusion', 'closed')),
            upper=RangeBoundInclusion(data.get('upperInclusion', 'closed')),
        )
    if value_type == 'text':
        return TextValue(str(data['value']))
    if value_type == 'date':
        return DateValue(_parse_datetime(data['value']))
    if value_type == 'dateRange':
        return DateRangeValue(
            min=_parse_datetime(data['min']),
            max=_parse_datetime(data['max']),
            lower=RangeBoundInclusion(data.get('lowerInclusion', 'closed')),
            upper=RangeBoundInclusion(data.get('upperInclusion', 'closed')),
        )
    if value_type == 'list':
        return ListValue(tuple(str(option) for option in data['value']))
    raise ValueError(f"Unknown filter value type: {value_type!r}")


def options_to_dict(options: SearchOptions) -> Dict[str, Any]:
    return {
        'fieldScope': sorted(f.value for f in options.field_scope),
        'resultKinds': sorted(k.value for k in options.result_kinds),
        'includeHistoricalVersions': options.include_historical_versions,
        'maxResults': options.max_results,
        'tagFilter': {
            'nameKeyword': options.tag_filter.name_keyword,
            'selectedTagIDs': sorted(options.tag_filter.selected_tag_ids),
            'mode': options.tag_filter.mode.value,
        },
        'variableRules': [
            {
                'id': rule.id,
                'variableID': rule.variable_id,
                'operator': rule.operator.value,
                'value': filter_value_to_dict(rule.value),
            }
            for rule in options.variable_rules
        ],
        'variableRulesMode': options.variable_rules_mode.value,
    }


def options_from_dict(data: Dict[str, Any]) -> SearchOptions:
    """
    Decode search options.

    The structured filter keys (tagFilter, variableRules, variableRulesMode)
    are optional; the other four are required.

    Raises:
        KeyError, ValueError, TypeError: If the payload is malformed
    """
    tag_data = data.get('tagFilter') or {}
    tag_filter = TagFilter(
        name_keyword=str(tag_data.get('nameKeyword', '')),
        selected_tag_ids=frozenset(str(t) for t in tag_data.get('selectedTagIDs', [])),
        mode=TagFilterMode(tag_data.get('mode', 'any')),
    )

    rules = []
    for rule_data in data.get('variableRules') or []:
        rule_kwargs = {}
        if rule_data.get('id'):
            rule_kwargs['id'] = str(rule_data['id'])
        rules.append(VariableFilterRule(
            variable_id=str(rule_data['variableID']),
            operator=VariableFilterOperator(rule_data['operator']),
            value=filter_value_from_dict(rule_data.get('value')),
            **rule_kwargs
        ))

    return SearchOptions(
        field_scope=frozenset(SearchField(f) for f in data['fieldScope']),
        result_kinds=frozenset(ResultKind(k) for k in data['resultKinds']),
        include_historical_versions=bool(data['includeHistoricalVersions']),
        max_results=int(data['maxResults']),
        tag_filter=tag_filter,
        variable_rules=tuple(rules),
        variable_rules_mode=FilterLogicalMode(data.get('variableRulesMode', 'and')),
    )
