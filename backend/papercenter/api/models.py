"""
Pydantic models for API requests and responses.
"""

from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field, field_validator

from ..search.models import (
    FilterLogicalMode,
    ResultKind,
    SearchField,
    SearchOptions,
    TagFilter,
    TagFilterMode,
    VariableFilterOperator,
    VariableFilterRule,
    filter_value_from_dict,
    options_from_dict,
)


# ============================================================================
# Search Models
# ============================================================================

class TagFilterModel(BaseModel):
    """Tag filter parameters."""

    name_keyword: str = Field("", max_length=200, description="Case-insensitive substring of a tag name")
    selected_tag_ids: List[str] = Field(default_factory=list, description="Tag IDs to require")
    mode: TagFilterMode = Field(TagFilterMode.ANY, description="Match any or all selected tags")


class VariableRuleModel(BaseModel):
    """A single variable filter rule."""

    id: Optional[str] = Field(None, description="Client-side rule identifier")
    variable_id: str = Field(..., description="Variable the rule applies to")
    operator: VariableFilterOperator = Field(..., description="Comparison operator")
    value: Optional[Dict[str, Any]] = Field(
        None,
        description="Typed value, e.g. {'type': 'intRange', 'min': 1, 'max': 5}"
    )

    @field_validator('value')
    @classmethod
    def validate_value(cls, v):
        """Reject values the filter codec cannot decode."""
        if v is not None:
            try:
                filter_value_from_dict(v)
            except (KeyError, TypeError) as e:
                raise ValueError(f'Invalid filter value: {e}')
        return v

    def to_rule(self) -> VariableFilterRule:
        kwargs = {'id': self.id} if self.id else {}
        return VariableFilterRule(
            variable_id=self.variable_id,
            operator=self.operator,
            value=filter_value_from_dict(self.value),
            **kwargs
        )


class SearchRequest(BaseModel):
    """
    Search request body.

    Omitted option fields fall back to the stored search preferences.
    """

    query: str = Field("", max_length=500, description="Search query")
    field_scope: Optional[List[SearchField]] = Field(None, description="Fields the query may match")
    result_kinds: Optional[List[ResultKind]] = Field(None, description="Result kinds to return")
    include_historical_versions: Optional[bool] = Field(None, description="Search every page version")
    max_results: Optional[int] = Field(None, ge=0, le=1000, description="Maximum results to return")
    tag_filter: Optional[TagFilterModel] = Field(None, description="Tag filter")
    variable_rules: Optional[List[VariableRuleModel]] = Field(None, description="Variable filter rules")
    variable_rules_mode: Optional[FilterLogicalMode] = Field(None, description="Combine rules with AND or OR")

    def to_options(self, base: SearchOptions) -> SearchOptions:
        """Overlay the request's explicit options on top of base."""
        changes: Dict[str, Any] = {}
        if self.field_scope is not None:
            changes['field_scope'] = frozenset(self.field_scope)
        if self.result_kinds is not None:
            changes['result_kinds'] = frozenset(self.result_kinds)
        if self.include_historical_versions is not None:
            changes['include_historical_versions'] = self.include_historical_versions
        if self.max_results is not None:
            changes['max_results'] = self.max_results
        if self.tag_filter is not None:
            changes['tag_filter'] = TagFilter(
                name_keyword=self.tag_filter.name_keyword,
                selected_tag_ids=frozenset(self.tag_filter.selected_tag_ids),
                mode=self.tag_filter.mode,
            )
        if self.variable_rules is not None:
            changes['variable_rules'] = tuple(rule.to_rule() for rule in self.variable_rules)
        if self.variable_rules_mode is not None:
            changes['variable_rules_mode'] = self.variable_rules_mode
        return base.with_changes(**changes)


class SearchResult(BaseModel):
    """Individual search result."""

    id: str = Field(..., description="Stable result ID")
    kind: ResultKind = Field(..., description="Result kind")
    matched_fields: List[SearchField] = Field(default_factory=list, description="Fields the query matched")
    score: int = Field(..., description="Relevance score")
    doc_id: str = Field(..., description="Owning document ID")
    doc_title: str = Field(..., description="Owning document title")
    page_group_id: Optional[str] = Field(None, description="Page group ID")
    page_group_title: Optional[str] = Field(None, description="Page group title")
    logical_page_id: Optional[str] = Field(None, description="Logical page ID")
    doc_page_number: Optional[int] = Field(None, description="1-based page number within the document")
    page_version_id: Optional[str] = Field(None, description="Page version ID")
    note_id: Optional[str] = Field(None, description="Note ID")
    title: str = Field(..., description="Display title")
    subtitle: str = Field(..., description="Display subtitle")
    snippet: str = Field(..., description="Display snippet")


class SearchResponse(BaseModel):
    """Search response."""

    results: List[SearchResult] = Field(..., description="Ranked search results")
    total: int = Field(..., description="Number of results returned")
    query: str = Field(..., description="Original search query")
    query_time_ms: int = Field(..., description="Query execution time in milliseconds")
    options: Dict[str, Any] = Field(default_factory=dict, description="Effective search options")


# ============================================================================
# Preferences Models
# ============================================================================

class PreferencesPayload(BaseModel):
    """Stored search options, in their camelCase JSON form."""

    options: Dict[str, Any] = Field(..., description="Search options")

    @field_validator('options')
    @classmethod
    def validate_options(cls, v):
        """Reject options the options codec cannot decode."""
        try:
            options_from_dict(v)
        except (KeyError, TypeError) as e:
            raise ValueError(f'Invalid search options: {e}')
        return v


# ============================================================================
# Statistics Models
# ============================================================================

class StatsResponse(BaseModel):
    """Corpus statistics response."""

    tags: int = Field(..., description="Tag definitions")
    variables: int = Field(..., description="Variable definitions")
    documents: int = Field(..., description="Documents")
    page_groups: int = Field(..., description="Page groups")
    pages: int = Field(..., description="Logical pages")
    page_versions: int = Field(..., description="Page versions")
    bundles: int = Field(..., description="PDF bundles")
    notes: int = Field(..., description="Notes that are not deleted")


# ============================================================================
# Health Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status: healthy, degraded")
    corpus_available: bool = Field(..., description="Whether the corpus could be fetched")
    uptime_seconds: int = Field(..., description="Service uptime in seconds")


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Error response."""

    error: str = Field(..., description="Error message")
    code: str = Field(..., description="Error code")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
