from __future__ import annotations

from dataclasses import dataclass

from repricer.domain.core.enums import FilterType

_SEARCH_FIELDS = {
    FilterType.vendor: "vendor",
    FilterType.product_type: "product_type",
    FilterType.tag: "tag",
}


@dataclass(frozen=True)
class TargetFilter:
    """``kind`` is None for a stored filter type this version does not know."""

    kind: FilterType | None
    value: str | None = None


def coerce_filter_type(value: str | None) -> FilterType | None:
    if not value:
        return None
    try:
        return FilterType(value)
    except ValueError:
        return None


def resolve_target_filter(
    filter_type: str | None,
    filter_value: str | None,
    collection_id: str | None,
) -> TargetFilter:
    """Effective filter for a stored campaign, honouring the legacy collection id."""
    kind = coerce_filter_type(filter_type) if filter_type else FilterType.collection
    if kind is FilterType.all or (not collection_id and not filter_value):
        return TargetFilter(FilterType.all)
    if kind is FilterType.collection and collection_id:
        return TargetFilter(FilterType.collection, collection_id)
    if filter_value:
        return TargetFilter(kind, filter_value)
    return TargetFilter(FilterType.all)


def search_query(kind: FilterType, value: str) -> str | None:
    field = _SEARCH_FIELDS.get(kind)
    if field is None:
        return None
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"{field}:'{escaped}'"
