from __future__ import annotations

from typing import Mapping

from spaceshare.services.search_engine import (
    DEFAULT_PAGE_SIZE,
    GEO_OLD,
    FilterSpec,
    SearchValidationError,
)


MAX_PAGE_SIZE = 100


def _csv(args: Mapping[str, str], key: str) -> frozenset[str]:
    raw = args.get(key) or ""
    return frozenset(part.strip() for part in str(raw).split(",") if part.strip())


def _bound(args: Mapping[str, str], key: str) -> int | None:
    raw = (args.get(key) or "").strip()
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise SearchValidationError(f"{key} must be a non-negative integer")
    if value < 0:
        raise SearchValidationError(f"{key} must be a non-negative integer")
    return value


def _paging_int(args: Mapping[str, str], key: str, default: int, *, maximum: int | None = None) -> int:
    raw = (args.get(key) or "").strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        value = default
    value = max(1, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def filter_spec_from_args(args: Mapping[str, str]) -> FilterSpec:
    """Build a validated FilterSpec from search query parameters.

    Raises SearchValidationError for a missing province, a missing ward under
    the new administrative system, an unknown geoSystem or bad price bounds.
    """
    geo_system = (args.get("geoSystem") or GEO_OLD).strip().lower()
    spec = FilterSpec(
        province=(args.get("province") or "").strip(),
        geo_system=geo_system,
        districts=_csv(args, "district"),
        wards=_csv(args, "ward"),
        query=(args.get("query") or "").strip(),
        space_types=_csv(args, "spaceTypes"),
        location_types=_csv(args, "locationTypes"),
        suitable_for=_csv(args, "suitableFor"),
        not_suitable_for=_csv(args, "notSuitableFor"),
        amenities=_csv(args, "amenities"),
        nearby_features=_csv(args, "nearbyFeatures"),
        price_min=_bound(args, "priceMin"),
        price_max=_bound(args, "priceMax"),
        time_of_day=_csv(args, "timeOfDay"),
        page=_paging_int(args, "page", 1),
        page_size=_paging_int(args, "pageSize", DEFAULT_PAGE_SIZE, maximum=MAX_PAGE_SIZE),
        all_results=(args.get("allResults") or "").strip().lower() == "true",
    )
    return spec.validate()
