"""In-process listing search.

``search`` is a pure function of (candidates, FilterSpec). The store layer may
push down scalar predicates first; the engine re-evaluates every predicate and
is correct on an unfiltered candidate set.
"""
from __future__ import annotations

import unicodedata
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, NamedTuple


GEO_OLD = "old"
GEO_NEW = "new"
GEO_SYSTEMS = (GEO_OLD, GEO_NEW)

VISIBLE_STATUSES = frozenset({"approved", "expired"})

DEFAULT_PAGE_SIZE = 12

# User-facing session labels -> session token stored after "|" in time_slots.
SESSION_LABELS = {
    "Buổi sáng": "Sáng",
    "Buổi trưa": "Trưa",
    "Buổi chiều": "Chiều",
    "Buổi tối": "Tối",
    "Nguyên ngày": "Cả ngày",
}
SESSION_TOKENS = frozenset(SESSION_LABELS.values())


class SearchValidationError(ValueError):
    pass


def normalize_text(value: Any) -> str:
    """Fold case, Vietnamese diacritics and runs of whitespace.

    "Cà Phê  Đà Lạt" -> "ca phe da lat". Idempotent.
    """
    if value is None:
        return ""
    text = str(value).replace("đ", "d").replace("Đ", "d")
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    composed = unicodedata.normalize("NFC", stripped).lower()
    return " ".join(composed.split())


def _compact(value: Any) -> str:
    return "".join(normalize_text(value).split())


def _tag_set(value: Any) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        value = [value]
    out = set()
    for item in value:
        tag = str(item or "").strip()
        if tag:
            out.add(tag)
    return frozenset(out)


def _int_or_none(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class ListingRecord:
    id: int
    title: str = ""
    description: str = ""
    address_old: str = ""
    address_new: str = ""
    province_old: str = ""
    district_old: str = ""
    province_new: str = ""
    ward_new: str = ""
    status: str = "draft"
    is_hidden: bool = False
    space_types: frozenset[str] = frozenset()
    location_type: str = ""
    suitable_for: frozenset[str] = frozenset()
    not_suitable_for: frozenset[str] = frozenset()
    amenities: frozenset[str] = frozenset()
    nearby_features: frozenset[str] = frozenset()
    time_slots: tuple[str, ...] = ()
    price_min: int | None = None
    price_max: int | None = None
    # Whatever the caller wants back for serialisation (ORM row, dict).
    source: Any = field(default=None, compare=False, repr=False)

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any], *, source: Any = None) -> "ListingRecord":
        return cls(
            id=int(row["id"]),
            title=str(row.get("title") or ""),
            description=str(row.get("description") or ""),
            address_old=str(row.get("address_old_admin") or ""),
            address_new=str(row.get("address_new_admin") or ""),
            province_old=str(row.get("province_old") or "").strip(),
            district_old=str(row.get("district_old") or "").strip(),
            province_new=str(row.get("province_new") or "").strip(),
            ward_new=str(row.get("ward_new") or "").strip(),
            status=str(row.get("status") or "draft").strip().lower(),
            is_hidden=bool(row.get("is_hidden")),
            space_types=_tag_set(row.get("space_type")),
            location_type=str(row.get("location_type") or "").strip(),
            suitable_for=_tag_set(row.get("suitable_for")),
            not_suitable_for=_tag_set(row.get("not_suitable_for")),
            amenities=_tag_set(row.get("amenities")),
            nearby_features=_tag_set(row.get("nearby_features")),
            time_slots=tuple(str(s) for s in (row.get("time_slots") or []) if s),
            price_min=_int_or_none(row.get("price_min")),
            price_max=_int_or_none(row.get("price_max")),
            source=row if source is None else source,
        )


@dataclass(frozen=True)
class FilterSpec:
    province: str = ""
    geo_system: str = GEO_OLD
    districts: frozenset[str] = frozenset()
    wards: frozenset[str] = frozenset()
    query: str = ""
    space_types: frozenset[str] = frozenset()
    location_types: frozenset[str] = frozenset()
    suitable_for: frozenset[str] = frozenset()
    not_suitable_for: frozenset[str] = frozenset()
    amenities: frozenset[str] = frozenset()
    nearby_features: frozenset[str] = frozenset()
    price_min: int | None = None
    price_max: int | None = None
    time_of_day: frozenset[str] = frozenset()
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    all_results: bool = False

    def validate(self) -> "FilterSpec":
        if self.geo_system not in GEO_SYSTEMS:
            raise SearchValidationError(f"Unknown geography system: {self.geo_system}")
        if not (self.province or "").strip():
            raise SearchValidationError("Province is required")
        if self.geo_system == GEO_NEW and not self.wards:
            raise SearchValidationError("Ward is required for the new administrative system")
        if self.page < 1:
            raise SearchValidationError("page must be >= 1")
        if self.page_size < 1:
            raise SearchValidationError("pageSize must be >= 1")
        return self

    @property
    def session_tokens(self) -> frozenset[str]:
        tokens = set()
        for label in self.time_of_day:
            if label in SESSION_LABELS:
                tokens.add(SESSION_LABELS[label])
            elif label in SESSION_TOKENS:
                tokens.add(label)
        return frozenset(tokens)


class SearchResult(NamedTuple):
    results: list[ListingRecord]
    total: int


def matches_geography(listing: ListingRecord, spec: FilterSpec) -> bool:
    province = spec.province.strip()
    if spec.geo_system == GEO_OLD:
        if listing.province_old != province:
            return False
        return not spec.districts or listing.district_old in spec.districts
    if listing.province_new != province:
        return False
    return not spec.wards or listing.ward_new in spec.wards


def matches_exclusions(listing: ListingRecord, spec: FilterSpec) -> bool:
    if spec.not_suitable_for and (listing.not_suitable_for & spec.not_suitable_for):
        return False
    # Only drop listings that rule out every purpose the user asked for.
    if spec.suitable_for and spec.suitable_for <= listing.not_suitable_for:
        return False
    return True


def matches_tags(listing: ListingRecord, spec: FilterSpec) -> bool:
    if spec.space_types and not (listing.space_types & spec.space_types):
        return False
    if spec.location_types and listing.location_type not in spec.location_types:
        return False
    if spec.amenities and not (listing.amenities & spec.amenities):
        return False
    if spec.nearby_features and not (listing.nearby_features & spec.nearby_features):
        return False
    return True


def matches_price(listing: ListingRecord, spec: FilterSpec) -> bool:
    # A missing bound on the listing never satisfies a comparison against it.
    if spec.price_min is not None:
        if listing.price_max is None or listing.price_max < spec.price_min:
            return False
    if spec.price_max is not None:
        if listing.price_min is None or listing.price_min > spec.price_max:
            return False
    return True


def matches_text(listing: ListingRecord, needle: str, geo_system: str) -> bool:
    if not needle:
        return True
    address = listing.address_old if geo_system == GEO_OLD else listing.address_new
    for haystack in (listing.title, listing.description, address):
        if needle in _compact(haystack):
            return True
    return False


def matches_sessions(listing: ListingRecord, tokens: frozenset[str]) -> bool:
    for slot in listing.time_slots:
        parts = [p.strip() for p in slot.split("|")[1:]]
        if any(p in tokens for p in parts):
            return True
    return False


def is_visible(listing: ListingRecord) -> bool:
    return listing.status in VISIBLE_STATUSES and not listing.is_hidden


def search(candidates: Iterable[ListingRecord], spec: FilterSpec) -> SearchResult:
    """Filter, rank and paginate ``candidates``.

    Geography validation happens in ``FilterSpec.validate``; this function is
    total over any FilterSpec and never raises for well-formed records.
    """
    needle = _compact(spec.query)
    tokens = spec.session_tokens
    filtered = []
    for listing in candidates:
        if not is_visible(listing):
            continue
        if not matches_geography(listing, spec):
            continue
        if not matches_exclusions(listing, spec):
            continue
        if not matches_tags(listing, spec):
            continue
        if not matches_price(listing, spec):
            continue
        if not matches_text(listing, needle, spec.geo_system):
            continue
        # Labels that map to nothing leave an empty token set, which matches nothing.
        if spec.time_of_day and not matches_sessions(listing, tokens):
            continue
        filtered.append(listing)

    ordered = sorted(filtered, key=lambda item: item.id, reverse=True)
    if spec.suitable_for:
        boosted = [item for item in ordered if item.suitable_for & spec.suitable_for]
        rest = [item for item in ordered if not (item.suitable_for & spec.suitable_for)]
        ordered = boosted + rest

    total = len(ordered)
    if spec.all_results:
        return SearchResult(ordered, total)
    page = max(1, int(spec.page))
    size = max(1, int(spec.page_size))
    offset = (page - 1) * size
    return SearchResult(ordered[offset:offset + size], total)
