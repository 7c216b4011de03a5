from __future__ import annotations

from typing import Any

from sqlalchemy import func

from spaceshare.extensions import db
from spaceshare.models import Listing
from spaceshare.models.listing import SEARCHABLE_STATUSES
from spaceshare.services.search_engine import GEO_OLD, FilterSpec, ListingRecord, search


def _serialize_listing(row: Listing) -> dict[str, Any]:
    images = list(row.images or [])
    return {
        "id": int(row.id),
        "title": row.title or "",
        "description": row.description or "",
        "status": row.status,
        "is_hidden": bool(row.is_hidden),
        "space_type": list(row.space_type or []),
        "location_type": row.location_type or "",
        "address_old_admin": row.address_old_admin or "",
        "province_old": row.province_old or "",
        "district_old": row.district_old or "",
        "address_new_admin": row.address_new_admin or "",
        "province_new": row.province_new or "",
        "ward_new": row.ward_new or "",
        "price_min": row.price_min,
        "price_max": row.price_max,
        "suitable_for": list(row.suitable_for or []),
        "not_suitable_for": list(row.not_suitable_for or []),
        "amenities": list(row.amenities or []),
        "nearby_features": list(row.nearby_features or []),
        "time_slots": list(row.time_slots or []),
        "images": images,
        "cover_image": images[0] if images else "",
        "latitude": row.latitude,
        "longitude": row.longitude,
    }


def listing_to_record(row: Listing) -> ListingRecord:
    return ListingRecord.from_mapping(
        {
            "id": row.id,
            "title": row.title,
            "description": row.description,
            "address_old_admin": row.address_old_admin,
            "address_new_admin": row.address_new_admin,
            "province_old": row.province_old,
            "district_old": row.district_old,
            "province_new": row.province_new,
            "ward_new": row.ward_new,
            "status": row.status,
            "is_hidden": row.is_hidden,
            "space_type": row.space_type,
            "location_type": row.location_type,
            "suitable_for": row.suitable_for,
            "not_suitable_for": row.not_suitable_for,
            "amenities": row.amenities,
            "nearby_features": row.nearby_features,
            "time_slots": row.time_slots,
            "price_min": row.price_min,
            "price_max": row.price_max,
        },
        source=row,
    )


def candidate_query(spec: FilterSpec):
    """Province-scoped candidate query.

    Only portable scalar predicates are pushed down; tag overlap, text and
    session matching stay in the engine so SQLite and Postgres agree.
    """
    query = Listing.query.filter(
        Listing.status.in_(SEARCHABLE_STATUSES),
        Listing.is_hidden.is_(False),
    )
    if spec.geo_system == GEO_OLD:
        query = query.filter(func.trim(Listing.province_old) == spec.province.strip())
        if spec.districts:
            query = query.filter(func.trim(Listing.district_old).in_(sorted(spec.districts)))
    else:
        query = query.filter(func.trim(Listing.province_new) == spec.province.strip())
        if spec.wards:
            query = query.filter(func.trim(Listing.ward_new).in_(sorted(spec.wards)))
    if spec.location_types:
        query = query.filter(Listing.location_type.in_(sorted(spec.location_types)))
    if spec.price_min is not None:
        query = query.filter(Listing.price_max >= spec.price_min)
    if spec.price_max is not None:
        query = query.filter(Listing.price_min <= spec.price_max)
    return query.order_by(Listing.id.desc())


def search_listings(spec: FilterSpec) -> dict[str, Any]:
    """Run a validated FilterSpec against the store. Store errors propagate."""
    rows = candidate_query(spec).all()
    result = search((listing_to_record(row) for row in rows), spec)
    return {
        "listings": [_serialize_listing(item.source) for item in result.results],
        "total": int(result.total),
    }


def fetch_listing(listing_id: int) -> Listing | None:
    return db.session.get(Listing, int(listing_id))
