from __future__ import annotations

from flask import Blueprint, jsonify, request

from spaceshare.services.coin_ledger_service import LedgerError, has_unlocked, list_unlocked_listings, unlock_listing_contact
from spaceshare.services.listing_search_service import fetch_listing
from spaceshare.utils.auth_context import current_user, is_admin, login_required

listings_bp = Blueprint("listings_bp", __name__, url_prefix="/api/listings")


@listings_bp.get("/unlocked")
@login_required
def unlocked_listings():
    user = current_user()
    try:
        limit = int(request.args.get("limit") or 50)
        offset = int(request.args.get("offset") or 0)
    except ValueError:
        return jsonify({"ok": False, "error": "INVALID_PAGINATION", "message": "limit and offset must be integers"}), 400
    items = []
    for unlock, listing in list_unlocked_listings(int(user.id), limit=limit, offset=offset):
        owner = listing.owner
        items.append(
            {
                **unlock.to_dict(),
                "listing": listing.to_dict(),
                "contact": owner.contact_dict() if owner is not None else {"phone": "", "zalo": ""},
            }
        )
    return jsonify({"ok": True, "items": items}), 200


@listings_bp.get("/<int:listing_id>")
def listing_detail(listing_id: int):
    listing = fetch_listing(listing_id)
    if listing is None:
        return jsonify({"ok": False, "error": "NOT_FOUND", "message": "Listing not found"}), 404
    user = current_user()
    is_owner = user is not None and int(user.id) == int(listing.owner_id)
    if not (listing.is_publicly_visible or is_owner or is_admin(user)):
        return jsonify({"ok": False, "error": "NOT_FOUND", "message": "Listing not found"}), 404

    unlocked = bool(user is not None and (is_owner or has_unlocked(int(user.id), listing_id)))
    body = {"ok": True, "listing": listing.to_dict(), "unlocked": unlocked}
    if unlocked:
        owner = listing.owner
        body["contact"] = owner.contact_dict() if owner is not None else {"phone": "", "zalo": ""}
    return jsonify(body), 200


@listings_bp.post("/<int:listing_id>/unlock")
@login_required
def unlock_contact(listing_id: int):
    user = current_user()
    try:
        result = unlock_listing_contact(int(user.id), listing_id)
    except LedgerError as exc:
        return jsonify({"ok": False, "error": exc.code, "message": str(exc)}), exc.http_status
    return jsonify({"ok": True, **result.to_dict()}), 200
