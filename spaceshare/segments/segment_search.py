from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from spaceshare.extensions import db
from spaceshare.services.listing_search_service import search_listings
from spaceshare.services.search_engine import SearchValidationError
from spaceshare.services.search_filters import filter_spec_from_args

search_bp = Blueprint("search_bp", __name__, url_prefix="/api/search")


@search_bp.get("")
def search():
    try:
        spec = filter_spec_from_args(request.args)
    except SearchValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    try:
        payload = search_listings(spec)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("search_failed province=%s geo=%s", spec.province, spec.geo_system)
        return jsonify({"error": "Search failed"}), 500
    return jsonify(payload), 200
