from datetime import datetime

from spaceshare.extensions import db


LISTING_STATUSES = ("draft", "pending", "approved", "expired")
# Statuses a public search may surface.
SEARCHABLE_STATUSES = ("approved", "expired")


class Listing(db.Model):
    __tablename__ = "listings"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    owner = db.relationship("User")

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Tag sets are JSON arrays of strings.
    space_type = db.Column(db.JSON, nullable=False, default=list)
    location_type = db.Column(db.String(64), nullable=True, index=True)
    suitable_for = db.Column(db.JSON, nullable=False, default=list)
    not_suitable_for = db.Column(db.JSON, nullable=False, default=list)
    amenities = db.Column(db.JSON, nullable=False, default=list)
    nearby_features = db.Column(db.JSON, nullable=False, default=list)
    # Entries look like "<day context>|<session>".
    time_slots = db.Column(db.JSON, nullable=False, default=list)
    images = db.Column(db.JSON, nullable=False, default=list)

    price_min = db.Column(db.Integer, nullable=True)
    price_max = db.Column(db.Integer, nullable=True)

    # Pre-reform administrative geography: province / district.
    address_old_admin = db.Column(db.String(300), nullable=True)
    province_old = db.Column(db.String(120), nullable=True, index=True)
    district_old = db.Column(db.String(120), nullable=True)
    # Post-reform administrative geography: province / ward.
    address_new_admin = db.Column(db.String(300), nullable=True)
    province_new = db.Column(db.String(120), nullable=True, index=True)
    ward_new = db.Column(db.String(120), nullable=True)

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    is_hidden = db.Column(db.Boolean, nullable=False, default=False)
    is_locked = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def is_publicly_visible(self) -> bool:
        return (self.status in SEARCHABLE_STATUSES) and not bool(self.is_hidden)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "owner_id": int(self.owner_id),
            "title": self.title or "",
            "description": self.description or "",
            "space_type": list(self.space_type or []),
            "location_type": self.location_type or "",
            "suitable_for": list(self.suitable_for or []),
            "not_suitable_for": list(self.not_suitable_for or []),
            "amenities": list(self.amenities or []),
            "nearby_features": list(self.nearby_features or []),
            "time_slots": list(self.time_slots or []),
            "images": list(self.images or []),
            "price_min": self.price_min,
            "price_max": self.price_max,
            "address_old_admin": self.address_old_admin or "",
            "province_old": self.province_old or "",
            "district_old": self.district_old or "",
            "address_new_admin": self.address_new_admin or "",
            "province_new": self.province_new or "",
            "ward_new": self.ward_new or "",
            "latitude": self.latitude,
            "longitude": self.longitude,
            "status": self.status,
            "is_hidden": bool(self.is_hidden),
            "is_locked": bool(self.is_locked),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
