from datetime import datetime

from spaceshare.extensions import db


class ListingUnlock(db.Model):
    __tablename__ = "listing_unlocks"
    __table_args__ = (
        db.UniqueConstraint("user_id", "listing_id", name="uq_listing_unlocks_user_listing"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False, index=True)
    coins_spent = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "user_id": int(self.user_id),
            "listing_id": int(self.listing_id),
            "coins_spent": int(self.coins_spent or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
