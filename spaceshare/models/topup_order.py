from datetime import datetime

from spaceshare.extensions import db


class TopupOrder(db.Model):
    __tablename__ = "topup_orders"

    id = db.Column(db.Integer, primary_key=True)
    # Invoice number handed to the gateway; also the ledger reference.
    order_ref = db.Column(db.String(64), nullable=False, unique=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    gateway_status = db.Column(db.String(32), nullable=True)
    coins_credited = db.Column(db.Integer, nullable=True)
    settled_source = db.Column(db.String(24), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    settled_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "order_ref": self.order_ref,
            "user_id": int(self.user_id),
            "amount": int(self.amount),
            "status": self.status,
            "gateway_status": self.gateway_status or "",
            "coins_credited": self.coins_credited,
            "settled_source": self.settled_source or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "settled_at": self.settled_at.isoformat() if self.settled_at else None,
        }
