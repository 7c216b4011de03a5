from datetime import datetime

from spaceshare.extensions import db


class CoinExchangeConfig(db.Model):
    __tablename__ = "coin_exchange_config"

    # Single row, id=1.
    id = db.Column(db.Integer, primary_key=True)
    coins_per_1000 = db.Column(db.Integer, nullable=False, default=1)
    min_topup = db.Column(db.Integer, nullable=False, default=10000)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    updated_by = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "coins_per_1000": int(self.coins_per_1000),
            "min_topup": int(self.min_topup),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "updated_by": self.updated_by,
        }


class CoinTopupTier(db.Model):
    __tablename__ = "coin_topup_tiers"

    id = db.Column(db.Integer, primary_key=True)
    label = db.Column(db.String(80), nullable=False)
    min_amount = db.Column(db.Integer, nullable=False, index=True)
    coins_granted = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "label": self.label,
            "min_amount": int(self.min_amount),
            "coins_granted": int(self.coins_granted),
            "is_active": bool(self.is_active),
            "display_order": int(self.display_order or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
