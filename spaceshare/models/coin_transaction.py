import json
from datetime import datetime

from spaceshare.extensions import db


TX_TOPUP = "topup"
TX_UNLOCK = "unlock"
TX_ADMIN_ADJUSTMENT = "admin_adjustment"
TX_REWARD = "reward"
TX_TYPES = (TX_TOPUP, TX_UNLOCK, TX_ADMIN_ADJUSTMENT, TX_REWARD)


class CoinTransaction(db.Model):
    """Append-only wallet ledger row.

    ``reference`` is the idempotency key for externally triggered credits; the
    unique constraint is what makes concurrent settlement of the same payment
    safe. Rows without an external reference leave it NULL.
    """

    __tablename__ = "coin_transactions"
    __table_args__ = (
        db.UniqueConstraint("reference", name="uq_coin_transactions_reference"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(24), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)

    reference = db.Column(db.String(128), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    @property
    def meta(self) -> dict:
        try:
            value = json.loads(self.metadata_json or "{}")
        except Exception:
            return {}
        return value if isinstance(value, dict) else {}

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "user_id": int(self.user_id),
            "type": self.type,
            "amount": int(self.amount),
            "balance_after": int(self.balance_after),
            "reference": self.reference,
            "metadata": self.meta,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
