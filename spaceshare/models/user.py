from datetime import datetime

from werkzeug.security import generate_password_hash, check_password_hash

from spaceshare.extensions import db


ROLES = ("user", "admin")
LOCK_STATUSES = ("none", "soft", "hard")


class User(db.Model):
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint("coin_balance >= 0", name="ck_users_coin_balance_non_negative"),
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default="user")

    # Spendable coins; only the ledger service mutates this.
    coin_balance = db.Column(db.Integer, nullable=False, default=0)

    # Contact details revealed on unlock.
    phone = db.Column(db.String(32), nullable=True)
    zalo = db.Column(db.String(32), nullable=True)

    lock_status = db.Column(db.String(8), nullable=False, default="none")
    lock_updated_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def set_password(self, raw_password: str) -> None:
        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, raw_password: str) -> bool:
        return check_password_hash(self.password_hash, raw_password)

    @property
    def is_admin(self) -> bool:
        return (self.role or "").strip().lower() == "admin"

    @property
    def is_hard_locked(self) -> bool:
        return (self.lock_status or "none") == "hard"

    def contact_dict(self) -> dict:
        return {"phone": self.phone or "", "zalo": self.zalo or ""}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role or "user",
            "coin_balance": int(self.coin_balance or 0),
            "phone": self.phone or "",
            "zalo": self.zalo or "",
            "lock_status": self.lock_status or "none",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
