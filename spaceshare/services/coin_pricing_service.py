from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from spaceshare.extensions import db
from spaceshare.models import CoinExchangeConfig, CoinTopupTier
from spaceshare.utils.env import env_int


SOURCE_TIER = "tier"
SOURCE_BASE_RATE = "base_rate"

CONFIG_ROW_ID = 1
MIN_TIER_AMOUNT = 1000
MIN_TOPUP_FLOOR = 1000


class CoinPricingValidationError(ValueError):
    pass


@dataclass(frozen=True)
class CoinPricingConfig:
    coins_per_1000: int
    min_topup: int

    def to_dict(self) -> dict:
        return {"coins_per_1000": int(self.coins_per_1000), "min_topup": int(self.min_topup)}


@dataclass(frozen=True)
class PricingTier:
    id: int
    label: str
    min_amount: int
    coins_granted: int
    is_active: bool = True
    display_order: int = 0

    @classmethod
    def from_row(cls, row: Any) -> "PricingTier":
        if isinstance(row, Mapping):
            get = row.get
        else:
            def get(key, default=None):
                return getattr(row, key, default)
        return cls(
            id=int(get("id")),
            label=str(get("label") or ""),
            min_amount=int(get("min_amount") or 0),
            coins_granted=int(get("coins_granted") or 0),
            is_active=bool(get("is_active", True)),
            display_order=int(get("display_order") or 0),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "min_amount": self.min_amount,
            "coins_granted": self.coins_granted,
            "is_active": self.is_active,
            "display_order": self.display_order,
        }


@dataclass(frozen=True)
class CoinResolution:
    coins: int
    source: str
    tier_id: int | None
    base_rate_used: int

    def to_dict(self) -> dict:
        return {
            "coins": int(self.coins),
            "source": self.source,
            "tier_id": self.tier_id,
            "base_rate_used": int(self.base_rate_used),
        }


def base_coins(amount: int, coins_per_1000: int) -> int:
    return max(1, (int(amount) // 1000) * int(coins_per_1000))


def resolve_coins(amount: int, tiers: Iterable[PricingTier], base_rate: CoinPricingConfig | None) -> CoinResolution:
    """Pick whichever of the flat rate and the best qualifying tier pays more.

    A tier wins only when it grants strictly more than the flat rate. Without
    any pricing config, credit 1 coin per currency unit.
    """
    amount = int(amount)
    if base_rate is None:
        return CoinResolution(coins=amount, source=SOURCE_BASE_RATE, tier_id=None, base_rate_used=1)

    rate = int(base_rate.coins_per_1000)
    flat = base_coins(amount, rate)

    qualifying = [t for t in tiers if t.is_active and amount >= t.min_amount]
    if qualifying:
        best = max(qualifying, key=lambda t: (t.min_amount, t.coins_granted, -t.id))
        if best.coins_granted > flat:
            return CoinResolution(coins=best.coins_granted, source=SOURCE_TIER, tier_id=best.id, base_rate_used=rate)
    return CoinResolution(coins=flat, source=SOURCE_BASE_RATE, tier_id=None, base_rate_used=rate)


def default_min_topup() -> int:
    return env_int("DEFAULT_MIN_TOPUP", 10000, minimum=MIN_TOPUP_FLOOR)


def load_pricing_config() -> CoinPricingConfig | None:
    row = db.session.get(CoinExchangeConfig, CONFIG_ROW_ID)
    if row is None:
        return None
    return CoinPricingConfig(coins_per_1000=int(row.coins_per_1000), min_topup=int(row.min_topup))


def load_active_tiers() -> list[PricingTier]:
    rows = (
        CoinTopupTier.query.filter(CoinTopupTier.is_active.is_(True))
        .order_by(CoinTopupTier.display_order.asc(), CoinTopupTier.min_amount.asc())
        .all()
    )
    return [PricingTier.from_row(r) for r in rows]


def resolve_coins_for_amount(amount: int) -> CoinResolution:
    try:
        config = load_pricing_config()
        tiers = load_active_tiers() if config is not None else []
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning("coin_pricing_unavailable fallback=1:1 err=%s", exc)
        config, tiers = None, []
    if config is None:
        current_app.logger.warning("coin_pricing_missing fallback=1:1 amount=%s", amount)
    return resolve_coins(amount, tiers, config)


def get_topup_display_data() -> dict:
    try:
        config = load_pricing_config()
        tiers = load_active_tiers()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning("coin_pricing_display_unavailable err=%s", exc)
        config, tiers = None, []
    if config is None:
        config = CoinPricingConfig(coins_per_1000=1, min_topup=default_min_topup())
    return {"config": config.to_dict(), "tiers": [t.to_dict() for t in tiers]}


def effective_min_topup() -> int:
    try:
        config = load_pricing_config()
    except SQLAlchemyError:
        db.session.rollback()
        config = None
    return int(config.min_topup) if config is not None else default_min_topup()


def _positive_int(payload: Mapping, key: str, *, minimum: int, message: str) -> int:
    try:
        value = int(payload.get(key))
    except (TypeError, ValueError):
        raise CoinPricingValidationError(message)
    if value < minimum:
        raise CoinPricingValidationError(message)
    return value


def update_base_rate(payload: Mapping, *, admin_id: int | None = None) -> CoinExchangeConfig:
    coins = _positive_int(payload, "coins_per_1000", minimum=1, message="coins_per_1000 must be >= 1")
    min_topup = _positive_int(payload, "min_topup", minimum=MIN_TOPUP_FLOOR, message=f"min_topup must be >= {MIN_TOPUP_FLOOR}")
    row = db.session.get(CoinExchangeConfig, CONFIG_ROW_ID)
    if row is None:
        row = CoinExchangeConfig(id=CONFIG_ROW_ID)
        db.session.add(row)
    row.coins_per_1000 = coins
    row.min_topup = min_topup
    row.updated_by = admin_id
    db.session.commit()
    current_app.logger.info("coin_base_rate_updated coins_per_1000=%s min_topup=%s admin_id=%s", coins, min_topup, admin_id)
    return row


def _tier_fields(payload: Mapping, *, partial: bool) -> dict:
    fields = {}
    if "label" in payload or not partial:
        label = str(payload.get("label") or "").strip()
        if not label:
            raise CoinPricingValidationError("label is required")
        fields["label"] = label[:80]
    if "min_amount" in payload or not partial:
        fields["min_amount"] = _positive_int(payload, "min_amount", minimum=MIN_TIER_AMOUNT, message=f"min_amount must be >= {MIN_TIER_AMOUNT}")
    if "coins_granted" in payload or not partial:
        fields["coins_granted"] = _positive_int(payload, "coins_granted", minimum=1, message="coins_granted must be >= 1")
    if "display_order" in payload:
        try:
            fields["display_order"] = int(payload.get("display_order") or 0)
        except (TypeError, ValueError):
            raise CoinPricingValidationError("display_order must be an integer")
    if "is_active" in payload:
        fields["is_active"] = bool(payload.get("is_active"))
    return fields


def list_tiers() -> list[CoinTopupTier]:
    return CoinTopupTier.query.order_by(CoinTopupTier.display_order.asc(), CoinTopupTier.min_amount.asc()).all()


def create_tier(payload: Mapping) -> CoinTopupTier:
    fields = _tier_fields(payload, partial=False)
    row = CoinTopupTier(**fields)
    db.session.add(row)
    db.session.commit()
    current_app.logger.info("coin_tier_created tier_id=%s min_amount=%s coins=%s", row.id, row.min_amount, row.coins_granted)
    return row


def update_tier(tier_id: int, payload: Mapping) -> CoinTopupTier | None:
    row = db.session.get(CoinTopupTier, int(tier_id))
    if row is None:
        return None
    for key, value in _tier_fields(payload, partial=True).items():
        setattr(row, key, value)
    db.session.commit()
    return row


def delete_tier(tier_id: int) -> bool:
    row = db.session.get(CoinTopupTier, int(tier_id))
    if row is None:
        return False
    db.session.delete(row)
    db.session.commit()
    current_app.logger.info("coin_tier_deleted tier_id=%s", tier_id)
    return True


def toggle_tier(tier_id: int) -> CoinTopupTier | None:
    row = db.session.get(CoinTopupTier, int(tier_id))
    if row is None:
        return None
    row.is_active = not bool(row.is_active)
    db.session.commit()
    return row
