"""Wallet ledger mutations.

Every balance change and its ``coin_transactions`` row are written in one
database transaction. Balance arithmetic is done in SQL so concurrent writers
serialise on the user row instead of racing on a value read into Python.
"""
from __future__ import annotations

import json
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from spaceshare.extensions import db
from spaceshare.models import CoinTransaction, Listing, ListingUnlock, User
from spaceshare.models.coin_transaction import TX_ADMIN_ADJUSTMENT, TX_TOPUP, TX_TYPES, TX_UNLOCK
from spaceshare.utils.env import env_int


class LedgerError(RuntimeError):
    code = "LEDGER_ERROR"
    http_status = 400


class UserNotFoundError(LedgerError):
    code = "USER_NOT_FOUND"
    http_status = 404


class ListingUnavailableError(LedgerError):
    code = "LISTING_UNAVAILABLE"
    http_status = 404


class InsufficientCoinsError(LedgerError):
    code = "INSUFFICIENT_COINS"
    http_status = 402


class InvalidAdjustmentError(LedgerError):
    code = "INVALID_ADJUSTMENT"
    http_status = 400


@dataclass(frozen=True)
class SettlementResult:
    ok: bool
    already_processed: bool
    reference: str
    coins: int
    balance_after: int | None = None
    transaction_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "already_processed": self.already_processed,
            "reference": self.reference,
            "coins": int(self.coins),
            "balance_after": self.balance_after,
            "transaction_id": self.transaction_id,
        }


@dataclass(frozen=True)
class UnlockResult:
    listing_id: int
    coins_spent: int
    already_unlocked: bool
    balance_after: int
    contact: dict

    def to_dict(self) -> dict:
        return {
            "listing_id": self.listing_id,
            "coins_spent": self.coins_spent,
            "already_unlocked": self.already_unlocked,
            "balance_after": self.balance_after,
            "contact": dict(self.contact),
        }


def unlock_cost() -> int:
    return env_int("UNLOCK_COST_COINS", 10, minimum=0, maximum=100000)


def get_balance(user_id: int) -> int:
    value = db.session.query(User.coin_balance).filter(User.id == int(user_id)).scalar()
    if value is None:
        raise UserNotFoundError(f"user {user_id} not found")
    return int(value)


def list_transactions(user_id: int, *, limit: int = 50, offset: int = 0) -> list[CoinTransaction]:
    return (
        CoinTransaction.query.filter_by(user_id=int(user_id))
        .order_by(CoinTransaction.created_at.desc(), CoinTransaction.id.desc())
        .offset(max(0, int(offset)))
        .limit(max(1, min(200, int(limit))))
        .all()
    )


def find_settlement(reference: str) -> CoinTransaction | None:
    if not reference:
        return None
    return CoinTransaction.query.filter_by(reference=str(reference)).first()


def _reference_already_settled(reference: str) -> bool:
    return find_settlement(reference) is not None


def _apply_delta(user_id: int, delta: int, *, require_funds: bool) -> int | None:
    """Adjust the balance in SQL inside the open transaction.

    Returns the new balance, or None when the user is missing or, with
    ``require_funds``, the balance would go negative.
    """
    query = User.query.filter(User.id == int(user_id))
    if require_funds:
        query = query.filter(User.coin_balance + int(delta) >= 0)
    updated = query.update(
        {User.coin_balance: User.coin_balance + int(delta)},
        synchronize_session=False,
    )
    if not updated:
        return None
    return int(db.session.query(User.coin_balance).filter(User.id == int(user_id)).scalar())


def _build_ledger_entry(*, user_id: int, tx_type: str, amount: int, balance_after: int, reference: str | None, metadata: dict | None) -> CoinTransaction:
    return CoinTransaction(
        user_id=int(user_id),
        type=tx_type,
        amount=int(amount),
        balance_after=int(balance_after),
        reference=reference or None,
        metadata_json=json.dumps(metadata or {}, ensure_ascii=False, default=str),
    )


def settle_topup(user_id: int, amount: int, coins: int, reference: str, metadata: dict | None = None) -> SettlementResult:
    """Credit ``coins`` for a captured payment at most once per ``reference``.

    A prior ledger row with the same reference, or a unique-constraint
    violation from a concurrent settler, yields ``already_processed``.
    Any other failure rolls back the balance change and propagates.
    """
    reference = str(reference or "").strip()
    if not reference:
        raise LedgerError("settlement requires a reference")
    coins = int(coins)

    if _reference_already_settled(reference):
        current_app.logger.info("topup_already_processed reference=%s user_id=%s", reference, user_id)
        return SettlementResult(ok=True, already_processed=True, reference=reference, coins=coins)

    meta = dict(metadata or {})
    meta.setdefault("amount", int(amount))
    try:
        balance_after = _apply_delta(user_id, coins, require_funds=False)
        if balance_after is None:
            raise UserNotFoundError(f"user {user_id} not found")
        entry = _build_ledger_entry(
            user_id=user_id,
            tx_type=TX_TOPUP,
            amount=coins,
            balance_after=balance_after,
            reference=reference,
            metadata=meta,
        )
        db.session.add(entry)
        db.session.flush()
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        if _reference_already_settled(reference):
            current_app.logger.info("topup_settle_race_lost reference=%s user_id=%s", reference, user_id)
            return SettlementResult(ok=True, already_processed=True, reference=reference, coins=coins)
        raise
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "topup_settled reference=%s user_id=%s coins=%s balance_after=%s",
        reference,
        user_id,
        coins,
        balance_after,
    )
    return SettlementResult(
        ok=True,
        already_processed=False,
        reference=reference,
        coins=coins,
        balance_after=balance_after,
        transaction_id=int(entry.id),
    )


def has_unlocked(user_id: int, listing_id: int) -> bool:
    return (
        ListingUnlock.query.filter_by(user_id=int(user_id), listing_id=int(listing_id)).first()
        is not None
    )


def unlock_listing_contact(user_id: int, listing_id: int) -> UnlockResult:
    """Spend coins to reveal a listing owner's contact details.

    Owners and users who already unlocked the listing are not charged again.
    """
    listing = db.session.get(Listing, int(listing_id))
    if listing is None or not listing.is_publicly_visible or listing.is_locked:
        raise ListingUnavailableError(f"listing {listing_id} is not available")
    owner = db.session.get(User, int(listing.owner_id))
    contact = owner.contact_dict() if owner is not None else {"phone": "", "zalo": ""}

    if int(listing.owner_id) == int(user_id) or has_unlocked(user_id, listing_id):
        return UnlockResult(
            listing_id=int(listing_id),
            coins_spent=0,
            already_unlocked=True,
            balance_after=get_balance(user_id),
            contact=contact,
        )

    cost = unlock_cost()
    try:
        balance_after = _apply_delta(user_id, -cost, require_funds=True)
        if balance_after is None:
            db.session.rollback()
            if db.session.get(User, int(user_id)) is None:
                raise UserNotFoundError(f"user {user_id} not found")
            raise InsufficientCoinsError(f"unlocking requires {cost} coins")
        db.session.add(ListingUnlock(user_id=int(user_id), listing_id=int(listing_id), coins_spent=cost))
        db.session.add(
            _build_ledger_entry(
                user_id=user_id,
                tx_type=TX_UNLOCK,
                amount=-cost,
                balance_after=balance_after,
                reference=None,
                metadata={"listing_id": int(listing_id)},
            )
        )
        db.session.flush()
        db.session.commit()
    except IntegrityError:
        # A concurrent request unlocked the same listing first.
        db.session.rollback()
        return UnlockResult(
            listing_id=int(listing_id),
            coins_spent=0,
            already_unlocked=True,
            balance_after=get_balance(user_id),
            contact=contact,
        )
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("listing_unlocked listing_id=%s user_id=%s cost=%s", listing_id, user_id, cost)
    return UnlockResult(
        listing_id=int(listing_id),
        coins_spent=cost,
        already_unlocked=False,
        balance_after=balance_after,
        contact=contact,
    )


def admin_adjust_balance(user_id: int, amount: int, *, note: str = "", admin_id: int | None = None) -> CoinTransaction:
    try:
        amount = int(amount)
    except (TypeError, ValueError):
        raise InvalidAdjustmentError("amount must be an integer")
    if amount == 0:
        raise InvalidAdjustmentError("amount must be non-zero")

    try:
        balance_after = _apply_delta(user_id, amount, require_funds=True)
        if balance_after is None:
            db.session.rollback()
            if db.session.get(User, int(user_id)) is None:
                raise UserNotFoundError(f"user {user_id} not found")
            raise InvalidAdjustmentError("adjustment would make the balance negative")
        entry = _build_ledger_entry(
            user_id=user_id,
            tx_type=TX_ADMIN_ADJUSTMENT,
            amount=amount,
            balance_after=balance_after,
            reference=None,
            metadata={"note": (note or "").strip()[:500], "admin_id": admin_id},
        )
        db.session.add(entry)
        db.session.flush()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "admin_coin_adjustment user_id=%s amount=%s balance_after=%s admin_id=%s",
        user_id,
        amount,
        balance_after,
        admin_id,
    )
    return entry


def list_unlocked_listings(user_id: int, *, limit: int = 50, offset: int = 0) -> list[tuple[ListingUnlock, Listing]]:
    """The caller's unlocks, newest first, joined to their listings."""
    return (
        db.session.query(ListingUnlock, Listing)
        .join(Listing, Listing.id == ListingUnlock.listing_id)
        .filter(ListingUnlock.user_id == int(user_id))
        .order_by(ListingUnlock.created_at.desc(), ListingUnlock.id.desc())
        .offset(max(0, int(offset)))
        .limit(max(1, min(200, int(limit))))
        .all()
    )


def wallet_totals() -> dict:
    users, balance = db.session.query(func.count(User.id), func.coalesce(func.sum(User.coin_balance), 0)).one()
    return {"users": int(users or 0), "total_balance": int(balance or 0)}


def ledger_query(*, user_id: int | None = None, tx_type: str = ""):
    if tx_type and tx_type not in TX_TYPES:
        raise LedgerError(f"unknown transaction type {tx_type}")
    query = CoinTransaction.query
    if user_id is not None:
        query = query.filter(CoinTransaction.user_id == int(user_id))
    if tx_type:
        query = query.filter(CoinTransaction.type == tx_type)
    return query


def ledger_totals(query) -> dict:
    credits, debits, count = query.with_entities(
        func.coalesce(func.sum(case((CoinTransaction.amount > 0, CoinTransaction.amount), else_=0)), 0),
        func.coalesce(func.sum(case((CoinTransaction.amount < 0, CoinTransaction.amount), else_=0)), 0),
        func.count(CoinTransaction.id),
    ).one()
    return {"count": int(count or 0), "credits": int(credits or 0), "debits": int(debits or 0), "net": int(credits or 0) + int(debits or 0)}
