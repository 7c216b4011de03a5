from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from spaceshare.extensions import db
from spaceshare.integrations.payments import GatewayOrder, PaymentsGateway, build_payments_gateway
from spaceshare.models import TopupOrder, User
from spaceshare.services.coin_ledger_service import LedgerError, find_settlement, settle_topup
from spaceshare.services.coin_pricing_service import effective_min_topup, resolve_coins_for_amount


SOURCE_WEBHOOK = "webhook"
SOURCE_CLIENT_VERIFY = "client_verify"
SOURCE_RECONCILE = "reconcile"

# Gateway statuses after which an order can never be captured.
GATEWAY_FINAL_STATUSES = frozenset({"CANCELLED", "CANCELED", "FAILED", "EXPIRED", "VOIDED", "DECLINED", "REFUNDED"})


class TopupOrderStatus:
    PENDING = "pending"
    CAPTURED = "captured"
    SETTLED = "settled"
    IGNORED = "ignored"

    ALLOWED = {
        PENDING: {PENDING, CAPTURED, IGNORED},
        CAPTURED: {CAPTURED, SETTLED},
        SETTLED: {SETTLED},
        IGNORED: {IGNORED, CAPTURED},
    }


class TopupError(RuntimeError):
    code = "TOPUP_ERROR"
    http_status = 400


class TopupValidationError(TopupError):
    code = "TOPUP_INVALID"
    http_status = 400


class OrderNotFoundError(TopupError):
    code = "ORDER_NOT_FOUND"
    http_status = 404


class OrderOwnershipError(TopupError):
    code = "ORDER_OWNER_MISMATCH"
    http_status = 403


class MissingCustomerError(TopupError):
    code = "ORDER_CUSTOMER_MISSING"
    http_status = 400


class TopupOutcome:
    SETTLED = "settled"
    ALREADY_PROCESSED = "already_processed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class TopupResult:
    outcome: str
    order_ref: str
    gateway_status: str = ""
    user_id: int | None = None
    coins: int = 0
    balance_after: int | None = None
    pricing: dict | None = None

    def to_dict(self) -> dict:
        return {
            "result": self.outcome,
            "order_ref": self.order_ref,
            "gateway_status": self.gateway_status,
            "user_id": self.user_id,
            "coins": int(self.coins),
            "balance_after": self.balance_after,
            "pricing": self.pricing,
        }


def transition_order(order: TopupOrder, to_state: str, *, gateway_status: str = "") -> bool:
    """Move ``order`` to ``to_state`` if allowed. Caller commits."""
    current = order.status or TopupOrderStatus.PENDING
    if to_state not in TopupOrderStatus.ALLOWED.get(current, set()):
        current_app.logger.warning(
            "topup_order_transition_rejected order_ref=%s from=%s to=%s",
            order.order_ref,
            current,
            to_state,
        )
        return False
    order.status = to_state
    if gateway_status:
        order.gateway_status = gateway_status
    return True


def _new_order_ref() -> str:
    return f"SP{int(time.time() * 1000) % 10**10:010d}{secrets.randbelow(100):02d}"


def create_topup_request(user: User, amount, *, base_url: str, gateway: PaymentsGateway | None = None) -> dict:
    try:
        amount = int(amount)
    except (TypeError, ValueError):
        raise TopupValidationError("amount must be an integer")
    minimum = effective_min_topup()
    if amount < minimum:
        raise TopupValidationError(f"Minimum topup is {minimum}")

    gateway = gateway or build_payments_gateway()
    order = None
    for _ in range(5):
        order = TopupOrder(order_ref=_new_order_ref(), user_id=int(user.id), amount=amount, status=TopupOrderStatus.PENDING)
        db.session.add(order)
        try:
            db.session.commit()
            break
        except IntegrityError:
            db.session.rollback()
            order = None
    if order is None:
        raise TopupError("could not allocate an order reference")

    base = (base_url or "").rstrip("/")
    checkout = gateway.create_checkout(
        order_ref=order.order_ref,
        amount=amount,
        description=f"Nap_xu_{amount}_VND",
        customer_id=str(user.id),
        success_url=f"{base}/dashboard/coins/topup/success?order={order.order_ref}",
        error_url=f"{base}/dashboard/coins/topup/error?order={order.order_ref}",
        cancel_url=f"{base}/dashboard/coins/topup?cancelled=1",
    )
    current_app.logger.info("topup_order_created order_ref=%s user_id=%s amount=%s", order.order_ref, user.id, amount)
    return {
        "order": order.to_dict(),
        "checkout_url": checkout.checkout_url,
        "fields": checkout.fields,
        "provider": checkout.provider,
    }


def _owner_id(gateway_order: GatewayOrder, local: TopupOrder | None) -> int:
    raw = (gateway_order.customer_id or "").strip()
    if raw:
        try:
            owner = int(raw)
        except ValueError:
            raise MissingCustomerError(f"order {gateway_order.order_ref} has an unusable customer id")
        if local is not None and int(local.user_id) != owner:
            raise OrderOwnershipError(f"order {gateway_order.order_ref} owner mismatch")
        return owner
    if local is not None:
        return int(local.user_id)
    raise MissingCustomerError(f"order {gateway_order.order_ref} has no customer id")


def process_gateway_order(
    order_ref: str,
    *,
    source: str,
    caller_user_id: int | None = None,
    gateway: PaymentsGateway | None = None,
) -> TopupResult:
    """Drive one topup order from the gateway's current status.

    Shared by the webhook, client verification and reconciliation. Gateway
    failures propagate; nothing is credited unless the gateway says CAPTURED.
    """
    order_ref = (order_ref or "").strip()
    if not order_ref:
        raise OrderNotFoundError("order reference is required")

    gateway = gateway or build_payments_gateway()
    gateway_order = gateway.check_order_status(order_ref)
    if gateway_order is None:
        raise OrderNotFoundError(f"order {order_ref} not found at gateway")

    ref = gateway_order.order_ref or order_ref
    local = TopupOrder.query.filter_by(order_ref=ref).first()
    status = (gateway_order.status or "").strip().upper()

    # Callers only ever see their own orders, captured or not.
    owner_id = None
    if caller_user_id is not None or gateway_order.is_captured:
        owner_id = _owner_id(gateway_order, local)
    if caller_user_id is not None and int(caller_user_id) != owner_id:
        raise OrderOwnershipError(f"order {ref} does not belong to the caller")

    if not gateway_order.is_captured:
        if local is not None and local.status == TopupOrderStatus.PENDING:
            local.gateway_status = status
            if status in GATEWAY_FINAL_STATUSES:
                transition_order(local, TopupOrderStatus.IGNORED, gateway_status=status)
            db.session.commit()
        current_app.logger.info("topup_order_ignored order_ref=%s gateway_status=%s source=%s", ref, status, source)
        return TopupResult(outcome=TopupOutcome.IGNORED, order_ref=ref, gateway_status=status)

    if local is not None and local.status in (TopupOrderStatus.PENDING, TopupOrderStatus.IGNORED):
        transition_order(local, TopupOrderStatus.CAPTURED, gateway_status=status)
        db.session.commit()
    if local is not None and int(local.amount) != int(gateway_order.amount):
        current_app.logger.warning(
            "topup_amount_mismatch order_ref=%s requested=%s captured=%s",
            ref,
            local.amount,
            gateway_order.amount,
        )

    resolution = resolve_coins_for_amount(gateway_order.amount)
    settlement = settle_topup(
        owner_id,
        gateway_order.amount,
        resolution.coins,
        ref,
        metadata={
            "gateway_order_id": gateway_order.gateway_order_id,
            "description": gateway_order.description,
            "source": source,
            "pricing": resolution.to_dict(),
        },
    )

    local = TopupOrder.query.filter_by(order_ref=ref).first()
    if local is not None and local.status != TopupOrderStatus.SETTLED:
        if transition_order(local, TopupOrderStatus.SETTLED, gateway_status=status):
            local.coins_credited = resolution.coins
            local.settled_source = source
            local.settled_at = datetime.utcnow()
            db.session.commit()

    outcome = TopupOutcome.ALREADY_PROCESSED if settlement.already_processed else TopupOutcome.SETTLED
    return TopupResult(
        outcome=outcome,
        order_ref=ref,
        gateway_status=status,
        user_id=owner_id,
        coins=resolution.coins,
        balance_after=settlement.balance_after,
        pricing=resolution.to_dict(),
    )


def verify_topup(user: User, order_ref: str, *, gateway: PaymentsGateway | None = None) -> TopupResult:
    """Client-initiated settlement check for the caller's own order."""
    order_ref = (order_ref or "").strip()
    if not order_ref:
        raise TopupValidationError("order_id is required")
    existing = find_settlement(order_ref)
    if existing is not None:
        if int(existing.user_id) != int(user.id):
            raise OrderOwnershipError(f"order {order_ref} does not belong to the caller")
        return TopupResult(
            outcome=TopupOutcome.ALREADY_PROCESSED,
            order_ref=order_ref,
            user_id=int(user.id),
            coins=int(existing.amount),
            balance_after=int(existing.balance_after),
            pricing=existing.meta.get("pricing"),
        )
    return process_gateway_order(
        order_ref,
        source=SOURCE_CLIENT_VERIFY,
        caller_user_id=int(user.id),
        gateway=gateway,
    )


def reconcile_pending_orders(*, limit: int = 50, min_age_seconds: int = 60, max_age_hours: int = 24, gateway: PaymentsGateway | None = None) -> dict:
    now = datetime.utcnow()
    rows = (
        TopupOrder.query.filter(
            TopupOrder.status.in_((TopupOrderStatus.PENDING, TopupOrderStatus.CAPTURED)),
            TopupOrder.created_at <= now - timedelta(seconds=min_age_seconds),
            TopupOrder.created_at >= now - timedelta(hours=max_age_hours),
        )
        .order_by(TopupOrder.created_at.asc())
        .limit(max(1, int(limit)))
        .all()
    )
    gateway = gateway or build_payments_gateway()
    summary = {"checked": 0, "settled": 0, "ignored": 0, "already_processed": 0, "errors": 0}
    for order_ref in [r.order_ref for r in rows]:
        summary["checked"] += 1
        try:
            result = process_gateway_order(order_ref, source=SOURCE_RECONCILE, gateway=gateway)
        except (TopupError, LedgerError) as exc:
            db.session.rollback()
            summary["errors"] += 1
            current_app.logger.warning("topup_reconcile_failed order_ref=%s err=%s", order_ref, exc)
            continue
        summary[result.outcome] += 1
    return summary
