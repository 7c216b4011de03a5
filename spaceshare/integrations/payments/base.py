from __future__ import annotations

from dataclasses import dataclass, field


CAPTURED = "CAPTURED"


@dataclass(frozen=True)
class GatewayOrder:
    order_ref: str
    status: str
    amount: int
    customer_id: str = ""
    gateway_order_id: str = ""
    description: str = ""
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_captured(self) -> bool:
        return (self.status or "").strip().upper() == CAPTURED


@dataclass(frozen=True)
class CheckoutSession:
    checkout_url: str
    fields: dict
    order_ref: str
    provider: str


class PaymentsGateway:
    name = "unknown"

    def create_checkout(
        self,
        *,
        order_ref: str,
        amount: int,
        description: str,
        customer_id: str,
        success_url: str,
        error_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        raise NotImplementedError

    def check_order_status(self, order_ref: str) -> GatewayOrder | None:
        """Return the gateway's view of ``order_ref``, or None when unknown.

        Transport and HTTP failures raise GatewayUnavailableError.
        """
        raise NotImplementedError
