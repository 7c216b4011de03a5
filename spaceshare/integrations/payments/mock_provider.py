from __future__ import annotations

import threading

from spaceshare.integrations.payments.base import CheckoutSession, GatewayOrder, PaymentsGateway


class MockPaymentsGateway(PaymentsGateway):
    """In-process order book for local development and tests.

    Orders are shared across instances so a checkout created in one request
    can be captured and then observed from another.
    """

    name = "mock"

    _lock = threading.Lock()
    _orders: dict[str, GatewayOrder] = {}

    @classmethod
    def put_order(cls, order_ref: str, *, status: str, amount: int, customer_id: str = "", description: str = "") -> GatewayOrder:
        order = GatewayOrder(
            order_ref=order_ref,
            status=status,
            amount=int(amount),
            customer_id=str(customer_id or ""),
            gateway_order_id=f"mock-{order_ref}",
            description=description,
            raw={"order_invoice_number": order_ref, "order_status": status},
        )
        with cls._lock:
            cls._orders[order_ref] = order
        return order

    @classmethod
    def set_status(cls, order_ref: str, status: str) -> GatewayOrder | None:
        with cls._lock:
            order = cls._orders.get(order_ref)
            if order is None:
                return None
            updated = GatewayOrder(
                order_ref=order.order_ref,
                status=status,
                amount=order.amount,
                customer_id=order.customer_id,
                gateway_order_id=order.gateway_order_id,
                description=order.description,
                raw={**order.raw, "order_status": status},
            )
            cls._orders[order_ref] = updated
            return updated

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._orders.clear()

    def create_checkout(self, *, order_ref, amount, description, customer_id, success_url, error_url, cancel_url) -> CheckoutSession:
        self.put_order(order_ref, status="PENDING", amount=amount, customer_id=customer_id, description=description)
        return CheckoutSession(
            checkout_url=f"https://example.com/mock/checkout?order={order_ref}",
            fields={
                "order_invoice_number": order_ref,
                "order_amount": int(amount),
                "order_description": description,
                "customer_id": str(customer_id),
                "success_url": success_url,
                "error_url": error_url,
                "cancel_url": cancel_url,
            },
            order_ref=order_ref,
            provider=self.name,
        )

    def check_order_status(self, order_ref: str) -> GatewayOrder | None:
        with self._lock:
            return self._orders.get(order_ref)
