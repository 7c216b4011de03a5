from spaceshare.integrations.payments.base import CheckoutSession, GatewayOrder, PaymentsGateway
from spaceshare.integrations.payments.factory import build_payments_gateway, payment_health
from spaceshare.integrations.payments.mock_provider import MockPaymentsGateway

__all__ = [
    "CheckoutSession",
    "GatewayOrder",
    "MockPaymentsGateway",
    "PaymentsGateway",
    "build_payments_gateway",
    "payment_health",
]
