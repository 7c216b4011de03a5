from __future__ import annotations

from spaceshare.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from spaceshare.integrations.payments.base import PaymentsGateway
from spaceshare.integrations.payments.mock_provider import MockPaymentsGateway
from spaceshare.integrations.payments.sepay_provider import SepayPaymentsGateway
from spaceshare.utils.env import env_int, env_str


def build_payments_gateway() -> PaymentsGateway:
    provider = env_str("PAYMENTS_PROVIDER", "mock").lower()

    if provider in ("disabled", "off", "none"):
        raise IntegrationDisabledError("INTEGRATION_DISABLED:payments")

    if provider == "mock":
        return MockPaymentsGateway()

    if provider != "sepay":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:payments_provider={provider}")

    merchant_id = env_str("SEPAY_MERCHANT_ID")
    secret_key = env_str("SEPAY_SECRET_KEY")
    if not merchant_id or not secret_key:
        raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:missing SEPAY_MERCHANT_ID/SEPAY_SECRET_KEY")

    return SepayPaymentsGateway(
        merchant_id=merchant_id,
        secret_key=secret_key,
        production=env_str("SEPAY_ENV", "sandbox").lower() == "production",
        timeout=env_int("SEPAY_TIMEOUT_SECONDS", 15, minimum=1, maximum=120),
    )


def payment_health() -> dict:
    provider = env_str("PAYMENTS_PROVIDER", "mock").lower()
    missing = []
    if provider == "sepay":
        for key in ("SEPAY_MERCHANT_ID", "SEPAY_SECRET_KEY"):
            if not env_str(key):
                missing.append(key)
    if provider in ("disabled", "off", "none"):
        status = "disabled"
    elif missing or provider not in ("mock", "sepay"):
        status = "misconfigured"
    else:
        status = "configured"
    return {"status": status, "provider": provider, "missing": missing}
