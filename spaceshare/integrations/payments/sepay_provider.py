from __future__ import annotations

import base64
import hashlib
import hmac

import requests

from spaceshare.integrations.common import GatewayUnavailableError
from spaceshare.integrations.payments.base import CheckoutSession, GatewayOrder, PaymentsGateway


SANDBOX_API = "https://pgapi-sandbox.sepay.vn/v1"
PRODUCTION_API = "https://pgapi.sepay.vn/v1"
SANDBOX_CHECKOUT = "https://pay-sandbox.sepay.vn/v1/checkout/init"
PRODUCTION_CHECKOUT = "https://pay.sepay.vn/v1/checkout/init"

# Checkout fields covered by the signature, in signing order.
SIGNED_FIELDS = (
    "merchant",
    "operation",
    "payment_method",
    "order_amount",
    "currency",
    "order_invoice_number",
    "order_description",
    "customer_id",
    "success_url",
    "error_url",
    "cancel_url",
)


def _int_amount(raw) -> int:
    try:
        return int(float(raw or 0))
    except (TypeError, ValueError):
        return 0


class SepayPaymentsGateway(PaymentsGateway):
    name = "sepay"

    def __init__(self, merchant_id: str, secret_key: str, *, production: bool = False, timeout: int = 15):
        self.merchant_id = merchant_id
        self.secret_key = secret_key
        self.api_base = PRODUCTION_API if production else SANDBOX_API
        self.checkout_url = PRODUCTION_CHECKOUT if production else SANDBOX_CHECKOUT
        self.timeout = timeout

    def _sign(self, fields: dict) -> str:
        message = ",".join(f"{key}={fields[key]}" for key in SIGNED_FIELDS if key in fields)
        digest = hmac.new(self.secret_key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")

    def create_checkout(self, *, order_ref, amount, description, customer_id, success_url, error_url, cancel_url) -> CheckoutSession:
        fields = {
            "merchant": self.merchant_id,
            "operation": "PURCHASE",
            "payment_method": "BANK_TRANSFER",
            "order_amount": str(int(amount)),
            "currency": "VND",
            "order_invoice_number": order_ref,
            "order_description": description,
            "customer_id": str(customer_id),
            "success_url": success_url,
            "error_url": error_url,
            "cancel_url": cancel_url,
        }
        fields["signature"] = self._sign(fields)
        return CheckoutSession(checkout_url=self.checkout_url, fields=fields, order_ref=order_ref, provider=self.name)

    def check_order_status(self, order_ref: str) -> GatewayOrder | None:
        ref = (order_ref or "").strip()
        try:
            r = requests.get(
                f"{self.api_base}/order",
                params={"q": ref},
                auth=(self.merchant_id, self.secret_key),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise GatewayUnavailableError(f"SEPAY_UNREACHABLE:{exc}") from exc
        if r.status_code < 200 or r.status_code >= 300:
            raise GatewayUnavailableError(f"SEPAY_ORDER_LOOKUP_FAILED:HTTP {r.status_code}")
        try:
            j = r.json() if r.content else {}
        except ValueError as exc:
            raise GatewayUnavailableError("SEPAY_ORDER_LOOKUP_FAILED:invalid json") from exc

        data = j.get("data") if isinstance(j, dict) else None
        if isinstance(data, dict):
            data = [data]
        for item in data or []:
            if not isinstance(item, dict):
                continue
            if ref not in (str(item.get("order_invoice_number") or ""), str(item.get("order_id") or "")):
                continue
            return GatewayOrder(
                order_ref=str(item.get("order_invoice_number") or ref),
                status=str(item.get("order_status") or "").strip().upper(),
                amount=_int_amount(item.get("order_amount")),
                customer_id=str(item.get("customer_id") or "").strip(),
                gateway_order_id=str(item.get("order_id") or item.get("id") or ""),
                description=str(item.get("order_description") or ""),
                raw=item,
            )
        return None
