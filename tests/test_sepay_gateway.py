from __future__ import annotations

import base64
import hashlib
import hmac
import os
import unittest
from unittest.mock import MagicMock, patch

import requests

from spaceshare.integrations.common import GatewayUnavailableError, IntegrationDisabledError, IntegrationMisconfiguredError
from spaceshare.integrations.payments import MockPaymentsGateway, build_payments_gateway
from spaceshare.integrations.payments.sepay_provider import SANDBOX_API, SepayPaymentsGateway


def _response(status_code=200, payload=None, content=b"{}"):
    res = MagicMock()
    res.status_code = status_code
    res.content = content
    res.json.return_value = payload if payload is not None else {}
    return res


class SepayGatewayTestCase(unittest.TestCase):
    def setUp(self):
        self.gateway = SepayPaymentsGateway("MERCHANT_1", "secret", timeout=5)

    def test_checkout_fields_are_signed(self):
        session = self.gateway.create_checkout(
            order_ref="SP123",
            amount=50000,
            description="Nap_xu_50000_VND",
            customer_id="7",
            success_url="https://app/s",
            error_url="https://app/e",
            cancel_url="https://app/c",
        )
        fields = session.fields
        message = ",".join(
            [
                "merchant=MERCHANT_1",
                "operation=PURCHASE",
                "payment_method=BANK_TRANSFER",
                "order_amount=50000",
                "currency=VND",
                "order_invoice_number=SP123",
                "order_description=Nap_xu_50000_VND",
                "customer_id=7",
                "success_url=https://app/s",
                "error_url=https://app/e",
                "cancel_url=https://app/c",
            ]
        )
        expected = base64.b64encode(hmac.new(b"secret", message.encode("utf-8"), hashlib.sha256).digest()).decode("ascii")
        self.assertEqual(fields["signature"], expected)
        self.assertEqual(session.provider, "sepay")
        self.assertIn("sandbox", session.checkout_url)

    def test_order_lookup_maps_captured_order(self):
        payload = {
            "data": [
                {
                    "order_id": "g-1",
                    "order_invoice_number": "SP123",
                    "order_status": "captured",
                    "order_amount": "120000.00",
                    "customer_id": "7",
                    "order_description": "Nap_xu_120000_VND",
                }
            ]
        }
        with patch("spaceshare.integrations.payments.sepay_provider.requests.get", return_value=_response(payload=payload)) as get:
            order = self.gateway.check_order_status("SP123")
        self.assertTrue(order.is_captured)
        self.assertEqual((order.amount, order.customer_id, order.gateway_order_id), (120000, "7", "g-1"))
        args, kwargs = get.call_args
        self.assertEqual(args[0], f"{SANDBOX_API}/order")
        self.assertEqual(kwargs["params"], {"q": "SP123"})
        self.assertEqual(kwargs["timeout"], 5)

    def test_order_lookup_unknown_order(self):
        payload = {"data": [{"order_invoice_number": "SP999", "order_status": "CAPTURED"}]}
        with patch("spaceshare.integrations.payments.sepay_provider.requests.get", return_value=_response(payload=payload)):
            self.assertIsNone(self.gateway.check_order_status("SP123"))

    def test_transport_and_http_failures_are_unavailable(self):
        with patch(
            "spaceshare.integrations.payments.sepay_provider.requests.get",
            side_effect=requests.ConnectionError("refused"),
        ):
            with self.assertRaises(GatewayUnavailableError):
                self.gateway.check_order_status("SP123")
        with patch("spaceshare.integrations.payments.sepay_provider.requests.get", return_value=_response(status_code=503)):
            with self.assertRaises(GatewayUnavailableError):
                self.gateway.check_order_status("SP123")
        broken = _response()
        broken.json.side_effect = ValueError("no json")
        with patch("spaceshare.integrations.payments.sepay_provider.requests.get", return_value=broken):
            with self.assertRaises(GatewayUnavailableError):
                self.gateway.check_order_status("SP123")


class PaymentsFactoryTestCase(unittest.TestCase):
    def test_provider_selection(self):
        with patch.dict(os.environ, {"PAYMENTS_PROVIDER": "mock"}):
            self.assertIsInstance(build_payments_gateway(), MockPaymentsGateway)
        with patch.dict(os.environ, {"PAYMENTS_PROVIDER": "disabled"}):
            with self.assertRaises(IntegrationDisabledError):
                build_payments_gateway()
        with patch.dict(os.environ, {"PAYMENTS_PROVIDER": "paypal"}):
            with self.assertRaises(IntegrationMisconfiguredError):
                build_payments_gateway()
        with patch.dict(os.environ, {"PAYMENTS_PROVIDER": "sepay", "SEPAY_MERCHANT_ID": "", "SEPAY_SECRET_KEY": ""}):
            with self.assertRaises(IntegrationMisconfiguredError):
                build_payments_gateway()
        with patch.dict(
            os.environ,
            {"PAYMENTS_PROVIDER": "sepay", "SEPAY_MERCHANT_ID": "M", "SEPAY_SECRET_KEY": "S", "SEPAY_ENV": "production"},
        ):
            gateway = build_payments_gateway()
        self.assertIsInstance(gateway, SepayPaymentsGateway)
        self.assertNotIn("sandbox", gateway.api_base)


if __name__ == "__main__":
    unittest.main()
