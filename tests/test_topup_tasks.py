from __future__ import annotations

import os
import time
import unittest
from unittest.mock import patch

from spaceshare import create_app
from spaceshare.extensions import db
from spaceshare.integrations.payments import MockPaymentsGateway
from spaceshare.models import User, WebhookEvent
from spaceshare.services.coin_ledger_service import get_balance
from spaceshare.tasks.topup_tasks import _retry_countdown, process_sepay_webhook_task, reconcile_pending_topups


class TopupTasksTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._saved_env = {k: os.getenv(k) for k in ("SQLALCHEMY_DATABASE_URI", "PAYMENTS_PROVIDER", "SEPAY_WEBHOOK_QUEUE")}
        os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
        os.environ["PAYMENTS_PROVIDER"] = "mock"
        os.environ["SEPAY_WEBHOOK_QUEUE"] = "false"
        cls.app = create_app()
        cls.app.config.update(TESTING=True)
        with cls.app.app_context():
            db.create_all()
        cls.client = cls.app.test_client()

    @classmethod
    def tearDownClass(cls):
        MockPaymentsGateway.reset()
        for key, value in cls._saved_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value

    def setUp(self):
        MockPaymentsGateway.reset()

    def _captured_order(self) -> tuple[int, str]:
        with self.app.app_context():
            user = User(name="payer", email=f"payer-{time.time_ns()}@spaceshare.test")
            user.set_password("Passw0rd!")
            db.session.add(user)
            db.session.commit()
            user_id = int(user.id)
        order_ref = f"EXT{time.time_ns()}"
        MockPaymentsGateway.put_order(order_ref, status="CAPTURED", amount=20000, customer_id=str(user_id))
        return user_id, order_ref

    def test_webhook_is_enqueued_when_queue_enabled(self):
        _, order_ref = self._captured_order()
        with patch.dict(os.environ, {"SEPAY_WEBHOOK_QUEUE": "true"}):
            with patch("spaceshare.tasks.topup_tasks.process_sepay_webhook_task.delay") as mocked_delay:
                res = self.client.post("/api/webhooks/sepay", json={"order_invoice_number": order_ref})
        self.assertEqual(res.status_code, 200)
        self.assertTrue((res.get_json() or {}).get("queued"))
        mocked_delay.assert_called_once()
        self.assertEqual(mocked_delay.call_args.kwargs["payload"], {"order_invoice_number": order_ref})

    def test_enqueue_failure_falls_back_to_inline_processing(self):
        user_id, order_ref = self._captured_order()
        with patch.dict(os.environ, {"SEPAY_WEBHOOK_QUEUE": "true"}):
            with patch(
                "spaceshare.tasks.topup_tasks.process_sepay_webhook_task.delay",
                side_effect=ConnectionError("broker down"),
            ):
                res = self.client.post("/api/webhooks/sepay", json={"order_invoice_number": order_ref})
        self.assertEqual(res.status_code, 200)
        self.assertEqual((res.get_json() or {}).get("message"), "Processed successfully")
        with self.app.app_context():
            self.assertEqual(get_balance(user_id), 20000)

    def test_task_settles_and_finishes_event(self):
        user_id, order_ref = self._captured_order()
        with self.app.app_context():
            event = WebhookEvent(provider="sepay", event_id=f"sepay:{order_ref}:t", reference=order_ref, status="received")
            db.session.add(event)
            db.session.commit()
            event_id = int(event.id)

            body = process_sepay_webhook_task(payload={"order_invoice_number": order_ref}, event_id=event_id, trace_id="t-1")
            self.assertEqual(body.get("result"), "settled")
            self.assertEqual(get_balance(user_id), 20000)
            self.assertEqual(db.session.get(WebhookEvent, event_id).status, "settled")

            again = process_sepay_webhook_task(payload={"order_invoice_number": order_ref})
            self.assertEqual(again.get("result"), "already_processed")
            self.assertEqual(get_balance(user_id), 20000)

    def test_reconcile_task_returns_summary(self):
        with self.app.app_context():
            summary = reconcile_pending_topups(limit=10, trace_id="t-2")
        self.assertTrue(summary["ok"])
        self.assertIn("checked", summary)

    def test_retry_countdown_backs_off(self):
        self.assertEqual(_retry_countdown(0), 5)
        self.assertEqual(_retry_countdown(1), 10)
        self.assertEqual(_retry_countdown(3), 40)
        self.assertEqual(_retry_countdown(20), 900)


if __name__ == "__main__":
    unittest.main()
