from __future__ import annotations

import os
import time
import unittest
from unittest.mock import patch

from spaceshare import create_app
from spaceshare.extensions import db
from spaceshare.models import CoinTransaction, Listing, ListingUnlock, User
from spaceshare.services.coin_ledger_service import (
    InsufficientCoinsError,
    InvalidAdjustmentError,
    ListingUnavailableError,
    UserNotFoundError,
    admin_adjust_balance,
    get_balance,
    settle_topup,
    unlock_listing_contact,
)
from spaceshare.utils.jwt_utils import create_token


class CoinLedgerTestCase(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._old_db_uri = os.environ.get("SQLALCHEMY_DATABASE_URI")
        os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
        cls.app = create_app()
        cls.app.config.update(TESTING=True)
        with cls.app.app_context():
            db.create_all()
        cls.client = cls.app.test_client()

    @classmethod
    def tearDownClass(cls):
        if cls._old_db_uri is None:
            os.environ.pop("SQLALCHEMY_DATABASE_URI", None)
        else:
            os.environ["SQLALCHEMY_DATABASE_URI"] = cls._old_db_uri

    def _seed_user(self, *, coins=0, phone="") -> int:
        with self.app.app_context():
            user = User(name="member", email=f"member-{time.time_ns()}@spaceshare.test", coin_balance=coins, phone=phone or None)
            user.set_password("Passw0rd!")
            db.session.add(user)
            db.session.commit()
            return int(user.id)

    def _seed_listing(self, owner_id: int, **overrides) -> int:
        fields = {"owner_id": owner_id, "title": "Phòng họp", "status": "approved", "province_old": "Hà Nội"}
        fields.update(overrides)
        with self.app.app_context():
            row = Listing(**fields)
            db.session.add(row)
            db.session.commit()
            return int(row.id)

    def _ledger_rows(self, **filters) -> int:
        with self.app.app_context():
            return CoinTransaction.query.filter_by(**filters).count()

    def _balance(self, user_id: int) -> int:
        with self.app.app_context():
            return get_balance(user_id)

    def test_settle_credits_once_per_reference(self):
        user_id = self._seed_user(coins=5)
        ref = f"SP{time.time_ns()}"
        with self.app.app_context():
            first = settle_topup(user_id, 120000, 150, ref, metadata={"source": "webhook"})
            second = settle_topup(user_id, 120000, 150, ref, metadata={"source": "client_verify"})
        self.assertFalse(first.already_processed)
        self.assertEqual(first.balance_after, 155)
        self.assertTrue(second.already_processed)
        self.assertEqual(self._balance(user_id), 155)
        self.assertEqual(self._ledger_rows(reference=ref), 1)

    def test_settle_records_metadata_and_balance_after(self):
        user_id = self._seed_user()
        ref = f"SP{time.time_ns()}"
        with self.app.app_context():
            settle_topup(user_id, 60000, 60, ref, metadata={"source": "webhook"})
            row = CoinTransaction.query.filter_by(reference=ref).one()
            self.assertEqual(row.type, "topup")
            self.assertEqual(row.amount, 60)
            self.assertEqual(row.balance_after, 60)
            self.assertEqual(row.meta.get("source"), "webhook")
            self.assertEqual(row.meta.get("amount"), 60000)

    def test_failed_ledger_write_leaves_balance_untouched(self):
        user_id = self._seed_user(coins=7)
        ref = f"SP{time.time_ns()}"
        with self.app.app_context():
            with patch(
                "spaceshare.services.coin_ledger_service._build_ledger_entry",
                side_effect=RuntimeError("ledger unavailable"),
            ):
                with self.assertRaises(RuntimeError):
                    settle_topup(user_id, 10000, 10, ref)
        self.assertEqual(self._balance(user_id), 7)
        self.assertEqual(self._ledger_rows(reference=ref), 0)

    def test_concurrent_settler_unique_violation_is_already_processed(self):
        user_id = self._seed_user()
        ref = f"SP{time.time_ns()}"
        with self.app.app_context():
            settle_topup(user_id, 10000, 10, ref)
            # Simulate a second settler that passed the pre-check before the first committed.
            with patch(
                "spaceshare.services.coin_ledger_service._reference_already_settled",
                side_effect=[False, True],
            ):
                result = settle_topup(user_id, 10000, 10, ref)
        self.assertTrue(result.already_processed)
        self.assertEqual(self._balance(user_id), 10)
        self.assertEqual(self._ledger_rows(reference=ref), 1)

    def test_settle_for_missing_user(self):
        with self.app.app_context():
            with self.assertRaises(UserNotFoundError):
                settle_topup(987654321, 10000, 10, f"SP{time.time_ns()}")

    def test_unlock_charges_once(self):
        owner_id = self._seed_user(phone="0901234567")
        buyer_id = self._seed_user(coins=25)
        listing_id = self._seed_listing(owner_id)
        with self.app.app_context():
            first = unlock_listing_contact(buyer_id, listing_id)
            second = unlock_listing_contact(buyer_id, listing_id)
        self.assertEqual(first.coins_spent, 10)
        self.assertFalse(first.already_unlocked)
        self.assertEqual(first.contact["phone"], "0901234567")
        self.assertTrue(second.already_unlocked)
        self.assertEqual(second.coins_spent, 0)
        self.assertEqual(self._balance(buyer_id), 15)
        self.assertEqual(self._ledger_rows(user_id=buyer_id, type="unlock"), 1)

    def test_unlock_with_insufficient_coins(self):
        owner_id = self._seed_user()
        buyer_id = self._seed_user(coins=3)
        listing_id = self._seed_listing(owner_id)
        with self.app.app_context():
            with self.assertRaises(InsufficientCoinsError):
                unlock_listing_contact(buyer_id, listing_id)
            self.assertEqual(ListingUnlock.query.filter_by(user_id=buyer_id).count(), 0)
        self.assertEqual(self._balance(buyer_id), 3)

    def test_owner_unlocks_for_free(self):
        owner_id = self._seed_user()
        listing_id = self._seed_listing(owner_id)
        with self.app.app_context():
            result = unlock_listing_contact(owner_id, listing_id)
        self.assertTrue(result.already_unlocked)
        self.assertEqual(self._balance(owner_id), 0)

    def test_hidden_or_locked_listing_cannot_be_unlocked(self):
        owner_id = self._seed_user()
        buyer_id = self._seed_user(coins=50)
        hidden = self._seed_listing(owner_id, is_hidden=True)
        locked = self._seed_listing(owner_id, is_locked=True)
        pending = self._seed_listing(owner_id, status="pending")
        with self.app.app_context():
            for listing_id in (hidden, locked, pending):
                with self.assertRaises(ListingUnavailableError):
                    unlock_listing_contact(buyer_id, listing_id)
        self.assertEqual(self._balance(buyer_id), 50)

    def test_admin_adjustment_cannot_go_negative(self):
        user_id = self._seed_user(coins=20)
        with self.app.app_context():
            with self.assertRaises(InvalidAdjustmentError):
                admin_adjust_balance(user_id, -21)
            with self.assertRaises(InvalidAdjustmentError):
                admin_adjust_balance(user_id, 0)
            entry = admin_adjust_balance(user_id, -5, note="refund", admin_id=1)
            self.assertEqual(entry.balance_after, 15)
            self.assertEqual(entry.meta.get("note"), "refund")
        self.assertEqual(self._balance(user_id), 15)

    def test_unlock_endpoint(self):
        owner_id = self._seed_user(phone="0987654321")
        buyer_id = self._seed_user(coins=10)
        listing_id = self._seed_listing(owner_id)
        headers = {"Authorization": f"Bearer {create_token(buyer_id)}"}

        detail = self.client.get(f"/api/listings/{listing_id}", headers=headers)
        self.assertEqual(detail.status_code, 200)
        self.assertFalse((detail.get_json() or {}).get("unlocked"))
        self.assertNotIn("contact", detail.get_json() or {})

        res = self.client.post(f"/api/listings/{listing_id}/unlock", headers=headers)
        self.assertEqual(res.status_code, 200)
        self.assertEqual((res.get_json() or {}).get("balance_after"), 0)

        detail = self.client.get(f"/api/listings/{listing_id}", headers=headers)
        self.assertEqual((detail.get_json() or {})["contact"]["phone"], "0987654321")

        other_listing = self._seed_listing(owner_id)
        res = self.client.post(f"/api/listings/{other_listing}/unlock", headers=headers)
        self.assertEqual(res.status_code, 402)
        self.assertEqual((res.get_json() or {}).get("error"), "INSUFFICIENT_COINS")

    def test_unlock_requires_auth(self):
        owner_id = self._seed_user()
        listing_id = self._seed_listing(owner_id)
        res = self.client.post(f"/api/listings/{listing_id}/unlock")
        self.assertEqual(res.status_code, 401)


if __name__ == "__main__":
    unittest.main()
