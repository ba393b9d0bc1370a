import unittest
from decimal import Decimal

from models.purchase import Purchase
from models.subscription import Subscription
from schemas.access import (
    REASON_LIMIT_REACHED,
    REASON_LOGIN_REQUIRED,
    REASON_PURCHASE_REQUIRED,
    REASON_PURCHASED,
)
from services.access_evaluator import AccessEvaluator
from services.usage_tracker import UsageTracker
from support import add_image, add_user, fixed_clock, make_session

CLOCK = fixed_clock(2026, 5, 20, 9)


def add_subscription(db, plan_type="standard", status="active", user_id="user-1", sub_id="sub_1"):
    row = Subscription(
        user_id=user_id,
        provider_subscription_id=sub_id,
        payment_provider="stripe",
        plan_type=plan_type,
        billing_interval="monthly",
        status=status,
        price_monthly=Decimal("9.99"),
        price_yearly=Decimal("99.99"),
        features=[],
    )
    db.add(row)
    db.commit()
    return row


def add_purchase(db, image_id, user_id="user-1", status="completed", session_id="cs_1"):
    db.add(Purchase(
        user_id=user_id,
        image_id=image_id,
        license_type="standard",
        amount_paid=500,
        currency="usd",
        payment_method="stripe",
        provider_session_id=session_id,
        payment_status=status,
    ))
    db.commit()


class AccessEvaluatorTests(unittest.TestCase):
    def setUp(self):
        self.db = make_session()
        add_user(self.db)
        self.image = add_image(self.db)
        self.tracker = UsageTracker(self.db, clock=CLOCK)
        self.evaluator = AccessEvaluator(self.db, usage_tracker=self.tracker)

    def tearDown(self):
        self.db.close()

    def _fill_quota(self, count):
        for i in range(count):
            img = add_image(self.db, title=f"Filler{i}")
            self.tracker.record_download("user-1", img.id)

    def test_anonymous_can_view_only(self):
        decision = self.evaluator.evaluate(None, self.image.id)
        self.assertTrue(decision.can_view)
        self.assertFalse(decision.can_download)
        self.assertEqual(decision.access_type, "blocked")
        self.assertEqual(decision.reason, REASON_LOGIN_REQUIRED)

    def test_no_subscription_no_purchase(self):
        decision = self.evaluator.evaluate("user-1", self.image.id)
        self.assertFalse(decision.can_download)
        self.assertEqual(decision.access_type, "free")
        self.assertEqual(decision.reason, REASON_PURCHASE_REQUIRED)

    def test_purchase_grants_download(self):
        add_purchase(self.db, self.image.id)
        decision = self.evaluator.evaluate("user-1", self.image.id)
        self.assertTrue(decision.can_download)
        self.assertEqual(decision.access_type, "purchased")
        self.assertEqual(decision.reason, REASON_PURCHASED)

    def test_pending_purchase_does_not_count(self):
        add_purchase(self.db, self.image.id, status="pending")
        self.assertFalse(self.evaluator.evaluate("user-1", self.image.id).can_download)

    def test_subscription_under_quota(self):
        add_subscription(self.db, "standard")
        self._fill_quota(10)

        decision = self.evaluator.evaluate("user-1", self.image.id)
        self.assertTrue(decision.can_download)
        self.assertEqual(decision.access_type, "subscription")
        self.assertEqual(decision.downloads_remaining, 40)
        self.assertEqual(decision.subscription_tier, "standard")

    def test_last_download_of_the_month(self):
        add_subscription(self.db, "standard")
        self._fill_quota(49)

        decision = self.evaluator.evaluate("user-1", self.image.id)
        self.assertTrue(decision.can_download)
        self.assertEqual(decision.downloads_remaining, 1)

        self.tracker.record_download("user-1", self.image.id)
        other = add_image(self.db, title="Another")
        self.assertFalse(self.evaluator.evaluate("user-1", other.id).can_download)

    def test_quota_exhausted_blocks(self):
        add_subscription(self.db, "standard")
        self._fill_quota(50)

        decision = self.evaluator.evaluate("user-1", self.image.id)
        self.assertFalse(decision.can_download)
        self.assertEqual(decision.access_type, "blocked")
        self.assertEqual(decision.reason, REASON_LIMIT_REACHED)
        self.assertEqual(decision.downloads_remaining, 0)

    def test_purchase_does_not_override_exhausted_quota(self):
        add_subscription(self.db, "standard")
        add_purchase(self.db, self.image.id)
        self._fill_quota(50)

        decision = self.evaluator.evaluate("user-1", self.image.id)
        self.assertFalse(decision.can_download)
        self.assertEqual(decision.access_type, "blocked")

    def test_unlimited_plan_has_no_remaining_count(self):
        add_subscription(self.db, "commercial")
        self._fill_quota(60)

        decision = self.evaluator.evaluate("user-1", self.image.id)
        self.assertTrue(decision.can_download)
        self.assertIsNone(decision.downloads_remaining)
        self.assertEqual(decision.subscription_tier, "commercial")

    def test_unknown_plan_type_is_unlimited(self):
        add_subscription(self.db, "legacy")
        decision = self.evaluator.evaluate("user-1", self.image.id)
        self.assertTrue(decision.can_download)
        self.assertIsNone(decision.downloads_remaining)

    def test_inactive_subscriptions_ignored(self):
        for i, status in enumerate(("past_due", "cancelled", "expired", "trialing")):
            add_subscription(self.db, "premium", status=status, sub_id=f"sub_{i}")

        decision = self.evaluator.evaluate("user-1", self.image.id)
        self.assertEqual(decision.access_type, "free")

    def test_most_recent_active_subscription_wins(self):
        add_subscription(self.db, "standard", sub_id="sub_old")
        add_subscription(self.db, "premium", sub_id="sub_new")
        self.assertEqual(self.evaluator.active_subscription("user-1").plan_type, "premium")


if __name__ == "__main__":
    unittest.main()
