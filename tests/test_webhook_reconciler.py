import unittest
from decimal import Decimal
from unittest.mock import MagicMock

from models.customer import Customer
from models.purchase import Purchase
from models.subscription import Subscription
from schemas.webhook_events import (
    CoinbaseCharge,
    PayPalSubscriptionResource,
    parse_paypal_event,
    parse_stripe_event,
)
from services.access_evaluator import AccessEvaluator
from services.webhook_reconciler import WebhookReconciler
from support import add_image, add_user, fixed_clock, make_session, make_settings, stripe_event, stripe_subscription

CLOCK = fixed_clock(2026, 1, 10, 8)


class StripeReconcileTests(unittest.TestCase):
    def setUp(self):
        self.db = make_session()
        add_user(self.db)
        self.image = add_image(self.db)
        self.gateway = MagicMock()
        self.reconciler = WebhookReconciler(self.db, make_settings(), stripe_gateway=self.gateway, clock=CLOCK)

    def tearDown(self):
        self.db.close()

    def _handle(self, event_type, obj):
        self.reconciler.handle_stripe_event(parse_stripe_event(stripe_event(event_type, obj)))

    def _subs(self):
        return self.db.query(Subscription).all()

    def test_subscription_created_then_redelivered(self):
        self._handle("customer.subscription.created", stripe_subscription())
        self._handle("customer.subscription.created", stripe_subscription())

        rows = self._subs()
        self.assertEqual(len(rows), 1)
        row = rows[0]
        self.assertEqual((row.plan_type, row.billing_interval, row.status), ("premium", "monthly", "active"))
        self.assertEqual(row.user_id, "user-1")
        self.assertEqual(row.price_monthly, Decimal("19.99"))
        self.assertIn("Download up to 200 images/month", row.features)
        self.assertIsNotNone(row.current_period_end)

    def test_update_changes_plan_in_place(self):
        self._handle("customer.subscription.created", stripe_subscription())
        self._handle("customer.subscription.updated", stripe_subscription(price_id="price_commercial_yearly"))

        rows = self._subs()
        self.assertEqual(len(rows), 1)
        self.db.refresh(rows[0])
        self.assertEqual((rows[0].plan_type, rows[0].billing_interval), ("commercial", "yearly"))

    def test_user_resolved_from_customer_row(self):
        self.db.add(Customer(user_id="user-1", stripe_customer_id="cus_42"))
        self.db.commit()

        self._handle("customer.subscription.created", stripe_subscription(customer="cus_42", metadata={}))
        self.assertEqual(self._subs()[0].user_id, "user-1")

    def test_unattributable_subscription_dropped(self):
        self._handle("customer.subscription.created", stripe_subscription(customer="cus_unknown", metadata={}))
        self.assertEqual(self._subs(), [])

    def test_unknown_price_falls_back_to_metadata(self):
        meta = {"userId": "user-1", "planType": "standard", "billingInterval": "yearly"}
        self._handle("customer.subscription.created", stripe_subscription(price_id="price_legacy", metadata=meta))
        self.assertEqual(self._subs()[0].plan_type, "standard")

    def test_unknown_price_without_metadata_dropped(self):
        self._handle("customer.subscription.created", stripe_subscription(price_id="price_legacy"))
        self.assertEqual(self._subs(), [])

    def test_status_mapping(self):
        self._handle("customer.subscription.created", stripe_subscription(status="unpaid"))
        self.assertEqual(self._subs()[0].status, "past_due")

    def test_deleted_marks_cancelled(self):
        self._handle("customer.subscription.created", stripe_subscription())
        self._handle("customer.subscription.deleted", stripe_subscription(status="canceled"))

        self.db.expire_all()
        self.assertEqual(self._subs()[0].status, "cancelled")

    def test_invoice_failure_revokes_access(self):
        self._handle("customer.subscription.created", stripe_subscription())
        evaluator = AccessEvaluator(self.db)
        self.assertTrue(evaluator.evaluate("user-1", self.image.id).can_download)

        self._handle("invoice.payment_failed", {"id": "in_1", "subscription": "sub_1"})
        self.db.expire_all()
        self.assertEqual(self._subs()[0].status, "past_due")
        self.assertFalse(evaluator.evaluate("user-1", self.image.id).can_download)

        self._handle("invoice.payment_succeeded", {"id": "in_2", "subscription": "sub_1"})
        self.db.expire_all()
        self.assertEqual(self._subs()[0].status, "active")

    def test_invoice_for_unknown_subscription_is_noop(self):
        self._handle("invoice.paid", {"id": "in_3", "subscription": "sub_missing"})
        self.assertEqual(self._subs(), [])

    def test_checkout_subscription_refetches_full_object(self):
        self.gateway.retrieve_subscription.return_value = stripe_subscription(
            "sub_9", price_id="price_standard_monthly", metadata={},
        )
        session = {
            "id": "cs_sub",
            "mode": "subscription",
            "subscription": "sub_9",
            "client_reference_id": "user-1",
        }
        self._handle("checkout.session.completed", session)

        self.gateway.retrieve_subscription.assert_called_once_with("sub_9")
        row = self._subs()[0]
        self.assertEqual((row.provider_subscription_id, row.plan_type, row.user_id), ("sub_9", "standard", "user-1"))

    def test_checkout_subscription_dropped_in_simulation_mode(self):
        reconciler = WebhookReconciler(
            self.db, make_settings(payment_simulation_mode=True), stripe_gateway=self.gateway, clock=CLOCK,
        )
        session = {"id": "cs_sim", "mode": "subscription", "subscription": "sub_sim", "client_reference_id": "user-1"}
        event = parse_stripe_event(stripe_event("checkout.session.completed", session))

        reconciler.handle_stripe_event(event)

        self.gateway.retrieve_subscription.assert_not_called()
        self.assertEqual(self._subs(), [])

    def test_checkout_payment_records_purchase_once(self):
        session = {
            "id": "cs_pay",
            "mode": "payment",
            "metadata": {"imageId": self.image.id, "licenseType": "premium", "userId": "user-1"},
            "amount_total": 1500,
            "currency": "usd",
        }
        self._handle("checkout.session.completed", session)
        self._handle("checkout.session.completed", session)

        purchases = self.db.query(Purchase).all()
        self.assertEqual(len(purchases), 1)
        self.assertEqual((purchases[0].amount_paid, purchases[0].license_type), (1500, "premium"))
        self.assertTrue(AccessEvaluator(self.db).evaluate("user-1", self.image.id).can_download)

    def test_anonymous_checkout_purchase_has_no_user(self):
        session = {
            "id": "cs_anon",
            "mode": "payment",
            "metadata": {"imageId": self.image.id, "userId": "anonymous"},
            "amount_total": 500,
        }
        self._handle("checkout.session.completed", session)
        self.assertIsNone(self.db.query(Purchase).one().user_id)

    def test_purchase_for_missing_image_dropped(self):
        session = {"id": "cs_gone", "mode": "payment", "metadata": {"imageId": "no-such-image"}, "amount_total": 500}
        self._handle("checkout.session.completed", session)
        self.assertEqual(self.db.query(Purchase).count(), 0)


class PayPalAndCryptoReconcileTests(unittest.TestCase):
    def setUp(self):
        self.db = make_session()
        add_user(self.db)
        self.image = add_image(self.db)
        self.reconciler = WebhookReconciler(self.db, make_settings(), clock=CLOCK)

    def tearDown(self):
        self.db.close()

    def _paypal(self, event_type, resource):
        event = parse_paypal_event({"id": "WH-1", "event_type": event_type, "resource": resource})
        self.reconciler.handle_paypal_event(event)

    def test_paypal_lifecycle(self):
        resource = {"id": "I-1", "plan_id": "P-PRE-Y", "custom_id": "user-1", "status": "ACTIVE"}
        self._paypal("BILLING.SUBSCRIPTION.ACTIVATED", resource)
        self._paypal("BILLING.SUBSCRIPTION.ACTIVATED", resource)

        row = self.db.query(Subscription).one()
        self.assertEqual((row.payment_provider, row.plan_type, row.billing_interval), ("paypal", "premium", "yearly"))
        self.assertEqual(row.status, "active")

        self._paypal("BILLING.SUBSCRIPTION.SUSPENDED", {"id": "I-1"})
        self.db.expire_all()
        self.assertEqual(self.db.query(Subscription).one().status, "past_due")

        self._paypal("BILLING.SUBSCRIPTION.EXPIRED", {"id": "I-1"})
        self.db.expire_all()
        self.assertEqual(self.db.query(Subscription).one().status, "expired")

    def test_paypal_plan_hint_used_for_unknown_plan_id(self):
        resource = PayPalSubscriptionResource(id="I-2", plan_id="P-OTHER", status="ACTIVE")
        stored = self.reconciler.upsert_paypal_subscription(
            resource, fallback_user_id="user-1", plan_hint=("standard", "monthly"), status="active",
        )
        self.assertTrue(stored)
        self.assertEqual(self.db.query(Subscription).one().plan_type, "standard")

    def test_paypal_purchase_idempotent(self):
        kwargs = dict(
            order_id="ORDER-1",
            user_id="user-1",
            image_id=self.image.id,
            license_type="standard",
            amount=Decimal("5.00"),
            currency="USD",
        )
        self.assertTrue(self.reconciler.record_paypal_purchase(**kwargs))
        self.assertFalse(self.reconciler.record_paypal_purchase(**kwargs))

        purchase = self.db.query(Purchase).one()
        self.assertEqual((purchase.amount_paid, purchase.currency, purchase.payment_method), (500, "usd", "paypal"))

    def test_same_session_id_across_providers_is_distinct(self):
        self.reconciler.record_paypal_purchase(
            order_id="X1", user_id="user-1", image_id=self.image.id,
            license_type="standard", amount=Decimal("5.00"), currency="USD",
        )
        charge = CoinbaseCharge(
            id="c-1", code="X1",
            metadata={"image_id": self.image.id, "user_id": "user-1"},
            pricing={"local": {"amount": "5.00", "currency": "USD"}},
        )
        self.assertTrue(self.reconciler.record_crypto_purchase(charge))
        self.assertEqual(self.db.query(Purchase).count(), 2)

    def test_crypto_purchase_without_image_dropped(self):
        charge = CoinbaseCharge(id="c-2", code="Y2", metadata={})
        self.assertFalse(self.reconciler.record_crypto_purchase(charge))


if __name__ == "__main__":
    unittest.main()
