# services/access_evaluator.py
"""
View/download decisions for a (user, image) pair.

Order of checks:
    1. anonymous          -> view only
    2. active subscription -> quota decides (a purchase never overrides it)
    3. completed purchase  -> download
    4. otherwise           -> purchase required

Nothing is cached: every call re-reads subscriptions, purchases and the
month's download count.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from models.purchase import Purchase
from models.subscription import Subscription
from schemas.access import (
    REASON_LIMIT_REACHED,
    REASON_LOGIN_REQUIRED,
    REASON_PURCHASE_REQUIRED,
    REASON_PURCHASED,
    REASON_SUBSCRIPTION,
    AccessDecision,
)
from services.plan_catalog import get_plan
from services.usage_tracker import Clock, UsageTracker

logger = logging.getLogger(__name__)


class AccessEvaluator:
    def __init__(
        self,
        db: Session,
        usage_tracker: Optional[UsageTracker] = None,
        clock: Optional[Clock] = None,
    ):
        self.db = db
        self.usage = usage_tracker or UsageTracker(db, clock=clock)

    def active_subscription(self, user_id: str) -> Optional[Subscription]:
        """Most recent subscription row with status=active, if any."""
        return (
            self.db.query(Subscription)
            .filter(Subscription.user_id == user_id, Subscription.status == "active")
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .first()
        )

    def completed_purchase(self, user_id: str, image_id: str) -> Optional[Purchase]:
        return (
            self.db.query(Purchase)
            .filter(
                Purchase.user_id == user_id,
                Purchase.image_id == image_id,
                Purchase.payment_status == "completed",
            )
            .first()
        )

    def evaluate(self, user_id: Optional[str], image_id: str) -> AccessDecision:
        if not user_id:
            return AccessDecision(
                can_view=True,
                can_download=False,
                access_type="blocked",
                reason=REASON_LOGIN_REQUIRED,
            )

        subscription = self.active_subscription(user_id)
        if subscription is not None:
            return self._subscription_decision(user_id, subscription)

        if self.completed_purchase(user_id, image_id) is not None:
            return AccessDecision(
                can_view=True,
                can_download=True,
                access_type="purchased",
                reason=REASON_PURCHASED,
            )

        return AccessDecision(
            can_view=True,
            can_download=False,
            access_type="free",
            reason=REASON_PURCHASE_REQUIRED,
        )

    def _subscription_decision(self, user_id: str, subscription: Subscription) -> AccessDecision:
        plan = get_plan(subscription.plan_type)
        if plan is None:
            # A row with a plan we no longer sell gets no quota rather than no access.
            logger.warning("unknown_plan_type subscription_id=%s plan=%s", subscription.id, subscription.plan_type)
            limit = None
        else:
            limit = plan.monthly_download_limit

        if limit is None:
            return AccessDecision(
                can_view=True,
                can_download=True,
                access_type="subscription",
                reason=REASON_SUBSCRIPTION,
                subscription_tier=subscription.plan_type,
            )

        used = self.usage.month_to_date_count(user_id)
        if used >= limit:
            logger.info("download_quota_reached user_id=%s used=%d limit=%d", user_id, used, limit)
            return AccessDecision(
                can_view=True,
                can_download=False,
                access_type="blocked",
                reason=REASON_LIMIT_REACHED,
                downloads_remaining=0,
                subscription_tier=subscription.plan_type,
            )

        return AccessDecision(
            can_view=True,
            can_download=True,
            access_type="subscription",
            reason=REASON_SUBSCRIPTION,
            downloads_remaining=limit - used,
            subscription_tier=subscription.plan_type,
        )
