"""
Subscription Service - Manages the user's active subscription record
"""
import calendar
import logging
from datetime import datetime, timezone
from typing import Callable

from ..schemas import Plan, SubscriptionRecord, utcnow
from .kv_store import KeyValueStore

logger = logging.getLogger(__name__)


def subscription_key(user_id: str) -> str:
    return f"subscription:{user_id}"


def _period_bounds(moment: datetime):
    """First and last day of the UTC calendar month containing moment"""
    start = datetime(moment.year, moment.month, 1, tzinfo=timezone.utc)
    last_day = calendar.monthrange(moment.year, moment.month)[1]
    end = datetime(moment.year, moment.month, last_day, 23, 59, 59, tzinfo=timezone.utc)
    return start, end


class SubscriptionService:
    """Service for reading and replacing subscription records"""

    def __init__(self, kv_store: KeyValueStore, clock: Callable[[], datetime] = utcnow):
        self.kv_store = kv_store
        self.clock = clock

    def get_subscription(self, user_id: str) -> SubscriptionRecord:
        """
        Get the user's subscription, creating a free one on first access

        Args:
            user_id: User ID

        Returns:
            SubscriptionRecord
        """
        record = self.kv_store.get(subscription_key(user_id))
        if record is not None:
            return SubscriptionRecord.from_record(record)

        subscription = self._new_record(user_id, Plan.FREE)
        self.kv_store.set(subscription_key(user_id), subscription.to_record())
        logger.info(f"Created free subscription for user {user_id}")
        return subscription

    def get_plan(self, user_id: str) -> Plan:
        """Get user's current plan"""
        return self.get_subscription(user_id).plan

    def set_plan(self, user_id: str, plan: str) -> SubscriptionRecord:
        """
        Replace the user's subscription with one on a new plan

        Args:
            user_id: User ID
            plan: 'free', 'pro' or 'enterprise'

        Returns:
            The new SubscriptionRecord
        """
        subscription = self._new_record(user_id, Plan(plan))
        self.kv_store.set(subscription_key(user_id), subscription.to_record())
        logger.info(f"User {user_id} moved to {subscription.plan.value} plan")
        return subscription

    def _new_record(self, user_id: str, plan: Plan) -> SubscriptionRecord:
        now = self.clock()
        period_start, period_end = _period_bounds(now)
        return SubscriptionRecord(
            user_id=user_id,
            plan=plan,
            status="active",
            created_at=now,
            current_period_start=period_start,
            current_period_end=period_end,
        )
