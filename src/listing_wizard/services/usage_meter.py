"""
Usage Meter - monthly usage counters enforced against the subscription plan
"""
import logging
import threading
from datetime import datetime
from typing import Callable, Dict

from ..exceptions import LimitReached
from ..schemas import UsageRecord, month_key, utcnow
from .kv_store import KeyValueStore
from .plan_policy import get_plan_limits, limit_for, normalize_resource_type
from .subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

# PlanLimits attribute -> UsageRecord counter
COUNTER_FIELDS = {
    "listings": "listings_generated",
    "ai_requests": "ai_requests_made",
}

# Public resource names in display order
RESOURCE_NAMES = {
    "listings": "listings",
    "aiRequests": "ai_requests",
}


def usage_key(user_id: str, period_month: str) -> str:
    return f"usage:{user_id}:{period_month}"


class UsageMeter:
    """
    Tracks monthly usage and gates actions by plan limits

    Records are keyed by UTC calendar month. Rollover is lazy: a record whose
    month no longer matches the current month is replaced by a zeroed one the
    next time it is touched.
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        subscriptions: SubscriptionService,
        clock: Callable[[], datetime] = utcnow
    ):
        """
        Args:
            kv_store: Backing key-value store
            subscriptions: Source of the user's plan
            clock: Returns the current time (UTC); injectable for tests
        """
        self.kv_store = kv_store
        self.subscriptions = subscriptions
        self.clock = clock
        self._lock = threading.RLock()

    def _current_period(self) -> str:
        return month_key(self.clock())

    def get_usage(self, user_id: str) -> UsageRecord:
        """
        Current month's usage record, created with zero counters if absent

        Args:
            user_id: User ID

        Returns:
            UsageRecord for the current UTC month
        """
        period_month = self._current_period()
        with self._lock:
            record = self.kv_store.get(usage_key(user_id, period_month))
            if record is not None:
                usage = UsageRecord.from_record(record)
                if usage.month == period_month and usage.user_id == user_id:
                    return usage
                logger.info(
                    f"Usage record for user {user_id} is from {usage.month}, resetting for {period_month}"
                )

            usage = UsageRecord(user_id=user_id, month=period_month, updated_at=self.clock())
            self.kv_store.set(usage_key(user_id, period_month), usage.to_record())
            return usage

    def get_used(self, user_id: str, resource_type: str) -> int:
        """Amount of a resource used this month"""
        counter = COUNTER_FIELDS[normalize_resource_type(resource_type)]
        return getattr(self.get_usage(user_id), counter)

    def get_limit(self, user_id: str, resource_type: str) -> int:
        """Monthly limit of the user's plan for a resource (-1 for unlimited)"""
        plan = self.subscriptions.get_plan(user_id)
        return limit_for(get_plan_limits(plan), resource_type)

    def check_limit(self, user_id: str, resource_type: str) -> bool:
        """
        Check whether the user has reached their plan limit

        Args:
            user_id: User ID
            resource_type: 'listings' or 'aiRequests'

        Returns:
            True if usage has reached or exceeded the limit; always False when unlimited
        """
        limit = self.get_limit(user_id, resource_type)
        if limit == -1:
            return False
        return self.get_used(user_id, resource_type) >= limit

    def enforce_limit(self, user_id: str, resource_type: str) -> None:
        """
        Raise if the user may not consume another unit of a resource

        Raises:
            LimitReached: If the plan limit has been reached
        """
        if self.check_limit(user_id, resource_type):
            raise LimitReached(
                resource_type=resource_type,
                used=self.get_used(user_id, resource_type),
                limit=self.get_limit(user_id, resource_type),
                plan=self.subscriptions.get_plan(user_id).value,
            )

    def increment(self, user_id: str, resource_type: str, amount: int = 1) -> UsageRecord:
        """
        Add amount to the current month's counter for a resource

        Args:
            user_id: User ID
            resource_type: 'listings' or 'aiRequests'
            amount: Non-negative amount to add

        Returns:
            The updated UsageRecord
        """
        if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
            raise ValueError(f"Usage amount must be a non-negative integer (got: {amount!r})")

        counter = COUNTER_FIELDS[normalize_resource_type(resource_type)]
        with self._lock:
            usage = self.get_usage(user_id)
            setattr(usage, counter, getattr(usage, counter) + amount)
            usage.updated_at = self.clock()
            self.kv_store.set(usage_key(user_id, usage.month), usage.to_record())

        logger.info(f"Incremented {resource_type} usage for user {user_id}: {getattr(usage, counter)}")
        return usage

    def get_usage_stats(self, user_id: str) -> Dict[str, Dict]:
        """
        Usage statistics for all resource types

        Returns:
            Dictionary mapping resource names to used/limit/remaining/unlimited
        """
        usage = self.get_usage(user_id)
        limits = get_plan_limits(self.subscriptions.get_plan(user_id))

        stats = {}
        for name, attr in RESOURCE_NAMES.items():
            used = getattr(usage, COUNTER_FIELDS[attr])
            limit = getattr(limits, attr)
            stats[name] = {
                'used': used,
                'limit': limit,
                'remaining': max(limit - used, 0) if limit != -1 else -1,
                'unlimited': limit == -1,
            }
        return stats
