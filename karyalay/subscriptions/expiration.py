from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.exc import SQLAlchemyError

from karyalay.metrics import EXPIRATION_RUN_SECONDS, SUBSCRIPTIONS_EXPIRED, track_duration

from .models import ExpirationReport, SubscriptionStatus
from .repository import SubscriptionRepository

logger = logging.getLogger(__name__)


class ExpirationService:
    """Move ACTIVE subscriptions past their end date to EXPIRED.

    Runs to completion once per invocation; overlapping runs are left to the scheduler.
    """

    def __init__(self, repository: SubscriptionRepository) -> None:
        self._repository = repository

    async def process_expired_subscriptions(self, today: date | None = None) -> ExpirationReport:
        today = today or date.today()
        expired_ids: list[str] = []
        with track_duration(EXPIRATION_RUN_SECONDS):
            try:
                candidates = await self._repository.list_expired(today)
            except SQLAlchemyError as exc:
                logger.exception("Expiration run could not load subscriptions")
                return ExpirationReport(count=0, subscription_ids=[], error=str(exc))

            for subscription in candidates:
                try:
                    updated = await self._repository.update_status(subscription.id, SubscriptionStatus.EXPIRED)
                except SQLAlchemyError:
                    logger.exception("Failed to expire subscription %s", subscription.id)
                    continue
                if not updated:
                    logger.error("Failed to expire subscription %s", subscription.id)
                    continue
                expired_ids.append(subscription.id)
                logger.info("Subscription %s expired; end date was %s", subscription.id, subscription.end_date)

        SUBSCRIPTIONS_EXPIRED.inc(len(expired_ids))
        return ExpirationReport(count=len(expired_ids), subscription_ids=expired_ids)

    async def should_expire(self, subscription_id: str, today: date | None = None) -> bool:
        today = today or date.today()
        try:
            subscription = await self._repository.get_subscription(subscription_id)
        except SQLAlchemyError:
            logger.exception("Expiry check failed for subscription %s", subscription_id)
            return False
        if subscription is None or subscription.status is not SubscriptionStatus.ACTIVE:
            return False
        return subscription.end_date < today

    async def expire_subscription(self, subscription_id: str, today: date | None = None) -> bool:
        if not await self.should_expire(subscription_id, today):
            return False
        try:
            expired = await self._repository.update_status(subscription_id, SubscriptionStatus.EXPIRED)
        except SQLAlchemyError:
            logger.exception("Failed to expire subscription %s", subscription_id)
            return False
        if expired:
            SUBSCRIPTIONS_EXPIRED.inc()
        return expired
