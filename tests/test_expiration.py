from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from karyalay.metrics import SUBSCRIPTIONS_EXPIRED
from karyalay.subscriptions import ExpirationService, SubscriptionStatus


async def _subscription(repository, plan_id, *, end: date, status=SubscriptionStatus.ACTIVE):
    return await repository.create_subscription(
        customer_id="cust-1",
        plan_id=plan_id,
        start_date=date(2024, 1, 1),
        end_date=end,
        status=status,
    )


@pytest.mark.asyncio
async def test_only_active_subscriptions_past_end_date_expire(subscription_repository, monthly_plan):
    past = await _subscription(subscription_repository, monthly_plan.id, end=date(2024, 5, 31))
    today_end = await _subscription(subscription_repository, monthly_plan.id, end=date(2024, 6, 1))
    cancelled = await _subscription(
        subscription_repository, monthly_plan.id, end=date(2024, 4, 1), status=SubscriptionStatus.CANCELLED
    )
    before = SUBSCRIPTIONS_EXPIRED.value()

    report = await ExpirationService(subscription_repository).process_expired_subscriptions(date(2024, 6, 1))

    assert report.error is None
    assert report.count == 1
    assert report.subscription_ids == [past.id]
    assert (await subscription_repository.get_subscription(past.id)).status is SubscriptionStatus.EXPIRED
    assert (await subscription_repository.get_subscription(today_end.id)).status is SubscriptionStatus.ACTIVE
    assert (await subscription_repository.get_subscription(cancelled.id)).status is SubscriptionStatus.CANCELLED
    assert SUBSCRIPTIONS_EXPIRED.value() == before + 1


@pytest.mark.asyncio
async def test_second_run_finds_nothing(subscription_repository, subscription):
    service = ExpirationService(subscription_repository)

    first = await service.process_expired_subscriptions(date(2024, 2, 1))
    second = await service.process_expired_subscriptions(date(2024, 2, 1))

    assert first.subscription_ids == [subscription.id]
    assert second.count == 0


@pytest.mark.asyncio
async def test_should_expire_and_expire_subscription(subscription_repository, subscription):
    service = ExpirationService(subscription_repository)

    assert await service.should_expire(subscription.id, date(2024, 1, 31)) is False
    assert await service.should_expire(subscription.id, date(2024, 2, 1)) is True
    assert await service.expire_subscription(subscription.id, date(2024, 2, 1)) is True
    assert await service.expire_subscription(subscription.id, date(2024, 2, 1)) is False


@pytest.mark.asyncio
async def test_load_failure_is_reported():
    repository = AsyncMock()
    repository.list_expired = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down")))

    report = await ExpirationService(repository).process_expired_subscriptions(date(2024, 2, 1))

    assert report.count == 0
    assert report.error is not None
