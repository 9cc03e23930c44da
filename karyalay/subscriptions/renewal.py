from __future__ import annotations

import calendar
import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError

from karyalay.results import ErrorKind, ServiceResult

from .models import OrderStatus, Plan, PlanStatus, RenewalDetails, RenewalOrder, Subscription, SubscriptionStatus
from .repository import SubscriptionRepository

logger = logging.getLogger(__name__)

RENEWABLE_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.EXPIRED})


def add_months(start: date, months: int) -> date:
    """Shift ``start`` by whole calendar months, clamping to the last day of the target month.

    >>> add_months(date(2024, 1, 31), 1)
    datetime.date(2024, 2, 29)
    """

    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class RenewalService:
    """Subscription renewal: eligibility, pricing and the payment outcome flow."""

    def __init__(self, repository: SubscriptionRepository) -> None:
        self._repository = repository

    @staticmethod
    def calculate_new_end_date(current_end_date: date, billing_period_months: int) -> date:
        return add_months(current_end_date, billing_period_months)

    @staticmethod
    def renewal_amount(plan: Plan) -> Decimal:
        return plan.renewal_amount

    async def is_eligible_for_renewal(self, subscription_id: str) -> bool:
        try:
            subscription = await self._repository.get_subscription(subscription_id)
        except SQLAlchemyError:
            logger.exception("Renewal eligibility check failed for %s", subscription_id)
            return False
        return subscription is not None and subscription.status in RENEWABLE_STATUSES

    async def get_renewal_details(self, subscription_id: str) -> ServiceResult[RenewalDetails]:
        try:
            subscription = await self._repository.get_subscription(subscription_id)
            if subscription is None:
                return ServiceResult.not_found("Subscription not found")
            plan = await self._repository.get_plan(subscription.plan_id)
        except SQLAlchemyError:
            logger.exception("Loading renewal details failed for %s", subscription_id)
            return ServiceResult.fail(ErrorKind.PERSISTENCE_FAILED, "An error occurred while loading renewal details")
        if plan is None:
            return ServiceResult.not_found("Plan not found")

        return ServiceResult.ok(
            RenewalDetails(
                subscription=subscription,
                plan=plan,
                current_end_date=subscription.end_date,
                new_end_date=self.calculate_new_end_date(subscription.end_date, plan.billing_period_months),
                renewal_amount=plan.renewal_amount,
                currency=plan.currency,
                billing_period_months=plan.billing_period_months,
            )
        )

    async def initiate_renewal(self, subscription_id: str) -> ServiceResult[RenewalOrder]:
        """Open a PENDING order for the renewal amount of an eligible subscription."""

        try:
            subscription = await self._repository.get_subscription(subscription_id)
            if subscription is None:
                logger.warning("Renewal initiation failed: subscription %s not found", subscription_id)
                return ServiceResult.not_found("Subscription not found")
            if subscription.status not in RENEWABLE_STATUSES:
                return ServiceResult.invalid(f"Subscription in status {subscription.status.value} cannot be renewed")

            plan = await self._repository.get_plan(subscription.plan_id)
            if plan is None:
                logger.warning("Renewal initiation failed: plan %s not found", subscription.plan_id)
                return ServiceResult.not_found("Plan not found")
            if plan.status is not PlanStatus.ACTIVE:
                logger.warning("Renewal initiation failed: plan %s not active", plan.id)
                return ServiceResult.invalid("Plan is not available for renewal")

            order = await self._repository.create_order(
                customer_id=subscription.customer_id,
                plan_id=plan.id,
                amount=plan.renewal_amount,
                currency=plan.currency,
                status=OrderStatus.PENDING,
            )
        except SQLAlchemyError:
            logger.exception("Renewal initiation failed for %s", subscription_id)
            return ServiceResult.fail(ErrorKind.PERSISTENCE_FAILED, "An error occurred while initiating renewal")

        logger.info("Renewal order %s opened for subscription %s", order.id, subscription_id)
        return ServiceResult.ok(RenewalOrder(order=order, subscription=subscription, plan=plan))

    async def process_successful_renewal(self, order_id: str, subscription_id: str) -> ServiceResult[Subscription]:
        """Mark the order paid and extend the subscription; the port assignment is kept."""

        try:
            order = await self._repository.get_order(order_id)
            if order is None:
                return ServiceResult.not_found("Order not found")
            subscription = await self._repository.get_subscription(subscription_id)
            if subscription is None:
                return ServiceResult.not_found("Subscription not found")
            plan = await self._repository.get_plan(subscription.plan_id)
            if plan is None:
                return ServiceResult.not_found("Plan not found")

            await self._repository.update_order_status(order_id, OrderStatus.SUCCESS)
            new_end_date = self.calculate_new_end_date(subscription.end_date, plan.billing_period_months)
            updated = await self._repository.update_subscription(
                subscription_id,
                {"end_date": new_end_date, "status": SubscriptionStatus.ACTIVE},
            )
            if not updated:
                logger.error("Renewal processing failed: could not update subscription %s", subscription_id)
                return ServiceResult.fail(ErrorKind.PERSISTENCE_FAILED, "Failed to update subscription")
            renewed = await self._repository.get_subscription(subscription_id)
        except SQLAlchemyError:
            logger.exception("Renewal processing failed for order %s", order_id)
            return ServiceResult.fail(ErrorKind.PERSISTENCE_FAILED, "An error occurred while processing renewal")

        logger.info("Subscription %s renewed; new end date %s", subscription_id, new_end_date.isoformat())
        return ServiceResult.ok(renewed)

    async def process_failed_renewal(self, order_id: str) -> ServiceResult[None]:
        """Mark the order failed and leave the subscription untouched."""

        try:
            order = await self._repository.get_order(order_id)
            if order is None:
                return ServiceResult.not_found("Order not found")
            await self._repository.update_order_status(order_id, OrderStatus.FAILED)
        except SQLAlchemyError:
            logger.exception("Failed-renewal processing failed for order %s", order_id)
            return ServiceResult.fail(ErrorKind.PERSISTENCE_FAILED, "An error occurred while processing renewal")

        logger.info("Renewal payment failed for order %s; subscription unchanged", order_id)
        return ServiceResult.ok()
