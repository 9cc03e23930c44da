"""Application wide metrics utilities."""
from .base import CounterMetric, DistributionMetric, track_duration
from .registry import MetricsRegistry

metrics_registry = MetricsRegistry()

TICKETS_CREATED = metrics_registry.counter(
    "tickets_created_total",
    description="Tickets opened through the portal.",
)
TICKET_REPLIES = metrics_registry.counter(
    "ticket_replies_total",
    description="Messages appended to tickets.",
    label_names=("author_type", "visibility"),
)
NOTIFICATION_FAILURES = metrics_registry.counter(
    "ticket_notification_failures_total",
    description="Customer notifications that could not be delivered.",
)
SUBSCRIPTIONS_EXPIRED = metrics_registry.counter(
    "subscriptions_expired_total",
    description="Subscriptions moved to EXPIRED by the expiration job.",
)
EXPIRATION_RUN_SECONDS = metrics_registry.distribution(
    "subscription_expiration_run_seconds",
    description="Duration of subscription expiration runs in seconds.",
)

__all__ = [
    "CounterMetric",
    "DistributionMetric",
    "EXPIRATION_RUN_SECONDS",
    "MetricsRegistry",
    "NOTIFICATION_FAILURES",
    "SUBSCRIPTIONS_EXPIRED",
    "TICKETS_CREATED",
    "TICKET_REPLIES",
    "metrics_registry",
    "track_duration",
]
