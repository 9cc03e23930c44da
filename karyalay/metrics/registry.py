"""Simple in-memory metrics registry."""
from __future__ import annotations

from threading import Lock
from typing import Any, Callable, Iterable

from .base import CounterMetric, DistributionMetric, Metric


class MetricsRegistry:
    """Holds named metrics; asking twice for a name returns the same instance."""

    def __init__(self) -> None:
        self._metrics: dict[str, Metric] = {}
        self._lock = Lock()

    def _get_or_create(self, name: str, factory: Callable[[], Metric], expected: type[Metric]) -> Any:
        with self._lock:
            if name not in self._metrics:
                self._metrics[name] = factory()
            metric = self._metrics[name]
        if not isinstance(metric, expected):
            raise TypeError(f"Metric '{name}' already exists with a different type")
        return metric

    def counter(self, name: str, *, description: str = "", label_names: Iterable[str] | None = None) -> CounterMetric:
        return self._get_or_create(
            name,
            lambda: CounterMetric(name, description=description, label_names=label_names),
            CounterMetric,
        )

    def distribution(
        self, name: str, *, description: str = "", label_names: Iterable[str] | None = None
    ) -> DistributionMetric:
        return self._get_or_create(
            name,
            lambda: DistributionMetric(name, description=description, label_names=label_names),
            DistributionMetric,
        )

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Return a JSON-serialisable view of every registered metric."""

        with self._lock:
            metrics = list(self._metrics.values())
        return {
            metric.name: {"type": metric.kind, "description": metric.description, "samples": metric.samples()}
            for metric in metrics
        }
