"""Prometheus request metrics for the gateway HTTP server."""

from __future__ import annotations

from typing import Iterator

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest
from prometheus_client.samples import Sample

# Label for requests that matched no route, so unknown paths share one series
UNMATCHED_PATH = "<unmatched>"

REQUEST_DURATION_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5)


class RequestMetrics:
	"""Per-path request counts and durations on a private registry.

	Each gateway gets its own CollectorRegistry so several apps (and tests)
	can live in one process without colliding on metric names.
	"""

	content_type = CONTENT_TYPE_LATEST

	def __init__(self) -> None:
		self.registry = CollectorRegistry(auto_describe=True)
		self.requests = Counter(
			"mimir_requests_total",
			"Total number of requests by route.",
			labelnames=("path",),
			registry=self.registry,
		)
		self.duration = Histogram(
			"mimir_request_duration_seconds",
			"Request duration in seconds by route.",
			labelnames=("path",),
			buckets=REQUEST_DURATION_BUCKETS,
			registry=self.registry,
		)

	def record(self, path: str, duration_s: float) -> None:
		self.requests.labels(path=path).inc()
		self.duration.labels(path=path).observe(duration_s)

	def _request_samples(self) -> Iterator[Sample]:
		for family in self.requests.collect():
			for sample in family.samples:
				if sample.name == "mimir_requests_total":
					yield sample

	def paths(self) -> set[str]:
		"""Route labels that have at least one recorded request."""
		return {s.labels["path"] for s in self._request_samples()}

	def count(self, path: str) -> int:
		value = self.registry.get_sample_value("mimir_requests_total", {"path": path})
		return int(value) if value is not None else 0

	def total_requests(self) -> int:
		return int(sum(s.value for s in self._request_samples()))

	def to_prometheus(self) -> str:
		return generate_latest(self.registry).decode("utf-8")
