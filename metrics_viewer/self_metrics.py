"""Self-monitoring metrics for the poller using prometheus_client."""
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest


class SelfMetrics:
    """Counters and gauges describing the polling loop itself."""

    def __init__(self, registry=None, prefix="metrics_viewer_"):
        if registry is None:
            # Private registry to avoid exporting default Python/process metrics
            registry = CollectorRegistry()
        self.registry = registry

        self.cycles_total = Counter(
            f"{prefix}cycles_total",
            "Total number of polling cycles by outcome",
            ["outcome"],
            registry=registry
        )

        self.fetch_errors_total = Counter(
            f"{prefix}fetch_errors_total",
            "Total number of failed fetches",
            ["source"],
            registry=registry
        )

        self.parse_warnings_total = Counter(
            f"{prefix}parse_warnings_total",
            "Total number of skipped exposition lines",
            registry=registry
        )

        self.cycle_duration_seconds = Histogram(
            f"{prefix}cycle_duration_seconds",
            "Duration of each polling cycle in seconds",
            buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
            registry=registry
        )

        self.families = Gauge(
            f"{prefix}families",
            "Metric families in the latest snapshot",
            registry=registry
        )

        self.samples = Gauge(
            f"{prefix}samples",
            "Aggregated samples in the latest snapshot",
            registry=registry
        )

    def record_cycle(self, outcome: str):
        """Record a finished cycle (published, fetch_error, stopped)."""
        self.cycles_total.labels(outcome=outcome).inc()

    def record_fetch_error(self, source: str):
        self.fetch_errors_total.labels(source=source).inc()

    def record_parse_warnings(self, count: int):
        if count:
            self.parse_warnings_total.inc(count)

    def record_cycle_duration(self, duration: float):
        self.cycle_duration_seconds.observe(duration)

    def set_snapshot_size(self, families: int, samples: int):
        self.families.set(families)
        self.samples.set(samples)

    def render(self) -> bytes:
        """Exposition text for the registry."""
        return generate_latest(self.registry)
