"""Shared fixtures: a fake clock and a scripted metrics source."""
from typing import List, Optional, Union

import pytest

from metrics_viewer.errors import SourceUnavailable
from metrics_viewer.sources import MetricsSource


class FakeClock:
    """Deterministic wall clock, monotonic clock and sleeper."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start
        self.sleeps: List[float] = []

    def time(self) -> float:
        return self.now

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float):
        self.now += seconds


class ScriptedSource(MetricsSource):
    """Returns queued responses; an exception instance in the script is raised instead."""

    def __init__(self, script: List[Union[str, Exception]], clock: Optional[FakeClock] = None,
                 fetch_cost: float = 0.0):
        self.script = list(script)
        self.calls = 0
        self.clock = clock
        self.fetch_cost = fetch_cost

    def fetch(self) -> str:
        self.calls += 1
        if self.clock and self.fetch_cost:
            self.clock.advance(self.fetch_cost)
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return item

    def describe(self) -> str:
        return "scripted"


def unavailable(detail: str = "boom", status_code: Optional[int] = None) -> SourceUnavailable:
    return SourceUnavailable("scripted", detail, status_code=status_code)


@pytest.fixture
def clock():
    return FakeClock()


SAMPLE_TEXT = """# HELP http_requests_total Total requests.
# TYPE http_requests_total counter
http_requests_total{method="get",status="200",pod="a"} 10
http_requests_total{method="get",status="500",pod="a"} 2
http_requests_total{method="post",status="200",pod="b"} 5
# TYPE cpu_usage gauge
cpu_usage{host="a"} 42
cpu_usage{host="b"} 8
"""


@pytest.fixture
def sample_text():
    return SAMPLE_TEXT
