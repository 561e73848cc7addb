"""Metrics sources: where raw exposition text comes from."""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import logging

import numpy as np
import requests

from metrics_viewer.config import SourceConfig
from metrics_viewer.errors import ConfigurationError, SourceUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 5.0


class MetricsSource(ABC):
    """Anything that can return the current metrics text on demand."""

    @abstractmethod
    def fetch(self) -> str:
        """Return raw exposition text or raise SourceUnavailable."""

    def describe(self) -> str:
        return self.__class__.__name__

    def close(self):
        """Release any held resources."""

    def __repr__(self) -> str:
        return self.describe()


class FileSource(MetricsSource):
    """Reads the whole file on every fetch."""

    def __init__(self, path: str):
        self.path = Path(path)

    def fetch(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise SourceUnavailable(self.describe(), f"could not read file: {e}") from e

    def describe(self) -> str:
        return f"file '{self.path}'"


class UrlSource(MetricsSource):
    """HTTP(S) endpoint, optionally protected by basic auth."""

    def __init__(
        self,
        url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_S,
        session: Optional[requests.Session] = None
    ):
        self.url = url
        self.username = username
        self.password = password
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self) -> str:
        auth = None
        if self.username:
            auth = (self.username, self.password or "")

        try:
            response = self.session.get(self.url, auth=auth, timeout=self.timeout)
        except requests.RequestException as e:
            raise SourceUnavailable(self.describe(), f"request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise SourceUnavailable(
                self.describe(),
                f"unexpected response {response.reason or ''}".strip(),
                status_code=response.status_code
            )
        logger.debug(f"Fetched {len(response.content)} bytes from {self.url}")
        return response.text

    def close(self):
        self.session.close()

    def describe(self) -> str:
        # Never include the password
        user = f", user: '{self.username}'" if self.username else ""
        return f"url '{self.url}'{user}"


class ManagementApiClient:
    """
    Authenticated client for a management API exposing metrics at ``api/v1/metrics``.

    Credentials are resolved by the caller; this client only attaches them.
    """

    METRICS_PATH = "api/v1/metrics"

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_S,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if access_token:
            self.session.headers["Authorization"] = f"Bearer {access_token}"
        elif username:
            self.session.auth = (username, password or "")

    @property
    def metrics_url(self) -> str:
        return f"{self.base_url}/{self.METRICS_PATH}"

    def get_metrics(self) -> str:
        response = self.session.get(self.metrics_url, timeout=self.timeout)
        response.raise_for_status()
        return response.text

    def close(self):
        self.session.close()


class RemoteApiSource(MetricsSource):
    """Delegates to an externally supplied client with a ``get_metrics()`` method."""

    def __init__(self, client):
        self.client = client

    def fetch(self) -> str:
        try:
            return self.client.get_metrics()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise SourceUnavailable(self.describe(), f"remote API error: {e}", status_code=status) from e
        except Exception as e:
            raise SourceUnavailable(self.describe(), f"remote API error: {e}") from e

    def close(self):
        if hasattr(self.client, "close"):
            self.client.close()

    def describe(self) -> str:
        url = getattr(self.client, "metrics_url", None)
        return f"remote API '{url}'" if url else "remote API"


class MockSource(MetricsSource):
    """
    Synthetic exposition text for demos and tests.

    Counters grow by Poisson increments and gauges follow a clamped random
    walk, so consecutive fetches look like a live service.
    """

    COUNTERS: List[Tuple[str, str, List[Dict[str, str]]]] = [
        (
            "app_http_requests_total",
            "Total HTTP requests served",
            [
                {"method": "GET", "path": "/api", "status": "200", "start": "0", "end": "100"},
                {"method": "GET", "path": "/api", "status": "500", "start": "0", "end": "100"},
                {"method": "POST", "path": "/api", "status": "200", "start": "100", "end": "200"},
                {"method": "GET", "path": "/health", "status": "200", "start": "0", "end": "100"},
            ],
        ),
        (
            "app_db_queries_total",
            "Total database queries",
            [{"pool": "primary"}, {"pool": "replica"}],
        ),
    ]

    GAUGES: List[Tuple[str, str, List[Dict[str, str]], float, float, Tuple[float, float]]] = [
        ("app_heap_bytes", "Heap in use", [{"area": "young"}, {"area": "old"}], 5e8, 2e7, (0.0, 2e9)),
        ("app_active_threads", "Live threads", [{}], 40.0, 2.0, (1.0, 500.0)),
    ]

    def __init__(self, seed: int = 42, base_rate: float = 5.0):
        self.rng = np.random.default_rng(seed)
        self.base_rate = base_rate
        self.state: Dict[str, float] = {}

    def fetch(self) -> str:
        lines: List[str] = []

        for name, help_text, label_sets in self.COUNTERS:
            lines.append(f"# HELP {name} {help_text}")
            lines.append(f"# TYPE {name} counter")
            for labels in label_sets:
                key = self._key(name, labels)
                value = self.state.get(key, 0.0) + float(self.rng.poisson(self.base_rate))
                self.state[key] = value
                lines.append(self._line(name, labels, value))

        for name, help_text, label_sets, start, step, clamp in self.GAUGES:
            lines.append(f"# HELP {name} {help_text}")
            lines.append(f"# TYPE {name} gauge")
            for labels in label_sets:
                key = self._key(name, labels)
                value = self.state.get(key, start) + self.rng.normal(0, step)
                value = float(np.clip(value, clamp[0], clamp[1]))
                self.state[key] = value
                lines.append(self._line(name, labels, value))

        return "\n".join(lines) + "\n"

    def describe(self) -> str:
        return "mock data"

    @staticmethod
    def _key(name: str, labels: Dict[str, str]) -> str:
        return name + "|" + ",".join(f"{k}={v}" for k, v in sorted(labels.items()))

    @staticmethod
    def _line(name: str, labels: Dict[str, str], value: float) -> str:
        if not labels:
            return f"{name} {value!r}"
        rendered = ",".join(f'{k}="{v}"' for k, v in labels.items())
        return f"{name}{{{rendered}}} {value!r}"


def build_source(config: SourceConfig, timeout: float = DEFAULT_TIMEOUT_S) -> MetricsSource:
    """Construct the single configured source."""
    if config.file:
        return FileSource(config.file)
    if config.url:
        return UrlSource(config.url, config.user, config.password, timeout=timeout)
    if config.remote:
        client = ManagementApiClient(
            config.remote_url,
            access_token=config.token,
            username=config.user,
            password=config.password,
            timeout=timeout
        )
        return RemoteApiSource(client)
    if config.mock:
        return MockSource(seed=config.mock_seed)
    raise ConfigurationError("one source is required: file | url | remote")
