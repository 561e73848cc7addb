"""Error types raised and reported by the metrics pipeline."""
from dataclasses import dataclass
from typing import Optional


class MetricsViewerError(Exception):
    """Base class for all metrics viewer errors."""


class ConfigurationError(MetricsViewerError):
    """Invalid, conflicting or missing configuration. Fatal, raised before polling starts."""


class SourceUnavailable(MetricsViewerError):
    """A metrics source could not deliver text for this cycle."""

    def __init__(self, source: str, detail: str, status_code: Optional[int] = None):
        self.source = source
        self.detail = detail
        self.status_code = status_code
        message = f"{source}: {detail}"
        if status_code is not None:
            message = f"{message} (status {status_code})"
        super().__init__(message)


@dataclass(frozen=True)
class ParseWarning:
    """A malformed exposition line that was skipped."""
    line_number: int
    line: str
    reason: str

    def __str__(self) -> str:
        return f"line {self.line_number}: {self.reason}: {self.line!r}"
