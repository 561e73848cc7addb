"""Metric family name filtering."""
import re
from typing import Iterable, List, Optional

from metrics_viewer.errors import ConfigurationError
from metrics_viewer.series import MetricFamily

MATCH_ALL = ".*"


class NameFilter:
    """Predicate over metric family names backed by one compiled regular expression."""

    def __init__(self, pattern: Optional[str] = None):
        self.pattern = pattern or MATCH_ALL
        try:
            self._regex = re.compile(self.pattern)
        except re.error as e:
            raise ConfigurationError(f"invalid filter expression '{pattern}'; cause: {e}") from e

    def matches(self, family_name: str) -> bool:
        """True if the pattern matches anywhere in the name."""
        return self._regex.search(family_name) is not None

    def apply(self, families: Iterable[MetricFamily]) -> List[MetricFamily]:
        """Keep only families whose name matches, preserving order."""
        return [f for f in families if self.matches(f.name)]

    def __repr__(self) -> str:
        return f"NameFilter({self.pattern!r})"
