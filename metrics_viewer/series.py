"""Data structures for parsed metric samples, families and snapshots."""
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Iterator, Optional, Tuple, Union

from metrics_viewer.errors import ParseWarning


class LabelSet(Mapping):
    """Immutable label name -> value mapping with order-independent equality and hashing."""

    __slots__ = ("_pairs", "_index")

    def __init__(self, labels: Union[Mapping, Iterable[Tuple[str, str]], None] = None):
        items = dict(labels or {})
        for name in items:
            if not name:
                raise ValueError("label names must be non-empty")
        self._pairs: Tuple[Tuple[str, str], ...] = tuple(sorted(items.items()))
        self._index: Dict[str, str] = dict(self._pairs)

    def __getitem__(self, name: str) -> str:
        return self._index[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._pairs)

    def __hash__(self) -> int:
        return hash(self._pairs)

    def __eq__(self, other) -> bool:
        if isinstance(other, LabelSet):
            return self._pairs == other._pairs
        if isinstance(other, Mapping):
            return self._index == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"LabelSet({self._index!r})"

    @property
    def pairs(self) -> Tuple[Tuple[str, str], ...]:
        """Sorted (name, value) pairs."""
        return self._pairs

    def without(self, names: Iterable[str]) -> "LabelSet":
        """Return a copy with the given label names removed."""
        drop = set(names)
        return LabelSet((k, v) for k, v in self._pairs if k not in drop)

    def label_key(self) -> str:
        """Generate a stable key from sorted labels."""
        return ",".join(f"{k}={v}" for k, v in self._pairs)


EMPTY_LABELS = LabelSet()


@dataclass(frozen=True)
class Sample:
    """A single exposed measurement."""
    name: str
    labels: LabelSet
    value: float
    timestamp: Optional[float] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("sample name must be non-empty")
        if not isinstance(self.labels, LabelSet):
            object.__setattr__(self, "labels", LabelSet(self.labels))
        object.__setattr__(self, "value", float(self.value))


@dataclass(frozen=True)
class MetricFamily:
    """Samples sharing one metric name, in exposition order."""
    name: str
    samples: Tuple[Sample, ...] = ()
    type: Optional[str] = None
    help: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "samples", tuple(self.samples))
        for sample in self.samples:
            if sample.name != self.name:
                raise ValueError(
                    f"sample '{sample.name}' does not belong to family '{self.name}'"
                )

    def label_names(self) -> FrozenSet[str]:
        """All label names used by any sample of this family."""
        names = set()
        for sample in self.samples:
            names.update(sample.labels)
        return frozenset(names)


class IgnoreMode(Enum):
    """How an IgnoreSet selects labels to drop."""
    EXPLICIT = "explicit"
    ALL = "all"
    NONE = "none"


@dataclass(frozen=True)
class IgnoreSet:
    """Label names excluded from the aggregation key."""
    mode: IgnoreMode
    names: FrozenSet[str] = frozenset()

    ALL_TOKEN = "ALL"
    NONE_TOKEN = "NONE"

    @classmethod
    def explicit(cls, names: Iterable[str]) -> "IgnoreSet":
        return cls(IgnoreMode.EXPLICIT, frozenset(names))

    @classmethod
    def all(cls) -> "IgnoreSet":
        return cls(IgnoreMode.ALL)

    @classmethod
    def none(cls) -> "IgnoreSet":
        return cls(IgnoreMode.NONE)

    @classmethod
    def parse(cls, text: Optional[str]) -> "IgnoreSet":
        """
        Parse a comma delimited list of label names.

        The exact tokens ``ALL`` and ``NONE`` select the sentinels. An empty
        value ignores nothing.
        """
        text = (text or "").strip()
        if text == cls.ALL_TOKEN:
            return cls.all()
        if text == cls.NONE_TOKEN:
            return cls.none()
        names = [part.strip() for part in text.split(",") if part.strip()]
        if not names:
            return cls.none()
        return cls.explicit(names)

    def ignores(self, label_name: str) -> bool:
        if self.mode is IgnoreMode.ALL:
            return True
        if self.mode is IgnoreMode.NONE:
            return False
        return label_name in self.names

    def __str__(self) -> str:
        if self.mode is IgnoreMode.ALL:
            return self.ALL_TOKEN
        if self.mode is IgnoreMode.NONE:
            return self.NONE_TOKEN
        return ",".join(sorted(self.names))


@dataclass(frozen=True)
class Snapshot:
    """One polling cycle's aggregated, filtered result set."""
    cycle: int
    timestamp: float
    families: Tuple[MetricFamily, ...]
    ignored_labels: FrozenSet[str] = frozenset()
    warnings: Tuple[ParseWarning, ...] = ()

    def family(self, name: str) -> Optional[MetricFamily]:
        for family in self.families:
            if family.name == name:
                return family
        return None

    @property
    def sample_count(self) -> int:
        return sum(len(f.samples) for f in self.families)


class EventKind(Enum):
    """Kinds of side-channel events emitted by the poller."""
    FETCH_ERROR = "fetch_error"
    PARSE_WARNING = "parse_warning"


@dataclass(frozen=True)
class CycleEvent:
    """A non-fatal error or warning tagged with its cycle number."""
    cycle: int
    timestamp: float
    kind: EventKind
    message: str
    status_code: Optional[int] = field(default=None, compare=False)
