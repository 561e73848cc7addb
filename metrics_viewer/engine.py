"""Polling engine: fetch, parse, filter and aggregate on a fixed interval."""
from collections import deque
from enum import Enum
from typing import Callable, Deque, List, Optional
import logging
import threading
import time

from metrics_viewer.aggregator import aggregate
from metrics_viewer.errors import ConfigurationError, SourceUnavailable
from metrics_viewer.filters import NameFilter
from metrics_viewer.parser import parse
from metrics_viewer.self_metrics import SelfMetrics
from metrics_viewer.series import CycleEvent, EventKind, IgnoreSet, Snapshot
from metrics_viewer.sources import MetricsSource

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[Snapshot], None]
EventListener = Callable[[CycleEvent], None]


class PollerState(Enum):
    """Where the poller is within its cycle."""
    IDLE = "idle"
    FETCHING = "fetching"
    PARSING = "parsing"
    AGGREGATING = "aggregating"
    PUBLISHED = "published"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


class Poller:
    """
    Drives the fetch -> parse -> filter -> aggregate cycle.

    Cycles are strictly sequential. Every cycle gets a number, whether or not
    the fetch succeeds; only successful cycles publish a Snapshot.
    """

    def __init__(
        self,
        source: MetricsSource,
        interval_s: float,
        name_filter: Optional[NameFilter] = None,
        ignore: Optional[IgnoreSet] = None,
        self_metrics: Optional[SelfMetrics] = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
        sleeper: Optional[Callable[[float], object]] = None,
        events_buffer: int = 200
    ):
        if interval_s <= 0:
            raise ConfigurationError(f"interval value must be positive; got: {interval_s}")

        self.source = source
        self.interval_s = interval_s
        self.name_filter = name_filter or NameFilter()
        self.ignore = ignore or IgnoreSet.none()
        self.self_metrics = self_metrics
        self.clock = clock
        self.monotonic = monotonic

        self._stop_event = threading.Event()
        # Default sleep wakes up early when stop() is called
        self.sleeper = sleeper or self._stop_event.wait

        self.state = PollerState.IDLE
        self.cycle = 0
        self.start_time = self.clock()
        self.latest: Optional[Snapshot] = None
        self.last_error: Optional[CycleEvent] = None
        self.events: Deque[CycleEvent] = deque(maxlen=events_buffer)
        self._events_lock = threading.Lock()

        self._snapshot_listeners: List[SnapshotListener] = []
        self._event_listeners: List[EventListener] = []

    def subscribe(self, on_snapshot: Optional[SnapshotListener] = None,
                  on_event: Optional[EventListener] = None):
        """Register consumers for snapshots and for error/warning events."""
        if on_snapshot:
            self._snapshot_listeners.append(on_snapshot)
        if on_event:
            self._event_listeners.append(on_event)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self):
        """Request the loop to stop at the next boundary."""
        logger.info("Stopping poller")
        self._stop_event.set()

    def run_once(self) -> Optional[Snapshot]:
        """
        Execute a single cycle.

        Returns:
            The published Snapshot, or None if the fetch failed or a stop was
            requested before publishing.
        """
        if self.stopped:
            self._set_state(PollerState.STOPPED)
            return None

        self.cycle += 1
        cycle = self.cycle
        cycle_start = self.monotonic()

        self._set_state(PollerState.FETCHING)
        try:
            text = self.source.fetch()
        except SourceUnavailable as e:
            logger.warning(f"Cycle {cycle}: fetch failed: {e}")
            event = CycleEvent(cycle, self.clock(), EventKind.FETCH_ERROR, str(e), e.status_code)
            self.last_error = event
            self._emit(event)
            if self.self_metrics:
                self.self_metrics.record_fetch_error(self.source.describe())
                self.self_metrics.record_cycle("fetch_error")
            self._set_state(PollerState.SLEEPING)
            return None

        if self.stopped:
            return self._abandon(cycle)

        self._set_state(PollerState.PARSING)
        families, warnings = parse(text)
        for warning in warnings:
            self._emit(CycleEvent(cycle, self.clock(), EventKind.PARSE_WARNING, str(warning)))
        if warnings:
            logger.info(f"Cycle {cycle}: skipped {len(warnings)} malformed lines")

        self._set_state(PollerState.AGGREGATING)
        families = self.name_filter.apply(families)
        aggregated, ignored = aggregate(families, self.ignore)

        snapshot = Snapshot(
            cycle=cycle,
            timestamp=self.clock(),
            families=tuple(aggregated),
            ignored_labels=ignored,
            warnings=tuple(warnings),
        )

        if self.stopped:
            return self._abandon(cycle)

        self._publish(snapshot)
        self._set_state(PollerState.PUBLISHED)

        if self.self_metrics:
            self.self_metrics.record_parse_warnings(len(warnings))
            self.self_metrics.set_snapshot_size(len(snapshot.families), snapshot.sample_count)
            self.self_metrics.record_cycle_duration(self.monotonic() - cycle_start)
            self.self_metrics.record_cycle("published")

        return snapshot

    def recent_events(self, limit: Optional[int] = None,
                      kind: Optional[EventKind] = None) -> List[CycleEvent]:
        """Copy of the buffered events, oldest first, optionally filtered by kind."""
        with self._events_lock:
            selected = [e for e in self.events if kind is None or e.kind is kind]
        if limit is not None:
            selected = selected[-limit:] if limit > 0 else []
        return selected

    def run(self, max_cycles: Optional[int] = None):
        """Run cycles until stopped (or until max_cycles have run)."""
        self.start_time = self.clock()
        logger.info(f"Starting poller: {self.source.describe()}, interval {self.interval_s}s")

        cycles = 0
        while not self.stopped:
            cycle_start = self.monotonic()

            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Error in cycle {self.cycle}: {e}", exc_info=True)

            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            if self.stopped:
                break

            # Sleep for remaining time in the interval
            cycle_duration = self.monotonic() - cycle_start
            sleep_time = max(0, self.interval_s - cycle_duration)

            if sleep_time > 0:
                self._set_state(PollerState.SLEEPING)
                self.sleeper(sleep_time)
            else:
                logger.warning(
                    f"Cycle took {cycle_duration:.3f}s, longer than interval {self.interval_s}s"
                )

            if cycles % 60 == 0:
                logger.info(f"Cycle {self.cycle}: {self._summary()}")

        self._set_state(PollerState.STOPPED)
        logger.info(f"Poller stopped after {cycles} cycles")

    def _abandon(self, cycle: int) -> None:
        logger.info(f"Cycle {cycle}: stop requested, discarding results")
        self._set_state(PollerState.STOPPED)
        if self.self_metrics:
            self.self_metrics.record_cycle("stopped")
        return None

    def _publish(self, snapshot: Snapshot):
        self.latest = snapshot
        for listener in self._snapshot_listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Snapshot listener failed: {e}", exc_info=True)

    def _emit(self, event: CycleEvent):
        with self._events_lock:
            self.events.append(event)
        if event.kind is EventKind.PARSE_WARNING:
            logger.debug(f"Cycle {event.cycle}: {event.message}")
        for listener in self._event_listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Event listener failed: {e}", exc_info=True)

    def _set_state(self, state: PollerState):
        if state is not self.state:
            logger.debug(f"Poller state {self.state.value} -> {state.value}")
            self.state = state

    def _summary(self) -> str:
        if self.latest is None:
            return "no snapshot yet"
        return (
            f"{len(self.latest.families)} families, "
            f"{self.latest.sample_count} samples"
        )


def run_poller_thread(poller: Poller):
    """Run the poller in a separate thread."""
    try:
        poller.run()
    except Exception as e:
        logger.error(f"Poller thread error: {e}", exc_info=True)
        poller.stop()
