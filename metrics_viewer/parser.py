"""Parser for the OpenMetrics/Prometheus text exposition format.

Parsing is tolerant: a line that cannot be understood is reported as a
``ParseWarning`` and skipped, so one bad line never loses the rest of a scrape.
Each data line is handed to ``prometheus_client.parser`` on its own, which
takes care of label unescaping and special float values.

Supported line shapes::

    # HELP http_requests_total Total requests.
    # TYPE http_requests_total counter
    http_requests_total{method="get",code="200"} 1027 1395066363000
    http_requests_total{method="get",code="500"} 3 1520879607.789
    latency_seconds_bucket{le="0.5"} 3 # {trace_id="abc"} 0.2
    process_open_fds 12
"""
import logging
import re
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple, Union

from prometheus_client.parser import text_string_to_metric_families

from metrics_viewer.errors import ParseWarning
from metrics_viewer.series import LabelSet, MetricFamily, Sample

logger = logging.getLogger(__name__)

METRIC_NAME_RE = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
EXEMPLAR_RE = re.compile(r"\s#\s*\{")
UNESCAPED_QUOTE_RE = re.compile(r'(?<!\\)"')
MILLIS_RE = re.compile(r"[+-]?\d+")


def parse(text: Union[str, bytes]) -> Tuple[List[MetricFamily], List[ParseWarning]]:
    """
    Parse exposition text into metric families.

    Args:
        text: Raw exposition text; bytes are decoded as UTF-8

    Returns:
        (families in first-seen order, warnings for skipped lines)
    """
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")

    grouped: "OrderedDict[str, List[Sample]]" = OrderedDict()
    types: Dict[str, str] = {}
    helps: Dict[str, str] = {}
    warnings: List[ParseWarning] = []

    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith("#"):
            _parse_metadata(line, types, helps)
            continue
        try:
            sample = parse_sample(line)
        except ValueError as e:
            warnings.append(ParseWarning(line_number, raw_line, str(e) or "malformed sample"))
            continue
        grouped.setdefault(sample.name, []).append(sample)

    families = [
        MetricFamily(name, tuple(samples), type=types.get(name), help=helps.get(name))
        for name, samples in grouped.items()
    ]

    if warnings:
        logger.debug(f"Skipped {len(warnings)} malformed lines")

    return families, warnings


def parse_sample(line: str) -> Sample:
    """Parse a single data line. Raises ValueError if the line is malformed."""
    line = strip_exemplar(line.strip())
    families = list(text_string_to_metric_families(line))
    if len(families) != 1 or len(families[0].samples) != 1:
        raise ValueError("expected exactly one sample")

    parsed = families[0].samples[0]
    if not METRIC_NAME_RE.fullmatch(parsed.name):
        raise ValueError(f"invalid metric name '{parsed.name}'")
    timestamp = _timestamp_seconds(line, parsed.timestamp)
    return Sample(parsed.name, LabelSet(parsed.labels), parsed.value, timestamp)


def strip_exemplar(line: str) -> str:
    """Drop a trailing OpenMetrics exemplar (`` # {labels} value [ts]``)."""
    for match in EXEMPLAR_RE.finditer(line):
        head = line[:match.start()]
        # A marker inside a quoted label value is not an exemplar
        if len(UNESCAPED_QUOTE_RE.findall(head.replace("\\\\", ""))) % 2 == 0:
            return head.rstrip()
    return line


def _timestamp_seconds(line: str, parsed: Optional[float]) -> Optional[float]:
    """
    Integer timestamps are milliseconds (Prometheus text format); decimal ones
    are seconds (OpenMetrics).
    """
    if parsed is None:
        return None
    token = line.split()[-1]
    if MILLIS_RE.fullmatch(token):
        return float(parsed)
    return float(token)


def _parse_metadata(line: str, types: Dict[str, str], helps: Dict[str, str]):
    """Record HELP and TYPE lines; other comments are ignored."""
    parts = line[1:].strip().split(None, 2)
    if len(parts) < 2:
        return
    keyword, name = parts[0], parts[1]
    text = parts[2] if len(parts) > 2 else ""
    if keyword == "TYPE":
        types[name] = text.strip().lower()
    elif keyword == "HELP":
        helps[name] = _unescape_help(text)


def _unescape_help(text: str) -> str:
    return re.sub(r"\\([\\n])", lambda m: "\n" if m.group(1) == "n" else "\\", text)
