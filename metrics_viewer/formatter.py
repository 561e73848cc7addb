"""Render snapshots as exposition text or JSON-friendly dicts."""
import math
from typing import Any, Dict, List, Union

from metrics_viewer.series import LabelSet, MetricFamily, Snapshot


def format_value(value: float) -> str:
    """Exposition-format rendering of a float."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def format_labels(labels: LabelSet) -> str:
    if not labels:
        return ""
    rendered = ",".join(f'{k}="{escape_label_value(v)}"' for k, v in labels.pairs)
    return "{" + rendered + "}"


def format_family(family: MetricFamily) -> List[str]:
    lines = []
    if family.help:
        help_text = family.help.replace("\\", "\\\\").replace("\n", "\\n")
        lines.append(f"# HELP {family.name} {help_text}")
    if family.type:
        lines.append(f"# TYPE {family.name} {family.type}")
    for sample in family.samples:
        line = f"{sample.name}{format_labels(sample.labels)} {format_value(sample.value)}"
        if sample.timestamp is not None:
            line += f" {int(round(sample.timestamp * 1000))}"
        lines.append(line)
    return lines


def format_snapshot(snapshot: Snapshot) -> str:
    """Exposition text for every family in the snapshot."""
    lines: List[str] = []
    for family in snapshot.families:
        lines.extend(format_family(family))
    return "\n".join(lines) + ("\n" if lines else "")


def summarize(snapshot: Snapshot) -> str:
    """One-line description of a snapshot."""
    ignored = ",".join(sorted(snapshot.ignored_labels)) or "-"
    return (
        f"cycle {snapshot.cycle}: {len(snapshot.families)} families, "
        f"{snapshot.sample_count} samples, ignored labels: {ignored}"
    )


def _json_value(value: float) -> Union[float, str]:
    # JSON has no NaN/Inf
    if math.isnan(value) or math.isinf(value):
        return format_value(value)
    return value


def snapshot_to_dict(snapshot: Snapshot) -> Dict[str, Any]:
    return {
        "cycle": snapshot.cycle,
        "timestamp": snapshot.timestamp,
        "ignored_labels": sorted(snapshot.ignored_labels),
        "warnings": [str(w) for w in snapshot.warnings],
        "families": [
            {
                "name": family.name,
                "type": family.type,
                "help": family.help,
                "samples": [
                    {
                        "labels": dict(sample.labels),
                        "value": _json_value(sample.value),
                        "timestamp": sample.timestamp,
                    }
                    for sample in family.samples
                ],
            }
            for family in snapshot.families
        ],
    }
