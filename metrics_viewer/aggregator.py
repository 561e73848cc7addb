"""Label-based aggregation of metric samples."""
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from metrics_viewer.series import (
    EMPTY_LABELS,
    IgnoreMode,
    IgnoreSet,
    LabelSet,
    MetricFamily,
    Sample,
)


def aggregation_key(labels: LabelSet, ignore: IgnoreSet) -> LabelSet:
    """Labels left after removing the ignored names."""
    if ignore.mode is IgnoreMode.ALL:
        return EMPTY_LABELS
    if ignore.mode is IgnoreMode.NONE:
        return labels
    return labels.without(ignore.names)


def aggregate(
    families: Iterable[MetricFamily],
    ignore: IgnoreSet
) -> Tuple[List[MetricFamily], FrozenSet[str]]:
    """
    Collapse samples whose labels are equal once ignored labels are removed.

    Values within a group are summed. Family order is preserved and, within a
    family, groups appear in order of their first sample.

    Args:
        families: Parsed (and usually filtered) metric families
        ignore: Label names to drop from the grouping key

    Returns:
        (aggregated families, label names that were configured and actually seen)
    """
    observed: Set[str] = set()
    result: List[MetricFamily] = []

    for family in families:
        for sample in family.samples:
            observed.update(sample.labels)

        if ignore.mode is IgnoreMode.NONE:
            result.append(family)
            continue

        groups: Dict[LabelSet, List[Sample]] = {}
        for sample in family.samples:
            key = aggregation_key(sample.labels, ignore)
            groups.setdefault(key, []).append(sample)

        samples = tuple(_merge(family.name, key, members) for key, members in groups.items())
        result.append(MetricFamily(family.name, samples, type=family.type, help=family.help))

    return result, _actually_ignored(ignore, observed)


def _merge(name: str, key: LabelSet, members: List[Sample]) -> Sample:
    total = members[0].value
    for sample in members[1:]:
        total += sample.value
    return Sample(name, key, total, _latest_timestamp(members))


def _latest_timestamp(members: List[Sample]) -> Optional[float]:
    stamps = [s.timestamp for s in members if s.timestamp is not None]
    return max(stamps) if stamps else None


def _actually_ignored(ignore: IgnoreSet, observed: Set[str]) -> FrozenSet[str]:
    if ignore.mode is IgnoreMode.ALL:
        return frozenset(observed)
    if ignore.mode is IgnoreMode.NONE:
        return frozenset()
    return frozenset(ignore.names & observed)
