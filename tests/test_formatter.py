"""Tests for snapshot rendering."""
from metrics_viewer.formatter import format_snapshot, format_value, summarize
from metrics_viewer.parser import parse
from metrics_viewer.series import LabelSet, MetricFamily, Sample, Snapshot


def test_format_value():
    assert format_value(42.0) == "42"
    assert format_value(0.25) == "0.25"
    assert format_value(float("nan")) == "NaN"
    assert format_value(float("inf")) == "+Inf"
    assert format_value(float("-inf")) == "-Inf"


def test_rendered_text_parses_back_to_same_families(sample_text):
    families, _ = parse(sample_text)
    snapshot = Snapshot(cycle=1, timestamp=0.0, families=tuple(families))

    reparsed, warnings = parse(format_snapshot(snapshot))

    assert warnings == []
    assert reparsed == families


def test_label_values_are_escaped():
    sample = Sample("m", LabelSet({"path": 'C:\\x "q"\nz'}), 1.0, 12.5)
    snapshot = Snapshot(cycle=1, timestamp=0.0, families=(MetricFamily("m", (sample,)),))

    text = format_snapshot(snapshot)

    assert text == 'm{path="C:\\\\x \\"q\\"\\nz"} 1 12500\n'
    assert parse(text)[0][0].samples[0] == sample


def test_summarize():
    families, _ = parse('m{pod="1"} 1\n')
    snapshot = Snapshot(cycle=4, timestamp=0.0, families=tuple(families),
                        ignored_labels=frozenset({"pod", "end"}))
    assert summarize(snapshot) == "cycle 4: 1 families, 1 samples, ignored labels: end,pod"


def test_empty_snapshot_renders_empty_text():
    assert format_snapshot(Snapshot(cycle=1, timestamp=0.0, families=())) == ""
