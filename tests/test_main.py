"""Tests for the command line entry point."""
import pytest

from metrics_viewer import main as main_module
from metrics_viewer.main import build_parser, main


@pytest.fixture(autouse=True)
def no_mock_env(monkeypatch):
    monkeypatch.delenv("MOCK_METRICS_DATA", raising=False)


def test_print_aggregates_file(tmp_path, capsys, sample_text):
    path = tmp_path / "metrics.txt"
    path.write_text(sample_text)

    exit_code = main(["print", "--file", str(path), "--aggregate-ignore-labels", "status,pod"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert 'http_requests_total{method="get"} 12' in out
    assert 'http_requests_total{method="post"} 5' in out
    assert 'cpu_usage{host="a"} 42' in out


def test_print_with_filter_and_all(tmp_path, capsys, sample_text):
    path = tmp_path / "metrics.txt"
    path.write_text(sample_text)

    exit_code = main([
        "print", "--file", str(path), "--filter", "^cpu", "--aggregate-ignore-labels", "ALL",
    ])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "http_requests_total" not in out
    assert "cpu_usage 50" in out


def test_print_fetch_failure_exits_non_zero(tmp_path, capsys, monkeypatch):
    path = tmp_path / "metrics.txt"
    path.write_text("up 1\n")
    original = main_module.create_poller

    def create_then_delete(config):
        # File exists at configuration time but disappears before the fetch
        poller = original(config)
        path.unlink()
        return poller

    monkeypatch.setattr(main_module, "create_poller", create_then_delete)

    exit_code = main(["print", "--file", str(path)])

    assert exit_code == 1
    assert "could not read file" in capsys.readouterr().err


def test_configuration_error_exit_code(capsys):
    assert main(["print"]) == 2
    assert "one source is required" in capsys.readouterr().err


def test_serve_accepts_port():
    args = build_parser().parse_args(["serve", "--url", "http://h/metrics", "--port", "9000"])
    assert args.port == 9000
    assert args.command == "serve"


def test_http_fetch_timeout_matches_interval():
    config = main_module.config_from_args(
        build_parser().parse_args(["print", "--url", "http://h/metrics", "--interval", "2"])
    )

    poller = main_module.create_poller(config)
    try:
        assert poller.interval_s == 2
        assert poller.source.timeout == 2.0
    finally:
        poller.source.close()
