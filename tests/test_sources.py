"""Tests for the metrics sources."""
from unittest import mock

import pytest
import requests

from metrics_viewer.config import SourceConfig
from metrics_viewer.errors import ConfigurationError, SourceUnavailable
from metrics_viewer.parser import parse
from metrics_viewer.sources import (
    FileSource,
    ManagementApiClient,
    MockSource,
    RemoteApiSource,
    UrlSource,
    build_source,
)


def fake_response(status_code=200, text="", reason="OK"):
    response = requests.Response()
    response.status_code = status_code
    response._content = text.encode("utf-8")
    response.encoding = "utf-8"
    response.reason = reason
    return response


def test_file_source_rereads_every_fetch(tmp_path):
    path = tmp_path / "metrics.txt"
    path.write_text("a 1\n")
    source = FileSource(str(path))

    assert source.fetch() == "a 1\n"
    path.write_text("a 2\n")
    assert source.fetch() == "a 2\n"


def test_file_source_missing(tmp_path):
    source = FileSource(str(tmp_path / "missing.txt"))
    with pytest.raises(SourceUnavailable, match="could not read file"):
        source.fetch()


def test_url_source_success_with_basic_auth():
    session = mock.Mock(spec=requests.Session)
    session.get.return_value = fake_response(text="up 1\n")
    source = UrlSource("http://host:9100/metrics", "admin", "secret", timeout=3, session=session)

    assert source.fetch() == "up 1\n"
    session.get.assert_called_once_with(
        "http://host:9100/metrics", auth=("admin", "secret"), timeout=3
    )


def test_url_source_without_credentials():
    session = mock.Mock(spec=requests.Session)
    session.get.return_value = fake_response(text="up 1\n")
    UrlSource("http://host/metrics", session=session).fetch()

    assert session.get.call_args.kwargs["auth"] is None


def test_url_source_non_2xx_carries_status():
    session = mock.Mock(spec=requests.Session)
    session.get.return_value = fake_response(status_code=401, reason="Unauthorized")
    source = UrlSource("http://host/metrics", session=session)

    with pytest.raises(SourceUnavailable) as excinfo:
        source.fetch()

    assert excinfo.value.status_code == 401
    assert "401" in str(excinfo.value)


def test_url_source_network_error():
    session = mock.Mock(spec=requests.Session)
    session.get.side_effect = requests.ConnectionError("connection refused")
    source = UrlSource("http://host/metrics", session=session)

    with pytest.raises(SourceUnavailable, match="connection refused") as excinfo:
        source.fetch()
    assert excinfo.value.status_code is None


def test_url_source_description_hides_password():
    source = UrlSource("http://host/metrics", "admin", "secret")
    assert "secret" not in source.describe()
    assert "admin" in source.describe()


def test_remote_source_delegates_to_client():
    client = mock.Mock()
    client.get_metrics.return_value = "jfrt_up 1\n"
    assert RemoteApiSource(client).fetch() == "jfrt_up 1\n"


def test_remote_source_wraps_client_errors():
    client = mock.Mock()
    client.get_metrics.side_effect = RuntimeError("token expired")

    with pytest.raises(SourceUnavailable, match="token expired"):
        RemoteApiSource(client).fetch()


def test_management_client_uses_token_and_reports_status():
    session = requests.Session()
    with mock.patch.object(session, "get", return_value=fake_response(403, reason="Forbidden")) as get:
        client = ManagementApiClient("https://rt.example.com/artifactory/", access_token="tok",
                                     session=session)
        source = RemoteApiSource(client)

        with pytest.raises(SourceUnavailable) as excinfo:
            source.fetch()

    get.assert_called_once_with(
        "https://rt.example.com/artifactory/api/v1/metrics", timeout=client.timeout
    )
    assert session.headers["Authorization"] == "Bearer tok"
    assert excinfo.value.status_code == 403


def test_mock_source_is_parseable_and_evolves():
    source = MockSource(seed=1)
    first, warnings = parse(source.fetch())
    second, _ = parse(source.fetch())

    assert warnings == []
    assert [f.name for f in first] == [
        "app_http_requests_total",
        "app_db_queries_total",
        "app_heap_bytes",
        "app_active_threads",
    ]
    assert first[0].type == "counter"
    for before, after in zip(first[0].samples, second[0].samples):
        assert after.value >= before.value


def test_mock_source_is_deterministic():
    assert MockSource(seed=3).fetch() == MockSource(seed=3).fetch()


def test_build_source_variants(tmp_path):
    path = tmp_path / "m.txt"
    path.write_text("")

    assert isinstance(build_source(SourceConfig(file=str(path))), FileSource)
    url_source = build_source(SourceConfig(url="http://h/metrics", user="u", password="p"), timeout=2)
    assert isinstance(url_source, UrlSource)
    assert url_source.timeout == 2
    remote = build_source(SourceConfig(remote=True, remote_url="http://rt", token="t"))
    assert isinstance(remote, RemoteApiSource)
    assert isinstance(build_source(SourceConfig(mock=True)), MockSource)

    with pytest.raises(ConfigurationError):
        build_source(SourceConfig())
