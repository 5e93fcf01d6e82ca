import logging

import pytest

from relay_fakes import BASE_DIR  # noqa: F401

from function_streamer.services.graph_token import get_graph_token, get_graph_token_for_build

ENV_VARS = ["NETLIFY_DEV", "NETLIFY_LOCAL", "NETLIFY", "_NETLIFY_GRAPH_TOKEN", "NETLIFY_GRAPH_TOKEN"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class WebHeaders:
    def __init__(self, values):
        self._values = {k.lower(): v for k, v in values.items()}

    def get(self, name):
        return self._values.get(name.lower())


class RequestLike:
    def __init__(self, headers, authlifyToken=None):
        self.headers = headers
        self.authlifyToken = authlifyToken


def test_reads_token_from_plain_headers():
    assert get_graph_token({"headers": {"x-nf-graph-token": "tok"}}).token == "tok"
    assert get_graph_token({"headers": {"X-Nf-Graph-Token": "TOK"}}).token == "TOK"


def test_list_header_value_uses_first_entry():
    assert get_graph_token({"headers": {"x-nf-graph-token": ["one", "two"]}}).token == "one"


def test_reads_token_from_web_style_headers():
    request = RequestLike(WebHeaders({"X-NF-GRAPH-TOKEN": "web"}))
    assert get_graph_token(request).token == "web"


def test_falls_back_to_authlify_token():
    assert get_graph_token({"headers": {}, "authlifyToken": "legacy"}).token == "legacy"
    assert get_graph_token(RequestLike({}, authlifyToken="legacy-obj")).token == "legacy-obj"


def test_no_token_anywhere_returns_none():
    result = get_graph_token({"headers": {}})
    assert result.token is None
    assert result.errors is None


def test_dev_mode_falls_back_to_environment(monkeypatch):
    monkeypatch.setenv("NETLIFY_DEV", "true")
    monkeypatch.setenv("NETLIFY_GRAPH_TOKEN", "env-token")
    assert get_graph_token({"headers": {}}).token == "env-token"


def test_missing_event_in_function_is_an_error(caplog):
    with caplog.at_level(logging.ERROR):
        result = get_graph_token()

    assert result.token is None
    assert [e.type for e in result.errors] == ["missing-event-in-function"]
    assert "You must provide an event" in caplog.text


def test_suppress_log_keeps_errors_quiet(caplog):
    with caplog.at_level(logging.ERROR):
        result = get_graph_token(None, suppress_log=True)
    assert result.errors
    assert caplog.text == ""


def test_event_during_build_is_an_error(monkeypatch):
    monkeypatch.setenv("NETLIFY", "true")
    result = get_graph_token({"headers": {"x-nf-graph-token": "tok"}}, suppress_log=True)
    assert [e.type for e in result.errors] == ["provided-event-in-build"]


def test_build_reads_environment(monkeypatch):
    monkeypatch.setenv("NETLIFY_LOCAL", "true")
    monkeypatch.setenv("NETLIFY_GRAPH_TOKEN", "build-token")
    assert get_graph_token().token == "build-token"
    assert get_graph_token_for_build().token == "build-token"


def test_injected_token_prefers_underscore_variable(monkeypatch):
    monkeypatch.setenv("_NETLIFY_GRAPH_TOKEN", "injected")
    monkeypatch.setenv("NETLIFY_GRAPH_TOKEN", "plain")
    assert get_graph_token().token == "injected"
