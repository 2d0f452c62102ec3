import httpx
import pytest

from chat_core.domain.exceptions import NetworkError
from chat_core.domain.models import ContextEntry
from chat_core.providers.glm_client import MISSING_KEY_NOTICE, GlmClient


class CredentialsStub:
    def __init__(self, auth_key="k-test-123456"):
        self.auth_key = auth_key


class SettingsStub:
    http_timeout = 1.0
    glm_base_url = "https://open.bigmodel.cn/api/paas/v4"
    default_model = "chat"


CONTEXT = [ContextEntry(role="user", content="hi")]


class FakeResponse:
    def __init__(self, lines, status_code=200):
        self._lines = list(lines)
        self.status_code = status_code

    def iter_lines(self):
        for line in self._lines:
            yield line

    def iter_text(self):
        for line in self._lines:
            yield line


def install_client(monkeypatch, response, captured=None):
    state = {"closed": False, "client_closed": False}
    captured = captured if captured is not None else {}

    class StreamContext:
        def __enter__(self):
            return response

        def __exit__(self, *args):
            state["closed"] = True
            return False

    class Client:
        def __init__(self, *a, **kw):
            captured["client_kwargs"] = kw

        def __enter__(self):
            return self

        def __exit__(self, *a):
            state["client_closed"] = True
            return False

        def stream(self, method, url, json=None, headers=None):
            captured.update(method=method, url=url, json=json, headers=headers)
            return StreamContext()

    monkeypatch.setattr("httpx.Client", Client)
    return state


def test_stream_yields_delta_contents(monkeypatch):
    captured = {}
    install_client(
        monkeypatch,
        FakeResponse(
            [
                'data: {"choices": [{"index": 0, "delta": {"content": "hel"}}]}',
                "",
                'data: {"choices": [{"index": 0, "delta": {"content": "lo"}, "finish_reason": "stop"}]}',
                "data: [DONE]",
            ]
        ),
        captured,
    )
    gc = GlmClient(CredentialsStub(), SettingsStub())

    assert list(gc.open(CONTEXT)) == ["hel", "lo"]
    assert captured["method"] == "POST"
    assert captured["url"] == "https://open.bigmodel.cn/api/paas/v4/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer k-test-123456"
    assert captured["json"] == {
        "model": "glm-4-plus",
        "messages": [{"role": "user", "content": "hi"}],
        "stream": True,
    }


def test_missing_key_yields_single_notice(monkeypatch):
    def fail(*a, **kw):
        raise AssertionError("no request expected without a key")

    monkeypatch.setattr("httpx.Client", fail)
    for ctx in ([], CONTEXT, CONTEXT * 3):
        assert list(GlmClient(CredentialsStub(None), SettingsStub()).open(ctx)) == [MISSING_KEY_NOTICE]


def test_open_is_lazy(monkeypatch):
    captured = {}
    install_client(monkeypatch, FakeResponse([]), captured)
    stream = GlmClient(CredentialsStub(), SettingsStub()).open(CONTEXT)
    assert "url" not in captured
    assert list(stream) == []
    assert "url" in captured


def test_error_status_yields_nothing(monkeypatch):
    install_client(
        monkeypatch,
        FakeResponse(['{"error": {"code": "1002", "message": "bad key"}}', "more"], status_code=401),
    )
    assert list(GlmClient(CredentialsStub(), SettingsStub()).open(CONTEXT)) == []


def test_error_frames_are_skipped_between_valid_ones(monkeypatch):
    install_client(
        monkeypatch,
        FakeResponse(
            [
                'data: {"error": {"message": "overloaded"}}',
                'data: {"choices": [{"delta": {"content": "ok"}}]}',
                "data: {not json",
                ": keep-alive",
                'data: {"choices": [{"delta": {}, "finish_reason": "stop"}]}',
            ]
        ),
    )
    assert list(GlmClient(CredentialsStub(), SettingsStub()).open(CONTEXT)) == ["ok"]


@pytest.mark.parametrize(
    "line",
    [
        'data: {"choices": ["x"]}',
        'data: {"choices": [{"delta": "x"}]}',
        'data: {"choices": {"0": {}}}',
        'data: {"choices": [{"delta": {"content": 42}}]}',
        "data: [1, 2]",
    ],
)
def test_malformed_frames_are_skipped(monkeypatch, line):
    install_client(
        monkeypatch,
        FakeResponse([line, 'data: {"choices": [{"delta": {"content": "ok"}}]}']),
    )
    assert list(GlmClient(CredentialsStub(), SettingsStub()).open(CONTEXT)) == ["ok"]


def test_abandoned_stream_releases_response(monkeypatch):
    state = install_client(
        monkeypatch,
        FakeResponse(['data: {"choices": [{"delta": {"content": "%d"}}]}' % i for i in range(5)]),
    )
    stream = GlmClient(CredentialsStub(), SettingsStub()).open(CONTEXT)
    assert next(stream) == "0"
    assert not state["closed"]
    stream.close()
    assert state["closed"]
    assert state["client_closed"]


def test_transport_failure_raises_network_error(monkeypatch):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def stream(self, *a, **kw):
            raise httpx.ConnectError("refused")

    monkeypatch.setattr("httpx.Client", Client)
    with pytest.raises(NetworkError) as exc:
        list(GlmClient(CredentialsStub(), SettingsStub()).open(CONTEXT))
    assert exc.value.code == "NETWORK_ERROR"
    assert isinstance(exc.value.__cause__, httpx.ConnectError)


def test_no_read_timeout(monkeypatch):
    captured = {}
    install_client(monkeypatch, FakeResponse([]), captured)
    list(GlmClient(CredentialsStub(), SettingsStub()).open(CONTEXT))
    timeout = captured["client_kwargs"]["timeout"]
    assert timeout.read is None
    assert timeout.connect == 1.0
