import json

import httpx
import pytest

from deepseek_core.domain.exceptions import ApiError, StreamUsageError, ValidationError
from deepseek_core.domain.models import Message
from deepseek_core.infrastructure.cancellation import CancellationToken
from deepseek_core.providers.deepseek_client import DeepSeekClient
from deepseek_core.providers.request_builder import build_request


class SettingsStub:
    deepseek_api_key = "sk-test-0123456789"
    deepseek_base_url = "https://api.deepseek.com/v1"
    http_timeout = 1.0
    allowed_models = ("deepseek-chat", "deepseek-coder")
    default_model = "deepseek-chat"

    def require_api_key(self):
        if not self.deepseek_api_key:
            raise ValidationError(code="MISSING_API_KEY", message="DEEPSEEK_API_KEY not set")
        return self.deepseek_api_key


def _req(stream=False, model="deepseek-chat"):
    # 绕过 build_request 的默认白名单，直接构造请求
    return build_request(
        model,
        [Message(role="user", content="hi")],
        stream=stream,
        allowed_models=[model],
    )


class Resp:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self.text = body


class FakeStreamResponse:
    def __init__(self, status_code, lines=(), body=b"", fail_after=None):
        self.status_code = status_code
        self._lines = list(lines)
        self._body = body
        self._fail_after = fail_after
        self.lines_read = 0
        self.body_read = False

    def iter_lines(self):
        for line in self._lines:
            if self._fail_after is not None and self.lines_read >= self._fail_after:
                raise httpx.ReadError("connection reset")
            self.lines_read += 1
            yield line

    def read(self):
        self.body_read = True
        return self._body


class StreamContext:
    def __init__(self, response, events):
        self._response = response
        self._events = events

    def __enter__(self):
        return self._response

    def __exit__(self, *args):
        self._events.append("response_closed")
        return False


def _make_client_cls(captured, post_response=None, stream_response=None, post_error=None):
    class Client:
        def __init__(self, *a, **kw):
            captured.setdefault("inits", []).append(kw)

        def __enter__(self):
            return self

        def __exit__(self, *a):
            captured.setdefault("events", []).append("client_closed")
            return False

        def post(self, url, json=None, headers=None, **_):
            captured["url"] = url
            captured["payload"] = json
            captured["headers"] = headers
            if post_error is not None:
                raise post_error
            return post_response

        def stream(self, method, url, json=None, headers=None, **_):
            captured["method"] = method
            captured["url"] = url
            captured["payload"] = json
            captured["headers"] = headers
            return StreamContext(stream_response, captured.setdefault("events", []))

    return Client


def _chunk(content):
    return "data: " + json.dumps({"id": "c", "choices": [{"index": 0, "delta": {"content": content}}]})


def test_chat_success_sends_authenticated_request(monkeypatch):
    captured = {}
    body = json.dumps(
        {
            "id": "r1",
            "created": 1,
            "choices": [{"index": 0, "message": {"role": "assistant", "content": "ok"}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2},
        }
    )
    monkeypatch.setattr("httpx.Client", _make_client_cls(captured, post_response=Resp(200, body)))
    client = DeepSeekClient(SettingsStub())
    res = client.chat(_req())
    assert res.is_success
    assert res.data.choices[0].message.content == "ok"
    assert captured["url"] == "https://api.deepseek.com/v1/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer sk-test-0123456789"
    assert captured["headers"]["Content-Type"] == "application/json"
    assert captured["payload"]["max_tokens"] == 4096
    assert captured["payload"]["stream"] is False
    assert captured["inits"][0]["timeout"] == 1.0


def test_chat_invalid_model_makes_no_network_call(monkeypatch):
    class Client:
        def __init__(self, *a, **kw):
            raise AssertionError("transport must not be used for invalid models")

    monkeypatch.setattr("httpx.Client", Client)
    client = DeepSeekClient(SettingsStub())
    res = client.chat(_req(model="deepseek-reasoner"))
    assert not res.is_success
    assert res.status_code == 400
    assert res.error.message == "Invalid model: deepseek-reasoner"

    results = list(client.chat_stream(_req(stream=True, model="deepseek-reasoner")))
    assert len(results) == 1
    assert results[0].error.code == "INVALID_MODEL"


def test_chat_allowed_models_override(monkeypatch):
    captured = {}
    body = json.dumps({"id": "r", "choices": []})
    monkeypatch.setattr("httpx.Client", _make_client_cls(captured, post_response=Resp(200, body)))
    client = DeepSeekClient(SettingsStub(), allowed_models=["deepseek-reasoner"])
    res = client.chat(_req(model="deepseek-reasoner"))
    assert res.is_success
    assert captured["payload"]["model"] == "deepseek-reasoner"


def test_chat_http_error_status(monkeypatch):
    captured = {}
    body = json.dumps({"error": {"message": "Authentication Fails", "type": "authentication_error"}})
    monkeypatch.setattr("httpx.Client", _make_client_cls(captured, post_response=Resp(401, body)))
    res = DeepSeekClient(SettingsStub()).chat(_req())
    assert res.status_code == 401
    assert res.error.message == "Authentication Fails"
    with pytest.raises(ApiError) as exc:
        res.unwrap()
    assert exc.value.http_status == 401


def test_chat_transport_fault_becomes_failure(monkeypatch):
    captured = {}
    monkeypatch.setattr(
        "httpx.Client",
        _make_client_cls(captured, post_error=httpx.ConnectTimeout("timed out")),
    )
    res = DeepSeekClient(SettingsStub()).chat(_req())
    assert not res.is_success
    assert res.status_code == 500
    assert res.error.code == "ConnectTimeout"
    assert res.error.message == "Request timed out"


def test_chat_cancelled_before_send(monkeypatch):
    class Client:
        def __init__(self, *a, **kw):
            raise AssertionError("should not connect after cancellation")

    monkeypatch.setattr("httpx.Client", Client)
    token = CancellationToken()
    token.cancel("user")
    res = DeepSeekClient(SettingsStub()).chat(_req(), cancel_token=token)
    assert res.error.code == "CancelledError"
    assert res.error.message == "Request cancelled"


def test_chat_stream_yields_chunks_until_done(monkeypatch):
    captured = {}
    response = FakeStreamResponse(200, [_chunk("hel"), "", _chunk("lo"), "data: [DONE]", _chunk("zzz")])
    monkeypatch.setattr("httpx.Client", _make_client_cls(captured, stream_response=response))
    results = list(DeepSeekClient(SettingsStub()).chat_stream(_req(stream=True)))
    assert [r.data.choices[0].delta.content for r in results] == ["hel", "lo"]
    assert captured["method"] == "POST"
    assert captured["payload"]["stream"] is True
    assert response.lines_read == 4
    assert captured["events"] == ["response_closed", "client_closed"]


def test_chat_stream_requires_stream_flag(monkeypatch):
    class Client:
        def __init__(self, *a, **kw):
            raise AssertionError("no request expected")

    monkeypatch.setattr("httpx.Client", Client)
    with pytest.raises(StreamUsageError):
        DeepSeekClient(SettingsStub()).chat_stream(_req(stream=False))


def test_chat_stream_error_status_reads_body_not_lines(monkeypatch):
    captured = {}
    response = FakeStreamResponse(401, [_chunk("x")], body=b'{"message":"unauthorized"}')
    monkeypatch.setattr("httpx.Client", _make_client_cls(captured, stream_response=response))
    results = list(DeepSeekClient(SettingsStub()).chat_stream(_req(stream=True)))
    assert len(results) == 1
    assert results[0].status_code == 401
    assert results[0].error.message == "unauthorized"
    assert response.body_read
    assert response.lines_read == 0


def test_chat_stream_transport_fault_mid_stream(monkeypatch):
    captured = {}
    response = FakeStreamResponse(200, [_chunk("a"), _chunk("b")], fail_after=1)
    monkeypatch.setattr("httpx.Client", _make_client_cls(captured, stream_response=response))
    results = list(DeepSeekClient(SettingsStub()).chat_stream(_req(stream=True)))
    assert len(results) == 2
    assert results[0].is_success
    assert results[1].error.code == "ReadError"
    assert results[1].status_code == 500


def test_chat_stream_early_stop_releases_connection(monkeypatch):
    captured = {}
    response = FakeStreamResponse(200, [_chunk("a"), _chunk("b"), _chunk("c")])
    monkeypatch.setattr("httpx.Client", _make_client_cls(captured, stream_response=response))
    stream = DeepSeekClient(SettingsStub()).chat_stream(_req(stream=True))
    first = next(stream)
    assert first.is_success
    stream.close()
    assert captured["events"] == ["response_closed", "client_closed"]
    assert response.lines_read == 1


def test_chat_stream_cancellation(monkeypatch):
    captured = {}
    response = FakeStreamResponse(200, [_chunk("a"), _chunk("b"), _chunk("c")])
    monkeypatch.setattr("httpx.Client", _make_client_cls(captured, stream_response=response))
    token = CancellationToken()
    results = []
    for res in DeepSeekClient(SettingsStub()).chat_stream(_req(stream=True), cancel_token=token):
        results.append(res)
        token.cancel()
    assert len(results) == 1
    assert captured["events"] == ["response_closed", "client_closed"]


def test_missing_api_key_is_fatal():
    class NoKey(SettingsStub):
        deepseek_api_key = None

    with pytest.raises(ValidationError) as exc:
        DeepSeekClient(NoKey())
    assert exc.value.code == "MISSING_API_KEY"


def test_base_url_override(monkeypatch):
    captured = {}
    monkeypatch.setattr(
        "httpx.Client",
        _make_client_cls(captured, post_response=Resp(200, '{"id": "r", "choices": []}')),
    )
    client = DeepSeekClient(SettingsStub(), base_url="http://localhost:8080/v1/")
    client.chat(_req())
    assert captured["url"] == "http://localhost:8080/v1/chat/completions"


def test_chat_stream_cancelled_before_send(monkeypatch):
    class Client:
        def __init__(self, *a, **kw):
            raise AssertionError("should not connect after cancellation")

    monkeypatch.setattr("httpx.Client", Client)
    token = CancellationToken()
    token.cancel("user")
    results = list(DeepSeekClient(SettingsStub()).chat_stream(_req(stream=True), cancel_token=token))
    assert len(results) == 1
    assert results[0].status_code == 500
    assert results[0].error.code == "CancelledError"
    assert results[0].error.message == "Request cancelled"


def test_chat_cancelled_while_waiting_for_response(monkeypatch):
    token = CancellationToken()
    body = json.dumps({"id": "r", "choices": []})

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, *a, **kw):
            token.cancel("user")
            return Resp(200, body)

    monkeypatch.setattr("httpx.Client", Client)
    res = DeepSeekClient(SettingsStub()).chat(_req(), cancel_token=token)
    assert not res.is_success
    assert res.error.code == "CancelledError"


def test_invalid_base_url_becomes_failure(monkeypatch):
    captured = {}
    monkeypatch.setattr(
        "httpx.Client",
        _make_client_cls(captured, post_error=httpx.InvalidURL("bad url")),
    )
    res = DeepSeekClient(SettingsStub(), base_url="http://[::1").chat(_req())
    assert res.status_code == 500
    assert res.error.code == "InvalidURL"
    assert res.error.message == "Invalid request URL"
