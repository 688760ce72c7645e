import httpx
import pytest

from chat_core.domain.exceptions import (
    ApiError,
    ConfigurationError,
    EmptyCompletionError,
    NetworkError,
    RateLimitError,
    UpstreamError,
)
from chat_core.domain.models import ChatMessage
from chat_core.providers.openai_client import OpenAICompatibleClient, request_title


class SettingsStub:
    llm_key = "test-key"
    llm_api_url = "https://llm.example.com/v1/chat/completions"
    llm_model = "main-model"
    llm_additional_model = None
    http_timeout = 1.0


class AdditionalSettingsStub(SettingsStub):
    llm_additional_model = "side-model"


class Resp:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def ok_payload(content="ok"):
    return {
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2},
    }


def patch_client(monkeypatch, resp=None, exc=None, captured=None):
    class Client:
        def __init__(self, *a, **kw):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def post(self, url, json=None, headers=None, **_):
            if captured is not None:
                captured["url"] = url
                captured["payload"] = json
                captured["headers"] = headers
            if exc is not None:
                raise exc
            return resp

    monkeypatch.setattr("httpx.AsyncClient", Client)


class MemoryStore:
    def __init__(self, fail=False):
        self.records = []
        self.fail = fail

    async def append(self, fields):
        if self.fail:
            raise OSError("disk full")
        rec = {"id": len(self.records) + 1, **fields}
        self.records.append(rec)
        return rec

    async def clear(self):
        self.records = []

    async def read(self, limit=None, reverse=False):
        return list(self.records)


@pytest.mark.asyncio
async def test_send_message_basic(monkeypatch):
    captured = {}
    patch_client(monkeypatch, resp=Resp(payload=ok_payload()), captured=captured)
    client = OpenAICompatibleClient(SettingsStub())

    res = await client.send_message([ChatMessage(role="user", content="hi")], {"temperature": 0.2})

    assert res.choices[0].message.content == "ok"
    assert res.content == "ok"
    assert res.usage.total_tokens == 2
    assert captured["url"] == SettingsStub.llm_api_url
    assert captured["headers"]["Authorization"] == "Bearer test-key"
    assert captured["payload"] == {
        "messages": [{"role": "user", "content": "hi"}],
        "model": "main-model",
        "temperature": 0.2,
    }


@pytest.mark.asyncio
async def test_option_model_overrides_default(monkeypatch):
    captured = {}
    patch_client(monkeypatch, resp=Resp(payload=ok_payload()), captured=captured)
    client = OpenAICompatibleClient(SettingsStub())
    await client.send_message([{"role": "user", "content": "hi"}], {"model": "other"})
    assert captured["payload"]["model"] == "other"


@pytest.mark.asyncio
async def test_additional_model_falls_back_to_primary(monkeypatch):
    captured = {}
    patch_client(monkeypatch, resp=Resp(payload=ok_payload()), captured=captured)
    client = OpenAICompatibleClient(SettingsStub())
    assert client.additional_model is None

    await client.send_message_with_additional_model([ChatMessage(role="user", content="hi")])
    assert captured["payload"]["model"] == "main-model"


@pytest.mark.asyncio
async def test_additional_model_used_when_configured(monkeypatch):
    captured = {}
    patch_client(monkeypatch, resp=Resp(payload=ok_payload("side")), captured=captured)
    client = OpenAICompatibleClient(AdditionalSettingsStub())

    answer = await client.ask_with_additional_model("hi")
    assert answer == "side"
    assert captured["payload"]["model"] == "side-model"


@pytest.mark.asyncio
async def test_non_2xx_raises_api_error(monkeypatch):
    patch_client(monkeypatch, resp=Resp(status_code=500, text='{"error": "boom"}'))
    client = OpenAICompatibleClient(SettingsStub())
    with pytest.raises(ApiError) as exc:
        await client.send_message([ChatMessage(role="user", content="hi")])
    assert isinstance(exc.value, UpstreamError)
    assert exc.value.extra["upstream_status"] == 500
    assert exc.value.extra["upstream_body"] == '{"error": "boom"}'


@pytest.mark.asyncio
async def test_rate_limit_is_an_api_error(monkeypatch):
    patch_client(monkeypatch, resp=Resp(status_code=429, text="slow down"))
    client = OpenAICompatibleClient(SettingsStub())
    with pytest.raises(RateLimitError) as exc:
        await client.send_message([ChatMessage(role="user", content="hi")])
    assert isinstance(exc.value, ApiError)


@pytest.mark.asyncio
async def test_network_error(monkeypatch):
    patch_client(monkeypatch, exc=httpx.ConnectError("connection refused"))
    client = OpenAICompatibleClient(SettingsStub())
    with pytest.raises(NetworkError):
        await client.send_message([ChatMessage(role="user", content="hi")])


@pytest.mark.asyncio
async def test_timeout_is_network_error(monkeypatch):
    patch_client(monkeypatch, exc=httpx.ReadTimeout("timed out"))
    client = OpenAICompatibleClient(SettingsStub())
    with pytest.raises(NetworkError):
        await client.send_message([ChatMessage(role="user", content="hi")])


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"choices": []},
        {"id": "x"},
        {"choices": [{"message": None}]},
        ["not", "a", "dict"],
        None,
    ],
)
async def test_empty_or_malformed_completion(monkeypatch, payload):
    patch_client(monkeypatch, resp=Resp(payload=payload))
    client = OpenAICompatibleClient(SettingsStub())
    with pytest.raises(EmptyCompletionError):
        await client.send_message([ChatMessage(role="user", content="hi")])


@pytest.mark.asyncio
@pytest.mark.parametrize("usage", ["n/a", ["tokens"], 0, {}])
async def test_non_object_usage_is_ignored(monkeypatch, usage):
    payload = ok_payload()
    payload["usage"] = usage
    patch_client(monkeypatch, resp=Resp(payload=payload))
    client = OpenAICompatibleClient(SettingsStub())

    res = await client.send_message([ChatMessage(role="user", content="hi")])

    assert res.content == "ok"
    assert res.usage is None


@pytest.mark.parametrize("missing", ["llm_key", "llm_api_url", "llm_model"])
def test_missing_configuration(missing):
    class Partial(SettingsStub):
        pass

    setattr(Partial, missing, None)
    with pytest.raises(ConfigurationError):
        OpenAICompatibleClient(Partial())


@pytest.mark.asyncio
async def test_successful_call_writes_request_log(monkeypatch):
    patch_client(monkeypatch, resp=Resp(payload=ok_payload()))
    store = MemoryStore()
    client = OpenAICompatibleClient(SettingsStub(), request_store=store)

    await client.send_message([
        ChatMessage(role="system", content="sys"),
        ChatMessage(role="user", content="please summarise this very long message"),
    ])
    await client.drain()

    assert len(store.records) == 1
    entry = store.records[0]
    assert entry["title"] == "please summarise this very long..."
    assert entry["content"]["request"]["model"] == "main-model"
    assert entry["content"]["response"]["choices"][0]["message"]["content"] == "ok"
    assert entry["timestamp"]


@pytest.mark.asyncio
async def test_request_log_failure_is_swallowed(monkeypatch):
    patch_client(monkeypatch, resp=Resp(payload=ok_payload()))
    client = OpenAICompatibleClient(SettingsStub(), request_store=MemoryStore(fail=True))

    res = await client.send_message([ChatMessage(role="user", content="hi")])
    await client.drain()
    assert res.content == "ok"


@pytest.mark.asyncio
async def test_failed_call_writes_no_request_log(monkeypatch):
    patch_client(monkeypatch, resp=Resp(status_code=503, text="down"))
    store = MemoryStore()
    client = OpenAICompatibleClient(SettingsStub(), request_store=store)
    with pytest.raises(ApiError):
        await client.send_message([ChatMessage(role="user", content="hi")])
    await client.drain()
    assert store.records == []


@pytest.mark.asyncio
async def test_continue_conversation(monkeypatch):
    captured = {}
    patch_client(monkeypatch, resp=Resp(payload=ok_payload("second")), captured=captured)
    client = OpenAICompatibleClient(SettingsStub())
    history = [ChatMessage(role="user", content="first"), ChatMessage(role="assistant", content="one")]

    out = await client.continue_conversation(history, "next")

    assert [m["content"] for m in captured["payload"]["messages"]] == ["first", "one", "next"]
    assert [m.content for m in out["conversation"]] == ["first", "one", "next", "second"]
    assert len(history) == 2
    assert out["response"].content == "second"


def test_request_title():
    assert request_title({"messages": [{"role": "user", "content": "hi there"}]}) == "hi there"
    assert request_title({"messages": [{"role": "user", "content": "a b c d e f"}]}) == "a b c d e..."
    assert request_title({"messages": [{"role": "system", "content": "sys"}]}) == ""
    assert request_title(
        {"messages": [{"role": "user", "content": "old"}, {"role": "user", "content": "new one"}]}
    ) == "new one"
