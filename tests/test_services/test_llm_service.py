from __future__ import annotations

from types import SimpleNamespace

import anthropic
import httpx
import pytest

from picturebook.config import Settings
from picturebook.exceptions import MalformedProviderOutputError
from picturebook.services.llm import LLMService


def _message(text: str, stop_reason: str = "end_turn"):
    return SimpleNamespace(
        content=[
            SimpleNamespace(type="text", text=text),
            SimpleNamespace(type="tool_use", id="1", name="search", input={"q": "x"}),
        ],
        stop_reason=stop_reason,
    )


class DummyMessages:
    def __init__(self, *results):
        self.results = list(results)
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class DummyClient:
    def __init__(self, *results):
        self.messages = DummyMessages(*results)


def _service(monkeypatch, *results) -> tuple[LLMService, DummyClient]:
    settings = Settings(store_backend="memory", anthropic_api_key="key", story_max_tokens=2048)
    service = LLMService(settings)
    client = DummyClient(*results)
    monkeypatch.setattr(service, "_get_client", lambda: client)

    async def no_sleep(_):
        return None

    monkeypatch.setattr("picturebook.services.llm.asyncio.sleep", no_sleep)
    return service, client


def _status_error(cls, status: int):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(status, request=request)
    return cls("boom", response=response, body=None)


def test_get_client_missing_credentials(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_AUTH_TOKEN", raising=False)

    service = LLMService(Settings(store_backend="memory", anthropic_api_key=None, anthropic_auth_token=None))

    with pytest.raises(ValueError, match="Anthropic credentials missing"):
        service._get_client()


def test_get_client_is_cached():
    service = LLMService(Settings(store_backend="memory", anthropic_api_key="key"))
    assert service._get_client() is service._get_client()


@pytest.mark.asyncio
async def test_generate_joins_text_blocks(monkeypatch):
    service, client = _service(monkeypatch, _message("hello"))

    resp = await service.generate(messages=[{"role": "user", "content": "hi"}], system="sys", temperature=0.5)

    assert resp.text == "hello"
    assert resp.stop_reason == "end_turn"
    call = client.messages.calls[0]
    assert call["system"] == "sys"
    assert call["temperature"] == 0.5
    assert call["model"] == service.settings.anthropic_model


@pytest.mark.asyncio
async def test_generate_retries_rate_limit(monkeypatch):
    service, client = _service(monkeypatch, _status_error(anthropic.RateLimitError, 429), _message("ok"))

    resp = await service.generate(messages=[{"role": "user", "content": "hi"}])

    assert resp.text == "ok"
    assert len(client.messages.calls) == 2


@pytest.mark.asyncio
async def test_generate_does_not_retry_bad_request(monkeypatch):
    service, client = _service(monkeypatch, _status_error(anthropic.BadRequestError, 400), _message("ok"))

    with pytest.raises(anthropic.BadRequestError):
        await service.generate(messages=[{"role": "user", "content": "hi"}])
    assert len(client.messages.calls) == 1


@pytest.mark.asyncio
async def test_generate_gives_up_after_max_retries(monkeypatch):
    errors = [_status_error(anthropic.InternalServerError, 503) for _ in range(4)]
    service, client = _service(monkeypatch, *errors)

    with pytest.raises(anthropic.InternalServerError):
        await service.generate(messages=[{"role": "user", "content": "hi"}])
    assert len(client.messages.calls) == 4


class TestCompleteJson:
    @pytest.mark.asyncio
    async def test_parses_fenced_json(self, monkeypatch):
        raw = '```json\n{"theme": "courage"}\n```'
        service, client = _service(monkeypatch, _message(raw))

        completion = await service.complete_json("system", "user")

        assert completion.data == {"theme": "courage"}
        assert completion.raw == raw
        call = client.messages.calls[0]
        assert call["messages"] == [{"role": "user", "content": "user"}]
        assert call["max_tokens"] == 2048

    @pytest.mark.asyncio
    async def test_image_is_sent_as_base64_block(self, monkeypatch):
        service, client = _service(monkeypatch, _message('{"ok": true}'))

        await service.complete_json("system", "describe", "data:image/png;base64,AAAA", max_tokens=1000)

        content = client.messages.calls[0]["messages"][0]["content"]
        assert content[0] == {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": "AAAA"}}
        assert content[1] == {"type": "text", "text": "describe"}
        assert client.messages.calls[0]["max_tokens"] == 1000

    @pytest.mark.asyncio
    async def test_empty_response(self, monkeypatch):
        service, _ = _service(monkeypatch, _message("   "))

        with pytest.raises(MalformedProviderOutputError, match="Empty response"):
            await service.complete_json("system", "user")

    @pytest.mark.asyncio
    async def test_unparseable_response(self, monkeypatch):
        service, _ = _service(monkeypatch, _message("Sorry, I cannot help with that.", stop_reason="end_turn"))

        with pytest.raises(MalformedProviderOutputError) as exc_info:
            await service.complete_json("system", "user")

        assert exc_info.value.details["stop_reason"] == "end_turn"
        assert exc_info.value.details["preview"].startswith("Sorry")

    @pytest.mark.asyncio
    async def test_truncated_response(self, monkeypatch):
        service, _ = _service(monkeypatch, _message('{"spreads": [{"spreadNumber": 1', stop_reason="max_tokens"))

        with pytest.raises(MalformedProviderOutputError) as exc_info:
            await service.complete_json("system", "user")
        assert exc_info.value.details["stop_reason"] == "max_tokens"
