from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import anthropic

from picturebook.agents.utils import extract_json, split_data_url
from picturebook.config import Settings
from picturebook.exceptions import MalformedProviderOutputError

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (anthropic.RateLimitError, anthropic.APIConnectionError, anthropic.APITimeoutError)
RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(slots=True)
class LLMResponse:
    text: str
    stop_reason: str | None
    raw: Any


@dataclass(slots=True)
class JsonCompletion:
    data: dict[str, Any]
    raw: str


class LLMService:
    """Claude (Anthropic Messages API) 服务包装器。

    - 直接使用 `anthropic` SDK
    - 外层做指数退避重试（仅限限流 / 连接 / 5xx）
    - ``complete_json`` 请求固定 JSON 结构并解析，解析失败抛 MalformedProviderOutputError
    """

    def __init__(self, settings: Settings, *, max_retries: int = 3):
        self.settings = settings
        self.max_retries = max_retries
        self._client: anthropic.AsyncAnthropic | None = None

    def _client_options(self) -> dict[str, Any]:
        token = self.settings.anthropic_auth_token
        api_key = self.settings.anthropic_api_key or token
        if not api_key:
            raise ValueError("Anthropic credentials missing: set ANTHROPIC_API_KEY or ANTHROPIC_AUTH_TOKEN")

        # 重试由 generate 负责，SDK 自身不再重试
        options: dict[str, Any] = {"api_key": api_key, "timeout": self.settings.request_timeout_s, "max_retries": 0}
        if self.settings.anthropic_base_url:
            options["base_url"] = self.settings.anthropic_base_url
        if token:
            # 部分代理网关只认 Bearer 鉴权
            options["default_headers"] = {"Authorization": f"Bearer {token}"}
        return options

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(**self._client_options())
        return self._client

    @staticmethod
    def _to_response(message: Any) -> LLMResponse:
        blocks = getattr(message, "content", None) or []
        text = "".join(getattr(b, "text", "") for b in blocks if getattr(b, "type", None) == "text")
        return LLMResponse(text=text, stop_reason=getattr(message, "stop_reason", None), raw=message)

    @staticmethod
    def _should_retry(exc: Exception) -> bool:
        if isinstance(exc, RETRYABLE_ERRORS):
            return True
        return getattr(exc, "status_code", None) in RETRYABLE_STATUS

    async def generate(
        self,
        *,
        messages: list[dict[str, Any]],
        system: str | None = None,
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        client = self._get_client()
        request: dict[str, Any] = dict(
            kwargs,
            model=model or self.settings.anthropic_model,
            max_tokens=max_tokens,
            messages=messages,
        )
        if system is not None:
            request["system"] = system
        if temperature is not None:
            request["temperature"] = temperature

        attempt = 0
        while True:
            try:
                return self._to_response(await client.messages.create(**request))
            except Exception as exc:
                attempt += 1
                if attempt > self.max_retries or not self._should_retry(exc):
                    raise
                backoff = min(0.5 * 2 ** (attempt - 1), 8.0)
                logger.warning(
                    "Anthropic call to %s failed (%d/%d), retrying in %.1fs: %s",
                    request["model"], attempt, self.max_retries, backoff, exc,
                )
                await asyncio.sleep(backoff)

    async def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        image_base64: str | None = None,
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> JsonCompletion:
        """请求结构化 JSON 输出；可附带一张 base64 图片（视觉分析）"""
        content: str | list[dict[str, Any]] = user_prompt
        if image_base64:
            media_type, data = split_data_url(image_base64)
            content = [
                {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}},
                {"type": "text", "text": user_prompt},
            ]

        resp = await self.generate(
            messages=[{"role": "user", "content": content}],
            system=system_prompt,
            model=model,
            max_tokens=max_tokens or self.settings.story_max_tokens,
            temperature=temperature,
        )
        if not resp.text.strip():
            raise MalformedProviderOutputError("Empty response from structured-content provider")

        try:
            data = extract_json(resp.text)
        except ValueError as exc:
            raise MalformedProviderOutputError(
                str(exc),
                details={"stop_reason": resp.stop_reason, "preview": resp.text[:200]},
            ) from exc
        return JsonCompletion(data=data, raw=resp.text)
