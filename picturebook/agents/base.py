from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from picturebook.config import Settings
from picturebook.exceptions import MalformedProviderOutputError
from picturebook.services.image import ImageService
from picturebook.services.llm import JsonCompletion, LLMService

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class AgentContext:
    settings: Settings
    llm: LLMService
    image: ImageService | None = None
    revision_notes: str | None = None
    model: str | None = None  # 覆盖默认的 anthropic_model


class BaseAgent(Generic[ModelT]):
    name: str = "base"

    async def call_llm_json(
        self,
        ctx: AgentContext,
        *,
        system_prompt: str,
        user_prompt: str,
        image_base64: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> JsonCompletion:
        """调用结构化内容服务并返回解析后的 JSON

        Args:
            ctx: Agent 上下文
            system_prompt: 系统提示词
            user_prompt: 用户提示词
            image_base64: 可选的 base64 图片（视觉分析）
            max_tokens: 最大输出 token，默认使用 story_max_tokens
            temperature: 采样温度

        Returns:
            解析后的 JSON 与原始文本
        """
        logger.info("[%s] requesting structured output (model=%s)", self.name, ctx.model or ctx.settings.anthropic_model)
        return await ctx.llm.complete_json(
            system_prompt,
            user_prompt,
            image_base64,
            model=ctx.model,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    def validate(self, model_cls: type[ModelT], data: dict[str, Any]) -> ModelT:
        """把 provider 返回的 JSON 校验为阶段模型；结构不符视为 provider 输出格式错误"""
        try:
            return model_cls.model_validate(data)
        except ValidationError as exc:
            raise MalformedProviderOutputError(
                f"{self.name} output does not match the expected structure",
                details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
            ) from exc

    async def run(self, ctx: AgentContext, **inputs: Any) -> ModelT:  # pragma: no cover
        raise NotImplementedError
