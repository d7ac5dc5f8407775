"""故事流水线各阶段的生成 Agent。

每个 Agent 只负责：拼装 prompt -> 调用结构化内容服务 -> 按阶段模型校验。
状态流转与持久化由 ``services.pipeline.PhasePipeline`` 负责。
"""
from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel

from picturebook.agents.base import AgentContext, BaseAgent, ModelT
from picturebook.agents.prompts.story_phases import (
    CONCEPT_PROMPT,
    MANUSCRIPT_PROMPT,
    PANEL_BRIEFS_PROMPT,
    PLACEHOLDER_RULES,
    PROPS_BIBLE_PROMPT,
    STORYBOARD_PROMPT,
    system_prompt,
    with_revision_notes,
)
from picturebook.schemas.pipeline import (
    Phase0Concept,
    Phase1Storyboard,
    Phase2Manuscript,
    Phase4PropsBible,
    Phase5PanelBriefs,
    PhaseGenerateRequest,
)


def _to_json(value: Any) -> str:
    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True, exclude_none=True, exclude={"raw_output"})
    elif isinstance(value, list):
        value = [
            v.model_dump(by_alias=True, exclude_none=True) if isinstance(v, BaseModel) else v
            for v in value
        ]
    return json.dumps(value, ensure_ascii=False, indent=2)


class PhaseAgent(BaseAgent[ModelT]):
    """阶段 Agent 的公共流程；子类只描述 prompt 与输出模型"""

    output_model: type[ModelT]
    phase_prompt: str = ""
    temperature: float = 0.7

    def max_tokens(self, ctx: AgentContext) -> int:
        return ctx.settings.story_max_tokens

    def user_prompt(self, deps: dict[int, Any], request: PhaseGenerateRequest) -> str:  # pragma: no cover
        raise NotImplementedError

    def prepare(self, data: dict[str, Any], deps: dict[int, Any], request: PhaseGenerateRequest) -> dict[str, Any]:
        return data

    async def run(
        self,
        ctx: AgentContext,
        deps: dict[int, Any] | None = None,
        request: PhaseGenerateRequest | None = None,
    ) -> ModelT:
        deps = deps or {}
        request = request or PhaseGenerateRequest()

        completion = await self.call_llm_json(
            ctx,
            system_prompt=system_prompt(self.phase_prompt),
            user_prompt=with_revision_notes(self.user_prompt(deps, request), ctx.revision_notes),
            max_tokens=self.max_tokens(ctx),
            temperature=self.temperature,
        )
        data = self.prepare(dict(completion.data), deps, request)
        data["rawOutput"] = completion.raw
        return self.validate(self.output_model, data)


class ConceptAgent(PhaseAgent[Phase0Concept]):
    name = "concept"
    output_model = Phase0Concept
    phase_prompt = CONCEPT_PROMPT
    temperature = 0.8

    def user_prompt(self, deps: dict[int, Any], request: PhaseGenerateRequest) -> str:
        lines = ["Create a picture book concept for:", f"- Target age range: {request.age_range}"]
        if request.theme:
            lines.append(f"- Theme/seed: {request.theme}")
        return "\n".join(lines)

    def prepare(self, data: dict[str, Any], deps: dict[int, Any], request: PhaseGenerateRequest) -> dict[str, Any]:
        # 年龄段与主题以请求为准，不信任模型回显
        data["ageRange"] = request.age_range
        data.pop("age_range", None)
        if request.theme:
            data["theme"] = request.theme
        return data


class StoryboardAgent(PhaseAgent[Phase1Storyboard]):
    name = "storyboard"
    output_model = Phase1Storyboard
    phase_prompt = STORYBOARD_PROMPT

    def user_prompt(self, deps: dict[int, Any], request: PhaseGenerateRequest) -> str:
        return f"Create a visual storyboard based on this concept:\n\n{_to_json(deps[0])}"

    def prepare(self, data: dict[str, Any], deps: dict[int, Any], request: PhaseGenerateRequest) -> dict[str, Any]:
        if "spreadCount" not in data and isinstance(data.get("spreads"), list):
            data["spreadCount"] = len(data["spreads"])
        return data


class ManuscriptAgent(PhaseAgent[Phase2Manuscript]):
    name = "manuscript"
    output_model = Phase2Manuscript
    phase_prompt = MANUSCRIPT_PROMPT

    def user_prompt(self, deps: dict[int, Any], request: PhaseGenerateRequest) -> str:
        storyboard: Phase1Storyboard = deps[1]
        return (
            "Write the final manuscript for this picture book.\n\n"
            f"CONCEPT:\n{_to_json(deps[0])}\n\n"
            f"STORYBOARD:\n{_to_json(storyboard.spreads)}"
        )


class PropsBibleAgent(PhaseAgent[Phase4PropsBible]):
    name = "props_bible"
    output_model = Phase4PropsBible
    phase_prompt = PROPS_BIBLE_PROMPT
    temperature = 0.5

    def user_prompt(self, deps: dict[int, Any], request: PhaseGenerateRequest) -> str:
        manuscript: Phase2Manuscript = deps[2]
        return (
            "Create a visual props bible for this picture book.\n\n"
            f"CONCEPT:\n{_to_json(deps[0])}\n\n"
            f"MANUSCRIPT (spreads with illustration notes):\n{_to_json(manuscript.spreads)}"
        )


class PanelBriefsAgent(PhaseAgent[Phase5PanelBriefs]):
    name = "panel_briefs"
    output_model = Phase5PanelBriefs
    phase_prompt = PANEL_BRIEFS_PROMPT
    temperature = 0.5

    def max_tokens(self, ctx: AgentContext) -> int:
        return ctx.settings.panel_briefs_max_tokens

    def user_prompt(self, deps: dict[int, Any], request: PhaseGenerateRequest) -> str:
        manuscript: Phase2Manuscript = deps[2]
        return (
            "Create panel briefs for each spread of this picture book.\n\n"
            f"MANUSCRIPT:\n{_to_json(manuscript.spreads)}\n\n"
            f"PROPS BIBLE:\n{_to_json(deps[4])}\n\n"
            f"{PLACEHOLDER_RULES}"
        )

    def prepare(self, data: dict[str, Any], deps: dict[int, Any], request: PhaseGenerateRequest) -> dict[str, Any]:
        manuscript: Phase2Manuscript = deps[2]
        texts = {s.spread_number: s.final_text for s in manuscript.spreads}
        for panel in data.get("panels") or []:
            if isinstance(panel, dict) and not panel.get("manuscriptText"):
                text = texts.get(panel.get("spreadNumber"))
                if text:
                    panel["manuscriptText"] = text
        return data
