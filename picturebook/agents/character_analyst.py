from __future__ import annotations

from dataclasses import dataclass

from picturebook.agents.base import AgentContext, BaseAgent
from picturebook.agents.prompts.character import SYSTEM_PROMPT
from picturebook.schemas.character import CharacterProfile
from picturebook.services.character_profile import profile_to_narrative


@dataclass
class CharacterAnalysis:
    profile: CharacterProfile
    description: str


class CharacterAnalystAgent(BaseAgent[CharacterProfile]):
    """照片 -> 角色档案 + 可读描述"""

    name = "character_analyst"

    async def run(self, ctx: AgentContext, *, child_name: str, image_base64: str) -> CharacterAnalysis:
        completion = await self.call_llm_json(
            ctx,
            system_prompt=SYSTEM_PROMPT,
            user_prompt=f"Analyze this child's photo. The child's name is: {child_name}",
            image_base64=image_base64,
            max_tokens=1000,
        )
        data = dict(completion.data)
        # 名字以用户输入为准
        data["character_name"] = child_name
        profile = self.validate(CharacterProfile, data)
        return CharacterAnalysis(profile=profile, description=profile_to_narrative(profile))
