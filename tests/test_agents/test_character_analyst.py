from __future__ import annotations

import pytest

from picturebook.agents.character_analyst import CharacterAnalystAgent
from picturebook.exceptions import MalformedProviderOutputError
from tests.agent_fixtures import FakeLLM, make_context
from tests.factories import make_profile


def _analysis_payload(**overrides):
    data = make_profile().model_dump()
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_analyze_photo(test_settings):
    llm = FakeLLM(_analysis_payload(character_name="Whoever"))
    ctx = make_context(test_settings, llm=llm)

    analysis = await CharacterAnalystAgent().run(ctx, child_name="Mira", image_base64="data:image/jpeg;base64,AAAA")

    assert analysis.profile.character_name == "Mira"
    assert analysis.profile.hair.texture == "curly"
    assert analysis.description.startswith("Mira is a young child")
    call = llm.calls[0]
    assert call["image_base64"] == "data:image/jpeg;base64,AAAA"
    assert call["max_tokens"] == 1000
    assert "Mira" in call["user_prompt"]


@pytest.mark.asyncio
async def test_invalid_profile(test_settings):
    llm = FakeLLM(_analysis_payload(approx_age="teenager"))

    with pytest.raises(MalformedProviderOutputError) as exc_info:
        await CharacterAnalystAgent().run(make_context(test_settings, llm=llm), child_name="Mira", image_base64="AAAA")

    assert exc_info.value.details["errors"][0]["loc"] == ("approx_age",)
