from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Query

from picturebook.agents.base import AgentContext
from picturebook.agents.illustrator import IllustratorAgent, PageStyle
from picturebook.api.deps import ImageDep, LLMDep, SettingsDep, StoresDep
from picturebook.config import Settings
from picturebook.exceptions import NotFoundError
from picturebook.schemas.character import CharacterProfile
from picturebook.schemas.generation import (
    GenerateBookRequest,
    GenerateBookResponse,
    RegeneratePageRequest,
    RegeneratePageResponse,
)
from picturebook.schemas.pipeline import TemplateStoryRead
from picturebook.schemas.story import Storyboard
from picturebook.services.character_profile import profile_to_prompt_summary
from picturebook.services.image import ImageService
from picturebook.services.llm import LLMService
from picturebook.services.prompt_composer import GLOBAL_NEGATIVE_PROMPT, GLOBAL_STYLE_PROMPT
from picturebook.services.store import Stores
from picturebook.services.template_store import TemplateStore, merge_storyboard_with_images

logger = logging.getLogger(__name__)

router = APIRouter()

PREVIEW_NAME = "Child"


def _character_summary(description: str, profile: CharacterProfile | None) -> str:
    return profile_to_prompt_summary(profile) if profile is not None else description


async def _page_style(
    templates: TemplateStore,
    settings: Settings,
    storyboard: Storyboard,
    summary: str,
    character_sheet_url: str,
) -> PageStyle:
    prompts = await templates.get_prompts(storyboard.id)
    page_prompts: dict[int, str] = {}
    if not templates.is_legacy(storyboard.id):
        page_prompts = {p.page: p.prompt for p in prompts.pages}
    return PageStyle(
        character_summary=summary,
        character_sheet_url=settings.build_public_url(character_sheet_url),
        style_prompt=prompts.style_prompt or GLOBAL_STYLE_PROMPT,
        negative_prompt=prompts.negative_prompt or GLOBAL_NEGATIVE_PROMPT,
        page_prompts=page_prompts,
    )


async def _approved_sketches(templates: TemplateStore, story_id: str) -> dict[int, str]:
    stored = await templates.load_stored_storyboard(story_id)
    if stored is None:
        return {}
    return {p.page: p.sketch_url for p in stored.panels if p.approved and p.sketch_url}


@router.get("/stories", response_model=list[TemplateStoryRead])
async def list_stories(stores: Stores = StoresDep, settings: Settings = SettingsDep):
    """可用于生成绘本的故事（已转换的流水线故事 + 内置故事）"""
    return await TemplateStore(stores, settings).list_template_ready_stories()


@router.get("/stories/{story_id}/storyboard")
async def get_story_storyboard(
    story_id: str,
    name: str = Query(default=PREVIEW_NAME, min_length=1),
    stores: Stores = StoresDep,
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    storyboard = await TemplateStore(stores, settings).generate_storyboard(story_id, name)
    return storyboard.dump()


@router.post("/generate", response_model=GenerateBookResponse)
async def generate_book(
    payload: GenerateBookRequest,
    stores: Stores = StoresDep,
    llm: LLMService = LLMDep,
    image: ImageService = ImageDep,
    settings: Settings = SettingsDep,
):
    templates = TemplateStore(stores, settings)
    storyboard = await templates.generate_storyboard(payload.story_id, payload.child_name)
    pages = storyboard.pages[: payload.page_limit] if payload.page_limit else storyboard.pages

    summary = _character_summary(payload.character_description, payload.character_profile)
    style = await _page_style(templates, settings, storyboard, summary, payload.character_sheet_url)
    sketches = await _approved_sketches(templates, storyboard.id) if payload.use_storyboard_sketches else {}

    logger.info(
        "Generating %d illustrations for %s (story=%s, sketches=%d)",
        len(pages),
        payload.child_name,
        storyboard.id,
        len(sketches),
    )
    ctx = AgentContext(settings=settings, llm=llm, image=image)
    images = await IllustratorAgent().run(ctx, pages, style, sketches)

    story = merge_storyboard_with_images(storyboard.model_copy(update={"pages": pages}), images)
    return GenerateBookResponse(
        story=story.dump(),
        images_generated=len(images),
        total_images=len(pages),
    )


@router.post("/generate/page", response_model=RegeneratePageResponse)
async def regenerate_page(
    payload: RegeneratePageRequest,
    stores: Stores = StoresDep,
    llm: LLMService = LLMDep,
    image: ImageService = ImageDep,
    settings: Settings = SettingsDep,
):
    templates = TemplateStore(stores, settings)
    storyboard = await templates.generate_storyboard(payload.story_id, PREVIEW_NAME)

    page = payload.page_data
    if page is None:
        page = next((p for p in storyboard.pages if p.page == payload.page_number), None)
    if page is None:
        raise NotFoundError(
            f"Page {payload.page_number} not found",
            details={"story_id": storyboard.id, "page": payload.page_number},
        )

    summary = _character_summary(payload.character_description, payload.character_profile)
    style = await _page_style(templates, settings, storyboard, summary, payload.character_sheet_url)
    sketch_url = payload.sketch_url or (await _approved_sketches(templates, storyboard.id)).get(page.page)

    ctx = AgentContext(settings=settings, llm=llm, image=image)
    url = await IllustratorAgent().generate_page(ctx, page, style, sketch_url)
    logger.info("Page %d regenerated: %s", payload.page_number, url)
    return RegeneratePageResponse(page_number=payload.page_number, image_url=url)
