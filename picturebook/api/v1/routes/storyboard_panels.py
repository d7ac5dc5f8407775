from __future__ import annotations

import logging

from fastapi import APIRouter

from picturebook.agents.base import AgentContext
from picturebook.agents.storyboard_artist import StoryboardArtistAgent
from picturebook.api.deps import ImageDep, LLMDep, SettingsDep, StoresDep
from picturebook.config import Settings
from picturebook.exceptions import BatchGenerationError, ValidationFailedError
from picturebook.schemas.generation import (
    RegeneratePanelRequest,
    RegeneratePanelResponse,
    StoryboardPanelsRequest,
    StoryboardPanelsResponse,
)
from picturebook.schemas.pipeline import Phase4PropsBible, Phase5PanelBriefs
from picturebook.schemas.story import StoryboardPanel
from picturebook.services.image import ImageService
from picturebook.services.llm import LLMService
from picturebook.services.project_service import StoryProjectService
from picturebook.services.store import Stores
from picturebook.services.template_store import TemplateStore

logger = logging.getLogger(__name__)

router = APIRouter()

PLACEHOLDER_NAME = "Child"


@router.post("", response_model=StoryboardPanelsResponse)
async def generate_storyboard_panels(
    payload: StoryboardPanelsRequest,
    stores: Stores = StoresDep,
    llm: LLMService = LLMDep,
    image: ImageService = ImageDep,
    settings: Settings = SettingsDep,
):
    templates = TemplateStore(stores, settings)
    storyboard = await templates.generate_storyboard(payload.story_id, PLACEHOLDER_NAME)
    pages = storyboard.pages[: payload.page_limit] if payload.page_limit else storyboard.pages
    prop_bible = await templates.get_prop_bible(storyboard.id) if payload.use_prop_bible else None

    if prop_bible is not None:
        logger.info(
            "Loaded prop bible with %d props and %d environments",
            len(prop_bible.props),
            len(prop_bible.environments),
        )

    ctx = AgentContext(settings=settings, llm=llm, image=image)
    try:
        panels = await StoryboardArtistAgent().run(ctx, storyboard.id, pages, prop_bible)
    except BatchGenerationError as exc:
        # 已生成的草图先保存，下次只需补齐剩余页
        if exc.results:
            await templates.save_stored_storyboard(
                storyboard.id, [StoryboardPanel.model_validate(r) for r in exc.results]
            )
        raise

    await templates.save_stored_storyboard(storyboard.id, panels)
    return StoryboardPanelsResponse(
        panels=panels,
        storyboard=storyboard.model_copy(update={"pages": pages}).dump(),
        panels_generated=len(panels),
        total_panels=len(pages),
        used_prop_bible=prop_bible is not None,
    )


@router.post("/regenerate", response_model=RegeneratePanelResponse)
async def regenerate_panel(
    payload: RegeneratePanelRequest,
    stores: Stores = StoresDep,
    llm: LLMService = LLMDep,
    image: ImageService = ImageDep,
    settings: Settings = SettingsDep,
):
    ctx = AgentContext(settings=settings, llm=llm, image=image)
    artist = StoryboardArtistAgent()
    templates = TemplateStore(stores, settings)

    # 流水线故事优先使用阶段 5 的分镜简报
    if not templates.is_legacy(payload.story_id):
        project = await StoryProjectService(stores, settings).get(payload.story_id)
        briefs_data = project.phase(5).output if project else None
        if briefs_data:
            brief = Phase5PanelBriefs.model_validate(briefs_data).brief_for(payload.page_number)
            if brief is not None:
                props_data = project.phase(4).output
                props_bible = Phase4PropsBible.model_validate(props_data) if props_data else None
                logger.info("Using panel brief for panel %d of %s", payload.page_number, payload.story_id)
                panel = await artist.generate_panel_from_brief(ctx, payload.story_id, brief, props_bible)
                return RegeneratePanelResponse(panel=panel, used_phase5=True)

    storyboard = await templates.generate_storyboard(payload.story_id, PLACEHOLDER_NAME)
    page = payload.page_data or next((p for p in storyboard.pages if p.page == payload.page_number), None)
    if page is None:
        raise ValidationFailedError("Missing pageData", details={"page": payload.page_number})

    prop_bible = await templates.get_prop_bible(storyboard.id) if payload.use_prop_bible else None
    panel = await artist.generate_panel(ctx, storyboard.id, page, prop_bible)
    logger.info("Regenerated panel %d: %s", payload.page_number, panel.sketch_url)
    return RegeneratePanelResponse(panel=panel, used_prop_bible=prop_bible is not None)
