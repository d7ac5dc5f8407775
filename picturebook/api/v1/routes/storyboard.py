from __future__ import annotations

from fastapi import APIRouter, Query

from picturebook.api.deps import SettingsDep, StoresDep
from picturebook.config import Settings
from picturebook.exceptions import NotFoundError
from picturebook.schemas.generation import SaveStoryboardRequest, UpdatePanelRequest
from picturebook.schemas.story import StoredStoryboard
from picturebook.services.store import Stores
from picturebook.services.template_store import TemplateStore

router = APIRouter()


@router.get("", response_model=StoredStoryboard)
async def get_saved_storyboard(
    story_id: str | None = Query(default=None, alias="storyId"),
    stores: Stores = StoresDep,
    settings: Settings = SettingsDep,
):
    story_id = story_id or settings.legacy_story_id
    stored = await TemplateStore(stores, settings).load_stored_storyboard(story_id)
    if stored is None:
        raise NotFoundError(f"No saved storyboard for story: {story_id}", details={"story_id": story_id})
    return stored


@router.post("", response_model=StoredStoryboard)
async def save_storyboard(payload: SaveStoryboardRequest, stores: Stores = StoresDep, settings: Settings = SettingsDep):
    story_id = payload.story_id or settings.legacy_story_id
    return await TemplateStore(stores, settings).save_stored_storyboard(story_id, payload.panels)


@router.patch("", response_model=StoredStoryboard)
async def update_panel(payload: UpdatePanelRequest, stores: Stores = StoresDep, settings: Settings = SettingsDep):
    """批准草图或替换草图地址"""
    story_id = payload.story_id or settings.legacy_story_id
    return await TemplateStore(stores, settings).update_stored_panel(
        story_id,
        payload.page,
        approved=payload.approved,
        sketch_url=payload.sketch_url,
    )
