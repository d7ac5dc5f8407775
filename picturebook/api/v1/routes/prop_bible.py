from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from picturebook.api.deps import SettingsDep, StoresDep
from picturebook.config import Settings
from picturebook.schemas.prop_bible import PropBible, PropBibleUpdate
from picturebook.services.store import Stores
from picturebook.services.template_store import TemplateStore

router = APIRouter()


@router.get("")
async def get_prop_bible(
    story_id: str | None = Query(default=None, alias="storyId"),
    stores: Stores = StoresDep,
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    bible = await TemplateStore(stores, settings).get_prop_bible(story_id)
    return bible.dump()


@router.put("")
async def replace_prop_bible(
    payload: PropBible,
    stores: Stores = StoresDep,
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    bible = await TemplateStore(stores, settings).save_prop_bible(payload)
    return bible.dump()


@router.patch("")
async def update_prop_bible_entry(
    payload: PropBibleUpdate,
    stores: Stores = StoresDep,
    settings: Settings = SettingsDep,
) -> dict[str, Any]:
    """更新或删除单个道具 / 场景 / 构图覆盖"""
    bible = await TemplateStore(stores, settings).update_prop_bible_entry(payload)
    return bible.dump()
