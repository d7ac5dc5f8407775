"""运行时故事模板。

流水线故事的模板产物保存在键值存储里；内置故事（adventure-story）随代码打包在
``picturebook/templates/adventure_story`` 下，作为所有查找的兜底。
"""
from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

from picturebook.agents.utils import utcnow
from picturebook.config import Settings
from picturebook.exceptions import NotFoundError, ValidationFailedError
from picturebook.schemas.pipeline import TemplateStoryRead
from picturebook.schemas.prop_bible import PropBible, PropBibleUpdate, PropEntry
from picturebook.schemas.story import (
    GeneratedImage,
    PromptsTemplate,
    StoredStoryboard,
    Storyboard,
    StoryboardPanel,
)
from picturebook.services.conversion import TemplateArtifacts
from picturebook.services.project_service import StoryProjectService
from picturebook.services.store import Stores

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
LEGACY_DIR = TEMPLATES_DIR / "adventure_story"

NAME_TOKEN = "{{name}}"


def replace_placeholders(text: str, name: str) -> str:
    return text.replace(NAME_TOKEN, name)


@lru_cache
def _load_packaged(filename: str) -> dict[str, Any]:
    with open(LEGACY_DIR / filename, encoding="utf-8") as f:
        return json.load(f)


def legacy_storyboard() -> Storyboard:
    return Storyboard.model_validate(_load_packaged("story.json"))


def legacy_prop_bible() -> PropBible:
    return PropBible.model_validate(_load_packaged("prop_bible.json"))


def legacy_prompts() -> PromptsTemplate:
    return PromptsTemplate.model_validate(_load_packaged("prompts.json"))


def personalize(storyboard: Storyboard, name: str) -> Storyboard:
    """标题与每页文本替换 {{name}}，其余字段原样保留"""
    return storyboard.model_copy(
        update={
            "title": replace_placeholders(storyboard.title, name),
            "pages": [
                page.model_copy(update={"text": replace_placeholders(page.text, name)})
                for page in storyboard.pages
            ],
        }
    )


def merge_storyboard_with_images(storyboard: Storyboard, images: list[GeneratedImage]) -> Storyboard:
    by_page = {img.page_number: img.image_url for img in images}
    return storyboard.model_copy(
        update={
            "pages": [
                page.model_copy(update={"image_url": by_page.get(page.page, page.image_url)})
                for page in storyboard.pages
            ]
        }
    )


class TemplateStore:
    def __init__(self, stores: Stores, settings: Settings):
        self.stores = stores
        self.settings = settings

    def is_legacy(self, story_id: str | None) -> bool:
        return not story_id or story_id == self.settings.legacy_story_id

    # ============================================
    # 页列表
    # ============================================

    async def load_storyboard(self, story_id: str | None) -> Storyboard | None:
        if self.is_legacy(story_id):
            return legacy_storyboard()
        data = await self.stores.story_templates.get(story_id)
        return Storyboard.model_validate(data) if data is not None else None

    async def generate_storyboard(self, story_id: str | None, name: str) -> Storyboard:
        storyboard = await self.load_storyboard(story_id)
        if storyboard is None:
            logger.info("No template for story %s, falling back to the built-in story", story_id)
            storyboard = legacy_storyboard()
        return personalize(storyboard, name)

    # ============================================
    # 道具圣经
    # ============================================

    async def get_prop_bible(self, story_id: str | None) -> PropBible:
        if story_id and not self.is_legacy(story_id):
            data = await self.stores.prop_bibles.get(story_id)
            # 转换前的流水线故事没有道具圣经，返回空结构而不是内置故事的道具
            return PropBible.model_validate(data) if data is not None else PropBible(story_id=story_id)
        data = await self.stores.prop_bibles.get(self.settings.legacy_story_id)
        return PropBible.model_validate(data) if data is not None else legacy_prop_bible()

    async def save_prop_bible(self, bible: PropBible) -> PropBible:
        await self.stores.prop_bibles.put(bible.story_id, bible.dump())
        return bible

    async def update_prop_bible_entry(self, update: PropBibleUpdate) -> PropBible:
        story_id = update.story_id or self.settings.legacy_story_id
        bible = await self.get_prop_bible(story_id)

        if update.type == "composition":
            try:
                page = int(update.key)
            except ValueError as exc:
                raise ValidationFailedError("Composition key must be a page number", details={"key": update.key}) from exc
            compositions = dict(bible.compositions or {})
            if update.action == "delete":
                compositions.pop(page, None)
            elif isinstance(update.data, str) and update.data.strip():
                compositions[page] = update.data.strip()
            else:
                raise ValidationFailedError("Composition override must be a non-empty string")
            bible.compositions = compositions or None
        else:
            entries = bible.props if update.type == "prop" else bible.environments
            if update.action == "delete":
                if entries.pop(update.key, None) is None:
                    raise NotFoundError(f"{update.type} not found: {update.key}", details={"key": update.key})
            elif isinstance(update.data, PropEntry):
                entries[update.key] = update.data
            else:
                raise ValidationFailedError(f"{update.type} update requires {{description, appearances}}")

        return await self.save_prop_bible(bible)

    # ============================================
    # Prompt 表
    # ============================================

    async def get_prompts(self, story_id: str | None) -> PromptsTemplate:
        if not self.is_legacy(story_id):
            data = await self.stores.prompt_templates.get(story_id)
            if data is not None:
                return PromptsTemplate.model_validate(data)
        return legacy_prompts()

    async def get_page_prompt(self, story_id: str | None, page: int) -> str | None:
        prompts = await self.get_prompts(story_id)
        return next((p.prompt for p in prompts.pages if p.page == page), None)

    async def save_artifacts(self, artifacts: TemplateArtifacts) -> None:
        story_id = artifacts.storyboard.id
        await self.stores.story_templates.put(story_id, artifacts.storyboard.dump())
        await self.stores.prop_bibles.put(story_id, artifacts.prop_bible.dump())
        await self.stores.prompt_templates.put(story_id, artifacts.prompts.dump())

    async def list_template_ready_stories(self) -> list[TemplateStoryRead]:
        index = await StoryProjectService(self.stores, self.settings).list_index()
        return [
            TemplateStoryRead(id=e.id, name=e.name, is_legacy=e.is_legacy)
            for e in index
            if e.template_ready
        ]

    # ============================================
    # 已保存的构图草图
    # ============================================

    async def load_stored_storyboard(self, story_id: str) -> StoredStoryboard | None:
        data = await self.stores.storyboards.get(story_id)
        return StoredStoryboard.model_validate(data) if data is not None else None

    async def save_stored_storyboard(self, story_id: str, panels: list[StoryboardPanel]) -> StoredStoryboard:
        existing = await self.load_stored_storyboard(story_id)
        now = utcnow()
        stored = StoredStoryboard(
            story_id=story_id,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            panels=sorted(panels, key=lambda p: p.page),
        )
        await self.stores.storyboards.put(story_id, stored.model_dump(mode="json", by_alias=True))
        return stored

    async def update_stored_panel(self, story_id: str, page: int, **fields: Any) -> StoredStoryboard:
        stored = await self.load_stored_storyboard(story_id)
        if stored is None:
            raise NotFoundError(f"No saved storyboard for story: {story_id}", details={"story_id": story_id})

        panels: list[StoryboardPanel] = []
        found = False
        for panel in stored.panels:
            if panel.page == page:
                panel = panel.model_copy(update={k: v for k, v in fields.items() if v is not None})
                found = True
            panels.append(panel)
        if not found:
            raise NotFoundError(f"Panel {page} not found", details={"story_id": story_id, "page": page})
        return await self.save_stored_storyboard(story_id, panels)
