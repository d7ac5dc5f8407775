from __future__ import annotations

import logging

from picturebook.agents.utils import utcnow
from picturebook.config import Settings
from picturebook.exceptions import NotFoundError, ValidationFailedError
from picturebook.schemas.pipeline import StoryIndexEntry, StoryProject
from picturebook.services.conversion import slugify
from picturebook.services.store import Stores

logger = logging.getLogger(__name__)

INDEX_KEY = "stories"
PHASE_NUMBERS = (0, 1, 2, 4, 5)


def phase_output_key(story_id: str, phase: int) -> str:
    return f"{story_id}:{phase}"


class StoryProjectService:
    """故事项目（流水线聚合）的读写，以及故事索引的维护"""

    def __init__(self, stores: Stores, settings: Settings):
        self.stores = stores
        self.settings = settings

    @property
    def legacy_id(self) -> str:
        return self.settings.legacy_story_id

    def legacy_entry(self) -> StoryIndexEntry:
        return StoryIndexEntry(
            id=self.legacy_id,
            name="Adventure Story",
            current_phase=5,
            template_ready=True,
            is_legacy=True,
        )

    async def _unique_id(self, name: str) -> str:
        base = slugify(name, sep="-")
        story_id = base
        n = 2
        while story_id == self.legacy_id or await self.stores.projects.get(story_id) is not None:
            story_id = f"{base}-{n}"
            n += 1
        return story_id

    async def create(self, name: str) -> StoryProject:
        now = utcnow()
        project = StoryProject(
            id=await self._unique_id(name),
            name=name,
            created_at=now,
            updated_at=now,
        )
        await self.stores.projects.put(project.id, project.to_json())
        await self._sync_index(project)
        logger.info("Created story project %s (%s)", project.id, name)
        return project

    async def get(self, story_id: str) -> StoryProject | None:
        data = await self.stores.projects.get(story_id)
        if data is None:
            return None
        return StoryProject.model_validate(data)

    async def require(self, story_id: str) -> StoryProject:
        project = await self.get(story_id)
        if project is None:
            raise NotFoundError(f"Story not found: {story_id}", details={"story_id": story_id})
        return project

    async def save(self, project: StoryProject) -> StoryProject:
        project.updated_at = utcnow()
        await self.stores.projects.put(project.id, project.to_json())
        await self._sync_index(project)
        return project

    async def save_phase_output(self, story_id: str, phase: int, output: dict) -> None:
        await self.stores.phase_outputs.put(phase_output_key(story_id, phase), output)

    async def get_phase_output(self, story_id: str, phase: int) -> dict | None:
        return await self.stores.phase_outputs.get(phase_output_key(story_id, phase))

    async def _load_index(self) -> list[StoryIndexEntry]:
        raw = await self.stores.stories_index.get(INDEX_KEY) or []
        return [StoryIndexEntry.model_validate(item) for item in raw]

    async def _write_index(self, entries: list[StoryIndexEntry]) -> None:
        await self.stores.stories_index.put(INDEX_KEY, [e.model_dump(by_alias=True) for e in entries])

    async def _sync_index(self, project: StoryProject) -> None:
        entries = [e for e in await self._load_index() if e.id != project.id]
        entries.append(
            StoryIndexEntry(
                id=project.id,
                name=project.name,
                current_phase=project.current_phase,
                template_ready=project.template_ready,
            )
        )
        await self._write_index(entries)

    async def list_index(self) -> list[StoryIndexEntry]:
        """内置故事始终排在第一位"""
        entries = [e for e in await self._load_index() if e.id != self.legacy_id]
        return [self.legacy_entry(), *entries]

    async def delete(self, story_id: str) -> None:
        if story_id == self.legacy_id:
            raise ValidationFailedError("The built-in story cannot be deleted", details={"story_id": story_id})
        if not await self.stores.projects.delete(story_id):
            raise NotFoundError(f"Story not found: {story_id}", details={"story_id": story_id})

        for phase in PHASE_NUMBERS:
            await self.stores.phase_outputs.delete(phase_output_key(story_id, phase))
        for store in (
            self.stores.story_templates,
            self.stores.prop_bibles,
            self.stores.prompt_templates,
            self.stores.storyboards,
        ):
            await store.delete(story_id)

        await self._write_index([e for e in await self._load_index() if e.id != story_id])
        logger.info("Deleted story project %s", story_id)
