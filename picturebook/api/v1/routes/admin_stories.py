from __future__ import annotations

from fastapi import APIRouter, status

from picturebook.api.deps import LLMDep, SettingsDep, StoresDep
from picturebook.config import Settings
from picturebook.schemas.pipeline import (
    ConvertResponse,
    PhaseActionRequest,
    PhaseGenerateRequest,
    PhaseGenerateResponse,
    StoryCreate,
    StoryIndexEntry,
    StoryProject,
)
from picturebook.services.llm import LLMService
from picturebook.services.pipeline import PhasePipeline
from picturebook.services.project_service import StoryProjectService
from picturebook.services.store import Stores

router = APIRouter()


@router.get("", response_model=list[StoryIndexEntry])
async def list_stories(stores: Stores = StoresDep, settings: Settings = SettingsDep):
    return await StoryProjectService(stores, settings).list_index()


@router.post("", response_model=StoryProject, status_code=status.HTTP_201_CREATED)
async def create_story(payload: StoryCreate, stores: Stores = StoresDep, settings: Settings = SettingsDep):
    return await StoryProjectService(stores, settings).create(payload.name)


@router.get("/{story_id}", response_model=StoryProject)
async def get_story(story_id: str, stores: Stores = StoresDep, settings: Settings = SettingsDep):
    return await StoryProjectService(stores, settings).require(story_id)


@router.delete("/{story_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_story(story_id: str, stores: Stores = StoresDep, settings: Settings = SettingsDep):
    """删除项目、阶段产出和已转换的模板"""
    await StoryProjectService(stores, settings).delete(story_id)


@router.post("/{story_id}/phases/{phase}", response_model=PhaseGenerateResponse)
async def generate_phase(
    story_id: str,
    phase: int,
    payload: PhaseGenerateRequest | None = None,
    stores: Stores = StoresDep,
    llm: LLMService = LLMDep,
    settings: Settings = SettingsDep,
):
    pipeline = PhasePipeline(stores, llm, settings)
    project = await pipeline.generate(story_id, phase, payload)
    return PhaseGenerateResponse(phase=phase, output=project.phase(phase).output or {}, project=project)


@router.patch("/{story_id}/phases/{phase}", response_model=StoryProject)
async def update_phase(
    story_id: str,
    phase: int,
    payload: PhaseActionRequest,
    stores: Stores = StoresDep,
    llm: LLMService = LLMDep,
    settings: Settings = SettingsDep,
):
    pipeline = PhasePipeline(stores, llm, settings)
    if payload.action == "approve":
        return await pipeline.approve(story_id, phase)
    return await pipeline.reject(story_id, phase, payload.revision_notes)


@router.post("/{story_id}/convert", response_model=ConvertResponse)
async def convert_story(
    story_id: str,
    stores: Stores = StoresDep,
    llm: LLMService = LLMDep,
    settings: Settings = SettingsDep,
):
    result = await PhasePipeline(stores, llm, settings).convert_to_template(story_id)
    return ConvertResponse(
        project=result.project,
        page_count=len(result.artifacts.storyboard.pages),
        prop_count=len(result.artifacts.prop_bible.props),
        environment_count=len(result.artifacts.prop_bible.environments),
    )
