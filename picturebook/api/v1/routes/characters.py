from __future__ import annotations

import logging

from fastapi import APIRouter, status

from picturebook.agents.base import AgentContext
from picturebook.agents.character_analyst import CharacterAnalystAgent
from picturebook.agents.illustrator import IllustratorAgent
from picturebook.api.deps import ImageDep, LLMDep, SettingsDep, StoresDep
from picturebook.config import Settings
from picturebook.schemas.character import (
    AnalyzeRequest,
    AnalyzeResponse,
    CharacterSheetRequest,
    CharacterSheetResponse,
    SaveCharacterRequest,
    StoredCharacter,
)
from picturebook.services.character_store import CharacterStore
from picturebook.services.image import ImageService
from picturebook.services.llm import LLMService
from picturebook.services.store import Stores

logger = logging.getLogger(__name__)

router = APIRouter()
admin_router = APIRouter()


@router.get("/characters", response_model=list[StoredCharacter])
async def list_characters(stores: Stores = StoresDep):
    return await CharacterStore(stores).list_all()


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_photo(
    payload: AnalyzeRequest,
    llm: LLMService = LLMDep,
    image: ImageService = ImageDep,
    settings: Settings = SettingsDep,
):
    logger.info("Analyzing photo for %s", payload.child_name)
    ctx = AgentContext(settings=settings, llm=llm, image=image)
    analysis = await CharacterAnalystAgent().run(ctx, child_name=payload.child_name, image_base64=payload.image_base64)
    return AnalyzeResponse(child_name=payload.child_name, profile=analysis.profile, description=analysis.description)


@router.post("/character-sheet", response_model=CharacterSheetResponse)
async def create_character_sheet(
    payload: CharacterSheetRequest,
    llm: LLMService = LLMDep,
    image: ImageService = ImageDep,
    settings: Settings = SettingsDep,
):
    ctx = AgentContext(settings=settings, llm=llm, image=image)
    url = await IllustratorAgent().generate_character_sheet(ctx, payload.character_description, payload.reference_image)
    return CharacterSheetResponse(character_sheet_url=url)


@admin_router.get("", response_model=list[StoredCharacter])
async def admin_list_characters(stores: Stores = StoresDep):
    return await CharacterStore(stores).list_all()


@admin_router.get("/{character_id}", response_model=StoredCharacter)
async def admin_get_character(character_id: str, stores: Stores = StoresDep):
    return await CharacterStore(stores).get(character_id)


@admin_router.post("", response_model=StoredCharacter, status_code=status.HTTP_201_CREATED)
async def admin_save_character(payload: SaveCharacterRequest, stores: Stores = StoresDep, image: ImageService = ImageDep):
    return await CharacterStore(stores, image).save(payload)


@admin_router.delete("/{character_id}", status_code=status.HTTP_204_NO_CONTENT)
async def admin_delete_character(character_id: str, stores: Stores = StoresDep):
    await CharacterStore(stores).delete(character_id)
