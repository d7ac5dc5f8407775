from __future__ import annotations

import logging

from picturebook.agents.utils import utcnow
from picturebook.exceptions import NotFoundError
from picturebook.schemas.character import SaveCharacterRequest, StoredCharacter
from picturebook.services.conversion import slugify
from picturebook.services.image import ImageService
from picturebook.services.store import Stores

logger = logging.getLogger(__name__)


class CharacterStore:
    """已批准角色（名字 + 描述 + 档案 + 角色设定图）的保存与查询"""

    def __init__(self, stores: Stores, image: ImageService | None = None):
        self.stores = stores
        self.image = image

    async def list_all(self) -> list[StoredCharacter]:
        characters: list[StoredCharacter] = []
        for key in await self.stores.characters.keys():
            data = await self.stores.characters.get(key)
            if data is not None:
                characters.append(StoredCharacter.model_validate(data))
        return sorted(characters, key=lambda c: c.created_at, reverse=True)

    async def get(self, character_id: str) -> StoredCharacter:
        data = await self.stores.characters.get(character_id)
        if data is None:
            raise NotFoundError(f"Character not found: {character_id}", details={"id": character_id})
        return StoredCharacter.model_validate(data)

    async def save(self, payload: SaveCharacterRequest) -> StoredCharacter:
        character_id = slugify(payload.name, sep="-")
        existing = await self.stores.characters.get(character_id)
        now = utcnow()

        sheet_url = payload.character_sheet_url
        if self.image is not None:
            # provider 返回的 URL 会过期，保存时落到本地
            sheet_url = await self.image.cache_external_image(sheet_url, f"{character_id}.png", subdir="characters")

        character = StoredCharacter(
            id=character_id,
            name=payload.name,
            description=payload.description,
            profile=payload.profile,
            character_sheet_url=sheet_url,
            created_at=StoredCharacter.model_validate(existing).created_at if existing else now,
            updated_at=now,
        )
        await self.stores.characters.put(character_id, character.model_dump(mode="json", by_alias=True))
        logger.info("Saved character %s", character_id)
        return character

    async def delete(self, character_id: str) -> None:
        if not await self.stores.characters.delete(character_id):
            raise NotFoundError(f"Character not found: {character_id}", details={"id": character_id})
