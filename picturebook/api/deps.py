from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from picturebook.config import Settings, get_settings
from picturebook.services.image import ImageService
from picturebook.services.llm import LLMService
from picturebook.services.store import Stores, create_stores


async def get_app_settings() -> Settings:
    return get_settings()


@lru_cache
def _stores() -> Stores:
    return create_stores(get_settings())


@lru_cache
def _llm() -> LLMService:
    return LLMService(get_settings())


@lru_cache
def _image() -> ImageService:
    return ImageService(get_settings())


async def get_stores() -> Stores:
    return _stores()


async def get_llm() -> LLMService:
    return _llm()


async def get_image() -> ImageService:
    return _image()


SettingsDep = Depends(get_app_settings)
StoresDep = Depends(get_stores)
LLMDep = Depends(get_llm)
ImageDep = Depends(get_image)
