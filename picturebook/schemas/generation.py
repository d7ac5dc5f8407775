from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from picturebook.schemas.character import CharacterProfile
from picturebook.schemas.story import StoryboardPanel, StoryPage


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateBookRequest(_CamelModel):
    child_name: str = Field(min_length=1)
    character_description: str = Field(min_length=1)
    character_profile: CharacterProfile | None = None
    # 插画风格的角色设定图，所有页面共用
    character_sheet_url: str = Field(min_length=1)
    story_id: str | None = None
    page_limit: int | None = Field(default=None, ge=1)
    # 使用已批准的构图草图作为第二张参考图
    use_storyboard_sketches: bool = True


class GenerateBookResponse(_CamelModel):
    story: dict[str, Any]
    images_generated: int
    total_images: int


class RegeneratePageRequest(_CamelModel):
    page_number: int = Field(ge=1)
    page_data: StoryPage | None = None
    character_description: str = Field(min_length=1)
    character_profile: CharacterProfile | None = None
    character_sheet_url: str = Field(min_length=1)
    story_id: str | None = None
    sketch_url: str | None = None


class RegeneratePageResponse(_CamelModel):
    page_number: int
    image_url: str


class StoryboardPanelsRequest(_CamelModel):
    story_id: str | None = None
    page_limit: int | None = Field(default=None, ge=1)
    use_prop_bible: bool = True


class StoryboardPanelsResponse(_CamelModel):
    panels: list[StoryboardPanel]
    storyboard: dict[str, Any]
    panels_generated: int
    total_panels: int
    used_prop_bible: bool


class RegeneratePanelRequest(_CamelModel):
    page_number: int = Field(ge=1)
    page_data: StoryPage | None = None
    story_id: str | None = None
    use_prop_bible: bool = True


class RegeneratePanelResponse(_CamelModel):
    panel: StoryboardPanel
    used_phase5: bool = False
    used_prop_bible: bool = False


class SaveStoryboardRequest(_CamelModel):
    story_id: str | None = None
    panels: list[StoryboardPanel]


class UpdatePanelRequest(_CamelModel):
    story_id: str | None = None
    page: int = Field(ge=1)
    approved: bool | None = None
    sketch_url: str | None = None
