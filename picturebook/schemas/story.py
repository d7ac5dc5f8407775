from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CompositionHint = Literal["wide", "medium", "close"]
Layout = Literal["left_text", "right_text", "bottom_text", "full_bleed"]
TextPlacement = Literal["left", "right", "bottom", "top"]

TEXT_PLACEMENT_BY_LAYOUT: dict[str, TextPlacement] = {
    "left_text": "left",
    "right_text": "right",
    "bottom_text": "bottom",
    "full_bleed": "bottom",
}


class StoryPage(BaseModel):
    # composition_hint 在产物里保持 snake_case，只有 imageUrl 用驼峰
    model_config = ConfigDict(populate_by_name=True)

    page: int = Field(ge=1)
    scene: str
    emotion: str = ""
    action: str = ""
    setting: str = ""
    composition_hint: CompositionHint = "medium"
    text: str = ""
    layout: Layout = "bottom_text"
    props: list[str] | None = None
    environment: str | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")

    def dump(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class Storyboard(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    age_range: str | None = None
    page_count: int | None = None
    pages: list[StoryPage] = Field(default_factory=list)

    def dump(self) -> dict:
        data = self.model_dump(by_alias=True, exclude_none=True, exclude={"pages"})
        data["pages"] = [p.dump() for p in self.pages]
        return data


class PagePrompt(BaseModel):
    page: int
    prompt: str


class PromptsTemplate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    story_id: str
    style_prompt: str
    negative_prompt: str
    pages: list[PagePrompt] = Field(default_factory=list)

    def dump(self) -> dict:
        return self.model_dump(by_alias=True)


class StoryboardPanel(BaseModel):
    """黑白构图草图（批准后作为终稿 img2img 的参考图）"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    page: int
    scene: str
    text_placement: TextPlacement = "bottom"
    sketch_url: str | None = None
    approved: bool = False


class StoredStoryboard(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    story_id: str
    created_at: datetime
    updated_at: datetime
    panels: list[StoryboardPanel] = Field(default_factory=list)


class GeneratedImage(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    page_number: int
    image_url: str
