from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

AgeBracket = Literal["toddler", "young_child", "older_child"]
GenderPresentation = Literal["boy", "girl", "neutral"]
HairTexture = Literal["straight", "wavy", "curly", "coily"]
FaceShape = Literal["round", "oval", "heart"]


class Hair(BaseModel):
    model_config = ConfigDict(frozen=True)

    color: str
    length: str
    texture: HairTexture
    style: str = ""


class Face(BaseModel):
    model_config = ConfigDict(frozen=True)

    shape: FaceShape
    expression_default: str = ""


class Eyes(BaseModel):
    model_config = ConfigDict(frozen=True)

    color: str
    shape: str = ""


class CharacterProfile(BaseModel):
    """从照片中提取的角色档案（批准后不可变）"""

    model_config = ConfigDict(frozen=True)

    character_name: str
    approx_age: AgeBracket
    gender_presentation: GenderPresentation
    hair: Hair
    face: Face
    eyes: Eyes
    skin_tone: str
    distinctive_features: list[str] = Field(default_factory=list)
    clothing: str = ""
    color_palette: list[str] = Field(default_factory=list)
    personality_traits: list[str] = Field(default_factory=list)
    do_not_change: list[str] = Field(default_factory=list)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnalyzeRequest(_CamelModel):
    child_name: str = Field(min_length=1)
    # base64 编码的照片（可带 data: 前缀）
    image_base64: str = Field(min_length=1)


class AnalyzeResponse(_CamelModel):
    child_name: str
    profile: CharacterProfile
    description: str


class CharacterSheetRequest(_CamelModel):
    character_description: str = Field(min_length=1)
    # 参考照片：公网 URL 或 data URL
    reference_image: str = Field(min_length=1)


class CharacterSheetResponse(_CamelModel):
    character_sheet_url: str


class StoredCharacter(_CamelModel):
    id: str
    name: str
    description: str
    profile: dict[str, Any] = Field(default_factory=dict)
    character_sheet_url: str
    created_at: datetime
    updated_at: datetime


class SaveCharacterRequest(_CamelModel):
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    profile: dict[str, Any] = Field(default_factory=dict)
    character_sheet_url: str = Field(min_length=1)
