from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class PropEntry(BaseModel):
    """道具或场景条目：规范描述 + 出现的页码集合"""

    description: str = Field(min_length=1)
    appearances: list[int] = Field(default_factory=list)

    @field_validator("appearances")
    @classmethod
    def _positive_unique(cls, value: list[int]) -> list[int]:
        if any(n < 1 for n in value):
            raise ValueError("appearances must be positive page numbers")
        return sorted(set(value))


# 道具与场景结构相同，分开命名便于阅读
Prop = PropEntry
Environment = PropEntry


class PropBible(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    story_id: str
    global_style: str | None = None
    global_instructions: str | None = None
    compositions: dict[int, str] | None = None
    props: dict[str, PropEntry] = Field(default_factory=dict)
    environments: dict[str, PropEntry] = Field(default_factory=dict)

    def props_for_page(self, page: int) -> list[tuple[str, PropEntry]]:
        return [(key, prop) for key, prop in self.props.items() if page in prop.appearances]

    def environment_for_page(self, page: int) -> tuple[str, PropEntry] | None:
        for key, env in self.environments.items():
            if page in env.appearances:
                return key, env
        return None

    def dump(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class PropBibleUpdate(BaseModel):
    """单条编辑：更新或删除一个道具 / 场景 / 构图覆盖"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    story_id: str | None = None
    type: Literal["prop", "environment", "composition"]
    key: str = Field(min_length=1)
    action: Literal["update", "delete"] = "update"
    # prop/environment 为 {description, appearances}；composition 为字符串
    data: PropEntry | str | None = None
