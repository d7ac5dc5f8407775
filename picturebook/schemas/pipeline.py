from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

PhaseNumber = Literal[0, 1, 2, 4, 5]
PhaseStatus = Literal["pending", "generating", "review", "approved"]
AgeRange = Literal["0-3", "3-5", "5-7"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ============================================
# 阶段产出
# ============================================


class Phase0Concept(_CamelModel):
    age_range: str
    theme: str | None = None
    emotional_core: str
    visual_hook: str
    tone_texture: str
    comparable_books: str
    what_its_not: str
    raw_output: str | None = None

    @field_validator("comparable_books", mode="before")
    @classmethod
    def _join_list(cls, value: Any) -> Any:
        if isinstance(value, list):
            return "; ".join(str(v) for v in value)
        return value


class Phase1Spread(_CamelModel):
    spread_number: int = Field(ge=1)
    page_range: str = ""
    draft_text: str
    visual_focus: str = ""
    emotional_beat: str = ""
    page_turn_pull: str = ""
    energy: Literal["Quiet", "Dynamic"] = "Quiet"


class Phase1Storyboard(_CamelModel):
    spread_count: int
    spreads: list[Phase1Spread]
    raw_output: str | None = None


class Phase2Spread(_CamelModel):
    spread_number: int = Field(ge=1)
    final_text: str
    illustration_note: str = ""
    read_aloud_note: str | None = None


class Phase2Manuscript(_CamelModel):
    spreads: list[Phase2Spread]
    raw_output: str | None = None


class SupportingCharacter(_CamelModel):
    name: str
    description: str
    appears_in_spreads: list[int] = Field(default_factory=list)


class KeyObject(_CamelModel):
    name: str
    description: str
    appears_in_spreads: list[int] = Field(default_factory=list)
    state_changes: str | None = None


class PipelineEnvironment(_CamelModel):
    name: str
    description: str
    used_in_spreads: list[int] = Field(default_factory=list)
    color_palette: list[str] = Field(default_factory=list)
    light_source: str | None = None


class VisualMotif(_CamelModel):
    motif: str
    purpose: str = ""
    appears_in_spreads: list[int] = Field(default_factory=list)


class Phase4PropsBible(_CamelModel):
    supporting_characters: list[SupportingCharacter] = Field(default_factory=list)
    key_objects: list[KeyObject] = Field(default_factory=list)
    environments: list[PipelineEnvironment] = Field(default_factory=list)
    visual_motifs: list[VisualMotif] = Field(default_factory=list)
    style_notes: str = ""
    raw_output: str | None = None


class Phase5PanelBrief(_CamelModel):
    spread_number: int = Field(ge=1)
    manuscript_text: str = ""
    composition: str = ""
    characters_in_frame: str = ""
    environment: str = ""
    objects_in_frame: str = ""
    emotional_direction: str = ""
    continuity_notes: str = ""
    image_prompt: str = ""


class Phase5PanelBriefs(_CamelModel):
    panels: list[Phase5PanelBrief]
    raw_output: str | None = None

    def brief_for(self, spread_number: int) -> Phase5PanelBrief | None:
        for panel in self.panels:
            if panel.spread_number == spread_number:
                return panel
        return None


PhaseOutput = Phase0Concept | Phase1Storyboard | Phase2Manuscript | Phase4PropsBible | Phase5PanelBriefs


# ============================================
# 项目聚合
# ============================================


class PhaseState(_CamelModel):
    status: PhaseStatus = "pending"
    output: dict[str, Any] | None = None
    revision_notes: str | None = None
    generated_at: datetime | None = None
    approved_at: datetime | None = None


def _default_phases() -> dict[int, PhaseState]:
    return {n: PhaseState() for n in (0, 1, 2, 4, 5)}


class StoryProject(_CamelModel):
    id: str
    name: str
    created_at: datetime
    updated_at: datetime
    current_phase: PhaseNumber = 0
    template_ready: bool = False
    phases: dict[int, PhaseState] = Field(default_factory=_default_phases)

    def phase(self, number: int) -> PhaseState:
        return self.phases.setdefault(number, PhaseState())

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class StoryIndexEntry(_CamelModel):
    id: str
    name: str
    current_phase: int = 0
    template_ready: bool = False
    is_legacy: bool = False


class TemplateStoryRead(_CamelModel):
    id: str
    name: str
    is_legacy: bool = False


# ============================================
# 请求 / 响应
# ============================================


class StoryCreate(_CamelModel):
    name: str = Field(min_length=1)

    @field_validator("name")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class PhaseGenerateRequest(_CamelModel):
    revision_notes: str | None = None
    age_range: AgeRange = "3-5"
    theme: str | None = None
    model: str | None = None


class PhaseActionRequest(_CamelModel):
    action: Literal["approve", "reject"]
    revision_notes: str | None = None


class PhaseGenerateResponse(_CamelModel):
    phase: int
    output: dict[str, Any]
    project: StoryProject


class ConvertResponse(_CamelModel):
    project: StoryProject
    page_count: int
    prop_count: int
    environment_count: int
