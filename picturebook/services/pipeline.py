"""故事流水线状态机。

阶段集合固定为 0/1/2/4/5（没有 3），依赖关系由 ``PHASES`` 表描述：

    0 Concept -> 1 Storyboard -> 2 Manuscript -> 4 Props Bible -> 5 Panel Briefs

每个阶段的状态：pending -> generating -> review -> approved。
生成要求所有前置阶段已 approved；approve / reject 只作用于 review 状态。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import BaseModel

from picturebook.agents.base import AgentContext
from picturebook.agents.story_phases import (
    ConceptAgent,
    ManuscriptAgent,
    PanelBriefsAgent,
    PhaseAgent,
    PropsBibleAgent,
    StoryboardAgent,
)
from picturebook.agents.utils import utcnow
from picturebook.config import Settings
from picturebook.exceptions import (
    DependencyNotReadyError,
    InvalidPhaseError,
    InvalidTransitionError,
    ValidationFailedError,
)
from picturebook.schemas.pipeline import (
    Phase0Concept,
    Phase1Storyboard,
    Phase2Manuscript,
    Phase4PropsBible,
    Phase5PanelBriefs,
    PhaseGenerateRequest,
    StoryProject,
)
from picturebook.services.conversion import TemplateArtifacts, compile_template
from picturebook.services.image import ImageService
from picturebook.services.llm import LLMService
from picturebook.services.project_service import StoryProjectService
from picturebook.services.store import Stores
from picturebook.services.template_store import TemplateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhaseSpec:
    number: int
    key: str
    label: str
    depends_on: tuple[int, ...]
    output_model: type[BaseModel]
    agent: type[PhaseAgent]


PHASES: dict[int, PhaseSpec] = {
    0: PhaseSpec(0, "phase0", "Concept", (), Phase0Concept, ConceptAgent),
    1: PhaseSpec(1, "phase1", "Storyboard", (0,), Phase1Storyboard, StoryboardAgent),
    2: PhaseSpec(2, "phase2", "Manuscript", (0, 1), Phase2Manuscript, ManuscriptAgent),
    4: PhaseSpec(4, "phase4", "Props Bible", (0, 2), Phase4PropsBible, PropsBibleAgent),
    5: PhaseSpec(5, "phase5", "Panel Briefs", (2, 4), Phase5PanelBriefs, PanelBriefsAgent),
}

PHASE_ORDER: tuple[int, ...] = (0, 1, 2, 4, 5)


def get_phase(phase: int) -> PhaseSpec:
    spec = PHASES.get(phase)
    if spec is None:
        raise InvalidPhaseError(phase)
    return spec


def next_phase(phase: int) -> int:
    idx = PHASE_ORDER.index(phase)
    return PHASE_ORDER[min(idx + 1, len(PHASE_ORDER) - 1)]


@dataclass
class ConversionResult:
    project: StoryProject
    artifacts: TemplateArtifacts


class PhasePipeline:
    def __init__(
        self,
        stores: Stores,
        llm: LLMService,
        settings: Settings,
        image: ImageService | None = None,
    ):
        self.settings = settings
        self.llm = llm
        self.image = image
        self.projects = StoryProjectService(stores, settings)
        self.templates = TemplateStore(stores, settings)

    def _output(self, project: StoryProject, phase: int) -> BaseModel | None:
        data = project.phase(phase).output
        if data is None:
            return None
        return PHASES[phase].output_model.model_validate(data)

    def _check_dependencies(self, project: StoryProject, spec: PhaseSpec) -> None:
        missing = [n for n in spec.depends_on if project.phase(n).status != "approved"]
        if missing:
            labels = ", ".join(f"{n} ({PHASES[n].label})" for n in missing)
            raise DependencyNotReadyError(
                f"Phase {spec.number} requires approved phase(s): {labels}",
                details={"phase": spec.number, "missing": missing},
            )

    async def generate(
        self,
        story_id: str,
        phase: int,
        request: PhaseGenerateRequest | None = None,
    ) -> StoryProject:
        """生成（或重新生成）一个阶段，成功后状态为 review"""
        spec = get_phase(phase)
        request = request or PhaseGenerateRequest()
        project = await self.projects.require(story_id)
        self._check_dependencies(project, spec)

        state = project.phase(phase)
        # 未显式提供时沿用上次 reject 留下的修改意见
        notes = request.revision_notes or state.revision_notes
        deps = {n: self._output(project, n) for n in spec.depends_on}

        state.status = "generating"
        await self.projects.save(project)
        logger.info("Generating phase %s (%s) for story %s", phase, spec.label, story_id)

        ctx = AgentContext(
            settings=self.settings,
            llm=self.llm,
            image=self.image,
            revision_notes=notes,
            model=request.model,
        )
        try:
            output = await spec.agent().run(ctx, deps, request)
        except Exception:
            # 失败时保留旧产出，不写入任何部分结果
            state.status = "review" if state.output is not None else "pending"
            await self.projects.save(project)
            logger.warning("Phase %s generation failed for story %s", phase, story_id, exc_info=True)
            raise

        data = output.model_dump(mode="json", by_alias=True, exclude_none=True)
        state.output = data
        state.status = "review"
        state.generated_at = utcnow()
        state.revision_notes = None
        await self.projects.save_phase_output(story_id, phase, data)
        await self.projects.save(project)
        logger.info("Phase %s for story %s is ready for review", phase, story_id)
        return project

    async def approve(self, story_id: str, phase: int) -> StoryProject:
        get_phase(phase)
        project = await self.projects.require(story_id)
        state = project.phase(phase)
        if state.status != "review":
            raise InvalidTransitionError(
                f"Phase {phase} cannot be approved from status '{state.status}'",
                details={"phase": phase, "status": state.status},
            )

        state.status = "approved"
        state.approved_at = utcnow()
        project.current_phase = next_phase(phase)
        logger.info("Phase %s approved for story %s", phase, story_id)
        return await self.projects.save(project)

    async def reject(self, story_id: str, phase: int, revision_notes: str | None) -> StoryProject:
        get_phase(phase)
        if not revision_notes or not revision_notes.strip():
            raise ValidationFailedError("Revision notes are required to reject a phase", details={"phase": phase})

        project = await self.projects.require(story_id)
        state = project.phase(phase)
        if state.status != "review":
            raise InvalidTransitionError(
                f"Phase {phase} cannot be rejected from status '{state.status}'",
                details={"phase": phase, "status": state.status},
            )

        state.revision_notes = revision_notes.strip()
        logger.info("Phase %s rejected for story %s", phase, story_id)
        return await self.projects.save(project)

    async def convert_to_template(self, story_id: str) -> ConversionResult:
        """把阶段产出编译成运行时模板；同样的产出总是得到同样的模板"""
        project = await self.projects.require(story_id)
        concept = self._output(project, 0)
        manuscript = self._output(project, 2)
        if concept is None or manuscript is None:
            raise DependencyNotReadyError(
                "Conversion requires phase 0 and phase 2 outputs",
                details={"has_concept": concept is not None, "has_manuscript": manuscript is not None},
            )

        artifacts = compile_template(
            story_id,
            project.name,
            concept,
            manuscript,
            props_bible=self._output(project, 4),
            panel_briefs=self._output(project, 5),
        )
        await self.templates.save_artifacts(artifacts)

        project.template_ready = True
        await self.projects.save(project)
        logger.info(
            "Converted story %s to template: %d pages, %d props, %d environments",
            story_id,
            len(artifacts.storyboard.pages),
            len(artifacts.prop_bible.props),
            len(artifacts.prop_bible.environments),
        )
        return ConversionResult(project=project, artifacts=artifacts)
