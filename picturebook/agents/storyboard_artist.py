from __future__ import annotations

import asyncio
import logging

from picturebook.agents.base import AgentContext, BaseAgent
from picturebook.exceptions import BatchGenerationError
from picturebook.schemas.pipeline import Phase4PropsBible, Phase5PanelBrief
from picturebook.schemas.prop_bible import PropBible
from picturebook.schemas.story import TEXT_PLACEMENT_BY_LAYOUT, StoryboardPanel, StoryPage
from picturebook.services.prompt_composer import build_panel_prompt, build_storyboard_prompt

logger = logging.getLogger(__name__)

OUTLINE_STATIC_PATH = "/static/outline.png"


def outline_reference(ctx: AgentContext) -> list[str]:
    """白色轮廓占位图；只有公网可访问的地址才能交给图像服务"""
    url = ctx.settings.outline_image_url or ctx.settings.build_public_url(OUTLINE_STATIC_PATH)
    if url and url.startswith(("http://", "https://", "data:")):
        return [url]
    logger.warning("Outline reference image is not publicly reachable (%s); generating without it", url)
    return []


class StoryboardArtistAgent(BaseAgent[StoryboardPanel]):
    """黑白构图草图：主角以白色轮廓占位，批准后作为终稿的构图参考"""

    name = "storyboard_artist"

    async def _render(self, ctx: AgentContext, story_id: str, page: int, prompt: str) -> str:
        sketch_url = await ctx.image.generate_url(prompt=prompt, reference_images=outline_reference(ctx))
        return await ctx.image.cache_external_image(sketch_url, f"{story_id}-panel-{page}.png", subdir="storyboard")

    async def generate_panel(
        self,
        ctx: AgentContext,
        story_id: str,
        page: StoryPage,
        prop_bible: PropBible | None = None,
    ) -> StoryboardPanel:
        prompt = build_storyboard_prompt(page, prop_bible)
        sketch_url = await self._render(ctx, story_id, page.page, prompt)
        return StoryboardPanel(
            page=page.page,
            scene=page.scene,
            text_placement=TEXT_PLACEMENT_BY_LAYOUT.get(page.layout, "bottom"),
            sketch_url=sketch_url,
        )

    async def generate_panel_from_brief(
        self,
        ctx: AgentContext,
        story_id: str,
        brief: Phase5PanelBrief,
        props_bible: Phase4PropsBible | None = None,
    ) -> StoryboardPanel:
        prompt = build_panel_prompt(brief, props_bible, for_storyboard=True)
        sketch_url = await self._render(ctx, story_id, brief.spread_number, prompt)
        return StoryboardPanel(
            page=brief.spread_number,
            scene=brief.composition,
            text_placement="bottom",
            sketch_url=sketch_url,
        )

    async def run(
        self,
        ctx: AgentContext,
        story_id: str,
        pages: list[StoryPage],
        prop_bible: PropBible | None = None,
    ) -> list[StoryboardPanel]:
        """逐页串行生成；遇到第一个失败即中止，并带上已生成的草图"""
        total = len(pages)
        panels: list[StoryboardPanel] = []
        logger.info("Generating %d storyboard panels for story %s", total, story_id)

        for i, page in enumerate(pages):
            try:
                panels.append(await self.generate_panel(ctx, story_id, page, prop_bible))
            except Exception as exc:
                logger.error("Storyboard panel %d failed after %d/%d: %s", page.page, len(panels), total, exc)
                raise BatchGenerationError(
                    f"Storyboard generation stopped at page {page.page}: {exc}",
                    generated=len(panels),
                    total=total,
                    results=[p.model_dump(mode="json", by_alias=True) for p in panels],
                ) from exc

            # 避免触发图像服务限流
            if i < total - 1:
                await asyncio.sleep(ctx.settings.batch_delay_s)

        return panels
