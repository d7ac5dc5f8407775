from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from picturebook.agents.base import AgentContext, BaseAgent
from picturebook.exceptions import BatchGenerationError
from picturebook.schemas.story import GeneratedImage, StoryPage
from picturebook.services.prompt_composer import (
    CHARACTER_SHEET_NEGATIVE_PROMPT,
    GLOBAL_NEGATIVE_PROMPT,
    GLOBAL_STYLE_PROMPT,
    build_character_sheet_prompt,
    build_page_prompt,
    build_pipeline_page_prompt,
)

logger = logging.getLogger(__name__)

SKETCH_REFERENCE_HINT = (
    "Use the first reference image for the character's appearance and follow the layout "
    "of the second reference image, a black and white composition sketch"
)


@dataclass
class PageStyle:
    """终稿出图时整本书共用的参数"""

    character_summary: str
    character_sheet_url: str
    style_prompt: str = GLOBAL_STYLE_PROMPT
    negative_prompt: str = GLOBAL_NEGATIVE_PROMPT
    # 流水线故事的逐页 prompt（来自 prompt 表），内置故事为空
    page_prompts: dict[int, str] = field(default_factory=dict)


class IllustratorAgent(BaseAgent[GeneratedImage]):
    """角色设定图与终稿彩页"""

    name = "illustrator"

    async def generate_character_sheet(self, ctx: AgentContext, character_description: str, reference_image: str) -> str:
        """照片 -> 绘本风格的角色设定图（之后每一页都以它为参考）"""
        return await ctx.image.generate_url(
            prompt=build_character_sheet_prompt(character_description),
            reference_images=[reference_image],
            negative_prompt=CHARACTER_SHEET_NEGATIVE_PROMPT,
        )

    async def _references(self, ctx: AgentContext, style: PageStyle, sketch_url: str | None) -> list[str]:
        refs = [style.character_sheet_url]
        if not sketch_url:
            return refs
        sketch_url = ctx.settings.build_public_url(sketch_url)
        public = sketch_url.startswith(("http://", "https://", "data:"))
        if public and await ctx.image.is_accessible(sketch_url):
            refs.append(sketch_url)
        else:
            # 草图地址过期或不可公网访问时只用角色设定图继续
            logger.warning("Storyboard sketch %s is not accessible, using the character sheet only", sketch_url)
        return refs

    def page_prompt(self, page: StoryPage, style: PageStyle, with_sketch: bool = False) -> str:
        pipeline_prompt = style.page_prompts.get(page.page)
        if pipeline_prompt:
            prompt = build_pipeline_page_prompt(pipeline_prompt, style.style_prompt, style.character_summary)
        else:
            prompt = build_page_prompt(page, style.character_summary, style.style_prompt)
        if with_sketch:
            prompt = f"{prompt} {SKETCH_REFERENCE_HINT}."
        return prompt

    async def generate_page(self, ctx: AgentContext, page: StoryPage, style: PageStyle, sketch_url: str | None = None) -> str:
        refs = await self._references(ctx, style, sketch_url)
        logger.info("Generating page %d (%d reference images)", page.page, len(refs))
        return await ctx.image.generate_url(
            prompt=self.page_prompt(page, style, with_sketch=len(refs) > 1),
            reference_images=refs,
            negative_prompt=style.negative_prompt,
        )

    async def run(
        self,
        ctx: AgentContext,
        pages: list[StoryPage],
        style: PageStyle,
        sketches: dict[int, str] | None = None,
    ) -> list[GeneratedImage]:
        """整本书逐页串行生成，所有页面使用同一张角色设定图"""
        sketches = sketches or {}
        total = len(pages)
        images: list[GeneratedImage] = []

        for i, page in enumerate(pages):
            try:
                url = await self.generate_page(ctx, page, style, sketches.get(page.page))
            except Exception as exc:
                logger.error("Page %d failed after %d/%d illustrations: %s", page.page, len(images), total, exc)
                raise BatchGenerationError(
                    f"Book generation stopped at page {page.page}: {exc}",
                    generated=len(images),
                    total=total,
                    results=[img.model_dump(mode="json", by_alias=True) for img in images],
                ) from exc
            images.append(GeneratedImage(page_number=page.page, image_url=url))

            if i < total - 1:
                await asyncio.sleep(ctx.settings.batch_delay_s)

        logger.info("Generated %d of %d illustrations", len(images), total)
        return images
