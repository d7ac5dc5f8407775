"""阶段产出 -> 运行时模板产物（页列表 / 道具圣经 / prompt 表）。

纯函数、确定性：同样的阶段产出总是得到同样的产物（产物里不写时间戳）。
插画说明的字段提取是尽力而为的，某个字段解析不到时使用固定默认值，
不会因为一个字段导致整个转换失败；这种有损是预期行为。
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from picturebook.schemas.pipeline import (
    Phase0Concept,
    Phase2Manuscript,
    Phase2Spread,
    Phase4PropsBible,
    Phase5PanelBriefs,
)
from picturebook.schemas.prop_bible import PropBible, PropEntry
from picturebook.schemas.story import PagePrompt, PromptsTemplate, Storyboard, StoryPage
from picturebook.services.prompt_composer import (
    GLOBAL_NEGATIVE_PROMPT,
    GLOBAL_STYLE_PROMPT,
    build_panel_prompt,
    build_scene_prompt,
)
from picturebook.services.redaction import redact_placeholder_references

DEFAULT_COMPOSITION = "medium"
DEFAULT_LAYOUT = "bottom_text"
DEFAULT_EMOTION = "calm"

_NOTE_LABEL = re.compile(r"\b(scene|emotion|action|setting|composition|layout)\s*:", re.IGNORECASE)
_COMPOSITION_VALUE = re.compile(r"\b(wide|medium|close)", re.IGNORECASE)
_LAYOUT_VALUE = re.compile(r"\b(left_text|right_text|bottom_text|full_bleed)\b", re.IGNORECASE)


def slugify(text: str, sep: str = "_") -> str:
    slug = re.sub(r"[^a-z0-9]+", sep, text.lower()).strip(sep)
    return slug or "item"


def _clean_value(value: str) -> str:
    return value.strip().rstrip(".").strip().strip("[]").strip()


def parse_illustration_note(note: str, fallback_scene: str = "") -> dict[str, str]:
    """从 "scene: .. emotion: .. composition: [wide]. layout: [..]." 格式中提取字段"""
    fields: dict[str, str] = {}
    matches = list(_NOTE_LABEL.finditer(note or ""))
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(note)
        value = _clean_value(note[match.end():end])
        label = match.group(1).lower()
        if value and label not in fields:
            fields[label] = value

    scene = fields.get("scene") or ("" if matches else _clean_value(note or "")) or fallback_scene

    composition = DEFAULT_COMPOSITION
    comp_match = _COMPOSITION_VALUE.search(fields.get("composition", ""))
    if comp_match:
        composition = comp_match.group(1).lower()

    layout = DEFAULT_LAYOUT
    layout_raw = re.sub(r"[\s-]+", "_", fields.get("layout", ""))
    layout_match = _LAYOUT_VALUE.search(layout_raw)
    if layout_match:
        layout = layout_match.group(1).lower()

    return {
        "scene": scene,
        "emotion": fields.get("emotion") or DEFAULT_EMOTION,
        "action": fields.get("action") or scene,
        "setting": fields.get("setting", ""),
        "composition_hint": composition,
        "layout": layout,
    }


def spread_to_page(spread: Phase2Spread) -> StoryPage:
    fields = parse_illustration_note(spread.illustration_note, fallback_scene=spread.final_text)
    return StoryPage(page=spread.spread_number, text=spread.final_text, **fields)


def manuscript_to_pages(manuscript: Phase2Manuscript) -> list[StoryPage]:
    spreads = sorted(manuscript.spreads, key=lambda s: s.spread_number)
    return [spread_to_page(s) for s in spreads]


def _appearances(numbers: list[int]) -> list[int]:
    # 不校验页码是否真实存在，越界引用在查找时自然不命中
    return sorted({n for n in numbers if n >= 1})


def _unique_key(name: str, taken: set[str]) -> str:
    base = slugify(name)
    key = base
    n = 2
    while key in taken:
        key = f"{base}_{n}"
        n += 1
    taken.add(key)
    return key


def props_bible_to_prop_bible(story_id: str, props_bible: Phase4PropsBible | None) -> PropBible:
    bible = PropBible(story_id=story_id)
    if props_bible is None:
        return bible

    taken: set[str] = set()
    for obj in props_bible.key_objects:
        description = obj.description.strip()
        if not description:
            continue
        if obj.state_changes:
            description = f"{description.rstrip('.')}. State changes: {obj.state_changes.strip()}"
        bible.props[_unique_key(obj.name, taken)] = PropEntry(
            description=description, appearances=_appearances(obj.appears_in_spreads)
        )
    for char in props_bible.supporting_characters:
        description = char.description.strip()
        if not description:
            continue
        bible.props[_unique_key(char.name, taken)] = PropEntry(
            description=description, appearances=_appearances(char.appears_in_spreads)
        )

    env_taken: set[str] = set()
    for env in props_bible.environments:
        description = env.description.strip()
        if not description:
            continue
        extras = []
        if env.color_palette:
            extras.append(f"Color palette: {', '.join(env.color_palette)}")
        if env.light_source:
            extras.append(f"Lighting: {env.light_source.strip()}")
        if extras:
            description = ". ".join([description.rstrip("."), *extras])
        bible.environments[_unique_key(env.name, env_taken)] = PropEntry(
            description=description, appearances=_appearances(env.used_in_spreads)
        )

    if props_bible.style_notes.strip():
        bible.global_style = props_bible.style_notes.strip()
    return bible


def panel_briefs_to_prompts(
    story_id: str,
    pages: list[StoryPage],
    panel_briefs: Phase5PanelBriefs | None,
    props_bible: Phase4PropsBible | None = None,
) -> PromptsTemplate:
    """每一页都有一条 prompt：优先 imagePrompt，其次由简报拼装终稿 prompt，最后用页面字段兜底"""
    entries: list[PagePrompt] = []
    for page in pages:
        brief = panel_briefs.brief_for(page.page) if panel_briefs else None
        if brief is not None and brief.image_prompt.strip():
            prompt = redact_placeholder_references(brief.image_prompt.strip())
        elif brief is not None:
            prompt = build_panel_prompt(brief, props_bible, for_storyboard=False)
        else:
            prompt = build_scene_prompt(page)
        entries.append(PagePrompt(page=page.page, prompt=prompt))

    style = props_bible.style_notes.strip() if props_bible and props_bible.style_notes.strip() else ""
    return PromptsTemplate(
        story_id=story_id,
        style_prompt=style or GLOBAL_STYLE_PROMPT,
        negative_prompt=GLOBAL_NEGATIVE_PROMPT,
        pages=entries,
    )


@dataclass(frozen=True)
class TemplateArtifacts:
    storyboard: Storyboard
    prop_bible: PropBible
    prompts: PromptsTemplate


def compile_template(
    story_id: str,
    title: str,
    concept: Phase0Concept,
    manuscript: Phase2Manuscript,
    props_bible: Phase4PropsBible | None = None,
    panel_briefs: Phase5PanelBriefs | None = None,
) -> TemplateArtifacts:
    pages = manuscript_to_pages(manuscript)
    storyboard = Storyboard(
        id=story_id,
        title=title,
        age_range=concept.age_range,
        page_count=len(pages),
        pages=pages,
    )
    return TemplateArtifacts(
        storyboard=storyboard,
        prop_bible=props_bible_to_prop_bible(story_id, props_bible),
        prompts=panel_briefs_to_prompts(story_id, pages, panel_briefs, props_bible),
    )
