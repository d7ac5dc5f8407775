"""Prompt 拼装（纯函数，无网络、无副作用）。

两条路径：

- 模板路径：``build_storyboard_prompt``（黑白构图草图）与 ``build_page_prompt``（终稿彩页）
- 流水线路径：``build_panel_prompt`` 基于阶段 5 的分镜简报 + 阶段 4 的道具圣经，
  ``for_storyboard`` 控制占位轮廓 / 终稿两种脱敏方式

相同输入必须得到逐字节相同的输出；可选数据缺失时只省略对应段落，不抛异常。
"""
from __future__ import annotations

from collections.abc import Iterable

from picturebook.schemas.pipeline import Phase4PropsBible, Phase5PanelBrief
from picturebook.schemas.prop_bible import PropBible, PropEntry
from picturebook.schemas.story import StoryPage
from picturebook.services.redaction import (
    redact_placeholder_references,
    sanitize_child_references,
    strip_facial_details,
)

GLOBAL_STYLE_PROMPT = (
    "Soft children's book illustration, pastel colors, gentle watercolor texture, rounded shapes, "
    "thick but soft outlines, warm lighting, playful and calm mood, storybook art style"
)

GLOBAL_NEGATIVE_PROMPT = (
    "extra characters, multiple children, inconsistent face, realistic photo, harsh shadows, "
    "busy background, cropped face, distorted anatomy, text, words, letters, ugly, deformed, "
    "disfigured, blurry, bad anatomy, extra limbs, signature, watermark, scary, dark, violent"
)

CHARACTER_SHEET_NEGATIVE_PROMPT = (
    GLOBAL_NEGATIVE_PROMPT + ", photorealistic, photograph, profile view, looking away"
)

STORYBOARD_STYLE_PROMPT = (
    "loose sketch, soft shapes, simplified forms, low detail, black and white only, "
    "no text, no border, minimal background"
)

PLACEHOLDER_INSTRUCTION = (
    "The protagonist is the WHITE BLANK OUTLINE from the input image. "
    "Keep it as a featureless white silhouette with NO face, NO eyes, NO hair, NO skin color "
    "and NO clothing detail. It is a plain white placeholder shape to be filled in later"
)

PLACEHOLDER_CHARACTER = (
    "The white outline placeholder (featureless white silhouette, NO face, NO features)"
)

COMPOSITION_PHRASES = {
    "wide": "wide shot showing full scene and environment",
    "medium": "medium shot showing character and immediate surroundings",
    "close": "close-up shot focusing on character's face and expression",
}
DEFAULT_COMPOSITION_PHRASE = "medium shot"

LAYOUT_PHRASES = {
    "left_text": "composition with main subject on the right side, empty space on left for text",
    "right_text": "composition with main subject on the left side, empty space on right for text",
    "bottom_text": "composition with main action in upper two-thirds, clear lower area for text",
    "full_bleed": "full scene composition, evenly distributed",
}


def _clean(text: str | None) -> str:
    """去掉首尾空白和结尾句号，拼接时统一补标点"""
    return (text or "").strip().rstrip(".").strip()


def _join_sentences(parts: Iterable[str | None], sep: str = ". ") -> str:
    cleaned = [c for c in (_clean(p) for p in parts) if c]
    if not cleaned:
        return ""
    return sep.join(cleaned) + "."


def _with_article(text: str | None) -> str:
    """角色摘要前补不定冠词；已有冠词时只统一为小写"""
    cleaned = _clean(text)
    if not cleaned:
        return ""
    if cleaned.lower().startswith(("a ", "an ", "the ")):
        return cleaned[0].lower() + cleaned[1:]
    return f"a {cleaned}"


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


# ============================================
# 模板路径
# ============================================


def props_for_page(page: StoryPage, prop_bible: PropBible | None) -> list[PropEntry]:
    """页面显式列出的道具优先；未列出时按 appearances 反查"""
    if prop_bible is None:
        return []
    if page.props:
        return [prop_bible.props[key] for key in page.props if key in prop_bible.props]
    return [prop for _, prop in prop_bible.props_for_page(page.page)]


def environment_for_page(page: StoryPage, prop_bible: PropBible | None) -> PropEntry | None:
    if prop_bible is None:
        return None
    if page.environment:
        return prop_bible.environments.get(page.environment)
    found = prop_bible.environment_for_page(page.page)
    return found[1] if found else None


def composition_phrases(page: StoryPage, prop_bible: PropBible | None = None) -> list[str]:
    """构图覆盖 > composition_hint 短语 > layout 留白短语"""
    override = (prop_bible.compositions or {}).get(page.page) if prop_bible else None
    if override:
        return [override]
    return [
        COMPOSITION_PHRASES.get(page.composition_hint, DEFAULT_COMPOSITION_PHRASE),
        LAYOUT_PHRASES.get(page.layout, ""),
    ]


def build_storyboard_prompt(page: StoryPage, prop_bible: PropBible | None = None) -> str:
    """黑白构图草图 prompt（参考图为白色轮廓占位图）"""
    parts: list[str] = [
        f"Place the white outline figure from the reference image into this scene: {_clean(page.scene)}"
    ]

    props = props_for_page(page, prop_bible)
    if props:
        parts.append("Key objects: " + "; ".join(_clean(p.description) for p in props))

    env = environment_for_page(page, prop_bible)
    if env is not None:
        parts.append(f"Environment: {_clean(env.description)}")

    parts.extend(composition_phrases(page, prop_bible))

    if prop_bible and prop_bible.global_instructions:
        parts.append(prop_bible.global_instructions)

    style = prop_bible.global_style if prop_bible and prop_bible.global_style else STORYBOARD_STYLE_PROMPT
    parts.append(f"Style: {_clean(style)}")

    return _join_sentences(parts)


def build_page_prompt(
    page: StoryPage,
    character_summary: str,
    style_prompt: str = GLOBAL_STYLE_PROMPT,
) -> str:
    """终稿彩页 prompt（模板路径，不查道具圣经）"""
    parts = [
        _capitalize(_with_article(character_summary)),
        f"In this scene: {page.scene}" if page.scene else "",
        f"Action: {page.action}" if page.action else "",
        f"Emotion: {page.emotion}" if page.emotion else "",
        f"Setting: {page.setting}" if page.setting else "",
        f"Style: {style_prompt}" if style_prompt else "",
        f"Composition: {COMPOSITION_PHRASES.get(page.composition_hint, DEFAULT_COMPOSITION_PHRASE)}",
        LAYOUT_PHRASES.get(page.layout, ""),
    ]
    return _join_sentences(parts)


def build_scene_prompt(page: StoryPage) -> str:
    """没有分镜简报的页面写入 prompt 表时使用的兜底 prompt"""
    parts = [
        page.scene,
        f"Action: {page.action}" if page.action else "",
        f"Emotion: {page.emotion}" if page.emotion else "",
        f"Setting: {page.setting}" if page.setting else "",
        f"Composition: {COMPOSITION_PHRASES.get(page.composition_hint, DEFAULT_COMPOSITION_PHRASE)}",
        LAYOUT_PHRASES.get(page.layout, ""),
    ]
    return _join_sentences(parts)


def build_pipeline_page_prompt(
    image_prompt: str,
    style_prompt: str | None,
    character_summary: str | None = None,
) -> str:
    """流水线终稿：阶段 5 的 imagePrompt（占位说法还原为 the character）+ 风格后缀"""
    parts = [
        f"The character is {_with_article(character_summary)}" if _clean(character_summary) else "",
        redact_placeholder_references(image_prompt),
        f"Style: {style_prompt}" if style_prompt else "",
    ]
    return _join_sentences(parts)


def build_character_sheet_prompt(character_description: str) -> str:
    return (
        "Transform this child into a cute children's book illustration character. "
        f"{_clean(character_description)}. "
        "Soft watercolor style, pastel colors, gentle rounded features, warm friendly expression, "
        "simple clean background, storybook illustration style, suitable for a children's picture book. "
        "Keep the character recognizable but stylized as a hand-drawn illustration."
    )


# ============================================
# 流水线路径（分镜简报）
# ============================================


def _section(label: str, body: str) -> str:
    body = _clean(body)
    return f"{label}: {body}" if body else ""


def build_panel_prompt(
    brief: Phase5PanelBrief,
    props_bible: Phase4PropsBible | None = None,
    for_storyboard: bool = True,
) -> str:
    """分镜简报 + 道具圣经 -> 分段 prompt。

    段落顺序固定：SCENE -> ENVIRONMENT -> CHARACTERS -> OBJECTS -> VISUAL MOTIFS -> MOOD -> STYLE，
    草图模式在最前面加 PLACEHOLDER FIGURE 指令并剔除面部/表情句子。
    """
    spread = brief.spread_number

    def sanitize(text: str | None) -> str:
        return sanitize_child_references(text, for_storyboard)

    parts: list[str] = []

    if for_storyboard:
        parts.append(_section("PLACEHOLDER FIGURE", PLACEHOLDER_INSTRUCTION))

    parts.append(_section("SCENE", sanitize(brief.composition)))

    # 场景：道具圣经里登记了本跨页的环境则用规范描述
    env = None
    if props_bible is not None:
        env = next((e for e in props_bible.environments if spread in e.used_in_spreads), None)
    if env is not None:
        env_parts = [f"{env.name}: {_clean(sanitize(env.description))}"]
        if env.color_palette:
            env_parts.append(f"Color palette: {', '.join(env.color_palette)}")
        if env.light_source:
            env_parts.append(f"Lighting: {env.light_source}")
        parts.append(_section("ENVIRONMENT", ". ".join(_clean(p) for p in env_parts)))
    else:
        parts.append(_section("ENVIRONMENT", sanitize(brief.environment)))

    supporting: list[str] = []
    if props_bible is not None:
        supporting = [
            f"{c.name}: {_clean(c.description)}"
            for c in props_bible.supporting_characters
            if spread in c.appears_in_spreads
        ]

    if for_storyboard:
        staging = strip_facial_details(sanitize(brief.characters_in_frame))
        lead = f"{PLACEHOLDER_CHARACTER}: {_clean(staging)}" if _clean(staging) else PLACEHOLDER_CHARACTER
        parts.append(_section("CHARACTERS", "; ".join([lead, *supporting])))
    else:
        staging = _clean(sanitize(brief.characters_in_frame))
        parts.append(_section("CHARACTERS", "; ".join(p for p in [staging, *supporting] if p)))

    objects: list[str] = []
    if props_bible is not None:
        for obj in props_bible.key_objects:
            if spread not in obj.appears_in_spreads:
                continue
            desc = f"{obj.name}: {_clean(obj.description)}"
            if obj.state_changes:
                desc += f" ({_clean(obj.state_changes)})"
            objects.append(desc)
    if objects:
        parts.append(_section("OBJECTS", "; ".join(objects)))
    else:
        parts.append(_section("OBJECTS", sanitize(brief.objects_in_frame)))

    if props_bible is not None:
        motifs = [
            f"{m.motif} ({_clean(m.purpose)})" if _clean(m.purpose) else m.motif
            for m in props_bible.visual_motifs
            if spread in m.appears_in_spreads
        ]
        if motifs:
            parts.append(_section("VISUAL MOTIFS", "; ".join(motifs)))

    parts.append(_section("MOOD", sanitize(brief.emotional_direction)))

    style_notes = _clean(sanitize(props_bible.style_notes)) if props_bible is not None else ""
    if for_storyboard:
        style = f"{style_notes}. {STORYBOARD_STYLE_PROMPT}" if style_notes else STORYBOARD_STYLE_PROMPT
        parts.append(_section("STYLE", style))
    elif style_notes:
        parts.append(_section("STYLE", style_notes))

    return _join_sentences(parts, sep=".\n")
