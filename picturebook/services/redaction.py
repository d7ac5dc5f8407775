"""面向自然语言的脱敏规则。

规则集是固定的 (pattern, replacement) 表，与 prompt 的拼装结构分开，便于单独测试：

- 主角称谓替换：把 "the child" / "the boy" / "the protagonist" 等泛称换成当前模式的占位说法
- 面部细节剔除：草图模式下整句删除涉及表情、眼睛、视线的句子（按句删除，不是按词删除）
- 占位说法还原：终稿模式下把 "the white outline placeholder" 还原为 "the character"
"""
from __future__ import annotations

import re

STORYBOARD_PROTAGONIST = "the white outline placeholder"
FINAL_PROTAGONIST = "the character"

_PROTAGONIST_NOUNS = re.compile(
    r"\b(the child figure|the young child|the main character|the little one|the protagonist"
    r"|the child|the boy|the girl|the kid)\b",
    re.IGNORECASE,
)

FACIAL_SENTENCE = re.compile(
    r"\s*[^.;]*\b(expression|expressions|eyes|mouth|gaze|gazing|facial|face|smil(e|es|ing)"
    r"|grin(s|ning)?|frown(s|ing)?|look(s|ing) (at|toward|up|down)|wide[- ]?eyed)\b[^.;]*[.;]",
    re.IGNORECASE,
)

_PLACEHOLDER_PHRASES = re.compile(
    r"\b(the white outline placeholder|the placeholder figure|the white outline)\b",
    re.IGNORECASE,
)

# (pattern, replacement) 规则表
STORYBOARD_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (_PROTAGONIST_NOUNS, STORYBOARD_PROTAGONIST),
)
FINAL_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (_PLACEHOLDER_PHRASES, FINAL_PROTAGONIST),
    (_PROTAGONIST_NOUNS, FINAL_PROTAGONIST),
)


def apply_rules(text: str, rules: tuple[tuple[re.Pattern[str], str], ...]) -> str:
    for pattern, replacement in rules:
        text = pattern.sub(replacement, text)
    return text


def sanitize_child_references(text: str | None, for_storyboard: bool) -> str:
    """把主角泛称替换为当前模式的说法"""
    if not text:
        return ""
    return apply_rules(text, STORYBOARD_RULES if for_storyboard else FINAL_RULES)


def strip_facial_details(text: str | None) -> str:
    """删除所有涉及表情/视线的句子；全部删光时返回空串"""
    normalized = (text or "").strip()
    if not normalized:
        return ""
    # 末句没有句号时补一个，否则正则匹配不到最后一句
    if normalized[-1] not in ".;":
        normalized += "."
    cleaned, removed = FACIAL_SENTENCE.subn("", normalized)
    if not removed:
        return text.strip()
    return cleaned.strip()


def redact_placeholder_references(text: str | None) -> str:
    """终稿模式：占位说法与泛称统一成 "the character" """
    if not text:
        return ""
    return apply_rules(text, FINAL_RULES)
