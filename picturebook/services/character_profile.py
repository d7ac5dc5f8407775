"""角色档案的派生文本。

所有面向 prompt 的摘要都必须包含身份锚点（identity anchors）；模板里没有覆盖到的锚点会被追加，
不会被静默丢弃。
"""
from __future__ import annotations

from picturebook.schemas.character import CharacterProfile

AGE_DESCRIPTIONS = {
    "toddler": "toddler (2-3 years old)",
    "young_child": "young child (4-6 years old)",
    "older_child": "child (7-10 years old)",
}

_NARRATIVE_AGE = {
    "toddler": "a toddler",
    "young_child": "a young child",
    "older_child": "a child",
}


def identity_anchors(profile: CharacterProfile) -> list[str]:
    """所有插画中必须保持一致的特征"""
    anchors = [
        f"{profile.hair.color} {profile.hair.texture} hair",
        f"{profile.eyes.color} eyes",
        f"{profile.skin_tone} skin tone",
        *profile.distinctive_features,
        *profile.do_not_change,
    ]
    seen: set[str] = set()
    unique: list[str] = []
    for anchor in anchors:
        anchor = anchor.strip()
        if anchor and anchor.lower() not in seen:
            seen.add(anchor.lower())
            unique.append(anchor)
    return unique


def missing_anchors(text: str, profile: CharacterProfile) -> list[str]:
    lowered = text.lower()
    return [a for a in identity_anchors(profile) if a.lower() not in lowered]


def profile_to_description(profile: CharacterProfile) -> str:
    parts = [f"A {AGE_DESCRIPTIONS[profile.approx_age]} {profile.gender_presentation}"]

    hair = f"with {profile.hair.length} {profile.hair.color} {profile.hair.texture} hair"
    if profile.hair.style:
        hair += f" styled {profile.hair.style}"
    parts.append(hair)

    parts.append(" ".join(p for p in (profile.eyes.color, profile.eyes.shape, "eyes") if p))
    parts.append(f"{profile.skin_tone} skin tone")
    parts.append(f"{profile.face.shape} face shape")

    if profile.distinctive_features:
        parts.append(f"Notable features: {', '.join(profile.distinctive_features)}")
    if profile.clothing:
        parts.append(f"Wearing: {profile.clothing}")

    missing = missing_anchors(". ".join(parts), profile)
    if missing:
        parts.append(f"Always keep: {', '.join(missing)}")

    return ". ".join(parts) + "."


def profile_to_prompt_summary(profile: CharacterProfile) -> str:
    """图像 prompt 用的短摘要（包含服装，保证跨页一致）"""
    features = [
        f"{profile.approx_age.replace('_', ' ')} {profile.gender_presentation}",
        f"{profile.hair.color} {profile.hair.texture} hair",
        f"{profile.eyes.color} eyes",
        f"{profile.skin_tone} skin",
    ]
    if profile.distinctive_features:
        features.append(", ".join(profile.distinctive_features[:2]))
    if profile.clothing:
        features.append(f"wearing {profile.clothing}")

    features.extend(missing_anchors(", ".join(features), profile))
    return ", ".join(features)


def profile_to_narrative(profile: CharacterProfile) -> str:
    """分析照片后返回给用户看的可读描述"""
    name = profile.character_name
    lines: list[str] = []

    opening = f"{name} is {_NARRATIVE_AGE[profile.approx_age]}"
    if profile.face.expression_default:
        opening += f" with a {profile.face.expression_default}"
    lines.append(opening + ".")

    hair = f"{name} has {profile.hair.length}, {profile.hair.color} {profile.hair.texture} hair"
    if profile.hair.style:
        hair += f", worn {profile.hair.style}"
    lines.append(hair + ".")

    eyes = " ".join(p for p in (profile.eyes.shape, profile.eyes.color) if p)
    lines.append(f"{name} has {eyes} eyes and a {profile.face.shape} face.")
    lines.append(f"Skin tone: {profile.skin_tone}.")

    if profile.distinctive_features:
        lines.append(f"Notable features: {', '.join(profile.distinctive_features)}.")
    if profile.clothing:
        lines.append(f"Clothing: {profile.clothing}.")
    if profile.personality_traits:
        lines.append(f"{name} appears {', '.join(profile.personality_traits)}.")

    return " ".join(lines)
