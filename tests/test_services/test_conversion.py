from __future__ import annotations

import pytest

from picturebook.schemas.pipeline import (
    Phase0Concept,
    Phase2Manuscript,
    Phase4PropsBible,
    Phase5PanelBriefs,
)
from picturebook.services.conversion import (
    compile_template,
    parse_illustration_note,
    props_bible_to_prop_bible,
    slugify,
)
from picturebook.services.prompt_composer import GLOBAL_NEGATIVE_PROMPT, GLOBAL_STYLE_PROMPT
from tests.factories import concept_payload, manuscript_payload, panel_briefs_payload, props_bible_payload


def _compile(with_props: bool = True, with_briefs: bool = True, spreads: int = 3):
    return compile_template(
        "star-lantern",
        "Star Lantern",
        Phase0Concept.model_validate(concept_payload()),
        Phase2Manuscript.model_validate(manuscript_payload(spreads)),
        Phase4PropsBible.model_validate(props_bible_payload()) if with_props else None,
        Phase5PanelBriefs.model_validate(panel_briefs_payload(2)) if with_briefs else None,
    )


class TestParseIllustrationNote:
    def test_labelled_note(self):
        fields = parse_illustration_note(
            "scene: {{name}} finds a lantern. emotion: curious. action: lifting it. "
            "setting: the attic. composition: [wide]. layout: [bottom_text]."
        )
        assert fields == {
            "scene": "{{name}} finds a lantern",
            "emotion": "curious",
            "action": "lifting it",
            "setting": "the attic",
            "composition_hint": "wide",
            "layout": "bottom_text",
        }

    def test_unlabelled_note_uses_defaults(self):
        fields = parse_illustration_note("A quiet goodnight by the window")
        assert fields["scene"] == "A quiet goodnight by the window"
        assert fields["action"] == fields["scene"]
        assert fields["emotion"] == "calm"
        assert fields["composition_hint"] == "medium"
        assert fields["layout"] == "bottom_text"

    def test_unknown_values_fall_back(self):
        fields = parse_illustration_note("scene: a hill. composition: bird's eye. layout: diagonal.")
        assert fields["composition_hint"] == "medium"
        assert fields["layout"] == "bottom_text"

    def test_layout_with_spaces(self):
        assert parse_illustration_note("scene: x. layout: full bleed.")["layout"] == "full_bleed"

    def test_case_insensitive_labels(self):
        fields = parse_illustration_note("Scene: a boat. Composition: Close-up.")
        assert fields["scene"] == "a boat"
        assert fields["composition_hint"] == "close"

    def test_empty_note_uses_fallback_scene(self):
        assert parse_illustration_note("", fallback_scene="Mira waves.")["scene"] == "Mira waves."


class TestCompileTemplate:
    def test_storyboard_pages(self):
        storyboard = _compile().storyboard

        assert storyboard.id == "star-lantern"
        assert storyboard.title == "Star Lantern"
        assert storyboard.age_range == "3-5"
        assert storyboard.page_count == 3
        assert [p.page for p in storyboard.pages] == [1, 2, 3]

        first, second, third = storyboard.pages
        assert first.text == "{{name}} spread 1 text."
        assert first.scene == "{{name}} finds a lantern in the attic"
        assert first.composition_hint == "wide"
        assert second.composition_hint == "close"
        assert second.layout == "left_text"
        assert third.emotion == "calm"
        assert third.layout == "bottom_text"

    def test_pages_sorted_by_spread_number(self):
        payload = manuscript_payload(3)
        payload["spreads"].reverse()
        artifacts = compile_template(
            "s", "S", Phase0Concept.model_validate(concept_payload()), Phase2Manuscript.model_validate(payload)
        )
        assert [p.page for p in artifacts.storyboard.pages] == [1, 2, 3]

    def test_prop_bible(self):
        bible = _compile().prop_bible

        assert bible.story_id == "star-lantern"
        assert set(bible.props) == {"star_lantern", "blue_blanket", "pip_the_owl"}
        assert bible.props["star_lantern"].appearances == [1, 2]
        assert "State changes: glows brighter on spread 2" in bible.props["star_lantern"].description
        assert bible.environments["dusty_attic"].description == (
            "a low attic with wooden beams. Color palette: honey brown, dusty rose. "
            "Lighting: a round window on the left"
        )
        assert bible.environments["bedroom"].appearances == [2, 3]
        assert bible.global_style == "Soft gouache, rounded shapes"

    def test_prompts_cover_every_page(self):
        prompts = _compile().prompts

        assert [p.page for p in prompts.pages] == [1, 2, 3]
        assert prompts.pages[0].prompt == "the character holds a brass lantern in spread 1"
        # 第 3 页没有分镜简报，用页面字段兜底
        assert prompts.pages[2].prompt.startswith("A quiet goodnight with the lantern glowing on the windowsill.")
        assert prompts.style_prompt == "Soft gouache, rounded shapes"
        assert prompts.negative_prompt == GLOBAL_NEGATIVE_PROMPT

    def test_brief_without_image_prompt_uses_final_panel_prompt(self):
        briefs = panel_briefs_payload(1)
        briefs["panels"][0]["imagePrompt"] = ""
        artifacts = compile_template(
            "s",
            "S",
            Phase0Concept.model_validate(concept_payload()),
            Phase2Manuscript.model_validate(manuscript_payload(1)),
            Phase4PropsBible.model_validate(props_bible_payload()),
            Phase5PanelBriefs.model_validate(briefs),
        )
        prompt = artifacts.prompts.pages[0].prompt
        assert "SCENE:" in prompt
        assert "PLACEHOLDER FIGURE" not in prompt
        assert "placeholder" not in prompt.lower()

    def test_without_optional_phases(self):
        artifacts = _compile(with_props=False, with_briefs=False)

        assert artifacts.prop_bible.props == {}
        assert artifacts.prop_bible.environments == {}
        assert artifacts.prompts.style_prompt == GLOBAL_STYLE_PROMPT
        assert len(artifacts.prompts.pages) == 3

    def test_deterministic(self):
        first, second = _compile(), _compile()
        assert first.storyboard.dump() == second.storyboard.dump()
        assert first.prop_bible.dump() == second.prop_bible.dump()
        assert first.prompts.dump() == second.prompts.dump()


class TestPropsBibleConversion:
    def test_none(self):
        bible = props_bible_to_prop_bible("s", None)
        assert bible.story_id == "s"
        assert bible.props == {}

    def test_duplicate_names_get_suffix(self):
        payload = props_bible_payload()
        payload["keyObjects"].append({"name": "Star Lantern", "description": "a spare lantern", "appearsInSpreads": [3]})
        bible = props_bible_to_prop_bible("s", Phase4PropsBible.model_validate(payload))
        assert "star_lantern_2" in bible.props

    def test_skips_blank_descriptions_and_bad_spreads(self):
        payload = props_bible_payload()
        payload["keyObjects"] = [
            {"name": "Ghost", "description": "  ", "appearsInSpreads": [1]},
            {"name": "Cup", "description": "a tin cup", "appearsInSpreads": [0, 2, 2, 9]},
        ]
        bible = props_bible_to_prop_bible("s", Phase4PropsBible.model_validate(payload))
        assert "ghost" not in bible.props
        assert bible.props["cup"].appearances == [2, 9]


@pytest.mark.parametrize(
    "text,expected",
    [("Pip the Owl", "pip_the_owl"), ("  Star-Lantern!! ", "star_lantern"), ("???", "item")],
)
def test_slugify(text, expected):
    assert slugify(text) == expected
