from __future__ import annotations

import pytest

from picturebook.agents.storyboard_artist import StoryboardArtistAgent, outline_reference
from picturebook.exceptions import BatchGenerationError
from picturebook.schemas.pipeline import Phase4PropsBible, Phase5PanelBrief
from picturebook.schemas.story import StoryPage
from picturebook.services.template_store import legacy_prop_bible, legacy_storyboard
from tests.agent_fixtures import FakeImageService, make_context
from tests.factories import panel_briefs_payload, props_bible_payload


class TestOutlineReference:
    def test_configured_url(self, test_settings):
        assert outline_reference(make_context(test_settings)) == ["https://cdn.test/outline.png"]

    def test_public_base_url(self, test_settings):
        settings = test_settings.model_copy(
            update={"outline_image_url": None, "public_base_url": "https://api.example.com/"}
        )
        assert outline_reference(make_context(settings)) == ["https://api.example.com/static/outline.png"]

    def test_local_path_is_dropped(self, test_settings):
        settings = test_settings.model_copy(update={"outline_image_url": None, "public_base_url": None})
        assert outline_reference(make_context(settings)) == []


class TestGeneratePanel:
    @pytest.mark.asyncio
    async def test_panel_from_template_page(self, test_settings):
        image = FakeImageService()
        ctx = make_context(test_settings, image=image)
        page = next(p for p in legacy_storyboard().pages if p.page == 2)

        panel = await StoryboardArtistAgent().generate_panel(ctx, "adventure-story", page, legacy_prop_bible())

        assert panel.page == 2
        assert panel.scene == "discovering a door"
        assert panel.text_placement == "bottom"
        assert panel.sketch_url == "https://img.test/1.png"
        assert panel.approved is False
        call = image.calls[0]
        assert call["reference_images"] == ["https://cdn.test/outline.png"]
        assert "brass knob" in call["prompt"]
        assert image.cached == [("https://img.test/1.png", "adventure-story-panel-2.png", "storyboard")]

    @pytest.mark.asyncio
    async def test_text_placement_follows_layout(self, test_settings):
        ctx = make_context(test_settings)
        page = StoryPage(page=1, scene="a hill", layout="left_text")

        panel = await StoryboardArtistAgent().generate_panel(ctx, "s1", page)
        assert panel.text_placement == "left"

    @pytest.mark.asyncio
    async def test_panel_from_brief(self, test_settings):
        image = FakeImageService()
        ctx = make_context(test_settings, image=image)
        brief = Phase5PanelBrief.model_validate(panel_briefs_payload(1)["panels"][0])
        bible = Phase4PropsBible.model_validate(props_bible_payload())

        panel = await StoryboardArtistAgent().generate_panel_from_brief(ctx, "s1", brief, bible)

        assert panel.page == 1
        assert panel.scene == brief.composition
        prompt = image.calls[0]["prompt"]
        assert prompt.startswith("PLACEHOLDER FIGURE:")
        assert "Her face shows wonder" not in prompt
        assert "Star Lantern" in prompt


class TestBatch:
    @pytest.mark.asyncio
    async def test_all_pages(self, test_settings):
        image = FakeImageService()
        pages = legacy_storyboard().pages[:3]

        panels = await StoryboardArtistAgent().run(make_context(test_settings, image=image), "adventure-story", pages)

        assert [p.page for p in panels] == [1, 2, 3]
        assert image.count == 3

    @pytest.mark.asyncio
    async def test_aborts_on_first_failure(self, test_settings):
        image = FakeImageService(fail_on=2)
        pages = legacy_storyboard().pages[:4]

        with pytest.raises(BatchGenerationError) as exc_info:
            await StoryboardArtistAgent().run(make_context(test_settings, image=image), "adventure-story", pages)

        err = exc_info.value
        assert err.generated == 1
        assert err.total == 4
        assert err.results[0]["page"] == 1
        assert err.results[0]["sketchUrl"] == "https://img.test/1.png"
        # 失败后不再继续
        assert image.count == 2
