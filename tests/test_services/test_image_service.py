from __future__ import annotations

import json

import httpx
import pytest

from picturebook.config import Settings
from picturebook.services.image import ImageService

PREDICTION_URL = "https://api.replicate.com/v1/predictions/p1"
OUTPUT_URL = "https://replicate.delivery/out/page-1.png"


def _settings(**overrides) -> Settings:
    data = {
        "store_backend": "memory",
        "replicate_api_token": "token",
        "poll_interval_s": 0,
        "max_polls": 3,
    }
    data.update(overrides)
    return Settings(**data)


def _patch_transport(monkeypatch, handler):
    """所有 httpx.AsyncClient 都走 MockTransport"""
    real_client = httpx.AsyncClient

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr("picturebook.services.image.httpx.AsyncClient", factory)

    async def no_sleep(_):
        return None

    monkeypatch.setattr("picturebook.services.image.asyncio.sleep", no_sleep)


class TestBuildInput:
    def test_pro_model_extras(self):
        service = ImageService(_settings())
        model_input = service.build_input("a garden", ["https://ref/1.png", ""], negative_prompt="text")

        assert model_input == {
            "prompt": "a garden",
            "aspect_ratio": "3:2",
            "output_format": "png",
            "resolution": "2K",
            "safety_filter_level": "block_only_high",
            "image_input": ["https://ref/1.png"],
        }

    def test_negative_prompt_for_other_models(self):
        service = ImageService(_settings(image_model="black-forest-labs/flux-dev"))
        model_input = service.build_input("a garden", negative_prompt="text, watermark")

        assert model_input["negative_prompt"] == "text, watermark"
        assert "resolution" not in model_input
        assert "image_input" not in model_input

    def test_extra_fields_passed_through(self):
        service = ImageService(_settings())
        assert service.build_input("x", seed=7)["seed"] == 7


class TestGenerateUrl:
    @pytest.mark.asyncio
    async def test_sync_success(self, monkeypatch):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"id": "p1", "status": "succeeded", "output": OUTPUT_URL})

        _patch_transport(monkeypatch, handler)
        url = await ImageService(_settings()).generate_url(prompt="a garden", reference_images=["https://ref/1.png"])

        assert url == OUTPUT_URL
        request = requests[0]
        assert request.url == "https://api.replicate.com/v1/models/google/nano-banana-pro/predictions"
        assert request.headers["Authorization"] == "Bearer token"
        assert request.headers["Prefer"] == "wait"
        assert json.loads(request.content)["input"]["image_input"] == ["https://ref/1.png"]

    @pytest.mark.asyncio
    async def test_polls_until_terminal(self, monkeypatch):
        responses = iter(
            [
                httpx.Response(201, json={"id": "p1", "status": "starting", "urls": {"get": PREDICTION_URL}}),
                httpx.Response(200, json={"id": "p1", "status": "processing", "urls": {"get": PREDICTION_URL}}),
                httpx.Response(200, json={"id": "p1", "status": "succeeded", "output": [OUTPUT_URL]}),
            ]
        )
        _patch_transport(monkeypatch, lambda request: next(responses))

        assert await ImageService(_settings()).generate_url(prompt="x") == OUTPUT_URL

    @pytest.mark.asyncio
    async def test_poll_limit(self, monkeypatch):
        pending = {"id": "p1", "status": "processing", "urls": {"get": PREDICTION_URL}}
        _patch_transport(monkeypatch, lambda request: httpx.Response(200, json=pending))

        with pytest.raises(RuntimeError, match="timed out after 3 polls"):
            await ImageService(_settings()).generate_url(prompt="x")

    @pytest.mark.asyncio
    async def test_failed_prediction(self, monkeypatch):
        _patch_transport(
            monkeypatch,
            lambda request: httpx.Response(201, json={"id": "p1", "status": "failed", "error": "NSFW content"}),
        )

        with pytest.raises(RuntimeError, match="Image generation failed: NSFW content"):
            await ImageService(_settings()).generate_url(prompt="x")

    @pytest.mark.asyncio
    async def test_missing_output(self, monkeypatch):
        _patch_transport(monkeypatch, lambda request: httpx.Response(201, json={"status": "succeeded", "output": []}))

        with pytest.raises(RuntimeError, match="missing URL"):
            await ImageService(_settings()).generate_url(prompt="x")

    @pytest.mark.asyncio
    async def test_retries_server_errors(self, monkeypatch):
        responses = iter(
            [
                httpx.Response(503, json={"detail": "busy"}),
                httpx.Response(201, json={"status": "succeeded", "output": {"url": OUTPUT_URL}}),
            ]
        )
        _patch_transport(monkeypatch, lambda request: next(responses))

        assert await ImageService(_settings()).generate_url(prompt="x") == OUTPUT_URL

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self, monkeypatch):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(422, json={"detail": "bad input"})

        _patch_transport(monkeypatch, handler)

        with pytest.raises(RuntimeError, match="failed after retries"):
            await ImageService(_settings()).generate_url(prompt="x")
        assert len(calls) == 1


class TestAccessibility:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", [None, "", "ftp://example.com/a.png", "relative/a.png"])
    async def test_unusable_urls(self, url):
        assert await ImageService(_settings()).is_accessible(url) is False

    @pytest.mark.asyncio
    async def test_data_url(self):
        assert await ImageService(_settings()).is_accessible("data:image/png;base64,AAAA") is True

    @pytest.mark.asyncio
    async def test_local_static_file(self, tmp_path):
        (tmp_path / "storyboard").mkdir()
        (tmp_path / "storyboard" / "a.png").write_bytes(b"png")
        service = ImageService(_settings(), static_dir=tmp_path)

        assert await service.is_accessible("/static/storyboard/a.png") is True
        assert await service.is_accessible("/static/storyboard/missing.png") is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,expected", [(200, True), (404, False), (410, False)])
    async def test_remote_head(self, monkeypatch, status, expected):
        _patch_transport(monkeypatch, lambda request: httpx.Response(status))
        assert await ImageService(_settings()).is_accessible(OUTPUT_URL) is expected

    @pytest.mark.asyncio
    async def test_head_not_allowed_falls_back_to_get(self, monkeypatch):
        def handler(request):
            return httpx.Response(405) if request.method == "HEAD" else httpx.Response(200, content=b"png")

        _patch_transport(monkeypatch, handler)
        assert await ImageService(_settings()).is_accessible(OUTPUT_URL) is True

    @pytest.mark.asyncio
    async def test_network_error(self, monkeypatch):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        _patch_transport(monkeypatch, handler)
        assert await ImageService(_settings()).is_accessible(OUTPUT_URL) is False


class TestCacheExternalImage:
    @pytest.mark.asyncio
    async def test_saves_to_static(self, monkeypatch, tmp_path):
        _patch_transport(monkeypatch, lambda request: httpx.Response(200, content=b"png-bytes"))
        service = ImageService(_settings(), static_dir=tmp_path)

        path = await service.cache_external_image(OUTPUT_URL, "s1-panel-1.png")

        assert path == "/static/storyboard/s1-panel-1.png"
        assert (tmp_path / "storyboard" / "s1-panel-1.png").read_bytes() == b"png-bytes"

    @pytest.mark.asyncio
    async def test_download_failure_keeps_remote_url(self, monkeypatch, tmp_path):
        _patch_transport(monkeypatch, lambda request: httpx.Response(404))
        service = ImageService(_settings(), static_dir=tmp_path)

        assert await service.cache_external_image(OUTPUT_URL, "x.png", subdir="characters") == OUTPUT_URL
        assert not (tmp_path / "characters").exists()

    @pytest.mark.asyncio
    async def test_non_http_url_returned_unchanged(self, tmp_path):
        service = ImageService(_settings(), static_dir=tmp_path)
        assert await service.cache_external_image("/static/storyboard/a.png", "a.png") == "/static/storyboard/a.png"
