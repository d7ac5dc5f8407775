from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import httpx

from picturebook.config import Settings

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent.parent / "static"

_TERMINAL_STATUSES = {"succeeded", "failed", "canceled"}


class ImageService:
    """图像生成服务（Replicate predictions API）。

    生成调用只负责返回 provider 给出的 URL（可能有时效）；
    下载到本地是单独、可选的 ``cache_external_image`` 步骤。
    """

    def __init__(self, settings: Settings, *, max_retries: int = 3, static_dir: Path | None = None):
        self.settings = settings
        self.max_retries = max_retries
        self.static_dir = static_dir or STATIC_DIR

    def _build_url(self) -> str:
        base = self.settings.replicate_base_url.rstrip("/")
        return f"{base}/models/{self.settings.image_model}/predictions"

    def _is_retryable_status(self, status_code: int) -> bool:
        return status_code in {408, 429, 500, 502, 503, 504}

    def _headers(self) -> dict[str, str]:
        headers = self.settings.replicate_headers()
        headers["Content-Type"] = "application/json"
        # 同步等待（最长 60 秒），超时后转为轮询
        headers["Prefer"] = "wait"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.request_timeout_s)

    async def _post_json_with_retry(self, client: httpx.AsyncClient, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        delay_s = 0.5
        last_exc: Exception | None = None

        for attempt in range(self.max_retries + 1):
            try:
                res = await client.post(url, headers=self._headers(), json=payload)
                if self._is_retryable_status(res.status_code) and attempt < self.max_retries:
                    await asyncio.sleep(delay_s)
                    delay_s = min(delay_s * 2, 8.0)
                    continue
                res.raise_for_status()
                return res.json()
            except (httpx.TimeoutException, httpx.NetworkError, httpx.HTTPStatusError) as exc:
                last_exc = exc
                if attempt >= self.max_retries:
                    break
                status = getattr(getattr(exc, "response", None), "status_code", None)
                if isinstance(status, int) and not self._is_retryable_status(status):
                    break
                await asyncio.sleep(delay_s)
                delay_s = min(delay_s * 2, 8.0)

        raise RuntimeError(f"Image generation request failed after retries: {last_exc}") from last_exc

    async def _wait_for_prediction(self, client: httpx.AsyncClient, prediction: dict[str, Any]) -> dict[str, Any]:
        """轮询 urls.get 直到终态"""
        polls = 0
        while prediction.get("status") not in _TERMINAL_STATUSES:
            get_url = (prediction.get("urls") or {}).get("get")
            if not get_url:
                raise RuntimeError(f"Prediction has no polling URL: {prediction}")
            if polls >= self.settings.max_polls:
                raise RuntimeError(
                    f"Prediction {prediction.get('id')} timed out after {polls} polls"
                )
            await asyncio.sleep(self.settings.poll_interval_s)
            res = await client.get(get_url, headers=self.settings.replicate_headers())
            res.raise_for_status()
            prediction = res.json()
            polls += 1
        return prediction

    @staticmethod
    def _extract_url(output: Any) -> str | None:
        if isinstance(output, list):
            output = output[0] if output else None
        if isinstance(output, str) and output:
            return output
        if isinstance(output, dict):
            url = output.get("url") or output.get("href")
            if isinstance(url, str) and url:
                return url
        return None

    def build_input(
        self,
        prompt: str,
        reference_images: list[str] | None = None,
        aspect_ratio: str = "3:2",
        output_format: str = "png",
        negative_prompt: str | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        model_input: dict[str, Any] = {
            "prompt": prompt,
            "aspect_ratio": aspect_ratio,
            "output_format": output_format,
        }
        # nano-banana 系列不接受 negative_prompt
        if negative_prompt and "nano-banana" not in self.settings.image_model:
            model_input["negative_prompt"] = negative_prompt
        # 仅 pro 版本支持分辨率与安全等级
        if self.settings.image_model.endswith("-pro"):
            if self.settings.image_resolution:
                model_input["resolution"] = self.settings.image_resolution
            if self.settings.image_safety_filter_level:
                model_input["safety_filter_level"] = self.settings.image_safety_filter_level
        refs = [r for r in (reference_images or []) if r]
        if refs:
            model_input["image_input"] = refs
        model_input.update(extra)
        return model_input

    async def generate_url(
        self,
        *,
        prompt: str,
        reference_images: list[str] | None = None,
        aspect_ratio: str = "3:2",
        output_format: str = "png",
        negative_prompt: str | None = None,
        **kwargs: Any,
    ) -> str:
        payload = {
            "input": self.build_input(
                prompt, reference_images, aspect_ratio, output_format, negative_prompt, **kwargs
            )
        }
        logger.info(
            "Generating image with %s (%d reference images): %s...",
            self.settings.image_model,
            len(payload["input"].get("image_input", [])),
            prompt[:100],
        )

        async with self._client() as client:
            prediction = await self._post_json_with_retry(client, self._build_url(), payload)
            prediction = await self._wait_for_prediction(client, prediction)

        if prediction.get("status") != "succeeded":
            raise RuntimeError(
                f"Image generation {prediction.get('status')}: {prediction.get('error') or 'unknown error'}"
            )
        url = self._extract_url(prediction.get("output"))
        if not url:
            raise RuntimeError(f"Image API response missing URL: {prediction}")
        return url

    def _local_path(self, url: str) -> Path | None:
        if url.startswith("/static/"):
            return self.static_dir / url[len("/static/"):]
        return None

    async def is_accessible(self, url: str | None) -> bool:
        """探测引用图是否还能访问（provider URL 可能已经过期）"""
        if not url:
            return False
        if url.startswith("data:"):
            return True
        local = self._local_path(url)
        if local is not None:
            return local.is_file()
        if not url.startswith(("http://", "https://")):
            return False

        try:
            async with httpx.AsyncClient(timeout=10.0, follow_redirects=True) as client:
                res = await client.head(url)
                if res.status_code == 405:
                    async with client.stream("GET", url) as streamed:
                        return streamed.status_code < 400
                return res.status_code < 400
        except httpx.HTTPError as exc:
            logger.info("Reference image probe failed for %s: %s", url[:80], exc)
            return False

    async def cache_external_image(self, url: str, filename: str, subdir: str = "storyboard") -> str:
        """把远程图片下载到 /static/{subdir}/{filename}；下载失败时返回原 URL"""
        if not url.startswith(("http://", "https://")):
            return url

        target_dir = self.static_dir / subdir
        target = target_dir / filename
        try:
            async with httpx.AsyncClient(timeout=self.settings.request_timeout_s, follow_redirects=True) as client:
                res = await client.get(url)
                res.raise_for_status()
            target_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(res.content)
        except (httpx.HTTPError, OSError) as exc:
            # 原 URL 在过期前仍然可用
            logger.warning("Failed to cache image %s, keeping remote URL: %s", url[:80], exc, exc_info=True)
            return url

        logger.info("Saved image to /static/%s/%s", subdir, filename)
        return f"/static/{subdir}/{filename}"
