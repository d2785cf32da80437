"""OpenAI provider — GPT Image / DALL-E images and Sora video.

Images are a single synchronous call. Sora follows the async task pattern:
  POST /videos → poll GET /videos/{id} → (download /videos/{id}/content)
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any

from promptcraft.config import get_settings
from promptcraft.schemas.generation import GenerationRequest, GenerationResult
from promptcraft.services.generation.base import GenerationProvider, param_int, param_str
from promptcraft.services.generation.errors import MalformedResponseError, RemoteError
from promptcraft.services.generation.polling import (
    OperationPoller,
    PollPolicy,
    error_message,
    first_match,
)

logger = logging.getLogger(__name__)
settings = get_settings()

IMAGE_MODELS = ("gpt-image-1", "gpt-image-1-mini", "dall-e-3")
VIDEO_MODELS = ("sora-2", "sora-2-pro")

SORA_SECONDS = (4, 8, 12)

DEFAULT_POLL_POLICY = PollPolicy(
    initial_delay=5.0,
    increment=0.0,
    factor=1.5,
    max_delay=60.0,
    max_attempts=60,
)

# Where a finished video object may carry a direct download URL
_VIDEO_URL_PATHS: list[tuple[Any, ...]] = [
    ("url",),
    ("video_url",),
    ("output", "url"),
    ("result", "url"),
    ("data", 0, "url"),
]


@dataclass
class OpenAIConfig:
    api_key: str
    organization: str | None = None


def _sora_size(model: str, aspect_ratio: str, resolution: str) -> str:
    portrait = aspect_ratio in ("9:16", "3:4")
    if model == "sora-2-pro" and resolution == "1080p":
        return "1024x1792" if portrait else "1792x1024"
    return "720x1280" if portrait else "1280x720"


def _sora_done(payload: dict[str, Any]) -> bool:
    return payload.get("status") in ("completed", "failed")


def _sora_error(payload: dict[str, Any]) -> str | None:
    if payload.get("status") == "failed":
        return error_message(payload) or "Video generation failed"
    return None


class OpenAIProvider(GenerationProvider):
    """GPT Image / DALL-E 3 images and Sora 2 videos."""

    name = "openai"
    supported_models = IMAGE_MODELS + VIDEO_MODELS
    deprecated_models = {
        "dall-e-2": "dall-e-3",
        "sora": "sora-2",
    }

    def __init__(self, config: OpenAIConfig | None = None, *, poll_policy: PollPolicy | None = None, **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self.poll_policy = poll_policy or DEFAULT_POLL_POLICY

    def _headers(self, config: OpenAIConfig) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
        }
        if config.organization:
            headers["OpenAI-Organization"] = config.organization
        return headers

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        config, model = self._prepare(request)
        if model in VIDEO_MODELS:
            return await self._generate_video(config, model, request)
        return await self._generate_image(config, model, request)

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    async def _generate_image(
        self, config: OpenAIConfig, model: str, request: GenerationRequest,
    ) -> GenerationResult:
        params = request.parameters
        is_dalle = model.startswith("dall-e")

        body: dict[str, Any] = {
            "model": model,
            "prompt": request.prompt,
            "n": param_int(params, "n", default=1),
            "size": param_str(params, "size", default="1024x1024"),
            "quality": param_str(params, "quality", default="standard" if is_dalle else "auto"),
        }
        style = param_str(params, "style")
        if is_dalle and style:
            body["style"] = style

        logger.info("OpenAI image call: model=%s size=%s", model, body["size"])

        async with self._client() as client:
            response = await client.post(
                f"{settings.OPENAI_BASE_URL}/images/generations",
                json=body,
                headers=self._headers(config),
            )
        data = self._check_response(response)

        items = data.get("data")
        first = items[0] if isinstance(items, list) and items and isinstance(items[0], dict) else {}
        output_data = first.get("b64_json") if isinstance(first.get("b64_json"), str) else None
        output_url = None if output_data else first.get("url")
        if not output_data and not isinstance(output_url, str):
            raise MalformedResponseError("OpenAI returned no image url or b64_json")

        return GenerationResult(
            output_url=output_url,
            output_data=output_data,
            metadata={
                "provider": self.name,
                "model": model,
                "mime_type": "image/png",
                "created": data.get("created"),
                "revised_prompt": first.get("revised_prompt"),
                "usage": data.get("usage"),
            },
        )

    # ------------------------------------------------------------------
    # Sora video
    # ------------------------------------------------------------------

    async def _generate_video(
        self, config: OpenAIConfig, model: str, request: GenerationRequest,
    ) -> GenerationResult:
        params = request.parameters
        duration = param_int(params, "duration", "seconds", default=4)
        seconds = min(SORA_SECONDS, key=lambda s: abs(s - duration))
        size = param_str(params, "size") or _sora_size(
            model,
            param_str(params, "aspect_ratio", "aspectRatio", default="16:9"),
            param_str(params, "resolution", default="720p"),
        )

        body = {
            "model": model,
            "prompt": request.prompt,
            "seconds": str(seconds),
            "size": size,
        }
        headers = self._headers(config)
        base_url = settings.OPENAI_BASE_URL

        async with self._client() as client:
            response = await client.post(f"{base_url}/videos", json=body, headers=headers)
            data = self._check_response(response)

            video_id = data.get("id")
            if not isinstance(video_id, str) or not video_id:
                raise MalformedResponseError(f"Sora task creation returned no id: {data}")
            logger.info("Sora task created: %s (model=%s, %ss, %s)", video_id, model, seconds, size)

            poller = OperationPoller(self.poll_policy, label="Sora")
            result = await poller.poll(
                client,
                f"{base_url}/videos/{video_id}",
                headers=headers,
                is_done=_sora_done,
                get_error=_sora_error,
                extract=lambda payload: GenerationResult(
                    output_url=first_match(payload, _VIDEO_URL_PATHS),
                    metadata={
                        "provider": self.name,
                        "model": model,
                        "video_id": video_id,
                        "mime_type": "video/mp4",
                        "seconds": payload.get("seconds", str(seconds)),
                        "size": payload.get("size", size),
                    },
                ),
            )

            if not result.output_url:
                # Sora serves finished videos only through the authenticated content endpoint
                content = await client.get(f"{base_url}/videos/{video_id}/content", headers=headers)
                if not content.is_success:
                    raise RemoteError(content.status_code, content.text, provider=self.name)
                if not content.content:
                    raise MalformedResponseError(f"Sora video {video_id} has no content")
                result.output_data = base64.b64encode(content.content).decode("ascii")

        return result

    @classmethod
    def config_schema(cls) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "api_key": {
                    "type": "string",
                    "title": "API Key",
                    "description": "Your OpenAI API key",
                },
                "organization": {
                    "type": "string",
                    "title": "Organization ID (optional)",
                    "description": "Your OpenAI organization ID",
                },
            },
            "required": ["api_key"],
        }
