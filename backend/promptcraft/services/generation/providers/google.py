"""Google provider — Gemini image generation and Veo video via the Gemini API.

Images: one generateContent call with the prompt plus up to 14 reference
images as inline parts. Video: predictLongRunning returns an operation name
that is polled until ``done``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from promptcraft.config import get_settings
from promptcraft.schemas.generation import GenerationRequest, GenerationResult
from promptcraft.services.generation.base import (
    GenerationProvider,
    param_bool,
    param_int,
    param_str,
)
from promptcraft.services.generation.errors import MalformedResponseError
from promptcraft.services.generation.polling import OperationPoller, PollPolicy, first_match
from promptcraft.services.generation.reference_media import (
    extract_reference_image,
    extract_reference_images,
)

logger = logging.getLogger(__name__)
settings = get_settings()

IMAGE_MODELS = ("gemini-2.5-flash-image", "gemini-3-pro-image-preview")
VIDEO_MODELS = ("veo-3.1-generate-preview", "veo-3.1-fast-generate-preview")

DEFAULT_VIDEO_MODEL = "veo-3.1-generate-preview"

DEFAULT_POLL_POLICY = PollPolicy(
    initial_delay=10.0,
    increment=5.0,
    max_delay=60.0,
    max_attempts=60,
)

# Known locations of the video URI in a finished Veo operation
_VIDEO_URI_PATHS: list[tuple[Any, ...]] = [
    ("response", "generateVideoResponse", "generatedSamples", 0, "video", "uri"),
    ("response", "predictions", 0, "videoUri"),
    ("response", "predictions", 0, "video_uri"),
    ("response", "videoUri"),
    ("response", "video_uri"),
    ("response", "output"),
    ("result", "predictions", 0, "videoUri"),
    ("result", "predictions", 0, "video_uri"),
    ("result", "videoUri"),
    ("result", "video_uri"),
    ("result", "output"),
]


@dataclass
class GoogleConfig:
    api_key: str
    project_id: str | None = None


def _inline_part(part: dict[str, Any]) -> dict[str, Any] | None:
    """REST responses use camelCase; accept snake_case too."""
    inline = part.get("inlineData") or part.get("inline_data")
    if isinstance(inline, dict) and isinstance(inline.get("data"), str):
        return inline
    return None


class GoogleProvider(GenerationProvider):
    """Gemini image + Veo video provider."""

    name = "google"
    supported_models = IMAGE_MODELS + VIDEO_MODELS
    deprecated_models = {
        "veo": DEFAULT_VIDEO_MODEL,
        "veo-2": DEFAULT_VIDEO_MODEL,
        "veo-2.0-generate-exp": DEFAULT_VIDEO_MODEL,
        "veo-3": DEFAULT_VIDEO_MODEL,
        "veo-3.1": DEFAULT_VIDEO_MODEL,
    }

    def __init__(self, config: GoogleConfig | None = None, *, poll_policy: PollPolicy | None = None, **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self.poll_policy = poll_policy or DEFAULT_POLL_POLICY

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        config, model = self._prepare(request)
        if model in VIDEO_MODELS:
            return await self._generate_video(config, model, request)
        return await self._generate_image(config, model, request)

    # ------------------------------------------------------------------
    # Gemini image
    # ------------------------------------------------------------------

    async def _generate_image(
        self, config: GoogleConfig, model: str, request: GenerationRequest,
    ) -> GenerationResult:
        params = request.parameters
        use_search = param_bool(params, "use_search", "useSearch", "google_search")

        parts: list[dict[str, Any]] = [{"text": request.prompt}]
        references = extract_reference_images(params)
        for mime_type, b64_data in references:
            parts.append({"inline_data": {"mime_type": mime_type, "data": b64_data}})

        generation_config: dict[str, Any] = {
            "responseModalities": ["TEXT", "IMAGE"] if use_search else ["IMAGE"],
        }
        image_config: dict[str, Any] = {}
        aspect_ratio = param_str(params, "aspect_ratio", "aspectRatio")
        if aspect_ratio:
            image_config["aspectRatio"] = aspect_ratio
        image_size = param_str(params, "resolution", "image_size", "imageSize")
        if image_size and model == "gemini-3-pro-image-preview":
            image_config["imageSize"] = image_size
        if image_config:
            generation_config["imageConfig"] = image_config

        body: dict[str, Any] = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        }
        if use_search:
            body["tools"] = [{"google_search": {}}]

        logger.info(
            "Gemini image call: model=%s refs=%d search=%s", model, len(references), use_search,
        )

        async with self._client() as client:
            response = await client.post(
                f"{settings.GOOGLE_BASE_URL}/models/{model}:generateContent",
                json=body,
                headers={"x-goog-api-key": config.api_key, "Content-Type": "application/json"},
            )
        data = self._check_response(response)

        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            feedback = data.get("promptFeedback")
            block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
            if block_reason:
                raise MalformedResponseError(f"Gemini blocked the prompt: {block_reason}")
            raise MalformedResponseError("Gemini: no candidates in response")

        content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        response_parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(response_parts, list):
            raise MalformedResponseError("Gemini: candidate has no content parts")

        image: dict[str, Any] | None = None
        for part in response_parts:
            if not isinstance(part, dict):
                continue
            if isinstance(part.get("text"), str):
                logger.info("Gemini text part: %s", part["text"][:500])
            if image is None:
                image = _inline_part(part)

        if image is None:
            raise MalformedResponseError("Gemini: no image in response")

        return GenerationResult(
            output_data=image["data"],
            metadata={
                "provider": self.name,
                "model": model,
                "mime_type": image.get("mimeType") or image.get("mime_type") or "image/png",
                "reference_images": len(references),
                "search": use_search,
                "finish_reason": candidates[0].get("finishReason"),
                "usage": data.get("usageMetadata"),
            },
        )

    # ------------------------------------------------------------------
    # Veo video
    # ------------------------------------------------------------------

    async def _generate_video(
        self, config: GoogleConfig, model: str, request: GenerationRequest,
    ) -> GenerationResult:
        params = request.parameters

        instance: dict[str, Any] = {"prompt": request.prompt}
        reference = extract_reference_image(params)
        if reference:
            mime_type, b64_data = reference
            instance["image"] = {"bytesBase64Encoded": b64_data, "mimeType": mime_type}

        parameters: dict[str, Any] = {
            "aspectRatio": param_str(params, "aspect_ratio", "aspectRatio", default="16:9"),
            "resolution": param_str(params, "resolution", default="720p"),
            "durationSeconds": param_int(params, "duration", "durationSeconds", default=8),
        }
        negative_prompt = param_str(params, "negative_prompt", "negativePrompt")
        if negative_prompt:
            parameters["negativePrompt"] = negative_prompt

        body = {"instances": [instance], "parameters": parameters}
        headers = {"x-goog-api-key": config.api_key}
        base_url = settings.GOOGLE_BASE_URL

        async with self._client() as client:
            response = await client.post(
                f"{base_url}/models/{model}:predictLongRunning",
                json=body,
                headers={**headers, "Content-Type": "application/json"},
            )
            data = self._check_response(response)

            operation_name = data.get("name")
            if not isinstance(operation_name, str) or not operation_name:
                raise MalformedResponseError("No operation name in Veo response")
            logger.info("Veo operation started: %s (model=%s)", operation_name, model)

            poller = OperationPoller(self.poll_policy, label="Veo")
            return await poller.poll(
                client,
                f"{base_url}/{operation_name}",
                headers=headers,
                extract=lambda payload: self._extract_video(payload, model, operation_name),
            )

    def _extract_video(self, payload: dict[str, Any], model: str, operation_name: str) -> GenerationResult:
        output_url = first_match(payload, _VIDEO_URI_PATHS)
        if not output_url:
            raise MalformedResponseError(f"Veo operation {operation_name} finished without a video URI")
        return GenerationResult(
            output_url=output_url,
            metadata={
                "provider": self.name,
                "model": model,
                "operation": operation_name,
                "mime_type": "video/mp4",
                "response": payload.get("response") or payload.get("result"),
            },
        )

    @classmethod
    def config_schema(cls) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "api_key": {
                    "type": "string",
                    "title": "API Key",
                    "description": "Your Google AI / Gemini API key",
                },
                "project_id": {
                    "type": "string",
                    "title": "Project ID (optional)",
                },
            },
            "required": ["api_key"],
        }
