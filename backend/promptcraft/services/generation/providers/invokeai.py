"""InvokeAI provider (local txt2img)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from promptcraft.schemas.generation import GenerationRequest, GenerationResult
from promptcraft.services.generation.base import (
    GenerationProvider,
    param_float,
    param_int,
    param_str,
)
from promptcraft.services.generation.errors import InvalidParametersError, MalformedResponseError

logger = logging.getLogger(__name__)


@dataclass
class InvokeAIConfig:
    api_url: str


class InvokeAIProvider(GenerationProvider):
    name = "invokeai"
    supported_models = ("default",)
    deprecated_models = {"invokeai": "default"}
    missing_config_label = "API URL"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        config, _ = self._prepare(request)
        params = request.parameters

        negative_prompt = param_str(params, "negative_prompt", default="")
        steps = param_int(params, "steps", default=20)
        cfg_scale = param_float(params, "cfg_scale", default=7.0)
        width = param_int(params, "width", default=512)
        height = param_int(params, "height", default=512)
        sampler = param_str(params, "sampler", default="euler")
        seed = param_int(params, "seed", default=-1)
        model = param_str(params, "model")
        if not model:
            raise InvalidParametersError("Model required for InvokeAI")

        body = {
            "model": model,
            "prompt": request.prompt,
            "negative_prompt": negative_prompt,
            "steps": steps,
            "cfg_scale": cfg_scale,
            "width": width,
            "height": height,
            "scheduler": sampler,
            "seed": seed,
        }

        url = f"{config.api_url.rstrip('/')}/api/v1/generate"
        logger.info("InvokeAI generate: model=%s %dx%d", model, width, height)

        async with self._client() as client:
            response = await client.post(url, json=body)
        data = self._check_response(response)

        image = data.get("image") if isinstance(data.get("image"), dict) else {}
        image_url = image.get("url") if isinstance(image.get("url"), str) else None
        image_data = image.get("data") if isinstance(image.get("data"), str) else None
        if not image_url and not image_data:
            raise MalformedResponseError("No image url or data in InvokeAI response")

        return GenerationResult(
            output_url=image_url,
            output_data=image_data,
            metadata={
                "provider": self.name,
                "mime_type": "image/png",
                "parameters": {
                    "prompt": request.prompt,
                    "negative_prompt": negative_prompt,
                    "model": model,
                    "steps": steps,
                    "cfg_scale": cfg_scale,
                    "width": width,
                    "height": height,
                    "sampler": sampler,
                    "seed": seed,
                },
            },
        )

    @classmethod
    def config_schema(cls) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "api_url": {
                    "type": "string",
                    "title": "API URL",
                    "description": "InvokeAI API URL",
                    "default": "http://127.0.0.1:9090",
                }
            },
            "required": ["api_url"],
        }
