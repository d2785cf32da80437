"""xAI Grok image provider (Aurora / grok-2-image)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from promptcraft.config import get_settings
from promptcraft.schemas.generation import GenerationRequest, GenerationResult
from promptcraft.services.generation.base import GenerationProvider, param_int, param_str
from promptcraft.services.generation.errors import MalformedResponseError

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class GrokConfig:
    api_key: str


class GrokProvider(GenerationProvider):
    name = "grok"
    supported_models = ("grok-2-image", "grok-2-image-1212", "grok-image", "aurora")
    deprecated_models = {
        "grok": "grok-2-image",
        "grok-1": "grok-2-image",
        "flux": "grok-2-image",
    }

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        config, model = self._prepare(request)
        params = request.parameters

        # xAI accepts 1-10 images per call
        n = max(1, min(param_int(params, "n", default=1), 10))
        response_format = param_str(params, "response_format", default="url")
        wire_model = "grok-2-image" if model in ("grok-image", "aurora") else model

        body = {
            "model": wire_model,
            "prompt": request.prompt,
            "n": n,
            "response_format": response_format,
        }
        headers = {
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
        }

        logger.info("Grok image call: model=%s n=%d format=%s", wire_model, n, response_format)

        async with self._client() as client:
            response = await client.post(
                f"{settings.XAI_BASE_URL}/images/generations", json=body, headers=headers,
            )
        data = self._check_response(response)

        items = data.get("data")
        first = items[0] if isinstance(items, list) and items and isinstance(items[0], dict) else {}
        output_url = first.get("url") if isinstance(first.get("url"), str) else None
        output_data = first.get("b64_json") if isinstance(first.get("b64_json"), str) else None
        if not output_url and not output_data:
            raise MalformedResponseError("xAI returned no image url or b64_json")

        # Keep the inline payload out of metadata; it lives in output_data
        metadata = {k: v for k, v in data.items() if k != "data"}
        metadata.update({
            "provider": self.name,
            "model": wire_model,
            "mime_type": "image/jpeg",
            "revised_prompt": first.get("revised_prompt"),
        })
        return GenerationResult(output_url=output_url, output_data=output_data, metadata=metadata)

    @classmethod
    def config_schema(cls) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "api_key": {
                    "type": "string",
                    "title": "API Key",
                    "description": "Your xAI API key",
                }
            },
            "required": ["api_key"],
        }
