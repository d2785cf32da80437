"""Anthropic Messages API provider (text generation)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from promptcraft.config import get_settings
from promptcraft.schemas.generation import GenerationRequest, GenerationResult
from promptcraft.services.generation.base import GenerationProvider, param_float, param_int
from promptcraft.services.generation.errors import MalformedResponseError

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class AnthropicConfig:
    api_key: str


class AnthropicProvider(GenerationProvider):
    """Single-turn text generation against /v1/messages."""

    name = "anthropic"
    supported_models = (
        "claude-opus-4-1",
        "claude-opus-4-0",
        "claude-sonnet-4-5",
        "claude-sonnet-4-0",
        "claude-haiku-4-5",
        "claude-3-7-sonnet-latest",
        "claude-3-5-haiku-latest",
    )
    deprecated_models = {
        "claude-3-5-sonnet-latest": "claude-sonnet-4-5",
        "claude-3-opus-latest": "claude-sonnet-4-5",
    }
    accepts_snapshots = True

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        config, model = self._prepare(request)
        params = request.parameters

        body = {
            "model": model,
            "max_tokens": param_int(params, "max_tokens", default=4096),
            "temperature": param_float(params, "temperature", default=1.0),
            "messages": [{"role": "user", "content": request.prompt}],
        }
        headers = {
            "x-api-key": config.api_key,
            "anthropic-version": settings.ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

        logger.info("Anthropic messages call: model=%s max_tokens=%d", model, body["max_tokens"])

        async with self._client() as client:
            response = await client.post(
                f"{settings.ANTHROPIC_BASE_URL}/messages", json=body, headers=headers,
            )
        data = self._check_response(response)

        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise MalformedResponseError("No content blocks in Anthropic response")

        text = "".join(
            block["text"]
            for block in blocks
            if isinstance(block, dict) and isinstance(block.get("text"), str)
        )

        return GenerationResult(
            output_data=text,
            metadata={
                "provider": self.name,
                "mime_type": "text/plain",
                "id": data.get("id"),
                "model": data.get("model", model),
                "stop_reason": data.get("stop_reason"),
                "usage": data.get("usage"),
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
                    "description": "Your Anthropic API key",
                }
            },
            "required": ["api_key"],
        }
