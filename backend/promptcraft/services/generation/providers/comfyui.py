"""ComfyUI provider.

ComfyUI executes a node graph rather than a flat request:
1. POST /prompt        → queue a txt2img graph, get prompt_id
2. GET  /history/{id}  → poll until the SaveImage node lists its files
3. Build /view?filename=..&subfolder=..&type=output URLs for the outputs
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from promptcraft.schemas.generation import GenerationRequest, GenerationResult
from promptcraft.services.generation.base import (
    GenerationProvider,
    param_float,
    param_int,
    param_str,
)
from promptcraft.services.generation.errors import InvalidParametersError, MalformedResponseError
from promptcraft.services.generation.polling import OperationPoller, PollPolicy

logger = logging.getLogger(__name__)

SAVE_NODE_ID = "7"

DEFAULT_POLL_POLICY = PollPolicy(
    initial_delay=1.0,
    increment=1.0,
    max_delay=10.0,
    max_attempts=60,
)


@dataclass
class ComfyUIConfig:
    api_url: str


def build_txt2img_workflow(
    *,
    prompt: str,
    negative_prompt: str,
    checkpoint: str,
    steps: int,
    cfg: float,
    width: int,
    height: int,
    sampler: str,
    seed: int,
) -> dict[str, Any]:
    """Build the basic checkpoint → encode → sample → decode → save graph.

    Links are ``[source_node_id, output_index]`` pairs.
    """
    return {
        "1": {
            "class_type": "CheckpointLoaderSimple",
            "inputs": {"ckpt_name": checkpoint},
        },
        "2": {
            "class_type": "CLIPTextEncode",
            "inputs": {"text": prompt, "clip": ["1", 1]},
        },
        "3": {
            "class_type": "CLIPTextEncode",
            "inputs": {"text": negative_prompt, "clip": ["1", 1]},
        },
        "4": {
            "class_type": "EmptyLatentImage",
            "inputs": {"width": width, "height": height, "batch_size": 1},
        },
        "5": {
            "class_type": "KSampler",
            "inputs": {
                "seed": seed,
                "steps": steps,
                "cfg": cfg,
                "sampler_name": sampler,
                "scheduler": "normal",
                "denoise": 1.0,
                "model": ["1", 0],
                "positive": ["2", 0],
                "negative": ["3", 0],
                "latent_image": ["4", 0],
            },
        },
        "6": {
            "class_type": "VAEDecode",
            "inputs": {"samples": ["5", 0], "vae": ["1", 2]},
        },
        SAVE_NODE_ID: {
            "class_type": "SaveImage",
            "inputs": {"filename_prefix": "PromptCraft", "images": ["6", 0]},
        },
    }


class ComfyUIProvider(GenerationProvider):
    """Local ComfyUI server provider."""

    name = "comfyui"
    supported_models = ("default",)
    deprecated_models = {"comfyui": "default"}
    missing_config_label = "API URL"

    def __init__(self, config: ComfyUIConfig | None = None, *, poll_policy: PollPolicy | None = None, **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self.poll_policy = poll_policy or DEFAULT_POLL_POLICY

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        config, _ = self._prepare(request)
        params = request.parameters
        api_url = config.api_url.rstrip("/")

        negative_prompt = param_str(params, "negative_prompt", default="")
        steps = param_int(params, "steps", default=20)
        cfg_scale = param_float(params, "cfg_scale", default=7.0)
        width = param_int(params, "width", default=512)
        height = param_int(params, "height", default=512)
        sampler = param_str(params, "sampler", default="euler")
        seed = param_int(params, "seed", default=-1)
        checkpoint = param_str(params, "model")
        if not checkpoint:
            raise InvalidParametersError("Model checkpoint required for ComfyUI")

        # KSampler rejects negative seeds
        if seed < 0:
            seed = random.randint(0, 2**32 - 1)

        workflow = build_txt2img_workflow(
            prompt=request.prompt,
            negative_prompt=negative_prompt,
            checkpoint=checkpoint,
            steps=steps,
            cfg=cfg_scale,
            width=width,
            height=height,
            sampler=sampler,
            seed=seed,
        )

        async with self._client() as client:
            response = await client.post(f"{api_url}/prompt", json={"prompt": workflow})
            data = self._check_response(response)

            prompt_id = data.get("prompt_id")
            if not isinstance(prompt_id, str) or not prompt_id:
                raise MalformedResponseError("No prompt_id in ComfyUI response")
            logger.info("ComfyUI prompt queued: %s (checkpoint=%s)", prompt_id, checkpoint)

            poller = OperationPoller(self.poll_policy, label="ComfyUI")
            result = await poller.poll(
                client,
                f"{api_url}/history/{prompt_id}",
                is_done=lambda payload: _history_done(payload, prompt_id),
                get_error=lambda payload: _history_error(payload, prompt_id),
                extract=lambda payload: self._extract_result(payload, prompt_id, api_url),
            )

        result.metadata.update({
            "parameters": {
                "prompt": request.prompt,
                "negative_prompt": negative_prompt,
                "model": checkpoint,
                "steps": steps,
                "cfg_scale": cfg_scale,
                "width": width,
                "height": height,
                "sampler": sampler,
                "seed": seed,
            },
        })
        return result

    def _extract_result(self, payload: dict[str, Any], prompt_id: str, api_url: str) -> GenerationResult:
        images = _saved_images(payload, prompt_id)
        urls = [
            f"{api_url}/view?" + urlencode({
                "filename": img["filename"],
                "subfolder": img.get("subfolder") or "",
                "type": img.get("type") or "output",
            })
            for img in images
            if isinstance(img, dict) and isinstance(img.get("filename"), str)
        ]
        if not urls:
            raise MalformedResponseError("No images generated")
        return GenerationResult(
            output_url=urls[0],
            metadata={
                "provider": self.name,
                "prompt_id": prompt_id,
                "mime_type": "image/png",
                "outputs": urls,
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
                    "description": "ComfyUI API URL",
                    "default": "http://127.0.0.1:8188",
                }
            },
            "required": ["api_url"],
        }


def _entry(payload: dict[str, Any], prompt_id: str) -> dict[str, Any]:
    entry = payload.get(prompt_id)
    return entry if isinstance(entry, dict) else {}


def _saved_images(payload: dict[str, Any], prompt_id: str) -> list[Any]:
    outputs = _entry(payload, prompt_id).get("outputs") or {}
    save_node = outputs.get(SAVE_NODE_ID) if isinstance(outputs, dict) else None
    images = save_node.get("images") if isinstance(save_node, dict) else None
    return images if isinstance(images, list) else []


def _history_done(payload: dict[str, Any], prompt_id: str) -> bool:
    """The prompt is done once the save node lists images or execution errored."""
    if _saved_images(payload, prompt_id):
        return True
    return _history_error(payload, prompt_id) is not None


def _history_error(payload: dict[str, Any], prompt_id: str) -> str | None:
    status = _entry(payload, prompt_id).get("status")
    if not isinstance(status, dict) or status.get("status_str") != "error":
        return None
    for message in status.get("messages") or []:
        if (
            isinstance(message, list)
            and len(message) == 2
            and message[0] == "execution_error"
            and isinstance(message[1], dict)
        ):
            return str(message[1].get("exception_message") or "Execution error")
    return "Execution error"
