"""Automatic1111 Stable Diffusion WebUI provider.

txt2img by default; switches to img2img when the request carries a
reference image, optionally attaching a ControlNet unit.
"""

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
from promptcraft.services.generation.errors import MalformedResponseError
from promptcraft.services.generation.reference_media import (
    extract_reference_image,
    get_reference_image_params,
)

logger = logging.getLogger(__name__)

# A1111 img2img resize_mode indexes
_RESIZE_MODES = {
    "resize": 0,
    "crop": 1,
    "fill": 2,
    "latent": 3,
}


@dataclass
class A1111Config:
    api_url: str


class A1111Provider(GenerationProvider):
    """Automatic1111 WebUI (``--api``) provider."""

    name = "a1111"
    supported_models = ("default", "stable-diffusion")
    deprecated_models = {"a1111": "default"}
    missing_config_label = "API URL"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        config, _ = self._prepare(request)
        params = request.parameters

        negative_prompt = param_str(params, "negative_prompt", default="")
        steps = param_int(params, "steps", default=20)
        cfg_scale = param_float(params, "cfg_scale", default=7.0)
        width = param_int(params, "width", default=512)
        height = param_int(params, "height", default=512)
        sampler_name = param_str(params, "sampler", default="Euler a")
        seed = param_int(params, "seed", default=-1)
        checkpoint = param_str(params, "model")

        body: dict[str, Any] = {
            "prompt": request.prompt,
            "negative_prompt": negative_prompt,
            "steps": steps,
            "cfg_scale": cfg_scale,
            "width": width,
            "height": height,
            "sampler_name": sampler_name,
            "seed": seed,
            "n_iter": 1,
            "batch_size": 1,
        }
        if checkpoint:
            body["override_settings"] = {"sd_model_checkpoint": checkpoint}

        endpoint = "txt2img"
        reference = extract_reference_image(params)
        if reference:
            _, init_image = reference
            ref_params = get_reference_image_params(params)
            endpoint = "img2img"
            body["init_images"] = [init_image]
            body["denoising_strength"] = ref_params.denoising_strength
            body["resize_mode"] = _RESIZE_MODES.get(ref_params.resize_mode, 1)
            if ref_params.controlnet_type:
                body["alwayson_scripts"] = {
                    "controlnet": {
                        "args": [{
                            "enabled": True,
                            "image": init_image,
                            "module": ref_params.controlnet_type,
                            "weight": ref_params.controlnet_strength,
                        }]
                    }
                }

        url = f"{config.api_url.rstrip('/')}/sdapi/v1/{endpoint}"
        logger.info("A1111 %s: %dx%d steps=%d seed=%d", endpoint, width, height, steps, seed)

        async with self._client() as client:
            response = await client.post(url, json=body)
        data = self._check_response(response)

        images = data.get("images")
        if not isinstance(images, list):
            raise MalformedResponseError("No images in A1111 response")
        if not images or not isinstance(images[0], str):
            raise MalformedResponseError("Invalid image data in A1111 response")

        info = data.get("info")
        return GenerationResult(
            output_data=images[0],
            metadata={
                "provider": self.name,
                "mime_type": "image/png",
                "mode": endpoint,
                "info": info if isinstance(info, str) else "",
                "parameters": {
                    "prompt": request.prompt,
                    "negative_prompt": negative_prompt,
                    "steps": steps,
                    "cfg_scale": cfg_scale,
                    "width": width,
                    "height": height,
                    "sampler": sampler_name,
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
                    "description": "Automatic1111 WebUI API URL",
                    "default": "http://127.0.0.1:7860",
                }
            },
            "required": ["api_url"],
        }
