"""Reference image parsing for image providers that accept input images.

Pure helpers, no I/O. Reference images arrive inside the loose ``parameters``
dict either as a single ``reference_image`` object or as a
``reference_images`` list, each entry shaped like::

    {"data": "data:image/png;base64,....", "strength": 0.8,
     "denoisingStrength": 0.65, "resizeMode": "fill",
     "controlnetType": "canny", "controlnetStrength": 0.9}

A missing or malformed reference image is a normal request shape and always
degrades to "no reference image" rather than an error.
"""

from __future__ import annotations

import logging
from typing import Any, NamedTuple

from promptcraft.services.generation.errors import DecodeError

logger = logging.getLogger(__name__)

# Gemini 3 Pro Image accepts up to 14 reference images per request
MAX_REFERENCE_IMAGES = 14


class ReferenceImageParams(NamedTuple):
    """Auxiliary generation knobs attached to a reference image."""

    strength: float = 0.75
    denoising_strength: float = 0.70
    resize_mode: str = "crop"
    controlnet_type: str | None = None
    controlnet_strength: float = 1.0


def extract_base64_from_data_url(data_url: str) -> tuple[str, str]:
    """Split ``data:<mime>;base64,<payload>`` into ``(mime, payload)``.

    Raises DecodeError when the prefix, the comma separator or the base64
    flag is missing. The MIME type defaults to image/png.
    """
    if not data_url.startswith("data:"):
        raise DecodeError("Invalid data URL: must start with 'data:'")

    metadata, sep, payload = data_url.partition(",")
    if not sep:
        raise DecodeError("Invalid data URL format: missing comma separator")

    if "base64" not in metadata:
        raise DecodeError("Data URL is not base64 encoded")

    mime_type = metadata[len("data:"):].split(";", 1)[0] or "image/png"
    return mime_type, payload


def _entry_to_image(entry: Any) -> tuple[str, str] | None:
    if not isinstance(entry, dict):
        return None
    data_url = entry.get("data")
    if not isinstance(data_url, str):
        return None
    try:
        mime, b64 = extract_base64_from_data_url(data_url)
    except DecodeError as e:
        logger.warning("Failed to extract reference image: %s", e)
        return None
    logger.debug("Extracted reference image: MIME=%s, size=%dKB", mime, len(b64) // 1024)
    return mime, b64


def _reference_entry(parameters: dict[str, Any]) -> Any:
    entry = parameters.get("reference_image")
    if entry is None:
        plural = parameters.get("reference_images")
        if isinstance(plural, list) and plural:
            entry = plural[0]
    return entry


def extract_reference_image(parameters: dict[str, Any] | None) -> tuple[str, str] | None:
    """Return ``(mime, base64)`` for the request's reference image, if any."""
    if not parameters:
        return None
    return _entry_to_image(_reference_entry(parameters))


def extract_reference_images(
    parameters: dict[str, Any] | None,
    limit: int = MAX_REFERENCE_IMAGES,
) -> list[tuple[str, str]]:
    """Return every valid reference image, singular field first, up to ``limit``."""
    if not parameters:
        return []

    entries: list[Any] = []
    if parameters.get("reference_image") is not None:
        entries.append(parameters["reference_image"])
    plural = parameters.get("reference_images")
    if isinstance(plural, list):
        entries.extend(plural)

    images = [img for img in (_entry_to_image(e) for e in entries) if img]
    if len(images) > limit:
        logger.warning("Dropping %d reference images over the limit of %d", len(images) - limit, limit)
    return images[:limit]


def _number(entry: dict[str, Any], *keys: str) -> float | None:
    for key in keys:
        value = entry.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return None


def _string(entry: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = entry.get(key)
        if isinstance(value, str):
            return value
    return None


def get_reference_image_params(parameters: dict[str, Any] | None) -> ReferenceImageParams:
    """Read strength / denoising / resize / ControlNet knobs with per-field defaults."""
    defaults = ReferenceImageParams()
    entry = _reference_entry(parameters or {})
    if not isinstance(entry, dict):
        return defaults

    strength = _number(entry, "strength")
    denoising = _number(entry, "denoisingStrength", "denoising_strength")
    resize_mode = _string(entry, "resizeMode", "resize_mode")
    controlnet_type = _string(entry, "controlnetType", "controlnet_type")
    controlnet_strength = _number(entry, "controlnetStrength", "controlnet_strength")

    return ReferenceImageParams(
        strength=defaults.strength if strength is None else strength,
        denoising_strength=defaults.denoising_strength if denoising is None else denoising,
        resize_mode=resize_mode or defaults.resize_mode,
        controlnet_type=controlnet_type,
        controlnet_strength=(
            defaults.controlnet_strength if controlnet_strength is None else controlnet_strength
        ),
    )
