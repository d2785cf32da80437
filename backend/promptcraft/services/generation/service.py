"""Generation service — provider registry, configuration and output normalization.

The registry is a plain dict owned by the service. The lock only guards dict
access; provider calls always run outside it, so reconfiguring a provider
never disturbs a generation that already resolved the old instance.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
import threading
import uuid
from pathlib import Path

import httpx

from promptcraft.config import get_settings
from promptcraft.schemas.generation import GenerationRequest, GenerationResult
from promptcraft.services.generation.base import GenerationProvider
from promptcraft.services.generation.errors import (
    MalformedResponseError,
    ProviderNotFoundError,
    UnknownProviderError,
)
from promptcraft.services.generation.providers import (
    PROVIDER_CLASSES,
    A1111Config,
    A1111Provider,
    AnthropicConfig,
    AnthropicProvider,
    ComfyUIConfig,
    ComfyUIProvider,
    GoogleConfig,
    GoogleProvider,
    GrokConfig,
    GrokProvider,
    InvokeAIConfig,
    InvokeAIProvider,
    OpenAIConfig,
    OpenAIProvider,
)

logger = logging.getLogger(__name__)
settings = get_settings()

DEFAULT_MIME_TYPE = "image/png"

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
}


def _extension_for(mime_type: str) -> str:
    ext = _EXTENSIONS.get(mime_type)
    if ext:
        return ext
    guessed = mimetypes.guess_extension(mime_type)
    return guessed.lstrip(".") if guessed else "bin"


def decode_payload(data: str) -> bytes:
    """Decode an inline base64 payload, tolerating a data-URL prefix, whitespace and missing padding."""
    if data.startswith("data:"):
        _, _, data = data.partition(",")
    cleaned = "".join(data.split())
    cleaned += "=" * (-len(cleaned) % 4)
    return base64.b64decode(cleaned, validate=True)


class GenerationService:
    """Routes generation requests to registered providers."""

    def __init__(
        self,
        media_dir: str | Path | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.media_dir = Path(media_dir or settings.MEDIA_DIR).absolute()
        self._http_client = http_client
        self._providers: dict[str, GenerationProvider] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register_provider(self, provider: GenerationProvider) -> None:
        """Insert or replace the provider registered under ``provider.name``."""
        with self._lock:
            replaced = provider.name in self._providers
            self._providers[provider.name] = provider
        logger.info(
            "%s provider: %s (available=%s)",
            "Replaced" if replaced else "Registered", provider.name, provider.is_available(),
        )

    def get_provider(self, name: str) -> GenerationProvider | None:
        with self._lock:
            return self._providers.get(name)

    def list_providers(self) -> list[str]:
        with self._lock:
            return list(self._providers)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure_provider(self, name: str, api_key: str) -> None:
        """Build a fresh API-key provider instance and register it."""
        client = self._http_client
        if name == "openai":
            provider: GenerationProvider = OpenAIProvider(
                OpenAIConfig(api_key=api_key, organization=settings.OPENAI_ORGANIZATION or None),
                http_client=client,
            )
        elif name == "google":
            provider = GoogleProvider(GoogleConfig(api_key=api_key), http_client=client)
        elif name == "grok":
            provider = GrokProvider(GrokConfig(api_key=api_key), http_client=client)
        elif name == "anthropic":
            provider = AnthropicProvider(AnthropicConfig(api_key=api_key), http_client=client)
        else:
            raise UnknownProviderError(name)
        self.register_provider(provider)

    def configure_local_provider(self, name: str, api_url: str) -> None:
        """Build a fresh local-tool provider instance pointing at ``api_url``."""
        client = self._http_client
        if name == "a1111":
            provider: GenerationProvider = A1111Provider(A1111Config(api_url=api_url), http_client=client)
        elif name == "comfyui":
            provider = ComfyUIProvider(ComfyUIConfig(api_url=api_url), http_client=client)
        elif name == "invokeai":
            provider = InvokeAIProvider(InvokeAIConfig(api_url=api_url), http_client=client)
        else:
            raise UnknownProviderError(name, kind="local provider")
        self.register_provider(provider)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate(self, name: str, request: GenerationRequest) -> GenerationResult:
        """Generate with provider ``name`` and normalize inline media to a file."""
        provider = self.get_provider(name)
        if provider is None:
            raise ProviderNotFoundError(name)

        logger.info("Generating with %s (model=%s)", name, request.model)
        result = await provider.generate(request)
        return await self._normalize_output(name, result)

    async def _normalize_output(self, name: str, result: GenerationResult) -> GenerationResult:
        if not result.output_data:
            return result

        mime_type = result.metadata.get("mime_type") or DEFAULT_MIME_TYPE
        if mime_type.startswith("text/"):
            return result

        path = self.media_dir / f"{name}_{uuid.uuid4()}.{_extension_for(mime_type)}"
        try:
            payload = decode_payload(result.output_data)
            await asyncio.to_thread(self._write_file, path, payload)
        except (ValueError, OSError) as e:
            logger.warning("Failed to normalize %s output, keeping inline data: %s", name, e)
            result.metadata["normalization_error"] = str(e)
            return result

        logger.info("Saved %s output to %s (%d bytes)", name, path, len(payload))
        result.output_url = path.as_uri()
        result.file_path = str(path)
        result.output_data = None
        result.metadata["normalized"] = True
        return result

    @staticmethod
    def _write_file(path: Path, payload: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)

    async def call_ai(
        self,
        name: str,
        model: str,
        prompt: str,
        max_tokens: int = 4096,
        temperature: float = 1.0,
    ) -> str:
        """One-shot text generation; returns the generated text."""
        request = GenerationRequest(
            prompt=prompt,
            model=model,
            parameters={"max_tokens": max_tokens, "temperature": temperature},
        )
        result = await self.generate(name, request)
        if not result.output_data:
            raise MalformedResponseError("No text output received")
        return result.output_data


def create_default_service(http_client: httpx.AsyncClient | None = None) -> GenerationService:
    """Register an unconfigured placeholder per provider, then apply configured keys and URLs."""
    service = GenerationService(http_client=http_client)
    for provider_cls in PROVIDER_CLASSES.values():
        service.register_provider(provider_cls(http_client=http_client))

    api_keys = {
        "openai": settings.OPENAI_API_KEY,
        "anthropic": settings.ANTHROPIC_API_KEY,
        "google": settings.GOOGLE_API_KEY,
        "grok": settings.XAI_API_KEY,
    }
    for name, api_key in api_keys.items():
        if api_key:
            service.configure_provider(name, api_key)

    api_urls = {
        "a1111": settings.A1111_API_URL,
        "comfyui": settings.COMFYUI_API_URL,
        "invokeai": settings.INVOKEAI_API_URL,
    }
    for name, api_url in api_urls.items():
        if api_url:
            service.configure_local_provider(name, api_url)

    return service
