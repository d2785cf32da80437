"""Provider contract shared by every generation backend.

Each backend module implements the same pattern:
  resolve model -> build wire request -> POST (-> poll) -> GenerationResult
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, ClassVar

import httpx

from promptcraft.config import get_settings
from promptcraft.schemas.generation import GenerationRequest, GenerationResult
from promptcraft.services.generation.errors import (
    GenerationTimeoutError,
    MalformedResponseError,
    NotConfiguredError,
    RemoteError,
    TransportError,
    UnsupportedModelError,
)

logger = logging.getLogger(__name__)
settings = get_settings()


class GenerationProvider(ABC):
    """Abstract base class for all generation backends.

    Subclasses declare their closed model set in ``supported_models`` and map
    retired names onto current ones in ``deprecated_models``.
    """

    name: ClassVar[str] = "unknown"
    supported_models: ClassVar[tuple[str, ...]] = ()
    deprecated_models: ClassVar[dict[str, str]] = {}
    # Accept dated snapshots such as "<model>-20250929"
    accepts_snapshots: ClassVar[bool] = False
    missing_config_label: ClassVar[str] = "API key"

    def __init__(self, config: Any = None, *, http_client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._http_client = http_client

    # --- contract ---------------------------------------------------------

    def is_available(self) -> bool:
        """True when the instance holds usable credentials or an endpoint."""
        return self.config is not None

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Run one generation and return the normalized result."""
        ...

    @classmethod
    @abstractmethod
    def config_schema(cls) -> dict[str, Any]:
        """Configuration fields a caller must supply (for UI generation)."""
        ...

    # --- helpers ----------------------------------------------------------

    def _require_config(self) -> Any:
        if self.config is None:
            raise NotConfiguredError(self.name, self.missing_config_label)
        return self.config

    def resolve_model(self, model: str) -> str:
        """Map ``model`` onto a supported model, or raise UnsupportedModelError.

        Deprecated aliases are redirected with a warning rather than rejected.
        """
        if model in self.supported_models:
            return model
        if model in self.deprecated_models:
            target = self.deprecated_models[model]
            logger.warning(
                "%s model '%s' is deprecated, using '%s' instead", self.name, model, target,
            )
            return target
        if self.accepts_snapshots:
            for known in self.supported_models:
                if model.startswith(f"{known}-"):
                    return model
        raise UnsupportedModelError(
            self.name, model, [*self.supported_models, *self.deprecated_models],
        )

    def _prepare(self, request: GenerationRequest) -> tuple[Any, str]:
        """Check configuration then model, before any network I/O."""
        config = self._require_config()
        return config, self.resolve_model(request.model)

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the injected client, or a short-lived one that is closed after use.

        Transport failures inside the block surface as GenerationTimeoutError
        or TransportError naming this provider.
        """
        try:
            if self._http_client is not None:
                yield self._http_client
            else:
                async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as client:
                    yield client
        except httpx.TimeoutException as e:
            raise GenerationTimeoutError(f"{self.name} request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(self.name, e) from e

    def _check_response(self, response: httpx.Response) -> dict[str, Any]:
        """Raise RemoteError on non-2xx, MalformedResponseError on non-JSON."""
        if not response.is_success:
            raise RemoteError(response.status_code, response.text, provider=self.name)
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"{self.name} returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise MalformedResponseError(
                f"{self.name} returned {type(data).__name__}, expected an object"
            )
        return data


# ---------------------------------------------------------------------------
# Parameter extraction: each field falls back to its own default
# ---------------------------------------------------------------------------

def param_str(params: dict[str, Any], *keys: str, default: str | None = None) -> str | None:
    for key in keys:
        value = params.get(key)
        if isinstance(value, str):
            return value
    return default


def param_int(params: dict[str, Any], *keys: str, default: int) -> int:
    for key in keys:
        value = params.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
    return default


def param_float(params: dict[str, Any], *keys: str, default: float) -> float:
    for key in keys:
        value = params.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return default


def param_bool(params: dict[str, Any], *keys: str, default: bool = False) -> bool:
    for key in keys:
        value = params.get(key)
        if isinstance(value, bool):
            return value
    return default
