"""Structured generation errors.

Every failure a provider, the poller or the generation service can raise is a
``GenerationError`` subclass, so callers can tell which stage failed while the
job processor can still store ``str(exc)`` as the human-readable reason.
"""

from __future__ import annotations

from collections.abc import Iterable


class GenerationError(Exception):
    """Base class for all generation-layer failures."""


class NotConfiguredError(GenerationError):
    """The provider has no credentials / endpoint configured."""

    def __init__(self, provider: str, what: str = "API key"):
        super().__init__(f"{provider} {what} not configured")
        self.provider = provider


class UnknownProviderError(GenerationError):
    """configure_* was called with a name outside the closed provider set."""

    def __init__(self, name: str, kind: str = "provider"):
        super().__init__(f"Unknown {kind}: {name}")
        self.name = name


class ProviderNotFoundError(GenerationError):
    """generate() was called for a name that is not registered."""

    def __init__(self, name: str):
        super().__init__(f"Provider not found: {name}")
        self.name = name


class UnsupportedModelError(GenerationError):
    """The request's model is not one the provider can route."""

    def __init__(self, provider: str, model: str, supported: Iterable[str]):
        self.provider = provider
        self.model = model
        self.supported = list(supported)
        super().__init__(
            f"Unsupported {provider} model: {model}. "
            f"Supported models: {', '.join(self.supported)}"
        )


class InvalidParametersError(GenerationError):
    """A required request parameter is missing or unusable."""


class RemoteError(GenerationError):
    """The remote service answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str, provider: str = "remote"):
        super().__init__(f"{provider} API error ({status_code}): {body}")
        self.status_code = status_code
        self.body = body
        self.provider = provider


class OperationFailedError(RemoteError):
    """A long-running operation finished with an embedded error object."""

    def __init__(self, message: str, provider: str = "remote"):
        GenerationError.__init__(self, f"{provider} generation failed: {message}")
        self.status_code = 0
        self.body = message
        self.provider = provider


class TransportError(RemoteError):
    """The remote service could not be reached or the connection dropped."""

    def __init__(self, provider: str, cause: Exception):
        GenerationError.__init__(self, f"{provider} request failed: {cause}")
        self.status_code = 0
        self.body = str(cause)
        self.provider = provider


class MalformedResponseError(GenerationError):
    """The response parsed but lacks the fields we need."""


class GenerationTimeoutError(GenerationError):
    """A long-running operation did not finish within its attempt budget."""


class DecodeError(GenerationError, ValueError):
    """A data URL or base64 payload could not be parsed."""


class StorageError(GenerationError):
    """The persistence layer failed."""


class RecordNotFoundError(StorageError):
    """A referenced workflow, scene or job row does not exist."""
