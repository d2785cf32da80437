"""Generation core: provider contract, polling, reference media and the service."""

from promptcraft.services.generation.base import GenerationProvider
from promptcraft.services.generation.errors import (
    DecodeError,
    GenerationError,
    GenerationTimeoutError,
    InvalidParametersError,
    MalformedResponseError,
    NotConfiguredError,
    OperationFailedError,
    ProviderNotFoundError,
    RecordNotFoundError,
    RemoteError,
    StorageError,
    TransportError,
    UnknownProviderError,
    UnsupportedModelError,
)
from promptcraft.services.generation.service import GenerationService, create_default_service

__all__ = [
    "DecodeError",
    "GenerationError",
    "GenerationProvider",
    "GenerationService",
    "GenerationTimeoutError",
    "InvalidParametersError",
    "MalformedResponseError",
    "NotConfiguredError",
    "OperationFailedError",
    "ProviderNotFoundError",
    "RecordNotFoundError",
    "RemoteError",
    "StorageError",
    "TransportError",
    "UnknownProviderError",
    "UnsupportedModelError",
    "create_default_service",
]
