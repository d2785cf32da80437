"""Pydantic schemas package."""

from promptcraft.schemas.generation import (
    CallAIRequest,
    ConfigureLocalProviderRequest,
    ConfigureProviderRequest,
    DirectGenerationRequest,
    GenerationRequest,
    GenerationResult,
    JobRead,
    ProviderInfo,
    SubmitGenerationRequest,
)

__all__ = [
    "CallAIRequest",
    "ConfigureLocalProviderRequest",
    "ConfigureProviderRequest",
    "DirectGenerationRequest",
    "GenerationRequest",
    "GenerationResult",
    "JobRead",
    "ProviderInfo",
    "SubmitGenerationRequest",
]
