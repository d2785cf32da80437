"""Pydantic v2 schemas for generation requests, results and job records."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class GenerationRequest(BaseModel):
    """Normalized request handed to a provider.

    ``parameters`` stays a loose dict on purpose: every provider reads its own
    knobs from it and applies its own per-field defaults.
    """

    prompt: str
    model: str = "default"
    parameters: dict[str, Any] = Field(default_factory=dict)


class GenerationResult(BaseModel):
    """Normalized provider output."""

    output_url: str | None = None
    output_data: str | None = None
    file_path: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------

class SubmitGenerationRequest(BaseModel):
    """Schema for queuing a generation job."""

    workflow_id: str
    scene_id: str | None = None
    provider: str
    prompt: str
    model: str = "default"
    parameters: dict[str, Any] = Field(default_factory=dict)


class DirectGenerationRequest(BaseModel):
    """Schema for a synchronous generate call."""

    provider: str
    prompt: str
    model: str = "default"
    parameters: dict[str, Any] = Field(default_factory=dict)


class ConfigureProviderRequest(BaseModel):
    api_key: str


class ConfigureLocalProviderRequest(BaseModel):
    api_url: str


class CallAIRequest(BaseModel):
    """Schema for the one-shot text helper (prompt enhancement etc.)."""

    provider: str
    model: str
    prompt: str
    max_tokens: int | None = None
    temperature: float | None = None


class ProviderInfo(BaseModel):
    name: str
    available: bool


class JobRead(BaseModel):
    """Schema for reading a job."""

    id: str
    workflow_id: str
    scene_id: str | None = None
    type: str
    status: str
    data: dict[str, Any]
    result: dict[str, Any] | None = None
    error: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    model_config = {"from_attributes": True}
