"""Generation API — job submission, provider configuration and direct generation."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

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
from promptcraft.services.generation.errors import (
    GenerationError,
    GenerationTimeoutError,
    InvalidParametersError,
    MalformedResponseError,
    NotConfiguredError,
    ProviderNotFoundError,
    RecordNotFoundError,
    RemoteError,
    StorageError,
    UnknownProviderError,
    UnsupportedModelError,
)
from promptcraft.services.generation.service import GenerationService
from promptcraft.services.job_store import JobStore

logger = logging.getLogger(__name__)

router = APIRouter()


def get_generation_service(request: Request) -> GenerationService:
    return request.app.state.generation_service


def get_job_store(request: Request) -> JobStore:
    return request.app.state.job_store


def _http_status(exc: GenerationError) -> int:
    if isinstance(exc, ProviderNotFoundError):
        return 404
    if isinstance(exc, (UnsupportedModelError, NotConfiguredError, InvalidParametersError, UnknownProviderError)):
        return 400
    if isinstance(exc, GenerationTimeoutError):
        return 504
    if isinstance(exc, (RemoteError, MalformedResponseError)):
        return 502
    return 500


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

@router.post("/jobs", response_model=JobRead, status_code=201)
async def submit_generation(
    data: SubmitGenerationRequest,
    store: JobStore = Depends(get_job_store),
):
    """Queue a generation job for the background processor."""
    try:
        return await store.create_job(
            data.workflow_id,
            {
                "provider": data.provider,
                "prompt": data.prompt,
                "model": data.model,
                "parameters": data.parameters,
            },
            scene_id=data.scene_id,
        )
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/jobs", response_model=list[JobRead])
async def list_jobs(
    workflow_id: str,
    store: JobStore = Depends(get_job_store),
):
    """List jobs of a workflow, newest first."""
    try:
        return await store.list_jobs(workflow_id)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/jobs/{job_id}", response_model=JobRead)
async def get_job(
    job_id: str,
    store: JobStore = Depends(get_job_store),
):
    try:
        job = await store.get_job(job_id)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

@router.get("/providers", response_model=list[ProviderInfo])
async def list_providers(service: GenerationService = Depends(get_generation_service)):
    """List registered providers and whether each one is configured."""
    infos = []
    for name in service.list_providers():
        provider = service.get_provider(name)
        infos.append(ProviderInfo(name=name, available=provider is not None and provider.is_available()))
    return infos


@router.get("/providers/{name}/schema")
async def get_provider_schema(
    name: str,
    service: GenerationService = Depends(get_generation_service),
) -> dict[str, Any]:
    provider = service.get_provider(name)
    if provider is None:
        raise HTTPException(status_code=404, detail=f"Provider not found: {name}")
    return provider.config_schema()


@router.put("/providers/{name}", response_model=ProviderInfo)
async def configure_provider(
    name: str,
    data: ConfigureProviderRequest,
    service: GenerationService = Depends(get_generation_service),
):
    """Configure an API-key provider (openai, google, grok, anthropic)."""
    try:
        service.configure_provider(name, data.api_key)
    except UnknownProviderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ProviderInfo(name=name, available=True)


@router.put("/providers/{name}/local", response_model=ProviderInfo)
async def configure_local_provider(
    name: str,
    data: ConfigureLocalProviderRequest,
    service: GenerationService = Depends(get_generation_service),
):
    """Point a local tool provider (a1111, comfyui, invokeai) at its API URL."""
    try:
        service.configure_local_provider(name, data.api_url)
    except UnknownProviderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ProviderInfo(name=name, available=True)


# ---------------------------------------------------------------------------
# Direct generation
# ---------------------------------------------------------------------------

@router.post("/generate", response_model=GenerationResult)
async def generate(
    data: DirectGenerationRequest,
    service: GenerationService = Depends(get_generation_service),
):
    """Run a generation synchronously, bypassing the job queue."""
    request = GenerationRequest(prompt=data.prompt, model=data.model, parameters=data.parameters)
    try:
        return await service.generate(data.provider, request)
    except GenerationError as e:
        logger.warning("Direct generation with %s failed: %s", data.provider, e)
        raise HTTPException(status_code=_http_status(e), detail=str(e))


@router.post("/call-ai")
async def call_ai(
    data: CallAIRequest,
    service: GenerationService = Depends(get_generation_service),
) -> dict[str, str]:
    """One-shot text helper used for prompt enhancement."""
    kwargs: dict[str, Any] = {}
    if data.max_tokens is not None:
        kwargs["max_tokens"] = data.max_tokens
    if data.temperature is not None:
        kwargs["temperature"] = data.temperature
    try:
        text = await service.call_ai(data.provider, data.model, data.prompt, **kwargs)
    except GenerationError as e:
        raise HTTPException(status_code=_http_status(e), detail=str(e))
    return {"text": text}
