"""Master API router — mounts all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from promptcraft.api.generation import router as generation_router

api_router = APIRouter(prefix="/api", redirect_slashes=False)

api_router.include_router(generation_router, prefix="/generation", tags=["Generation"])
