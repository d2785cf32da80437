"""Job / scene persistence used by the job processor and the generation API."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from promptcraft.database import async_session_factory
from promptcraft.models import TERMINAL_STATUSES, Job, JobStatus, Scene, Workflow
from promptcraft.models.job import utcnow
from promptcraft.services.generation.errors import RecordNotFoundError, StorageError

logger = logging.getLogger(__name__)


class JobStore:
    """Thin async repository over the jobs and scenes tables.

    Every call runs in its own session and commits before returning, so the
    processor never holds a transaction open across a provider call.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or async_session_factory

    @asynccontextmanager
    async def _session(self, action: str) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise StorageError(f"Failed to {action}: {e}") from e

    async def create_job(
        self,
        workflow_id: str,
        data: dict[str, Any],
        scene_id: str | None = None,
        job_type: str = "generation",
    ) -> Job:
        """Insert a pending job; the workflow and scene it references must exist."""
        async with self._session("create job") as session:
            if await session.get(Workflow, workflow_id) is None:
                raise RecordNotFoundError(f"Workflow not found: {workflow_id}")
            if scene_id is not None and await session.get(Scene, scene_id) is None:
                raise RecordNotFoundError(f"Scene not found: {scene_id}")

            job = Job(
                workflow_id=workflow_id,
                scene_id=scene_id,
                type=job_type,
                status=JobStatus.PENDING.value,
                data=data,
            )
            session.add(job)
            await session.flush()
            await session.refresh(job)
        logger.info("Created job %s for workflow %s", job.id, workflow_id)
        return job

    async def get_job(self, job_id: str) -> Job | None:
        async with self._session("load job") as session:
            return await session.get(Job, job_id)

    async def list_jobs(self, workflow_id: str) -> list[Job]:
        """Jobs of one workflow, newest first."""
        async with self._session("list jobs") as session:
            rows = await session.execute(
                select(Job)
                .where(Job.workflow_id == workflow_id)
                .order_by(Job.created_at.desc())
            )
            return list(rows.scalars().all())

    async def fetch_pending(self, limit: int) -> list[Job]:
        """Oldest pending jobs first."""
        async with self._session("fetch pending jobs") as session:
            rows = await session.execute(
                select(Job)
                .where(Job.status == JobStatus.PENDING.value)
                .order_by(Job.created_at.asc())
                .limit(limit)
            )
            return list(rows.scalars().all())

    async def update_job(
        self,
        job_id: str,
        status: str | None = None,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> Job | None:
        """Apply a status transition.

        ``started_at`` is stamped on the first move to running only;
        ``completed_at`` on any move to a terminal status.
        """
        async with self._session("update job") as session:
            job = await session.get(Job, job_id)
            if job is None:
                logger.warning("update_job: job %s not found", job_id)
                return None

            now = utcnow()
            if status is not None:
                job.status = status
                if status == JobStatus.RUNNING.value and job.started_at is None:
                    job.started_at = now
                if status in TERMINAL_STATUSES:
                    job.completed_at = now
            if result is not None:
                job.result = result
            if error is not None:
                job.error = error
            return job

    async def update_scene_thumbnail(self, scene_id: str, value: str) -> None:
        async with self._session("update scene thumbnail") as session:
            scene = await session.get(Scene, scene_id)
            if scene is None:
                raise RecordNotFoundError(f"Scene not found: {scene_id}")
            scene.thumbnail = value
