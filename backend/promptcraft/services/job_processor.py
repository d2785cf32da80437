"""Background job processor.

One asyncio task polls the store for pending jobs and runs them one at a
time through the generation service:

    pending -> running -> completed | failed

A failure inside a job only ever marks that job failed; it never stops the
loop. A failure fetching the batch is logged and retried next cycle.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from promptcraft.models import Job, JobStatus
from promptcraft.schemas.generation import GenerationRequest
from promptcraft.services.generation.errors import InvalidParametersError
from promptcraft.services.generation.service import GenerationService
from promptcraft.services.job_store import JobStore

logger = logging.getLogger(__name__)


def parse_job_data(data: Any) -> tuple[str, GenerationRequest]:
    """Turn a job's ``data`` document (dict or JSON string) into a provider name and request."""
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise InvalidParametersError(f"Invalid job data: {e}") from e
    if not isinstance(data, dict):
        raise InvalidParametersError("Invalid job data: expected an object")

    provider = data.get("provider")
    if not isinstance(provider, str) or not provider:
        raise InvalidParametersError("Missing provider in job data")
    prompt = data.get("prompt")
    if not isinstance(prompt, str):
        raise InvalidParametersError("Missing prompt in job data")

    model = data.get("model")
    parameters = data.get("parameters")
    return provider, GenerationRequest(
        prompt=prompt,
        model=model if isinstance(model, str) and model else "default",
        parameters=parameters if isinstance(parameters, dict) else {},
    )


class JobProcessor:
    """Advances pending jobs in FIFO order, ``batch_size`` per cycle."""

    def __init__(
        self,
        store: JobStore,
        service: GenerationService,
        batch_size: int = 10,
        poll_interval: float = 5.0,
    ) -> None:
        self.store = store
        self.service = service
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the loop task; a no-op while it is already running."""
        if self.running:
            logger.debug("Job processor already running")
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="job-processor")
        logger.info(
            "Job processor started (batch_size=%d, interval=%.1fs)", self.batch_size, self.poll_interval,
        )

    async def stop(self) -> None:
        """Ask the loop to exit after its current cycle and wait for it."""
        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("Job processor stopped")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            await self.process_pending_jobs()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

    async def process_pending_jobs(self) -> None:
        """Run one cycle over the oldest pending jobs."""
        try:
            jobs = await self.store.fetch_pending(self.batch_size)
        except Exception as e:
            logger.error("Error fetching pending jobs: %s", e)
            return

        if jobs:
            logger.info("Processing %d pending job(s)", len(jobs))
        for job in jobs:
            await self.process_job(job)

    async def process_job(self, job: Job) -> None:
        """Run a single job to a terminal status. Never raises."""
        try:
            await self.store.update_job(job.id, status=JobStatus.RUNNING.value)
        except Exception as e:
            logger.error("Failed to mark job %s running: %s", job.id, e)
            return

        try:
            provider, request = parse_job_data(job.data)
            result = await self.service.generate(provider, request)
        except Exception as e:
            logger.error("Job %s failed: %s", job.id, e)
            try:
                await self.store.update_job(job.id, status=JobStatus.FAILED.value, error=str(e))
            except Exception as store_error:
                logger.error("Failed to record failure of job %s: %s", job.id, store_error)
            return

        try:
            await self.store.update_job(
                job.id, status=JobStatus.COMPLETED.value, result=result.model_dump(),
            )
        except Exception as e:
            logger.error("Failed to record result of job %s: %s", job.id, e)
            return
        logger.info("Job %s completed", job.id)

        if job.scene_id:
            thumbnail = result.output_url or result.output_data
            if thumbnail:
                try:
                    await self.store.update_scene_thumbnail(job.scene_id, thumbnail)
                except Exception as e:
                    logger.warning("Failed to update thumbnail of scene %s: %s", job.scene_id, e)
