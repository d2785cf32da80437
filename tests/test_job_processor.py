import asyncio
import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest

from promptcraft.services.generation.polling import PollPolicy
from promptcraft.services.generation.providers import GoogleConfig, GoogleProvider
from promptcraft.services.generation.service import GenerationService
from promptcraft.services.job_processor import JobProcessor, parse_job_data
from promptcraft.services.generation.errors import InvalidParametersError, StorageError


@dataclass
class FakeJob:
    id: str
    data: Any
    scene_id: str | None = None
    status: str = "pending"
    result: dict | None = None
    error: str | None = None
    transitions: list[str] = field(default_factory=list)


class FakeStore:
    """In-memory stand-in for JobStore."""

    def __init__(self, jobs=(), *, fail_fetch=0, fail_thumbnail=False):
        self.jobs = {job.id: job for job in jobs}
        self.thumbnails: dict[str, str] = {}
        self.fetch_calls = 0
        self._fail_fetch = fail_fetch
        self._fail_thumbnail = fail_thumbnail

    async def fetch_pending(self, limit):
        self.fetch_calls += 1
        if self._fail_fetch:
            self._fail_fetch -= 1
            raise StorageError("database is locked")
        return [job for job in self.jobs.values() if job.status == "pending"][:limit]

    async def update_job(self, job_id, status=None, result=None, error=None):
        job = self.jobs[job_id]
        if status is not None:
            job.status = status
            job.transitions.append(status)
        if result is not None:
            job.result = result
        if error is not None:
            job.error = error
        return job

    async def update_scene_thumbnail(self, scene_id, value):
        if self._fail_thumbnail:
            raise StorageError(f"Scene not found: {scene_id}")
        self.thumbnails[scene_id] = value


def _a1111_service(tmp_path, mock_client):
    image = base64.b64encode(b"PNGDATA").decode()
    client, recorder = mock_client(lambda request: httpx.Response(200, json={"images": [image]}))
    service = GenerationService(media_dir=tmp_path / "media", http_client=client)
    service.configure_local_provider("a1111", "http://sd.local:7860")
    return service, recorder


def test_parse_job_data_accepts_json_string():
    provider, request = parse_job_data(json.dumps({"provider": "a1111", "prompt": "a cat"}))
    assert provider == "a1111"
    assert request.prompt == "a cat"
    assert request.model == "default"
    assert request.parameters == {}


@pytest.mark.parametrize(
    "data, message",
    [
        ({"prompt": "a cat"}, "Missing provider"),
        ({"provider": "a1111"}, "Missing prompt"),
        ("{not json", "Invalid job data"),
        (["a1111"], "Invalid job data"),
    ],
)
def test_parse_job_data_rejects(data, message):
    with pytest.raises(InvalidParametersError, match=message):
        parse_job_data(data)


@pytest.mark.asyncio
async def test_a1111_job_completes_and_updates_thumbnail(tmp_path, mock_client):
    service, recorder = _a1111_service(tmp_path, mock_client)
    job = FakeJob(
        id="job-1",
        scene_id="scene-1",
        data={"provider": "a1111", "prompt": "a cat", "parameters": {"steps": 12}},
    )
    store = FakeStore([job])

    await JobProcessor(store, service).process_pending_jobs()

    assert job.transitions == ["running", "completed"]
    assert job.error is None
    assert job.result["output_data"] is None
    assert job.result["metadata"]["normalized"] is True
    assert job.result["output_url"].startswith("file://")
    with open(job.result["file_path"], "rb") as f:
        assert f.read() == b"PNGDATA"
    assert store.thumbnails == {"scene-1": job.result["output_url"]}
    assert json.loads(recorder.requests[0].content)["steps"] == 12


@pytest.mark.asyncio
async def test_job_without_prompt_fails(tmp_path, mock_client):
    service, recorder = _a1111_service(tmp_path, mock_client)
    job = FakeJob(id="job-2", scene_id="scene-1", data={"provider": "a1111"})
    store = FakeStore([job])

    await JobProcessor(store, service).process_job(job)

    assert job.transitions == ["running", "failed"]
    assert "Missing prompt" in job.error
    assert store.thumbnails == {}
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_provider_error_marks_job_failed(tmp_path):
    service = GenerationService(media_dir=tmp_path)
    service.configure_provider("openai", "sk")
    job = FakeJob(id="job-3", data={"provider": "openai", "prompt": "x", "model": "dall-e-1"})
    store = FakeStore([job])

    await JobProcessor(store, service).process_job(job)

    assert job.status == "failed"
    assert job.error.startswith("Unsupported openai model: dall-e-1")


@pytest.mark.asyncio
async def test_veo_job_fails_when_operation_reports_error(tmp_path, mock_client):
    operation = "models/veo-3.1-generate-preview/operations/op-3"
    polls = [{"name": operation, "done": False}] * 5 + [
        {"name": operation, "done": True, "error": {"message": "quota hit"}},
    ]

    def handler(request):
        if request.method == "POST":
            return httpx.Response(200, json={"name": operation})
        return httpx.Response(200, json=polls.pop(0))

    client, recorder = mock_client(handler)
    service = GenerationService(media_dir=tmp_path / "media", http_client=client)
    service.register_provider(GoogleProvider(
        GoogleConfig(api_key="gk"),
        http_client=client,
        poll_policy=PollPolicy(initial_delay=0, increment=0, max_delay=0, max_attempts=10),
    ))
    job = FakeJob(
        id="job-veo",
        scene_id="scene-1",
        data={"provider": "google", "prompt": "a cat running", "model": "veo-3.1-generate-preview"},
    )
    store = FakeStore([job])

    await JobProcessor(store, service).process_pending_jobs()

    assert job.transitions == ["running", "failed"]
    assert job.error == "Veo generation failed: quota hit"
    assert job.result is None
    assert store.thumbnails == {}
    assert len(recorder.requests) == 7


@pytest.mark.asyncio
async def test_one_failing_job_does_not_stop_the_batch(tmp_path, mock_client):
    service, _ = _a1111_service(tmp_path, mock_client)
    bad = FakeJob(id="job-bad", data={"provider": "nope", "prompt": "x"})
    good = FakeJob(id="job-good", data={"provider": "a1111", "prompt": "x"})
    store = FakeStore([bad, good])

    await JobProcessor(store, service).process_pending_jobs()

    assert bad.status == "failed"
    assert bad.error == "Provider not found: nope"
    assert good.status == "completed"


@pytest.mark.asyncio
async def test_thumbnail_failure_is_logged_not_fatal(tmp_path, mock_client, caplog):
    service, _ = _a1111_service(tmp_path, mock_client)
    job = FakeJob(id="job-4", scene_id="gone", data={"provider": "a1111", "prompt": "x"})
    store = FakeStore([job], fail_thumbnail=True)

    with caplog.at_level(logging.WARNING):
        await JobProcessor(store, service).process_job(job)

    assert job.status == "completed"
    assert "Failed to update thumbnail of scene gone" in caplog.text


@pytest.mark.asyncio
async def test_fetch_failure_is_logged_and_loop_continues(tmp_path, mock_client, caplog):
    service, _ = _a1111_service(tmp_path, mock_client)
    job = FakeJob(id="job-5", data={"provider": "a1111", "prompt": "x"})
    store = FakeStore([job], fail_fetch=1)
    processor = JobProcessor(store, service, poll_interval=0.01)

    with caplog.at_level(logging.ERROR):
        await processor.start()
        for _ in range(200):
            if job.status == "completed":
                break
            await asyncio.sleep(0.01)
        await processor.stop()

    assert "Error fetching pending jobs" in caplog.text
    assert store.fetch_calls >= 2
    assert job.status == "completed"


@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_waits(tmp_path):
    store = FakeStore()
    processor = JobProcessor(store, GenerationService(media_dir=tmp_path), poll_interval=0.01)

    await processor.start()
    task = processor._task
    await processor.start()
    assert processor._task is task
    assert processor.running

    await processor.stop()
    assert task.done()
    assert not processor.running

    # Restartable after a stop
    await processor.start()
    assert processor.running
    await processor.stop()


@pytest.mark.asyncio
async def test_stop_without_start_is_noop(tmp_path):
    processor = JobProcessor(FakeStore(), GenerationService(media_dir=tmp_path))
    await processor.stop()
    assert not processor.running
