from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from promptcraft.database import init_db
from promptcraft.models import Job, JobStatus, Scene, Workflow
from promptcraft.services.generation.errors import RecordNotFoundError, StorageError
from promptcraft.services.job_store import JobStore


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}")
    await init_db(engine)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        session.add(Workflow(id="wf-1", name="Storyboard"))
        await session.flush()
        session.add(Scene(id="scene-1", workflow_id="wf-1", name="Opening shot"))
        await session.commit()
    yield factory
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return JobStore(session_factory)


@pytest.mark.asyncio
async def test_create_and_get_job(store):
    job = await store.create_job("wf-1", {"provider": "a1111", "prompt": "a cat"}, scene_id="scene-1")

    loaded = await store.get_job(job.id)
    assert loaded is not None
    assert loaded.status == JobStatus.PENDING.value
    assert loaded.type == "generation"
    assert loaded.data == {"provider": "a1111", "prompt": "a cat"}
    assert loaded.scene_id == "scene-1"
    assert loaded.started_at is None and loaded.completed_at is None
    assert await store.get_job("missing") is None


@pytest.mark.asyncio
async def test_fetch_pending_is_fifo_and_limited(store, session_factory):
    base = datetime(2025, 1, 1, 12, 0, 0)
    async with session_factory() as session:
        session.add_all([
            Job(id="job-c", workflow_id="wf-1", data={}, created_at=base + timedelta(seconds=3)),
            Job(id="job-a", workflow_id="wf-1", data={}, created_at=base + timedelta(seconds=1)),
            Job(id="job-done", workflow_id="wf-1", data={}, status="completed", created_at=base),
            Job(id="job-b", workflow_id="wf-1", data={}, created_at=base + timedelta(seconds=2)),
        ])
        await session.commit()

    assert [j.id for j in await store.fetch_pending(10)] == ["job-a", "job-b", "job-c"]
    assert [j.id for j in await store.fetch_pending(2)] == ["job-a", "job-b"]
    assert [j.id for j in await store.list_jobs("wf-1")][:2] == ["job-c", "job-b"]


@pytest.mark.asyncio
async def test_started_at_is_set_once(store):
    job = await store.create_job("wf-1", {})

    first = await store.update_job(job.id, status=JobStatus.RUNNING.value)
    started = first.started_at
    assert started is not None
    assert first.completed_at is None

    second = await store.update_job(job.id, status=JobStatus.RUNNING.value)
    assert second.started_at == started


@pytest.mark.asyncio
async def test_terminal_status_sets_completed_at(store):
    job = await store.create_job("wf-1", {})
    await store.update_job(job.id, status=JobStatus.RUNNING.value)

    done = await store.update_job(job.id, status=JobStatus.FAILED.value, error="boom")

    assert done.status == "failed"
    assert done.error == "boom"
    assert done.completed_at is not None
    assert done.completed_at >= done.started_at


@pytest.mark.asyncio
async def test_update_missing_job_returns_none(store):
    assert await store.update_job("missing", status=JobStatus.RUNNING.value) is None


@pytest.mark.asyncio
async def test_scene_thumbnail(store, session_factory):
    await store.update_scene_thumbnail("scene-1", "file:///tmp/a.png")

    async with session_factory() as session:
        scene = await session.get(Scene, "scene-1")
    assert scene.thumbnail == "file:///tmp/a.png"

    with pytest.raises(StorageError, match="Scene not found"):
        await store.update_scene_thumbnail("missing", "x")


@pytest.mark.asyncio
async def test_database_errors_become_storage_errors(tmp_path):
    # No tables were created in this database
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    store = JobStore(async_sessionmaker(engine, expire_on_commit=False))
    try:
        with pytest.raises(StorageError, match="Failed to fetch pending jobs"):
            await store.fetch_pending(10)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_create_job_requires_existing_workflow_and_scene(store):
    with pytest.raises(RecordNotFoundError, match="Workflow not found: no-such-workflow"):
        await store.create_job("no-such-workflow", {"provider": "a1111", "prompt": "x"})
    with pytest.raises(RecordNotFoundError, match="Scene not found: no-such-scene"):
        await store.create_job("wf-1", {"provider": "a1111", "prompt": "x"}, scene_id="no-such-scene")

    assert await store.list_jobs("wf-1") == []
    assert await store.list_jobs("no-such-workflow") == []


@pytest.mark.asyncio
async def test_foreign_keys_are_enforced(store, session_factory):
    async with session_factory() as session:
        session.add(Job(id="orphan", workflow_id="no-such-workflow", data={}))
        with pytest.raises(IntegrityError):
            await session.commit()

    job = await store.create_job("wf-1", {}, scene_id="scene-1")
    async with session_factory() as session:
        await session.execute(delete(Scene).where(Scene.id == "scene-1"))
        await session.commit()

    loaded = await store.get_job(job.id)
    assert loaded is not None
    assert loaded.scene_id is None

    async with session_factory() as session:
        await session.execute(delete(Workflow).where(Workflow.id == "wf-1"))
        await session.commit()

    assert await store.get_job(job.id) is None
