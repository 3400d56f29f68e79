import asyncio

import fakeredis
import fakeredis.aioredis
import pytest
from rq import Queue

import renderspace.container
from renderspace.config import config
from renderspace.container import build_services
from renderspace.database.jobs import RenderJobNotFoundError, RenderJobService
from renderspace.queue.connection import queue_counts
from renderspace.queue.tasks import (
    enqueue_render_job,
    execute_render_task,
    rq_job_id,
    trim_failed_registry,
)

from conftest import ACCOUNT_ID, OWNER_ID, FakeSupabase, StubGeneration, StubStorage


@pytest.fixture
def task_env(monkeypatch):
    """Point the task's service graph at in-memory fakes."""
    db = FakeSupabase()
    db.add_account(ACCOUNT_ID, credits=1, members=[OWNER_ID])
    storage = StubStorage()
    connection = fakeredis.FakeStrictRedis()

    def fake_build_services(cfg):
        return build_services(
            cfg,
            redis_client=fakeredis.aioredis.FakeRedis(decode_responses=True),
            queue_connection=connection,
            supabase_client=db,
            generation=StubGeneration(),
            storage=storage,
        )

    monkeypatch.setattr(renderspace.container, "build_services", fake_build_services)
    return db, storage, connection


def _create_job(db):
    return asyncio.run(RenderJobService(db).create(
        owner_id=OWNER_ID,
        account_id=ACCOUNT_ID,
        title="Living room",
        room_type="living room",
        lighting="natural",
        input_image_url="https://img.example.com/collage.png",
    ))


def test_enqueue_sets_timeout_retry_and_retention(queue):
    rq_job = enqueue_render_job(queue, "job-1")

    assert rq_job.id == rq_job_id("job-1") == "render_job-1"
    assert list(rq_job.args) == ["job-1"]
    assert rq_job.timeout == config.QUEUE_JOB_TIMEOUT_SECONDS
    assert rq_job.retries_left == config.QUEUE_MAX_ATTEMPTS - 1
    assert rq_job.result_ttl == config.QUEUE_KEEP_COMPLETED_SECONDS
    assert rq_job.failure_ttl == config.QUEUE_KEEP_FAILED_SECONDS
    assert queue_counts(queue) == {"waiting": 1, "active": 0, "completed": 0, "failed": 0}


def test_task_runs_render_to_completion(task_env):
    db, storage, connection = task_env
    job = _create_job(db)
    queue = Queue("renders-sync", connection=connection, is_async=False)

    rq_job = enqueue_render_job(queue, job.id)

    assert rq_job.is_finished
    row = db.job_row(job.id)
    assert row["status"] == "completed"
    assert row["credit_deducted"] is True
    assert f"{job.id}.png" in storage.uploads
    assert db.account(ACCOUNT_ID)["credits"] == 0


def test_task_on_terminal_job_is_skipped(task_env):
    db, storage, connection = task_env
    job = _create_job(db)

    first = execute_render_task(job.id)
    second = execute_render_task(job.id)

    assert first == {"success": True, "status": "completed", "error": None, "skipped": False}
    assert second["skipped"] is True
    assert len(db.tables["credit_transactions"]) == 1


def test_task_reraises_when_job_cannot_be_loaded(task_env):
    # RQ retries the attempt, then moves it to the failed registry
    with pytest.raises(RenderJobNotFoundError):
        execute_render_task("missing-job")


def test_trim_keeps_newest_failures(queue):
    registry = queue.failed_job_registry
    for n, ttl in ((1, 100), (2, 200), (3, 300)):
        rq_job = enqueue_render_job(queue, f"job-{n}")
        registry.add(rq_job, ttl=ttl, exc_string="boom")

    removed = trim_failed_registry(queue, keep=1)

    assert removed == 2
    assert registry.get_job_ids() == ["render_job-3"]
    assert queue.fetch_job("render_job-1") is None


def test_trim_under_the_cap_is_a_noop(queue):
    rq_job = enqueue_render_job(queue, "job-1")
    queue.failed_job_registry.add(rq_job, ttl=100, exc_string="boom")

    assert trim_failed_registry(queue, keep=5) == 0
    assert queue.failed_job_registry.count == 1
