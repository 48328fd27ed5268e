import pytest

from audio_export.jobs.models import JobStatus
from audio_export.jobs.progress import ProgressReporter
from audio_export.jobs.store import JobStore


async def make_job():
    store = JobStore()
    record = await store.create("user-1", title="Book")
    return ProgressReporter(store), store, record.id


@pytest.mark.anyio
async def test_start_moves_job_to_processing():
    reporter, store, job_id = await make_job()

    record = await reporter.start(job_id, "Fetching user settings...", progress=5)

    assert record.status == JobStatus.PROCESSING
    assert record.progress == 5
    assert record.started_at is not None


@pytest.mark.anyio
async def test_progress_never_moves_backwards():
    reporter, store, job_id = await make_job()
    await reporter.start(job_id, "go", progress=5)

    await reporter.report(job_id, 40, "halfway")
    record = await reporter.report(job_id, 20, "late straggler")

    assert record.progress == 40
    assert record.message == "late straggler"


@pytest.mark.anyio
async def test_progress_is_capped_at_100():
    reporter, store, job_id = await make_job()
    await reporter.start(job_id, "go")

    record = await reporter.report(job_id, 250)
    assert record.progress == 100


@pytest.mark.anyio
async def test_complete_then_fail_keeps_completed():
    reporter, store, job_id = await make_job()
    await reporter.start(job_id, "go")
    await reporter.complete(job_id)

    assert await reporter.fail(job_id, "too late") is None

    record = await store.get(job_id)
    assert record.status == JobStatus.COMPLETED
    assert record.progress == 100
    assert record.error is None


@pytest.mark.anyio
async def test_fail_records_error_and_message():
    reporter, store, job_id = await make_job()
    await reporter.start(job_id, "go")

    record = await reporter.fail(job_id, "provider exploded")

    assert record.status == JobStatus.FAILED
    assert record.error == "provider exploded"
    assert record.message == "Job failed: provider exploded"
    assert record.completed_at is not None


@pytest.mark.anyio
async def test_subscribers_receive_status_snapshots():
    reporter, store, job_id = await make_job()
    queue = reporter.subscribe(job_id)

    await reporter.start(job_id, "Fetching user settings...", progress=5)
    await reporter.complete(job_id)

    first = queue.get_nowait()
    second = queue.get_nowait()
    assert first == {
        "id": job_id,
        "status": "processing",
        "progress": 5,
        "message": "Fetching user settings...",
        "error": None,
    }
    assert second["status"] == "completed"
    assert second["progress"] == 100


@pytest.mark.anyio
async def test_unsubscribe_stops_delivery():
    reporter, store, job_id = await make_job()
    queue = reporter.subscribe(job_id)
    assert reporter.subscriber_count(job_id) == 1

    reporter.unsubscribe(job_id, queue)
    await reporter.start(job_id, "go")

    assert reporter.subscriber_count(job_id) == 0
    assert queue.empty()
