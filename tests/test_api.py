import json
from types import SimpleNamespace

import httpx
import pytest

from audio_export.api.v1 import audio as audio_api
from audio_export.auth.supabase_auth import verify_jwt
from audio_export.main import app
from fakes import FakeSynthesizer, paragraphs

JOBS_URL = "/api/v1/audio/jobs"


def as_user(user_id: str):
    async def _user():
        return SimpleNamespace(id=user_id)

    return _user


@pytest.fixture
def scheduler(make_scheduler):
    scheduler = make_scheduler()
    audio_api.set_dispatcher(scheduler)
    app.dependency_overrides[verify_jwt] = as_user("user-1")
    yield scheduler
    app.dependency_overrides.clear()
    audio_api.set_dispatcher(None)


@pytest.fixture
async def client():
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def book_payload(**overrides):
    payload = {
        "title": "My Book",
        "chapters": [
            {"title": "One", "content": paragraphs("A", 8)},
            {"title": "Two", "content": paragraphs("B", 3)},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.mark.anyio
async def test_start_job_returns_202(client, scheduler):
    response = await client.post(JOBS_URL, json=book_payload())

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "pending"
    assert body["job_id"]
    await scheduler.wait(body["job_id"])


@pytest.mark.anyio
@pytest.mark.parametrize(
    "overrides",
    [
        {"title": ""},
        {"title": "   "},
        {"title": None},
        {"title": 42},
        {"chapters": []},
        {"chapters": None},
    ],
)
async def test_start_job_rejects_bad_input(client, scheduler, overrides):
    response = await client.post(JOBS_URL, json=book_payload(**overrides))

    assert response.status_code == 400
    assert len(scheduler.active_job_ids()) == 0


@pytest.mark.anyio
async def test_missing_token_is_unauthorized(client, scheduler):
    app.dependency_overrides.clear()

    response = await client.post(JOBS_URL, json=book_payload())
    assert response.status_code == 401


@pytest.mark.anyio
async def test_dispatcher_not_ready(client):
    app.dependency_overrides[verify_jwt] = as_user("user-1")
    try:
        response = await client.post(JOBS_URL, json=book_payload())
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 503


@pytest.mark.anyio
async def test_status_and_download(client, scheduler):
    job_id = (await client.post(JOBS_URL, json=book_payload())).json()["job_id"]
    await scheduler.wait(job_id)

    status = await client.get(f"{JOBS_URL}/{job_id}")
    assert status.status_code == 200
    assert status.json() == {
        "id": job_id,
        "status": "completed",
        "progress": 100,
        "message": "Audio generation complete.",
        "error": None,
    }

    result = await client.get(f"{JOBS_URL}/{job_id}/result")
    assert result.status_code == 200
    assert result.headers["content-type"] == "audio/mpeg"
    assert "final_my_book.mp3" in result.headers["content-disposition"]
    assert result.content.startswith(b"<c0s0>")


@pytest.mark.anyio
async def test_unknown_job_is_404(client, scheduler):
    response = await client.get(f"{JOBS_URL}/does-not-exist")
    assert response.status_code == 404


@pytest.mark.anyio
async def test_other_users_job_is_404(client, scheduler):
    job_id = (await client.post(JOBS_URL, json=book_payload())).json()["job_id"]
    await scheduler.wait(job_id)

    app.dependency_overrides[verify_jwt] = as_user("someone-else")
    assert (await client.get(f"{JOBS_URL}/{job_id}")).status_code == 404
    assert (await client.get(f"{JOBS_URL}/{job_id}/result")).status_code == 404


@pytest.mark.anyio
async def test_result_of_failed_job_is_400(client, make_scheduler):
    failing = make_scheduler(synthesizer=FakeSynthesizer(fail_on={(0, 1)}))
    audio_api.set_dispatcher(failing)
    app.dependency_overrides[verify_jwt] = as_user("user-1")
    try:
        job_id = (await client.post(JOBS_URL, json=book_payload())).json()["job_id"]
        await failing.wait(job_id)
        response = await client.get(f"{JOBS_URL}/{job_id}/result")
    finally:
        app.dependency_overrides.clear()
        audio_api.set_dispatcher(None)

    assert response.status_code == 400
    assert "Chapter 1, Section 2" in response.json()["detail"]


@pytest.mark.anyio
async def test_result_before_completion_is_400(client, scheduler):
    record = await scheduler._store.create("user-1", title="Pending")

    response = await client.get(f"{JOBS_URL}/{record.id}/result")
    assert response.status_code == 400
    assert "not completed" in response.json()["detail"]


@pytest.mark.anyio
async def test_result_file_missing_is_404(client, scheduler):
    job_id = (await client.post(JOBS_URL, json=book_payload())).json()["job_id"]
    record = await scheduler.wait(job_id)
    scheduler._temp_store.remove_job_dir(record.id)

    response = await client.get(f"{JOBS_URL}/{job_id}/result")
    assert response.status_code == 404


@pytest.mark.anyio
async def test_events_stream_ends_on_terminal_state(client, scheduler):
    job_id = (await client.post(JOBS_URL, json=book_payload())).json()["job_id"]
    await scheduler.wait(job_id)

    events = []
    async with client.stream("GET", f"{JOBS_URL}/{job_id}/events") as response:
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        async for line in response.aiter_lines():
            if line.startswith("data: "):
                events.append(json.loads(line[len("data: "):]))

    assert events[-1]["status"] == "completed"
    assert scheduler.reporter.subscriber_count(job_id) == 0


@pytest.mark.anyio
async def test_health(client):
    for path in ("/health", "/api/v1/health"):
        response = await client.get(path)
        assert response.status_code == 200
        body = response.json()
        assert body["status"] in ("healthy", "degraded")
        assert "ffmpeg_available" in body
