"""HTTP surface and runtime wiring."""

import asyncio
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from media_jobs.api.v1 import health as health_api
from media_jobs.api.v1 import jobs as jobs_api
from media_jobs.errors import ConfigurationError
from media_jobs.jobs.models import JobKind
from media_jobs.main import app
from media_jobs.runtime import build_runtime

from fakes import make_settings


@pytest.fixture
def supabase():
    return MagicMock()


@pytest.fixture
def runtime(supabase):
    runtime = build_runtime(make_settings(), client=supabase)
    health_api.set_runtime(runtime)
    jobs_api.set_runtime(runtime)
    yield runtime
    health_api.set_runtime(None)
    jobs_api.set_runtime(None)


@pytest.fixture
def client(runtime):
    # No context manager: the lifespan (and its real Supabase client) is not run
    return TestClient(app)


def _select(supabase):
    return supabase.table.return_value.select.return_value.eq.return_value.limit.return_value.execute


def test_submit_queues_job(client, runtime):
    response = client.post("/api/v1/jobs/face-swap", json={
        "jobId": "J1",
        "userId": "U1",
        "sourceImageUrl": "https://uploads.example.test/selfie.jpg",
        "templateId": "T1",
    })

    assert response.status_code == 202
    body = response.json()
    assert body["job_id"] == "J1"
    assert body["kind"] == "face-swap"
    assert runtime.queues[JobKind.FACE_SWAP].stats()["waiting"] == 1


def test_submit_rejects_invalid_payload(client, runtime):
    response = client.post("/api/v1/jobs/slideshow-card", json={"jobId": "S1"})

    assert response.status_code == 422
    assert runtime.queues[JobKind.SLIDESHOW_CARD].stats()["waiting"] == 0


def test_unknown_kind_is_rejected(client):
    response = client.post("/api/v1/jobs/karaoke", json={})

    assert response.status_code == 422


def test_status_readout(client, supabase):
    _select(supabase).return_value = MagicMock(data=[
        {"job_id": "J1", "status": "compositing_final_video", "error_message": None},
    ])

    response = client.get("/api/v1/jobs/ai-video-card/J1")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "compositing_final_video"
    supabase.table.assert_called_with("my_cards")


def test_status_of_unknown_job_is_404(client, supabase):
    _select(supabase).return_value = MagicMock(data=[])

    assert client.get("/api/v1/jobs/face-swap/nope").status_code == 404


def test_health_reports_every_queue(client):
    body = client.get("/health").json()

    assert set(body["queues"]) == {"face-swap", "ai-video-card", "slideshow-card", "notification-processing"}
    assert body["queues"]["face-swap"]["concurrency"] == 5


def test_runtime_requires_every_pipeline_setting(supabase):
    runtime = build_runtime(make_settings(segmind_api_key="", bucket_music=""), client=supabase)

    with pytest.raises(ConfigurationError) as exc:
        runtime.verify()

    assert set(exc.value.missing) == {"segmind_api_key", "bucket_music"}


def test_runtime_starts_and_stops(supabase):
    runtime = build_runtime(make_settings(shutdown_grace_seconds=5), client=supabase)
    runtime.verify()

    async def scenario():
        await runtime.start()
        assert runtime.started
        await runtime.stop()

    asyncio.run(scenario())
    assert not runtime.started
