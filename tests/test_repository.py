"""Guarded status writes against a mocked Supabase client."""

import asyncio
from unittest.mock import MagicMock

import pytest

from media_jobs.db.repository import JobRepository
from media_jobs.errors import JobOwnershipError, PersistenceError
from media_jobs.jobs.models import JobKind, JobStatus, NotificationMessage


def _result(data):
    return MagicMock(data=data)


@pytest.fixture
def client():
    return MagicMock()


def _table(client):
    return client.table.return_value


def test_claim_moves_pending_job_to_first_status(client):
    by_job = _table(client).update.return_value.eq.return_value
    by_job.eq.return_value.execute.return_value = _result([{"job_id": "J1"}])

    asyncio.run(JobRepository(client).claim(JobKind.FACE_SWAP, "J1", JobStatus.PROCESSING_ASSETS, "d1"))

    client.table.assert_called_with("faceswap_jobs")
    _table(client).update.assert_called_once_with({"status": "processing_assets", "claimed_by": "d1"})
    by_job.eq.assert_called_once_with("status", "pending")


def test_claim_refused_for_other_owner_or_terminal_job(client):
    fresh = _table(client).update.return_value.eq.return_value.eq.return_value
    fresh.execute.return_value = _result([])
    fresh.in_.return_value.execute.return_value = _result([])
    current = _table(client).select.return_value.eq.return_value.limit.return_value
    current.execute.return_value = _result([{"status": "complete"}])

    with pytest.raises(JobOwnershipError) as exc:
        asyncio.run(JobRepository(client).claim(JobKind.AI_VIDEO_CARD, "J1", JobStatus.PROCESSING_ASSETS, "d2"))

    assert exc.value.current_status == "complete"
    client.table.assert_any_call("my_cards")


def test_claim_reentry_by_same_owner(client):
    fresh = _table(client).update.return_value.eq.return_value.eq.return_value
    fresh.execute.return_value = _result([])
    fresh.in_.return_value.execute.return_value = _result([{"job_id": "J1"}])

    asyncio.run(JobRepository(client).claim(JobKind.SLIDESHOW_CARD, "J1", JobStatus.PROCESSING_SLIDESHOW, "d1"))

    statuses = fresh.in_.call_args.args[1]
    assert statuses == ["pending", "processing_slideshow", "rendering_slideshow"]


def test_advance_only_from_earlier_statuses(client):
    guarded = _table(client).update.return_value.eq.return_value
    guarded.in_.return_value.execute.return_value = _result([{"job_id": "J1"}])

    moved = asyncio.run(JobRepository(client).advance(
        JobKind.AI_VIDEO_CARD, "J1", JobStatus.COMPOSITING_FINAL_VIDEO, {"hedra_video_url": "https://v"}
    ))

    assert moved is True
    guarded.in_.assert_called_once_with("status", ["pending", "processing_assets", "generating_ai_video"])
    _table(client).update.assert_called_once_with(
        {"hedra_video_url": "https://v", "status": "compositing_final_video"}
    )


def test_advance_on_terminal_job_raises(client):
    guarded = _table(client).update.return_value.eq.return_value
    guarded.in_.return_value.execute.return_value = _result([])
    current = _table(client).select.return_value.eq.return_value.limit.return_value
    current.execute.return_value = _result([{"status": "failed"}])

    with pytest.raises(JobOwnershipError):
        asyncio.run(JobRepository(client).advance(JobKind.FACE_SWAP, "J1", JobStatus.SWAPPING_FACE))


def test_advance_already_past_status_is_not_a_regression(client):
    guarded = _table(client).update.return_value.eq.return_value
    guarded.in_.return_value.execute.return_value = _result([])
    current = _table(client).select.return_value.eq.return_value.limit.return_value
    current.execute.return_value = _result([{"status": "storing_result"}])

    moved = asyncio.run(JobRepository(client).advance(JobKind.FACE_SWAP, "J1", JobStatus.SWAPPING_FACE))

    assert moved is False
    # only the guarded update was attempted, no side-field write
    assert _table(client).update.call_count == 1


def test_complete_without_matching_row_raises(client):
    guarded = _table(client).update.return_value.eq.return_value
    guarded.in_.return_value.execute.return_value = _result([])
    current = _table(client).select.return_value.eq.return_value.limit.return_value
    current.execute.return_value = _result([{"status": "failed"}])

    with pytest.raises(JobOwnershipError):
        asyncio.run(JobRepository(client).complete(JobKind.FACE_SWAP, "J1", {"result_path": "x"}))


def test_fail_reports_whether_it_wrote(client):
    guarded = _table(client).update.return_value.eq.return_value
    guarded.in_.return_value.execute.return_value = _result([{"job_id": "J1"}])

    wrote = asyncio.run(JobRepository(client).fail(
        JobKind.SLIDESHOW_CARD, "J1", "Shotstack polling timed out.", {"shotstack_status": "timeout"}
    ))

    assert wrote is True
    _table(client).update.assert_called_once_with({
        "shotstack_status": "timeout",
        "status": "failed",
        "error_message": "Shotstack polling timed out.",
    })
    guarded.in_.assert_called_once_with("status", ["pending", "processing_slideshow", "rendering_slideshow"])


def test_query_errors_become_persistence_errors(client):
    _table(client).select.return_value.eq.return_value.limit.return_value.execute.side_effect = RuntimeError("boom")

    with pytest.raises(PersistenceError) as exc:
        asyncio.run(JobRepository(client).get(JobKind.FACE_SWAP, "J1"))

    assert exc.value.table == "faceswap_jobs"


def test_inserts_return_new_row_id(client):
    _table(client).insert.return_value.execute.return_value = _result([{"id": 42}])
    repo = JobRepository(client)

    row_id = asyncio.run(repo.insert_faceswap("U1", "user_faceswaps/U1/J1.jpg", "https://src", "https://tpl"))
    assert row_id == 42
    client.table.assert_called_with("my_faceswaps")

    notification_id = asyncio.run(repo.insert_notification(
        NotificationMessage(user_id="U1", type="card_ready", message="ready", link="https://x")
    ))
    assert notification_id == 42
    row = _table(client).insert.call_args.args[0]
    assert row["is_read"] is False
    assert row["type"] == "card_ready"


def test_insert_without_returned_id_fails(client):
    _table(client).insert.return_value.execute.return_value = _result([])

    with pytest.raises(PersistenceError):
        asyncio.run(JobRepository(client).insert_public_share("card-1", None))
