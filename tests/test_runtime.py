"""Worker runtime: blocking-call pool sizing and isolation between job kinds."""

import asyncio
import base64
import threading
import time
from unittest.mock import MagicMock

from media_jobs.jobs.models import JobKind
from media_jobs.runtime import build_runtime
from media_jobs.vendors.base import PollState
from media_jobs.vendors.segmind import FaceSwapClient
from media_jobs.vendors.shotstack import ShotstackClient

from fakes import make_settings


def _response(status=200, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.json.return_value = body
    resp.text = ""
    return resp


def test_pool_is_sized_from_queue_concurrency():
    assert make_settings().io_threads() == 2 * 20 + 8
    assert make_settings(faceswap_concurrency=10).io_threads() == 2 * 25 + 8
    assert make_settings(io_thread_pool_size=12).io_threads() == 12


def test_stalled_face_swaps_do_not_block_other_kinds():
    # More stalled swaps than any interpreter default pool has threads
    settings = make_settings(faceswap_concurrency=40, shutdown_grace_seconds=5)
    supabase = MagicMock()
    select = supabase.table.return_value.select.return_value.eq.return_value.limit.return_value
    select.execute.return_value = MagicMock(data=[{"job_id": "S1", "status": "rendering_slideshow"}])
    runtime = build_runtime(settings, client=supabase)

    release = threading.Event()
    swapped = _response(200, {"image": base64.b64encode(b"swapped").decode()})

    def stalled_post(*args, **kwargs):
        release.wait(10)
        return swapped

    swap_session = MagicMock()
    swap_session.post.side_effect = stalled_post
    swapper = FaceSwapClient("skey", "https://segmind.example.test/faceswap", session=swap_session)

    poll_session = MagicMock()
    poll_session.get.return_value = _response(200, {"success": True, "response": {"status": "rendering"}})
    shotstack = ShotstackClient("key", "owner1", session=poll_session)

    async def scenario():
        await runtime.start()
        swaps = [
            asyncio.create_task(swapper.swap(b"source", b"target"))
            for _ in range(settings.faceswap_concurrency)
        ]
        try:
            await asyncio.sleep(0.1)

            started = time.monotonic()
            poll = await asyncio.wait_for(shotstack.poll("r1"), timeout=2)
            poll_latency = time.monotonic() - started

            started = time.monotonic()
            record = await asyncio.wait_for(runtime.get_job(JobKind.SLIDESHOW_CARD, "S1"), timeout=2)
            read_latency = time.monotonic() - started
        finally:
            release.set()
        results = await asyncio.gather(*swaps)
        await runtime.stop()
        return poll, poll_latency, record, read_latency, results

    poll, poll_latency, record, read_latency, results = asyncio.run(scenario())

    assert poll.state == PollState.PROCESSING
    assert poll_latency < 0.5
    assert record["status"] == "rendering_slideshow"
    assert read_latency < 0.5
    assert results == [b"swapped"] * 40
    assert runtime.executor._max_workers == settings.io_threads()
