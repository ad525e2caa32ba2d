import asyncio

import httpx
import pytest

from pushgate import UniversalHandler
from pushgate.client import (
    FileStatus,
    UploadFile,
    UploadOptions,
    UploadOrchestrator,
)

API_URL = "http://testserver/api/upload"
MB = 1024 * 1024


def _jpeg(name="a.jpg", size=1024):
    return UploadFile(name=name, data=b"\xff" * size, type="image/jpeg")


async def _no_sleep(delay):
    return None


@pytest.fixture
def handler(router):
    return UniversalHandler(router, debug=False)


def _orchestrator(transport, route="imageUpload", **options):
    http = httpx.AsyncClient(transport=transport)
    opts = UploadOptions(sleep=_no_sleep, **options)
    return UploadOrchestrator(route, API_URL, http_client=http, options=opts)


async def _wait_for(predicate, timeout=2.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout)


# -------------------------
# Happy path / scenario
# -------------------------
@pytest.mark.anyio
async def test_image_upload_scenario(handler, provider, bridge):
    contacted = []

    def record(request):
        contacted.append(request.url.path)

    events = {"start": None, "progress": [], "errors": [], "success": None}
    orch = _orchestrator(
        bridge(handler, provider, record),
        on_start=lambda metas: events.__setitem__("start", [m.name for m in metas]),
        on_progress=lambda p: events["progress"].append(p),
        on_error=lambda msg, state: events["errors"].append((msg, state.name if state else None)),
        on_success=lambda states: events.__setitem__("success", [s.name for s in states]),
    )

    states = await orch.upload_files([
        _jpeg("cat.jpg", 3 * MB),
        UploadFile(name="huge.png", data=b"\x89" * (11 * MB), type="image/png"),
    ])

    ok, bad = states
    assert ok.status == FileStatus.SUCCESS
    assert ok.progress == 100
    assert ok.key == "uploads/anonymous/1700000000000/abc123/cat.jpg"
    assert ok.url == "https://storage.local/bucket/uploads/anonymous/1700000000000/abc123/cat.jpg"
    assert ok.presigned_url.startswith(ok.url + "?")
    assert ok.attempts == 1

    assert bad.status == FileStatus.ERROR
    assert bad.error == "File size 11.0MB exceeds maximum 5.0MB"
    assert bad.attempts == 0

    # storage only ever saw the first file
    assert contacted == ["/bucket/" + ok.key]
    assert provider.objects[ok.key] == b"\xff" * (3 * MB)

    assert events["start"] == ["cat.jpg", "huge.png"]
    assert events["progress"][0] == 0
    assert events["progress"][-1] == 100
    assert events["errors"] == [(bad.error, "huge.png")]
    assert events["success"] == ["cat.jpg"]
    assert not orch.is_uploading
    assert orch.errors == [bad.error]


@pytest.mark.anyio
async def test_ids_are_batch_scoped(handler, provider, bridge):
    orch = _orchestrator(bridge(handler, provider))
    states = await orch.upload_files([_jpeg("a.jpg"), _jpeg("b.jpg")])
    batch = states[0].id.split("-")[0]
    assert [s.id for s in states] == [f"{batch}-0", f"{batch}-1"]


@pytest.mark.anyio
async def test_content_type_sent_to_storage(handler, provider, bridge):
    seen = {}

    def record(request):
        seen["type"] = request.headers.get("content-type")
        seen["length"] = request.headers.get("content-length")

    orch = _orchestrator(bridge(handler, provider, record))
    await orch.upload_files([_jpeg("a.jpg", 300)])
    assert seen == {"type": "image/jpeg", "length": "300"}


@pytest.mark.anyio
async def test_empty_batch_is_noop(handler, provider, bridge):
    orch = _orchestrator(bridge(handler, provider))
    assert await orch.upload_files([]) == []


# -------------------------
# Call-level failures
# -------------------------
@pytest.mark.anyio
async def test_presign_call_failure_marks_every_file(handler, provider, bridge):
    errors = []
    orch = _orchestrator(
        bridge(handler, provider),
        route="ghost",
        on_error=lambda msg, state: errors.append((msg, state)),
    )
    states = await orch.upload_files([_jpeg("a.jpg"), _jpeg("b.jpg")])
    assert [s.status for s in states] == [FileStatus.ERROR, FileStatus.ERROR]
    assert {s.error for s in states} == {'Route "ghost" not found'}
    assert errors == [('Route "ghost" not found', None)]
    assert provider.issued == {}


@pytest.mark.anyio
async def test_failed_complete_call_keeps_states(handler, provider, bridge):
    inner = bridge(handler, provider)

    async def dispatch(request):
        if request.url.params.get("action") == "complete":
            return httpx.Response(500, json={"success": False, "error": "down"})
        return await inner.handle_async_request(request)

    successes = []
    orch = _orchestrator(httpx.MockTransport(dispatch), on_success=lambda s: successes.append(len(s)))
    [state] = await orch.upload_files([_jpeg()])
    assert state.status == FileStatus.SUCCESS
    assert state.url is None
    assert successes == [1]


# -------------------------
# Retry
# -------------------------
@pytest.mark.anyio
async def test_5xx_is_retried_then_succeeds(handler, provider, bridge):
    calls = {"n": 0}
    sleeps = []

    def flaky(request):
        calls["n"] += 1
        if calls["n"] <= 2:
            return httpx.Response(503)
        return None

    async def fake_sleep(delay):
        sleeps.append(delay)

    orch = UploadOrchestrator(
        "imageUpload",
        API_URL,
        http_client=httpx.AsyncClient(transport=bridge(handler, provider, flaky)),
        options=UploadOptions(max_retries=3, retry_base=0.5, sleep=fake_sleep),
    )
    [state] = await orch.upload_files([_jpeg()])
    assert state.status == FileStatus.SUCCESS
    assert state.attempts == 3
    assert len(sleeps) == 2
    # exponential: 0.5 then 1.0, each with at most 25% jitter
    assert 0.5 <= sleeps[0] <= 0.625
    assert 1.0 <= sleeps[1] <= 1.25


@pytest.mark.anyio
async def test_retries_are_bounded(handler, provider, bridge):
    errors = []
    orch = _orchestrator(
        bridge(handler, provider, lambda r: httpx.Response(500)),
        max_retries=2,
        on_error=lambda msg, state: errors.append(msg),
    )
    [state] = await orch.upload_files([_jpeg()])
    assert state.status == FileStatus.ERROR
    assert state.attempts == 3
    assert state.error == "Upload failed: HTTP 500"
    assert errors == ["Upload failed: HTTP 500"]


@pytest.mark.anyio
async def test_network_errors_are_retried(handler, provider, bridge):
    def drop(request):
        raise httpx.ConnectError("connection reset")

    orch = _orchestrator(bridge(handler, provider, drop), max_retries=1)
    [state] = await orch.upload_files([_jpeg()])
    assert state.attempts == 2
    assert state.error.startswith("Network error during upload")


@pytest.mark.anyio
async def test_client_errors_are_not_retried(handler, provider, bridge):
    orch = _orchestrator(bridge(handler, provider, lambda r: httpx.Response(403)), max_retries=5)
    [state] = await orch.upload_files([_jpeg()])
    assert state.attempts == 1
    assert state.error == "Upload failed: HTTP 403"


# -------------------------
# Cancellation
# -------------------------
@pytest.mark.anyio
async def test_cancel_one_file_leaves_siblings_alone(handler, provider, bridge):
    blocked = asyncio.Event()

    async def hang_on_b(request):
        if request.url.path.endswith("/b.jpg"):
            blocked.set()
            await asyncio.Event().wait()
        return None

    orch = _orchestrator(bridge(handler, provider, hang_on_b))
    run = asyncio.create_task(orch.upload_files([_jpeg("a.jpg"), _jpeg("b.jpg"), _jpeg("c.jpg")]))

    await asyncio.wait_for(blocked.wait(), 2.0)
    target = orch.files[1]
    assert orch.cancel(target.id) is True
    assert orch.cancel("no-such-id") is False

    states = await asyncio.wait_for(run, 2.0)
    assert [s.status for s in states] == [FileStatus.SUCCESS, FileStatus.ERROR, FileStatus.SUCCESS]
    assert states[1].error == "Upload cancelled"
    assert states[1].attempts == 1
    assert orch.in_flight == 0
    assert sorted(provider.objects) == sorted([states[0].key, states[2].key])


@pytest.mark.anyio
async def test_cancelled_upload_is_not_reported_as_error(handler, provider, bridge):
    blocked = asyncio.Event()
    errors = []

    async def hang(request):
        blocked.set()
        await asyncio.Event().wait()

    orch = _orchestrator(bridge(handler, provider, hang), on_error=lambda m, s: errors.append(m))
    run = asyncio.create_task(orch.upload_files([_jpeg()]))
    await asyncio.wait_for(blocked.wait(), 2.0)
    orch.cancel(orch.files[0].id)
    [state] = await asyncio.wait_for(run, 2.0)

    assert state.error == "Upload cancelled"
    assert errors == []
    assert orch.errors == []


@pytest.mark.anyio
async def test_reset_cancels_everything_in_flight(handler, provider, bridge):
    started = []
    successes = []

    async def hang(request):
        started.append(request.url.path)
        await asyncio.Event().wait()

    orch = _orchestrator(bridge(handler, provider, hang), on_success=lambda s: successes.append(s))
    run = asyncio.create_task(orch.upload_files([_jpeg("a.jpg"), _jpeg("b.jpg")]))
    await _wait_for(lambda: len(started) == 2)
    assert orch.in_flight == 2

    await orch.reset()
    assert orch.in_flight == 0
    assert orch.files == []

    states = await asyncio.wait_for(run, 2.0)
    assert {s.error for s in states} == {"Upload cancelled"}
    assert successes == []
    assert provider.objects == {}


@pytest.mark.anyio
async def test_reset_during_presign_starts_no_transfers(handler, provider, bridge):
    presign_started = asyncio.Event()
    release = asyncio.Event()
    inner = bridge(handler, provider)
    events = {"start": 0, "success": 0, "errors": 0}

    async def dispatch(request):
        if request.url.params.get("action") == "presign":
            presign_started.set()
            await release.wait()
        return await inner.handle_async_request(request)

    orch = _orchestrator(
        httpx.MockTransport(dispatch),
        on_start=lambda metas: events.__setitem__("start", events["start"] + 1),
        on_success=lambda states: events.__setitem__("success", events["success"] + 1),
        on_error=lambda msg, state: events.__setitem__("errors", events["errors"] + 1),
    )
    run = asyncio.create_task(orch.upload_files([_jpeg("a.jpg")]))
    await asyncio.wait_for(presign_started.wait(), 2.0)

    await orch.reset()
    release.set()
    [state] = await asyncio.wait_for(run, 2.0)

    assert state.status == FileStatus.ERROR
    assert state.error == "Upload cancelled"
    assert provider.objects == {}
    assert orch.files == []
    assert orch.in_flight == 0
    assert not orch.is_uploading
    assert events == {"start": 0, "success": 0, "errors": 0}


# -------------------------
# Malformed server responses
# -------------------------
@pytest.mark.anyio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>proxy</html>"),
        httpx.Response(200, json=["not", "a", "dict"]),
        httpx.Response(200, json={"success": True, "results": [{"success": "maybe?"}]}),
        httpx.Response(200, json={"success": True, "results": {"a": 1}}),
    ],
)
async def test_unreadable_presign_response_fails_the_batch(response):
    errors = []

    def dispatch(request):
        return response

    orch = _orchestrator(httpx.MockTransport(dispatch), on_error=lambda msg, state: errors.append((msg, state)))
    states = await orch.upload_files([_jpeg("a.jpg"), _jpeg("b.jpg")])

    assert [s.status for s in states] == [FileStatus.ERROR, FileStatus.ERROR]
    assert {s.error for s in states} == {"Invalid presign response"}
    assert errors == [("Invalid presign response", None)]
    assert not orch.is_uploading


@pytest.mark.anyio
@pytest.mark.parametrize(
    "body",
    [
        {"success": True, "results": [{"success": True}]},
        ["unexpected"],
        {"success": True, "results": "nope"},
    ],
)
async def test_malformed_complete_response_keeps_states(handler, provider, bridge, body):
    inner = bridge(handler, provider)

    async def dispatch(request):
        if request.url.params.get("action") == "complete":
            return httpx.Response(200, json=body)
        return await inner.handle_async_request(request)

    successes = []
    orch = _orchestrator(httpx.MockTransport(dispatch), on_success=lambda s: successes.append(len(s)))
    [state] = await orch.upload_files([_jpeg()])

    assert state.status == FileStatus.SUCCESS
    assert state.url is None
    assert provider.objects[state.key] == b"\xff" * 1024
    assert successes == [1]
