"""Test session negotiation and finalization against the coordinator."""
import json

import httpx
import pytest

from deckshot.schemas.upload import PartResult, UploadSession
from deckshot.services.coordinator_api import CoordinatorClient
from deckshot.services.error_handling import FinalizeFailed, SessionCreateFailed
from deckshot.services.session import SessionFinalizer, SessionNegotiator
from tests.conftest import COORDINATOR_URL


def make_session(total_parts: int = 3) -> UploadSession:
    return UploadSession(uploadId="upload-1", key="captures/page_1.png", partSize=4, totalParts=total_parts)


@pytest.mark.asyncio
async def test_open_session(coordinator, fake_coordinator):
    """A successful create returns the coordinator's chunking plan."""
    fake_coordinator.part_size = 4

    session = await SessionNegotiator(coordinator).open("page_1.png", "image/png", 10)

    assert session.upload_id == "upload-1"
    assert session.key == "captures/page_1.png"
    assert session.part_size == 4
    assert session.total_parts == 3
    assert fake_coordinator.sessions["upload-1"] == {"filename": "page_1.png", "mime": "image/png", "size": 10}


@pytest.mark.asyncio
async def test_open_session_sends_bearer_headers(auth_headers):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"uploadId": "u", "key": "k", "partSize": 10, "totalParts": 1})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    await SessionNegotiator(CoordinatorClient(client, auth_headers, base_url=COORDINATOR_URL)).open("a.png", "image/png", 5)

    assert seen[0].method == "POST"
    assert seen[0].headers["Authorization"] == "Bearer test-token"
    assert seen[0].headers["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_open_session_uses_coordinator_error(coordinator, fake_coordinator):
    fake_coordinator.create_errors["page_1.png"] = (403, {"error": "Quota exceeded"})

    with pytest.raises(SessionCreateFailed) as exc_info:
        await SessionNegotiator(coordinator).open("page_1.png", "image/png", 10)

    assert exc_info.value.reason == "Quota exceeded"


@pytest.mark.asyncio
async def test_open_session_generic_error_without_body(coordinator, fake_coordinator):
    fake_coordinator.create_errors["page_1.png"] = (500, {})

    with pytest.raises(SessionCreateFailed) as exc_info:
        await SessionNegotiator(coordinator).open("page_1.png", "image/png", 10)

    assert str(exc_info.value) == "Failed to create upload session"


@pytest.mark.asyncio
async def test_open_session_is_not_retried(auth_headers):
    """A failed create is attempted once only."""
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    with pytest.raises(SessionCreateFailed):
        await SessionNegotiator(CoordinatorClient(client, auth_headers, base_url=COORDINATOR_URL)).open("a.png", "image/png", 5)

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_open_session_rejects_invalid_plan(auth_headers):
    client = httpx.AsyncClient(transport=httpx.MockTransport(
        lambda request: httpx.Response(200, json={"uploadId": "u", "key": "k", "partSize": 0, "totalParts": 1})
    ))

    with pytest.raises(SessionCreateFailed):
        await SessionNegotiator(CoordinatorClient(client, auth_headers, base_url=COORDINATOR_URL)).open("a.png", "image/png", 5)


@pytest.mark.asyncio
async def test_complete_sends_parts_ascending(coordinator, fake_coordinator):
    """Parts are sorted by part number before they reach the coordinator."""
    parts = [
        PartResult(part_number=3, etag="c"),
        PartResult(part_number=1, etag="a"),
        PartResult(part_number=2, etag="b"),
    ]

    await SessionFinalizer(coordinator).complete(make_session(), parts)

    assert fake_coordinator.completed == [{
        "key": "captures/page_1.png",
        "uploadId": "upload-1",
        "parts": [
            {"PartNumber": 1, "ETag": "a"},
            {"PartNumber": 2, "ETag": "b"},
            {"PartNumber": 3, "ETag": "c"},
        ],
    }]
    assert fake_coordinator.aborted == []


@pytest.mark.asyncio
async def test_complete_failure_aborts_once(coordinator, fake_coordinator):
    fake_coordinator.complete_status = 500
    fake_coordinator.complete_error = "Assembly failed"
    parts = [PartResult(part_number=n, etag=f"e{n}") for n in (1, 2, 3)]

    with pytest.raises(FinalizeFailed) as exc_info:
        await SessionFinalizer(coordinator).complete(make_session(), parts)

    assert exc_info.value.reason == "Assembly failed"
    assert fake_coordinator.aborted == [{"key": "captures/page_1.png", "uploadId": "upload-1"}]


@pytest.mark.asyncio
async def test_abort_failure_does_not_mask_finalize_error(coordinator, fake_coordinator):
    """A failing abort is logged while the finalize error still reaches the caller."""
    fake_coordinator.complete_status = 502
    fake_coordinator.abort_status = 500
    parts = [PartResult(part_number=1, etag="e1")]

    with pytest.raises(FinalizeFailed) as exc_info:
        await SessionFinalizer(coordinator).complete(make_session(total_parts=1), parts)

    assert str(exc_info.value) == "Failed to complete upload"
    assert len(fake_coordinator.aborted) == 1


@pytest.mark.asyncio
async def test_abort_transport_error_is_swallowed(auth_headers):
    def handler(request):
        raise httpx.ReadTimeout("timed out")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    finalizer = SessionFinalizer(CoordinatorClient(client, auth_headers, base_url=COORDINATOR_URL))

    await finalizer.abort(make_session())


@pytest.mark.asyncio
async def test_abort_sends_session_identity(coordinator, fake_coordinator):
    await SessionFinalizer(coordinator).abort(make_session())

    assert fake_coordinator.calls == [("DELETE", "/api/upload/abort")]
    assert fake_coordinator.aborted == [{"key": "captures/page_1.png", "uploadId": "upload-1"}]


@pytest.mark.asyncio
async def test_complete_rejects_missing_parts(coordinator, fake_coordinator):
    """An incomplete part set never reaches the coordinator."""
    parts = [PartResult(part_number=1, etag="a"), PartResult(part_number=3, etag="c")]

    with pytest.raises(FinalizeFailed):
        await SessionFinalizer(coordinator).complete(make_session(), parts)

    assert fake_coordinator.calls == []


def test_part_ranges_cover_payload():
    session = make_session()

    assert [session.part_range(n, 10) for n in (1, 2, 3)] == [(0, 4), (4, 8), (8, 10)]
    assert session.expected_parts(10) == 3
    assert session.identity() == {"key": "captures/page_1.png", "uploadId": "upload-1"}
    with pytest.raises(ValueError):
        session.part_range(4, 10)


def test_part_result_serialises_with_coordinator_names():
    part = PartResult(PartNumber=2, ETag="abc")

    assert json.loads(part.model_dump_json(by_alias=True)) == {"PartNumber": 2, "ETag": "abc"}
