"""Pytest configuration and fixtures."""
import asyncio
import base64
import json
import math

import httpx
import pytest
from unittest.mock import AsyncMock

from deckshot.core.auth import StaticTokenProvider
from deckshot.core.retry_utils import RetryConfig
from deckshot.services.batch_uploader import BatchUploader
from deckshot.services.coordinator_api import CoordinatorClient

COORDINATOR_URL = "http://coordinator.test"
STORAGE_HOST = "storage.test"


class FakeCoordinator:
    """In-memory coordinator and storage endpoint behind an httpx.MockTransport."""

    def __init__(self, part_size: int = 5 * 1024 * 1024):
        self.part_size = part_size
        self.calls = []
        self.sessions = {}
        self.completed = []
        self.aborted = []
        self.put_requests = []
        self.sign_requests = []

        # Failure knobs
        self.put_failures = 0
        self.put_always_fails = False
        self.create_errors = {}
        self.complete_status = 200
        self.complete_error = None
        self.abort_status = 200

        # Per-filename number of event-loop yields inside create
        self.create_yields = {}
        self.outstanding_creates = 0
        self.max_outstanding_creates = 0

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, request.url.path))

        if request.url.host == STORAGE_HOST:
            return self._put(request)

        match request.url.path:
            case "/api/upload/create":
                return await self._create(request)
            case "/api/upload/sign":
                return self._sign(request)
            case "/api/upload/complete":
                return self._complete(request)
            case "/api/upload/abort":
                body = json.loads(request.content)
                self.aborted.append(body)
                return httpx.Response(self.abort_status, json={})
        return httpx.Response(404, json={"error": "not found"})

    async def _create(self, request):
        body = json.loads(request.content)
        filename = body["filename"]

        self.outstanding_creates += 1
        self.max_outstanding_creates = max(self.max_outstanding_creates, self.outstanding_creates)
        try:
            for _ in range(self.create_yields.get(filename, 1)):
                await asyncio.sleep(0)
        finally:
            self.outstanding_creates -= 1

        if filename in self.create_errors:
            status, payload = self.create_errors[filename]
            return httpx.Response(status, json=payload)

        upload_id = f"upload-{len(self.sessions) + 1}"
        key = f"captures/{filename}"
        self.sessions[upload_id] = body
        return httpx.Response(200, json={
            "uploadId": upload_id,
            "key": key,
            "partSize": self.part_size,
            "totalParts": math.ceil(body["size"] / self.part_size),
        })

    def _sign(self, request):
        params = dict(request.url.params)
        self.sign_requests.append(params)
        url = f"https://{STORAGE_HOST}/{params['key']}?partNumber={params['partNumber']}&uploadId={params['uploadId']}"
        return httpx.Response(200, json={"url": url})

    def _put(self, request):
        self.put_requests.append(request)
        if self.put_always_fails or len(self.put_requests) <= self.put_failures:
            return httpx.Response(503)
        part_number = request.url.params["partNumber"]
        return httpx.Response(200, headers={"ETag": f'"etag-{part_number}"'})

    def _complete(self, request):
        body = json.loads(request.content)
        if self.complete_status >= 400:
            payload = {"error": self.complete_error} if self.complete_error else {}
            return httpx.Response(self.complete_status, json=payload)
        self.completed.append(body)
        return httpx.Response(200, json={"key": body["key"]})


def make_data_url(payload: bytes = b"\x89PNG\r\n\x1a\nfake-image", mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(payload).decode('ascii')}"


@pytest.fixture
def fake_coordinator():
    """Coordinator double with default (always succeeding) behaviour."""
    return FakeCoordinator()


@pytest.fixture
def http_client(fake_coordinator):
    """Async HTTP client routed to the fake coordinator."""
    return httpx.AsyncClient(transport=fake_coordinator.transport())


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer test-token"}


@pytest.fixture
def coordinator(http_client, auth_headers):
    return CoordinatorClient(http_client, auth_headers, base_url=COORDINATOR_URL, api_prefix="/api")


@pytest.fixture
def fast_retry():
    """Retry policy with the default budget and no waiting."""
    return RetryConfig(max_attempts=3, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def credential_provider():
    provider = StaticTokenProvider("test-token")
    provider.get_auth_headers = AsyncMock(return_value={"Authorization": "Bearer test-token"})
    return provider


@pytest.fixture
def batch_uploader(credential_provider, http_client, fast_retry):
    """BatchUploader wired to the fake coordinator."""
    return BatchUploader(
        credential_provider,
        coordinator_url=COORDINATOR_URL,
        retry_config=fast_retry,
        http_client=http_client
    )
