"""HTTP client for the upload coordinator and the storage endpoint."""
import httpx
import logging
from typing import Dict, Any, Optional

from deckshot.core.config import settings

logger = logging.getLogger(__name__)


def create_http_client(concurrency: int = None, timeout: float = None) -> httpx.AsyncClient:
    """Shared HTTP client for one batch, pooled for its worker count."""
    connections = max(concurrency or settings.UPLOAD_CONCURRENCY, 1) * 2
    return httpx.AsyncClient(
        timeout=timeout or settings.HTTP_TIMEOUT,
        limits=httpx.Limits(max_connections=connections, max_keepalive_connections=connections)
    )


def error_reason(response: httpx.Response, default: str) -> str:
    """Pull the coordinator's ``error`` message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return default


class CoordinatorClient:
    """Client for the coordinator's multipart upload endpoints."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        auth_headers: Dict[str, str],
        base_url: Optional[str] = None,
        api_prefix: Optional[str] = None
    ):
        self.http_client = http_client
        self.auth_headers = dict(auth_headers)
        self.base_url = (base_url or settings.COORDINATOR_URL).rstrip('/')
        prefix = settings.COORDINATOR_API_PREFIX if api_prefix is None else api_prefix
        self.api_prefix = prefix.rstrip('/')

    def url_for(self, endpoint: str) -> str:
        return f"{self.base_url}{self.api_prefix}{endpoint}"

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        """Send an authenticated request; status handling is left to the caller."""
        url = self.url_for(endpoint)
        headers = dict(self.auth_headers)

        match method.upper():
            case 'GET':
                return await self.http_client.get(url, params=params, headers=headers)
            case 'POST' | 'PATCH' | 'DELETE':
                headers['Content-Type'] = 'application/json'
                return await self.http_client.request(method.upper(), url, json=data, headers=headers)
            case _:
                raise ValueError(f"Unsupported HTTP method: {method}")

    async def create_upload(self, body: Dict[str, Any]) -> httpx.Response:
        """Ask the coordinator to open a multipart session."""
        return await self._make_request('POST', '/upload/create', body)

    async def sign_part(self, key: str, upload_id: str, part_number: int) -> httpx.Response:
        """Request a short-lived signed URL for one part."""
        return await self._make_request('GET', '/upload/sign', params={
            "key": key,
            "uploadId": upload_id,
            "partNumber": str(part_number)
        })

    async def complete_upload(self, body: Dict[str, Any]) -> httpx.Response:
        """Ask the coordinator to assemble the uploaded parts."""
        return await self._make_request('PATCH', '/upload/complete', body)

    async def abort_upload(self, body: Dict[str, Any]) -> httpx.Response:
        """Discard an unfinished multipart session."""
        return await self._make_request('DELETE', '/upload/abort', body)

    async def put_part(self, url: str, data: bytes) -> httpx.Response:
        """Transfer part bytes straight to storage. The signed URL carries its own auth."""
        return await self.http_client.put(
            url,
            content=data,
            headers={'Content-Type': 'application/octet-stream'}
        )
