"""Transmission of single parts through presigned URLs."""
import httpx
import logging

from deckshot.core.retry_utils import RetryConfig, RetryExhaustedError, retry_with_backoff
from deckshot.schemas.upload import PartResult, UploadSession
from deckshot.services.coordinator_api import CoordinatorClient
from deckshot.services.error_handling import PartUploadFailed

logger = logging.getLogger(__name__)


class PartAttemptError(Exception):
    """One attempt at signing or storing a part failed."""
    pass


class PartTransmitter:
    """Signs and stores one part at a time, retrying transient failures."""

    def __init__(self, coordinator: CoordinatorClient, retry_config: RetryConfig = None):
        self.coordinator = coordinator
        self.retry_config = retry_config or RetryConfig.from_settings()

    async def send_part(self, session: UploadSession, part_number: int, data: bytes) -> PartResult:
        """
        Upload one part, retrying with exponential backoff.

        Every attempt requests a fresh signed URL before the transfer.

        Raises:
            PartUploadFailed: once every attempt in the retry budget failed.
        """
        try:
            return await retry_with_backoff(
                self._attempt,
                session,
                part_number,
                data,
                config=self.retry_config,
                operation=f"part {part_number} of {session.key}"
            )
        except RetryExhaustedError as e:
            raise PartUploadFailed(part_number, e.last_exception) from e.last_exception

    async def _attempt(self, session: UploadSession, part_number: int, data: bytes) -> PartResult:
        url = await self._signed_url(session, part_number)

        try:
            response = await self.coordinator.put_part(url, data)
        except httpx.RequestError as e:
            raise PartAttemptError(f"Failed to upload part {part_number}: {e}") from e

        if not response.is_success:
            raise PartAttemptError(
                f"Failed to upload part {part_number}: {response.status_code} {response.reason_phrase}"
            )

        etag = response.headers.get("ETag", "").replace('"', '').strip()
        if not etag:
            raise PartAttemptError("Missing ETag in upload response")

        logger.debug(f"Stored part {part_number} of {session.key} ({len(data)} bytes)")
        return PartResult(part_number=part_number, etag=etag)

    async def _signed_url(self, session: UploadSession, part_number: int) -> str:
        try:
            response = await self.coordinator.sign_part(session.key, session.upload_id, part_number)
        except httpx.RequestError as e:
            raise PartAttemptError(f"Failed to get upload URL: {e}") from e

        if not response.is_success:
            raise PartAttemptError(f"Failed to get upload URL: {response.status_code} {response.reason_phrase}")

        try:
            url = response.json().get("url")
        except (ValueError, AttributeError) as e:
            raise PartAttemptError(f"Invalid signed URL response: {e}") from e
        if not url:
            raise PartAttemptError("Signed URL response did not include a url")
        return url
