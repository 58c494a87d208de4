"""Opening and finalizing multipart upload sessions."""
import httpx
import logging
from typing import List

from pydantic import ValidationError

from deckshot.schemas.upload import (
    CompleteUploadRequest,
    CreateSessionRequest,
    PartResult,
    UploadSession,
)
from deckshot.services.coordinator_api import CoordinatorClient, error_reason
from deckshot.services.error_handling import FinalizeFailed, SessionCreateFailed

logger = logging.getLogger(__name__)


class SessionNegotiator:
    """Opens one multipart session per file. Never retries."""

    def __init__(self, coordinator: CoordinatorClient):
        self.coordinator = coordinator

    async def open(self, filename: str, mime_type: str, size: int) -> UploadSession:
        """
        Ask the coordinator for a session and its chunking plan.

        Raises:
            SessionCreateFailed: on a non-success response, a transport error
                or a response body that is not a usable session.
        """
        request = CreateSessionRequest(filename=filename, mime=mime_type, size=size)
        logger.info(f"Creating upload session for {filename} ({size} bytes)")

        try:
            response = await self.coordinator.create_upload(request.model_dump())
        except httpx.RequestError as e:
            raise SessionCreateFailed(f"Failed to create upload session: {e}") from e

        if not response.is_success:
            reason = error_reason(response, "Failed to create upload session")
            logger.error(f"Session create for {filename} rejected ({response.status_code}): {reason}")
            raise SessionCreateFailed(reason)

        try:
            session = UploadSession.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise SessionCreateFailed(f"Invalid upload session response: {e}") from e

        logger.info(f"Session {session.upload_id} opened for {filename}: {session.total_parts} part(s) of {session.part_size} bytes")
        return session


class SessionFinalizer:
    """Completes or aborts a multipart session."""

    def __init__(self, coordinator: CoordinatorClient):
        self.coordinator = coordinator

    async def complete(self, session: UploadSession, parts: List[PartResult]) -> None:
        """
        Assemble the uploaded parts into the final object.

        Parts are sent ascending by part number. If the coordinator rejects the
        request the session is aborted once before ``FinalizeFailed`` is raised.
        """
        ordered = sorted(parts, key=lambda part: part.part_number)
        numbers = [part.part_number for part in ordered]
        if numbers != list(range(1, session.total_parts + 1)):
            raise FinalizeFailed(
                f"Expected parts 1..{session.total_parts} for {session.key}, got {numbers}"
            )

        body = CompleteUploadRequest(key=session.key, upload_id=session.upload_id, parts=ordered)

        try:
            response = await self.coordinator.complete_upload(body.model_dump(by_alias=True))
        except httpx.RequestError as e:
            await self.abort(session)
            raise FinalizeFailed(f"Failed to complete upload: {e}") from e

        if not response.is_success:
            reason = error_reason(response, "Failed to complete upload")
            logger.error(f"Complete for {session.key} rejected ({response.status_code}): {reason}")
            await self.abort(session)
            raise FinalizeFailed(reason)

        logger.info(f"Upload {session.upload_id} completed as {session.key}")

    async def abort(self, session: UploadSession) -> None:
        """Best-effort abort. Failures are logged, never raised."""
        try:
            response = await self.coordinator.abort_upload(session.identity())
        except Exception as e:
            logger.warning(f"Failed to abort upload {session.upload_id}: {e}")
            return

        if not response.is_success:
            logger.warning(f"Failed to abort upload {session.upload_id}: HTTP {response.status_code}")
        else:
            logger.info(f"Aborted upload {session.upload_id}")
