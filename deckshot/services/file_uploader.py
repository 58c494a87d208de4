"""Single-file multipart upload."""
import logging
from typing import Callable, List, Optional

from deckshot.schemas.upload import PartResult
from deckshot.services.blob_codec import decode_data_url
from deckshot.services.error_handling import SessionCreateFailed
from deckshot.services.part_transmitter import PartTransmitter
from deckshot.services.session import SessionFinalizer, SessionNegotiator

logger = logging.getLogger(__name__)

FileProgressCallback = Callable[[int, int], None]


class FileUploader:
    """Runs create -> parts -> complete for exactly one file."""

    def __init__(
        self,
        negotiator: SessionNegotiator,
        transmitter: PartTransmitter,
        finalizer: SessionFinalizer
    ):
        self.negotiator = negotiator
        self.transmitter = transmitter
        self.finalizer = finalizer

    async def upload(
        self,
        encoded: str,
        filename: str,
        on_progress: Optional[FileProgressCallback] = None
    ) -> str:
        """
        Upload one data URL and return its storage key.

        Parts go out in order, one at a time. After each part ``on_progress``
        receives ``min(part_number * part_size, size)`` and the file size, an
        estimate rather than an exact count of transmitted bytes.
        Any failure propagates unchanged.
        """
        blob = decode_data_url(encoded)
        size = blob.size

        session = await self.negotiator.open(filename, blob.mime_type, size)
        if session.total_parts != session.expected_parts(size):
            await self.finalizer.abort(session)
            raise SessionCreateFailed(
                f"Upload plan for {filename} has {session.total_parts} part(s) "
                f"but {size} bytes need {session.expected_parts(size)}"
            )

        completed: List[PartResult] = []
        for part_number in range(1, session.total_parts + 1):
            start, end = session.part_range(part_number, size)
            part = await self.transmitter.send_part(session, part_number, blob.data[start:end])
            completed.append(part)

            if on_progress:
                on_progress(min(part_number * session.part_size, size), size)

        await self.finalizer.complete(session, completed)
        return session.key
