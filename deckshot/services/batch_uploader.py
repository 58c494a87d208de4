"""Concurrent batch upload of captured pages."""
import asyncio
import logging
from collections import deque
from uuid import uuid4
from typing import Callable, Dict, List, Optional, Sequence

import httpx

from deckshot.core.auth import CredentialProvider, EnvTokenProvider
from deckshot.core.config import settings
from deckshot.core.retry_utils import RetryConfig
from deckshot.schemas.upload import BatchProgress, UploadOutcome
from deckshot.services.blob_codec import decoded_size
from deckshot.services.coordinator_api import CoordinatorClient, create_http_client
from deckshot.services.error_handling import (
    CredentialUnavailable,
    UploadIncomplete,
    structured_logger,
)
from deckshot.services.file_uploader import FileUploader
from deckshot.services.part_transmitter import PartTransmitter
from deckshot.services.session import SessionFinalizer, SessionNegotiator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[BatchProgress], None]


def percent_of(uploaded: int, total: int) -> int:
    """Percentage rounded half up; an empty batch counts as done."""
    if total <= 0:
        return 100
    return (200 * uploaded + total) // (2 * total)


class ProgressAggregator:
    """
    Folds per-file progress into one running batch total.

    The total is recomputed from the latest value of every file rather than
    accumulated from deltas, so a repeated report never double counts.
    ``current_file`` counts files that have reported at least once, not
    files that have finished.
    """

    def __init__(self, total_bytes: int, total_files: int, on_progress: Optional[ProgressCallback] = None):
        self.total_bytes = total_bytes
        self.total_files = total_files
        self.on_progress = on_progress
        self.uploaded_by_index: Dict[int, int] = {}
        self.last_emitted: Optional[BatchProgress] = None

    def snapshot(self) -> BatchProgress:
        uploaded = sum(self.uploaded_by_index.values())
        return BatchProgress(
            uploaded_bytes=uploaded,
            total_bytes=self.total_bytes,
            percent=percent_of(uploaded, self.total_bytes),
            current_file=len(self.uploaded_by_index),
            total_files=self.total_files
        )

    def report(self, index: int, uploaded: int) -> None:
        """Record a file's latest byte count and notify the caller."""
        self.uploaded_by_index[index] = uploaded
        self._emit()

    def mark_complete(self, index: int, size: int) -> None:
        """Count a finished file at its full size without notifying."""
        self.uploaded_by_index[index] = size

    def finish(self) -> None:
        """Make sure the last notification reads 100% of every file."""
        final = self.snapshot()
        if self.last_emitted != final:
            self._emit()

    def _emit(self) -> None:
        progress = self.snapshot()
        self.last_emitted = progress
        if self.on_progress:
            self.on_progress(progress)


class BatchUploader:
    """
    Uploads an ordered list of data URLs with a bounded pool of workers.

    Outcomes come back in input order. The first file that fails fails the
    whole batch: workers still running are neither cancelled nor awaited, so
    some files may already be stored when the error reaches the caller.
    """

    def __init__(
        self,
        credential_provider: CredentialProvider,
        coordinator_url: Optional[str] = None,
        retry_config: Optional[RetryConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        filename_template: Optional[str] = None
    ):
        self.credential_provider = credential_provider
        self.coordinator_url = coordinator_url
        self.retry_config = retry_config
        self.http_client = http_client
        self.filename_template = filename_template or settings.UPLOAD_FILENAME_TEMPLATE
        self._background: set = set()

    def filename_for(self, index: int) -> str:
        return self.filename_template.format(index=index + 1)

    async def _auth_headers(self) -> Dict[str, str]:
        try:
            return await self.credential_provider.get_auth_headers()
        except CredentialUnavailable:
            raise
        except Exception as e:
            raise CredentialUnavailable(f"Failed to obtain authentication token: {e}") from e

    def _file_uploader(self, client: httpx.AsyncClient, auth_headers: Dict[str, str]) -> FileUploader:
        coordinator = CoordinatorClient(client, auth_headers, base_url=self.coordinator_url)
        return FileUploader(
            SessionNegotiator(coordinator),
            PartTransmitter(coordinator, self.retry_config),
            SessionFinalizer(coordinator)
        )

    async def upload_all(
        self,
        encoded_images: Sequence[str],
        on_progress: Optional[ProgressCallback] = None,
        concurrency: Optional[int] = None
    ) -> List[UploadOutcome]:
        """
        Upload every image and return one outcome per input, in input order.

        Args:
            encoded_images: Data URLs to upload.
            on_progress: Called synchronously with a ``BatchProgress`` after
                every completed part, and once more at 100% if needed.
            concurrency: Maximum number of files in flight.

        Raises:
            CredentialUnavailable: before any network call if no token is available.
            MalformedInput: before any network call if an image cannot be decoded.
            UploadError: the first file failure, unchanged.
        """
        if not encoded_images:
            return []

        if concurrency is None:
            concurrency = settings.UPLOAD_CONCURRENCY
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        auth_headers = await self._auth_headers()

        sizes = [decoded_size(encoded) for encoded in encoded_images]
        total_files = len(encoded_images)
        progress = ProgressAggregator(sum(sizes), total_files, on_progress)
        outcomes: List[Optional[UploadOutcome]] = [None] * total_files
        queue = deque(range(total_files))
        batch_log = structured_logger.bind(batch_id=uuid4().hex, total_files=total_files)

        owns_client = self.http_client is None
        client = create_http_client(concurrency) if owns_client else self.http_client
        uploader = self._file_uploader(client, auth_headers)

        async def worker() -> None:
            while queue:
                index = queue.popleft()
                filename = self.filename_for(index)

                try:
                    key = await uploader.upload(
                        encoded_images[index],
                        filename,
                        lambda uploaded, _total, index=index: progress.report(index, uploaded)
                    )
                except Exception as e:
                    batch_log.error(
                        f"Failed to upload {filename}",
                        extra={"filename": filename, "index": index},
                        exception=e
                    )
                    raise

                outcomes[index] = UploadOutcome(storage_key=key, original_filename=filename)
                progress.mark_complete(index, sizes[index])
                batch_log.info(
                    f"Completed {filename} ({len(progress.uploaded_by_index)}/{total_files})",
                    extra={"filename": filename, "key": key}
                )

        worker_count = min(concurrency, total_files)
        batch_log.info(
            f"Starting {worker_count} concurrent upload workers for {total_files} files",
            extra={"total_bytes": progress.total_bytes}
        )

        tasks = [asyncio.create_task(worker()) for _ in range(worker_count)]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)

        failures = [task.exception() for task in tasks if task in done and task.exception() is not None]
        if failures:
            self._drain_in_background(pending, client if owns_client else None)
            raise failures[0]

        if owns_client:
            await client.aclose()

        if any(outcome is None for outcome in outcomes):
            raise UploadIncomplete("Some screenshots failed to upload")

        progress.finish()
        batch_log.info(
            f"Uploaded {total_files} files",
            extra={"total_bytes": progress.total_bytes}
        )
        return outcomes

    def _drain_in_background(self, pending: set, client: Optional[httpx.AsyncClient]) -> None:
        """Let abandoned workers finish, then release the client they share."""

        async def drain() -> None:
            results = await asyncio.gather(*pending, return_exceptions=True)
            for result in results:
                if isinstance(result, BaseException):
                    logger.warning(f"Upload worker failed after the batch was abandoned: {result}")
            if client is not None:
                await client.aclose()

        task = asyncio.create_task(drain())
        self._background.add(task)
        task.add_done_callback(self._background.discard)


async def upload_screenshots(
    encoded_images: Sequence[str],
    on_progress: Optional[ProgressCallback] = None,
    concurrency: Optional[int] = None,
    credential_provider: Optional[CredentialProvider] = None,
    **kwargs
) -> List[UploadOutcome]:
    """Upload captured pages to storage, returning keys in input order."""
    uploader = BatchUploader(credential_provider or EnvTokenProvider(), **kwargs)
    return await uploader.upload_all(encoded_images, on_progress, concurrency)
