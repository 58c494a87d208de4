"""Upload error taxonomy and structured logging."""
import logging
import json
import traceback
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from deckshot import __version__
from deckshot.core.config import settings


class UploadError(Exception):
    """Base class for every failure raised by the upload pipeline."""
    pass


class MalformedInput(UploadError):
    """An encoded image could not be decoded. Never retried."""
    pass


class CredentialUnavailable(UploadError):
    """No signed-in session or the token could not be obtained."""
    pass


class SessionCreateFailed(UploadError):
    """The coordinator refused to open a multipart session."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class PartUploadFailed(UploadError):
    """A part could not be transmitted within the retry budget."""

    def __init__(self, part_number: int, last_error: Optional[BaseException]):
        self.part_number = part_number
        self.last_error = last_error
        message = f"Failed to upload part {part_number}"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message)


class FinalizeFailed(UploadError):
    """The coordinator refused to assemble the uploaded parts."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class UploadIncomplete(UploadError):
    """A batch finished without an outcome for every input."""
    pass


def describe_exception(exception: BaseException) -> Dict[str, Any]:
    """JSON-ready summary of an exception, with upload failure details when present."""
    details = {
        "type": type(exception).__name__,
        "message": str(exception),
        "traceback": "".join(traceback.format_exception(type(exception), exception, exception.__traceback__))
    }
    for field in ("reason", "part_number"):
        if hasattr(exception, field):
            details[field] = getattr(exception, field)
    last_error = getattr(exception, "last_error", None)
    if last_error is not None:
        details["last_error"] = f"{type(last_error).__name__}: {last_error}"
    return details


class StructuredLogger:
    """
    JSON lines for upload lifecycle events.

    Every record carries the package version and the context bound with
    ``bind``, so the events of one batch can be grouped by ``batch_id``.
    """

    def __init__(self, name: str = None, context: Optional[Dict[str, Any]] = None):
        self.logger = logging.getLogger(name or __name__)
        self.logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
        self.context = dict(context or {})

    def bind(self, **fields) -> "StructuredLogger":
        """Logger writing to the same channel with extra fields on every record."""
        return StructuredLogger(self.logger.name, {**self.context, **fields})

    def _log_structured(
        self,
        level: str,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
        exception: Optional[BaseException] = None
    ):
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "message": message,
            "service": "deckshot",
            "version": __version__,
            **self.context
        }

        if extra:
            log_data.update(extra)

        if exception:
            log_data["exception"] = describe_exception(exception)

        self.logger.log(logging.getLevelName(level), json.dumps(log_data, default=str))

    def error(self, message: str, extra: Optional[Dict[str, Any]] = None, exception: Optional[BaseException] = None):
        self._log_structured("ERROR", message, extra, exception)

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None, exception: Optional[BaseException] = None):
        self._log_structured("WARNING", message, extra, exception)

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._log_structured("INFO", message, extra)

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None):
        self._log_structured("DEBUG", message, extra)


structured_logger = StructuredLogger("deckshot")
