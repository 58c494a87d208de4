"""Pydantic schemas for the upload pipeline."""
from .upload import *

__all__ = [
    "DecodedBlob",
    "UploadSession",
    "PartResult",
    "CreateSessionRequest",
    "CompleteUploadRequest",
    "BatchProgress",
    "UploadOutcome",
]
