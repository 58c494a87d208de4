"""Multipart upload schemas."""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Tuple


class DecodedBlob(BaseModel):
    """Binary payload decoded from a data URL."""
    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


class UploadSession(BaseModel):
    """Multipart session opened by the coordinator for one file."""
    model_config = ConfigDict(populate_by_name=True)

    upload_id: str = Field(alias="uploadId", min_length=1)
    key: str = Field(min_length=1)
    part_size: int = Field(alias="partSize", gt=0)
    total_parts: int = Field(alias="totalParts", ge=0)

    def expected_parts(self, size: int) -> int:
        """Number of parts needed to cover ``size`` bytes."""
        return -(-size // self.part_size)

    def part_range(self, part_number: int, size: int) -> Tuple[int, int]:
        """Byte range ``[start, end)`` covered by a 1-based part number."""
        if not 1 <= part_number <= self.total_parts:
            raise ValueError(f"Part {part_number} outside 1..{self.total_parts}")
        start = (part_number - 1) * self.part_size
        end = min(start + self.part_size, size)
        return start, end

    def identity(self) -> Dict[str, str]:
        """Body fields that name this session on the coordinator."""
        return {"key": self.key, "uploadId": self.upload_id}


class PartResult(BaseModel):
    """Integrity token returned by storage for one part."""
    model_config = ConfigDict(populate_by_name=True)

    part_number: int = Field(alias="PartNumber", ge=1)
    etag: str = Field(alias="ETag", min_length=1)


class CreateSessionRequest(BaseModel):
    """Body of ``POST /upload/create``."""
    filename: str
    mime: str
    size: int = Field(ge=0)


class CompleteUploadRequest(BaseModel):
    """Body of ``PATCH /upload/complete``; parts must be ascending."""
    model_config = ConfigDict(populate_by_name=True)

    key: str
    upload_id: str = Field(alias="uploadId")
    parts: List[PartResult]

    @field_validator("parts")
    @classmethod
    def parts_ascending(cls, parts: List[PartResult]) -> List[PartResult]:
        numbers = [part.part_number for part in parts]
        if numbers != sorted(set(numbers)):
            raise ValueError("parts must be unique and ascending by PartNumber")
        return parts


class BatchProgress(BaseModel):
    """Aggregate progress across every file in a batch."""
    uploaded_bytes: int
    total_bytes: int
    percent: int
    current_file: int
    total_files: int


class UploadOutcome(BaseModel):
    """Storage key for one input, kept at the input's position."""
    storage_key: str
    original_filename: str
