"""Data model types for reelup uploads.

These dataclasses carry state between the coordinator and the
authorization client: the open multipart session, a per-part write
target, the per-part result, and the terminal outcome.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


@dataclass(frozen=True)
class UploadSession:
    """An open multipart upload on the object store.

    Attributes:
        session_id: Opaque upload id issued by the store.
        destination_key: The object key being assembled.
        content_type: MIME type of the final object.
    """

    session_id: str
    destination_key: str
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class TransferTarget:
    """A time-bounded, single-use write endpoint for one part.

    Attributes:
        url: Pre-signed HTTP PUT URL.
        part_number: The part this URL is valid for (0 for a single-shot object).
        public_url: Where a single-shot object will be served from, if known.
    """

    url: str
    part_number: int
    public_url: str = ""


@dataclass(frozen=True)
class PartResult:
    """A successfully transferred part.

    Attributes:
        part_number: 1-based part number.
        integrity_tag: The ETag the store returned for the part.
    """

    part_number: int
    integrity_tag: str

    def __post_init__(self) -> None:
        if not self.integrity_tag:
            raise ValueError(f"Part {self.part_number} has an empty integrity tag")

    def to_manifest(self) -> dict:
        """Render as an S3 ``CompleteMultipartUpload`` part entry."""
        return {"ETag": self.integrity_tag, "PartNumber": self.part_number}


@dataclass(frozen=True)
class UploadOutcome:
    """The terminal artifact of a successful upload.

    Attributes:
        url: Public URL of the assembled object.
        key: The destination key.
        size: Total bytes uploaded.
        part_count: Number of parts (0 for the single-shot path).
    """

    url: str
    key: str
    size: int = 0
    part_count: int = 0


class UploadState(str, enum.Enum):
    """Lifecycle of a single ``upload()`` invocation."""

    UNINITIATED = "uninitiated"
    SESSION_OPEN = "session_open"
    PARTS_IN_FLIGHT = "parts_in_flight"
    ALL_PARTS_SUCCEEDED = "all_parts_succeeded"
    ANY_PART_FAILED = "any_part_failed"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (UploadState.COMPLETED, UploadState.ABORTED)
