"""reelup - chunked multipart uploads to S3-compatible storage."""

from reelup.authorization.http import HttpAuthorizationClient
from reelup.coordinator import UploadCoordinator
from reelup.errors import (
    AuthorizationError,
    CompletionError,
    IntegrityTagMissingError,
    InvalidUploadRequest,
    PartTransferError,
    SessionError,
    UploadError,
    UploadFailed,
)
from reelup.limiter import ConcurrencyLimiter
from reelup.models import PartResult, TransferTarget, UploadOutcome, UploadSession, UploadState
from reelup.planner import PartRange, plan_parts
from reelup.sources import BytesSource, FileSource
from reelup.transfer import PartTransport

__version__ = "0.1.0"

__all__ = [
    "AuthorizationError",
    "BytesSource",
    "CompletionError",
    "ConcurrencyLimiter",
    "FileSource",
    "HttpAuthorizationClient",
    "IntegrityTagMissingError",
    "InvalidUploadRequest",
    "PartRange",
    "PartResult",
    "PartTransferError",
    "PartTransport",
    "SessionError",
    "TransferTarget",
    "UploadCoordinator",
    "UploadError",
    "UploadFailed",
    "UploadOutcome",
    "UploadSession",
    "UploadState",
    "plan_parts",
]
