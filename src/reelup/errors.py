"""Upload error definitions for reelup."""


class UploadError(Exception):
    """A multipart upload error with code, message, and HTTP status.

    Attributes:
        code: Stable error code string (e.g. "SessionError").
        message: Human-readable error description.
        http_status: The HTTP status the authorization service answers with.
        part_number: The part the error belongs to, when it is part-scoped.
    """

    code = "UploadError"
    http_status = 500

    def __init__(self, message: str, part_number: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.part_number = part_number

    def __str__(self) -> str:
        if self.part_number is not None:
            return f"part {self.part_number}: {self.message}"
        return self.message


class InvalidUploadRequest(UploadError, ValueError):
    """The caller violated an upload precondition; nothing was sent."""

    code = "InvalidUploadRequest"
    http_status = 400


class SessionError(UploadError):
    """Initiating the multipart session failed."""

    code = "SessionError"
    http_status = 502


class AuthorizationError(UploadError):
    """A part (or single-shot object) write could not be authorized."""

    code = "AuthorizationError"
    http_status = 403


class PartTransferError(UploadError):
    """The byte transfer answered with a non-success status."""

    code = "PartTransferError"
    http_status = 502

    def __init__(
        self, message: str, part_number: int | None = None, status_code: int | None = None
    ) -> None:
        super().__init__(message, part_number=part_number)
        self.status_code = status_code


class IntegrityTagMissingError(UploadError):
    """The transfer succeeded by status but returned no ETag."""

    code = "IntegrityTagMissingError"
    http_status = 502


class CompletionError(UploadError):
    """Finalizing the multipart session failed."""

    code = "CompletionError"
    http_status = 409


class AbortError(UploadError):
    """Abandoning the multipart session failed."""

    code = "AbortError"
    http_status = 502


class UploadFailed(UploadError):
    """One or more parts failed; the session was never completed.

    Attributes:
        errors: Every part error, ordered by part number.
    """

    code = "UploadFailed"
    http_status = 502

    def __init__(self, errors: list[UploadError]) -> None:
        if not errors:
            raise ValueError("UploadFailed requires at least one underlying error")
        self.errors = sorted(errors, key=lambda e: e.part_number or 0)
        first = self.errors[0]
        if len(self.errors) == 1:
            message = f"upload failed: {first}"
        else:
            message = f"upload failed: {first} (and {len(self.errors) - 1} more)"
        super().__init__(message)

    @property
    def first(self) -> UploadError:
        """The error of the lowest-numbered failing part."""
        return self.errors[0]


# Lookup used when an error crosses the HTTP boundary by its code.
ERRORS_BY_CODE: dict[str, type[UploadError]] = {
    cls.code: cls
    for cls in (
        InvalidUploadRequest,
        SessionError,
        AuthorizationError,
        PartTransferError,
        IntegrityTagMissingError,
        CompletionError,
        AbortError,
    )
}
