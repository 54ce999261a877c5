"""Upload authorization client protocol for reelup."""

from typing import Protocol

from reelup.models import PartResult, TransferTarget, UploadSession


class UploadAuthorizationClient(Protocol):
    """Protocol defining the capabilities the upload coordinator relies on.

    Implementations either talk to the object store directly
    (``S3PresignAuthorizer``) or to an authorization service that does so on
    their behalf (``HttpAuthorizationClient``). Neither retries internally;
    retry policy belongs to the caller.
    """

    async def initiate(self, destination_key: str, content_type: str) -> UploadSession:
        """Open a multipart upload session.

        Args:
            destination_key: The object key to assemble.
            content_type: MIME type of the final object.

        Returns:
            The open session.

        Raises:
            SessionError: If the store or service refuses or cannot be reached.
        """
        ...

    async def authorize_part(self, session: UploadSession, part_number: int) -> TransferTarget:
        """Obtain a single-use write target for one part.

        Args:
            session: The open session.
            part_number: 1-based part number.

        Returns:
            A pre-signed PUT target for the part.

        Raises:
            AuthorizationError: If the session is unknown or expired, or the
                part number is out of range.
        """
        ...

    async def complete(self, session: UploadSession, parts: list[PartResult]) -> str:
        """Assemble the uploaded parts into the final object.

        Args:
            session: The open session.
            parts: Part results sorted ascending by part number.

        Returns:
            The public URL of the assembled object.

        Raises:
            CompletionError: If parts are missing or out of order, or the store
                rejects the reassembly.
        """
        ...

    async def abort(self, session: UploadSession) -> None:
        """Abandon the session and let the store discard uploaded parts.

        Raises:
            AbortError: If the store or service rejects the abort.
        """
        ...

    async def authorize_object(self, destination_key: str, content_type: str) -> TransferTarget:
        """Obtain a single-shot PUT target for a whole object.

        Used for zero-length sources, which multipart assembly cannot express.
        The returned target carries the public URL the object will be served from.

        Raises:
            AuthorizationError: If the write cannot be authorized.
        """
        ...
