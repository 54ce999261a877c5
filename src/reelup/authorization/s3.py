"""S3-compatible upload authorizer for reelup.

Talks to the object store with aiobotocore and hands out pre-signed URLs,
so part bytes never pass through this process:

    initiate        -> CreateMultipartUpload
    authorize_part  -> pre-signed UploadPart URL
    complete        -> CompleteMultipartUpload, returns {public_base_url}/{key}
    abort           -> AbortMultipartUpload
    authorize_object-> pre-signed PutObject URL

Credentials are resolved via the standard AWS credential chain unless
explicit keys are configured. Works against AWS, Backblaze B2, MinIO and
other S3-compatible endpoints.
"""

import logging

from aiobotocore.session import AioSession
from botocore.exceptions import BotoCoreError, ClientError

from reelup.errors import AbortError, AuthorizationError, CompletionError, SessionError
from reelup.models import PartResult, TransferTarget, UploadSession
from reelup.planner import MAX_PARTS

logger = logging.getLogger(__name__)


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


class S3PresignAuthorizer:
    """Upload authorizer backed by an S3-compatible bucket.

    Attributes:
        bucket_name: The bucket objects are assembled in.
        region: The bucket region.
        public_base_url: Base URL assembled objects are served from (e.g. a CDN).
        presign_expires: Lifetime of pre-signed URLs in seconds.
    """

    def __init__(
        self,
        bucket_name: str,
        region: str = "us-east-1",
        public_base_url: str = "",
        presign_expires: int = 3600,
        endpoint_url: str = "",
        use_path_style: bool = False,
        access_key_id: str = "",
        secret_access_key: str = "",
    ) -> None:
        self.bucket_name = bucket_name
        self.region = region
        self.public_base_url = public_base_url.rstrip("/")
        self.presign_expires = presign_expires
        self.endpoint_url = endpoint_url
        self.use_path_style = use_path_style
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self._session = AioSession()
        self._client = None
        self._client_ctx = None

    async def init(self) -> None:
        """Create the aiobotocore S3 client."""
        client_kwargs: dict = {"region_name": self.region}
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url
        if self.use_path_style:
            from botocore.config import Config as BotoConfig

            client_kwargs["config"] = BotoConfig(
                s3={"addressing_style": "path"}, signature_version="s3v4"
            )

        if self.access_key_id and self.secret_access_key:
            session = AioSession()
            session.set_credentials(self.access_key_id, self.secret_access_key)
            self._session = session
        self._client_ctx = self._session.create_client("s3", **client_kwargs)
        self._client = await self._client_ctx.__aenter__()

        logger.info(
            "S3 authorizer initialized: bucket=%s region=%s endpoint=%s",
            self.bucket_name,
            self.region,
            self.endpoint_url or "default",
        )

    async def close(self) -> None:
        """Close the aiobotocore client session."""
        if self._client_ctx is not None:
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None
            self._client_ctx = None

    async def __aenter__(self) -> "S3PresignAuthorizer":
        await self.init()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def public_url(self, key: str) -> str:
        """Return the URL an assembled object is served from."""
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket_name}/{key}"
        return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com/{key}"

    async def initiate(self, destination_key: str, content_type: str) -> UploadSession:
        try:
            resp = await self._client.create_multipart_upload(
                Bucket=self.bucket_name,
                Key=destination_key,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise SessionError(f"CreateMultipartUpload failed for {destination_key}: {e}") from e

        upload_id = resp.get("UploadId")
        if not upload_id:
            raise SessionError(f"Store returned no UploadId for {destination_key}")

        logger.debug("Opened multipart upload %s for %s", upload_id, destination_key)
        return UploadSession(
            session_id=upload_id,
            destination_key=destination_key,
            content_type=content_type,
        )

    async def authorize_part(self, session: UploadSession, part_number: int) -> TransferTarget:
        if not 1 <= part_number <= MAX_PARTS:
            raise AuthorizationError(
                f"Part number must be between 1 and {MAX_PARTS}", part_number=part_number
            )
        try:
            url = await self._client.generate_presigned_url(
                "upload_part",
                Params={
                    "Bucket": self.bucket_name,
                    "Key": session.destination_key,
                    "UploadId": session.session_id,
                    "PartNumber": part_number,
                },
                ExpiresIn=self.presign_expires,
            )
        except (ClientError, BotoCoreError) as e:
            raise AuthorizationError(f"Cannot presign part: {e}", part_number=part_number) from e
        return TransferTarget(url=url, part_number=part_number)

    async def complete(self, session: UploadSession, parts: list[PartResult]) -> str:
        if not parts:
            raise CompletionError("Cannot complete a multipart upload with no parts")
        numbers = [p.part_number for p in parts]
        if any(b <= a for a, b in zip(numbers, numbers[1:])):
            raise CompletionError("Parts must be in strictly ascending part-number order")

        try:
            await self._client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=session.destination_key,
                UploadId=session.session_id,
                MultipartUpload={"Parts": [p.to_manifest() for p in parts]},
            )
        except ClientError as e:
            raise CompletionError(
                f"CompleteMultipartUpload rejected ({_error_code(e) or 'unknown'}): {e}"
            ) from e
        except BotoCoreError as e:
            raise CompletionError(f"CompleteMultipartUpload failed: {e}") from e

        return self.public_url(session.destination_key)

    async def abort(self, session: UploadSession) -> None:
        try:
            await self._client.abort_multipart_upload(
                Bucket=self.bucket_name,
                Key=session.destination_key,
                UploadId=session.session_id,
            )
        except ClientError as e:
            # Already gone is as good as aborted.
            if _error_code(e) == "NoSuchUpload":
                return
            raise AbortError(f"AbortMultipartUpload failed: {e}") from e
        except BotoCoreError as e:
            raise AbortError(f"AbortMultipartUpload failed: {e}") from e

    async def authorize_object(self, destination_key: str, content_type: str) -> TransferTarget:
        try:
            url = await self._client.generate_presigned_url(
                "put_object",
                Params={
                    "Bucket": self.bucket_name,
                    "Key": destination_key,
                    "ContentType": content_type,
                },
                ExpiresIn=self.presign_expires,
            )
        except (ClientError, BotoCoreError) as e:
            raise AuthorizationError(f"Cannot presign object write: {e}") from e
        return TransferTarget(url=url, part_number=0, public_url=self.public_url(destination_key))
