"""Upload authorization clients for reelup."""

from typing import TYPE_CHECKING

from reelup.authorization.base import UploadAuthorizationClient

if TYPE_CHECKING:
    from reelup.config import ReelupConfig

__all__ = ["UploadAuthorizationClient", "create_authorizer"]


def create_authorizer(config: "ReelupConfig") -> UploadAuthorizationClient:
    """Create an upload authorization client based on configuration.

    Supports 'http' (talk to a reelup authorization service) and 's3'
    (pre-sign directly with local store credentials).

    Args:
        config: The ReelupConfig.

    Returns:
        An object implementing UploadAuthorizationClient. S3 authorizers
        still need ``await authorizer.init()`` before use.
    """
    mode = config.authorization.mode
    if mode == "http":
        from reelup.authorization.http import HttpAuthorizationClient

        if not config.authorization.base_url:
            raise ValueError("authorization.http.base_url is required when mode is 'http'")
        return HttpAuthorizationClient(
            base_url=config.authorization.base_url,
            token=config.authorization.token,
            timeout=config.authorization.timeout_seconds,
        )
    elif mode == "s3":
        from reelup.authorization.s3 import S3PresignAuthorizer

        if not config.storage.bucket:
            raise ValueError("storage.bucket is required when mode is 's3'")
        return S3PresignAuthorizer(
            bucket_name=config.storage.bucket,
            region=config.storage.region,
            public_base_url=config.storage.public_base_url,
            presign_expires=config.storage.presign_expires_seconds,
            endpoint_url=config.storage.endpoint_url,
            use_path_style=config.storage.use_path_style,
            access_key_id=config.storage.access_key_id,
            secret_access_key=config.storage.secret_access_key,
        )
    else:
        raise ValueError(f"Unknown authorization mode: {mode}")

