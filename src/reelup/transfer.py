"""Byte transfer to pre-signed PUT targets."""

import logging
import time

import httpx

from reelup.errors import IntegrityTagMissingError, PartTransferError
from reelup.models import TransferTarget

logger = logging.getLogger(__name__)


class PartTransport:
    """PUTs part bytes to pre-signed URLs and reads back the ETag.

    One ``httpx.AsyncClient`` (and its connection pool) is shared by all
    parts of all uploads going through this transport.
    """

    def __init__(
        self,
        timeout: float = 300.0,
        max_connections: int = 16,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(
                timeout=timeout,
                limits=httpx.Limits(max_connections=max_connections),
            )
        self._client = client

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "PartTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _put(
        self, target: TransferTarget, data: bytes, headers: dict[str, str] | None = None
    ) -> httpx.Response:
        part_number = target.part_number or None
        start = time.monotonic()
        try:
            resp = await self._client.put(target.url, content=data, headers=headers)
        except httpx.HTTPError as e:
            raise PartTransferError(f"PUT failed: {e}", part_number=part_number) from e

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        logger.debug(
            "PUT part %s: %d bytes -> HTTP %d in %.2fms",
            target.part_number,
            len(data),
            resp.status_code,
            duration_ms,
            extra={
                "part_number": target.part_number,
                "status": resp.status_code,
                "duration_ms": duration_ms,
            },
        )
        if not resp.is_success:
            raise PartTransferError(
                f"store answered HTTP {resp.status_code}",
                part_number=part_number,
                status_code=resp.status_code,
            )
        return resp

    async def put_part(self, target: TransferTarget, data: bytes) -> str:
        """Write one part with a single PUT.

        Returns:
            The ETag header value exactly as the store sent it.

        Raises:
            PartTransferError: On a non-2xx status or a transport failure.
            IntegrityTagMissingError: If a 2xx response has no ETag.
        """
        resp = await self._put(target, data)
        etag = resp.headers.get("ETag")
        if not etag:
            raise IntegrityTagMissingError(
                "store response carried no ETag header", part_number=target.part_number
            )
        return etag

    async def put_object(self, target: TransferTarget, data: bytes, content_type: str) -> None:
        """Write a whole object with a single PUT (no ETag required)."""
        await self._put(target, data, headers={"Content-Type": content_type})
