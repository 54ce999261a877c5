"""Tests for part PUTs to pre-signed URLs."""

import httpx
import pytest

from reelup.errors import IntegrityTagMissingError, PartTransferError
from reelup.models import TransferTarget
from reelup.transfer import PartTransport


def _transport(handler) -> PartTransport:
    return PartTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _target(part_number: int = 1) -> TransferTarget:
    return TransferTarget(url=f"https://store.test/k?partNumber={part_number}", part_number=part_number)


class TestPutPart:
    """put_part returns the ETag or fails with a typed error."""

    async def test_returns_etag(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["body"] = request.content
            return httpx.Response(200, headers={"ETag": '"abc123"'})

        etag = await _transport(handler).put_part(_target(), b"payload")
        assert etag == '"abc123"'
        assert seen == {"method": "PUT", "body": b"payload"}

    async def test_non_success_status(self):
        transport = _transport(lambda request: httpx.Response(500))
        with pytest.raises(PartTransferError) as excinfo:
            await transport.put_part(_target(2), b"x")
        assert excinfo.value.status_code == 500
        assert excinfo.value.part_number == 2

    async def test_forbidden_expired_url(self):
        transport = _transport(lambda request: httpx.Response(403, text="Request has expired"))
        with pytest.raises(PartTransferError, match="HTTP 403"):
            await transport.put_part(_target(), b"x")

    async def test_missing_etag(self):
        transport = _transport(lambda request: httpx.Response(200))
        with pytest.raises(IntegrityTagMissingError) as excinfo:
            await transport.put_part(_target(3), b"x")
        assert excinfo.value.part_number == 3

    async def test_empty_etag_is_missing(self):
        transport = _transport(lambda request: httpx.Response(200, headers={"ETag": ""}))
        with pytest.raises(IntegrityTagMissingError):
            await transport.put_part(_target(), b"x")

    async def test_network_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(PartTransferError, match="PUT failed") as excinfo:
            await _transport(handler).put_part(_target(4), b"x")
        assert excinfo.value.status_code is None
        assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


class TestPutObject:
    """put_object sends the content type and needs no ETag."""

    async def test_sends_content_type(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["content_type"] = request.headers.get("content-type")
            return httpx.Response(200)

        target = TransferTarget(url="https://store.test/empty.mp4", part_number=0)
        await _transport(handler).put_object(target, b"", "video/mp4")
        assert seen["content_type"] == "video/mp4"

    async def test_failure_status(self):
        target = TransferTarget(url="https://store.test/empty.mp4", part_number=0)
        with pytest.raises(PartTransferError) as excinfo:
            await _transport(lambda request: httpx.Response(400)).put_object(target, b"", "video/mp4")
        assert excinfo.value.part_number is None


class TestLifecycle:
    """The transport closes only clients it created."""

    async def test_does_not_close_injected_client(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        async with PartTransport(client=client):
            pass
        assert not client.is_closed
        await client.aclose()

    async def test_closes_own_client(self):
        transport = PartTransport()
        await transport.close()
        assert transport._client.is_closed
