"""HTTP client for the reelup authorization service.

The uploader usually runs where object-store credentials are not
available. It asks the authorization service (``reelup.server``) to open
sessions, pre-sign part URLs and finalize uploads over a small JSON API.
"""

import logging

import httpx

from reelup.errors import (
    ERRORS_BY_CODE,
    AbortError,
    AuthorizationError,
    CompletionError,
    SessionError,
    UploadError,
)
from reelup.models import PartResult, TransferTarget, UploadSession

logger = logging.getLogger(__name__)


class HttpAuthorizationClient:
    """Upload authorization over the service's JSON API.

    Attributes:
        base_url: Root URL of the authorization service.
    """

    def __init__(
        self,
        base_url: str = "",
        token: str = "",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
        client.headers.update(headers)
        self._client = client

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpAuthorizationClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _call(
        self,
        method: str,
        path: str,
        error_cls: type[UploadError],
        part_number: int | None = None,
        **kwargs,
    ) -> httpx.Response:
        """Send one request, translating failures into ``error_cls``.

        A structured error body whose code names a known error type is
        re-raised as that type; anything else becomes ``error_cls``.
        """
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise error_cls(f"{method} {path} failed: {e}", part_number=part_number) from e

        if resp.is_success:
            return resp

        code, message = "", resp.text
        try:
            body = resp.json()
        except ValueError:
            body = None
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            code = str(error.get("code", ""))
            message = str(error.get("message", message))
        elif isinstance(error, str):
            message = error
        cls = ERRORS_BY_CODE.get(code, error_cls)
        raise cls(f"{message} (HTTP {resp.status_code})", part_number=part_number)

    @staticmethod
    def _json(
        resp: httpx.Response,
        error_cls: type[UploadError],
        *fields: str,
        part_number: int | None = None,
    ) -> dict:
        """Decode a success body, requiring non-empty ``fields``."""
        try:
            body = resp.json()
        except ValueError as e:
            raise error_cls(
                f"Service replied with a non-JSON body (HTTP {resp.status_code})",
                part_number=part_number,
            ) from e
        if not isinstance(body, dict):
            raise error_cls("Service replied with a non-object JSON body", part_number=part_number)
        missing = [f for f in fields if not body.get(f)]
        if missing:
            raise error_cls(
                f"Service reply is missing {', '.join(missing)}", part_number=part_number
            )
        return body

    async def initiate(self, destination_key: str, content_type: str) -> UploadSession:
        resp = await self._call(
            "POST",
            "/uploads",
            SessionError,
            json={"key": destination_key, "content_type": content_type},
        )
        upload_id = self._json(resp, SessionError, "upload_id")["upload_id"]
        return UploadSession(
            session_id=upload_id,
            destination_key=destination_key,
            content_type=content_type,
        )

    async def authorize_part(self, session: UploadSession, part_number: int) -> TransferTarget:
        resp = await self._call(
            "GET",
            f"/uploads/{session.session_id}/parts/{part_number}",
            AuthorizationError,
            part_number=part_number,
            params={"key": session.destination_key},
        )
        body = self._json(resp, AuthorizationError, "url", part_number=part_number)
        return TransferTarget(url=body["url"], part_number=part_number)

    async def complete(self, session: UploadSession, parts: list[PartResult]) -> str:
        resp = await self._call(
            "POST",
            f"/uploads/{session.session_id}/complete",
            CompletionError,
            json={
                "key": session.destination_key,
                "parts": [
                    {"etag": p.integrity_tag, "part_number": p.part_number} for p in parts
                ],
            },
        )
        return self._json(resp, CompletionError, "url")["url"]

    async def abort(self, session: UploadSession) -> None:
        await self._call(
            "DELETE",
            f"/uploads/{session.session_id}",
            AbortError,
            params={"key": session.destination_key},
        )

    async def authorize_object(self, destination_key: str, content_type: str) -> TransferTarget:
        resp = await self._call(
            "POST",
            "/objects",
            AuthorizationError,
            json={"key": destination_key, "content_type": content_type},
        )
        body = self._json(resp, AuthorizationError, "url")
        return TransferTarget(url=body["url"], part_number=0, public_url=body.get("public_url", ""))
