"""Shared pytest fixtures for reelup tests.

Uploads run against two in-process fakes:

* ``FakeAuthorizer`` implements the authorization client protocol and
  records every call, so tests can assert on what was (not) invoked.
* ``FakeStore`` is an ``httpx.MockTransport`` handler playing the object
  store behind the pre-signed URLs. It keeps the bytes it receives and
  answers with an MD5 ETag, with per-part failures and delays on request.

A single metrics-enabled FastAPI app is created per test session to avoid
duplicate Prometheus metric registration; other app fixtures disable
metrics.
"""

import asyncio
import hashlib
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from reelup.config import ObservabilityConfig, ReelupConfig, ServerConfig, StorageConfig
from reelup.errors import AbortError, AuthorizationError, CompletionError, SessionError
from reelup.models import PartResult, TransferTarget, UploadSession
from reelup.server import create_app
from reelup.transfer import PartTransport

MIB = 1024 * 1024
STORE = "https://store.test"
CDN = "https://cdn.test"


class FakeAuthorizer:
    """In-memory UploadAuthorizationClient that records its calls."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.completed: list[PartResult] | None = None
        self.fail_initiate = False
        self.fail_authorize: set[int] = set()
        self.fail_complete = False
        self.fail_abort = False
        self.complete_gate: asyncio.Event | None = None
        self._next_id = 0

    def called(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def initiate(self, destination_key: str, content_type: str) -> UploadSession:
        self.calls.append(("initiate", destination_key, content_type))
        if self.fail_initiate:
            raise SessionError("store unavailable")
        self._next_id += 1
        return UploadSession(
            session_id=f"upload-{self._next_id}",
            destination_key=destination_key,
            content_type=content_type,
        )

    async def authorize_part(self, session: UploadSession, part_number: int) -> TransferTarget:
        self.calls.append(("authorize_part", session.session_id, part_number))
        if part_number in self.fail_authorize:
            raise AuthorizationError("session expired", part_number=part_number)
        url = (
            f"{STORE}/{session.destination_key}"
            f"?uploadId={session.session_id}&partNumber={part_number}"
        )
        return TransferTarget(url=url, part_number=part_number)

    async def complete(self, session: UploadSession, parts: list[PartResult]) -> str:
        self.calls.append(("complete", session.session_id, [p.part_number for p in parts]))
        if self.complete_gate is not None:
            await self.complete_gate.wait()
        if self.fail_complete:
            raise CompletionError("EntityTooSmall")
        self.completed = list(parts)
        return f"{CDN}/{session.destination_key}"

    async def abort(self, session: UploadSession) -> None:
        self.calls.append(("abort", session.session_id))
        if self.fail_abort:
            raise AbortError("store unavailable")

    async def authorize_object(self, destination_key: str, content_type: str) -> TransferTarget:
        self.calls.append(("authorize_object", destination_key, content_type))
        return TransferTarget(
            url=f"{STORE}/{destination_key}?X-Amz-Signature=abc",
            part_number=0,
            public_url=f"{CDN}/{destination_key}",
        )


class FakeStore:
    """Object store behind pre-signed URLs, as an httpx MockTransport handler.

    Attributes:
        parts: Received part bodies keyed by part number.
        objects: Single-shot object bodies keyed by path.
        status: Per-part HTTP status overrides.
        no_etag: Part numbers answered without an ETag header.
        delays: Per-part response delays in seconds.
        active / peak: Concurrent PUTs currently open / the maximum seen.
        finished: Part numbers in the order their PUTs finished.
    """

    def __init__(self) -> None:
        self.parts: dict[int, bytes] = {}
        self.objects: dict[str, bytes] = {}
        self.headers: dict[str, httpx.Headers] = {}
        self.status: dict[int, int] = {}
        self.no_etag: set[int] = set()
        self.delays: dict[int, float] = {}
        self.active = 0
        self.peak = 0
        self.finished: list[int] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        assert request.method == "PUT"
        url = urlsplit(str(request.url))
        query = parse_qs(url.query)
        body = await request.aread()

        if "partNumber" not in query:
            self.objects[url.path] = body
            self.headers[url.path] = request.headers
            return httpx.Response(200, headers={"ETag": f'"{hashlib.md5(body).hexdigest()}"'})

        part_number = int(query["partNumber"][0])
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delays.get(part_number, 0))
        finally:
            self.active -= 1
        self.finished.append(part_number)

        status = self.status.get(part_number, 200)
        if status >= 300:
            return httpx.Response(status, text="InternalError")
        self.parts[part_number] = body
        headers = {}
        if part_number not in self.no_etag:
            headers["ETag"] = f'"{hashlib.md5(body).hexdigest()}"'
        return httpx.Response(status, headers=headers)

    def assembled(self) -> bytes:
        return b"".join(self.parts[n] for n in sorted(self.parts))


@pytest.fixture
def authorizer() -> FakeAuthorizer:
    return FakeAuthorizer()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
async def transport(store: FakeStore) -> PartTransport:
    """PartTransport whose HTTP client is wired to the fake store."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(store))
    async with PartTransport(client=client) as t:
        yield t
    await client.aclose()


@pytest.fixture(scope="session")
def config() -> ReelupConfig:
    """Service config with metrics on and no bearer token."""
    return ReelupConfig(
        server=ServerConfig(host="127.0.0.1", port=9110),
        storage=StorageConfig(bucket="reels", public_base_url=CDN),
    )


@pytest.fixture(scope="session")
def app(config: ReelupConfig):
    """A single metrics-enabled app for the whole session."""
    return create_app(config)


@pytest.fixture
async def client(app, authorizer: FakeAuthorizer) -> httpx.AsyncClient:
    """Async test client for the service, backed by a fresh FakeAuthorizer.

    The lifespan does not run under ASGITransport, so the authorizer is
    placed on app.state directly.
    """
    app.state.authorizer = authorizer
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
    app.state.authorizer = None


@pytest.fixture
def app_factory():
    """Build metrics-disabled apps with a given authorizer installed."""

    def make_app(authorizer, **server_overrides):
        config = ReelupConfig(
            server=ServerConfig(**server_overrides),
            storage=StorageConfig(bucket="reels", public_base_url=CDN),
            observability=ObservabilityConfig(metrics=False),
        )
        app = create_app(config)
        app.state.authorizer = authorizer
        return app

    return make_app
