"""FastAPI authorization service for reelup.

Holds the object-store credentials so uploaders do not have to. Exposes
the session lifecycle as a small JSON API:

    POST   /uploads                                  open a session
    GET    /uploads/{upload_id}/parts/{part_number}  pre-sign one part
    POST   /uploads/{upload_id}/complete             assemble the object
    DELETE /uploads/{upload_id}                      abort the session
    POST   /objects                                  pre-sign a single-shot PUT
"""

import logging
import secrets
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from reelup.authorization.s3 import S3PresignAuthorizer
from reelup.config import ReelupConfig
from reelup.errors import InvalidUploadRequest, UploadError
from reelup.models import PartResult, UploadSession

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / response bodies
# ---------------------------------------------------------------------------


class InitiateRequest(BaseModel):
    key: str = Field(min_length=1)
    content_type: str = "application/octet-stream"


class InitiateResponse(BaseModel):
    upload_id: str
    key: str
    content_type: str


class PartUrlResponse(BaseModel):
    url: str
    part_number: int


class CompletedPart(BaseModel):
    etag: str = Field(min_length=1)
    part_number: int = Field(ge=1)


class CompleteRequest(BaseModel):
    key: str = Field(min_length=1)
    parts: list[CompletedPart]


class CompleteResponse(BaseModel):
    url: str


class ObjectUrlResponse(BaseModel):
    url: str
    public_url: str


# Module-level singleton so multiple create_app() calls (e.g. in tests)
# don't re-register the same Prometheus collectors in the global registry.
_instrumentator = None


def _get_instrumentator():
    global _instrumentator
    if _instrumentator is None:
        from prometheus_fastapi_instrumentator import Instrumentator

        _instrumentator = Instrumentator(
            should_instrument_requests_inprogress=True,
            excluded_handlers=["/metrics"],
        )
    return _instrumentator


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(config: ReelupConfig) -> FastAPI:
    """Create and configure the reelup authorization service.

    The lifespan context creates the S3 authorizer from ``config.storage``
    unless one was already placed on ``app.state.authorizer``.

    Args:
        config: The loaded reelup configuration.

    Returns:
        A configured FastAPI application ready to run.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if getattr(app.state, "authorizer", None) is None:
            if not config.storage.bucket:
                raise ValueError("storage.bucket is required to run the authorization service")
            owned = S3PresignAuthorizer(
                bucket_name=config.storage.bucket,
                region=config.storage.region,
                public_base_url=config.storage.public_base_url,
                presign_expires=config.storage.presign_expires_seconds,
                endpoint_url=config.storage.endpoint_url,
                use_path_style=config.storage.use_path_style,
                access_key_id=config.storage.access_key_id,
                secret_access_key=config.storage.secret_access_key,
            )
            await owned.init()
            app.state.authorizer = owned

        yield

        if owned is not None:
            await owned.close()
            app.state.authorizer = None
            logger.info("S3 authorizer closed")

    app = FastAPI(
        title="reelup authorization service",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )
    app.state.config = config
    app.state.authorizer = None

    _register_exception_handlers(app)
    _register_middleware(app, config)

    if config.observability.metrics:
        import reelup.metrics as _metrics

        _metrics.init_metrics()
        _get_instrumentator().instrument(app, metric_namespace="reelup").expose(
            app, endpoint="/metrics"
        )

    _setup_routes(app, config)

    return app


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error_response(code: str, message: str, status: int) -> JSONResponse:
    return JSONResponse({"error": {"code": code, "message": message}}, status_code=status)


def _register_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the FastAPI app."""

    @app.exception_handler(UploadError)
    async def upload_error_handler(request: Request, exc: UploadError) -> Response:
        return _error_response(exc.code, exc.message, exc.http_status)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
        """Map Pydantic / FastAPI validation errors to InvalidUploadRequest."""
        messages = []
        for err in exc.errors():
            loc = " -> ".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", "Invalid value")
            messages.append(f"{loc}: {msg}" if loc else msg)
        combined = "; ".join(messages) or "Invalid request parameters"
        return _error_response(InvalidUploadRequest.code, combined, 400)

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> Response:
        logger.exception("Unhandled exception in request handler")
        return _error_response("InternalError", "We encountered an internal error.", 500)


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _register_middleware(app: FastAPI, config: ReelupConfig) -> None:
    """Register middleware on the FastAPI app.

    Registration order is reversed at runtime, so the execution order is:
    request_log -> token_auth -> handler.
    """

    AUTH_SKIP_PATHS = {"/healthz", "/metrics"}
    _QUIET_PATHS = {"/healthz", "/metrics"}

    @app.middleware("http")
    async def token_auth_middleware(request: Request, call_next) -> Response:
        """Require ``Authorization: Bearer <server.token>`` when a token is set."""
        token = config.server.token
        if not token or request.url.path in AUTH_SKIP_PATHS:
            return await call_next(request)

        presented = request.headers.get("authorization", "")
        if not secrets.compare_digest(presented, f"Bearer {token}"):
            return _error_response("Unauthorized", "Missing or invalid bearer token", 401)
        return await call_next(request)

    @app.middleware("http")
    async def request_log_middleware(request: Request, call_next) -> Response:
        """Tag responses with a request id and log one line per request."""
        request_id = secrets.token_hex(8).upper()
        request.state.request_id = request_id
        start = time.monotonic()

        response = await call_next(request)

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        response.headers["x-request-id"] = request_id

        if request.url.path not in _QUIET_PATHS:
            logger.info(
                "%s %s %d %.2fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "request_id": request_id,
                },
            )
        return response


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _setup_routes(app: FastAPI, config: ReelupConfig) -> None:
    """Register the session lifecycle routes."""

    def authorizer():
        return app.state.authorizer

    if config.observability.health_check:

        @app.get("/healthz")
        async def healthz() -> Response:
            """Liveness probe."""
            return Response(status_code=200)

    @app.post("/uploads", response_model=InitiateResponse)
    async def initiate_upload(body: InitiateRequest) -> InitiateResponse:
        session = await authorizer().initiate(body.key, body.content_type)
        logger.info(
            "Initiated upload %s for %s",
            session.session_id,
            body.key,
            extra={"upload_id": session.session_id, "key": body.key},
        )
        return InitiateResponse(
            upload_id=session.session_id, key=body.key, content_type=body.content_type
        )

    @app.get("/uploads/{upload_id}/parts/{part_number}", response_model=PartUrlResponse)
    async def authorize_part(
        upload_id: str, part_number: int, key: str = Query(min_length=1)
    ) -> PartUrlResponse:
        session = UploadSession(session_id=upload_id, destination_key=key)
        target = await authorizer().authorize_part(session, part_number)
        return PartUrlResponse(url=target.url, part_number=target.part_number)

    @app.post("/uploads/{upload_id}/complete", response_model=CompleteResponse)
    async def complete_upload(upload_id: str, body: CompleteRequest) -> CompleteResponse:
        session = UploadSession(session_id=upload_id, destination_key=body.key)
        parts = [PartResult(part_number=p.part_number, integrity_tag=p.etag) for p in body.parts]
        url = await authorizer().complete(session, parts)
        logger.info(
            "Completed upload %s with %d parts",
            upload_id,
            len(parts),
            extra={"upload_id": upload_id, "key": body.key},
        )
        return CompleteResponse(url=url)

    @app.delete("/uploads/{upload_id}", status_code=204)
    async def abort_upload(upload_id: str, key: str = Query(min_length=1)) -> Response:
        session = UploadSession(session_id=upload_id, destination_key=key)
        await authorizer().abort(session)
        logger.info("Aborted upload %s", upload_id, extra={"upload_id": upload_id, "key": key})
        return Response(status_code=204)

    @app.post("/objects", response_model=ObjectUrlResponse)
    async def authorize_object(body: InitiateRequest) -> ObjectUrlResponse:
        target = await authorizer().authorize_object(body.key, body.content_type)
        return ObjectUrlResponse(url=target.url, public_url=target.public_url)
