"""Multipart upload coordinator for reelup.

Drives one upload end to end:

    initiate -> plan parts -> transfer parts (bounded) -> complete

Part transfers run through a :class:`ConcurrencyLimiter`. If any part
fails, parts not yet admitted are skipped, admitted ones run to a
terminal state, the session is aborted, and :class:`UploadFailed` is
raised. ``complete`` is called only when every planned part produced an
ETag, with results sorted by part number.

Zero-length sources never open a multipart session (stores reject
completion with zero parts); they are written with a single PUT instead.
"""

import asyncio
import logging
from collections.abc import Callable
from urllib.parse import urlsplit, urlunsplit

from reelup import metrics
from reelup.authorization.base import UploadAuthorizationClient
from reelup.errors import (
    AuthorizationError,
    CompletionError,
    InvalidUploadRequest,
    PartTransferError,
    UploadError,
    UploadFailed,
)
from reelup.limiter import ConcurrencyLimiter
from reelup.models import PartResult, UploadOutcome, UploadSession, UploadState
from reelup.planner import MAX_PARTS, PartRange, plan_parts
from reelup.sources import ByteSource, SourceLike, as_source
from reelup.transfer import PartTransport

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 10 * 1024 * 1024
DEFAULT_CONCURRENCY = 4
DEFAULT_CONTENT_TYPE = "application/octet-stream"

ProgressCallback = Callable[[int, int], None]


def _record(counter, label: str | None = None, amount: float = 1) -> None:
    if counter is None:
        return
    (counter.labels(label) if label else counter).inc(amount)


class UploadCoordinator:
    """Uploads one byte source at a time as a multipart object.

    Attributes:
        authorizer: Opens, signs, completes and aborts sessions.
        transport: Performs the part PUTs.
        chunk_size: Default part size in bytes.
        concurrency: Default number of parts on the wire at once.
        on_progress: Optional ``(bytes_done, total_bytes)`` callback, called
            after each part is accepted.
        state: Lifecycle state of the current (or last) upload.
    """

    def __init__(
        self,
        authorizer: UploadAuthorizationClient,
        transport: PartTransport,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        concurrency: int = DEFAULT_CONCURRENCY,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.authorizer = authorizer
        self.transport = transport
        self.chunk_size = chunk_size
        self.concurrency = concurrency
        self.on_progress = on_progress
        self.state = UploadState.UNINITIATED
        self._busy = False

    async def upload(
        self,
        source: SourceLike,
        destination_key: str,
        content_type: str = DEFAULT_CONTENT_TYPE,
        chunk_size: int | None = None,
        concurrency: int | None = None,
    ) -> UploadOutcome:
        """Upload ``source`` to ``destination_key``.

        Args:
            source: Bytes-like object or a :class:`ByteSource`.
            destination_key: Object key to write.
            content_type: MIME type of the final object.
            chunk_size: Part size in bytes; defaults to ``self.chunk_size``.
            concurrency: Parallel part transfers; defaults to ``self.concurrency``.

        Returns:
            The outcome carrying the public URL.

        Raises:
            InvalidUploadRequest: A precondition failed; nothing was sent.
            SessionError: The session could not be opened.
            UploadFailed: One or more parts failed; ``complete`` was not called.
            CompletionError: All parts landed but finalizing failed.
        """
        chunk_size = self.chunk_size if chunk_size is None else chunk_size
        concurrency = self.concurrency if concurrency is None else concurrency
        src = self._check_preconditions(source, destination_key, chunk_size, concurrency)

        if self._busy:
            raise RuntimeError("UploadCoordinator runs one upload at a time")
        self._busy = True
        self.state = UploadState.UNINITIATED
        try:
            if src.size == 0:
                return await self._upload_empty(destination_key, content_type)
            return await self._upload_multipart(
                src, destination_key, content_type, chunk_size, concurrency
            )
        finally:
            self._busy = False

    @staticmethod
    def _check_preconditions(
        source: SourceLike, destination_key: str, chunk_size: int, concurrency: int
    ) -> ByteSource:
        if not destination_key:
            raise InvalidUploadRequest("destination_key must not be empty")
        if chunk_size <= 0:
            raise InvalidUploadRequest(f"chunk_size must be > 0, got {chunk_size}")
        if concurrency < 1:
            raise InvalidUploadRequest(f"concurrency must be >= 1, got {concurrency}")
        try:
            src = as_source(source)
        except TypeError as e:
            raise InvalidUploadRequest(str(e)) from e
        part_count = -(-src.size // chunk_size)
        if part_count > MAX_PARTS:
            raise InvalidUploadRequest(
                f"{src.size} bytes in {chunk_size}-byte parts needs {part_count} parts; "
                f"the store allows at most {MAX_PARTS}"
            )
        return src

    async def _upload_empty(self, destination_key: str, content_type: str) -> UploadOutcome:
        """Write a zero-length object with one single-shot PUT."""
        try:
            target = await self.authorizer.authorize_object(destination_key, content_type)
            await self.transport.put_object(target, b"", content_type)
        except (AuthorizationError, PartTransferError) as e:
            self.state = UploadState.ABORTED
            _record(metrics.uploads_total, "aborted")
            raise UploadFailed([e]) from e

        url = target.public_url or _strip_query(target.url)
        self.state = UploadState.COMPLETED
        _record(metrics.uploads_total, "completed")
        logger.info("Uploaded empty object %s", destination_key, extra={"key": destination_key})
        return UploadOutcome(url=url, key=destination_key, size=0, part_count=0)

    async def _upload_multipart(
        self,
        src: ByteSource,
        destination_key: str,
        content_type: str,
        chunk_size: int,
        concurrency: int,
    ) -> UploadOutcome:
        try:
            session = await self.authorizer.initiate(destination_key, content_type)
        except UploadError:
            _record(metrics.uploads_total, "failed")
            raise
        self.state = UploadState.SESSION_OPEN
        log_extra = {"upload_id": session.session_id, "key": destination_key}

        plan = plan_parts(src.size, chunk_size)
        logger.info(
            "Opened upload %s for %s: %d bytes in %d parts, concurrency %d",
            session.session_id,
            destination_key,
            src.size,
            len(plan),
            concurrency,
            extra=log_extra,
        )

        results: dict[int, PartResult] = {}
        failed = asyncio.Event()
        progress = _Progress(src.size, self.on_progress)
        limiter = ConcurrencyLimiter(concurrency)

        self.state = UploadState.PARTS_IN_FLIGHT
        tasks = [
            asyncio.ensure_future(
                limiter.run(self._transfer_part, session, src, part, results, failed, progress)
            )
            for part in plan
        ]
        try:
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.warning("Upload %s cancelled", session.session_id, extra=log_extra)
            await self._abort(session)
            raise

        errors = [o for o in outcomes if isinstance(o, BaseException)]
        if errors:
            self.state = UploadState.ANY_PART_FAILED
            await self._abort(session)
            unexpected = [e for e in errors if not isinstance(e, UploadError)]
            if unexpected:
                raise unexpected[0]
            failure = UploadFailed(errors)
            raise failure from failure.first

        self.state = UploadState.ALL_PARTS_SUCCEEDED
        missing = [p.part_number for p in plan if p.part_number not in results]
        if missing:
            await self._abort(session)
            raise CompletionError(f"No result recorded for parts {missing}")
        ordered = sorted(results.values(), key=lambda r: r.part_number)

        try:
            url = await self.authorizer.complete(session, ordered)
        except (UploadError, asyncio.CancelledError):
            await self._abort(session)
            raise

        self.state = UploadState.COMPLETED
        _record(metrics.uploads_total, "completed")
        logger.info(
            "Completed upload %s -> %s", session.session_id, url, extra=log_extra
        )
        return UploadOutcome(url=url, key=destination_key, size=src.size, part_count=len(plan))

    async def _transfer_part(
        self,
        session: UploadSession,
        src: ByteSource,
        part: PartRange,
        results: dict[int, PartResult],
        failed: asyncio.Event,
        progress: "_Progress",
    ) -> None:
        """Authorize, read and PUT one part; runs while holding a limiter slot."""
        if failed.is_set():
            logger.debug("Skipping part %d after an earlier failure", part.part_number)
            _record(metrics.parts_total, "skipped")
            return

        if metrics.parts_in_flight is not None:
            metrics.parts_in_flight.inc()
        try:
            target = await self.authorizer.authorize_part(session, part.part_number)
            try:
                data = await src.read(part.start, part.end)
            except OSError as e:
                raise PartTransferError(
                    f"cannot read bytes {part.start}-{part.end}: {e}",
                    part_number=part.part_number,
                ) from e
            etag = await self.transport.put_part(target, data)
        except UploadError as e:
            if e.part_number is None:
                e.part_number = part.part_number
            failed.set()
            _record(metrics.parts_total, "error")
            logger.warning(
                "Part %d of upload %s failed: %s",
                part.part_number,
                session.session_id,
                e.message,
                extra={"upload_id": session.session_id, "part_number": part.part_number},
            )
            raise
        except Exception:
            failed.set()
            _record(metrics.parts_total, "error")
            raise
        finally:
            if metrics.parts_in_flight is not None:
                metrics.parts_in_flight.dec()

        results[part.part_number] = PartResult(part_number=part.part_number, integrity_tag=etag)
        _record(metrics.parts_total, "ok")
        _record(metrics.bytes_uploaded_total, amount=part.size)
        progress.advance(part.size)

    async def _abort(self, session: UploadSession) -> None:
        """Abandon the session; an abort failure never masks the original error."""
        self.state = UploadState.ABORTED
        _record(metrics.uploads_total, "aborted")
        try:
            await self.authorizer.abort(session)
        except Exception:
            logger.warning(
                "Failed to abort upload %s",
                session.session_id,
                exc_info=True,
                extra={"upload_id": session.session_id},
            )
        else:
            logger.info(
                "Aborted upload %s", session.session_id, extra={"upload_id": session.session_id}
            )


class _Progress:
    """Accumulates accepted bytes and reports them to a callback."""

    def __init__(self, total: int, callback: ProgressCallback | None) -> None:
        self.total = total
        self.done = 0
        self._callback = callback

    def advance(self, nbytes: int) -> None:
        self.done += nbytes
        if self._callback is not None:
            self._callback(self.done, self.total)


def _strip_query(url: str) -> str:
    """Drop the signature query string from a pre-signed URL."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
