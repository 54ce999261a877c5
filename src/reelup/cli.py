"""CLI entry point for reelup."""

import argparse
import asyncio
import logging
import mimetypes
import sys
from pathlib import Path

from reelup.authorization import create_authorizer
from reelup.config import MIB, ReelupConfig, load_config
from reelup.coordinator import UploadCoordinator
from reelup.errors import UploadError
from reelup.logging_config import configure_logging
from reelup.models import UploadOutcome
from reelup.sources import FileSource
from reelup.transfer import PartTransport

logger = logging.getLogger("reelup")

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: reelup.yaml if present)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=_LOG_LEVELS,
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="reelup",
        description="reelup - chunked multipart uploads to S3-compatible storage",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    upload = sub.add_parser("upload", help="Upload a file as a multipart object")
    upload.add_argument("path", type=Path, help="File to upload")
    upload.add_argument("--key", type=str, default=None, help="Destination key (default: file name)")
    upload.add_argument("--content-type", type=str, default=None, help="MIME type of the object")
    upload.add_argument(
        "--chunk-size-mb", type=float, default=None, help="Part size in MiB (overrides config)"
    )
    upload.add_argument(
        "--concurrency", type=int, default=None, help="Parallel part uploads (overrides config)"
    )
    _add_common_arguments(upload)

    serve = sub.add_parser("serve", help="Run the upload authorization service")
    serve.add_argument("--host", type=str, default=None, help="Host address to bind to")
    serve.add_argument("--port", type=int, default=None, help="Port to listen on")
    _add_common_arguments(serve)

    return parser.parse_args(argv)


def _load(args: argparse.Namespace) -> ReelupConfig:
    if args.config is not None:
        return load_config(args.config)
    default = Path("reelup.yaml")
    if default.exists():
        return load_config(default)
    return ReelupConfig()


async def upload_file(
    config: ReelupConfig,
    path: Path,
    key: str,
    content_type: str,
) -> UploadOutcome:
    """Upload ``path`` to ``key`` using the configured authorizer."""
    authorizer = create_authorizer(config)
    if hasattr(authorizer, "init"):
        await authorizer.init()
    try:
        async with PartTransport(
            timeout=config.transfer.timeout_seconds,
            max_connections=config.transfer.max_connections,
        ) as transport:
            coordinator = UploadCoordinator(
                authorizer,
                transport,
                chunk_size=config.upload.chunk_size_bytes,
                concurrency=config.upload.concurrency,
                on_progress=lambda done, total: logger.info(
                    "%s: %d/%d bytes (%.0f%%)", key, done, total, 100.0 * done / total
                ),
            )
            with FileSource(path) as source:
                return await coordinator.upload(source, key, content_type)
    finally:
        if hasattr(authorizer, "close"):
            await authorizer.close()


def _run_upload(args: argparse.Namespace, config: ReelupConfig) -> int:
    if args.chunk_size_mb is not None:
        config.upload.chunk_size_bytes = int(args.chunk_size_mb * MIB)
    if args.concurrency is not None:
        config.upload.concurrency = args.concurrency

    key = args.key or args.path.name
    content_type = (
        args.content_type or mimetypes.guess_type(args.path.name)[0] or config.upload.content_type
    )

    try:
        outcome = asyncio.run(upload_file(config, args.path, key, content_type))
    except FileNotFoundError:
        logger.error("File not found: %s", args.path)
        return 1
    except (UploadError, ValueError) as exc:
        logger.error("Upload failed: %s", exc)
        return 1

    print(outcome.url)
    return 0


def _run_serve(args: argparse.Namespace, config: ReelupConfig) -> int:
    import uvicorn

    from reelup.server import create_app

    if args.host is not None:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port

    logger.info("Starting reelup authorization service on %s:%d", config.server.host, config.server.port)
    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level.lower(),
        timeout_keep_alive=5,
    )
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the reelup CLI.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    try:
        config = _load(args)
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    if args.log_level is not None:
        config.server.log_level = args.log_level
    if args.log_format is not None:
        config.server.log_format = args.log_format
    configure_logging(level=config.server.log_level, fmt=config.server.log_format)

    if args.command == "upload":
        sys.exit(_run_upload(args, config))
    sys.exit(_run_serve(args, config))


if __name__ == "__main__":
    main()
