"""Configuration loading and Pydantic models for reelup."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

MIB = 1024 * 1024


class UploadConfig(BaseModel):
    """Part sizing and parallelism for uploads."""

    chunk_size_bytes: int = Field(default=10 * MIB, gt=0)
    concurrency: int = Field(default=4, ge=1)
    content_type: str = "application/octet-stream"


class TransferConfig(BaseModel):
    """HTTP settings for part PUTs to pre-signed URLs."""

    timeout_seconds: float = Field(default=300.0, gt=0)
    max_connections: int = Field(default=16, ge=1)


class AuthorizationConfig(BaseModel):
    """Where upload sessions and part URLs come from."""

    mode: Literal["http", "s3"] = "http"
    base_url: str = ""
    token: str = ""
    timeout_seconds: float = Field(default=30.0, gt=0)


class StorageConfig(BaseModel):
    """S3-compatible object store used for pre-signing."""

    bucket: str = ""
    region: str = "us-east-1"
    endpoint_url: str = ""
    use_path_style: bool = False
    access_key_id: str = ""
    secret_access_key: str = ""
    presign_expires_seconds: int = Field(default=3600, gt=0)
    public_base_url: str = ""


class ServerConfig(BaseModel):
    """Authorization service binding and runtime configuration."""

    host: str = "0.0.0.0"
    port: int = 9100
    token: str = ""
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"


class ObservabilityConfig(BaseModel):
    """Metrics and health probe toggles."""

    metrics: bool = True
    health_check: bool = True


class ReelupConfig(BaseModel):
    """Top-level reelup configuration."""

    upload: UploadConfig = Field(default_factory=UploadConfig)
    transfer: TransferConfig = Field(default_factory=TransferConfig)
    authorization: AuthorizationConfig = Field(default_factory=AuthorizationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


def _pick(data: dict[str, Any], *keys: str) -> dict[str, Any]:
    """Copy only the keys present in ``data`` so model defaults apply."""
    return {k: data[k] for k in keys if k in data}


def _parse_upload(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the upload section.

    Accepts ``chunk_size_mb`` as a convenience for ``chunk_size_bytes``.
    """
    if data is None:
        return {}
    result = _pick(data, "chunk_size_bytes", "concurrency", "content_type")
    if "chunk_size_bytes" not in result and "chunk_size_mb" in data:
        result["chunk_size_bytes"] = int(data["chunk_size_mb"] * MIB)
    return result


def _parse_transfer(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the transfer section."""
    if data is None:
        return {}
    return _pick(data, "timeout_seconds", "max_connections")


def _parse_authorization(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the authorization section.

    Handles nested structure: authorization.http.base_url -> base_url, etc.
    """
    if data is None:
        return {}
    result = _pick(data, "mode")
    http_section = data.get("http")
    if isinstance(http_section, dict):
        result.update(_pick(http_section, "base_url", "token", "timeout_seconds"))
    return result


def _parse_storage(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the storage section.

    Handles nested structure: storage.s3.bucket -> bucket, and
    storage.cdn.base_url -> public_base_url.
    """
    if data is None:
        return {}
    s3_section = data.get("s3")
    source = s3_section if isinstance(s3_section, dict) else data
    result = _pick(
        source,
        "bucket",
        "region",
        "endpoint_url",
        "use_path_style",
        "access_key_id",
        "secret_access_key",
        "presign_expires_seconds",
        "public_base_url",
    )
    cdn_section = data.get("cdn")
    if isinstance(cdn_section, dict) and "base_url" in cdn_section:
        result["public_base_url"] = cdn_section["base_url"]
    return result


def _parse_server(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the server section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    return _pick(data, "host", "port", "token", "log_level", "log_format")


def _parse_observability(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the observability section."""
    if data is None:
        return {}
    return _pick(data, "metrics", "health_check")


def load_config(path: Path) -> ReelupConfig:
    """Load a ReelupConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated ReelupConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If a value is out of range.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return ReelupConfig(
        upload=UploadConfig(**_parse_upload(raw.get("upload"))),
        transfer=TransferConfig(**_parse_transfer(raw.get("transfer"))),
        authorization=AuthorizationConfig(**_parse_authorization(raw.get("authorization"))),
        storage=StorageConfig(**_parse_storage(raw.get("storage"))),
        server=ServerConfig(**_parse_server(raw.get("server"))),
        observability=ObservabilityConfig(**_parse_observability(raw.get("observability"))),
    )
