"""Tests for the reelup command line."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from reelup.cli import main, parse_args, upload_file
from reelup.config import MIB, ReelupConfig, StorageConfig
from reelup.errors import PartTransferError, UploadFailed
from reelup.models import UploadOutcome


@pytest.fixture
def clip(tmp_path) -> Path:
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"\x00" * 1000)
    return path


@pytest.fixture
def quiet():
    """Keep main() from replacing the root logging handlers."""
    with patch("reelup.cli.configure_logging") as mock:
        yield mock


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    return excinfo.value.code


class TestParseArgs:
    """Tests for parse_args()."""

    def test_upload_defaults(self):
        args = parse_args(["upload", "clip.mp4"])
        assert args.command == "upload"
        assert args.path == Path("clip.mp4")
        assert args.key is None
        assert args.chunk_size_mb is None
        assert args.config is None

    def test_upload_overrides(self):
        args = parse_args(
            ["upload", "clip.mp4", "--key", "reels/a.mp4", "--chunk-size-mb", "5", "--concurrency", "8"]
        )
        assert args.key == "reels/a.mp4"
        assert args.chunk_size_mb == 5.0
        assert args.concurrency == 8

    def test_serve(self):
        args = parse_args(["serve", "--port", "9200", "--log-format", "json"])
        assert args.command == "serve"
        assert args.port == 9200
        assert args.log_format == "json"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_bad_log_level(self):
        with pytest.raises(SystemExit):
            parse_args(["serve", "--log-level", "LOUD"])


class TestMainUpload:
    """main() runs an upload and maps failures to exit codes."""

    def test_prints_url(self, clip, quiet, capsys, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        outcome = UploadOutcome(url="https://cdn.test/clip.mp4", key="clip.mp4", size=1000, part_count=1)
        with patch("reelup.cli.upload_file", AsyncMock(return_value=outcome)) as mock:
            assert _run(["upload", str(clip)]) == 0

        assert capsys.readouterr().out.strip() == "https://cdn.test/clip.mp4"
        config, path, key, content_type = mock.call_args.args
        assert isinstance(config, ReelupConfig)
        assert path == clip
        assert key == "clip.mp4"
        assert content_type == "video/mp4"

    def test_flag_overrides(self, clip, quiet, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        outcome = UploadOutcome(url="u", key="k")
        with patch("reelup.cli.upload_file", AsyncMock(return_value=outcome)) as mock:
            argv = [
                "upload", str(clip), "--key", "reels/x", "--content-type", "video/webm",
                "--chunk-size-mb", "5", "--concurrency", "2",
            ]
            assert _run(argv) == 0

        config, _, key, content_type = mock.call_args.args
        assert config.upload.chunk_size_bytes == 5 * MIB
        assert config.upload.concurrency == 2
        assert key == "reels/x"
        assert content_type == "video/webm"

    def test_config_file(self, clip, quiet, tmp_path):
        cfg = tmp_path / "custom.yaml"
        cfg.write_text("upload:\n  concurrency: 7\n")
        with patch("reelup.cli.upload_file", AsyncMock(return_value=UploadOutcome("u", "k"))) as mock:
            assert _run(["upload", str(clip), "--config", str(cfg)]) == 0
        assert mock.call_args.args[0].upload.concurrency == 7

    def test_upload_failure(self, clip, quiet, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        failure = UploadFailed([PartTransferError("HTTP 500", part_number=1)])
        with patch("reelup.cli.upload_file", AsyncMock(side_effect=failure)):
            assert _run(["upload", str(clip)]) == 1

    def test_missing_file(self, quiet, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        with patch("reelup.cli.upload_file", AsyncMock(side_effect=FileNotFoundError("gone"))):
            assert _run(["upload", str(tmp_path / "gone.mp4")]) == 1

    def test_missing_config(self, clip, quiet, tmp_path):
        assert _run(["upload", str(clip), "--config", str(tmp_path / "nope.yaml")]) == 1

    def test_http_mode_without_base_url(self, clip, quiet, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        assert _run(["upload", str(clip)]) == 1


class TestUploadFile:
    """upload_file wires config, authorizer and transport together."""

    async def test_uploads_file(self, clip, authorizer, transport, store):
        config = ReelupConfig(storage=StorageConfig(bucket="reels"))
        config.upload.chunk_size_bytes = 400
        with patch("reelup.cli.create_authorizer", return_value=authorizer), patch(
            "reelup.cli.PartTransport", return_value=transport
        ):
            outcome = await upload_file(config, clip, "reels/clip.mp4", "video/mp4")

        assert outcome.url == "https://cdn.test/reels/clip.mp4"
        assert outcome.part_count == 3
        assert store.assembled() == clip.read_bytes()
