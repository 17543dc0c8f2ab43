"""Tests for MCP content builders."""

from __future__ import annotations

import base64

from pathlib import Path

import pytest

from mcp.types import EmbeddedResource, ImageContent, TextContent

from models.sandbox_models import Change, ChangeType, ExecutionTelemetry
from utils.content import (
    changes_to_content,
    error_content,
    guess_mime_type,
    output_content,
    read_file_resource,
    telemetry_content,
)


class TestTextItems:
    """Tests for fixed-prefix text items."""

    def test_output(self) -> None:
        assert output_content("hi\n").text == "Node.js process output:\nhi\n"

    def test_error(self) -> None:
        assert error_content("boom").text == "Error during execution: boom"

    def test_telemetry(self) -> None:
        item = telemetry_content(ExecutionTelemetry(install_duration_ms=0, install_output="skipped"))
        assert item.text.startswith("Telemetry:\n{")
        assert '"installDurationMs": 0' in item.text


class TestGuessMimeType:
    """Tests for MIME guessing."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("chart.png", "image/png"),
            ("photo.jpg", "image/jpeg"),
            ("notes.txt", "text/plain"),
            ("data.json", "application/json"),
            ("blob.unknownext", "application/octet-stream"),
            ("Makefile", "application/octet-stream"),
        ],
    )
    def test_guess(self, name: str, expected: str) -> None:
        assert guess_mime_type(name) == expected


class TestChangesToContent:
    """Tests for change reporting."""

    def test_no_changes(self, tmp_path: Path) -> None:
        assert changes_to_content([], tmp_path) == []

    def test_summary_lists_every_change(self, tmp_path: Path) -> None:
        changes = [
            Change(ChangeType.CREATED, str(tmp_path / "a.txt")),
            Change(ChangeType.DELETED, str(tmp_path / "b.txt")),
            Change(ChangeType.CREATED, str(tmp_path / "dir"), is_directory=True),
        ]

        content = changes_to_content(changes, tmp_path)

        assert isinstance(content[0], TextContent)
        assert content[0].text == "List of changed files:\n- a.txt was created\n- b.txt was deleted\n- dir was created"
        # deleted entries and directories get no resource
        assert len(content) == 2
        assert isinstance(content[1], EmbeddedResource)
        assert content[1].resource.text == "a.txt"

    def test_image_is_inlined_before_resource(self, tmp_path: Path) -> None:
        png = tmp_path / "chart.png"
        png.write_bytes(b"\x89PNG fake")

        content = changes_to_content([Change(ChangeType.UPDATED, str(png))], tmp_path)

        image, resource = content[1], content[2]
        assert isinstance(image, ImageContent)
        assert image.mimeType == "image/png"
        assert base64.b64decode(image.data) == b"\x89PNG fake"
        assert isinstance(resource, EmbeddedResource)
        assert resource.resource.mimeType == "image/png"

    def test_resource_uri_points_at_host_files_dir(self, tmp_path: Path) -> None:
        # Path inside the watched mount differs from the host directory
        host_dir = tmp_path / "host"
        host_dir.mkdir()
        change = Change(ChangeType.CREATED, "/root/report.json")

        content = changes_to_content([change], host_dir)

        resource = content[1]
        assert str(resource.resource.uri) == (host_dir.resolve() / "report.json").as_uri()
        assert resource.resource.mimeType == "application/json"

    def test_unreadable_image_keeps_resource(self, tmp_path: Path) -> None:
        change = Change(ChangeType.CREATED, str(tmp_path / "vanished.jpg"))

        content = changes_to_content([change], tmp_path)

        assert not any(isinstance(item, ImageContent) for item in content)
        assert isinstance(content[-1], EmbeddedResource)

    def test_symlinked_image_is_not_inlined(self, tmp_path: Path) -> None:
        secret = tmp_path / "secret.bin"
        secret.write_bytes(b"host data")
        link = tmp_path / "leak.png"
        link.symlink_to(secret)

        content = changes_to_content([Change(ChangeType.CREATED, str(link))], tmp_path)

        assert not any(isinstance(item, ImageContent) for item in content)
        assert isinstance(content[-1], EmbeddedResource)


class TestReadFileResource:
    """Tests for serving file:// URIs back to the client."""

    def test_reads_file_with_mime_type(self, tmp_path: Path) -> None:
        (tmp_path / "chart.png").write_bytes(b"\x89PNG")

        data, mime_type = read_file_resource((tmp_path / "chart.png").as_uri(), tmp_path)

        assert data == b"\x89PNG"
        assert mime_type == "image/png"

    def test_unknown_extension_is_octet_stream(self, tmp_path: Path) -> None:
        (tmp_path / "blob.zzz").write_bytes(b"\x00\x01")

        _, mime_type = read_file_resource((tmp_path / "blob.zzz").as_uri(), tmp_path)

        assert mime_type == "application/octet-stream"

    def test_nested_path_with_encoded_characters(self, tmp_path: Path) -> None:
        nested = tmp_path / "out dir" / "report.txt"
        nested.parent.mkdir()
        nested.write_text("ok")

        data, _ = read_file_resource(nested.as_uri(), tmp_path)

        assert data == b"ok"

    def test_re_roots_under_local_dir(self, tmp_path: Path) -> None:
        host_dir = tmp_path / "host"
        local_dir = tmp_path / "local"
        local_dir.mkdir()
        (local_dir / "out.txt").write_text("from mount")

        data, _ = read_file_resource((host_dir / "out.txt").as_uri(), host_dir, local_dir)

        assert data == b"from mount"

    def test_rejects_path_outside_files_dir(self, tmp_path: Path) -> None:
        files_dir = tmp_path / "files"
        files_dir.mkdir()
        (tmp_path / "secret.txt").write_text("secret")

        with pytest.raises(PermissionError):
            read_file_resource((tmp_path / "secret.txt").as_uri(), files_dir)

    def test_rejects_parent_traversal(self, tmp_path: Path) -> None:
        files_dir = tmp_path / "files"
        files_dir.mkdir()
        (tmp_path / "secret.txt").write_text("secret")

        with pytest.raises(PermissionError):
            read_file_resource(f"file://{files_dir}/../secret.txt", files_dir)

    def test_rejects_symlink_escaping_files_dir(self, tmp_path: Path) -> None:
        files_dir = tmp_path / "files"
        files_dir.mkdir()
        (tmp_path / "secret.txt").write_text("secret")
        (files_dir / "link.txt").symlink_to(tmp_path / "secret.txt")

        with pytest.raises(PermissionError):
            read_file_resource((files_dir / "link.txt").as_uri(), files_dir)

    def test_rejects_non_file_uri(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="Not a local file URI"):
            read_file_resource("https://example.com/x.txt", tmp_path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            read_file_resource((tmp_path / "gone.txt").as_uri(), tmp_path)
