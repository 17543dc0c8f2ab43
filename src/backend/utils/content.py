"""
MCP content builders for tool responses.

Turns detected file changes into a summary, inline images and file resources,
and wraps process output, errors and telemetry as text items.
"""

from __future__ import annotations

import base64
import logging
import mimetypes

from pathlib import Path
from urllib.parse import unquote, urlparse

from mcp.types import EmbeddedResource, ImageContent, TextContent, TextResourceContents

from core.constants import DEFAULT_MIME_TYPE, IMAGE_MIME_TYPES
from models.sandbox_models import Change, ChangeType, ExecutionTelemetry

logger = logging.getLogger(__name__)

Content = TextContent | ImageContent | EmbeddedResource


def text_content(text: str) -> TextContent:
    return TextContent(type="text", text=text)


def telemetry_content(telemetry: ExecutionTelemetry) -> TextContent:
    return text_content(f"Telemetry:\n{telemetry.to_json()}")


def output_content(stdout: str) -> TextContent:
    return text_content(f"Node.js process output:\n{stdout}")


def error_content(message: str) -> TextContent:
    return text_content(f"Error during execution: {message}")


def guess_mime_type(path: str | Path) -> str:
    mime_type, _ = mimetypes.guess_type(str(path))
    return mime_type or DEFAULT_MIME_TYPE


def _encode_image_to_base64(file_path: Path) -> str | None:
    """Encode an image file to base64, or None if it vanished, is unreadable or is a symlink."""
    if file_path.is_symlink():
        logger.warning(f"Not inlining symlinked image {file_path.name}")
        return None
    try:
        return base64.b64encode(file_path.read_bytes()).decode("utf-8")
    except OSError as e:
        logger.warning(f"Failed to encode image {file_path.name}: {e}")
        return None


def changes_to_content(changes: list[Change], files_dir: Path) -> list[Content]:
    """
    Build response content for the files an execution touched.

    Emits one summary text item listing every change, then for each created
    or updated file an inline image (PNG/JPEG only) and a resource item whose
    `file://` URI points at the file's location on the host.

    Args:
        changes: Output of detect_changes
        files_dir: Host directory mounted into the sandbox

    Returns:
        Ordered list of MCP content items
    """
    contents: list[Content] = []
    if not changes:
        return contents

    summary = "\n".join(f"- {Path(change.path).name} was {change.type.value}" for change in changes)
    contents.append(text_content(f"List of changed files:\n{summary}"))

    host_dir = files_dir.resolve()
    for change in changes:
        if change.type is ChangeType.DELETED or change.is_directory:
            continue

        name = Path(change.path).name
        mime_type = guess_mime_type(name)

        if mime_type in IMAGE_MIME_TYPES:
            data = _encode_image_to_base64(Path(change.path))
            if data is not None:
                contents.append(ImageContent(type="image", data=data, mimeType=mime_type))

        contents.append(
            EmbeddedResource(
                type="resource",
                resource=TextResourceContents(
                    uri=(host_dir / name).as_uri(),
                    mimeType=mime_type,
                    text=name,
                ),
            )
        )

    return contents


def read_file_resource(uri: str, files_dir: Path, local_dir: Path | None = None) -> tuple[bytes, str]:
    """
    Read a `file://` resource URI produced by changes_to_content.

    URIs name files under the host files directory. When the server runs
    inside a container that directory is visible at a different local path,
    so the relative part of the URI is re-rooted under local_dir.

    Args:
        uri: A `file://` URI
        files_dir: Host directory mounted into sandboxes
        local_dir: Where files_dir is visible to this process (defaults to files_dir)

    Returns:
        The file bytes and its MIME type

    Raises:
        ValueError: If the URI is not a file URI
        PermissionError: If the URI points outside the files directory
        OSError: If the file cannot be read
    """
    parsed = urlparse(uri)
    if parsed.scheme != "file" or parsed.netloc not in ("", "localhost"):
        raise ValueError(f"Not a local file URI: {uri}")

    host_dir = files_dir.resolve()
    requested = Path(unquote(parsed.path)).resolve()
    if not requested.is_relative_to(host_dir):
        raise PermissionError(f"{uri} is outside the files directory")

    # Resolved again so symlinks inside the directory cannot escape it
    root = (local_dir or files_dir).resolve()
    target = (root / requested.relative_to(host_dir)).resolve()
    if target == root or not target.is_relative_to(root):
        raise PermissionError(f"{uri} is outside the files directory")

    return target.read_bytes(), guess_mime_type(target)
