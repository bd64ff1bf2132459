"""Media helpers for files moving between the engine and the framework."""

from __future__ import annotations

import asyncio
import base64
import contextlib
import logging
import mimetypes
import os
import tempfile
from pathlib import Path
from typing import Optional

from ...core.logging_utils import log_event
from .errors import MediaUnavailableError
from .framework import BridgeFramework, MessagePart, MessageType, PortalKey

IMAGE_CONTENT_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
VIDEO_CONTENT_TYPES = {"video/mp4", "video/webm", "video/ogg"}
AUDIO_CONTENT_TYPES = {"audio/mpeg", "audio/ogg", "audio/aac", "audio/wav"}
GENERIC_BINARY_MIME_TYPE = "application/octet-stream"

THUMBNAIL_MAX_EDGE = 256
THUMBNAIL_TIMEOUT_SECONDS = 30.0

_MAGIC_PREFIXES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"OggS", "audio/ogg"),
    (b"ID3", "audio/mpeg"),
    (b"%PDF-", "application/pdf"),
    (b"\x1a\x45\xdf\xa3", "video/webm"),
)


def normalize_mime_type(mime_type: Optional[str]) -> Optional[str]:
    if not mime_type:
        return None
    base = mime_type.lower().split(";", 1)[0].strip()
    return base or None


def sniff_mime_type(data: bytes) -> str:
    for prefix, mime_type in _MAGIC_PREFIXES:
        if data.startswith(prefix):
            return mime_type
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "audio/wav"
    if data[4:8] == b"ftyp":
        return "video/mp4"
    return GENERIC_BINARY_MIME_TYPE


def guess_mime_type(file_name: Optional[str], data: bytes) -> str:
    if file_name:
        guessed, _encoding = mimetypes.guess_type(file_name)
        normalized = normalize_mime_type(guessed)
        if normalized:
            return normalized
    return sniff_mime_type(data)


def outbound_content_type(mime_type: Optional[str]) -> str:
    """Map a MIME type to the engine's content type (image/video/voice/file)."""
    base = normalize_mime_type(mime_type)
    if base in IMAGE_CONTENT_TYPES:
        return "image"
    if base in VIDEO_CONTENT_TYPES:
        return "video"
    if base in AUDIO_CONTENT_TYPES:
        return "voice"
    return "file"


def message_type_for_mime(mime_type: Optional[str]) -> MessageType:
    content_type = outbound_content_type(mime_type)
    if content_type == "image":
        return MessageType.IMAGE
    if content_type == "video":
        return MessageType.VIDEO
    if content_type == "voice":
        return MessageType.AUDIO
    return MessageType.FILE


def resolve_engine_file_path(file_path: str, files_folder: Optional[Path]) -> Path:
    """Resolve a path reported by the engine; relative paths need ``files_folder``."""
    path = Path(file_path).expanduser()
    if path.is_absolute():
        return path
    if files_folder is None:
        raise MediaUnavailableError(
            f"engine reported relative file path {file_path!r} and "
            "simplex.files_folder is not configured",
            user_message="File path could not be resolved; set simplex.files_folder.",
        )
    return files_folder / path


async def upload_file_part(
    framework: BridgeFramework,
    portal_key: PortalKey,
    part: MessagePart,
    path: Path,
) -> None:
    """Upload ``path`` through the framework and rewrite ``part`` in place."""
    try:
        data = await asyncio.to_thread(path.read_bytes)
    except OSError as exc:
        raise MediaUnavailableError(f"read file: {exc}") from exc
    file_name = part.file_name or part.body or path.name
    mime_type = guess_mime_type(file_name, data)
    try:
        media = await framework.upload_media(portal_key, data, file_name, mime_type)
    except Exception as exc:
        raise MediaUnavailableError(f"upload media: {exc}") from exc
    part.msg_type = message_type_for_mime(mime_type)
    if part.file_name is None:
        part.body = file_name
    part.mime_type = mime_type
    part.size = len(data)
    part.url = media.url
    part.local_path = None


def write_temp_file(data: bytes, *, directory: Path, file_name: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    fd, raw_path = tempfile.mkstemp(
        prefix="simplex-send-", suffix=f"-{Path(file_name).name or 'file'}", dir=directory
    )
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
    except OSError:
        with contextlib.suppress(OSError):
            os.unlink(raw_path)
        raise
    return Path(raw_path)


def remove_quietly(path: Optional[Path]) -> None:
    if path is None:
        return
    with contextlib.suppress(FileNotFoundError):
        path.unlink()


async def ffmpeg_thumbnail_data_uri(
    path: Path,
    *,
    logger: Optional[logging.Logger] = None,
    ffmpeg_binary: str = "ffmpeg",
    timeout_seconds: float = THUMBNAIL_TIMEOUT_SECONDS,
) -> str:
    """Return a small JPEG thumbnail of ``path`` as a data URI, or ``""``.

    The thumbnail travels inside the JSON command, so it is kept small and low
    quality. Any ffmpeg failure degrades to an empty thumbnail.
    """
    logger = logger or logging.getLogger(__name__)
    thumb_path = Path(f"{path}.thumb.jpg")
    scale = (
        f"scale='min({THUMBNAIL_MAX_EDGE},iw)':'min({THUMBNAIL_MAX_EDGE},ih)'"
        ":force_original_aspect_ratio=decrease"
    )
    try:
        try:
            process = await asyncio.create_subprocess_exec(
                ffmpeg_binary,
                "-i",
                str(path),
                "-vframes",
                "1",
                "-vf",
                scale,
                "-q:v",
                "10",
                "-y",
                str(thumb_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            log_event(logger, logging.WARNING, "simplex.media.thumbnail_failed", exc=exc)
            return ""
        try:
            output, _ = await asyncio.wait_for(
                process.communicate(), timeout=timeout_seconds
            )
        except asyncio.TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            log_event(
                logger,
                logging.WARNING,
                "simplex.media.thumbnail_failed",
                reason="timeout",
            )
            return ""
        if process.returncode != 0:
            log_event(
                logger,
                logging.WARNING,
                "simplex.media.thumbnail_failed",
                returncode=process.returncode,
                output=(output or b"").decode("utf-8", errors="replace"),
            )
            return ""
        try:
            thumb = thumb_path.read_bytes()
        except OSError:
            return ""
        if not thumb:
            return ""
        return "data:image/jpg;base64," + base64.b64encode(thumb).decode("ascii")
    finally:
        remove_quietly(thumb_path)
