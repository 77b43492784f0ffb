from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional
from uuid import uuid4

import anyio
from starlette.concurrency import run_in_threadpool

from ..errors import ErrorKind, PostSubmissionError

logger = logging.getLogger(__name__)

UNSAFE_CHARS_PATTERN = re.compile(r'[/\\?%*:|"<>\x00-\x1f\x7f]')
WINDOWS_RESERVED_PATTERN = re.compile(r"^(con|prn|aux|nul|com[0-9]|lpt[0-9])(\..*)?$", re.IGNORECASE)
MAX_FILENAME_BYTES = 255


def sanitize_filename(name: str) -> str:
    """Strip directory components and characters unsafe on common filesystems."""
    base_name = re.split(r"[/\\]", name)[-1]
    sanitized = UNSAFE_CHARS_PATTERN.sub("", base_name).strip().rstrip(". ")
    if sanitized in {"", ".", ".."}:
        return "file"
    if WINDOWS_RESERVED_PATTERN.match(sanitized):
        sanitized = f"_{sanitized}"
    encoded = sanitized.encode("utf-8")
    if len(encoded) > MAX_FILENAME_BYTES:
        sanitized = encoded[:MAX_FILENAME_BYTES].decode("utf-8", errors="ignore")
    return sanitized


def unique_filename(original: str) -> str:
    return f"{uuid4()}-{sanitize_filename(original)}"


@dataclass(frozen=True)
class StoredFile:
    absolute_path: Path
    relative_path: str
    original_filename: str


def resolve_upload_root(upload_path: str) -> Path:
    return (Path.cwd() / upload_path).resolve()


def _ensure_directory(path: Path) -> bool:
    if path.is_dir():
        return False
    path.mkdir(parents=True, exist_ok=True, mode=0o755)
    return True


async def ensure_upload_root(upload_path: str) -> Path:
    """Resolve ``upload_path`` against the working directory and create it."""
    try:
        root = await run_in_threadpool(resolve_upload_root, upload_path)
        if await run_in_threadpool(_ensure_directory, root):
            logger.info("Created upload directory", extra={"path": str(root)})
    except OSError as exc:
        raise PostSubmissionError(
            ErrorKind.FILE_UPLOAD_PATH_ERROR, f"cannot prepare upload directory {upload_path!r}"
        ) from exc
    return root


def public_upload_dir(upload_root: Path, upload_path: str) -> PurePosixPath:
    """Directory segment used in stored image paths; never an absolute server path."""
    configured = PurePosixPath(Path(upload_path).as_posix())
    if configured.is_absolute() or Path(upload_path).is_absolute():
        return PurePosixPath(upload_root.name)
    return configured


def allocate_stored_file(upload_root: Path, upload_path: str, original_filename: str) -> StoredFile:
    filename = unique_filename(original_filename)
    relative = PurePosixPath("..", public_upload_dir(upload_root, upload_path), filename)
    return StoredFile(
        absolute_path=upload_root / filename,
        relative_path=str(relative),
        original_filename=original_filename,
    )


def remove_stored_file(stored: StoredFile) -> None:
    try:
        stored.absolute_path.unlink(missing_ok=True)
    except OSError:
        logger.warning("Failed to remove partial upload", extra={"path": str(stored.absolute_path)}, exc_info=True)
    else:
        logger.info("Removed partial upload", extra={"path": str(stored.absolute_path)})


async def discard_stored_files(stored_files: list[StoredFile]) -> None:
    with anyio.CancelScope(shield=True):
        for stored in stored_files:
            await run_in_threadpool(remove_stored_file, stored)


class PartialUpload:
    """Scoped handle for a file that is being written from a request stream.

    The destination is created before any chunk is accepted. Leaving the
    block with an exception, including cancellation, removes the file unless
    ``keep_on_failure`` is set.
    """

    def __init__(self, stored: StoredFile, *, keep_on_failure: bool = False) -> None:
        self.stored = stored
        self.keep_on_failure = keep_on_failure
        self.size_bytes = 0
        self._handle: Optional[BinaryIO] = None

    async def __aenter__(self) -> PartialUpload:
        try:
            self._handle = await run_in_threadpool(self.stored.absolute_path.open, "xb")
        except OSError as exc:
            raise PostSubmissionError(
                ErrorKind.FILE_UPLOAD_ERROR, f"cannot create {self.stored.absolute_path}"
            ) from exc
        return self

    async def write(self, chunk: bytes) -> None:
        assert self._handle is not None
        try:
            await run_in_threadpool(self._handle.write, chunk)
        except OSError as exc:
            raise PostSubmissionError(
                ErrorKind.FILE_UPLOAD_ERROR, f"cannot write {self.stored.absolute_path}"
            ) from exc
        self.size_bytes += len(chunk)

    async def __aexit__(self, exc_type, exc, tb) -> None:
        handle, self._handle = self._handle, None
        close_error: Optional[OSError] = None
        with anyio.CancelScope(shield=True):
            if handle is not None:
                try:
                    await run_in_threadpool(handle.close)
                except OSError as err:
                    close_error = err
            failed = exc_type is not None or close_error is not None
            if failed and not self.keep_on_failure:
                await run_in_threadpool(remove_stored_file, self.stored)
        if close_error is not None and exc_type is None:
            raise PostSubmissionError(
                ErrorKind.FILE_UPLOAD_ERROR, f"cannot flush {self.stored.absolute_path}"
            ) from close_error
