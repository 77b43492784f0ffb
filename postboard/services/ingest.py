"""Stream demultiplexer for post submissions.

Consumes ``multipart/form-data`` parts one at a time. The ``post-editor``
field is decoded into text; an ``image`` part with a filename is written to
the upload directory chunk by chunk as it arrives. Nothing else is kept.
"""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass, field
from typing import AsyncIterable, AsyncIterator, Optional

from ..errors import ErrorKind, PostSubmissionError
from ..utils.multipart import MultipartStreamError, UploadPart
from .storage import (
    PartialUpload,
    StoredFile,
    allocate_stored_file,
    discard_stored_files,
    ensure_upload_root,
)

logger = logging.getLogger(__name__)

TEXT_FIELD = "post-editor"
IMAGE_FIELD = "image"


@dataclass
class DemuxResult:
    text_chunks: list[str] = field(default_factory=list)
    stored_file: Optional[StoredFile] = None
    stored_files: list[StoredFile] = field(default_factory=list)

    @property
    def text(self) -> str:
        return " ".join(self.text_chunks)

    @property
    def image_path(self) -> str:
        return self.stored_file.relative_path if self.stored_file else ""

    async def discard(self) -> None:
        """Remove every file this request wrote."""
        await discard_stored_files(self.stored_files)


async def _read_chunks(part: UploadPart, kind: ErrorKind) -> AsyncIterator[bytes]:
    iterator = part.chunks.__aiter__()
    while True:
        try:
            chunk = await iterator.__anext__()
        except StopAsyncIteration:
            return
        except MultipartStreamError as exc:
            raise PostSubmissionError(kind, f"failed reading field {part.name!r}: {exc}") from exc
        yield chunk


async def _read_text(part: UploadPart, result: DemuxResult) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")()
    async for chunk in _read_chunks(part, ErrorKind.PARSE_ERROR):
        try:
            text = decoder.decode(chunk)
        except UnicodeDecodeError as exc:
            raise PostSubmissionError(ErrorKind.PARSE_ERROR, "post text is not valid UTF-8") from exc
        if text:
            result.text_chunks.append(text)
    try:
        decoder.decode(b"", final=True)
    except UnicodeDecodeError as exc:
        raise PostSubmissionError(ErrorKind.PARSE_ERROR, "post text ends inside a UTF-8 sequence") from exc


async def _store_file(part: UploadPart, stored: StoredFile, *, keep_partial_uploads: bool) -> int:
    async with PartialUpload(stored, keep_on_failure=keep_partial_uploads) as upload:
        async for chunk in _read_chunks(part, ErrorKind.FILE_UPLOAD_ERROR):
            await upload.write(chunk)
    return upload.size_bytes


async def demultiplex(
    parts: AsyncIterable[UploadPart],
    upload_path: str,
    *,
    keep_partial_uploads: bool = False,
) -> DemuxResult:
    upload_root = await ensure_upload_root(upload_path)
    result = DemuxResult()
    iterator = parts.__aiter__()

    try:
        while True:
            try:
                part = await iterator.__anext__()
            except StopAsyncIteration:
                break
            except MultipartStreamError as exc:
                raise PostSubmissionError(ErrorKind.PARSE_ERROR, str(exc)) from exc

            if part.name == TEXT_FIELD:
                await _read_text(part, result)
            elif part.name == IMAGE_FIELD and part.filename and part.filename.strip():
                stored = allocate_stored_file(upload_root, upload_path, part.filename)
                if result.stored_file is not None:
                    logger.warning(
                        "Multiple image parts in one submission; keeping the last",
                        extra={"previous": str(result.stored_file.absolute_path)},
                    )
                size = await _store_file(part, stored, keep_partial_uploads=keep_partial_uploads)
                result.stored_files.append(stored)
                result.stored_file = stored
                logger.info(
                    "Stored uploaded image",
                    extra={"path": str(stored.absolute_path), "size_bytes": size},
                )
            else:
                logger.debug("Ignoring multipart field", extra={"field": part.name, "upload_filename": part.filename})
    except BaseException:
        if not keep_partial_uploads and result.stored_files:
            await result.discard()
        raise

    return result
