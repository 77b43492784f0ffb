from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, Optional

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header


class MultipartStreamError(ValueError):
    """The request body could not be read or is not well-formed multipart."""


@dataclass(frozen=True)
class UploadField:
    name: str
    filename: Optional[str] = None


@dataclass
class UploadPart:
    field: UploadField
    chunks: AsyncIterator[bytes]

    @property
    def name(self) -> str:
        return self.field.name

    @property
    def filename(self) -> Optional[str]:
        return self.field.filename


def boundary_from_content_type(content_type: str | None) -> bytes:
    if not content_type:
        raise MultipartStreamError("Missing Content-Type header")
    media_type, params = parse_options_header(content_type)
    if media_type.lower() != b"multipart/form-data":
        raise MultipartStreamError(f"Unsupported content type: {media_type.decode('latin-1')}")
    boundary = params.get(b"boundary")
    if not boundary:
        raise MultipartStreamError("Missing multipart boundary")
    return boundary


def _field_from_headers(headers: dict[bytes, bytes]) -> UploadField:
    disposition = headers.get(b"content-disposition")
    if disposition is None:
        raise MultipartStreamError("Part is missing a Content-Disposition header")
    kind, params = parse_options_header(disposition)
    if kind.lower() != b"form-data":
        raise MultipartStreamError(f"Unexpected disposition: {kind.decode('latin-1')}")
    name = params.get(b"name")
    if name is None:
        raise MultipartStreamError("Part has no field name")
    filename = params.get(b"filename")
    return UploadField(
        name=name.decode("utf-8", errors="replace"),
        filename=filename.decode("utf-8", errors="replace") if filename is not None else None,
    )


class MultipartStream:
    """Pull-based view over a push-style :class:`MultipartParser`.

    Body chunks are only read from ``stream`` when the consumer asks for the
    next part or the next chunk of the current part, so at most one transport
    chunk is held in memory at a time.
    """

    def __init__(self, stream: AsyncIterable[bytes], boundary: bytes) -> None:
        self._stream = stream.__aiter__()
        self._events: deque[tuple[str, object]] = deque()
        self._exhausted = False
        self._finished = False
        self._header_field = bytearray()
        self._header_value = bytearray()
        self._headers: dict[bytes, bytes] = {}
        self._part_open = False
        self._parser = MultipartParser(
            boundary,
            callbacks={
                "on_part_begin": self._on_part_begin,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
                "on_end": self._on_end,
            },
        )

    def _on_part_begin(self) -> None:
        self._headers = {}

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field.extend(data[start:end])

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value.extend(data[start:end])

    def _on_header_end(self) -> None:
        self._headers[bytes(self._header_field).lower()] = bytes(self._header_value)
        self._header_field.clear()
        self._header_value.clear()

    def _on_headers_finished(self) -> None:
        self._events.append(("part", dict(self._headers)))

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if end > start:
            self._events.append(("data", bytes(data[start:end])))

    def _on_part_end(self) -> None:
        self._events.append(("end", None))

    def _on_end(self) -> None:
        self._finished = True

    async def _next_event(self) -> Optional[tuple[str, object]]:
        while not self._events:
            if self._exhausted:
                return None
            try:
                chunk = await self._stream.__anext__()
            except StopAsyncIteration:
                self._exhausted = True
                self._parser.finalize()
                if not self._finished:
                    raise MultipartStreamError("Unexpected end of multipart body") from None
                continue
            except Exception as exc:
                raise MultipartStreamError(f"Failed to read request body: {exc}") from exc
            if not chunk:
                continue
            try:
                self._parser.write(chunk)
            except MultipartParseError as exc:
                raise MultipartStreamError(f"Malformed multipart body: {exc}") from exc
        return self._events.popleft()

    async def _part_chunks(self) -> AsyncIterator[bytes]:
        while self._part_open:
            event = await self._next_event()
            if event is None:
                raise MultipartStreamError("Unexpected end of multipart body")
            kind, payload = event
            if kind == "end":
                self._part_open = False
                return
            if kind == "data":
                yield payload  # type: ignore[misc]

    async def _drain_part(self) -> None:
        async for _ in self._part_chunks():
            pass

    async def parts(self) -> AsyncIterator[UploadPart]:
        while True:
            if self._part_open:
                await self._drain_part()
            event = await self._next_event()
            if event is None:
                return
            kind, payload = event
            if kind != "part":
                raise MultipartStreamError(f"Unexpected multipart event: {kind}")
            field = _field_from_headers(payload)  # type: ignore[arg-type]
            self._part_open = True
            yield UploadPart(field=field, chunks=self._part_chunks())


def iter_parts(stream: AsyncIterable[bytes], boundary: bytes) -> AsyncIterator[UploadPart]:
    """Yield the parts of a ``multipart/form-data`` body lazily, in order."""

    return MultipartStream(stream, boundary).parts()
