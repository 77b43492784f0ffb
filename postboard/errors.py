"""Error taxonomy shared by the post submission pipeline.

Every failure inside ingestion, assembly or persistence is classified into
exactly one :class:`ErrorKind` before it leaves the component that observed
it. The HTTP status for each kind is chosen in one place,
:func:`register_error_handlers`.
"""

from __future__ import annotations

import logging
from enum import Enum

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    QUERY_ERROR = (500, "An internal error occured. Please try again later")
    FILE_UPLOAD_ERROR = (500, "Error uploading your file")
    FILE_UPLOAD_PATH_ERROR = (500, "File upload path error")
    PARSE_ERROR = (400, "Error parsing submitted fields")
    PERMISSION_DENIED = (403, "User does not have permission to make post")

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500


class PostSubmissionError(Exception):
    """Raised with a classified :class:`ErrorKind`; the cause is chained."""

    def __init__(self, kind: ErrorKind, detail: str | None = None) -> None:
        super().__init__(detail or kind.message)
        self.kind = kind
        self.detail = detail

    def __repr__(self) -> str:
        return f"PostSubmissionError({self.kind.name}, detail={self.detail!r})"


async def post_submission_error_handler(request: Request, exc: PostSubmissionError) -> PlainTextResponse:
    log = logger.warning if exc.kind.is_client_error else logger.error
    log(
        "Post submission failed",
        extra={"kind": exc.kind.name, "path": request.url.path, "detail": exc.detail},
        exc_info=exc.__cause__ if not exc.kind.is_client_error else None,
    )
    return PlainTextResponse(exc.kind.message, status_code=exc.kind.status_code)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PostSubmissionError, post_submission_error_handler)
