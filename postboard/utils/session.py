from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import Request

from ..errors import ErrorKind, PostSubmissionError

USER_ID_KEY = "user_id"


def get_current_user_id(request: Request) -> Optional[UUID]:
    """Return the signed-in user's id, or ``None`` for anonymous requests.

    A session that carries a user id which cannot be read is treated as a
    permission failure rather than as an anonymous visitor.
    """
    session = request.scope.get("session")
    if session is None:
        return None
    raw = session.get(USER_ID_KEY)
    if raw is None:
        return None
    try:
        return UUID(str(raw))
    except ValueError as exc:
        raise PostSubmissionError(ErrorKind.PERMISSION_DENIED, "unreadable session user id") from exc
