from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..config import Settings, get_settings
from ..db import get_session
from ..errors import ErrorKind, PostSubmissionError
from ..schemas import PostResponse, PostsListResponse
from ..services import posts as posts_service
from ..utils.multipart import MultipartStreamError, boundary_from_content_type, iter_parts
from ..utils.session import get_current_user_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["posts"])


@router.post("/submit_post")
async def submit_post(
    request: Request,
    user_id: Optional[UUID] = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """Accept a ``multipart/form-data`` post with ``post-editor`` text and an optional ``image``."""
    if user_id is None:
        return RedirectResponse("/login", status_code=303)

    try:
        boundary = boundary_from_content_type(request.headers.get("content-type"))
    except MultipartStreamError as exc:
        raise PostSubmissionError(ErrorKind.PARSE_ERROR, str(exc)) from exc

    new_post, upload = await posts_service.build_post(
        iter_parts(request.stream(), boundary),
        settings.upload_path,
        keep_partial_uploads=settings.keep_partial_uploads,
    )
    try:
        await run_in_threadpool(posts_service.insert_post, session, user_id, new_post)
    except PostSubmissionError:
        if not settings.keep_partial_uploads:
            await upload.discard()
        raise

    logger.info("Post submitted", extra={"user_id": str(user_id), "has_image": new_post.image is not None})
    return RedirectResponse("/", status_code=302)


@router.get("/api/posts", response_model=PostsListResponse)
def list_posts(
    session: Session = Depends(get_session),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> PostsListResponse:
    posts = posts_service.list_posts(session, limit=limit, offset=offset)
    items = [PostResponse.model_validate(post) for post in posts]
    return PostsListResponse(items=items, limit=limit, offset=offset)
