from __future__ import annotations

import logging
from typing import AsyncIterable
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.post import NewPost
from ..errors import ErrorKind, PostSubmissionError
from ..models import Post
from ..utils.multipart import UploadPart
from .ingest import DemuxResult, demultiplex

logger = logging.getLogger(__name__)


def assemble_post(body: str, image_path: str = "") -> NewPost:
    try:
        return NewPost.new(body, image_path)
    except ValidationError as exc:
        raise PostSubmissionError(ErrorKind.PARSE_ERROR, "post body is empty") from exc


async def build_post(
    parts: AsyncIterable[UploadPart],
    upload_path: str,
    *,
    keep_partial_uploads: bool = False,
) -> tuple[NewPost, DemuxResult]:
    """Turn a multipart submission into a validated post.

    Returns the post together with the demultiplexer result so the caller can
    discard the stored image if a later step fails.
    """
    result = await demultiplex(parts, upload_path, keep_partial_uploads=keep_partial_uploads)
    try:
        post = assemble_post(result.text, result.image_path)
    except PostSubmissionError:
        if not keep_partial_uploads:
            await result.discard()
        raise
    return post, result


def insert_post(session: Session, user_id: UUID, post: NewPost) -> Post:
    """Persist and commit ``post``; any database failure becomes ``QUERY_ERROR``."""
    row = Post(
        user_id=user_id,
        body=post.body.value,
        image=post.image.path if post.image else None,
    )
    try:
        session.add(row)
        session.commit()
    except SQLAlchemyError as exc:
        logger.error("Failed to insert post", extra={"user_id": str(user_id)}, exc_info=True)
        session.rollback()
        raise PostSubmissionError(ErrorKind.QUERY_ERROR, "insert failed") from exc
    logger.info("Inserted post", extra={"post_id": str(row.post_id), "user_id": str(user_id)})
    return row


def list_posts(session: Session, *, limit: int = 50, offset: int = 0) -> list[Post]:
    stmt = select(Post).order_by(Post.created_at.desc()).limit(limit).offset(offset)
    return list(session.scalars(stmt))
