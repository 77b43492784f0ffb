from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class PostResponse(BaseModel):
    post_id: UUID
    body: str
    image: Optional[str] = None
    created_at: datetime
    user_id: UUID

    model_config = ConfigDict(from_attributes=True)


class PostsListResponse(BaseModel):
    items: list[PostResponse]
    limit: int
    offset: int
