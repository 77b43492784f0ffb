from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base

UUIDType = Uuid(as_uuid=True)


class Post(Base):
    __tablename__ = "posts"

    post_id: Mapped[UUID] = mapped_column(UUIDType, primary_key=True, default=uuid4)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    image: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    user_id: Mapped[UUID] = mapped_column(UUIDType, nullable=False, index=True)

    def __init__(
        self,
        *,
        user_id: UUID,
        body: str,
        image: str | None = None,
        post_id: UUID | None = None,
        created_at: datetime | None = None,
    ) -> None:
        self.post_id = post_id or uuid4()
        self.user_id = user_id
        self.body = body
        self.image = image
        self.created_at = created_at or datetime.now(UTC)
