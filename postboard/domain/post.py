from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class PostBody(BaseModel):
    """Post text; must contain something other than whitespace."""

    value: str

    model_config = ConfigDict(frozen=True)

    @field_validator("value")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("post body must not be empty")
        return value


class PostImage(BaseModel):
    path: str

    model_config = ConfigDict(frozen=True)


class NewPost(BaseModel):
    body: PostBody
    image: Optional[PostImage] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def new(cls, body: str, image_path: str = "") -> NewPost:
        """Validate raw submitted values; an empty ``image_path`` means no image."""
        image = PostImage(path=image_path) if image_path else None
        return cls(body=PostBody(value=body), image=image)
