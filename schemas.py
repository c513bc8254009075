"""
Database Schemas for the Wellness Feed

Each Pydantic model corresponds to a MongoDB collection.
Collection name is the lowercase of the class name.
Request bodies live at the bottom of the module.
"""

import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Category = Literal["General", "Fitness", "Nutrition", "Mental Health", "Lifestyle", "Motivation"]
MediaType = Literal["image", "video", "text"]

HEX_COLOR = re.compile(r"^#(?:[0-9A-Fa-f]{6}|[0-9A-Fa-f]{8})$")
DEFAULT_BACKGROUND = "#000000"


def normalize_color(value: str) -> str:
    """Prepend a missing '#' and check the result is #RRGGBB or #RRGGBBAA."""
    value = value.strip()
    if not value.startswith("#"):
        value = f"#{value}"
    if not HEX_COLOR.match(value):
        raise ValueError(f"{value} is not a valid hex color!")
    return value


class User(BaseModel):
    """
    Account owning posts and comments. Managed by the auth service, read only here.
    Collection: "user"
    """
    name: str
    email: str
    profile_picture: Optional[str] = None


class Post(BaseModel):
    """
    Posts shared by users
    Collection: "post"
    """
    owner: str = Field(..., description="User id of the author; never changes")
    caption: str = Field(..., min_length=1)
    media_url: Optional[str] = Field(None, description="Reference returned by the media store")
    media_type: MediaType = "text"
    category: Category = "General"
    is_private: bool = False
    allow_comments: bool = True
    likes: List[str] = Field(default_factory=list, description="User ids, each at most once")
    text_background_color: str = DEFAULT_BACKGROUND

    @field_validator("text_background_color")
    @classmethod
    def _check_color(cls, v: str) -> str:
        return normalize_color(v)


class Comment(BaseModel):
    """
    Comments on posts, including replies to other comments
    Collection: "comment"
    """
    author: str = Field(..., description="User id of the commenter")
    post: str = Field(..., description="ID of the post this comment belongs to")
    content: str = Field(..., min_length=1)
    likes: List[str] = Field(default_factory=list)
    replies: List[str] = Field(default_factory=list, description="Reply comment ids in order")


# Request bodies

class PostUpdate(BaseModel):
    """Fields a post owner may change. Anything else is rejected."""
    model_config = ConfigDict(extra="forbid")

    caption: Optional[str] = Field(None, min_length=1)
    category: Optional[Category] = None
    is_private: Optional[bool] = None
    allow_comments: Optional[bool] = None
    text_background_color: Optional[str] = None

    @field_validator("caption")
    @classmethod
    def _check_caption(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("Caption is required")
        return v

    @field_validator("text_background_color")
    @classmethod
    def _check_color(cls, v: Optional[str]) -> Optional[str]:
        return normalize_color(v) if v is not None else v


class PostCommentCreate(BaseModel):
    text: str = Field(..., min_length=1)


class CommentCreate(BaseModel):
    post_id: str
    content: str = Field(..., min_length=1)


class CommentContent(BaseModel):
    content: str = Field(..., min_length=1)
