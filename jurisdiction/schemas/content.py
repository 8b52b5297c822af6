from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from jurisdiction.models.content import ContentTarget


class ContentCreate(BaseModel):
    title: str = Field(..., min_length=1)
    body: Optional[str] = None
    published: bool = False
    target: ContentTarget = Field(default_factory=ContentTarget)

    model_config = ConfigDict(extra="ignore")


class ContentUpdate(BaseModel):
    """Fields left unset keep their stored value. A new target is re-derived."""

    title: Optional[str] = Field(None, min_length=1)
    body: Optional[str] = None
    published: Optional[bool] = None
    target: Optional[ContentTarget] = None

    model_config = ConfigDict(extra="ignore")
