from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _clean_tags(value: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for tag in value:
        tag = (tag or "").strip().lower()
        if not tag or tag in seen:
            continue
        seen.add(tag)
        out.append(tag)
    return out


class ImageCreate(BaseModel):
    title: str
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    file_name: str
    file_size: int = 0
    file_type: str = "image/jpeg"
    storage_path: str
    url: str
    thumbnail_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        title = (value or "").strip()
        if not title or len(title) > 200:
            raise ValueError("title must be 1-200 characters")
        return title

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, value: list[str]) -> list[str]:
        return _clean_tags(value)


class ImageUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[list[str]] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        title = value.strip()
        if not title or len(title) > 200:
            raise ValueError("title must be 1-200 characters")
        return title

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value is None:
            return value
        return _clean_tags(value)


class ImageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    file_name: str
    file_size: int
    file_type: str
    url: str
    thumbnail_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    created_at: datetime


class GalleryPage(BaseModel):
    images: list[ImageOut]
    page: int
    page_size: int
    total: int
