"""
Pydantic schemas for API responses.
Field names are snake_case in Python and camelCase on the wire,
except cdn_url which keeps its historical spelling.
"""
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, List


class CommentResponse(BaseModel):
    id: int
    content: str
    image_id: int = Field(alias="imageId")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ImageResponse(BaseModel):
    """Image metadata plus the public CDN URL for the stored object."""
    id: int
    title: str
    storage_key: str = Field(alias="storageKey")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    cdn_url: str

    model_config = ConfigDict(populate_by_name=True)


class ImageDetailResponse(ImageResponse):
    comments: List[CommentResponse] = []


class ImagesPageResponse(BaseModel):
    """
    Paginated image listing.
    Used by GET /api/images.
    """
    images: List[ImageResponse]
    current_page: int = Field(alias="currentPage")
    total_pages: int = Field(alias="totalPages")
    has_previous_page: bool = Field(alias="hasPreviousPage")
    has_next_page: bool = Field(alias="hasNextPage")
    prev_page: int = Field(alias="prevPage")
    next_page: int = Field(alias="nextPage")
    limit: int
    total_items: int = Field(alias="totalItems")

    model_config = ConfigDict(populate_by_name=True)


class CommentConfirmation(BaseModel):
    id: int
    image_id: int = Field(alias="imageId")
    content: str

    model_config = ConfigDict(populate_by_name=True)


class CommentCreatedResponse(BaseModel):
    message: str
    comment: CommentConfirmation
