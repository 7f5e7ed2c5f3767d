"""
Pydantic schemas for the JSON API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from filedepot.categories import DEFAULT_COLOR


class NoticeModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    level: Literal["success", "error", "info"]
    message: str


class NoticeResponse(BaseModel):
    notice: NoticeModel


class UserModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str


class SessionResponse(BaseModel):
    authenticated: bool
    is_admin: bool
    user: Optional[UserModel] = None


class CredentialsPayload(BaseModel):
    email: str = Field(..., max_length=320)
    password: str = Field(..., max_length=256)


class SignInResponse(BaseModel):
    notice: NoticeModel
    session: SessionResponse


class CategorySummaryModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    color: str


class FileModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    original_name: str
    size: int
    mime_type: Optional[str] = None
    storage_path: str
    download_count: int
    created_at: datetime
    category_id: Optional[str] = None
    category: Optional[CategorySummaryModel] = None


class FileListResponse(BaseModel):
    files: list[FileModel]
    total: int
    search: str = ""
    category_id: Optional[str] = None


class DownloadResponse(BaseModel):
    file_id: str
    url: str
    filename: str
    download_count: int


class CategoryModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    color: str


class CategoryListResponse(BaseModel):
    categories: list[CategoryModel]
    palette: list[str]


class CategoryPayload(BaseModel):
    name: str = Field(..., max_length=64)
    color: str = Field(default=DEFAULT_COLOR)


class CategoryMutationResponse(BaseModel):
    notice: NoticeModel
    categories: list[CategoryModel]


class StatsResponse(BaseModel):
    total_files: int
    total_downloads: int
    total_size: int
    total_size_display: str


class UploadItemModel(BaseModel):
    item_id: str
    filename: str
    size: int
    content_type: Optional[str] = None
    status: Literal["pending", "uploading", "complete", "error"]
    progress: Optional[int] = None
    error: Optional[str] = None
    file_id: Optional[str] = None
    storage_path: Optional[str] = None


class UploadQueueResponse(BaseModel):
    items: list[UploadItemModel]
    notices: list[NoticeModel] = Field(default_factory=list)
