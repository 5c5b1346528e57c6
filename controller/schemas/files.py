"""Pydantic schemas for file operation endpoints."""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class UploadFileResponse(BaseModel):
    """Response model for file upload."""
    file_id: str
    original_name: str
    size: int
    total_chunks: int
    unique_chunks: int
    duplicate_chunks: int
    message: str = "File uploaded successfully with deduplication"


class FileMetadataResponse(BaseModel):
    """Response model for file metadata."""
    file_id: str
    container_id: str
    original_name: str
    size: int
    content_type: str
    uploaded_at: datetime
    chunk_count: int


class ListFilesResponse(BaseModel):
    """Response model for file listing."""
    files: List[FileMetadataResponse]


class DeleteFileResponse(BaseModel):
    """Response model for file deletion."""
    file_id: str
    released_chunks: int
    reclaimed_chunks: int
    pending_object_deletions: int


class BulkDownloadRequest(BaseModel):
    """Request model for downloading several files as one ZIP archive."""
    file_ids: List[str] = Field(..., min_length=1)


class PreviewDataResponse(BaseModel):
    """File content as base64 for in-browser preview."""
    file_id: str
    file_name: str
    content_type: str
    size: int
    data: str
