"""Pydantic schemas for API requests and responses."""

from controller.schemas.files import (
    UploadFileResponse,
    FileMetadataResponse,
    ListFilesResponse,
    DeleteFileResponse,
    BulkDownloadRequest,
    PreviewDataResponse
)
from controller.schemas.internal import ReconcileResponse, LedgerStatsResponse
from controller.schemas.common import ERROR_RESPONSES, ErrorResponse

__all__ = [
    "UploadFileResponse",
    "FileMetadataResponse",
    "ListFilesResponse",
    "DeleteFileResponse",
    "BulkDownloadRequest",
    "PreviewDataResponse",
    "ReconcileResponse",
    "LedgerStatsResponse",
    "ERROR_RESPONSES",
    "ErrorResponse"
]
