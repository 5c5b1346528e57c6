"""Service layer for business logic."""

from controller.services.deletion_service import DeletionService
from controller.services.download_service import DownloadService
from controller.services.file_service import FileService
from controller.services.upload_service import UploadService

__all__ = [
    "DeletionService",
    "DownloadService",
    "FileService",
    "UploadService",
]
