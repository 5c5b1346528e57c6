"""File operation API routes."""

import base64
from dataclasses import asdict
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response

from controller.auth import get_current_user
from controller.config import UPLOAD_TIMEOUT_SECONDS
from controller.schemas.common import ERROR_RESPONSES
from controller.schemas.files import (
    BulkDownloadRequest,
    DeleteFileResponse,
    FileMetadataResponse,
    ListFilesResponse,
    PreviewDataResponse,
    UploadFileResponse,
)
from controller.service_locator import get_file_service

router = APIRouter(prefix="/files", tags=["Files"])


def _attachment(filename: str) -> str:
    return f"attachment; filename*=UTF-8''{quote(filename)}"


def _inline(filename: str) -> str:
    return f"inline; filename*=UTF-8''{quote(filename)}"


@router.post("", response_model=UploadFileResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    container_id: str = Form(...),
    current_user: str = Depends(get_current_user)
):
    """
    Upload a file into a container, deduplicating its chunks.

    Parameters:
        - file: File to upload (multipart/form-data)
        - container_id: Target container (bucket) identifier
        - X-User-Id header: caller identity (required)

    Returns:
        - file_id, original_name, size
        - total_chunks, unique_chunks, duplicate_chunks

    Raises:
        - 400: Empty file or missing name/container
        - 413: File too large
        - 415: Content type not allowed
        - 503: Object store unavailable
        - 504: Upload timed out (fully rolled back)
    """
    file_service = get_file_service()

    result = await run_in_threadpool(
        file_service.upload,
        file.file,
        container_id=container_id,
        original_name=file.filename or "",
        content_type=file.content_type,
        owner_id=current_user,
        timeout=UPLOAD_TIMEOUT_SECONDS,
    )

    return UploadFileResponse(
        file_id=result.file_id,
        original_name=result.original_name,
        size=result.total_size,
        total_chunks=result.total_chunks,
        unique_chunks=result.unique_chunks,
        duplicate_chunks=result.duplicate_chunks,
    )


@router.get("", response_model=ListFilesResponse)
async def list_files(
    container_id: str = Query(..., description="Container to list"),
    current_user: str = Depends(get_current_user)
):
    """
    List the caller's files in a container, oldest first.
    """
    file_service = get_file_service()

    files = await run_in_threadpool(file_service.list_files, container_id, current_user)

    return ListFilesResponse(
        files=[FileMetadataResponse(**asdict(metadata)) for metadata in files]
    )


@router.post("/download-zip", responses=ERROR_RESPONSES)
async def download_files_as_zip(
    request: BulkDownloadRequest,
    current_user: str = Depends(get_current_user)
):
    """
    Download several files as one ZIP archive.

    Raises:
        - 404: Any of the files does not exist
        - 500: Integrity fault while reassembling a file
    """
    file_service = get_file_service()

    archive = await run_in_threadpool(file_service.download_many_as_zip, request.file_ids, current_user)

    return Response(
        content=archive,
        media_type="application/zip",
        headers={"Content-Disposition": _attachment("files.zip")}
    )


@router.get("/{file_id}/download", responses=ERROR_RESPONSES)
async def download_file(
    file_id: str,
    current_user: str = Depends(get_current_user)
):
    """
    Download a file by file_id.

    Returns:
        - The exact original bytes

    Raises:
        - 403: Caller does not own this file
        - 404: File not found
        - 500: Integrity fault (ledger and store disagree)
        - 503: Object store unavailable
    """
    file_service = get_file_service()

    file, data = await run_in_threadpool(file_service.download, file_id, current_user)

    return Response(
        content=data,
        media_type=file.content_type,
        headers={"Content-Disposition": _attachment(file.original_name)}
    )


@router.get("/{file_id}/preview", responses=ERROR_RESPONSES)
async def preview_file(
    file_id: str,
    current_user: str = Depends(get_current_user)
):
    """
    Serve a file inline so a browser can render it, e.g. inside a same-origin iframe.
    """
    file_service = get_file_service()

    file, data = await run_in_threadpool(file_service.download, file_id, current_user)

    return Response(
        content=data,
        media_type=file.content_type,
        headers={
            "Content-Disposition": _inline(file.original_name),
            "X-Frame-Options": "SAMEORIGIN",
        }
    )


@router.get("/{file_id}/preview-data", response_model=PreviewDataResponse, responses=ERROR_RESPONSES)
async def get_preview_data(
    file_id: str,
    current_user: str = Depends(get_current_user)
):
    """
    Get file content as base64 along with its name and content type.
    """
    file_service = get_file_service()

    file, data = await run_in_threadpool(file_service.download, file_id, current_user)

    return PreviewDataResponse(
        file_id=file.file_id,
        file_name=file.original_name,
        content_type=file.content_type,
        size=len(data),
        data=base64.b64encode(data).decode("ascii"),
    )


@router.get("/{file_id}/metadata", response_model=FileMetadataResponse, responses=ERROR_RESPONSES)
async def get_file_metadata(
    file_id: str,
    current_user: str = Depends(get_current_user)
):
    """
    Get metadata for a file, including its chunk count.
    """
    file_service = get_file_service()

    metadata = await run_in_threadpool(file_service.get_metadata, file_id, current_user)

    return FileMetadataResponse(**asdict(metadata))


@router.delete("/{file_id}", response_model=DeleteFileResponse, responses=ERROR_RESPONSES)
async def delete_file(
    file_id: str,
    current_user: str = Depends(get_current_user)
):
    """
    Delete a file and garbage-collect chunks no other file references.

    Raises:
        - 403: Caller does not own this file
        - 404: File not found
    """
    file_service = get_file_service()

    result = await run_in_threadpool(file_service.delete, file_id, current_user)

    return DeleteFileResponse(
        file_id=result.file_id,
        released_chunks=result.released_chunks,
        reclaimed_chunks=result.reclaimed_chunks,
        pending_object_deletions=len(result.blobs_pending),
    )
