from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile, status
from typing import List, Optional
from urllib.parse import quote

from app.core.config import settings
from app.core.deps import get_optional_identity, get_upload_service
from app.core.logging import logger
from app.core.rate_limit import limiter, upload_rate_limit_key
from app.models import Upload
from app.schemas.auth import Identity, MessageResponse
from app.schemas.upload import (
    ThreadUploadsResponse,
    UploadBase64Response,
    UploadCreateResponse,
    UploadDetail,
    UploadedFilePayload,
    UploadListItem,
    UploadSummary,
)
from app.services.upload_service import UploadService

router = APIRouter()


def _summary(upload: Upload) -> UploadSummary:
    return UploadSummary(
        id=upload.id,
        filename=upload.filename,
        original_name=upload.original_name,
        mime_type=upload.mime_type,
        size=upload.size,
        uploaded_at=upload.uploaded_at,
    )


def _list_item(upload: Upload) -> UploadListItem:
    return UploadListItem(**_summary(upload).model_dump(), metadata=upload.details or {})


@router.post("", response_model=UploadCreateResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.UPLOAD_RATE_LIMIT, key_func=upload_rate_limit_key)
async def upload_files(
    request: Request,
    thread_id: str = Form(..., alias="threadId", min_length=1, max_length=255),
    message: Optional[str] = Form(default=None, max_length=10000),
    files: Optional[List[UploadFile]] = File(default=None),
    identity: Optional[Identity] = Depends(get_optional_identity),
    upload_service: UploadService = Depends(get_upload_service),
):
    """Accept up to five files for a thread; all are validated before any is stored."""
    payloads = []
    for item in files or []:
        payloads.append(
            UploadedFilePayload(
                original_name=item.filename or "file",
                mime_type=item.content_type,
                content=await item.read(),
            )
        )

    if message:
        logger.info("Upload accompanied by message", thread_id=thread_id, characters=len(message))

    uploads = upload_service.store_files(payloads, thread_id, identity)
    return UploadCreateResponse(
        message=f"Successfully uploaded {len(uploads)} file(s)",
        files=[_summary(upload) for upload in uploads],
    )


# Declared before "/{upload_id}" so "thread" is never taken for a file id.
@router.get("/thread/{thread_id}", response_model=ThreadUploadsResponse)
async def list_thread_uploads(
    thread_id: str,
    identity: Optional[Identity] = Depends(get_optional_identity),
    upload_service: UploadService = Depends(get_upload_service),
):
    uploads = upload_service.list_thread_uploads(thread_id, identity)
    return ThreadUploadsResponse(
        thread_id=thread_id,
        count=len(uploads),
        files=[_list_item(upload) for upload in uploads],
    )


@router.get("/{upload_id}", response_model=UploadDetail)
async def get_upload(
    upload_id: str,
    identity: Optional[Identity] = Depends(get_optional_identity),
    upload_service: UploadService = Depends(get_upload_service),
):
    upload = upload_service.get_upload(upload_id, identity)
    return UploadDetail(
        **_list_item(upload).model_dump(),
        extracted_text=upload.extracted_text or "",
        thread_id=upload.thread_id,
    )


@router.get("/{upload_id}/download")
async def download_upload(
    upload_id: str,
    identity: Optional[Identity] = Depends(get_optional_identity),
    upload_service: UploadService = Depends(get_upload_service),
):
    upload = upload_service.get_upload(upload_id, identity, with_data=True)
    disposition = f"attachment; filename*=UTF-8''{quote(upload.original_name)}"
    return Response(
        content=upload.file_data,
        media_type=upload.mime_type,
        headers={"Content-Disposition": disposition},
    )


@router.get("/{upload_id}/base64", response_model=UploadBase64Response)
async def get_upload_base64(
    upload_id: str,
    identity: Optional[Identity] = Depends(get_optional_identity),
    upload_service: UploadService = Depends(get_upload_service),
):
    upload = upload_service.get_upload(upload_id, identity, with_data=True)
    return UploadBase64Response(
        id=upload.id,
        base64=upload_service.encode_base64(upload),
        mime_type=upload.mime_type,
    )


@router.delete("/{upload_id}", response_model=MessageResponse)
async def delete_upload(
    upload_id: str,
    identity: Optional[Identity] = Depends(get_optional_identity),
    upload_service: UploadService = Depends(get_upload_service),
):
    upload = upload_service.get_upload(upload_id, identity)
    upload_service.delete_upload(upload)
    return MessageResponse(message="File deleted successfully")
