from __future__ import annotations

import base64
import os
from typing import List, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session, undefer

from app.core.config import settings
from app.core.exceptions import AuthorizationError, NotFoundError, RequestValidationFailed
from app.core.logging import logger
from app.models import Upload
from app.schemas.auth import Identity
from app.schemas.upload import UploadedFilePayload
from app.services.file_processor import (
    ALLOWED_MIME_TYPES,
    EXTENSION_ALIASES,
    FileProcessingError,
    process_file,
)
from app.utils.helpers import sanitize_filename, utcnow


def _owner_id(identity: Optional[Identity]) -> Optional[UUID]:
    return identity.id if identity else None


class UploadService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def validate_file(payload: UploadedFilePayload) -> None:
        """Size first, then MIME allow-list, then extension/MIME agreement."""
        if len(payload.content) > settings.MAX_UPLOAD_SIZE_BYTES:
            limit_mb = settings.MAX_UPLOAD_SIZE_BYTES // (1024 * 1024)
            raise RequestValidationFailed(
                f"{payload.original_name} exceeds the {limit_mb}MB limit",
                error="Upload failed",
                code="FILE_TOO_LARGE",
            )

        mime_type = (payload.mime_type or "").lower()
        expected_ext = ALLOWED_MIME_TYPES.get(mime_type)
        if expected_ext is None:
            raise RequestValidationFailed(
                f"File type {payload.mime_type} is not supported. "
                "Allowed types: PNG, JPG, JPEG, WebP, PDF, DOCX, TXT, CSV",
                error="Upload failed",
                code="UNSUPPORTED_TYPE",
            )

        ext = os.path.splitext(payload.original_name)[1].lower()
        if EXTENSION_ALIASES.get(ext, ext) != expected_ext:
            raise RequestValidationFailed(
                f"File extension {ext or '(none)'} does not match MIME type {mime_type}",
                error="Upload failed",
                code="EXTENSION_MISMATCH",
            )

    def validate_batch(self, payloads: Sequence[UploadedFilePayload]) -> None:
        if not payloads:
            raise RequestValidationFailed(
                "Please select at least one file",
                error="No files uploaded",
                code="NO_FILES",
            )
        if len(payloads) > settings.MAX_FILES_PER_UPLOAD:
            raise RequestValidationFailed(
                f"A maximum of {settings.MAX_FILES_PER_UPLOAD} files can be uploaded at once",
                error="Upload failed",
                code="TOO_MANY_FILES",
            )
        for payload in payloads:
            self.validate_file(payload)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def store_files(
        self,
        payloads: Sequence[UploadedFilePayload],
        thread_id: str,
        identity: Optional[Identity],
    ) -> List[Upload]:
        self.validate_batch(payloads)

        uploads: List[Upload] = []
        for payload in payloads:
            mime_type = (payload.mime_type or "").lower()
            try:
                processed = process_file(payload.content, mime_type)
                logger.info(
                    "File processed",
                    filename=payload.original_name,
                    characters=len(processed.get("text") or ""),
                )
            except FileProcessingError as exc:
                logger.warning("File processing failed", filename=payload.original_name, error=str(exc))
                processed = {"error": str(exc), "text": ""}

            upload = Upload(
                user_id=_owner_id(identity),
                thread_id=thread_id,
                filename=f"{uuid4()}-{sanitize_filename(payload.original_name)}",
                original_name=payload.original_name,
                mime_type=mime_type,
                size=len(payload.content),
                file_data=payload.content,
                details=processed,
                extracted_text=processed.get("text") or "",
                uploaded_at=utcnow(),
            )
            self.db.add(upload)
            uploads.append(upload)

        self.db.commit()
        for upload in uploads:
            self.db.refresh(upload)

        logger.info(
            "Files uploaded",
            count=len(uploads),
            thread_id=thread_id,
            user_id=str(identity.id) if identity else None,
        )
        return uploads

    def delete_upload(self, upload: Upload) -> Upload:
        logger.info("Deleting upload", upload_id=str(upload.id), thread_id=upload.thread_id)
        self.db.delete(upload)
        self.db.commit()
        return upload

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def parse_upload_id(raw: str) -> UUID:
        try:
            return UUID(raw)
        except (ValueError, TypeError):
            raise RequestValidationFailed("Invalid file ID") from None

    @staticmethod
    def can_access(upload: Upload, identity: Optional[Identity]) -> bool:
        """Anonymous uploads are open to anyone holding the id; owned ones only to the owner."""
        if not upload.is_owned():
            return True
        return identity is not None and upload.user_id == identity.id

    def get_upload(self, upload_id: str, identity: Optional[Identity], with_data: bool = False) -> Upload:
        stmt = select(Upload).where(Upload.id == self.parse_upload_id(upload_id))
        if with_data:
            stmt = stmt.options(undefer(Upload.file_data))
        upload = self.db.execute(stmt).scalar_one_or_none()

        if upload is None:
            raise NotFoundError("The requested file does not exist", error="File not found")
        if not self.can_access(upload, identity):
            raise AuthorizationError("You do not have permission to access this file")
        return upload

    def list_thread_uploads(self, thread_id: str, identity: Optional[Identity]) -> List[Upload]:
        owner_id = _owner_id(identity)
        stmt = select(Upload).where(Upload.thread_id == thread_id)
        if owner_id is not None:
            stmt = stmt.where(Upload.user_id == owner_id)
        else:
            stmt = stmt.where(Upload.user_id.is_(None))
        stmt = stmt.order_by(Upload.uploaded_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    def get_accessible_uploads(self, upload_ids: Sequence[str], identity: Optional[Identity]) -> List[Upload]:
        """Uploads to attach to a chat turn; unknown, malformed or foreign ids are skipped."""
        parsed: List[UUID] = []
        for raw in upload_ids:
            try:
                parsed.append(UUID(str(raw)))
            except ValueError:
                logger.warning("Skipping malformed file id", file_id=raw)
        if not parsed:
            return []

        stmt = select(Upload).where(Upload.id.in_(parsed)).options(undefer(Upload.file_data))
        uploads = []
        for upload in self.db.execute(stmt).scalars().all():
            if self.can_access(upload, identity):
                uploads.append(upload)
            else:
                logger.warning("Skipping inaccessible file", file_id=str(upload.id))
        return uploads

    @staticmethod
    def encode_base64(upload: Upload) -> str:
        if not upload.is_image():
            raise RequestValidationFailed(
                "Only images can be encoded to base64",
                error="Invalid file type",
            )
        return base64.b64encode(upload.file_data).decode("ascii")
