from pydantic import ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID

from app.schemas.auth import CamelModel


class UploadSummary(CamelModel):
    id: UUID
    filename: str
    original_name: str
    mime_type: str
    size: int
    uploaded_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UploadListItem(UploadSummary):
    metadata: Dict[str, Any] = {}


class UploadDetail(UploadListItem):
    extracted_text: str = ""
    thread_id: str


class UploadCreateResponse(CamelModel):
    success: bool = True
    message: str
    files: List[UploadSummary]


class ThreadUploadsResponse(CamelModel):
    thread_id: str
    count: int
    files: List[UploadListItem]


class UploadBase64Response(CamelModel):
    id: UUID
    base64: str
    mime_type: str


class UploadedFilePayload(CamelModel):
    """A file as received from the client, before validation."""

    original_name: str
    mime_type: Optional[str] = None
    content: bytes
