from pydantic import Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime

from app.schemas.auth import CamelModel


class ThreadCreate(CamelModel):
    thread_id: Optional[str] = Field(default=None, min_length=1, max_length=255)
    title: Optional[str] = Field(default=None, max_length=255)


class ThreadSummary(CamelModel):
    thread_id: str
    title: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MessageRecord(CamelModel):
    role: str
    content: str
    timestamp: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ChatRequest(CamelModel):
    thread_id: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1, max_length=10000)
    file_ids: List[str] = Field(default_factory=list, max_length=5)


class ChatResponse(CamelModel):
    reply: str
    thread_id: str
