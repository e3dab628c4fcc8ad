from fastapi import APIRouter, Depends, Request, status
from typing import List, Optional

from app.core.config import settings
from app.core.deps import get_optional_identity, get_thread_service
from app.core.rate_limit import limiter
from app.schemas.auth import Identity, MessageResponse
from app.schemas.chat import ChatRequest, ChatResponse, MessageRecord, ThreadCreate, ThreadSummary
from app.services.chat_service import ThreadService

router = APIRouter()


@router.get("/thread", response_model=List[ThreadSummary])
async def list_threads(
    identity: Optional[Identity] = Depends(get_optional_identity),
    thread_service: ThreadService = Depends(get_thread_service),
):
    """Threads in the caller's partition, most recently updated first."""
    return thread_service.list_threads(identity)


@router.post("/thread", response_model=ThreadSummary, status_code=status.HTTP_201_CREATED)
async def create_thread(
    payload: ThreadCreate,
    identity: Optional[Identity] = Depends(get_optional_identity),
    thread_service: ThreadService = Depends(get_thread_service),
):
    return thread_service.create_thread(identity, payload.thread_id, payload.title)


@router.get("/thread/{thread_id}", response_model=List[MessageRecord])
async def get_thread_messages(
    thread_id: str,
    identity: Optional[Identity] = Depends(get_optional_identity),
    thread_service: ThreadService = Depends(get_thread_service),
):
    thread = thread_service.get_thread(thread_id, identity)
    return thread.messages


@router.delete("/thread/{thread_id}", response_model=MessageResponse)
async def delete_thread(
    thread_id: str,
    identity: Optional[Identity] = Depends(get_optional_identity),
    thread_service: ThreadService = Depends(get_thread_service),
):
    thread_service.delete_thread(thread_id, identity)
    return MessageResponse(message="Thread deleted successfully")


@router.post("/chat", response_model=ChatResponse)
@limiter.limit(settings.API_RATE_LIMIT)
async def chat(
    request: Request,
    payload: ChatRequest,
    identity: Optional[Identity] = Depends(get_optional_identity),
    thread_service: ThreadService = Depends(get_thread_service),
):
    reply = await thread_service.chat(identity, payload.thread_id, payload.message, payload.file_ids)
    return ChatResponse(reply=reply, thread_id=payload.thread_id)
