from typing import List, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ConflictError, NotFoundError
from app.core.logging import logger
from app.models import Message, MessageRole, Thread, Upload
from app.schemas.auth import Identity
from app.services.llm_service import ImageAttachment, LLMService
from app.services.upload_service import UploadService
from app.utils.helpers import truncate_string, utcnow

DEFAULT_THREAD_TITLE = "New Thread"
TITLE_LENGTH = 100
TRUNCATION_MARKER = "\n... [truncated]"


def build_file_context(
    uploads: Sequence[Upload],
    max_chars: Optional[int] = None,
) -> Tuple[str, List[ImageAttachment]]:
    """Split attached uploads into a text section and vision attachments."""
    limit = max_chars or settings.MAX_CONTEXT_CHARS_PER_FILE
    sections: List[str] = []
    images: List[ImageAttachment] = []

    for upload in uploads:
        if upload.is_image():
            images.append(
                ImageAttachment(
                    base64=UploadService.encode_base64(upload),
                    mime_type=upload.mime_type,
                )
            )
            sections.append(f"[Image: {upload.original_name}]")
            continue

        text = upload.extracted_text or ""
        if not text:
            sections.append(f"[File: {upload.original_name}] (no extractable text)")
            continue
        if len(text) > limit:
            text = text[:limit] + TRUNCATION_MARKER
        sections.append(f"[File: {upload.original_name}]\n{text}")

    if not sections:
        return "", images
    return "--- Attached Files ---\n" + "\n\n".join(sections), images


class ThreadService:
    def __init__(self, db: Session, llm_service: Optional[LLMService] = None):
        self.db = db
        self.llm_service = llm_service or LLMService()
        self.uploads = UploadService(db)

    def _scoped(self, identity: Optional[Identity]):
        # Authenticated and anonymous threads never see each other.
        stmt = select(Thread)
        if identity is not None:
            return stmt.where(Thread.user_id == identity.id)
        return stmt.where(Thread.user_id.is_(None))

    def list_threads(self, identity: Optional[Identity]) -> List[Thread]:
        stmt = self._scoped(identity).order_by(Thread.updated_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    def find_thread(self, thread_id: str, identity: Optional[Identity]) -> Optional[Thread]:
        stmt = self._scoped(identity).where(Thread.thread_id == thread_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_thread(self, thread_id: str, identity: Optional[Identity]) -> Thread:
        thread = self.find_thread(thread_id, identity)
        if thread is None:
            raise NotFoundError("Thread not found", error="Thread not found")
        return thread

    def create_thread(
        self,
        identity: Optional[Identity],
        thread_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Thread:
        thread = Thread(
            thread_id=thread_id or str(uuid4()),
            user_id=identity.id if identity else None,
            title=title or DEFAULT_THREAD_TITLE,
        )
        self.db.add(thread)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("A thread with this id already exists", code="THREAD_EXISTS") from None
        self.db.refresh(thread)
        logger.info("Thread created", thread_id=thread.thread_id)
        return thread

    def delete_thread(self, thread_id: str, identity: Optional[Identity]) -> None:
        thread = self.get_thread(thread_id, identity)
        self.db.delete(thread)
        self.db.commit()
        logger.info("Thread deleted", thread_id=thread_id)

    async def chat(
        self,
        identity: Optional[Identity],
        thread_id: str,
        message: str,
        file_ids: Optional[Sequence[str]] = None,
    ) -> str:
        """Send ``message`` with the thread's history and persist both turns.

        The thread is created on first use. Nothing is written when the model
        call fails.
        """
        thread = self.find_thread(thread_id, identity)
        history: List[Message] = list(thread.messages) if thread is not None else []

        attached = self.uploads.get_accessible_uploads(file_ids or [], identity)
        file_context, images = build_file_context(attached)
        prompt = f"{message}\n\n{file_context}" if file_context else message

        logger.info(
            "Sending chat message",
            thread_id=thread_id,
            history=len(history),
            files=len(attached),
            images=len(images),
        )
        reply = await self.llm_service.generate_reply(history, prompt, images)

        now = utcnow()
        if thread is None:
            thread = Thread(
                thread_id=thread_id,
                user_id=identity.id if identity else None,
                title=truncate_string(message, TITLE_LENGTH),
            )
            self.db.add(thread)

        thread.messages.append(Message(role=MessageRole.USER.value, content=message, timestamp=now))
        thread.messages.append(Message(role=MessageRole.ASSISTANT.value, content=reply, timestamp=utcnow()))
        thread.updated_at = now

        try:
            self.db.commit()
        except IntegrityError:
            # The id belongs to a thread in the other partition.
            self.db.rollback()
            raise ConflictError("A thread with this id already exists", code="THREAD_EXISTS") from None

        return reply
