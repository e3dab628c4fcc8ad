from dataclasses import dataclass
from typing import List, Optional, Sequence, Union, Dict, Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_openai import ChatOpenAI

from app.core.config import settings
from app.core.exceptions import UpstreamError
from app.core.logging import logger
from app.models import Message, MessageRole


@dataclass
class ImageAttachment:
    base64: str
    mime_type: str


class LLMService:
    """Thin wrapper around the chat-completion model used for replies."""

    def __init__(self):
        self.settings = settings

    def _build_llm(self, with_images: bool) -> ChatOpenAI:
        model = self.settings.OPENAI_VISION_MODEL if with_images else self.settings.OPENAI_TEXT_MODEL
        return ChatOpenAI(
            model=model,
            api_key=self.settings.OPENAI_API_KEY,
            max_tokens=self.settings.OPENAI_MAX_TOKENS,
        )

    @staticmethod
    def build_messages(
        history: Sequence[Message],
        prompt: str,
        images: Optional[Sequence[ImageAttachment]] = None,
    ) -> List[BaseMessage]:
        messages: List[BaseMessage] = []
        for item in history:
            if item.role == MessageRole.ASSISTANT.value:
                messages.append(AIMessage(content=item.content))
            else:
                messages.append(HumanMessage(content=item.content))

        content: Union[str, List[Dict[str, Any]]] = prompt
        if images:
            content = [{"type": "text", "text": prompt}]
            content.extend(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{image.mime_type};base64,{image.base64}"},
                }
                for image in images
            )
        messages.append(HumanMessage(content=content))
        return messages

    async def generate_reply(
        self,
        history: Sequence[Message],
        prompt: str,
        images: Optional[Sequence[ImageAttachment]] = None,
    ) -> str:
        messages = self.build_messages(history, prompt, images)
        llm = self._build_llm(with_images=bool(images))
        try:
            result = await llm.ainvoke(messages)
        except Exception as exc:  # noqa: BLE001 - any provider failure is reported the same way
            logger.error("LLM request failed", error=str(exc), model=llm.model_name)
            raise UpstreamError("Failed to send message", code="LLM_FAILED") from exc

        reply = result.content if isinstance(result.content, str) else str(result.content)
        logger.info("LLM reply received", model=llm.model_name, characters=len(reply))
        return reply
