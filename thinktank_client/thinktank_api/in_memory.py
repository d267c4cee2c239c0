# thinktank_client/thinktank_api/in_memory.py
# Description: Offline conversation backend that follows the server handlers' rules.
#
# Used when no API base URL is configured (guest mode) and as the backend of the store tests.
#
# Imports
import asyncio
import random
import string
import time
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Dict, List, Optional
#
# 3rd-party Libraries
from loguru import logger
#
# Local Imports
from thinktank_client.Constants import AVAILABLE_MODELS, DEFAULT_CONVERSATION_TITLE
from .exceptions import APIRequestError, NotFoundError
from .schemas import ChatMessageDTO, ChatResponse, ChatUsage, ConversationDTO, ConversationMessageDTO, ModelInfo
from .service import ConversationService
#
#######################################################################################################################
#
# Functions:

logger = logger.bind(module="InMemoryConversationService")

_ID_ALPHABET = string.digits + string.ascii_lowercase

RESPONSE_TEMPLATES = [
    "Interesting question about \"{key_phrase}\"! Let me think about that...\n\n"
    "Here are my thoughts:\n\n"
    "- First, I'd consider the core aspects of your query\n"
    "- Then, we could explore the underlying concepts\n"
    "- Finally, let's look at practical applications",
    "Great topic! You mentioned \"{key_phrase}\" which is fascinating.\n\n"
    "Is there a specific aspect you'd like to dive deeper into?",
    "Thanks for asking about \"{key_phrase}\"!\n\n"
    "> The best approach is often the simplest one that solves the problem effectively.",
]


def generate_server_id(now: Optional[float] = None) -> str:
    """`<epoch milliseconds>_<7 base36 characters>`, the format the backend hands out."""
    millis = int((time.time() if now is None else now) * 1000)
    suffix = "".join(random.choices(_ID_ALPHABET, k=7))
    return f"{millis}_{suffix}"


def key_phrase_for(text: str) -> str:
    words = text.split(" ")
    if len(words) > 5:
        return " ".join(words[:5]) + "..."
    return text


def generate_reply(text: str) -> str:
    """Canned assistant reply echoing the start of the user's message."""
    template = RESPONSE_TEMPLATES[len(text) % len(RESPONSE_TEMPLATES)]
    return template.format(key_phrase=key_phrase_for(text))


class InMemoryConversationService(ConversationService):
    """
    Conversation storage held in process memory.

    Mirrors the backend: ids in server format, listing newest-updated first, messages
    oldest first, cascading deletes, `messageCount` bookkeeping, and the same 400/404
    rejections. Replies are canned; streaming yields the same reply in fixed-size chunks.
    """

    def __init__(
        self,
        models: Optional[List[ModelInfo]] = None,
        streaming: bool = True,
        chunk_size: int = 16,
        response_delay: float = 0.0,
    ):
        self._conversations: Dict[str, ConversationDTO] = {}
        self._messages: Dict[str, List[ConversationMessageDTO]] = {}
        # Monotonic counter breaks updatedAt ties so listing order is stable
        self._touch_order: Dict[str, int] = {}
        self._touch_counter = 0
        self._models = models if models is not None else [ModelInfo(**entry) for entry in AVAILABLE_MODELS]
        self._streaming = streaming
        self.chunk_size = max(1, chunk_size)
        self.response_delay = response_delay

    # --- Internal helpers ---

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _touch(self, conversation_id: str) -> None:
        self._touch_counter += 1
        self._touch_order[conversation_id] = self._touch_counter

    def _require(self, conversation_id: str) -> ConversationDTO:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found", resource_id=conversation_id)
        return conversation

    def _snapshot(self, conversation_id: str, with_messages: bool = False) -> ConversationDTO:
        conversation = self._conversations[conversation_id]
        messages = None
        if with_messages:
            messages = [m.model_copy() for m in self._messages.get(conversation_id, [])]
        return conversation.model_copy(update={"messages": messages})

    async def _simulate_latency(self) -> None:
        if self.response_delay > 0:
            await asyncio.sleep(self.response_delay)

    # --- Conversations ---

    async def create_conversation(self, title: Optional[str], model_id: str) -> ConversationDTO:
        if not model_id:
            raise APIRequestError("modelId is required")
        now = self._now()
        conversation_id = generate_server_id()
        while conversation_id in self._conversations:
            conversation_id = generate_server_id()
        self._conversations[conversation_id] = ConversationDTO(
            id=conversation_id,
            title=title or DEFAULT_CONVERSATION_TITLE,
            model_id=model_id,
            created_at=now,
            updated_at=now,
            message_count=0,
        )
        self._messages[conversation_id] = []
        self._touch(conversation_id)
        logger.debug(f"Created conversation {conversation_id}")
        return self._snapshot(conversation_id)

    async def list_conversations(self) -> List[ConversationDTO]:
        ordered = sorted(
            self._conversations,
            key=lambda cid: (self._conversations[cid].updated_at, self._touch_order.get(cid, 0)),
            reverse=True,
        )
        return [self._snapshot(cid) for cid in ordered]

    async def get_conversation(self, conversation_id: str) -> ConversationDTO:
        self._require(conversation_id)
        return self._snapshot(conversation_id, with_messages=True)

    async def update_conversation(
        self, conversation_id: str, title: Optional[str] = None, model_id: Optional[str] = None
    ) -> ConversationDTO:
        existing = self._require(conversation_id)
        changes = {"updated_at": max(self._now(), existing.updated_at)}
        if title is not None:
            changes["title"] = title
        if model_id is not None:
            changes["model_id"] = model_id
        self._conversations[conversation_id] = existing.model_copy(update=changes)
        self._touch(conversation_id)
        return self._snapshot(conversation_id)

    async def delete_conversation(self, conversation_id: str) -> None:
        self._require(conversation_id)
        del self._conversations[conversation_id]
        self._messages.pop(conversation_id, None)
        self._touch_order.pop(conversation_id, None)
        logger.debug(f"Deleted conversation {conversation_id} and its messages")

    async def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        model_id: Optional[str] = None,
        is_error: Optional[bool] = None,
        error_message: Optional[str] = None,
    ) -> ConversationMessageDTO:
        existing = self._require(conversation_id)
        if not role or not content:
            raise APIRequestError("role and content are required")
        if role not in ("user", "assistant"):
            raise APIRequestError('role must be "user" or "assistant"')
        now = max(self._now(), existing.updated_at)
        message = ConversationMessageDTO(
            id=generate_server_id(),
            role=role,
            content=content,
            timestamp=now,
            model_id=model_id,
            is_error=is_error,
            error_message=error_message,
        )
        self._messages[conversation_id].append(message)
        self._conversations[conversation_id] = existing.model_copy(
            update={"updated_at": now, "message_count": existing.message_count + 1}
        )
        self._touch(conversation_id)
        return message.model_copy()

    # --- Chat ---

    @staticmethod
    def _validate_chat(model_id: str, messages: List[ChatMessageDTO]) -> str:
        if not model_id or not messages:
            raise APIRequestError("modelId and messages are required")
        last_user = next((m.content for m in reversed(messages) if m.role == "user"), messages[-1].content)
        return generate_reply(last_user)

    async def send_chat_message(
        self, conversation_id: Optional[str], model_id: str, messages: List[ChatMessageDTO]
    ) -> ChatResponse:
        reply = self._validate_chat(model_id, messages)
        await self._simulate_latency()
        return ChatResponse(
            conversation_id=conversation_id or generate_server_id(),
            message=ChatMessageDTO(role="assistant", content=reply),
            usage=ChatUsage(
                input_tokens=sum(len(m.content.split()) for m in messages),
                output_tokens=len(reply.split()),
            ),
        )

    @property
    def is_streaming_available(self) -> bool:
        return self._streaming

    async def stream_chat_message(
        self, conversation_id: Optional[str], model_id: str, messages: List[ChatMessageDTO]
    ) -> AsyncIterator[str]:
        reply = self._validate_chat(model_id, messages)
        for start in range(0, len(reply), self.chunk_size):
            await self._simulate_latency()
            yield reply[start:start + self.chunk_size]

    # --- Models ---

    async def fetch_models(self) -> List[ModelInfo]:
        return [model.model_copy() for model in self._models]

#
# End of thinktank_client/thinktank_api/in_memory.py
########################################################################################################################
