"""
Remote conversation service contract.

'ConversationService' is what the local conversation store consumes. The HTTP
implementation ('ThinkTankAPIClient') talks to the API Gateway backend; the
in-memory implementation ('InMemoryConversationService') serves offline use and
tests. Both raise the exceptions from 'thinktank_api.exceptions'.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import List, Optional

from .schemas import ChatMessageDTO, ChatResponse, ConversationDTO, ConversationMessageDTO, ModelInfo


class ConversationService(ABC):
    """Conversation/message CRUD over the single-table store, plus the chat passthrough."""

    @abstractmethod
    async def create_conversation(self, title: Optional[str], model_id: str) -> ConversationDTO:
        pass

    @abstractmethod
    async def list_conversations(self) -> List[ConversationDTO]:
        """All conversations of the signed-in user, most recently updated first."""
        pass

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> ConversationDTO:
        """The conversation with 'messages' embedded, oldest first."""
        pass

    @abstractmethod
    async def update_conversation(
        self, conversation_id: str, title: Optional[str] = None, model_id: Optional[str] = None
    ) -> ConversationDTO:
        pass

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> None:
        """Deletes the conversation and all of its messages."""
        pass

    @abstractmethod
    async def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        model_id: Optional[str] = None,
        is_error: Optional[bool] = None,
        error_message: Optional[str] = None,
    ) -> ConversationMessageDTO:
        pass

    @abstractmethod
    async def send_chat_message(
        self, conversation_id: Optional[str], model_id: str, messages: List[ChatMessageDTO]
    ) -> ChatResponse:
        pass

    @abstractmethod
    def stream_chat_message(
        self, conversation_id: Optional[str], model_id: str, messages: List[ChatMessageDTO]
    ) -> AsyncIterator[str]:
        """Yield assistant content fragments as they arrive."""
        pass

    @property
    @abstractmethod
    def is_streaming_available(self) -> bool:
        pass

    @abstractmethod
    async def fetch_models(self) -> List[ModelInfo]:
        pass

    async def close(self) -> None:
        return None
