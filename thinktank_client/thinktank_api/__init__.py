# thinktank_client/thinktank_api/__init__.py
from .auth import TokenProvider, StaticTokenProvider
from .client import ThinkTankAPIClient
from .exceptions import (
    ThinkTankAPIError, APIConnectionError, APIRequestError,
    APIResponseError, AuthenticationError, NotFoundError
)
from .in_memory import InMemoryConversationService
from .schemas import (
    ConversationDTO, ConversationMessageDTO, ChatMessageDTO, ChatResponse, ChatUsage,
    ModelInfo, MessageRoleLiteral # Export Literals
)
from .service import ConversationService

__all__ = [
    "ConversationService", "ThinkTankAPIClient", "InMemoryConversationService",
    "TokenProvider", "StaticTokenProvider",
    "ThinkTankAPIError", "APIConnectionError", "APIRequestError",
    "APIResponseError", "AuthenticationError", "NotFoundError",
    "ConversationDTO", "ConversationMessageDTO", "ChatMessageDTO", "ChatResponse", "ChatUsage",
    "ModelInfo", "MessageRoleLiteral"
]
