# chat_models.py
# Description: Local conversation and message records held by the ConversationStore.
#
# Imports
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4
#
# 3rd-Party Imports
from pydantic import BaseModel, Field, model_validator
#
# Local Imports
from thinktank_client.Constants import (
    DEFAULT_CONVERSATION_TITLE, DEFAULT_MODEL_ID, NO_MESSAGES_PREVIEW,
    ERROR_TEXT_NETWORK, ERROR_TEXT_UNAUTHORIZED, ERROR_TEXT_NOT_FOUND, ERROR_TEXT_VALIDATION, ERROR_TEXT_SERVER,
)
from thinktank_client.thinktank_api.exceptions import (
    APIConnectionError, APIRequestError, APIResponseError, AuthenticationError, NotFoundError
)
from thinktank_client.thinktank_api.schemas import ChatMessageDTO, ConversationDTO, ConversationMessageDTO
from .cloud_id_map import derive_local_id
#
########################################################################################################################
#
# Functions:

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # The backend sends ISO strings with a trailing Z; naive values are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def error_text_for(exc: BaseException) -> str:
    """User-facing description for a failed chat request."""
    if isinstance(exc, APIConnectionError):
        return ERROR_TEXT_NETWORK
    if isinstance(exc, AuthenticationError):
        return ERROR_TEXT_UNAUTHORIZED
    if isinstance(exc, NotFoundError):
        return ERROR_TEXT_NOT_FOUND
    if isinstance(exc, APIRequestError):
        return ERROR_TEXT_VALIDATION
    return ERROR_TEXT_SERVER


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    model_id: Optional[str] = None
    is_error: bool = False
    error_message: Optional[str] = None

    model_config = {"protected_namespaces": ()}

    @model_validator(mode="after")
    def _check_error_role(self) -> "Message":
        if self.is_error and self.role != MessageRole.ASSISTANT:
            raise ValueError("Only assistant messages can be error messages")
        self.timestamp = _as_utc(self.timestamp)
        return self

    @classmethod
    def user(cls, content: str, model_id: Optional[str] = None) -> "Message":
        return cls(role=MessageRole.USER, content=content, model_id=model_id)

    @classmethod
    def assistant(cls, content: str, model_id: Optional[str] = None) -> "Message":
        return cls(role=MessageRole.ASSISTANT, content=content, model_id=model_id)

    @classmethod
    def error_for(cls, exc: BaseException, model_id: Optional[str] = None) -> "Message":
        """
        The assistant error bubble shown in place of a reply.

        `content` is what the user reads; `error_message` keeps the technical detail.
        """
        return cls(
            role=MessageRole.ASSISTANT,
            content=error_text_for(exc),
            model_id=model_id,
            is_error=True,
            error_message=str(exc) or exc.__class__.__name__,
        )

    @classmethod
    def from_remote(cls, dto: ConversationMessageDTO) -> "Message":
        return cls(
            id=derive_local_id(dto.id),
            role=MessageRole(dto.role),
            content=dto.content,
            timestamp=dto.timestamp,
            model_id=dto.model_id,
            is_error=bool(dto.is_error) and dto.role == "assistant",
            error_message=dto.error_message,
        )

    def to_chat_dto(self) -> ChatMessageDTO:
        return ChatMessageDTO(role=self.role.value, content=self.content)


class Conversation(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    title: str = DEFAULT_CONVERSATION_TITLE
    messages: List[Message] = Field(default_factory=list)
    model_id: str = DEFAULT_MODEL_ID
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    model_config = {"protected_namespaces": ()}

    @model_validator(mode="after")
    def _normalize_timestamps(self) -> "Conversation":
        self.created_at = _as_utc(self.created_at)
        self.updated_at = max(_as_utc(self.updated_at), self.created_at)
        return self

    @classmethod
    def from_remote(cls, dto: ConversationDTO) -> "Conversation":
        """Local record for a server conversation; the id is derived from the server id."""
        messages = [Message.from_remote(m) for m in dto.messages] if dto.messages else []
        return cls(
            id=derive_local_id(dto.id),
            title=dto.title,
            messages=messages,
            model_id=dto.model_id,
            created_at=dto.created_at,
            updated_at=dto.updated_at,
        )

    def touch(self, at: Optional[datetime] = None) -> None:
        self.updated_at = max(_as_utc(at) if at else utc_now(), self.created_at)

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def last_message_preview(self) -> str:
        if not self.messages:
            return NO_MESSAGES_PREVIEW
        return self.messages[-1].content

    def message_index(self, message_id: UUID) -> Optional[int]:
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return index
        return None

#
# End of chat_models.py
########################################################################################################################
