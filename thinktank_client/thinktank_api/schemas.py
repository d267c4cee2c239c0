# thinktank_client/thinktank_api/schemas.py
from datetime import datetime
from typing import List, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Enum-like Literals from the API schema
MessageRoleLiteral = Literal['user', 'assistant']


class CamelModel(BaseModel):
    """The API speaks camelCase JSON; Python code uses snake_case field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Conversation Records ---
class ConversationMessageDTO(CamelModel):
    id: str
    role: MessageRoleLiteral
    content: str
    timestamp: datetime
    model_id: Optional[str] = None
    is_error: Optional[bool] = None
    error_message: Optional[str] = None

class ConversationDTO(CamelModel):
    id: str
    title: str
    model_id: str
    created_at: datetime
    updated_at: datetime
    message_count: int = 0
    messages: Optional[List[ConversationMessageDTO]] = None # Only present on GET /conversations/{id}


# --- Request Bodies ---
class CreateConversationRequest(CamelModel):
    title: Optional[str] = None
    model_id: str

class UpdateConversationRequest(CamelModel):
    title: Optional[str] = None
    model_id: Optional[str] = None

class AddMessageRequest(CamelModel):
    role: MessageRoleLiteral
    content: str
    model_id: Optional[str] = None
    is_error: Optional[bool] = None
    error_message: Optional[str] = None

class ChatMessageDTO(CamelModel):
    role: MessageRoleLiteral
    content: str

class ChatRequest(CamelModel):
    conversation_id: Optional[str] = None
    model_id: str
    messages: List[ChatMessageDTO]
    stream: bool = False


# --- Response Envelopes ---
class ConversationsListResponse(CamelModel):
    conversations: List[ConversationDTO]

class ConversationResponse(CamelModel):
    conversation: ConversationDTO

class MessageResponse(CamelModel):
    message: ConversationMessageDTO

class ChatUsage(CamelModel):
    input_tokens: int
    output_tokens: int

class ChatResponse(CamelModel):
    conversation_id: str
    message: ChatMessageDTO
    usage: Optional[ChatUsage] = None

class ModelInfo(CamelModel):
    model_id: str
    display_name: str
    provider: str
    max_tokens: int
    streaming: bool = False

class ModelsResponse(CamelModel):
    models: List[ModelInfo]


# --- SSE Streaming Chunks (OpenAI-style deltas passed through from OpenRouter) ---
class StreamDelta(BaseModel):
    content: Optional[str] = None
    role: Optional[str] = None

class StreamChoice(BaseModel):
    delta: Optional[StreamDelta] = None
    finish_reason: Optional[str] = None

class StreamError(BaseModel):
    message: str

class StreamChunk(BaseModel):
    choices: Optional[List[StreamChoice]] = None
    error: Optional[StreamError] = None
