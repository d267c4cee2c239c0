# thinktank_client/thinktank_api/client.py
#
#
# Imports
import json
from collections.abc import AsyncIterator
from typing import Optional, Dict, Any, List, Tuple
#
# 3rd-party Libraries
import httpx
from loguru import logger
from pydantic import ValidationError
#
# Local Imports
from thinktank_client.Constants import CONVERSATIONS_PATH, CHAT_PATH, MODELS_PATH
from .auth import TokenProvider
from .exceptions import (
    APIConnectionError, APIRequestError, APIResponseError, AuthenticationError, NotFoundError
)
from .schemas import (
    AddMessageRequest, ChatMessageDTO, ChatRequest, ChatResponse, ConversationDTO,
    ConversationMessageDTO, ConversationResponse, ConversationsListResponse,
    CreateConversationRequest, MessageResponse, ModelInfo, ModelsResponse, UpdateConversationRequest,
)
from .service import ConversationService
from .utils import decode_error_body, extract_error_detail, is_sse_done, parse_sse_line
#
########################################################################################################################
#
# Functions:

logger = logger.bind(module="ThinkTankAPIClient")


def raise_for_api_status(status_code: int, response_data: Optional[Dict[str, Any]], raw_text: str = "") -> None:
    """Maps an unsuccessful HTTP status onto the thinktank_api exception hierarchy."""
    error_detail = extract_error_detail(response_data, raw_text or f"HTTP {status_code}")
    if status_code == 401:
        raise AuthenticationError(f"Authentication failed: {error_detail}")
    if status_code == 404:
        raise NotFoundError(error_detail)
    if status_code in (400, 422):
        raise APIRequestError(f"Validation Error: {error_detail}", response_data=response_data)
    raise APIResponseError(status_code, error_detail, response_data=response_data)


class ThinkTankAPIClient(ConversationService):
    def __init__(
        self,
        base_url: str,
        token_provider: Optional[TokenProvider] = None,
        streaming_url: Optional[str] = None,
        timeout: float = 30.0,
        streaming_timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.token_provider = token_provider
        self.streaming_url = streaming_url or None
        self.timeout = timeout
        self.streaming_timeout = streaming_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _auth_headers(self) -> Dict[str, str]:
        if self.token_provider is None:
            return {}
        token = await self.token_provider.get_id_token()
        return {"Authorization": f"Bearer {token}"}

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_body: Optional[Dict[str, Any]] = None,
        expected_status: Tuple[int, ...] = (200,),
    ) -> Dict[str, Any]:
        client = await self._get_client()
        headers = await self._auth_headers()
        url = f"{self.base_url}{endpoint}"

        logger.debug(f"{method} {url}")
        try:
            response = await client.request(method, endpoint, json=json_body, headers=headers)
        except httpx.RequestError as e: # Covers ConnectError, TimeoutException, etc.
            logger.error(f"Request error for {method} {url}: {e}")
            raise APIConnectionError(f"Connection error to {url}: {e}") from e

        if response.status_code not in expected_status:
            logger.warning(f"{method} {url} returned HTTP {response.status_code}")
            raise_for_api_status(response.status_code, decode_error_body(response.text), response.text)

        if not response.content:
            return {}
        try:
            return response.json()
        except json.JSONDecodeError:
            raise APIResponseError(response.status_code, "Failed to decode JSON response",
                                   response_data={"raw_text": response.text})

    @staticmethod
    def _parse(model_cls, response_dict: Dict[str, Any], status_code: int = 200):
        try:
            return model_cls.model_validate(response_dict)
        except ValidationError as e:
            raise APIResponseError(status_code, f"Unexpected response structure: {e}",
                                   response_data=response_dict) from e

    # --- Conversations ---

    async def list_conversations(self) -> List[ConversationDTO]:
        response_dict = await self._request("GET", CONVERSATIONS_PATH)
        return self._parse(ConversationsListResponse, response_dict).conversations

    async def create_conversation(self, title: Optional[str], model_id: str) -> ConversationDTO:
        body = CreateConversationRequest(title=title, model_id=model_id).to_payload()
        response_dict = await self._request("POST", CONVERSATIONS_PATH, json_body=body, expected_status=(200, 201))
        return self._parse(ConversationResponse, response_dict, 201).conversation

    async def get_conversation(self, conversation_id: str) -> ConversationDTO:
        response_dict = await self._request("GET", f"{CONVERSATIONS_PATH}/{conversation_id}")
        return self._parse(ConversationResponse, response_dict).conversation

    async def update_conversation(
        self, conversation_id: str, title: Optional[str] = None, model_id: Optional[str] = None
    ) -> ConversationDTO:
        body = UpdateConversationRequest(title=title, model_id=model_id).to_payload()
        response_dict = await self._request("PUT", f"{CONVERSATIONS_PATH}/{conversation_id}", json_body=body)
        return self._parse(ConversationResponse, response_dict).conversation

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._request("DELETE", f"{CONVERSATIONS_PATH}/{conversation_id}")

    async def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        model_id: Optional[str] = None,
        is_error: Optional[bool] = None,
        error_message: Optional[str] = None,
    ) -> ConversationMessageDTO:
        try:
            body = AddMessageRequest(
                role=role, content=content, model_id=model_id, is_error=is_error, error_message=error_message
            ).to_payload()
        except ValidationError as e:
            raise APIRequestError(f"Invalid message payload: {e}") from e
        response_dict = await self._request(
            "POST", f"{CONVERSATIONS_PATH}/{conversation_id}/messages", json_body=body, expected_status=(200, 201)
        )
        return self._parse(MessageResponse, response_dict, 201).message

    # --- Chat ---

    async def send_chat_message(
        self, conversation_id: Optional[str], model_id: str, messages: List[ChatMessageDTO]
    ) -> ChatResponse:
        body = ChatRequest(conversation_id=conversation_id, model_id=model_id, messages=messages,
                           stream=False).to_payload()
        response_dict = await self._request("POST", CHAT_PATH, json_body=body)
        return self._parse(ChatResponse, response_dict)

    @property
    def is_streaming_available(self) -> bool:
        return bool(self.streaming_url)

    async def stream_chat_message(
        self, conversation_id: Optional[str], model_id: str, messages: List[ChatMessageDTO]
    ) -> AsyncIterator[str]:
        if not self.streaming_url:
            raise APIResponseError(500, "Streaming endpoint not configured")

        client = await self._get_client()
        headers = await self._auth_headers()
        headers["Accept"] = "text/event-stream"
        body = ChatRequest(conversation_id=conversation_id, model_id=model_id, messages=messages,
                           stream=True).to_payload()

        try:
            async with client.stream("POST", self.streaming_url, json=body, headers=headers,
                                     timeout=self.streaming_timeout) as response:
                if response.status_code != 200:
                    raw_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise_for_api_status(response.status_code, decode_error_body(raw_text),
                                         raw_text or "Streaming request failed")

                async for line in response.aiter_lines():
                    if is_sse_done(line):
                        break
                    chunk = parse_sse_line(line)
                    if chunk is None:
                        continue
                    if chunk.error is not None:
                        raise APIResponseError(500, chunk.error.message)
                    choice = chunk.choices[0] if chunk.choices else None
                    if choice is None:
                        continue
                    if choice.delta is not None and choice.delta.content:
                        yield choice.delta.content
                    if choice.finish_reason is not None:
                        break
        except httpx.RequestError as e:
            raise APIConnectionError(f"Connection error to {self.streaming_url}: {e}") from e

    # --- Models ---

    async def fetch_models(self) -> List[ModelInfo]:
        response_dict = await self._request("GET", MODELS_PATH)
        return self._parse(ModelsResponse, response_dict).models

#
# End of client.py
########################################################################################################################
