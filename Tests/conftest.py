# Tests/conftest.py
#
#
# Imports
import asyncio
from typing import Dict, List, Optional, Tuple
#
# Third-party imports
import pytest
import pytest_asyncio
#
# Local imports
from thinktank_client.Chat.conversation_store import ConversationStore
from thinktank_client.Constants import DEFAULT_MODEL_ID
from thinktank_client.thinktank_api.in_memory import InMemoryConversationService
#
############################################################################################################################
#
# Functions:

class RecordingService(InMemoryConversationService):
    """
    In-memory backend that records every call and lets a test fail or hold the next call
    to a given method. Held calls wait until the test sets the returned event. A held
    response has already been applied to the backend but is not returned to the caller yet.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls: List[Tuple] = []
        self._failures: Dict[str, List[Exception]] = {}
        self._gates: Dict[str, List[asyncio.Event]] = {}
        self._response_gates: Dict[str, List[asyncio.Event]] = {}

    def fail_next(self, method: str, exc: Exception) -> None:
        self._failures.setdefault(method, []).append(exc)

    def hold_next(self, method: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates.setdefault(method, []).append(gate)
        return gate

    def hold_next_response(self, method: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._response_gates.setdefault(method, []).append(gate)
        return gate

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    def calls_to(self, method: str) -> List[Tuple]:
        return [call[1:] for call in self.calls if call[0] == method]

    async def _enter(self, method: str, *args) -> None:
        self.calls.append((method,) + args)
        gates = self._gates.get(method)
        if gates:
            await gates.pop(0).wait()
        failures = self._failures.get(method)
        if failures:
            raise failures.pop(0)

    async def _leave(self, method: str, result):
        gates = self._response_gates.get(method)
        if gates:
            await gates.pop(0).wait()
        return result

    async def create_conversation(self, title, model_id):
        await self._enter("create_conversation", title, model_id)
        return await super().create_conversation(title, model_id)

    async def list_conversations(self):
        await self._enter("list_conversations")
        return await super().list_conversations()

    async def get_conversation(self, conversation_id):
        await self._enter("get_conversation", conversation_id)
        return await super().get_conversation(conversation_id)

    async def update_conversation(self, conversation_id, title=None, model_id=None):
        await self._enter("update_conversation", conversation_id, title, model_id)
        return await super().update_conversation(conversation_id, title=title, model_id=model_id)

    async def delete_conversation(self, conversation_id):
        await self._enter("delete_conversation", conversation_id)
        return await super().delete_conversation(conversation_id)

    async def add_message(self, conversation_id, role, content, model_id=None, is_error=None, error_message=None):
        await self._enter("add_message", conversation_id, role, content)
        created = await super().add_message(conversation_id, role, content, model_id=model_id,
                                            is_error=is_error, error_message=error_message)
        return await self._leave("add_message", created)

    async def send_chat_message(self, conversation_id, model_id, messages):
        await self._enter("send_chat_message", conversation_id, model_id, [m.content for m in messages])
        return await super().send_chat_message(conversation_id, model_id, messages)

    async def stream_chat_message(self, conversation_id, model_id, messages):
        await self._enter("stream_chat_message", conversation_id, model_id, [m.content for m in messages])
        async for chunk in super().stream_chat_message(conversation_id, model_id, messages):
            yield chunk

    async def fetch_models(self):
        await self._enter("fetch_models")
        return await super().fetch_models()


@pytest.fixture
def service():
    return RecordingService(streaming=False)


@pytest.fixture
def seed(service):
    """Creates conversations directly on the backend without recording calls."""
    async def _seed(title: str, messages: Optional[List[Tuple[str, str]]] = None,
                    model_id: str = DEFAULT_MODEL_ID):
        created = await InMemoryConversationService.create_conversation(service, title, model_id)
        for role, content in messages or []:
            await InMemoryConversationService.add_message(service, created.id, role, content)
        return created
    return _seed


@pytest.fixture
def streaming_service():
    return RecordingService(streaming=True, chunk_size=5)


@pytest_asyncio.fixture
async def store(service):
    conversation_store = ConversationStore(service, default_model_id=DEFAULT_MODEL_ID)
    yield conversation_store
    await conversation_store.wait_for_background_tasks()

#
# End of conftest.py
########################################################################################################################
