# conversation_store.py
# Description: In-memory conversation state for the chat UI, mirrored to the ThinkTank backend.
#
# Local edits are applied immediately and pushed to the server by fire-and-forget background
# tasks. A full reload replaces the local collection with the server listing.
#
# Imports
import asyncio
from datetime import datetime
from typing import Callable, Coroutine, Dict, List, Optional, Set, Tuple, Union
from uuid import UUID, uuid4
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from thinktank_client.Constants import (
    AVAILABLE_MODELS, COPY_TITLE_SUFFIX, DEFAULT_CONVERSATION_TITLE, DEFAULT_MODEL_ID, TITLE_ELLIPSIS,
    TITLE_MAX_CHARS,
)
from thinktank_client.thinktank_api.exceptions import ThinkTankAPIError
from thinktank_client.thinktank_api.schemas import ModelInfo
from thinktank_client.thinktank_api.service import ConversationService
from .chat_models import Conversation, Message, MessageRole
from .cloud_id_map import CloudIdMap, derive_local_id
from .conversation_grouping import DateGroup, filter_conversations, group_conversations_by_date
#
########################################################################################################################
#
# Functions:

logger = logger.bind(module="ConversationStore")

ConversationRef = Union[Conversation, UUID]
StoreListener = Callable[[str], None]


class ConversationStoreError(Exception):
    """Base exception for local store failures."""
    pass


class ConversationNotFoundError(ConversationStoreError):
    def __init__(self, conversation_id: UUID):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


def derive_title(content: str) -> Optional[str]:
    """Title from a first user message: its first non-empty line, cut to 40 characters plus '...'."""
    for line in content.splitlines():
        line = line.strip()
        if line:
            if len(line) > TITLE_MAX_CHARS:
                return line[:TITLE_MAX_CHARS] + TITLE_ELLIPSIS
            return line
    return None


class ConversationStore:
    """
    Owns the conversation list, the selection and the local -> server id map.

    All public mutators run synchronously on the event loop and return right away; server
    calls happen in background tasks whose completions re-check that the conversation and its
    mapping still exist before touching state. Observers registered with `subscribe` are called
    with a short reason string after every state change.
    """

    def __init__(
        self,
        service: ConversationService,
        default_model_id: Optional[str] = None,
        default_title: Optional[str] = None,
    ):
        self.service = service
        self.default_model_id = default_model_id or DEFAULT_MODEL_ID
        self.default_title = default_title or DEFAULT_CONVERSATION_TITLE

        self._conversations: List[Conversation] = []
        self._selected_conversation_id: Optional[UUID] = None
        self._id_map = CloudIdMap()

        self.is_loading = False
        self.is_syncing = False
        self.last_sync_error: Optional[str] = None
        self.streaming_message_id: Optional[UUID] = None
        self.streaming_content = ""

        self._fetch_sequence: Dict[UUID, int] = {}
        # Local message id -> server message id, for messages this store uploaded
        self._remote_message_ids: Dict[UUID, str] = {}
        # Server-side message counts from the last listing, for conversations not loaded yet
        self._remote_message_counts: Dict[UUID, int] = {}
        self._background_tasks: Set[asyncio.Task] = set()
        self._listeners: List[StoreListener] = []

    # --- Observation ---

    def subscribe(self, callback: StoreListener) -> Callable[[], None]:
        """Register `callback(reason)`; returns a function that unregisters it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, reason: str) -> None:
        for callback in list(self._listeners):
            try:
                callback(reason)
            except Exception as e:
                logger.opt(exception=e).error(f"Store listener failed while handling '{reason}'")

    # --- Read access ---

    @property
    def conversations(self) -> List[Conversation]:
        return list(self._conversations)

    @property
    def selected_conversation_id(self) -> Optional[UUID]:
        return self._selected_conversation_id

    @property
    def selected_conversation(self) -> Optional[Conversation]:
        if self._selected_conversation_id is None:
            return None
        return self.conversation_for_id(self._selected_conversation_id)

    def conversation_for_id(self, conversation_id: UUID) -> Optional[Conversation]:
        for conversation in self._conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    def remote_id_for(self, conversation_id: UUID) -> Optional[str]:
        return self._id_map.remote_id_for(conversation_id)

    def filtered_conversations(self, search_text: str = "") -> List[Conversation]:
        return filter_conversations(self._conversations, search_text)

    def conversations_grouped_by_date(
        self, search_text: str = "", now: Optional[datetime] = None
    ) -> List[Tuple[DateGroup, List[Conversation]]]:
        return group_conversations_by_date(self.filtered_conversations(search_text), now=now)

    def _index_of(self, conversation_id: UUID) -> Optional[int]:
        for index, conversation in enumerate(self._conversations):
            if conversation.id == conversation_id:
                return index
        return None

    @staticmethod
    def _id_of(conversation: ConversationRef) -> UUID:
        return conversation.id if isinstance(conversation, Conversation) else conversation

    # --- Background tasks ---

    def _spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_background_task_done)
        return task

    def _on_background_task_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            logger.debug(f"Background task {task.get_name()} was cancelled")
        elif task.exception() is not None:
            logger.opt(exception=task.exception()).error(f"Background task {task.get_name()} crashed")

    async def wait_for_background_tasks(self) -> None:
        """Waits until every scheduled sync task, including ones they schedule, has finished."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.wait_for_background_tasks()
        await self.service.close()

    # --- Conversation management ---

    def create_conversation(self, model_id: Optional[str] = None, title: Optional[str] = None) -> Conversation:
        conversation = Conversation(title=title or self.default_title, model_id=model_id or self.default_model_id)
        self._conversations.insert(0, conversation)
        self._selected_conversation_id = conversation.id
        logger.info(f"Created conversation {conversation.id} with model {conversation.model_id}")
        self._notify("conversation_created")
        self._spawn(self._mirror_create(conversation.id, conversation.title, conversation.model_id),
                    name=f"create-{conversation.id}")
        return conversation

    async def _mirror_create(self, local_id: UUID, title: str, model_id: str) -> None:
        try:
            created = await self.service.create_conversation(title, model_id)
        except ThinkTankAPIError as e:
            logger.warning(f"Could not create conversation {local_id} on the server, keeping it local: {e}")
            return

        conversation = self.conversation_for_id(local_id)
        if conversation is None:
            if self._id_map.local_id_for(created.id) is None:
                logger.info(f"Conversation {local_id} was removed before the server created it; "
                            f"deleting orphan {created.id}")
                try:
                    await self.service.delete_conversation(created.id)
                except ThinkTankAPIError as e:
                    logger.warning(f"Could not delete orphan conversation {created.id}: {e}")
            return

        self._id_map.register(local_id, created.id)
        pending_messages = list(conversation.messages)
        logger.debug(f"Mapped conversation {local_id} -> {created.id}")
        self._notify("conversation_synced")

        if conversation.title != created.title or conversation.model_id != created.model_id:
            await self._push_update(
                local_id, created.id,
                title=conversation.title if conversation.title != created.title else None,
                model_id=conversation.model_id if conversation.model_id != created.model_id else None,
            )
        for message in pending_messages:
            if self._id_map.remote_id_for(local_id) != created.id:
                logger.debug(f"Mapping for {local_id} changed; stopping message upload")
                return
            await self._persist_message(local_id, created.id, message)

    def select_conversation(self, conversation: Optional[ConversationRef]) -> None:
        if conversation is None:
            self._selected_conversation_id = None
            self._notify("selection_changed")
            return
        target = self.conversation_for_id(self._id_of(conversation))
        if target is None:
            logger.warning(f"Cannot select unknown conversation {self._id_of(conversation)}")
            return
        self._selected_conversation_id = target.id
        self._notify("selection_changed")
        self._load_messages_if_needed(target)

    def _load_messages_if_needed(self, conversation: Conversation) -> bool:
        if conversation.messages:
            return False
        remote_id = self._id_map.remote_id_for(conversation.id)
        if remote_id is None:
            return False
        sequence = self._fetch_sequence.get(conversation.id, 0) + 1
        self._fetch_sequence[conversation.id] = sequence
        self._spawn(self._fetch_messages(conversation.id, remote_id, sequence),
                    name=f"fetch-{conversation.id}-{sequence}")
        return True

    async def _fetch_messages(self, local_id: UUID, remote_id: str, sequence: int) -> None:
        try:
            remote = await self.service.get_conversation(remote_id)
        except ThinkTankAPIError as e:
            if self._fetch_sequence.get(local_id) != sequence:
                logger.debug(f"Ignoring failure of superseded fetch #{sequence} for {local_id}: {e}")
                return
            logger.error(f"Failed to load messages for conversation {remote_id}: {e}")
            self.last_sync_error = str(e)
            self._notify("sync_error")
            return

        if self._fetch_sequence.get(local_id) != sequence:
            logger.debug(f"Discarding superseded fetch #{sequence} for {local_id}")
            return
        conversation = self.conversation_for_id(local_id)
        if conversation is None or self._id_map.remote_id_for(local_id) != remote_id:
            logger.debug(f"Discarding fetch for {local_id}: conversation or mapping is gone")
            return

        fetched = [Message.from_remote(m) for m in remote.messages or []]
        fetched_remote_ids = {m.id for m in remote.messages or []}
        # Messages typed while the fetch was in flight stay after the server history
        pending = [m for m in conversation.messages if self._remote_message_ids.get(m.id) not in fetched_remote_ids]
        conversation.messages = fetched + pending
        logger.debug(f"Loaded {len(fetched)} messages for conversation {local_id}")
        self._notify("messages_loaded")

    def rename_conversation(self, conversation: ConversationRef, new_title: str) -> None:
        target = self.conversation_for_id(self._id_of(conversation))
        if target is None:
            logger.warning(f"Cannot rename unknown conversation {self._id_of(conversation)}")
            return
        new_title = new_title.strip()
        if not new_title:
            logger.warning(f"Ignoring blank title for conversation {target.id}")
            return
        self._apply_title(target, new_title)
        self._notify("conversation_renamed")

    def _apply_title(self, conversation: Conversation, title: str) -> None:
        conversation.title = title
        conversation.touch()
        self._schedule_remote_update(conversation.id, title=title)

    def delete_conversation(self, conversation: ConversationRef) -> None:
        local_id = self._id_of(conversation)
        index = self._index_of(local_id)
        if index is None:
            logger.warning(f"Cannot delete unknown conversation {local_id}")
            return
        removed = self._conversations.pop(index)
        self._fetch_sequence.pop(local_id, None)
        self._remote_message_counts.pop(local_id, None)
        for message in removed.messages:
            self._remote_message_ids.pop(message.id, None)
        if self._selected_conversation_id == local_id:
            self._selected_conversation_id = self._conversations[0].id if self._conversations else None
        logger.info(f"Deleted conversation {local_id}")
        self._notify("conversation_deleted")

        remote_id = self._id_map.remote_id_for(local_id)
        if remote_id is not None:
            self._spawn(self._mirror_delete(local_id, remote_id), name=f"delete-{local_id}")

    async def _mirror_delete(self, local_id: UUID, remote_id: str) -> None:
        try:
            await self.service.delete_conversation(remote_id)
        except ThinkTankAPIError as e:
            logger.warning(f"Could not delete conversation {remote_id} on the server: {e}")
        finally:
            self._id_map.remove(local_id, expected_remote_id=remote_id)

    def update_conversation_model(self, conversation_id: UUID, model_id: str) -> None:
        conversation = self.conversation_for_id(conversation_id)
        if conversation is None:
            logger.warning(f"Cannot change model of unknown conversation {conversation_id}")
            return
        logger.info(f"Updating conversation model: {conversation.model_id} -> {model_id}")
        conversation.model_id = model_id
        conversation.touch()
        self._notify("model_changed")
        self._schedule_remote_update(conversation_id, model_id=model_id)

    def duplicate_conversation(self, conversation: ConversationRef) -> Optional[Conversation]:
        source = self.conversation_for_id(self._id_of(conversation))
        if source is None:
            logger.warning(f"Cannot duplicate unknown conversation {self._id_of(conversation)}")
            return None
        copy = Conversation(
            title=f"{source.title}{COPY_TITLE_SUFFIX}",
            messages=[m.model_copy(update={"id": uuid4()}) for m in source.messages],
            model_id=source.model_id,
        )
        self._conversations.insert(0, copy)
        self._selected_conversation_id = copy.id
        self._notify("conversation_created")
        self._spawn(self._mirror_create(copy.id, copy.title, copy.model_id), name=f"create-{copy.id}")
        return copy

    def _schedule_remote_update(
        self, conversation_id: UUID, title: Optional[str] = None, model_id: Optional[str] = None
    ) -> None:
        remote_id = self._id_map.remote_id_for(conversation_id)
        if remote_id is None:
            logger.debug(f"Conversation {conversation_id} is not synced yet; update stays local")
            return
        self._spawn(self._push_update(conversation_id, remote_id, title=title, model_id=model_id),
                    name=f"update-{conversation_id}")

    async def _push_update(
        self, local_id: UUID, remote_id: str, title: Optional[str] = None, model_id: Optional[str] = None
    ) -> None:
        try:
            await self.service.update_conversation(remote_id, title=title, model_id=model_id)
        except ThinkTankAPIError as e:
            logger.warning(f"Could not update conversation {remote_id} on the server: {e}")

    # --- Message management ---

    def add_message(self, conversation_id: UUID, message: Message) -> Optional[Conversation]:
        index = self._index_of(conversation_id)
        if index is None:
            logger.warning(f"Cannot add message to unknown conversation {conversation_id}")
            return None
        conversation = self._conversations.pop(index)
        conversation.messages.append(message)
        conversation.touch()
        self._conversations.insert(0, conversation)

        if message.role == MessageRole.USER and self._is_first_user_message(conversation):
            title = derive_title(message.content)
            if title:
                self._apply_title(conversation, title)

        remote_id = self._id_map.remote_id_for(conversation_id)
        if remote_id is not None:
            self._spawn(self._persist_message(conversation_id, remote_id, message),
                        name=f"message-{message.id}")
        self._notify("message_added")
        return conversation

    def _is_first_user_message(self, conversation: Conversation) -> bool:
        if self._remote_message_counts.get(conversation.id, 0) > 0:
            return False
        return sum(1 for m in conversation.messages if m.role == MessageRole.USER) == 1

    async def _persist_message(self, local_id: UUID, remote_id: str, message: Message) -> None:
        try:
            created = await self.service.add_message(
                remote_id,
                role=message.role.value,
                content=message.content,
                model_id=message.model_id,
                is_error=message.is_error or None,
                error_message=message.error_message,
            )
        except ThinkTankAPIError as e:
            logger.warning(f"Could not save message {message.id} of conversation {local_id}: {e}")
            return

        conversation = self.conversation_for_id(local_id)
        if conversation is None:
            return
        index = conversation.message_index(message.id)
        if index is None:
            return
        if conversation.message_index(derive_local_id(created.id)) is not None:
            # A fetch that finished first already holds the server copy
            conversation.messages.pop(index)
            logger.debug(f"Dropped local copy of message {message.id}; server copy {created.id} is loaded")
            self._notify("messages_loaded")
            return
        self._remote_message_ids[message.id] = created.id

    def remove_message(self, conversation_id: UUID, message_id: UUID) -> bool:
        conversation = self.conversation_for_id(conversation_id)
        if conversation is None:
            return False
        index = conversation.message_index(message_id)
        if index is None:
            return False
        conversation.messages.pop(index)
        self._remote_message_ids.pop(message_id, None)
        conversation.touch()
        self._notify("message_removed")
        return True

    # --- Chat round trips ---

    def _require(self, conversation_id: UUID) -> Conversation:
        conversation = self.conversation_for_id(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    def _chat_conversation_id(self, conversation: Conversation) -> str:
        return self._id_map.remote_id_for(conversation.id) or str(conversation.id)

    @staticmethod
    def _history(messages: List[Message]):
        return [m.to_chat_dto() for m in messages if not m.is_error]

    async def send_message(self, conversation_id: UUID, user_message: Message) -> Message:
        """
        Appends `user_message` and asks the model for a reply.

        The reply is returned, not appended. Service errors propagate to the caller.
        """
        conversation = self._require(conversation_id)
        self.add_message(conversation_id, user_message)
        return await self._request_reply(conversation, list(conversation.messages))

    async def _request_reply(self, conversation: Conversation, history: List[Message]) -> Message:
        model_id = conversation.model_id
        logger.info(f"Sending message with model: {model_id}")
        response = await self.service.send_chat_message(
            self._chat_conversation_id(conversation), model_id, self._history(history)
        )
        return Message(role=MessageRole.ASSISTANT, content=response.message.content, model_id=model_id)

    async def send_message_streaming(self, conversation_id: UUID, user_message: Message) -> Message:
        conversation = self._require(conversation_id)
        self.add_message(conversation_id, user_message)
        return await self._stream_reply(conversation, list(conversation.messages))

    async def _stream_reply(self, conversation: Conversation, history: List[Message]) -> Message:
        model_id = conversation.model_id
        logger.info(f"Sending streaming message with model: {model_id}")
        message_id = uuid4()
        self.streaming_message_id = message_id
        self.streaming_content = ""
        self._notify("streaming_started")
        try:
            async for chunk in self.service.stream_chat_message(
                self._chat_conversation_id(conversation), model_id, self._history(history)
            ):
                self.streaming_content += chunk
                self._notify("streaming_chunk")
            return Message(id=message_id, role=MessageRole.ASSISTANT, content=self.streaming_content,
                           model_id=model_id)
        finally:
            self.streaming_message_id = None
            self.streaming_content = ""
            self._notify("streaming_finished")

    async def complete_turn(
        self, conversation_id: UUID, user_message: Message, stream: Optional[bool] = None
    ) -> Message:
        """
        Send flow of the chat view: append the user message, then append either the reply
        or an error bubble. Service errors never escape; the appended message is returned.
        """
        conversation = self._require(conversation_id)
        self.add_message(conversation_id, user_message)
        return await self._deliver_reply(conversation, list(conversation.messages), stream)

    async def _deliver_reply(self, conversation: Conversation, history: List[Message],
                             stream: Optional[bool]) -> Message:
        use_streaming = self.service.is_streaming_available if stream is None else stream
        self.is_loading = True
        self._notify("loading_changed")
        try:
            if use_streaming:
                reply = await self._stream_reply(conversation, history)
            else:
                reply = await self._request_reply(conversation, history)
        except ThinkTankAPIError as e:
            logger.error(f"Chat request failed for conversation {conversation.id}: {e}")
            reply = Message.error_for(e, model_id=conversation.model_id)
        finally:
            self.is_loading = False
            self._notify("loading_changed")
        self.add_message(conversation.id, reply)
        return reply

    async def retry_message(
        self, conversation_id: UUID, error_message_id: UUID, stream: Optional[bool] = None
    ) -> Optional[Message]:
        """Replace an error bubble with a fresh reply to the user message right before it."""
        conversation = self._require(conversation_id)
        index = conversation.message_index(error_message_id)
        if index is None or index == 0 or not conversation.messages[index].is_error:
            logger.warning(f"Message {error_message_id} is not a retryable error message")
            return None
        if conversation.messages[index - 1].role != MessageRole.USER:
            logger.warning(f"No user message precedes error message {error_message_id}")
            return None
        history = conversation.messages[:index]
        self.remove_message(conversation_id, error_message_id)
        return await self._deliver_reply(conversation, history, stream)

    # --- Cloud sync ---

    async def load_conversations_from_cloud(self) -> None:
        """
        Replaces the local collection with the server listing.

        A call made while another reload is running returns immediately. On failure the
        collection is left as it was, `last_sync_error` is set and the error is re-raised.
        """
        if self.is_syncing:
            logger.debug("Reload already in progress; skipping")
            return
        self.is_syncing = True
        self._notify("sync_started")
        try:
            try:
                remote_conversations = await self.service.list_conversations()
            except ThinkTankAPIError as e:
                logger.error(f"Failed to load conversations from the server: {e}")
                self.last_sync_error = str(e)
                raise

            conversations = [Conversation.from_remote(dto) for dto in remote_conversations]
            self._conversations = conversations
            self._id_map.replace_all((derive_local_id(dto.id), dto.id) for dto in remote_conversations)
            self._remote_message_ids.clear()
            self._remote_message_counts = {derive_local_id(dto.id): dto.message_count for dto in remote_conversations}
            self.last_sync_error = None

            if self.conversation_for_id(self._selected_conversation_id) is None:
                self._selected_conversation_id = conversations[0].id if conversations else None
            logger.info(f"Loaded {len(conversations)} conversations from the server")
            self._notify("conversations_loaded")
        finally:
            # Observers see the finished flag only once the new collection is in place
            self.is_syncing = False
            self._notify("sync_finished")

        selected = self.selected_conversation
        if selected is not None:
            self._load_messages_if_needed(selected)

    async def fetch_available_models(self) -> List[ModelInfo]:
        try:
            return await self.service.fetch_models()
        except ThinkTankAPIError as e:
            logger.warning(f"Could not fetch models, using the built-in catalogue: {e}")
            return [ModelInfo(**entry) for entry in AVAILABLE_MODELS]

#
# End of conversation_store.py
########################################################################################################################
