# test_conversation_store.py
#
# Local mutations of the ConversationStore and their background mirroring to the backend.
#
# Imports
from uuid import uuid4
#
# Third-party imports
import pytest
#
# Local Imports
from thinktank_client.Chat.chat_models import Message, MessageRole
from thinktank_client.Chat.conversation_store import ConversationNotFoundError, ConversationStore, derive_title
from thinktank_client.Constants import AVAILABLE_MODELS, DEFAULT_MODEL_ID, ERROR_TEXT_NETWORK, ERROR_TEXT_SERVER
from thinktank_client.thinktank_api.exceptions import APIConnectionError, APIResponseError, NotFoundError
#
########################################################################################################################
#
# Functions:

pytestmark = pytest.mark.asyncio

LONG_OPENING_LINE = "Hello world, this is a fairly long opening line"


# --- Title derivation ---

@pytest.mark.parametrize("content, expected", [
    ("Short question", "Short question"),
    ("First line\nSecond line", "First line"),
    ("\n\n   \nActual start\nrest", "Actual start"),
    (LONG_OPENING_LINE, LONG_OPENING_LINE[:40] + "..."),
    ("x" * 40, "x" * 40),
    ("   \n\t", None),
])
async def test_derive_title(content, expected):
    assert derive_title(content) == expected


# --- Create ---

async def test_create_conversation_is_first_and_selected(store):
    older = store.create_conversation()
    newer = store.create_conversation(model_id="openai/gpt-5.2")

    assert store.conversations[0].id == newer.id
    assert store.conversations[1].id == older.id
    assert store.selected_conversation_id == newer.id
    assert newer.title == "New Chat"
    assert newer.model_id == "openai/gpt-5.2"
    assert older.model_id == DEFAULT_MODEL_ID


async def test_create_conversation_registers_remote_id(store, service):
    conversation = store.create_conversation()
    assert store.remote_id_for(conversation.id) is None

    await store.wait_for_background_tasks()

    remote_id = store.remote_id_for(conversation.id)
    assert remote_id is not None
    assert service.calls_to("create_conversation") == [("New Chat", DEFAULT_MODEL_ID)]
    remote = await service.get_conversation(remote_id)
    assert remote.title == "New Chat"


async def test_create_failure_keeps_conversation_local(store, service):
    service.fail_next("create_conversation", APIConnectionError("offline"))

    conversation = store.create_conversation()
    await store.wait_for_background_tasks()

    assert store.conversation_for_id(conversation.id) is conversation
    assert store.remote_id_for(conversation.id) is None
    assert store.last_sync_error is None


async def test_changes_made_before_create_completes_are_pushed(store, service):
    gate = service.hold_next("create_conversation")
    conversation = store.create_conversation()
    store.add_message(conversation.id, Message.user("What is a monad?"))
    store.update_conversation_model(conversation.id, "google/gemini-2.5-pro")

    assert service.count("update_conversation") == 0
    assert service.count("add_message") == 0

    gate.set()
    await store.wait_for_background_tasks()

    remote_id = store.remote_id_for(conversation.id)
    assert service.calls_to("update_conversation") == [(remote_id, "What is a monad?", "google/gemini-2.5-pro")]
    assert service.calls_to("add_message") == [(remote_id, "user", "What is a monad?")]
    remote = await service.get_conversation(remote_id)
    assert remote.title == "What is a monad?"
    assert [m.content for m in remote.messages] == ["What is a monad?"]


async def test_delete_before_create_completes_removes_orphan(store, service):
    gate = service.hold_next("create_conversation")
    conversation = store.create_conversation()
    store.delete_conversation(conversation)

    gate.set()
    await store.wait_for_background_tasks()

    assert store.conversations == []
    assert store.remote_id_for(conversation.id) is None
    assert service.count("delete_conversation") == 1
    assert await service.list_conversations() == []


# --- Rename / model change ---

async def test_rename_updates_locally_and_remotely(store, service):
    conversation = store.create_conversation()
    await store.wait_for_background_tasks()
    created_at = conversation.created_at

    store.rename_conversation(conversation, "  Trip planning  ")
    assert conversation.title == "Trip planning"
    assert conversation.updated_at >= created_at

    await store.wait_for_background_tasks()
    remote_id = store.remote_id_for(conversation.id)
    assert service.calls_to("update_conversation") == [(remote_id, "Trip planning", None)]


async def test_rename_unsynced_conversation_stays_local(store, service):
    service.fail_next("create_conversation", APIConnectionError("offline"))
    conversation = store.create_conversation()
    await store.wait_for_background_tasks()

    store.rename_conversation(conversation.id, "Offline notes")
    await store.wait_for_background_tasks()

    assert conversation.title == "Offline notes"
    assert service.count("update_conversation") == 0


async def test_rename_ignores_blank_title(store):
    conversation = store.create_conversation()
    store.rename_conversation(conversation, "   ")
    assert conversation.title == "New Chat"


async def test_rename_failure_is_swallowed(store, service):
    conversation = store.create_conversation()
    await store.wait_for_background_tasks()
    service.fail_next("update_conversation", APIResponseError(500, "boom"))

    store.rename_conversation(conversation, "Still renamed")
    await store.wait_for_background_tasks()

    assert conversation.title == "Still renamed"


async def test_update_conversation_model(store, service):
    conversation = store.create_conversation()
    await store.wait_for_background_tasks()

    store.update_conversation_model(conversation.id, "deepseek/deepseek-v3.2")
    await store.wait_for_background_tasks()

    assert conversation.model_id == "deepseek/deepseek-v3.2"
    remote_id = store.remote_id_for(conversation.id)
    assert service.calls_to("update_conversation") == [(remote_id, None, "deepseek/deepseek-v3.2")]


# --- Delete ---

async def test_delete_selected_reselects_first_remaining(store):
    first = store.create_conversation()
    second = store.create_conversation()
    third = store.create_conversation()
    assert store.selected_conversation_id == third.id

    store.delete_conversation(third)

    assert store.conversation_for_id(third.id) is None
    assert store.selected_conversation_id == second.id

    store.delete_conversation(second)
    store.delete_conversation(first)
    assert store.selected_conversation_id is None
    assert store.conversations == []


async def test_delete_unselected_keeps_selection(store):
    first = store.create_conversation()
    second = store.create_conversation()

    store.delete_conversation(first)

    assert store.selected_conversation_id == second.id


async def test_delete_removes_remote_record_and_mapping(store, service):
    conversation = store.create_conversation()
    await store.wait_for_background_tasks()
    remote_id = store.remote_id_for(conversation.id)

    store.delete_conversation(conversation)
    assert store.remote_id_for(conversation.id) == remote_id

    await store.wait_for_background_tasks()
    assert store.remote_id_for(conversation.id) is None
    assert service.calls_to("delete_conversation") == [(remote_id,)]
    with pytest.raises(NotFoundError):
        await service.get_conversation(remote_id)


async def test_delete_failure_still_drops_mapping(store, service):
    conversation = store.create_conversation()
    await store.wait_for_background_tasks()
    service.fail_next("delete_conversation", APIConnectionError("offline"))

    store.delete_conversation(conversation)
    await store.wait_for_background_tasks()

    assert store.conversations == []
    assert store.remote_id_for(conversation.id) is None


# --- Messages ---

async def test_add_message_moves_conversation_to_front(store):
    older = store.create_conversation()
    newer = store.create_conversation()
    assert store.conversations[0].id == newer.id

    store.add_message(older.id, Message.user("bump"))

    assert store.conversations[0].id == older.id
    assert older.messages[-1].content == "bump"


async def test_first_user_message_sets_title(store):
    conversation = store.create_conversation()

    store.add_message(conversation.id, Message.user(LONG_OPENING_LINE))

    assert conversation.title == LONG_OPENING_LINE[:40] + "..."
    assert len(conversation.title) == 43


async def test_later_user_messages_keep_title(store):
    conversation = store.create_conversation()
    store.add_message(conversation.id, Message.user("Plan a trip"))
    store.add_message(conversation.id, Message.assistant("Sure"))
    store.add_message(conversation.id, Message.user("Somewhere warm"))

    assert conversation.title == "Plan a trip"


async def test_add_message_persists_when_mapped(store, service):
    conversation = store.create_conversation()
    await store.wait_for_background_tasks()

    store.add_message(conversation.id, Message.user("hello"))
    store.add_message(conversation.id, Message.assistant("hi there", model_id=DEFAULT_MODEL_ID))
    await store.wait_for_background_tasks()

    remote = await service.get_conversation(store.remote_id_for(conversation.id))
    assert [(m.role, m.content) for m in remote.messages] == [("user", "hello"), ("assistant", "hi there")]
    assert remote.message_count == 2
    assert remote.title == "hello"


async def test_add_message_to_unknown_conversation_is_ignored(store):
    assert store.add_message(uuid4(), Message.user("x")) is None


async def test_remove_message(store):
    conversation = store.create_conversation()
    message = Message.user("typo")
    store.add_message(conversation.id, message)

    assert store.remove_message(conversation.id, message.id) is True
    assert conversation.messages == []
    assert store.remove_message(conversation.id, message.id) is False


async def test_duplicate_conversation(store, service):
    original = store.create_conversation(model_id="openai/gpt-4o-mini")
    store.add_message(original.id, Message.user("Original question"))
    await store.wait_for_background_tasks()

    copy = store.duplicate_conversation(original)
    await store.wait_for_background_tasks()

    assert copy.title == "Original question (Copy)"
    assert copy.model_id == "openai/gpt-4o-mini"
    assert [m.content for m in copy.messages] == ["Original question"]
    assert copy.messages[0].id != original.messages[0].id
    assert store.conversations[0].id == copy.id
    assert store.selected_conversation_id == copy.id

    remote = await service.get_conversation(store.remote_id_for(copy.id))
    assert remote.title == "Original question (Copy)"
    assert [m.content for m in remote.messages] == ["Original question"]


# --- Sending ---

async def test_send_message_returns_reply_without_appending(store, service):
    conversation = store.create_conversation()
    await store.wait_for_background_tasks()

    reply = await store.send_message(conversation.id, Message.user("Tell me about the ocean today"))

    assert reply.role == MessageRole.ASSISTANT
    assert reply.model_id == DEFAULT_MODEL_ID
    assert [m.content for m in conversation.messages] == ["Tell me about the ocean today"]
    remote_id = store.remote_id_for(conversation.id)
    assert service.calls_to("send_chat_message") == [
        (remote_id, DEFAULT_MODEL_ID, ["Tell me about the ocean today"])
    ]


async def test_send_message_uses_local_id_when_unmapped(store, service):
    service.fail_next("create_conversation", APIConnectionError("offline"))
    conversation = store.create_conversation()
    await store.wait_for_background_tasks()

    await store.send_message(conversation.id, Message.user("hi"))

    assert service.calls_to("send_chat_message")[0][0] == str(conversation.id)


async def test_send_message_sends_full_history(store, service):
    conversation = store.create_conversation()
    store.add_message(conversation.id, Message.user("one"))
    store.add_message(conversation.id, Message.assistant("two"))
    store.add_message(conversation.id, Message.error_for(APIConnectionError("x")))

    await store.send_message(conversation.id, Message.user("three"))

    assert service.calls_to("send_chat_message")[0][2] == ["one", "two", "three"]


async def test_send_message_unknown_conversation(store):
    with pytest.raises(ConversationNotFoundError):
        await store.send_message(uuid4(), Message.user("x"))


async def test_send_message_propagates_service_errors(store, service):
    conversation = store.create_conversation()
    service.fail_next("send_chat_message", APIResponseError(502, "upstream"))

    with pytest.raises(APIResponseError):
        await store.send_message(conversation.id, Message.user("hi"))
    assert [m.content for m in conversation.messages] == ["hi"]


async def test_send_message_streaming_accumulates_chunks(streaming_service):
    store = ConversationStore(streaming_service)
    conversation = store.create_conversation()
    seen = []
    store.subscribe(lambda reason: seen.append((reason, store.streaming_content)))

    reply = await store.send_message_streaming(conversation.id, Message.user("Stream me a long answer please now"))
    await store.wait_for_background_tasks()

    chunks = [content for reason, content in seen if reason == "streaming_chunk"]
    assert len(chunks) > 1
    assert chunks[-1] == reply.content
    assert reply.content.startswith(chunks[0])
    assert store.streaming_message_id is None
    assert store.streaming_content == ""


async def test_send_message_streaming_clears_state_on_failure(streaming_service):
    store = ConversationStore(streaming_service)
    conversation = store.create_conversation()
    streaming_service.fail_next("stream_chat_message", APIResponseError(500, "stream broke"))

    with pytest.raises(APIResponseError):
        await store.send_message_streaming(conversation.id, Message.user("hi"))
    await store.wait_for_background_tasks()

    assert store.streaming_message_id is None
    assert store.streaming_content == ""


async def test_complete_turn_appends_reply(store):
    conversation = store.create_conversation()
    states = []
    store.subscribe(lambda reason: states.append(store.is_loading) if reason == "loading_changed" else None)

    reply = await store.complete_turn(conversation.id, Message.user("How do tides work?"))

    assert [m.role for m in conversation.messages] == [MessageRole.USER, MessageRole.ASSISTANT]
    assert conversation.messages[-1] is reply
    assert states == [True, False]
    assert store.is_loading is False


async def test_complete_turn_appends_error_bubble(store, service):
    conversation = store.create_conversation()
    service.fail_next("send_chat_message", APIConnectionError("offline"))

    reply = await store.complete_turn(conversation.id, Message.user("hi"))

    assert reply.is_error is True
    assert reply.role == MessageRole.ASSISTANT
    assert reply.content == ERROR_TEXT_NETWORK
    assert conversation.messages[-1] is reply
    assert store.is_loading is False


async def test_retry_replaces_error_bubble(store, service):
    conversation = store.create_conversation()
    service.fail_next("send_chat_message", APIResponseError(500, "model down"))
    error_bubble = await store.complete_turn(conversation.id, Message.user("Explain entropy"))
    assert error_bubble.content == ERROR_TEXT_SERVER

    reply = await store.retry_message(conversation.id, error_bubble.id)

    assert reply is not None and not reply.is_error
    assert [m.content for m in conversation.messages] == ["Explain entropy", reply.content]
    assert conversation.message_index(error_bubble.id) is None
    # The user message is not sent twice
    assert service.calls_to("send_chat_message")[-1][2] == ["Explain entropy"]


async def test_retry_rejects_non_error_message(store):
    conversation = store.create_conversation()
    reply = await store.complete_turn(conversation.id, Message.user("hi"))

    assert await store.retry_message(conversation.id, reply.id) is None
    assert len(conversation.messages) == 2


# --- Observation and models ---

async def test_subscribe_and_unsubscribe(store):
    reasons = []
    unsubscribe = store.subscribe(reasons.append)

    conversation = store.create_conversation()
    store.rename_conversation(conversation, "Renamed")
    unsubscribe()
    store.delete_conversation(conversation)

    assert reasons == ["conversation_created", "conversation_renamed"]


async def test_failing_listener_does_not_break_store(store):
    def broken(reason):
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    conversation = store.create_conversation()

    assert store.conversations == [conversation]


async def test_fetch_available_models_falls_back_to_catalogue(store, service):
    service.fail_next("fetch_models", APIConnectionError("offline"))

    models = await store.fetch_available_models()

    assert [m.model_id for m in models] == [entry["model_id"] for entry in AVAILABLE_MODELS]

#
# End of test_conversation_store.py
########################################################################################################################
