import asyncio
from unittest.mock import AsyncMock

import pytest
import socketio

from tribelife.domain.chat.models import ConversationTarget, RoomTarget
from tribelife.domain.chat.repo import ChatRepository
from tribelife.domain.presence.registry import ConnectionRegistry
from tribelife.domain.presence.sockets import ChatNamespace


def _environ(headers=None) -> dict:
	return {"asgi.scope": {"headers": headers or []}}


@pytest.fixture
def registry():
	return ConnectionRegistry()


@pytest.fixture
def ingest():
	return AsyncMock()


@pytest.fixture
def namespace(registry, ingest):
	server = socketio.AsyncServer(async_mode="asgi")
	namespace = ChatNamespace(registry=registry, ingest=ingest)
	server.register_namespace(namespace)
	namespace.enter_room = AsyncMock()
	namespace.leave_room = AsyncMock()
	namespace.emit = AsyncMock()
	return namespace


@pytest.fixture
async def alice(add_profile):
	return await add_profile(1, "alice", locality="Europe/Berlin")


async def _connect(namespace, token_for, sid="sid-1", user_id=1):
	await namespace.trigger_event("connect", sid, _environ(), {"token": token_for(user_id)})


@pytest.mark.asyncio
async def test_connect_without_token_is_refused_before_any_join(namespace, registry):
	with pytest.raises(ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", _environ(), None)

	assert len(registry) == 0
	assert registry.rooms() == []
	namespace.enter_room.assert_not_awaited()


@pytest.mark.asyncio
async def test_connect_with_bad_token_is_refused(namespace, registry):
	with pytest.raises(ConnectionRefusedError):
		await namespace.trigger_event("connect", "sid-1", _environ(), {"token": "not-a-jwt"})
	assert len(registry) == 0


@pytest.mark.asyncio
async def test_connect_for_unknown_user_is_refused(namespace, registry, token_for):
	with pytest.raises(ConnectionRefusedError):
		await _connect(namespace, token_for, user_id=404)
	assert len(registry) == 0


@pytest.mark.asyncio
async def test_connect_joins_locality_room_and_user_channel(namespace, registry, alice, token_for):
	await _connect(namespace, token_for)

	assert registry.rooms_of("sid-1") == {"timezone:Europe/Berlin", "user:1"}
	assert registry.is_online(1)
	joined = {call.args[1] for call in namespace.enter_room.await_args_list}
	assert joined == {"timezone:Europe/Berlin", "user:1"}


@pytest.mark.asyncio
async def test_connect_accepts_bearer_header_and_defaults_locality(namespace, registry, add_profile, token_for):
	await add_profile(2, "bob")
	headers = [(b"authorization", f"Bearer {token_for(2)}".encode())]

	await namespace.trigger_event("connect", "sid-2", _environ(headers), None)

	assert registry.rooms_of("sid-2") == {"timezone:UTC", "user:2"}


@pytest.mark.asyncio
async def test_disconnect_removes_all_memberships(namespace, registry, alice, token_for):
	await _connect(namespace, token_for)

	await namespace.trigger_event("disconnect", "sid-1", "client disconnect")

	assert registry.get("sid-1") is None
	assert registry.rooms() == []
	assert not registry.is_online(1)


@pytest.mark.asyncio
async def test_room_message_is_ingested_for_locality_room(namespace, ingest, alice, token_for):
	await _connect(namespace, token_for)

	await namespace.trigger_event("room:message", "sid-1", {"content": "hello"})

	ingest.ingest.assert_awaited_once()
	session, target, content = ingest.ingest.await_args.args
	assert session.user_id == 1
	assert target == RoomTarget("timezone:Europe/Berlin")
	assert content == "hello"


@pytest.mark.asyncio
async def test_dm_message_targets_conversation(namespace, ingest, alice, token_for):
	await _connect(namespace, token_for)

	await namespace.trigger_event("dm:message", "sid-1", {"conversationId": 9, "content": "psst"})

	_, target, content = ingest.ingest.await_args.args
	assert target == ConversationTarget(9)
	assert content == "psst"


@pytest.mark.asyncio
async def test_malformed_payload_is_dropped(namespace, ingest, alice, token_for):
	await _connect(namespace, token_for)

	await namespace.trigger_event("dm:message", "sid-1", {"content": "no conversation"})
	await namespace.trigger_event("room:message", "sid-1", "just a string")

	ingest.ingest.assert_not_awaited()


@pytest.mark.asyncio
async def test_ingest_failure_is_logged_not_raised(namespace, ingest, alice, token_for):
	ingest.ingest.side_effect = RuntimeError("db down")
	await _connect(namespace, token_for)

	await namespace.trigger_event("room:message", "sid-1", {"content": "hello"})


@pytest.mark.asyncio
async def test_events_from_unknown_sid_are_ignored(namespace, ingest):
	await namespace.trigger_event("room:message", "ghost", {"content": "boo"})
	ingest.ingest.assert_not_awaited()


@pytest.mark.asyncio
async def test_dm_join_requires_participation(namespace, registry, alice, add_profile, token_for):
	await add_profile(2, "bob")
	conversation, _ = await ChatRepository().get_or_create_conversation(1, 2)
	other, _ = await ChatRepository().get_or_create_conversation(2, 3)
	await _connect(namespace, token_for)

	await namespace.trigger_event("dm:join", "sid-1", {"conversationId": conversation.id})
	await namespace.trigger_event("dm:join", "sid-1", {"conversationId": conversation.id})
	await namespace.trigger_event("dm:join", "sid-1", {"conversationId": other.id})

	assert registry.is_member("sid-1", f"conversation:{conversation.id}")
	assert not registry.is_member("sid-1", f"conversation:{other.id}")
	conversation_joins = [
		call for call in namespace.enter_room.await_args_list if call.args[1].startswith("conversation:")
	]
	assert len(conversation_joins) == 1

	await namespace.trigger_event("dm:leave", "sid-1", {"conversationId": conversation.id})
	assert not registry.is_member("sid-1", f"conversation:{conversation.id}")
	namespace.leave_room.assert_awaited_once_with("sid-1", f"conversation:{conversation.id}")


@pytest.mark.asyncio
async def test_typing_relays_to_room_skipping_sender(namespace, alice, token_for):
	await _connect(namespace, token_for)

	room = {"roomId": "timezone:Europe/Berlin"}
	await namespace.trigger_event("typing:start", "sid-1", room)
	await namespace.trigger_event("typing:stop", "sid-1", room)

	start, stop = namespace.emit.await_args_list
	assert start.args == ("typing:start", {"handle": "alice", "roomId": "timezone:Europe/Berlin"})
	assert start.kwargs == {"room": "timezone:Europe/Berlin", "skip_sid": "sid-1"}
	assert stop.args == ("typing:stop", {"handle": "alice"})
	assert stop.kwargs["skip_sid"] == "sid-1"


@pytest.mark.asyncio
async def test_typing_in_conversation_requires_membership(namespace, alice, add_profile, token_for):
	await add_profile(2, "bob")
	conversation, _ = await ChatRepository().get_or_create_conversation(1, 2)
	await _connect(namespace, token_for)

	await namespace.trigger_event("typing:start", "sid-1", {"conversationId": conversation.id})
	namespace.emit.assert_not_awaited()

	await namespace.trigger_event("dm:join", "sid-1", {"conversationId": conversation.id})
	await namespace.trigger_event("typing:start", "sid-1", {"conversationId": conversation.id})

	namespace.emit.assert_awaited_once_with(
		"typing:start",
		{"handle": "alice", "conversationId": conversation.id},
		room=f"conversation:{conversation.id}",
		skip_sid="sid-1",
	)


@pytest.mark.asyncio
async def test_typing_for_foreign_room_is_ignored(namespace, alice, token_for):
	await _connect(namespace, token_for)

	await namespace.trigger_event("typing:start", "sid-1", {"roomId": "timezone:Asia/Tokyo"})

	namespace.emit.assert_not_awaited()


@pytest.mark.asyncio
async def test_typing_without_target_is_dropped(namespace, alice, token_for):
	await _connect(namespace, token_for)

	await namespace.trigger_event("typing:start", "sid-1", {})
	await namespace.trigger_event("typing:stop", "sid-1", None)

	namespace.emit.assert_not_awaited()


@pytest.mark.asyncio
async def test_disconnect_during_dm_join_lookup_is_harmless(registry, ingest, alice, token_for):
	lookup_started = asyncio.Event()
	release = asyncio.Event()

	class SlowChatRepository(ChatRepository):
		async def is_participant(self, conversation_id: int, user_id: int) -> bool:
			lookup_started.set()
			await release.wait()
			return True

	server = socketio.AsyncServer(async_mode="asgi")
	namespace = ChatNamespace(registry=registry, ingest=ingest, chat_repo=SlowChatRepository())
	server.register_namespace(namespace)
	namespace.enter_room = AsyncMock()
	await _connect(namespace, token_for)

	join = asyncio.create_task(namespace.trigger_event("dm:join", "sid-1", {"conversationId": 1}))
	await lookup_started.wait()
	await namespace.trigger_event("disconnect", "sid-1", "transport close")
	release.set()
	await join

	assert registry.get("sid-1") is None
	assert registry.rooms() == []
	joined = [call.args[1] for call in namespace.enter_room.await_args_list]
	assert "conversation:1" not in joined
