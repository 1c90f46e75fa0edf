from datetime import datetime, timedelta, timezone

import pytest

from tribelife.domain.chat.models import ConversationTarget, RoomTarget
from tribelife.domain.chat.repo import ChatRepository


def _auth(token: str) -> dict:
	return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def pair(add_profile):
	await add_profile(1, "alice", locality="Europe/Paris")
	await add_profile(2, "bob", locality="Europe/Paris")


@pytest.mark.asyncio
async def test_requires_bearer_token(api_client):
	resp = await api_client.get("/api/chat/conversations")
	assert resp.status_code == 401
	assert resp.json()["detail"] == "missing_token"


@pytest.mark.asyncio
async def test_create_conversation_is_idempotent(api_client, pair, token_for):
	first = await api_client.post("/api/chat/conversations", json={"otherUserId": 2}, headers=_auth(token_for(1)))
	second = await api_client.post("/api/chat/conversations", json={"otherUserId": 1}, headers=_auth(token_for(2)))

	assert first.status_code == 200
	assert first.json()["isNew"] is True
	assert second.json() == {"conversationId": first.json()["conversationId"], "isNew": False}


@pytest.mark.asyncio
async def test_create_conversation_rejects_self_and_unknown(api_client, pair, token_for):
	resp = await api_client.post("/api/chat/conversations", json={"otherUserId": 1}, headers=_auth(token_for(1)))
	assert resp.status_code == 400
	assert resp.json()["detail"] == "cannot_dm_self"

	resp = await api_client.post("/api/chat/conversations", json={"otherUserId": 77}, headers=_auth(token_for(1)))
	assert resp.status_code == 404
	assert resp.json()["detail"] == "user_not_found"


@pytest.mark.asyncio
async def test_conversation_history_pages_oldest_first(api_client, pair, token_for):
	repo = ChatRepository()
	conversation, _ = await repo.get_or_create_conversation(1, 2)
	base = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
	for index in range(3):
		await repo.create_message(f"msg {index}", 1, ConversationTarget(conversation.id), [], base + timedelta(minutes=index))

	resp = await api_client.get(
		f"/api/chat/conversations/{conversation.id}/messages",
		params={"limit": 2},
		headers=_auth(token_for(2)),
	)

	assert resp.status_code == 200
	body = resp.json()
	assert [m["content"] for m in body["messages"]] == ["msg 1", "msg 2"]
	assert body["hasMore"] is True
	assert body["messages"][0]["senderHandle"] == "alice"

	listing = await api_client.get("/api/chat/conversations", headers=_auth(token_for(2)))
	summary = listing.json()["conversations"][0]
	assert summary["participantId"] == 1
	assert summary["participantHandle"] == "alice"
	assert summary["lastMessage"]["content"] == "msg 2"
	assert summary["lastReadAt"] is not None


@pytest.mark.asyncio
async def test_conversation_history_forbidden_for_outsiders(api_client, pair, add_profile, token_for):
	await add_profile(3, "carol")
	conversation, _ = await ChatRepository().get_or_create_conversation(1, 2)

	resp = await api_client.get(f"/api/chat/conversations/{conversation.id}/messages", headers=_auth(token_for(3)))

	assert resp.status_code == 403
	assert resp.json()["detail"] == "not_participant"


@pytest.mark.asyncio
async def test_room_history_uses_caller_locality(api_client, pair, add_profile, token_for):
	await add_profile(3, "carol", locality="Asia/Tokyo")
	repo = ChatRepository()
	now = datetime.now(timezone.utc)
	await repo.create_message("bonjour", 2, RoomTarget("timezone:Europe/Paris"), [1], now)
	await repo.create_message("konnichiwa", 3, RoomTarget("timezone:Asia/Tokyo"), [], now)

	resp = await api_client.get("/api/chat/rooms/messages", headers=_auth(token_for(1)))

	body = resp.json()
	assert [m["content"] for m in body["messages"]] == ["bonjour"]
	assert body["messages"][0]["mentions"] == [1]
	assert body["hasMore"] is False


@pytest.mark.asyncio
async def test_room_history_by_id_is_limited_to_own_locality(api_client, pair, add_profile, token_for):
	await add_profile(3, "carol", locality="Asia/Tokyo")
	repo = ChatRepository()
	now = datetime.now(timezone.utc)
	await repo.create_message("bonjour", 2, RoomTarget("timezone:Europe/Paris"), [], now)
	await repo.create_message("konnichiwa", 3, RoomTarget("timezone:Asia/Tokyo"), [], now)

	resp = await api_client.get("/api/chat/room/timezone:Europe/Paris/messages", headers=_auth(token_for(1)))
	assert resp.status_code == 200
	assert [m["content"] for m in resp.json()["messages"]] == ["bonjour"]

	resp = await api_client.get("/api/chat/room/timezone:Asia/Tokyo/messages", headers=_auth(token_for(1)))
	assert resp.status_code == 403
	assert resp.json()["detail"] == "not_room_member"
