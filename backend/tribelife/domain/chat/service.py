"""Message ingest pipeline and chat history operations."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence, Union

from tribelife.domain.chat.mentions import extract_mentions
from tribelife.domain.chat.models import (
	ConversationTarget,
	Dropped,
	Message,
	MessageSent,
	MessageTarget,
	RoomTarget,
)
from tribelife.domain.chat.repo import ChatRepository
from tribelife.domain.chat.schemas import (
	ConversationCreateResponse,
	ConversationListResponse,
	ConversationResponse,
	MessageListResponse,
	MessageResponse,
)
from tribelife.domain.common.errors import DropReason, PolicyError
from tribelife.domain.notifications import (
	MentionPayload,
	NewDmPayload,
	NotificationDispatcher,
	NotificationKind,
	NotificationRequest,
)
from tribelife.domain.presence.models import Session, conversation_room
from tribelife.domain.profiles import ProfileDirectory
from tribelife.infra.auth import AuthenticatedUser
from tribelife.obs import metrics as obs_metrics
from tribelife.settings import settings

_LOG = logging.getLogger(__name__)

ROOM_MESSAGE_EVENT = "room:message"
DM_MESSAGE_EVENT = "dm:message"
MAX_PAGE_SIZE = 100


class RoomBroadcaster(Protocol):
	async def broadcast(self, room: str, event: str, payload: dict, *, skip_sid: Optional[str] = None) -> None:
		...


def target_room(target: MessageTarget) -> str:
	if isinstance(target, ConversationTarget):
		return conversation_room(target.conversation_id)
	return target.room_id


def room_message_payload(message: Message, sender_handle: str) -> dict:
	return {
		"id": message.id,
		"content": message.content,
		"senderId": message.sender_id,
		"senderHandle": sender_handle,
		"roomId": message.room_id,
		"createdAt": message.created_at.isoformat(),
		"mentions": list(message.mentions),
	}


def dm_message_payload(message: Message, sender_handle: str) -> dict:
	return {
		"id": message.id,
		"content": message.content,
		"senderId": message.sender_id,
		"senderHandle": sender_handle,
		"conversationId": message.conversation_id,
		"createdAt": message.created_at.isoformat(),
	}


class MessageIngestService:
	"""Validate, persist, resolve mentions, broadcast, fan out."""

	def __init__(
		self,
		*,
		broadcaster: RoomBroadcaster,
		dispatcher: NotificationDispatcher,
		repository: ChatRepository | None = None,
		directory: ProfileDirectory | None = None,
		max_length: int | None = None,
	) -> None:
		self._broadcaster = broadcaster
		self._dispatcher = dispatcher
		self._repo = repository or ChatRepository()
		self._directory = directory or ProfileDirectory()
		self._max_length = max_length or settings.message_max_length

	async def ingest(self, session: Session, target: MessageTarget, raw_content: object) -> Union[MessageSent, Dropped]:
		content = raw_content.strip() if isinstance(raw_content, str) else ""
		if not content or len(content) > self._max_length:
			return self._drop(session, DropReason.VALIDATION, "length")

		participants: List[int] = []
		if isinstance(target, ConversationTarget):
			participants = await self._repo.list_participants(target.conversation_id)
			if session.user_id not in participants:
				return self._drop(session, DropReason.AUTHORIZATION, "not_participant")

		mention_ids = await self._resolve_mentions(extract_mentions(content))
		message = await self._repo.create_message(
			content,
			session.user_id,
			target,
			mention_ids,
			datetime.now(timezone.utc),
		)
		if isinstance(target, ConversationTarget):
			await self._repo.touch_conversation(target.conversation_id, message.created_at)
			event = DM_MESSAGE_EVENT
			payload = dm_message_payload(message, session.handle)
			obs_metrics.inc_chat_send("conversation")
		else:
			event = ROOM_MESSAGE_EVENT
			payload = room_message_payload(message, session.handle)
			obs_metrics.inc_chat_send("room")

		room = target_room(target)
		try:
			await self._broadcaster.broadcast(room, event, payload)
		except Exception:
			_LOG.warning("chat.broadcast_failed", exc_info=True, extra={"room": room, "message_id": message.id})

		requests = self._fanout_requests(session, message, participants)
		notified = await self._dispatcher.notify_many(requests) if requests else 0
		return MessageSent(message=message, event=event, room=room, payload=payload, notified=notified)

	def _drop(self, session: Session, reason: DropReason, detail: str) -> Dropped:
		obs_metrics.inc_chat_dropped(reason.value)
		_LOG.debug("chat.dropped", extra={"user_id": session.user_id, "reason": reason.value, "detail": detail})
		return Dropped(reason=reason, detail=detail)

	async def _resolve_mentions(self, handles: Sequence[str]) -> List[int]:
		if not handles:
			return []
		results = await asyncio.gather(
			*(self._directory.resolve_handle(handle) for handle in handles),
			return_exceptions=True,
		)
		resolved: List[int] = []
		for handle, result in zip(handles, results):
			if isinstance(result, BaseException):
				_LOG.warning("chat.mention_lookup_failed", exc_info=result, extra={"handle": handle})
				continue
			if result is not None and result not in resolved:
				resolved.append(result)
		obs_metrics.inc_mentions_resolved(len(resolved))
		return resolved

	def _fanout_requests(self, session: Session, message: Message, participants: Sequence[int]) -> List[NotificationRequest]:
		preview = message.content[: settings.notification_preview_length]
		requests: List[NotificationRequest] = []
		if message.conversation_id is not None:
			# Participants get exactly one new_dm each; mentions never leak a
			# private conversation to outsiders.
			for user_id in dict.fromkeys(participants):
				if user_id == session.user_id:
					continue
				requests.append(
					NotificationRequest(
						recipient_id=user_id,
						kind=NotificationKind.NEW_DM,
						title=f"Message from @{session.handle}",
						body=preview,
						payload=NewDmPayload(conversation_id=message.conversation_id, sender_handle=session.handle),
					)
				)
			return requests
		for user_id in message.mentions:
			if user_id == session.user_id:
				continue
			requests.append(
				NotificationRequest(
					recipient_id=user_id,
					kind=NotificationKind.MENTION,
					title=f"@{session.handle} mentioned you",
					body=preview,
					payload=MentionPayload(
						message_id=message.id,
						room_id=str(message.room_id),
						sender_handle=session.handle,
					),
				)
			)
		return requests


class ChatService:
	"""Conversation bootstrap and history for the REST surface."""

	def __init__(
		self,
		repository: ChatRepository | None = None,
		directory: ProfileDirectory | None = None,
	) -> None:
		self._repo = repository or ChatRepository()
		self._directory = directory or ProfileDirectory()

	async def get_or_create_conversation(self, auth_user: AuthenticatedUser, other_user_id: int) -> ConversationCreateResponse:
		if auth_user.id == other_user_id:
			raise PolicyError("cannot_dm_self")
		if await self._directory.get_profile(other_user_id) is None:
			raise PolicyError("user_not_found", status_code=404)
		conversation, created = await self._repo.get_or_create_conversation(auth_user.id, other_user_id)
		return ConversationCreateResponse(conversation_id=conversation.id, is_new=created)

	async def list_conversations(self, auth_user: AuthenticatedUser) -> ConversationListResponse:
		rows = await self._repo.list_conversations(auth_user.id)
		return ConversationListResponse(conversations=[ConversationResponse.from_model(row) for row in rows])

	async def list_conversation_messages(
		self,
		auth_user: AuthenticatedUser,
		conversation_id: int,
		*,
		before: Optional[datetime],
		limit: int,
	) -> MessageListResponse:
		if not await self._repo.is_participant(conversation_id, auth_user.id):
			raise PolicyError("not_participant", status_code=403)
		await self._repo.mark_read(conversation_id, auth_user.id, datetime.now(timezone.utc))
		return await self._page(conversation_id=conversation_id, before=before, limit=limit)

	async def list_room_messages(self, room_id: str, *, before: Optional[datetime], limit: int) -> MessageListResponse:
		return await self._page(room_id=room_id, before=before, limit=limit)

	async def _page(
		self,
		*,
		room_id: Optional[str] = None,
		conversation_id: Optional[int] = None,
		before: Optional[datetime],
		limit: int,
	) -> MessageListResponse:
		bounded = max(1, min(limit, MAX_PAGE_SIZE))
		rows = await self._repo.list_messages(
			room_id=room_id,
			conversation_id=conversation_id,
			before=before,
			limit=bounded + 1,
		)
		page = rows[:bounded]
		page.reverse()
		return MessageListResponse(
			messages=[MessageResponse.from_model(message) for message in page],
			has_more=len(rows) > bounded,
		)


__all__ = [
	"ChatService",
	"DM_MESSAGE_EVENT",
	"MessageIngestService",
	"ROOM_MESSAGE_EVENT",
	"RoomTarget",
	"target_room",
]
