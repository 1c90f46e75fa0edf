"""Chat persistence backed by asyncpg with an in-memory fallback."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import asyncpg

from tribelife.domain.chat.models import (
	Conversation,
	ConversationSummary,
	ConversationTarget,
	Message,
	MessageTarget,
	RoomTarget,
	pair_key,
)
from tribelife.domain.common.errors import InfrastructureFailure
from tribelife.infra.postgres import get_pool

_MESSAGE_COLUMNS = """
	m.id, m.content, m.sender_id, m.room_id, m.conversation_id, m.mentions, m.created_at,
	p.handle AS sender_handle
"""


class _InMemoryStore:
	"""Fallback store used in tests when Postgres is unavailable."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._message_seq = 1
		self._conversation_seq = 1
		self.messages: List[Message] = []
		self.conversations: Dict[int, Conversation] = {}
		self.last_read: Dict[Tuple[int, int], datetime] = {}
		self.handles: Dict[int, str] = {}

	async def create_message(
		self,
		content: str,
		sender_id: int,
		target: MessageTarget,
		mentions: Iterable[int],
		created_at: datetime,
	) -> Message:
		async with self._lock:
			message = Message(
				id=self._message_seq,
				content=content,
				sender_id=sender_id,
				room_id=target.room_id if isinstance(target, RoomTarget) else None,
				conversation_id=target.conversation_id if isinstance(target, ConversationTarget) else None,
				mentions=tuple(mentions),
				created_at=created_at,
				sender_handle=self.handles.get(sender_id),
			)
			self._message_seq += 1
			self.messages.append(message)
			return message

	async def create_conversation(self, user_one: int, user_two: int, created_at: datetime) -> Tuple[Conversation, bool]:
		async with self._lock:
			pair = pair_key(user_one, user_two)
			for conversation in self.conversations.values():
				if conversation.participants == pair:
					return conversation, False
			conversation = Conversation(
				id=self._conversation_seq,
				participants=pair,
				created_at=created_at,
				last_message_at=created_at,
			)
			self._conversation_seq += 1
			self.conversations[conversation.id] = conversation
			return conversation, True

	async def participants(self, conversation_id: int) -> List[int]:
		async with self._lock:
			conversation = self.conversations.get(conversation_id)
			return list(conversation.participants) if conversation else []

	async def touch(self, conversation_id: int, at: datetime) -> None:
		async with self._lock:
			conversation = self.conversations.get(conversation_id)
			if conversation is not None:
				conversation.last_message_at = at

	async def mark_read(self, conversation_id: int, user_id: int, at: datetime) -> None:
		async with self._lock:
			self.last_read[(conversation_id, user_id)] = at

	async def list_messages(
		self,
		*,
		room_id: Optional[str],
		conversation_id: Optional[int],
		before: Optional[datetime],
		limit: int,
	) -> List[Message]:
		async with self._lock:
			rows = [
				m
				for m in self.messages
				if (room_id is not None and m.room_id == room_id)
				or (conversation_id is not None and m.conversation_id == conversation_id)
			]
			if before is not None:
				rows = [m for m in rows if m.created_at < before]
			rows.sort(key=lambda m: (m.created_at, m.id), reverse=True)
			return rows[:limit]

	async def list_conversations(self, user_id: int) -> List[ConversationSummary]:
		async with self._lock:
			result: List[ConversationSummary] = []
			for conversation in self.conversations.values():
				if user_id not in conversation.participants:
					continue
				other = conversation.other(user_id)
				last = max(
					(m for m in self.messages if m.conversation_id == conversation.id),
					key=lambda m: (m.created_at, m.id),
					default=None,
				)
				result.append(
					ConversationSummary(
						conversation_id=conversation.id,
						last_message_at=conversation.last_message_at,
						participant_id=other,
						participant_handle=self.handles.get(other),
						last_read_at=self.last_read.get((conversation.id, user_id)),
						last_message=last.content if last else None,
						last_message_created_at=last.created_at if last else None,
					)
				)
			result.sort(key=lambda item: item.last_message_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
			return result


_MEMORY_STORE = _InMemoryStore()


def _row_to_message(row) -> Message:
	mentions_raw = row["mentions"]
	if isinstance(mentions_raw, str):
		mentions_raw = json.loads(mentions_raw) if mentions_raw else []
	return Message(
		id=int(row["id"]),
		content=row["content"],
		sender_id=int(row["sender_id"]) if row["sender_id"] is not None else None,
		room_id=row["room_id"],
		conversation_id=int(row["conversation_id"]) if row["conversation_id"] is not None else None,
		mentions=tuple(int(item) for item in (mentions_raw or [])),
		created_at=row["created_at"],
		sender_handle=row["sender_handle"],
	)


class ChatRepository:
	"""Repository backed by asyncpg with an in-memory fallback."""

	def __init__(self, *, memory: _InMemoryStore | None = None) -> None:
		self._memory = memory or _MEMORY_STORE
		self._pool_checked = False
		self._pool = None

	async def _pool_or_none(self):
		if self._pool_checked:
			return self._pool
		self._pool_checked = True
		try:
			pool = await get_pool()
		except AssertionError:
			pool = None
		self._pool = pool
		return pool

	async def create_message(
		self,
		content: str,
		sender_id: int,
		target: MessageTarget,
		mentions: Iterable[int],
		created_at: datetime,
	) -> Message:
		mentions = list(mentions)
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.create_message(content, sender_id, target, mentions, created_at)
		room_id = target.room_id if isinstance(target, RoomTarget) else None
		conversation_id = target.conversation_id if isinstance(target, ConversationTarget) else None
		try:
			async with pool.acquire() as conn:
				row = await conn.fetchrow(
					"""
					WITH inserted AS (
						INSERT INTO messages (content, sender_id, room_id, conversation_id, mentions, created_at)
						VALUES ($1, $2, $3, $4, $5::jsonb, $6)
						RETURNING id, content, sender_id, room_id, conversation_id, mentions, created_at
					)
					SELECT m.*, p.handle AS sender_handle
					FROM inserted m
					LEFT JOIN user_profiles p ON p.user_id = m.sender_id
					""",
					content,
					sender_id,
					room_id,
					conversation_id,
					json.dumps(mentions),
					created_at,
				)
		except (asyncpg.PostgresError, OSError) as exc:
			raise InfrastructureFailure("message_persist_failed") from exc
		return _row_to_message(row)

	async def get_or_create_conversation(self, user_one: int, user_two: int) -> Tuple[Conversation, bool]:
		"""Return the single conversation for an unordered pair, creating it once."""
		now = datetime.now(timezone.utc)
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.create_conversation(user_one, user_two, now)
		user_a, user_b = pair_key(user_one, user_two)
		async with pool.acquire() as conn:
			async with conn.transaction():
				await conn.execute("SELECT pg_advisory_xact_lock(hashtext($1))", f"conversation:{user_a}:{user_b}")
				row = await conn.fetchrow(
					"""
					SELECT c.id, c.created_at, c.last_message_at
					FROM conversations c
					JOIN conversation_participants a ON a.conversation_id = c.id AND a.user_id = $1
					JOIN conversation_participants b ON b.conversation_id = c.id AND b.user_id = $2
					WHERE (SELECT COUNT(*) FROM conversation_participants cp WHERE cp.conversation_id = c.id) = 2
					LIMIT 1
					""",
					user_a,
					user_b,
				)
				if row:
					return (
						Conversation(
							id=int(row["id"]),
							participants=(user_a, user_b),
							created_at=row["created_at"],
							last_message_at=row["last_message_at"],
						),
						False,
					)
				row = await conn.fetchrow(
					"INSERT INTO conversations (created_at, last_message_at) VALUES ($1, $1) RETURNING id",
					now,
				)
				conversation_id = int(row["id"])
				await conn.executemany(
					"INSERT INTO conversation_participants (conversation_id, user_id, joined_at) VALUES ($1, $2, $3)",
					[(conversation_id, user_a, now), (conversation_id, user_b, now)],
				)
		return Conversation(id=conversation_id, participants=(user_a, user_b), created_at=now, last_message_at=now), True

	async def list_participants(self, conversation_id: int) -> List[int]:
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.participants(conversation_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT user_id FROM conversation_participants WHERE conversation_id = $1 ORDER BY user_id",
				conversation_id,
			)
		return [int(row["user_id"]) for row in rows]

	async def is_participant(self, conversation_id: int, user_id: int) -> bool:
		return user_id in await self.list_participants(conversation_id)

	async def touch_conversation(self, conversation_id: int, at: datetime) -> None:
		pool = await self._pool_or_none()
		if pool is None:
			await self._memory.touch(conversation_id, at)
			return
		async with pool.acquire() as conn:
			await conn.execute(
				"UPDATE conversations SET last_message_at = $2 WHERE id = $1",
				conversation_id,
				at,
			)

	async def mark_read(self, conversation_id: int, user_id: int, at: datetime) -> None:
		pool = await self._pool_or_none()
		if pool is None:
			await self._memory.mark_read(conversation_id, user_id, at)
			return
		async with pool.acquire() as conn:
			await conn.execute(
				"""
				UPDATE conversation_participants SET last_read_at = $3
				WHERE conversation_id = $1 AND user_id = $2
				""",
				conversation_id,
				user_id,
				at,
			)

	async def list_messages(
		self,
		*,
		room_id: Optional[str] = None,
		conversation_id: Optional[int] = None,
		before: Optional[datetime] = None,
		limit: int,
	) -> List[Message]:
		"""Newest-first page of non-deleted messages for one target."""
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.list_messages(
				room_id=room_id, conversation_id=conversation_id, before=before, limit=limit
			)
		if conversation_id is not None:
			params: List[object] = [conversation_id]
			where = "m.conversation_id = $1"
		else:
			params = [room_id]
			where = "m.room_id = $1"
		if before is not None:
			params.append(before)
			where += f" AND m.created_at < ${len(params)}"
		params.append(limit)
		query = (
			f"SELECT {_MESSAGE_COLUMNS} FROM messages m "
			"LEFT JOIN user_profiles p ON p.user_id = m.sender_id "
			f"WHERE {where} AND m.deleted_at IS NULL "
			f"ORDER BY m.created_at DESC, m.id DESC LIMIT ${len(params)}"
		)
		async with pool.acquire() as conn:
			rows = await conn.fetch(query, *params)
		return [_row_to_message(row) for row in rows]

	async def list_conversations(self, user_id: int) -> List[ConversationSummary]:
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.list_conversations(user_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT c.id AS conversation_id, c.last_message_at,
					other.user_id AS participant_id, p.handle AS participant_handle,
					me.last_read_at, last.content AS last_message, last.created_at AS last_message_created_at
				FROM conversation_participants me
				JOIN conversations c ON c.id = me.conversation_id
				JOIN conversation_participants other
					ON other.conversation_id = c.id AND other.user_id <> me.user_id
				LEFT JOIN user_profiles p ON p.user_id = other.user_id
				LEFT JOIN LATERAL (
					SELECT content, created_at FROM messages
					WHERE conversation_id = c.id AND deleted_at IS NULL
					ORDER BY created_at DESC, id DESC
					LIMIT 1
				) last ON TRUE
				WHERE me.user_id = $1
				ORDER BY c.last_message_at DESC
				""",
				user_id,
			)
		return [
			ConversationSummary(
				conversation_id=int(row["conversation_id"]),
				last_message_at=row["last_message_at"],
				participant_id=int(row["participant_id"]),
				participant_handle=row["participant_handle"],
				last_read_at=row["last_read_at"],
				last_message=row["last_message"],
				last_message_created_at=row["last_message_created_at"],
			)
			for row in rows
		]
