"""Notification persistence backed by asyncpg with an in-memory fallback."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Dict, List

from tribelife.domain.notifications.models import (
	Notification,
	NotificationKind,
	NotificationRequest,
	payload_from_data,
)
from tribelife.infra.postgres import get_pool


class _MemoryStore:
	"""Fallback store used in tests when Postgres is unavailable."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._next_id = 1
		self.rows: Dict[int, Notification] = {}

	async def create(self, request: NotificationRequest, created_at: datetime) -> Notification:
		async with self._lock:
			notification = Notification(
				id=self._next_id,
				recipient_id=request.recipient_id,
				kind=request.kind,
				title=request.title,
				body=request.body,
				payload=request.payload,
				is_read=False,
				created_at=created_at,
			)
			self.rows[notification.id] = notification
			self._next_id += 1
			return notification

	async def list_for_user(self, user_id: int, limit: int) -> List[Notification]:
		async with self._lock:
			items = [row for row in self.rows.values() if row.recipient_id == user_id]
			items.sort(key=lambda row: (row.created_at, row.id), reverse=True)
			return items[:limit]

	async def unread_count(self, user_id: int) -> int:
		async with self._lock:
			return sum(1 for row in self.rows.values() if row.recipient_id == user_id and not row.is_read)

	async def mark_read(self, user_id: int, notification_id: int) -> bool:
		async with self._lock:
			row = self.rows.get(notification_id)
			if row is None or row.recipient_id != user_id:
				return False
			row.is_read = True
			return True

	async def mark_all_read(self, user_id: int) -> int:
		async with self._lock:
			updated = 0
			for row in self.rows.values():
				if row.recipient_id == user_id and not row.is_read:
					row.is_read = True
					updated += 1
			return updated


_MEMORY = _MemoryStore()


def _row_to_notification(row) -> Notification:
	kind = NotificationKind(row["type"])
	data = row["data"]
	if isinstance(data, str):
		data = json.loads(data) if data else {}
	return Notification(
		id=int(row["id"]),
		recipient_id=int(row["user_id"]),
		kind=kind,
		title=row["title"],
		body=row["body"],
		payload=payload_from_data(kind, data or {}),
		is_read=bool(row["is_read"]),
		created_at=row["created_at"],
	)


class NotificationRepository:
	def __init__(self, *, memory: _MemoryStore | None = None) -> None:
		self._memory = memory or _MEMORY
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

	async def create(self, request: NotificationRequest) -> Notification:
		created_at = request.created_at or datetime.now(timezone.utc)
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.create(request, created_at)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				INSERT INTO notifications (user_id, type, title, body, data, is_read, created_at)
				VALUES ($1, $2, $3, $4, $5::jsonb, FALSE, $6)
				RETURNING id, user_id, type, title, body, data, is_read, created_at
				""",
				request.recipient_id,
				request.kind.value,
				request.title,
				request.body,
				json.dumps(request.payload.to_data()),
				created_at,
			)
		return _row_to_notification(row)

	async def list_for_user(self, user_id: int, *, limit: int) -> List[Notification]:
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.list_for_user(user_id, limit)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT id, user_id, type, title, body, data, is_read, created_at
				FROM notifications
				WHERE user_id = $1
				ORDER BY created_at DESC, id DESC
				LIMIT $2
				""",
				user_id,
				limit,
			)
		return [_row_to_notification(row) for row in rows]

	async def unread_count(self, user_id: int) -> int:
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.unread_count(user_id)
		async with pool.acquire() as conn:
			count = await conn.fetchval(
				"SELECT COUNT(*) FROM notifications WHERE user_id = $1 AND is_read = FALSE",
				user_id,
			)
		return int(count or 0)

	async def mark_read(self, user_id: int, notification_id: int) -> bool:
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.mark_read(user_id, notification_id)
		async with pool.acquire() as conn:
			result = await conn.execute(
				"UPDATE notifications SET is_read = TRUE WHERE id = $1 AND user_id = $2",
				notification_id,
				user_id,
			)
		return result.endswith(" 1")

	async def mark_all_read(self, user_id: int) -> int:
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.mark_all_read(user_id)
		async with pool.acquire() as conn:
			result = await conn.execute(
				"UPDATE notifications SET is_read = TRUE WHERE user_id = $1 AND is_read = FALSE",
				user_id,
			)
		return int(result.split()[-1])
