"""Handle / profile lookups backed by asyncpg with an in-memory fallback."""

from __future__ import annotations

import asyncio
from typing import Dict, Optional

from tribelife.domain.profiles.models import Profile
from tribelife.infra.postgres import get_pool


class _MemoryStore:
	"""Fallback store used in tests when Postgres is unavailable."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.profiles: Dict[int, Profile] = {}

	async def add(self, profile: Profile) -> Profile:
		async with self._lock:
			profile.handle = profile.handle.lower()
			self.profiles[profile.user_id] = profile
			return profile

	async def by_handle(self, handle: str) -> Optional[Profile]:
		async with self._lock:
			for profile in self.profiles.values():
				if profile.handle == handle:
					return profile
			return None

	async def by_user(self, user_id: int) -> Optional[Profile]:
		async with self._lock:
			return self.profiles.get(user_id)


_MEMORY = _MemoryStore()


class ProfileDirectory:
	"""Directory lookup collaborator: handle -> user id, user id -> profile."""

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

	async def resolve_handle(self, handle: str) -> Optional[int]:
		handle = handle.strip().lstrip("@").lower()
		if not handle:
			return None
		pool = await self._pool_or_none()
		if pool is None:
			profile = await self._memory.by_handle(handle)
			return profile.user_id if profile else None
		async with pool.acquire() as conn:
			user_id = await conn.fetchval(
				"SELECT user_id FROM user_profiles WHERE lower(handle) = $1 LIMIT 1",
				handle,
			)
		return int(user_id) if user_id is not None else None

	async def get_profile(self, user_id: int) -> Optional[Profile]:
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.by_user(user_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				SELECT user_id, handle, timezone, expo_push_token, is_premium
				FROM user_profiles
				WHERE user_id = $1
				""",
				user_id,
			)
		return Profile.from_record(row) if row else None
