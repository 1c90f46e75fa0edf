"""In-process registry of live connections and their room memberships."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Set

from tribelife.domain.presence.models import Session


class ConnectionRegistry:
	"""Tracks sessions by sid, room membership, and per-connection event locks.

	Rooms exist only while they have members. The registry is owned by one
	process; sharing it across instances needs an external presence store.
	"""

	def __init__(self) -> None:
		self._sessions: Dict[str, Session] = {}
		self._by_user: Dict[int, Set[str]] = {}
		self._rooms: Dict[str, Set[str]] = {}
		self._memberships: Dict[str, Set[str]] = {}
		self._locks: Dict[str, asyncio.Lock] = {}

	def register(self, session: Session) -> None:
		self._sessions[session.sid] = session
		self._by_user.setdefault(session.user_id, set()).add(session.sid)
		self._memberships.setdefault(session.sid, set())

	def unregister(self, sid: str) -> Optional[Session]:
		"""Drop the session and every membership it held."""
		session = self._sessions.pop(sid, None)
		for room in list(self._memberships.pop(sid, ())):
			self._discard(room, sid)
		self._locks.pop(sid, None)
		if session is not None:
			sids = self._by_user.get(session.user_id)
			if sids is not None:
				sids.discard(sid)
				if not sids:
					del self._by_user[session.user_id]
		return session

	def get(self, sid: str) -> Optional[Session]:
		return self._sessions.get(sid)

	def join(self, sid: str, room: str) -> bool:
		"""Add membership; False when already a member."""
		if sid not in self._sessions:
			raise KeyError(sid)
		members = self._rooms.setdefault(room, set())
		if sid in members:
			return False
		members.add(sid)
		self._memberships[sid].add(room)
		return True

	def leave(self, sid: str, room: str) -> bool:
		"""Remove membership; False when it was not held."""
		rooms = self._memberships.get(sid)
		if not rooms or room not in rooms:
			return False
		rooms.discard(room)
		self._discard(room, sid)
		return True

	def _discard(self, room: str, sid: str) -> None:
		members = self._rooms.get(room)
		if members is None:
			return
		members.discard(sid)
		if not members:
			del self._rooms[room]

	def is_member(self, sid: str, room: str) -> bool:
		return room in self._memberships.get(sid, ())

	def members(self, room: str) -> Set[str]:
		return set(self._rooms.get(room, ()))

	def rooms_of(self, sid: str) -> Set[str]:
		return set(self._memberships.get(sid, ()))

	def rooms(self) -> List[str]:
		return list(self._rooms)

	def is_online(self, user_id: int) -> bool:
		return bool(self._by_user.get(user_id))

	def lock_for(self, sid: str) -> asyncio.Lock:
		"""Lock serializing event handling for one connection."""
		lock = self._locks.get(sid)
		if lock is None:
			lock = asyncio.Lock()
			self._locks[sid] = lock
		return lock

	def __len__(self) -> int:
		return len(self._sessions)
