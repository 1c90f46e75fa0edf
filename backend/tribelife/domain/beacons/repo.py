"""Beacon and match persistence backed by asyncpg with an in-memory fallback."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Dict, List, Optional

from tribelife.domain.beacons.models import Beacon, BeaconAnalysis, MatchEdge, MatchView
from tribelife.infra.postgres import get_pool

# Column names follow the shared schema: keywords live in `embedding` as a
# JSON array and moderation status in `is_sanitized`.
_BEACON_COLUMNS = """
	id, user_id, raw_text, parsed_intent, embedding, timezone, is_active, is_sanitized,
	expires_at, last_matched_at, created_at
"""


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


class _MemoryStore:
	"""Fallback store used in tests when Postgres is unavailable."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._beacon_seq = 1
		self._edge_seq = 1
		self.beacons: Dict[int, Beacon] = {}
		self.edges: List[MatchEdge] = []
		self.handles: Dict[int, str] = {}

	async def add(self, beacon: Beacon) -> Beacon:
		async with self._lock:
			if not beacon.id:
				beacon.id = self._beacon_seq
			self._beacon_seq = max(self._beacon_seq, beacon.id) + 1
			if beacon.created_at is None:
				beacon.created_at = _utcnow()
			self.beacons[beacon.id] = beacon
			return beacon

	async def qualifying(self, now: datetime) -> List[Beacon]:
		async with self._lock:
			return [b for b in sorted(self.beacons.values(), key=lambda b: b.id) if b.qualifies(now)]

	def _recent(self, first: int, second: int, since: datetime) -> bool:
		pair = {first, second}
		return any(
			{edge.beacon_id, edge.matched_beacon_id} == pair and edge.created_at > since for edge in self.edges
		)

	async def recent_match_exists(self, first: int, second: int, since: datetime) -> bool:
		async with self._lock:
			return self._recent(first, second, since)

	async def record_match(
		self,
		first: int,
		second: int,
		score: float,
		reason: str,
		at: datetime,
		since: datetime,
	) -> bool:
		async with self._lock:
			if self._recent(first, second, since):
				return False
			for source, target in ((first, second), (second, first)):
				self.edges.append(
					MatchEdge(
						id=self._edge_seq,
						beacon_id=source,
						matched_beacon_id=target,
						score=score,
						reason=reason,
						created_at=at,
					)
				)
				self._edge_seq += 1
			for beacon_id in (first, second):
				beacon = self.beacons.get(beacon_id)
				if beacon is not None:
					beacon.last_matched_at = at
			return True

	async def count_active(self, owner_id: int) -> int:
		async with self._lock:
			return sum(1 for b in self.beacons.values() if b.owner_id == owner_id and b.is_active)

	async def list_for_owner(self, owner_id: int) -> List[Beacon]:
		async with self._lock:
			items = [b for b in self.beacons.values() if b.owner_id == owner_id]
			items.sort(key=lambda b: (b.created_at, b.id), reverse=True)
			return items

	async def deactivate(self, beacon_id: int, owner_id: int) -> bool:
		async with self._lock:
			beacon = self.beacons.get(beacon_id)
			if beacon is None or beacon.owner_id != owner_id:
				return False
			beacon.is_active = False
			return True

	async def list_matches(self, owner_id: int) -> List[MatchView]:
		async with self._lock:
			views: List[MatchView] = []
			for edge in self.edges:
				mine = self.beacons.get(edge.beacon_id)
				if mine is None or mine.owner_id != owner_id:
					continue
				other = self.beacons.get(edge.matched_beacon_id)
				views.append(
					MatchView(
						match_id=edge.id,
						beacon_id=edge.beacon_id,
						my_beacon_text=mine.raw_text,
						matched_beacon_id=edge.matched_beacon_id,
						score=edge.score,
						reason=edge.reason,
						viewed_at=edge.viewed_at,
						created_at=edge.created_at,
						matched_text=other.raw_text if other else None,
						matched_intent=other.normalized_intent if other else None,
						matched_user_id=other.owner_id if other else None,
						matched_user_handle=self.handles.get(other.owner_id) if other else None,
					)
				)
			views.sort(key=lambda view: (view.created_at, view.match_id), reverse=True)
			return views

	async def mark_viewed(self, match_id: int, owner_id: int, at: datetime) -> bool:
		async with self._lock:
			for edge in self.edges:
				if edge.id != match_id:
					continue
				source = self.beacons.get(edge.beacon_id)
				if source is None or source.owner_id != owner_id:
					return False
				edge.viewed_at = at
				return True
			return False


_MEMORY = _MemoryStore()


def _parse_keywords(raw) -> tuple:
	if not raw:
		return ()
	if isinstance(raw, str):
		try:
			raw = json.loads(raw)
		except ValueError:
			return ()
	if not isinstance(raw, list):
		return ()
	return tuple(str(item) for item in raw)


def _row_to_beacon(row) -> Beacon:
	return Beacon(
		id=int(row["id"]),
		owner_id=int(row["user_id"]),
		raw_text=row["raw_text"],
		normalized_intent=row["parsed_intent"],
		keywords=_parse_keywords(row["embedding"]),
		locality=row["timezone"],
		is_active=bool(row["is_active"]),
		is_moderated=bool(row["is_sanitized"]),
		expires_at=row["expires_at"],
		last_matched_at=row["last_matched_at"],
		created_at=row["created_at"],
	)


class BeaconRepository:
	"""Repository backed by asyncpg with an in-memory fallback."""

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

	async def list_qualifying(self, now: Optional[datetime] = None) -> List[Beacon]:
		"""Active, moderated, unexpired beacons in id order."""
		now = now or _utcnow()
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.qualifying(now)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_BEACON_COLUMNS}
				FROM beacons
				WHERE is_active AND is_sanitized AND (expires_at IS NULL OR expires_at > $1)
				ORDER BY id
				""",
				now,
			)
		return [_row_to_beacon(row) for row in rows]

	async def recent_match_exists(self, first: int, second: int, since: datetime) -> bool:
		"""True when an edge in either direction was created after ``since``."""
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.recent_match_exists(first, second, since)
		async with pool.acquire() as conn:
			found = await conn.fetchval(
				"""
				SELECT 1 FROM beacon_matches
				WHERE ((beacon_id = $1 AND matched_beacon_id = $2) OR (beacon_id = $2 AND matched_beacon_id = $1))
					AND created_at > $3
				LIMIT 1
				""",
				first,
				second,
				since,
			)
		return found is not None

	async def record_match(
		self,
		first: int,
		second: int,
		*,
		score: float,
		reason: str,
		since: datetime,
		at: Optional[datetime] = None,
	) -> bool:
		"""Insert both directed edges and stamp lastMatchedAt in one transaction.

		Returns False without writing when a recent edge already links the pair.
		"""
		at = at or _utcnow()
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.record_match(first, second, score, reason, at, since)
		low, high = sorted((first, second))
		async with pool.acquire() as conn:
			async with conn.transaction():
				await conn.execute("SELECT pg_advisory_xact_lock(hashtext($1))", f"beacon_match:{low}:{high}")
				existing = await conn.fetchval(
					"""
					SELECT 1 FROM beacon_matches
					WHERE ((beacon_id = $1 AND matched_beacon_id = $2) OR (beacon_id = $2 AND matched_beacon_id = $1))
						AND created_at > $3
					LIMIT 1
					""",
					first,
					second,
					since,
				)
				if existing is not None:
					return False
				await conn.executemany(
					"""
					INSERT INTO beacon_matches (beacon_id, matched_beacon_id, similarity_score, match_reason, created_at)
					VALUES ($1, $2, $3, $4, $5)
					""",
					[
						(first, second, f"{score:.3f}", reason, at),
						(second, first, f"{score:.3f}", reason, at),
					],
				)
				await conn.execute(
					"UPDATE beacons SET last_matched_at = $2 WHERE id = ANY($1::int[])",
					[first, second],
					at,
				)
		return True

	async def create(
		self,
		owner_id: int,
		raw_text: str,
		analysis: BeaconAnalysis,
		*,
		locality: Optional[str],
		expires_at: datetime,
	) -> Beacon:
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.add(
				Beacon(
					id=0,
					owner_id=owner_id,
					raw_text=raw_text,
					normalized_intent=analysis.parsed_intent,
					keywords=tuple(analysis.keywords),
					locality=locality,
					is_active=True,
					is_moderated=True,
					expires_at=expires_at,
				)
			)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				f"""
				INSERT INTO beacons (user_id, raw_text, parsed_intent, embedding, timezone, is_active, is_sanitized, expires_at)
				VALUES ($1, $2, $3, $4, $5, TRUE, TRUE, $6)
				RETURNING {_BEACON_COLUMNS}
				""",
				owner_id,
				raw_text,
				analysis.parsed_intent,
				json.dumps(list(analysis.keywords)),
				locality,
				expires_at,
			)
		return _row_to_beacon(row)

	async def count_active(self, owner_id: int) -> int:
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.count_active(owner_id)
		async with pool.acquire() as conn:
			value = await conn.fetchval(
				"SELECT COUNT(*) FROM beacons WHERE user_id = $1 AND is_active",
				owner_id,
			)
		return int(value or 0)

	async def list_for_owner(self, owner_id: int) -> List[Beacon]:
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.list_for_owner(owner_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				f"SELECT {_BEACON_COLUMNS} FROM beacons WHERE user_id = $1 ORDER BY created_at DESC, id DESC",
				owner_id,
			)
		return [_row_to_beacon(row) for row in rows]

	async def deactivate(self, beacon_id: int, owner_id: int) -> bool:
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.deactivate(beacon_id, owner_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				UPDATE beacons SET is_active = FALSE, updated_at = $3
				WHERE id = $1 AND user_id = $2
				RETURNING id
				""",
				beacon_id,
				owner_id,
				_utcnow(),
			)
		return row is not None

	async def list_matches(self, owner_id: int) -> List[MatchView]:
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.list_matches(owner_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT m.id AS match_id, m.beacon_id, mine.raw_text AS my_beacon_text, m.matched_beacon_id,
					m.similarity_score, m.match_reason, m.viewed_at, m.created_at,
					other.raw_text AS matched_text, other.parsed_intent AS matched_intent,
					other.user_id AS matched_user_id, p.handle AS matched_user_handle
				FROM beacon_matches m
				JOIN beacons mine ON mine.id = m.beacon_id
				LEFT JOIN beacons other ON other.id = m.matched_beacon_id
				LEFT JOIN user_profiles p ON p.user_id = other.user_id
				WHERE mine.user_id = $1
				ORDER BY m.created_at DESC, m.id DESC
				""",
				owner_id,
			)
		return [
			MatchView(
				match_id=int(row["match_id"]),
				beacon_id=int(row["beacon_id"]),
				my_beacon_text=row["my_beacon_text"],
				matched_beacon_id=int(row["matched_beacon_id"]),
				score=float(row["similarity_score"]),
				reason=row["match_reason"] or "",
				viewed_at=row["viewed_at"],
				created_at=row["created_at"],
				matched_text=row["matched_text"],
				matched_intent=row["matched_intent"],
				matched_user_id=row["matched_user_id"],
				matched_user_handle=row["matched_user_handle"],
			)
			for row in rows
		]

	async def mark_viewed(self, match_id: int, owner_id: int, at: Optional[datetime] = None) -> bool:
		at = at or _utcnow()
		pool = await self._pool_or_none()
		if pool is None:
			return await self._memory.mark_viewed(match_id, owner_id, at)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				UPDATE beacon_matches m SET viewed_at = $3
				FROM beacons b
				WHERE m.id = $1 AND b.id = m.beacon_id AND b.user_id = $2
				RETURNING m.id
				""",
				match_id,
				owner_id,
				at,
			)
		return row is not None
