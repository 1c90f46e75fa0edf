"""Connection session and room keys for the realtime transport."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def locality_room(locality: str) -> str:
	return f"timezone:{locality}"


def user_channel(user_id: int) -> str:
	return f"user:{user_id}"


def conversation_room(conversation_id: int) -> str:
	return f"conversation:{conversation_id}"


@dataclass(slots=True)
class Session:
	"""Identity bound to one live transport connection; never persisted."""

	sid: str
	user_id: int
	handle: str
	locality: str
	push_address: Optional[str] = None
	connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

	@property
	def locality_room(self) -> str:
		return locality_room(self.locality)

	@property
	def user_channel(self) -> str:
		return user_channel(self.user_id)
