"""Domain models for locality-room and 1:1 chat."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple, Union

from tribelife.domain.common.errors import DropReason


@dataclass(slots=True, frozen=True)
class RoomTarget:
	room_id: str


@dataclass(slots=True, frozen=True)
class ConversationTarget:
	conversation_id: int


MessageTarget = Union[RoomTarget, ConversationTarget]


@dataclass(slots=True)
class Message:
	id: int
	content: str
	sender_id: Optional[int]
	room_id: Optional[str]
	conversation_id: Optional[int]
	mentions: Tuple[int, ...]
	created_at: datetime
	sender_handle: Optional[str] = None

	def __post_init__(self) -> None:
		if (self.room_id is None) == (self.conversation_id is None):
			raise ValueError("message must target exactly one of room or conversation")

	@property
	def target(self) -> MessageTarget:
		if self.conversation_id is not None:
			return ConversationTarget(self.conversation_id)
		return RoomTarget(str(self.room_id))


@dataclass(slots=True)
class Conversation:
	id: int
	participants: Tuple[int, int]
	created_at: datetime
	last_message_at: datetime

	def other(self, user_id: int) -> int:
		a, b = self.participants
		return b if a == user_id else a


@dataclass(slots=True)
class ConversationSummary:
	conversation_id: int
	last_message_at: Optional[datetime]
	participant_id: int
	participant_handle: Optional[str]
	last_read_at: Optional[datetime]
	last_message: Optional[str] = None
	last_message_created_at: Optional[datetime] = None


@dataclass(slots=True)
class MessageSent:
	"""Outcome of a successful ingest."""

	message: Message
	event: str
	room: str
	payload: dict
	notified: int = 0


@dataclass(slots=True)
class Dropped:
	"""Outcome of an ingest that was silently discarded."""

	reason: DropReason
	detail: str = ""


def pair_key(user_one: int, user_two: int) -> Tuple[int, int]:
	"""Canonical unordered participant pair."""
	return (user_one, user_two) if user_one <= user_two else (user_two, user_one)
