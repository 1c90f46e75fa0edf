"""Notification kinds and their typed payloads."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, Mapping, Optional, Union


class NotificationKind(str, enum.Enum):
	MENTION = "mention"
	BEACON_MATCH = "beacon_match"
	NEW_DM = "new_dm"
	SYSTEM = "system"


@dataclass(slots=True, frozen=True)
class MentionPayload:
	message_id: int
	room_id: str
	sender_handle: str

	kind: ClassVar[NotificationKind] = NotificationKind.MENTION

	def to_data(self) -> Dict[str, Any]:
		return {"messageId": self.message_id, "roomId": self.room_id, "senderHandle": self.sender_handle}

	def push_data(self) -> Dict[str, Any]:
		return {"type": self.kind.value, "roomId": self.room_id}


@dataclass(slots=True, frozen=True)
class NewDmPayload:
	conversation_id: int
	sender_handle: str

	kind: ClassVar[NotificationKind] = NotificationKind.NEW_DM

	def to_data(self) -> Dict[str, Any]:
		return {"conversationId": self.conversation_id, "senderHandle": self.sender_handle}

	def push_data(self) -> Dict[str, Any]:
		return {"type": self.kind.value, "conversationId": self.conversation_id}


@dataclass(slots=True, frozen=True)
class BeaconMatchPayload:
	beacon_id: int
	matched_beacon_id: int
	locality: str

	kind: ClassVar[NotificationKind] = NotificationKind.BEACON_MATCH

	def to_data(self) -> Dict[str, Any]:
		# "timezone" is the key existing clients read
		return {"beaconId": self.beacon_id, "matchedBeaconId": self.matched_beacon_id, "timezone": self.locality}

	def push_data(self) -> Dict[str, Any]:
		return {"type": self.kind.value, "beaconId": self.beacon_id}


@dataclass(slots=True, frozen=True)
class SystemPayload:
	code: str
	data: Mapping[str, Any] = field(default_factory=dict)

	kind: ClassVar[NotificationKind] = NotificationKind.SYSTEM

	def to_data(self) -> Dict[str, Any]:
		return {"code": self.code, **dict(self.data)}

	def push_data(self) -> Dict[str, Any]:
		return {"type": self.kind.value, "code": self.code}


NotificationPayload = Union[MentionPayload, NewDmPayload, BeaconMatchPayload, SystemPayload]


def payload_from_data(kind: NotificationKind, data: Mapping[str, Any]) -> NotificationPayload:
	"""Rebuild the typed payload from a persisted JSON document."""
	if kind is NotificationKind.MENTION:
		return MentionPayload(
			message_id=int(data["messageId"]),
			room_id=str(data["roomId"]),
			sender_handle=str(data["senderHandle"]),
		)
	if kind is NotificationKind.NEW_DM:
		return NewDmPayload(conversation_id=int(data["conversationId"]), sender_handle=str(data["senderHandle"]))
	if kind is NotificationKind.BEACON_MATCH:
		return BeaconMatchPayload(
			beacon_id=int(data["beaconId"]),
			matched_beacon_id=int(data["matchedBeaconId"]),
			locality=str(data.get("timezone") or ""),
		)
	extra = {key: value for key, value in data.items() if key != "code"}
	return SystemPayload(code=str(data.get("code") or ""), data=extra)


@dataclass(slots=True)
class Notification:
	id: int
	recipient_id: int
	kind: NotificationKind
	title: str
	body: str
	payload: NotificationPayload
	is_read: bool
	created_at: datetime

	def live_event(self) -> Dict[str, Any]:
		"""Body of the `notification:new` socket event."""
		return {"type": self.kind.value, "title": self.title, "body": self.body, **self.payload.to_data()}


@dataclass(slots=True)
class NotificationRequest:
	recipient_id: int
	kind: NotificationKind
	title: str
	body: str
	payload: NotificationPayload
	created_at: Optional[datetime] = None
