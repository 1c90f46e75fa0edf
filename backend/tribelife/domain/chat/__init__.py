"""Locality-room and 1:1 chat."""

from .models import ConversationTarget, Dropped, Message, MessageSent, RoomTarget
from .service import DM_MESSAGE_EVENT, ROOM_MESSAGE_EVENT, ChatService, MessageIngestService

__all__ = [
	"ChatService",
	"ConversationTarget",
	"DM_MESSAGE_EVENT",
	"Dropped",
	"Message",
	"MessageIngestService",
	"MessageSent",
	"ROOM_MESSAGE_EVENT",
	"RoomTarget",
]
