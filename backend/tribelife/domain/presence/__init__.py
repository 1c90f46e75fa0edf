"""Presence, room membership and realtime delivery."""

from .gateway import RealtimeGateway
from .models import Session, conversation_room, locality_room, user_channel
from .registry import ConnectionRegistry

__all__ = [
	"ConnectionRegistry",
	"RealtimeGateway",
	"Session",
	"conversation_room",
	"locality_room",
	"user_channel",
]
