"""Notification domain exports."""

from .dispatcher import NOTIFICATION_EVENT, LiveChannel, NotificationDispatcher
from .models import (
	BeaconMatchPayload,
	MentionPayload,
	NewDmPayload,
	Notification,
	NotificationKind,
	NotificationRequest,
	SystemPayload,
)

__all__ = [
	"BeaconMatchPayload",
	"LiveChannel",
	"MentionPayload",
	"NOTIFICATION_EVENT",
	"NewDmPayload",
	"Notification",
	"NotificationDispatcher",
	"NotificationKind",
	"NotificationRequest",
	"SystemPayload",
]
