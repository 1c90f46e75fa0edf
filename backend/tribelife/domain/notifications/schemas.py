"""Pydantic schemas for the notifications API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field

from .models import Notification


class NotificationResponse(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	id: int
	user_id: int = Field(serialization_alias="userId")
	type: str
	title: str
	body: str
	data: Dict[str, Any]
	is_read: bool = Field(serialization_alias="isRead")
	created_at: datetime = Field(serialization_alias="createdAt")

	@classmethod
	def from_model(cls, notification: Notification) -> "NotificationResponse":
		return cls(
			id=notification.id,
			user_id=notification.recipient_id,
			type=notification.kind.value,
			title=notification.title,
			body=notification.body,
			data=notification.payload.to_data(),
			is_read=notification.is_read,
			created_at=notification.created_at,
		)


class NotificationListResponse(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	notifications: List[NotificationResponse]
	unread_count: int = Field(serialization_alias="unreadCount")
