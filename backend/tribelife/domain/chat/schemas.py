"""Pydantic schemas for chat socket events and the chat API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import ConversationSummary, Message


class _CamelModel(BaseModel):
	model_config = ConfigDict(populate_by_name=True)


class RoomMessageEvent(_CamelModel):
	content: str


class DmMessageEvent(_CamelModel):
	conversation_id: int = Field(validation_alias="conversationId")
	content: str


class ConversationEvent(_CamelModel):
	conversation_id: int = Field(validation_alias="conversationId")


class TypingEvent(_CamelModel):
	room_id: Optional[str] = Field(default=None, validation_alias="roomId")
	conversation_id: Optional[int] = Field(default=None, validation_alias="conversationId")


class MessageResponse(_CamelModel):
	id: int
	content: str
	created_at: datetime = Field(serialization_alias="createdAt")
	sender_id: Optional[int] = Field(serialization_alias="senderId")
	sender_handle: Optional[str] = Field(serialization_alias="senderHandle")
	mentions: List[int] = Field(default_factory=list)

	@classmethod
	def from_model(cls, message: Message) -> "MessageResponse":
		return cls(
			id=message.id,
			content=message.content,
			created_at=message.created_at,
			sender_id=message.sender_id,
			sender_handle=message.sender_handle,
			mentions=list(message.mentions),
		)


class MessageListResponse(_CamelModel):
	messages: List[MessageResponse]
	has_more: bool = Field(serialization_alias="hasMore")


class ConversationCreateRequest(_CamelModel):
	other_user_id: int = Field(validation_alias="otherUserId", gt=0)


class ConversationCreateResponse(_CamelModel):
	conversation_id: int = Field(serialization_alias="conversationId")
	is_new: bool = Field(serialization_alias="isNew")


class LastMessage(_CamelModel):
	content: str
	created_at: datetime = Field(serialization_alias="createdAt")


class ConversationResponse(_CamelModel):
	conversation_id: int = Field(serialization_alias="conversationId")
	last_message_at: Optional[datetime] = Field(serialization_alias="lastMessageAt")
	participant_id: int = Field(serialization_alias="participantId")
	participant_handle: Optional[str] = Field(serialization_alias="participantHandle")
	last_read_at: Optional[datetime] = Field(serialization_alias="lastReadAt")
	last_message: Optional[LastMessage] = Field(serialization_alias="lastMessage")

	@classmethod
	def from_model(cls, summary: ConversationSummary) -> "ConversationResponse":
		last = None
		if summary.last_message is not None and summary.last_message_created_at is not None:
			last = LastMessage(content=summary.last_message, created_at=summary.last_message_created_at)
		return cls(
			conversation_id=summary.conversation_id,
			last_message_at=summary.last_message_at,
			participant_id=summary.participant_id,
			participant_handle=summary.participant_handle,
			last_read_at=summary.last_read_at,
			last_message=last,
		)


class ConversationListResponse(_CamelModel):
	conversations: List[ConversationResponse]
