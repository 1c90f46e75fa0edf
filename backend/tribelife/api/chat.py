"""FastAPI endpoints for conversations and message history."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from tribelife.api.errors import policy_http_error
from tribelife.domain.chat.schemas import (
	ConversationCreateRequest,
	ConversationCreateResponse,
	ConversationListResponse,
	MessageListResponse,
)
from tribelife.domain.chat.service import ChatService
from tribelife.domain.common.errors import PolicyError
from tribelife.domain.presence.models import locality_room
from tribelife.infra.auth import AuthenticatedUser, get_current_user
from tribelife.settings import settings

router = APIRouter(prefix="/api/chat", tags=["chat"])

_service = ChatService()


def get_chat_service() -> ChatService:
	return _service


@router.post("/conversations", response_model=ConversationCreateResponse)
async def create_conversation_endpoint(
	payload: ConversationCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> ConversationCreateResponse:
	try:
		return await service.get_or_create_conversation(auth_user, payload.other_user_id)
	except PolicyError as exc:
		raise policy_http_error(exc) from None


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> ConversationListResponse:
	return await service.list_conversations(auth_user)


@router.get("/conversations/{conversation_id}/messages", response_model=MessageListResponse)
async def list_conversation_messages_endpoint(
	conversation_id: int,
	before: Optional[datetime] = Query(default=None),
	limit: int = Query(default=50, ge=1, le=100),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> MessageListResponse:
	try:
		return await service.list_conversation_messages(auth_user, conversation_id, before=before, limit=limit)
	except PolicyError as exc:
		raise policy_http_error(exc) from None


@router.get("/rooms/messages", response_model=MessageListResponse)
async def list_room_messages_endpoint(
	before: Optional[datetime] = Query(default=None),
	limit: int = Query(default=50, ge=1, le=100),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> MessageListResponse:
	room = locality_room(auth_user.locality or settings.default_session_locality)
	return await service.list_room_messages(room, before=before, limit=limit)


@router.get("/room/{room_id:path}/messages", response_model=MessageListResponse)
async def list_room_messages_by_id_endpoint(
	room_id: str,
	before: Optional[datetime] = Query(default=None),
	limit: int = Query(default=50, ge=1, le=100),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ChatService = Depends(get_chat_service),
) -> MessageListResponse:
	if room_id != locality_room(auth_user.locality or settings.default_session_locality):
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="not_room_member")
	return await service.list_room_messages(room_id, before=before, limit=limit)
