"""Socket.IO namespace for presence, chat and typing relay."""

from __future__ import annotations

import logging
from typing import Any, Optional

import socketio
from pydantic import ValidationError

from tribelife.domain.chat.models import ConversationTarget, Dropped, RoomTarget
from tribelife.domain.chat.repo import ChatRepository
from tribelife.domain.chat.schemas import ConversationEvent, DmMessageEvent, RoomMessageEvent, TypingEvent
from tribelife.domain.chat.service import MessageIngestService
from tribelife.domain.common.errors import AuthenticationError
from tribelife.domain.presence.models import Session, conversation_room
from tribelife.domain.presence.registry import ConnectionRegistry
from tribelife.domain.profiles import ProfileDirectory
from tribelife.infra.auth import authenticate
from tribelife.obs import logging as obs_logging
from tribelife.obs import metrics as obs_metrics
from tribelife.settings import settings

_LOG = logging.getLogger(__name__)

TYPING_START_EVENT = "typing:start"
TYPING_STOP_EVENT = "typing:stop"


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def _extract_token(environ: dict, auth: Any) -> Optional[str]:
	if isinstance(auth, dict) and auth.get("token"):
		return str(auth["token"])
	scope = environ.get("asgi.scope", environ)
	header = environ.get("HTTP_AUTHORIZATION") or _header(scope, "authorization")
	if header and header.lower().startswith("bearer "):
		return header[7:].strip()
	return None


class ChatNamespace(socketio.AsyncNamespace):
	"""Authenticates connections and routes chat, DM and typing events.

	Event names carry a colon on the wire (``room:message``); handlers are
	looked up with the colon replaced by an underscore.
	"""

	def __init__(
		self,
		*,
		registry: ConnectionRegistry,
		ingest: MessageIngestService,
		chat_repo: ChatRepository | None = None,
		directory: ProfileDirectory | None = None,
		namespace: str = "/",
	) -> None:
		super().__init__(namespace)
		self.registry = registry
		self._ingest = ingest
		self._chat_repo = chat_repo or ChatRepository()
		self._directory = directory or ProfileDirectory()

	async def trigger_event(self, event: str, *args):
		sid = args[0] if args else None
		session = self.registry.get(sid) if isinstance(sid, str) else None
		token = obs_logging.bind_context(sid=sid, user_id=session.user_id if session else None)
		try:
			return await super().trigger_event(event.replace(":", "_"), *args)
		finally:
			obs_logging.reset_context(token)

	async def on_connect(self, sid: str, environ: dict, auth: Any = None) -> None:
		try:
			user = await authenticate(_extract_token(environ, auth), self._directory)
		except AuthenticationError as exc:
			obs_metrics.socket_rejected(exc.code)
			_LOG.info("socket.connect_rejected", extra={"sid": sid, "reason": exc.code})
			raise ConnectionRefusedError(exc.code) from None
		session = Session(
			sid=sid,
			user_id=user.id,
			handle=user.handle or f"user{user.id}",
			locality=user.locality or settings.default_session_locality,
			push_address=user.push_address,
		)
		self.registry.register(session)
		for room in (session.locality_room, session.user_channel):
			self.registry.join(sid, room)
			await self.enter_room(sid, room)
		obs_metrics.socket_connected(self.namespace)
		_LOG.info("socket.connected", extra={"sid": sid, "user_id": user.id, "locality": session.locality})

	async def on_disconnect(self, sid: str, reason: Any = None) -> None:
		session = self.registry.unregister(sid)
		if session is None:
			return
		obs_metrics.socket_disconnected(self.namespace)
		_LOG.info("socket.disconnected", extra={"sid": sid, "user_id": session.user_id})

	async def on_room_message(self, sid: str, data: Any = None) -> None:
		session = self._session(sid)
		if session is None:
			return
		async with self.registry.lock_for(sid):
			obs_metrics.socket_event(self.namespace, "room:message")
			event = self._parse(RoomMessageEvent, data, session)
			if event is None:
				return
			await self._run_ingest(session, RoomTarget(session.locality_room), event.content)

	async def on_dm_message(self, sid: str, data: Any = None) -> None:
		session = self._session(sid)
		if session is None:
			return
		async with self.registry.lock_for(sid):
			obs_metrics.socket_event(self.namespace, "dm:message")
			event = self._parse(DmMessageEvent, data, session)
			if event is None:
				return
			await self._run_ingest(session, ConversationTarget(event.conversation_id), event.content)

	async def on_dm_join(self, sid: str, data: Any = None) -> None:
		session = self._session(sid)
		if session is None:
			return
		async with self.registry.lock_for(sid):
			obs_metrics.socket_event(self.namespace, "dm:join")
			event = self._parse(ConversationEvent, data, session)
			if event is None:
				return
			try:
				allowed = await self._chat_repo.is_participant(event.conversation_id, session.user_id)
			except Exception:
				_LOG.exception("socket.dm_join_failed", extra={"sid": sid, "conversation_id": event.conversation_id})
				return
			if self.registry.get(sid) is None:
				# disconnected while the lookup was in flight
				return
			if not allowed:
				obs_metrics.inc_chat_dropped("authorization")
				return
			room = conversation_room(event.conversation_id)
			if self.registry.join(sid, room):
				await self.enter_room(sid, room)

	async def on_dm_leave(self, sid: str, data: Any = None) -> None:
		session = self._session(sid)
		if session is None:
			return
		async with self.registry.lock_for(sid):
			obs_metrics.socket_event(self.namespace, "dm:leave")
			event = self._parse(ConversationEvent, data, session)
			if event is None:
				return
			room = conversation_room(event.conversation_id)
			if self.registry.leave(sid, room):
				await self.leave_room(sid, room)

	async def on_typing_start(self, sid: str, data: Any = None) -> None:
		await self._relay_typing(sid, data, starting=True)

	async def on_typing_stop(self, sid: str, data: Any = None) -> None:
		await self._relay_typing(sid, data, starting=False)

	async def _relay_typing(self, sid: str, data: Any, *, starting: bool) -> None:
		session = self._session(sid)
		if session is None:
			return
		async with self.registry.lock_for(sid):
			event_name = TYPING_START_EVENT if starting else TYPING_STOP_EVENT
			obs_metrics.socket_event(self.namespace, event_name)
			event = self._parse(TypingEvent, data or {}, session)
			if event is None:
				return
			payload: dict = {"handle": session.handle}
			if event.room_id:
				room = event.room_id
				if starting:
					payload["roomId"] = room
			elif event.conversation_id is not None:
				room = conversation_room(event.conversation_id)
				if starting:
					payload["conversationId"] = event.conversation_id
			else:
				return
			if not self.registry.is_member(sid, room):
				return
			try:
				await self.emit(event_name, payload, room=room, skip_sid=sid)
			except Exception:
				_LOG.warning("socket.typing_relay_failed", exc_info=True, extra={"sid": sid, "room": room})

	async def _run_ingest(self, session: Session, target, content: str) -> None:
		try:
			outcome = await self._ingest.ingest(session, target, content)
		except Exception:
			_LOG.exception("socket.ingest_failed", extra={"sid": session.sid, "user_id": session.user_id})
			return
		if isinstance(outcome, Dropped):
			_LOG.debug("socket.message_dropped", extra={"sid": session.sid, "reason": outcome.reason.value})

	def _session(self, sid: str) -> Optional[Session]:
		session = self.registry.get(sid)
		if session is None:
			_LOG.debug("socket.unknown_sid", extra={"sid": sid})
		return session

	@staticmethod
	def _parse(model, data: Any, session: Session):
		try:
			return model.model_validate(data)
		except ValidationError:
			obs_metrics.inc_chat_dropped("validation")
			_LOG.debug("socket.invalid_payload", extra={"sid": session.sid, "model": model.__name__})
			return None
