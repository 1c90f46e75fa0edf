"""Outbound realtime delivery over the Socket.IO server."""

from __future__ import annotations

from typing import Optional

import socketio

from tribelife.domain.presence.models import user_channel
from tribelife.domain.presence.registry import ConnectionRegistry
from tribelife.obs import metrics as obs_metrics


class RealtimeGateway:
	"""Room broadcast and per-user emit used by ingest and fan-out."""

	def __init__(self, server: socketio.AsyncServer, registry: ConnectionRegistry, *, namespace: str = "/") -> None:
		self._server = server
		self._registry = registry
		self.namespace = namespace

	def is_online(self, user_id: int) -> bool:
		return self._registry.is_online(user_id)

	async def broadcast(self, room: str, event: str, payload: dict, *, skip_sid: Optional[str] = None) -> None:
		obs_metrics.socket_event(self.namespace, event, direction="out")
		await self._server.emit(event, payload, room=room, skip_sid=skip_sid, namespace=self.namespace)

	async def emit_user(self, user_id: int, event: str, payload: dict) -> None:
		obs_metrics.socket_event(self.namespace, event, direction="out")
		await self._server.emit(event, payload, room=user_channel(user_id), namespace=self.namespace)
