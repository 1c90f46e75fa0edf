"""Notification fan-out: persist, live-emit, push.

Every call is an unconditional side effect on three channels. The dispatcher
never deduplicates; callers invoke it once per recipient per logical event.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Protocol

from tribelife.domain.notifications.models import (
	Notification,
	NotificationKind,
	NotificationPayload,
	NotificationRequest,
)
from tribelife.domain.notifications.repo import NotificationRepository
from tribelife.domain.profiles import ProfileDirectory
from tribelife.infra.push import PushTransport
from tribelife.obs import metrics as obs_metrics
from tribelife.settings import settings

_LOG = logging.getLogger(__name__)

NOTIFICATION_EVENT = "notification:new"


class LiveChannel(Protocol):
	def is_online(self, user_id: int) -> bool:
		...

	async def emit_user(self, user_id: int, event: str, payload: dict) -> None:
		...


class NotificationDispatcher:
	def __init__(
		self,
		*,
		live: LiveChannel,
		push: PushTransport,
		repository: NotificationRepository | None = None,
		directory: ProfileDirectory | None = None,
		concurrency: int | None = None,
	) -> None:
		self._live = live
		self._push = push
		self._repo = repository or NotificationRepository()
		self._directory = directory or ProfileDirectory()
		self._concurrency = max(1, concurrency or settings.notify_concurrency)

	async def notify(
		self,
		recipient_id: int,
		kind: NotificationKind,
		title: str,
		body: str,
		payload: NotificationPayload,
	) -> Notification:
		if payload.kind is not kind:
			raise ValueError(f"payload_kind_mismatch:{kind.value}")
		notification = await self._repo.create(
			NotificationRequest(recipient_id=recipient_id, kind=kind, title=title, body=body, payload=payload)
		)
		obs_metrics.inc_notification(kind.value)
		await self._emit_live(notification)
		await self._send_push(notification)
		return notification

	async def notify_many(self, requests: Iterable[NotificationRequest]) -> int:
		"""Fan out independent notifications concurrently; returns how many persisted."""
		semaphore = asyncio.Semaphore(self._concurrency)

		async def _deliver(request: NotificationRequest) -> bool:
			async with semaphore:
				try:
					await self.notify(request.recipient_id, request.kind, request.title, request.body, request.payload)
				except Exception:
					_LOG.exception(
						"notify.failed",
						extra={"recipient_id": request.recipient_id, "kind": request.kind.value},
					)
					return False
				return True

		results = await asyncio.gather(*(_deliver(request) for request in requests))
		return sum(1 for ok in results if ok)

	async def _emit_live(self, notification: Notification) -> None:
		if not self._live.is_online(notification.recipient_id):
			obs_metrics.inc_notification_live("offline")
			return
		try:
			await self._live.emit_user(notification.recipient_id, NOTIFICATION_EVENT, notification.live_event())
		except Exception:
			obs_metrics.inc_notification_live("error")
			_LOG.warning("notify.live_emit_failed", exc_info=True, extra={"recipient_id": notification.recipient_id})
			return
		obs_metrics.inc_notification_live("ok")

	async def _send_push(self, notification: Notification) -> None:
		try:
			profile = await self._directory.get_profile(notification.recipient_id)
			if profile is None or not profile.push_address:
				return
			await self._push.push(
				profile.push_address,
				notification.title,
				notification.body,
				notification.payload.push_data(),
			)
		except Exception:
			obs_metrics.inc_push("error")
			_LOG.warning("notify.push_failed", exc_info=True, extra={"recipient_id": notification.recipient_id})
