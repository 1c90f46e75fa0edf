"""Expo push gateway client."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol

import httpx

from tribelife.obs import metrics as obs_metrics
from tribelife.settings import settings

_LOG = logging.getLogger(__name__)

_EXPO_TOKEN_PREFIX = "ExponentPushToken["


class PushTransport(Protocol):
	"""Fire-and-forget push sink."""

	async def push(self, address: str, title: str, body: str, data: Mapping[str, Any]) -> None:
		...


def is_expo_token(address: Optional[str]) -> bool:
	return bool(address) and str(address).startswith(_EXPO_TOKEN_PREFIX)


@dataclass
class ExpoPushClient(PushTransport):
	"""Posts single messages to the Expo push API; never raises."""

	http: httpx.AsyncClient
	url: str = field(default_factory=lambda: settings.expo_push_url)
	access_token: Optional[str] = field(default_factory=lambda: settings.expo_access_token)

	async def push(self, address: str, title: str, body: str, data: Mapping[str, Any]) -> None:
		if not is_expo_token(address):
			obs_metrics.inc_push("skipped")
			return
		headers = {
			"Content-Type": "application/json",
			"Accept": "application/json",
			"Accept-Encoding": "gzip, deflate",
		}
		if self.access_token:
			headers["Authorization"] = f"Bearer {self.access_token}"
		message = {
			"to": address,
			"title": title,
			"body": body,
			"data": dict(data),
			"sound": "default",
			"channelId": "default",
		}
		try:
			response = await self.http.post(
				self.url,
				json=[message],
				headers=headers,
				timeout=settings.push_timeout_seconds,
			)
			response.raise_for_status()
			tickets = response.json().get("data") or []
		except (httpx.HTTPError, ValueError):
			obs_metrics.inc_push("error")
			_LOG.warning("push.send_failed", exc_info=True)
			return
		for ticket in tickets:
			if ticket.get("status") == "error":
				obs_metrics.inc_push("rejected")
				_LOG.warning(
					"push.ticket_error",
					extra={"detail": ticket.get("message"), "error": (ticket.get("details") or {}).get("error")},
				)
				return
		obs_metrics.inc_push("ok")
