"""Read side of notifications: listing and read markers."""

from __future__ import annotations

from tribelife.domain.common.errors import PolicyError
from tribelife.domain.notifications.repo import NotificationRepository
from tribelife.domain.notifications.schemas import NotificationListResponse, NotificationResponse
from tribelife.infra.auth import AuthenticatedUser

MAX_LIST_LIMIT = 50


class NotificationService:
	def __init__(self, repository: NotificationRepository | None = None) -> None:
		self._repo = repository or NotificationRepository()

	async def list_notifications(self, auth_user: AuthenticatedUser, *, limit: int = 30) -> NotificationListResponse:
		bounded = max(1, min(limit, MAX_LIST_LIMIT))
		rows = await self._repo.list_for_user(auth_user.id, limit=bounded)
		unread = await self._repo.unread_count(auth_user.id)
		return NotificationListResponse(
			notifications=[NotificationResponse.from_model(row) for row in rows],
			unread_count=unread,
		)

	async def mark_read(self, auth_user: AuthenticatedUser, notification_id: int) -> None:
		if not await self._repo.mark_read(auth_user.id, notification_id):
			raise PolicyError("notification_not_found", status_code=404)

	async def mark_all_read(self, auth_user: AuthenticatedUser) -> int:
		return await self._repo.mark_all_read(auth_user.id)
