"""FastAPI endpoints for the notification inbox."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from tribelife.api.errors import policy_http_error
from tribelife.domain.common.errors import PolicyError
from tribelife.domain.notifications.schemas import NotificationListResponse
from tribelife.domain.notifications.service import NotificationService
from tribelife.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

_service = NotificationService()


def get_notification_service() -> NotificationService:
	return _service


@router.get("", response_model=NotificationListResponse)
async def list_notifications_endpoint(
	limit: int = Query(default=30, ge=1, le=50),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: NotificationService = Depends(get_notification_service),
) -> NotificationListResponse:
	return await service.list_notifications(auth_user, limit=limit)


@router.put("/read-all")
async def mark_all_read_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: NotificationService = Depends(get_notification_service),
) -> dict:
	updated = await service.mark_all_read(auth_user)
	return {"ok": True, "updated": updated}


@router.put("/{notification_id}/read")
async def mark_read_endpoint(
	notification_id: int,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: NotificationService = Depends(get_notification_service),
) -> dict:
	try:
		await service.mark_read(auth_user, notification_id)
	except PolicyError as exc:
		raise policy_http_error(exc) from None
	return {"ok": True}
