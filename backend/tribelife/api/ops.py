"""Health and metrics endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from tribelife.infra import postgres
from tribelife.infra.redis import redis_client
from tribelife.settings import settings

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["ops"])


async def _redis_status(timeout: float = 0.2) -> Dict[str, Any]:
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=timeout)
	except Exception as exc:
		LOGGER.warning("Redis health check failed", exc_info=True)
		return {"ok": False, "error": str(exc)}
	return {"ok": True}


async def _postgres_status(timeout: float = 0.3) -> Dict[str, Any]:
	try:
		pool = await postgres.get_pool()
	except AssertionError:
		return {"ok": False, "error": "pool_not_configured"}
	try:
		async with pool.acquire() as conn:
			await asyncio.wait_for(conn.execute("SELECT 1"), timeout=timeout)
	except Exception as exc:
		LOGGER.warning("Postgres health check failed", exc_info=True)
		return {"ok": False, "error": str(exc)}
	return {"ok": True}


@router.get("/health")
async def health() -> Response:
	redis_status, postgres_status = await asyncio.gather(_redis_status(), _postgres_status())
	ok = redis_status["ok"] and (postgres_status["ok"] or settings.is_dev())
	payload = {
		"status": "ok" if ok else "degraded",
		"service": settings.service_name,
		"version": settings.git_commit,
		"redis": redis_status,
		"postgres": postgres_status,
	}
	return JSONResponse(status_code=200 if ok else 503, content=payload)


@router.get("/metrics")
async def prometheus_metrics() -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
