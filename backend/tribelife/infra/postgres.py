"""Process-wide asyncpg pool."""

from __future__ import annotations

import logging
from typing import Optional

import asyncpg

from tribelife.settings import settings

_LOG = logging.getLogger(__name__)

_pool: Optional[asyncpg.pool.Pool] = None


async def init_pool() -> asyncpg.pool.Pool:
	"""Open the pool once; later calls return the same pool."""
	global _pool
	if _pool is None:
		_pool = await asyncpg.create_pool(
			dsn=settings.postgres_url,
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
			command_timeout=settings.postgres_command_timeout,
			server_settings={"application_name": settings.service_name},
		)
		_LOG.info("postgres.pool_opened", extra={"max_size": settings.postgres_max_pool_size})
	return _pool


async def get_pool() -> asyncpg.pool.Pool:
	# AssertionError here means "no database configured"; repositories
	# fall back to their in-memory stores on it.
	if _pool is None:
		await init_pool()
	assert _pool is not None, "postgres pool not initialised"
	return _pool


async def close_pool() -> None:
	global _pool
	pool, _pool = _pool, None
	if pool is not None:
		await pool.close()
		_LOG.info("postgres.pool_closed")
