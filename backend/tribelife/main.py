"""FastAPI + Socket.IO application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tribelife.api import beacons, chat, notifications, ops
from tribelife.api.errors import install_error_handlers
from tribelife.domain.beacons.jobs import BeaconMatchJob, MatchScheduler
from tribelife.domain.beacons.llm import LLMBeaconAnalyzer, LLMBeaconComparator, OpenAIChatClient
from tribelife.domain.beacons.matcher import BeaconMatchEngine
from tribelife.domain.beacons.service import BeaconService
from tribelife.domain.chat.service import MessageIngestService
from tribelife.domain.notifications.dispatcher import NotificationDispatcher
from tribelife.domain.presence.gateway import RealtimeGateway
from tribelife.domain.presence.registry import ConnectionRegistry
from tribelife.domain.presence.sockets import ChatNamespace
from tribelife.infra import postgres
from tribelife.infra.push import ExpoPushClient
from tribelife.obs import init as obs_init
from tribelife.settings import settings

_LOG = logging.getLogger(__name__)

MATCH_JOB_ID = "beacon-match-daily"

http_client = httpx.AsyncClient(timeout=settings.push_timeout_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	scheduler: MatchScheduler | None = None
	if settings.match_scheduler_enabled:
		scheduler = MatchScheduler()
		scheduler.schedule_daily(
			MATCH_JOB_ID,
			match_job.run_once,
			hour=settings.match_cron_hour,
			minute=settings.match_cron_minute,
		)
		scheduler.start()
		_LOG.info(
			"beacon_match.scheduled",
			extra={"hour": settings.match_cron_hour, "minute": settings.match_cron_minute},
		)
	app.state.match_scheduler = scheduler
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		await http_client.aclose()
		await postgres.close_pool()


app = FastAPI(title="TribeLife Realtime", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = ["http://localhost:8081", "http://localhost:19006"] if settings.is_dev() else []
if "*" in allow_origins:
	allow_origins = ["*"]

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials="*" not in allow_origins,
	allow_methods=["*"],
	allow_headers=["*"],
)

client_manager = None
if settings.socketio_redis_url:
	client_manager = socketio.AsyncRedisManager(settings.socketio_redis_url)

sio = socketio.AsyncServer(
	async_mode="asgi",
	cors_allowed_origins="*" if "*" in allow_origins else allow_origins,
	client_manager=client_manager,
	ping_timeout=settings.socketio_ping_timeout,
	ping_interval=settings.socketio_ping_interval,
)

registry = ConnectionRegistry()
gateway = RealtimeGateway(sio, registry)
dispatcher = NotificationDispatcher(live=gateway, push=ExpoPushClient(http=http_client))
ingest_service = MessageIngestService(broadcaster=gateway, dispatcher=dispatcher)
chat_namespace = ChatNamespace(registry=registry, ingest=ingest_service)
sio.register_namespace(chat_namespace)

llm_client = OpenAIChatClient(http=http_client)
match_engine = BeaconMatchEngine(comparator=LLMBeaconComparator(llm_client), dispatcher=dispatcher)
match_job = BeaconMatchJob(match_engine)
app.state.beacon_service = BeaconService(analyzer=LLMBeaconAnalyzer(llm_client))
app.state.match_job = match_job

socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
obs_init(app)

app.include_router(chat.router, tags=["chat"])
app.include_router(notifications.router, tags=["notifications"])
app.include_router(beacons.router, tags=["beacons"])
app.include_router(ops.router, tags=["ops"])
