from unittest.mock import AsyncMock

import pytest
from prometheus_client import REGISTRY

from tribelife.domain.presence.gateway import RealtimeGateway
from tribelife.domain.presence.registry import ConnectionRegistry
from tribelife.obs import metrics as obs_metrics


def _events(event: str, direction: str) -> float:
	labels = {"namespace": "/", "event": event, "direction": direction}
	return REGISTRY.get_sample_value("tribelife_socketio_events_total", labels) or 0.0


@pytest.mark.asyncio
async def test_broadcast_is_counted_as_outbound_only():
	server = AsyncMock()
	gateway = RealtimeGateway(server, ConnectionRegistry())
	inbound, outbound = _events("room:message", "in"), _events("room:message", "out")

	await gateway.broadcast("timezone:UTC", "room:message", {"id": 1})

	server.emit.assert_awaited_once_with(
		"room:message", {"id": 1}, room="timezone:UTC", skip_sid=None, namespace="/"
	)
	assert _events("room:message", "out") == outbound + 1
	assert _events("room:message", "in") == inbound


@pytest.mark.asyncio
async def test_handled_and_emitted_events_use_separate_series():
	server = AsyncMock()
	gateway = RealtimeGateway(server, ConnectionRegistry())
	inbound, outbound = _events("dm:message", "in"), _events("dm:message", "out")

	obs_metrics.socket_event("/", "dm:message")
	await gateway.emit_user(4, "dm:message", {"id": 2})

	assert _events("dm:message", "in") == inbound + 1
	assert _events("dm:message", "out") == outbound + 1
	assert server.emit.await_args.kwargs["room"] == "user:4"
