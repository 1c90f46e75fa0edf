import pytest

from tribelife.domain.presence.models import Session, user_channel
from tribelife.domain.presence.registry import ConnectionRegistry


def _session(sid: str, user_id: int) -> Session:
	return Session(sid=sid, user_id=user_id, handle=f"user{user_id}", locality="UTC")


def test_join_and_leave_are_idempotent():
	registry = ConnectionRegistry()
	registry.register(_session("sid-1", 1))
	assert registry.join("sid-1", "conversation:5") is True
	assert registry.join("sid-1", "conversation:5") is False
	assert registry.members("conversation:5") == {"sid-1"}
	assert registry.leave("sid-1", "conversation:5") is True
	assert registry.leave("sid-1", "conversation:5") is False
	assert "conversation:5" not in registry.rooms()


def test_join_unknown_sid_raises():
	registry = ConnectionRegistry()
	with pytest.raises(KeyError):
		registry.join("missing", "timezone:UTC")


def test_unregister_drops_every_membership_and_presence():
	registry = ConnectionRegistry()
	registry.register(_session("sid-1", 1))
	registry.register(_session("sid-2", 1))
	for room in ("timezone:UTC", user_channel(1)):
		registry.join("sid-1", room)
		registry.join("sid-2", room)

	registry.unregister("sid-1")
	assert registry.rooms_of("sid-1") == set()
	assert registry.members("timezone:UTC") == {"sid-2"}
	assert registry.is_online(1)

	registry.unregister("sid-2")
	assert not registry.is_online(1)
	assert registry.rooms() == []
	assert len(registry) == 0


def test_lock_is_stable_per_sid():
	registry = ConnectionRegistry()
	registry.register(_session("sid-1", 1))
	assert registry.lock_for("sid-1") is registry.lock_for("sid-1")
	assert registry.lock_for("sid-1") is not registry.lock_for("sid-2")
