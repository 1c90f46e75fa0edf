"""JSON log output with per-request / per-event context."""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from tribelife.settings import settings

_ROOT_LOGGER = "tribelife"

# Fields bound for the duration of one HTTP request, socket event or job run.
_CONTEXT: ContextVar[Mapping[str, Any]] = ContextVar("tribelife_log_context", default={})

_CONTEXT_KEYS = ("request_id", "route", "sid", "user_id", "job")

# Any extra whose name contains one of these is replaced before output.
_REDACT = ("token", "secret", "authorization", "password", "api_key", "push_address", "content", "raw_text")

_MAX_TEXT = 200
_MAX_ITEMS = 10

_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def bind_context(**fields: Any) -> Token:
	"""Layer ``fields`` over the current context; pass the token to reset_context."""
	unknown = set(fields) - set(_CONTEXT_KEYS)
	if unknown:
		raise ValueError(f"unknown log context keys: {sorted(unknown)}")
	merged = dict(_CONTEXT.get())
	merged.update({key: value for key, value in fields.items() if value is not None})
	return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_context() -> Dict[str, Any]:
	return dict(_CONTEXT.get())


def _clip(value: Any) -> Any:
	if isinstance(value, str):
		return value if len(value) <= _MAX_TEXT else value[:_MAX_TEXT] + "..."
	if isinstance(value, Mapping):
		items = list(value.items())
		clipped = {str(key): scrub(str(key), nested) for key, nested in items[:_MAX_ITEMS]}
		if len(items) > _MAX_ITEMS:
			clipped["_truncated"] = len(items) - _MAX_ITEMS
		return clipped
	if isinstance(value, (list, tuple, set, frozenset)):
		items = [_clip(item) for item in value]
		if len(items) > _MAX_ITEMS:
			items = items[:_MAX_ITEMS] + [f"+{len(items) - _MAX_ITEMS} more"]
		return items
	return value


def scrub(key: str, value: Any) -> Any:
	"""Redact sensitive fields and clip long values."""
	lowered = key.lower()
	if any(marker in lowered for marker in _REDACT):
		return "[redacted]"
	return _clip(value)


class JSONLogFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"event": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
		}
		payload.update(_CONTEXT.get())
		for key, value in vars(record).items():
			if key in _RECORD_ATTRS or key in payload:
				continue
			payload[key] = scrub(key, value)
		if record.exc_info:
			payload["exc"] = self.formatException(record.exc_info)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Drop a share of INFO records; other levels always pass."""

	def __init__(self, rate: Optional[float] = None) -> None:
		super().__init__()
		self.rate = settings.obs_log_sampling_rate_info if rate is None else rate

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO or self.rate >= 1.0:
			return True
		return random.random() < max(0.0, self.rate)


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers[:] = [handler]
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_ROOT_LOGGER)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _ROOT_LOGGER)
