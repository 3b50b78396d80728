"""JSON logging with per-request and per-socket-event context."""

from __future__ import annotations

import json
import logging
import random
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional

from snackmatch.settings import settings

_LOGGER_NAME = "snack"

_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("snack_log_context", default=MappingProxyType({}))

# Chat text and report descriptions must never reach the log pipeline.
_SENSITIVE_KEYWORDS = ("token", "secret", "authorization", "password", "content", "description")

_MAX_STRING_LENGTH = 256
_MAX_COLLECTION_ITEMS = 10

_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def bind_context(**fields: Any) -> Token:
	"""Layer ``fields`` over the current context; ``None`` values are skipped."""
	merged = dict(_CONTEXT.get())
	merged.update({key: str(value) for key, value in fields.items() if value is not None})
	return _CONTEXT.set(MappingProxyType(merged))


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
	token = bind_context(**fields)
	try:
		yield
	finally:
		reset_context(token)


def current_context() -> Mapping[str, str]:
	return _CONTEXT.get()


def current_request_id() -> Optional[str]:
	return _CONTEXT.get().get("request_id")


def _scrub(key: str, value: Any) -> Any:
	if any(keyword in key.lower() for keyword in _SENSITIVE_KEYWORDS):
		return "[redacted]"
	if isinstance(value, str) and len(value) > _MAX_STRING_LENGTH:
		return value[:_MAX_STRING_LENGTH] + "..."
	if isinstance(value, Mapping):
		items = list(value.items())[:_MAX_COLLECTION_ITEMS]
		return {str(k): _scrub(str(k), v) for k, v in items}
	if isinstance(value, (list, tuple, set, frozenset)):
		return [_scrub(key, item) for item in list(value)[:_MAX_COLLECTION_ITEMS]]
	return value


class JSONLogFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"logger": record.name,
			"msg": record.getMessage(),
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		payload.update(_CONTEXT.get())
		for key, value in record.__dict__.items():
			if key not in _RECORD_ATTRS and key not in payload:
				payload[key] = _scrub(key, value)
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keep a fraction of INFO records; everything else passes."""

	def __init__(self, rate: float) -> None:
		super().__init__()
		self.rate = max(0.0, min(1.0, rate))

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO or self.rate >= 1.0:
			return True
		return random.random() < self.rate


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter(settings.obs_log_sampling_rate_info))
	root = logging.getLogger()
	root.handlers[:] = [handler]
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME)
