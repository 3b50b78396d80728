"""Request id lookup for handlers and error responses."""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from snackmatch.obs import logging as obs_logging

REQUEST_ID_ATTR = "request_id"
REQUEST_ID_HEADER = "X-Request-Id"


def get_request_id(request: Optional[Request] = None, default: str = "unknown") -> str:
	"""Id stored by the observability middleware, else the caller's header, else the log context."""
	if request is not None:
		rid = getattr(request.state, REQUEST_ID_ATTR, None) or request.headers.get(REQUEST_ID_HEADER)
		if rid:
			return str(rid)
	return obs_logging.current_request_id() or default
