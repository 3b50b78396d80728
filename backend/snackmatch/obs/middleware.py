"""Request instrumentation: request ids, log context, HTTP metrics."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from snackmatch.api.request_id import REQUEST_ID_ATTR, REQUEST_ID_HEADER
from snackmatch.obs import logging as obs_logging
from snackmatch.obs import metrics

logger = obs_logging.get_logger("http")


def _route_template(request: Request) -> str:
	# Templated paths keep metric label cardinality bounded (/snack/session/{session_id}/...).
	route = request.scope.get("route")
	return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
		setattr(request.state, REQUEST_ID_ATTR, request_id)
		client_ip = request.client.host if request.client else None
		start = time.perf_counter()
		status_code = 500
		with obs_logging.log_context(
			request_id=request_id,
			route=request.url.path,
			user_id=request.headers.get("X-User-Id"),
			client_ip=client_ip,
		):
			try:
				response = await call_next(request)
				status_code = response.status_code
			except Exception:
				logger.exception("http_request_error", extra={"method": request.method})
				raise
			finally:
				elapsed = time.perf_counter() - start
				metrics.observe_request(_route_template(request), request.method, status_code, elapsed)
				logger.info(
					"http_request",
					extra={"method": request.method, "status": status_code, "latency_ms": round(elapsed * 1000, 3)},
				)
		response.headers.setdefault(REQUEST_ID_HEADER, request_id)
		return response


def install(app: FastAPI) -> None:
	app.add_middleware(ObservabilityMiddleware)
