"""Health probes and the Prometheus scrape endpoint."""

from __future__ import annotations

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from snackmatch.obs import health
from snackmatch.settings import settings

router = APIRouter(tags=["ops"])


def _presented_token(request: Request) -> Optional[str]:
	token = request.headers.get("X-Admin-Token")
	if token:
		return token
	scheme, _, credentials = (request.headers.get("Authorization") or "").partition(" ")
	if scheme.lower() != "bearer":
		return None
	return credentials.strip() or None


async def require_metrics_access(request: Request) -> None:
	"""Scrapes are public only when explicitly configured; otherwise the admin token is required."""
	if settings.obs_metrics_public:
		return
	expected = settings.obs_admin_token
	if not expected:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	presented = _presented_token(request)
	if presented is None or not secrets.compare_digest(presented, expected):
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return await health.liveness()


@router.get("/health/ready")
async def health_ready() -> JSONResponse:
	status_code, payload = await health.readiness()
	return JSONResponse(content=payload, status_code=status_code)


@router.get("/metrics", dependencies=[Depends(require_metrics_access)])
async def prometheus_metrics() -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
