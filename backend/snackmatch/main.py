from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import asyncpg
import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from snackmatch.api import ops, snack
from snackmatch.api.errors import install_error_handlers
from snackmatch.domain.snack import expiry
from snackmatch.domain.snack.sockets import ConnectionRegistry, SnackNamespace, set_namespace
from snackmatch.infra import postgres
from snackmatch.infra.redis import close_redis
from snackmatch.infra.scheduler import JobScheduler
from snackmatch.obs import init as obs_init
from snackmatch.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	try:
		await postgres.init_pool()
	except (OSError, asyncpg.PostgresError):
		if not settings.is_dev():
			raise
		logger.warning("postgres unreachable; Snack data will live in memory", exc_info=True)
	scheduler = JobScheduler()
	if expiry.install(scheduler) is not None:
		scheduler.start()
	app.state.scheduler = scheduler
	try:
		yield
	finally:
		scheduler.shutdown()
		await postgres.close_pool()
		await close_redis()


app = FastAPI(title="Snack Matchmaking", lifespan=lifespan)
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins or "*" in allow_origins:
	# Wildcards are not allowed together with credentials.
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
connection_registry = ConnectionRegistry()
snack_namespace = SnackNamespace(connection_registry)
sio.register_namespace(snack_namespace)
set_namespace(snack_namespace)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
obs_init(app)

app.include_router(snack.router)
app.include_router(ops.router)
