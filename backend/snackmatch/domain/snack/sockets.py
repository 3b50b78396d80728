"""Socket.IO namespace for Snack sessions.

Clients connect to ``/snack`` and must send ``snack:authenticate`` before any
other event. Every authenticated connection is tracked in a
``ConnectionRegistry`` so server-side code can reach all of a user's tabs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional

import socketio

from snackmatch.domain.snack import policy, schemas
from snackmatch.domain.snack.exceptions import SnackError
from snackmatch.infra.auth import InvalidToken, decode_user_token
from snackmatch.obs import logging as obs_logging
from snackmatch.obs import metrics as obs_metrics
from snackmatch.settings import settings

if TYPE_CHECKING:
	from snackmatch.domain.snack.service import SnackService

logger = logging.getLogger(__name__)

NAMESPACE = "/snack"

_namespace: "SnackNamespace" | None = None


@dataclass(slots=True)
class SocketIdentity:
	user_id: str
	username: str
	campus_id: Optional[str] = None


class ConnectionRegistry:
	"""Maps users to their live connection ids and back."""

	def __init__(self) -> None:
		self._by_sid: Dict[str, SocketIdentity] = {}
		self._by_user: Dict[str, set[str]] = {}

	def bind(self, sid: str, identity: SocketIdentity) -> None:
		previous = self._by_sid.get(sid)
		if previous is not None and previous.user_id != identity.user_id:
			self.unbind(sid)
		self._by_sid[sid] = identity
		self._by_user.setdefault(identity.user_id, set()).add(sid)

	def unbind(self, sid: str) -> Optional[SocketIdentity]:
		identity = self._by_sid.pop(sid, None)
		if identity is None:
			return None
		sids = self._by_user.get(identity.user_id)
		if sids is not None:
			sids.discard(sid)
			if not sids:
				del self._by_user[identity.user_id]
		return identity

	def identity(self, sid: str) -> Optional[SocketIdentity]:
		return self._by_sid.get(sid)

	def connections(self, user_id: str) -> set[str]:
		return set(self._by_user.get(user_id, ()))

	def is_online(self, user_id: str) -> bool:
		return bool(self._by_user.get(user_id))

	def __len__(self) -> int:
		return len(self._by_sid)


class SnackNamespace(socketio.AsyncNamespace):
	# Client event name -> handler attribute.
	CLIENT_EVENTS: Dict[str, str] = {
		"snack:authenticate": "on_authenticate",
		"snack:join-session": "on_join_session",
		"snack:send-message": "on_send_message",
		"snack:typing": "on_typing",
		"snack:request-extend": "on_request_extend",
		"snack:end-session": "on_end_session",
		"snack:poll-match": "on_poll_match",
	}

	def __init__(self, registry: ConnectionRegistry, *, service: Optional["SnackService"] = None) -> None:
		super().__init__(NAMESPACE)
		self.registry = registry
		self._service = service

	@property
	def service(self) -> "SnackService":
		if self._service is None:
			from snackmatch.domain.snack.service import SnackService

			self._service = SnackService()
		return self._service

	async def trigger_event(self, event: str, *args: Any) -> Any:
		handler_name = self.CLIENT_EVENTS.get(event)
		if handler_name is None:
			return await super().trigger_event(event, *args)
		sid = args[0] if args else None
		payload = args[1] if len(args) > 1 else None
		obs_metrics.socket_event(self.namespace, event)
		identity = self.registry.identity(sid) if sid else None
		with obs_logging.log_context(sid=sid, event=event, user_id=identity.user_id if identity else None):
			try:
				return await getattr(self, handler_name)(sid, payload if isinstance(payload, dict) else {})
			except SnackError as exc:
				await self._error(sid, exc.reason)
			except Exception:
				logger.exception("snack socket handler failed")
				await self._error(sid, "Internal error")
		return None

	async def on_connect(self, sid: str, environ: dict, auth: Any = None) -> None:
		obs_metrics.socket_connected(self.namespace)

	async def on_disconnect(self, sid: str, reason: Any = None) -> None:
		obs_metrics.socket_disconnected(self.namespace)
		identity = self.registry.unbind(sid)
		if identity is not None:
			logger.info("snack socket unbound", extra={"sid": sid, "user_id": identity.user_id})

	async def on_authenticate(self, sid: str, payload: dict) -> None:
		user_id = str(payload.get("userId") or "").strip()
		if not user_id:
			await self._error(sid, "userId required")
			return
		username = str(payload.get("username") or user_id)
		campus_id = payload.get("campusId")
		if not settings.is_dev():
			token = payload.get("token")
			if not token:
				await self._error(sid, "Token required")
				return
			try:
				user = decode_user_token(str(token))
			except InvalidToken:
				await self._error(sid, "Invalid token")
				return
			if user.id != user_id:
				await self._error(sid, "Token subject mismatch")
				return
			campus_id = user.campus_id
		self.registry.bind(sid, SocketIdentity(user_id=user_id, username=username, campus_id=campus_id))
		await self.emit("snack:authenticated", {"userId": user_id}, to=sid)

	async def on_join_session(self, sid: str, payload: dict) -> None:
		identity = await self._require_identity(sid)
		if identity is None:
			return
		session = await self.service.get_session_for(identity.user_id, str(payload.get("sessionId") or ""))
		await self.enter_room(sid, self.session_room(session.id))
		await self.emit_to_user(
			session.other(identity.user_id),
			"snack:user-joined",
			{"username": identity.username, "userId": identity.user_id},
		)

	async def on_send_message(self, sid: str, payload: dict) -> None:
		identity = await self._require_identity(sid)
		if identity is None:
			return
		await self.service.send_message(
			identity.user_id,
			str(payload.get("sessionId") or ""),
			payload.get("content"),
		)

	async def on_typing(self, sid: str, payload: dict) -> None:
		identity = await self._require_identity(sid)
		if identity is None:
			return
		await policy.enforce_typing_limit(identity.user_id)
		session = await self.service.get_session_for(identity.user_id, str(payload.get("sessionId") or ""))
		await self.emit(
			"snack:user-typing",
			{
				"userId": identity.user_id,
				"username": identity.username,
				"isTyping": bool(payload.get("isTyping")),
			},
			room=self.session_room(session.id),
			skip_sid=sid,
		)

	async def on_request_extend(self, sid: str, payload: dict) -> None:
		identity = await self._require_identity(sid)
		if identity is None:
			return
		session = await self.service.get_session_for(identity.user_id, str(payload.get("sessionId") or ""))
		await self.emit_to_user(
			session.other(identity.user_id),
			"snack:extend-request",
			{
				"fromUserId": identity.user_id,
				"fromUsername": identity.username,
				"sessionId": session.id,
			},
		)

	async def on_end_session(self, sid: str, payload: dict) -> None:
		identity = await self._require_identity(sid)
		if identity is None:
			return
		await self.service.end_session(identity.user_id, str(payload.get("sessionId") or ""))

	async def on_poll_match(self, sid: str, payload: dict) -> None:
		identity = await self._require_identity(sid)
		if identity is None:
			return
		session = await self.service.poll_match(identity.user_id, str(payload.get("requestId") or ""))
		if session is not None:
			await self.emit("snack:matched", {"session": schemas.wire(session)}, to=sid)

	async def emit_to_user(self, user_id: str, event: str, payload: dict) -> None:
		for sid in sorted(self.registry.connections(user_id)):
			await self.emit(event, payload, to=sid)

	async def _require_identity(self, sid: str) -> Optional[SocketIdentity]:
		identity = self.registry.identity(sid)
		if identity is None:
			await self._error(sid, "Not authenticated")
		return identity

	async def _error(self, sid: Optional[str], message: str) -> None:
		if sid is None:
			return
		await self.emit("snack:error", {"message": message}, to=sid)

	@staticmethod
	def session_room(session_id: str) -> str:
		return f"snack-session:{session_id}"


def set_namespace(namespace: Optional[SnackNamespace]) -> None:
	global _namespace
	_namespace = namespace


def get_namespace() -> Optional[SnackNamespace]:
	return _namespace


async def _safe_emit(event: str, coro) -> None:
	try:
		await coro
	except Exception:
		logger.warning("snack emit failed", extra={"event": event}, exc_info=True)


async def emit_matched(session: dict, user_ids: Iterable[str]) -> None:
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, "snack:matched")
	for user_id in user_ids:
		await _safe_emit("snack:matched", _namespace.emit_to_user(user_id, "snack:matched", {"session": session}))


async def emit_new_message(session_id: str, message: dict) -> None:
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, "snack:new-message")
	await _safe_emit(
		"snack:new-message",
		_namespace.emit("snack:new-message", message, room=SnackNamespace.session_room(session_id)),
	)


async def emit_session_ended(session_id: str, reason: str) -> None:
	if _namespace is None:
		return
	obs_metrics.socket_event(_namespace.namespace, "snack:session-ended")
	await _safe_emit(
		"snack:session-ended",
		_namespace.emit(
			"snack:session-ended",
			{"sessionId": session_id, "reason": reason},
			room=SnackNamespace.session_room(session_id),
		),
	)


__all__ = [
	"ConnectionRegistry",
	"NAMESPACE",
	"SnackNamespace",
	"SocketIdentity",
	"emit_matched",
	"emit_new_message",
	"emit_session_ended",
	"get_namespace",
	"set_namespace",
]
