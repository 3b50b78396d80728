"""Service orchestration for Snack matchmaking."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from snackmatch.domain.snack import models, outbox, policy, schemas, sockets
from snackmatch.domain.snack.exceptions import (
	ActiveSessionExists,
	AlreadyWaiting,
	RequestNotFound,
	RequestNotWaiting,
	SessionEnded,
	SessionNotFound,
)
from snackmatch.domain.snack.lifecycle import SessionLifecycle
from snackmatch.domain.snack.matching import MatchFinder
from snackmatch.domain.snack.repository import SnackRepository, new_id
from snackmatch.domain.snack.safety import SafetyRegistry
from snackmatch.infra.auth import AuthenticatedUser
from snackmatch.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class SnackService:
	"""Entry point used by the HTTP routes, the socket namespace and the expiry job."""

	def __init__(
		self,
		repository: Optional[SnackRepository] = None,
		*,
		safety: Optional[SafetyRegistry] = None,
		lifecycle: Optional[SessionLifecycle] = None,
		matcher: Optional[MatchFinder] = None,
	) -> None:
		self._repo = repository or SnackRepository()
		self.safety = safety or SafetyRegistry(self._repo)
		self.lifecycle = lifecycle or SessionLifecycle(self._repo)
		self.matcher = matcher or MatchFinder(self._repo, safety=self.safety, lifecycle=self.lifecycle)

	# Requests

	async def create_request(
		self,
		auth_user: AuthenticatedUser,
		payload: schemas.CreateSnackRequest,
	) -> schemas.CreateRequestResponse:
		await policy.enforce_request_limit(auth_user.id)
		now = models.now_utc()
		if await self._repo.get_active_session(auth_user.id, now=now) is not None:
			raise ActiveSessionExists()
		if await self._repo.get_waiting_request(auth_user.id) is not None:
			raise AlreadyWaiting()
		request = await self._repo.create_request(
			models.SnackRequest(
				id=new_id(),
				user_id=auth_user.id,
				campus_id=auth_user.campus_id,
				activity_type=payload.activity_type,
				topic=payload.topic,
				duration=payload.duration,
				tags=list(payload.tags or []),
				location=payload.location,
				status="waiting",
				created_at=now,
			)
		)
		obs_metrics.inc_snack_request_created(request.activity_type)
		await outbox.append_snack_event(
			"snack.request.created",
			user_id=auth_user.id,
			request_id=request.id,
			meta={"activity_type": request.activity_type},
		)

		result = await self.matcher.find_match(request)
		session: Optional[models.SnackSession] = result.session if result else None
		if session is None:
			# A concurrent submission may have paired us as its candidate.
			session = await self._session_for_matched_request(auth_user.id, request.id)
		current = await self._repo.get_request(request.id) or request
		if session is None:
			return schemas.CreateRequestResponse(request=self._request_view(current), matched=False)

		session_view = await self._session_view(session)
		if result is not None:
			await sockets.emit_matched(schemas.wire(session_view), session.participants())
			await outbox.append_snack_event(
				"snack.session.created",
				session_id=session.id,
				meta={"user1_id": session.user1_id, "user2_id": session.user2_id},
			)
		return schemas.CreateRequestResponse(
			request=self._request_view(current),
			matched=True,
			session=session_view,
		)

	async def cancel_request(self, auth_user: AuthenticatedUser, request_id: str) -> None:
		cancelled = await self._repo.cancel_request(request_id, auth_user.id)
		if cancelled is not None:
			await outbox.append_snack_event("snack.request.cancelled", user_id=auth_user.id, request_id=request_id)
			return
		existing = await self._repo.get_request(request_id)
		if existing is None or existing.user_id != auth_user.id:
			raise RequestNotFound()
		raise RequestNotWaiting()

	async def match_status(self, auth_user: AuthenticatedUser) -> schemas.MatchStatusResponse:
		request = await self._repo.get_waiting_request(auth_user.id)
		session = await self._repo.get_active_session(auth_user.id, now=models.now_utc())
		return schemas.MatchStatusResponse(
			has_active_request=request is not None,
			request=self._request_view(request) if request else None,
			has_active_session=session is not None,
			session=await self._session_view(session) if session else None,
		)

	async def poll_match(self, user_id: str, request_id: str) -> Optional[schemas.SnackSessionView]:
		session = await self._session_for_matched_request(user_id, request_id)
		return await self._session_view(session) if session else None

	# Sessions

	async def get_session_for(self, user_id: str, session_id: str) -> models.SnackSession:
		session = await self._repo.get_session(session_id) if session_id else None
		if session is None:
			raise SessionNotFound()
		policy.ensure_participant(session, user_id)
		return session

	async def get_session_view(self, user_id: str, session_id: str) -> schemas.SnackSessionView:
		return await self._session_view(await self.get_session_for(user_id, session_id))

	async def list_messages(self, user_id: str, session_id: str) -> List[schemas.SnackMessageView]:
		session = await self.get_session_for(user_id, session_id)
		messages = await self._repo.list_messages(session.id)
		profiles = await self._repo.fetch_profiles(session.participants())
		return [self._message_view(message, profiles.get(message.sender_id)) for message in messages]

	async def send_message(self, user_id: str, session_id: str, content: Any) -> schemas.SnackMessageView:
		cleaned = policy.clean_message_content(content)
		session = await self._live_session_for(user_id, session_id)
		await policy.enforce_message_limit(user_id)
		message = await self._repo.create_message(
			models.SnackMessage(
				id=new_id(),
				session_id=session.id,
				sender_id=user_id,
				content=cleaned,
				created_at=models.now_utc(),
			)
		)
		obs_metrics.inc_snack_message()
		profiles = await self._repo.fetch_profiles([user_id])
		view = self._message_view(message, profiles.get(user_id))
		await sockets.emit_new_message(session.id, schemas.wire(view))
		return view

	async def extend_session(self, user_id: str, session_id: str) -> schemas.SnackSessionView:
		session = await self._live_session_for(user_id, session_id)
		extended = await self.lifecycle.extend(session.id)
		if extended is None:
			raise SessionEnded()
		await outbox.append_snack_event(
			"snack.session.extended",
			user_id=user_id,
			session_id=session.id,
			meta={"expires_at": extended.expires_at.isoformat()},
		)
		return await self._session_view(extended)

	async def end_session(
		self,
		user_id: str,
		session_id: str,
		reason: models.EndReason = "completed",
	) -> schemas.SnackSessionView:
		session = await self.get_session_for(user_id, session_id)
		ended = await self.lifecycle.end(session.id, reason)
		if ended is None:
			raise SessionEnded()
		await self._announce_end(ended)
		return await self._session_view(ended)

	async def rate_session(self, auth_user: AuthenticatedUser, session_id: str, rating: int) -> schemas.SnackSessionView:
		session = await self.lifecycle.submit_rating(session_id, auth_user.id, rating)
		await outbox.append_snack_event(
			"snack.session.rated",
			user_id=auth_user.id,
			session_id=session_id,
			meta={"rating": rating},
		)
		return await self._session_view(session)

	async def expire_sessions(self) -> int:
		ended = await self.lifecycle.expire_due()
		for session in ended:
			await self._announce_end(session)
		return len(ended)

	# Safety

	async def block_user(self, auth_user: AuthenticatedUser, blocked_id: str) -> None:
		if await self.safety.block(auth_user.id, blocked_id):
			await outbox.append_snack_event("snack.user.blocked", user_id=auth_user.id, meta={"blocked_id": blocked_id})

	async def report_user(self, auth_user: AuthenticatedUser, payload: schemas.ReportUserRequest) -> None:
		report = await self.safety.report(
			auth_user.id,
			payload.reported_id,
			reason=payload.reason,
			session_id=payload.session_id,
			description=payload.description,
		)
		await outbox.append_snack_event(
			"snack.user.reported",
			user_id=auth_user.id,
			session_id=report.session_id,
			meta={"reported_id": report.reported_id, "reason": report.reason},
		)

	# Helpers

	async def _live_session_for(self, user_id: str, session_id: str) -> models.SnackSession:
		"""Participant's session that still accepts writes; ends it first if it ran out."""
		session = await self.get_session_for(user_id, session_id)
		if session.is_ended:
			raise SessionEnded()
		if session.is_expired():
			ended = await self.lifecycle.end(session.id, "expired")
			if ended is not None:
				await self._announce_end(ended)
			raise SessionEnded()
		return session

	async def _session_for_matched_request(self, user_id: str, request_id: str) -> Optional[models.SnackSession]:
		request = await self._repo.get_request(request_id) if request_id else None
		if request is None or request.user_id != user_id or request.status != "matched":
			return None
		session = await self._repo.get_active_session(user_id, now=models.now_utc())
		if session is None or request.id not in (session.request1_id, session.request2_id):
			return None
		return session

	async def _announce_end(self, session: models.SnackSession) -> None:
		reason = session.end_reason or "completed"
		await sockets.emit_session_ended(session.id, reason)
		await outbox.append_snack_event("snack.session.ended", session_id=session.id, meta={"reason": reason})

	async def _session_view(self, session: models.SnackSession) -> schemas.SnackSessionView:
		profiles = await self._repo.fetch_profiles(session.participants())
		return schemas.SnackSessionView(
			**session.to_dict(),
			user1=self._profile_view(profiles.get(session.user1_id)),
			user2=self._profile_view(profiles.get(session.user2_id)),
		)

	@staticmethod
	def _request_view(request: models.SnackRequest) -> schemas.SnackRequestView:
		return schemas.SnackRequestView(**request.to_dict())

	@classmethod
	def _message_view(
		cls,
		message: models.SnackMessage,
		sender: Optional[models.ParticipantProfile],
	) -> schemas.SnackMessageView:
		return schemas.SnackMessageView(**message.to_dict(), sender=cls._profile_view(sender))

	@staticmethod
	def _profile_view(profile: Optional[models.ParticipantProfile]) -> Optional[schemas.ParticipantView]:
		if profile is None:
			return None
		return schemas.ParticipantView(**profile.to_dict())


__all__ = ["SnackService"]
