"""Persistence for Snack requests, sessions, messages and safety edges.

Postgres is used when a pool is available; otherwise every operation runs
against a process-local store guarded by a single asyncio.Lock, which gives
the same all-or-nothing behaviour for pairing and rating.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

import asyncpg
import ulid

from snackmatch.domain.snack import models
from snackmatch.domain.snack.exceptions import (
	ActiveSessionExists,
	AlreadyRated,
	AlreadyWaiting,
	MatchConflict,
	NotParticipant,
	SessionNotFound,
	SnackValidationError,
	UserNotFound,
)
from snackmatch.infra.postgres import PoolUnavailable, get_pool

logger = logging.getLogger(__name__)

CANDIDATE_LIMIT = 50
MESSAGE_PAGE_LIMIT = 200


def new_id() -> str:
	return ulid.new().str


class _MemoryStore:
	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self.requests: Dict[str, models.SnackRequest] = {}
		self.sessions: Dict[str, models.SnackSession] = {}
		self.messages: Dict[str, List[models.SnackMessage]] = {}
		self.blocks: Dict[tuple[str, str], models.Block] = {}
		self.reports: List[models.Report] = []
		self.reputations: Dict[str, models.Reputation] = {}
		self.profiles: Dict[str, models.ParticipantProfile] = {}

	async def reset(self) -> None:
		# A fresh lock binds to whichever event loop runs next.
		self._lock = asyncio.Lock()
		self.requests.clear()
		self.sessions.clear()
		self.messages.clear()
		self.blocks.clear()
		self.reports.clear()
		self.reputations.clear()
		self.profiles.clear()

	async def create_request(self, request: models.SnackRequest) -> models.SnackRequest:
		async with self._lock:
			for session in self.sessions.values():
				if session.includes(request.user_id) and not session.is_ended and session.expires_at > request.created_at:
					raise ActiveSessionExists()
			for existing in self.requests.values():
				if existing.user_id == request.user_id and existing.is_waiting:
					raise AlreadyWaiting()
			self.requests[request.id] = replace(request)
			return replace(request)

	async def get_request(self, request_id: str) -> Optional[models.SnackRequest]:
		async with self._lock:
			request = self.requests.get(request_id)
			return replace(request) if request else None

	async def get_waiting_request(self, user_id: str) -> Optional[models.SnackRequest]:
		async with self._lock:
			for request in self.requests.values():
				if request.user_id == user_id and request.is_waiting:
					return replace(request)
			return None

	async def cancel_request(self, request_id: str, user_id: str) -> Optional[models.SnackRequest]:
		async with self._lock:
			request = self.requests.get(request_id)
			if request is None or request.user_id != user_id or not request.is_waiting:
				return None
			request.status = "cancelled"
			return replace(request)

	async def list_candidates(
		self,
		request: models.SnackRequest,
		excluded: set[str],
		limit: int,
	) -> List[models.SnackRequest]:
		async with self._lock:
			candidates = [
				replace(other)
				for other in self.requests.values()
				if other.is_waiting
				and other.id != request.id
				and other.activity_type == request.activity_type
				and other.campus_id == request.campus_id
				and other.user_id != request.user_id
				and other.user_id not in excluded
			]
		candidates.sort(key=lambda item: (item.created_at, item.id), reverse=True)
		return candidates[:limit]

	async def claim_pair(self, session: models.SnackSession, matched_at: datetime) -> models.SnackSession:
		async with self._lock:
			pair = (session.request1_id, session.request2_id)
			lost = tuple(rid for rid in pair if rid not in self.requests or not self.requests[rid].is_waiting)
			if lost:
				raise MatchConflict(lost)
			for rid in pair:
				self.requests[rid].status = "matched"
				self.requests[rid].matched_at = matched_at
			self.sessions[session.id] = replace(session)
			return replace(session)

	async def get_session(self, session_id: str) -> Optional[models.SnackSession]:
		async with self._lock:
			session = self.sessions.get(session_id)
			return replace(session) if session else None

	async def get_active_session(self, user_id: str, now: datetime) -> Optional[models.SnackSession]:
		async with self._lock:
			live = [
				session
				for session in self.sessions.values()
				if session.includes(user_id) and not session.is_ended and session.expires_at > now
			]
		if not live:
			return None
		return replace(max(live, key=lambda item: item.started_at))

	async def list_due_sessions(self, now: datetime, limit: int) -> List[models.SnackSession]:
		async with self._lock:
			due = [replace(s) for s in self.sessions.values() if not s.is_ended and s.expires_at <= now]
		due.sort(key=lambda item: item.expires_at)
		return due[:limit]

	async def extend_session(self, session_id: str, minutes: int, now: datetime) -> Optional[models.SnackSession]:
		async with self._lock:
			session = self.sessions.get(session_id)
			if session is None or session.status not in ("active", "extended") or session.expires_at <= now:
				return None
			session.duration += minutes
			session.expires_at = session.expires_at + timedelta(minutes=minutes)
			session.status = "extended"
			return replace(session)

	async def end_session(self, session_id: str, reason: str, now: datetime) -> Optional[models.SnackSession]:
		async with self._lock:
			session = self.sessions.get(session_id)
			if session is None or session.is_ended:
				return None
			session.status = "ended"
			session.ended_at = now
			session.end_reason = reason
			return replace(session)

	async def record_rating(
		self,
		session_id: str,
		rater_id: str,
		rating: int,
	) -> tuple[models.SnackSession, List[models.Reputation]]:
		async with self._lock:
			session = self.sessions.get(session_id)
			_check_rating_allowed(session, rater_id)
			if rater_id == session.user1_id:
				session.user1_rating = rating
			else:
				session.user2_rating = rating
			updated: List[models.Reputation] = []
			if session.both_rated:
				for user_id in session.participants():
					current = self.reputations.setdefault(user_id, models.Reputation(user_id=user_id))
					received = session.rating_of(session.other(user_id))
					current.score, current.count = models.next_reputation(current.score, current.count, received)
					updated.append(replace(current))
			return replace(session), updated

	async def get_reputation(self, user_id: str) -> models.Reputation:
		async with self._lock:
			current = self.reputations.get(user_id)
			return replace(current) if current else models.Reputation(user_id=user_id)

	async def add_block(self, block: models.Block) -> bool:
		async with self._lock:
			key = (block.blocker_id, block.blocked_id)
			if key in self.blocks:
				return False
			self.blocks[key] = block
			return True

	async def add_report(self, report: models.Report) -> models.Report:
		async with self._lock:
			self.reports.append(report)
			return replace(report)

	async def blocked_user_ids(self, user_id: str) -> set[str]:
		async with self._lock:
			result: set[str] = set()
			for blocker, blocked in self.blocks:
				if blocker == user_id:
					result.add(blocked)
				elif blocked == user_id:
					result.add(blocker)
			return result

	async def reported_user_ids(self, reporter_id: str) -> set[str]:
		async with self._lock:
			return {report.reported_id for report in self.reports if report.reporter_id == reporter_id}

	async def list_reports(self, reporter_id: str) -> List[models.Report]:
		async with self._lock:
			return [replace(report) for report in self.reports if report.reporter_id == reporter_id]

	async def create_message(self, message: models.SnackMessage) -> models.SnackMessage:
		async with self._lock:
			self.messages.setdefault(message.session_id, []).append(message)
			return replace(message)

	async def list_messages(self, session_id: str, limit: int) -> List[models.SnackMessage]:
		async with self._lock:
			items = sorted(self.messages.get(session_id, []), key=lambda item: (item.created_at, item.id))
		return [replace(item) for item in items[:limit]]

	async def fetch_profiles(self, user_ids: Iterable[str]) -> Dict[str, models.ParticipantProfile]:
		async with self._lock:
			return {
				uid: replace(self.profiles[uid]) if uid in self.profiles else models.ParticipantProfile(id=uid)
				for uid in user_ids
			}

	async def seed_profile(self, profile: models.ParticipantProfile) -> None:
		async with self._lock:
			self.profiles[profile.id] = profile


_MEMORY = _MemoryStore()


def _check_rating_allowed(session: Optional[models.SnackSession], rater_id: str) -> None:
	if session is None:
		raise SessionNotFound()
	if not session.includes(rater_id):
		raise NotParticipant()
	if session.rating_of(rater_id) is not None:
		raise AlreadyRated()


@contextmanager
def _reference_errors() -> Iterator[None]:
	"""Translate dangling or malformed user and session references into domain errors."""
	try:
		yield
	except asyncpg.ForeignKeyViolationError as exc:
		if "session_id" in (getattr(exc, "constraint_name", None) or ""):
			raise SessionNotFound() from exc
		raise UserNotFound() from exc
	except asyncpg.DataError as exc:
		raise SnackValidationError("invalid_user_id") from exc


def _row_to_request(row: asyncpg.Record) -> models.SnackRequest:
	return models.SnackRequest(
		id=row["id"],
		user_id=str(row["user_id"]),
		campus_id=str(row["campus_id"]),
		activity_type=row["activity_type"],
		topic=row["topic"],
		duration=int(row["duration"]),
		tags=list(row["tags"] or []),
		location=row["location"],
		status=row["status"],
		created_at=row["created_at"],
		matched_at=row["matched_at"],
	)


def _row_to_session(row: asyncpg.Record) -> models.SnackSession:
	return models.SnackSession(
		id=row["id"],
		user1_id=str(row["user1_id"]),
		user2_id=str(row["user2_id"]),
		request1_id=row["request1_id"],
		request2_id=row["request2_id"],
		activity_type=row["activity_type"],
		topic=row["topic"],
		duration=int(row["duration"]),
		started_at=row["started_at"],
		expires_at=row["expires_at"],
		status=row["status"],
		user1_rating=row["user1_rating"],
		user2_rating=row["user2_rating"],
		ended_at=row["ended_at"],
		end_reason=row["end_reason"],
	)


def _row_to_message(row: asyncpg.Record) -> models.SnackMessage:
	return models.SnackMessage(
		id=row["id"],
		session_id=row["session_id"],
		sender_id=str(row["sender_id"]),
		content=row["content"],
		created_at=row["created_at"],
	)


_SESSION_COLUMNS = """
	id, user1_id, user2_id, request1_id, request2_id, activity_type, topic, duration,
	started_at, expires_at, status, user1_rating, user2_rating, ended_at, end_reason
"""


class SnackRepository:
	"""Storage gateway shared by the matcher, lifecycle manager and safety registry."""

	def __init__(self) -> None:
		self._pool_checked = False
		self._pool: Optional[asyncpg.Pool] = None

	async def _pool_or_none(self) -> Optional[asyncpg.Pool]:
		if self._pool_checked:
			return self._pool
		self._pool_checked = True
		try:
			pool = await get_pool()
		except PoolUnavailable:
			pool = None
		except Exception:
			logger.warning("Postgres unavailable; Snack data will live in memory", exc_info=True)
			pool = None
		self._pool = pool
		return pool

	# Requests

	async def create_request(self, request: models.SnackRequest) -> models.SnackRequest:
		"""Insert a waiting request unless the user already waits or sits in a live session.

		The user row lock serialises this with ``claim_pair``, which locks both
		participants before flipping their requests.
		"""
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.create_request(request)
		async with pool.acquire() as conn:
			try:
				with _reference_errors():
					row = await self._insert_request(conn, request)
			except asyncpg.UniqueViolationError as exc:
				raise AlreadyWaiting() from exc
		if row is None:
			raise ActiveSessionExists()
		return request

	async def _insert_request(
		self,
		conn: asyncpg.Connection,
		request: models.SnackRequest,
	) -> Optional[asyncpg.Record]:
		async with conn.transaction():
			await conn.execute("SELECT id FROM users WHERE id = $1 FOR UPDATE", request.user_id)
			return await conn.fetchrow(
				"""
				INSERT INTO snack_requests
					(id, user_id, campus_id, activity_type, topic, duration, tags, location, status, created_at)
				SELECT $1::text, $2::uuid, $3::text, $4::text, $5::text, $6::int, $7::text[], $8::text, $9::text,
					$10::timestamptz
				WHERE NOT EXISTS (
					SELECT 1 FROM snack_sessions
					WHERE (user1_id = $2::uuid OR user2_id = $2::uuid)
						AND status <> 'ended'
						AND expires_at > $10::timestamptz
				)
				RETURNING id
				""",
				request.id,
				request.user_id,
				request.campus_id,
				request.activity_type,
				request.topic,
				request.duration,
				list(request.tags),
				request.location,
				request.status,
				request.created_at,
			)

	async def get_request(self, request_id: str) -> Optional[models.SnackRequest]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.get_request(request_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT * FROM snack_requests WHERE id = $1", request_id)
		return _row_to_request(row) if row else None

	async def get_waiting_request(self, user_id: str) -> Optional[models.SnackRequest]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.get_waiting_request(user_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"SELECT * FROM snack_requests WHERE user_id = $1 AND status = 'waiting' LIMIT 1",
				user_id,
			)
		return _row_to_request(row) if row else None

	async def cancel_request(self, request_id: str, user_id: str) -> Optional[models.SnackRequest]:
		"""Move a waiting request owned by ``user_id`` to cancelled; None when nothing changed."""
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.cancel_request(request_id, user_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				UPDATE snack_requests SET status = 'cancelled'
				WHERE id = $1 AND user_id = $2 AND status = 'waiting'
				RETURNING *
				""",
				request_id,
				user_id,
			)
		return _row_to_request(row) if row else None

	async def list_candidates(
		self,
		request: models.SnackRequest,
		excluded: Iterable[str],
		*,
		limit: int = CANDIDATE_LIMIT,
	) -> List[models.SnackRequest]:
		"""Waiting requests that could pair with ``request``, newest first."""
		excluded_ids = set(excluded)
		excluded_ids.add(request.user_id)
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.list_candidates(request, excluded_ids, limit)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM snack_requests
				WHERE status = 'waiting'
					AND activity_type = $1
					AND campus_id = $2
					AND id <> $3
					AND NOT (user_id::text = ANY($4::text[]))
				ORDER BY created_at DESC, id DESC
				LIMIT $5
				""",
				request.activity_type,
				request.campus_id,
				request.id,
				sorted(excluded_ids),
				limit,
			)
		return [_row_to_request(row) for row in rows]

	async def claim_pair(self, session: models.SnackSession, *, matched_at: datetime) -> models.SnackSession:
		"""Flip both requests to matched and insert the session in one transaction.

		Raises MatchConflict when either request already left ``waiting``.
		"""
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.claim_pair(session, matched_at)
		pair = [session.request1_id, session.request2_id]
		async with pool.acquire() as conn:
			async with conn.transaction():
				# Same lock order as the rating fold; blocks create_request for either user until commit.
				await conn.execute(
					"SELECT id FROM users WHERE id = ANY($1::uuid[]) ORDER BY id FOR UPDATE",
					list(session.participants()),
				)
				rows = await conn.fetch(
					"""
					UPDATE snack_requests SET status = 'matched', matched_at = $2
					WHERE id = ANY($1::text[]) AND status = 'waiting'
					RETURNING id
					""",
					pair,
					matched_at,
				)
				if len(rows) != 2:
					claimed = {row["id"] for row in rows}
					raise MatchConflict(tuple(rid for rid in pair if rid not in claimed))
				await conn.execute(
					"""
					INSERT INTO snack_sessions
						(id, user1_id, user2_id, request1_id, request2_id, activity_type, topic,
						 duration, started_at, expires_at, status)
					VALUES ($1,$2,$3,$4,$5,$6,$7,$8,$9,$10,$11)
					""",
					session.id,
					session.user1_id,
					session.user2_id,
					session.request1_id,
					session.request2_id,
					session.activity_type,
					session.topic,
					session.duration,
					session.started_at,
					session.expires_at,
					session.status,
				)
		return session

	# Sessions

	async def get_session(self, session_id: str) -> Optional[models.SnackSession]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.get_session(session_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(f"SELECT {_SESSION_COLUMNS} FROM snack_sessions WHERE id = $1", session_id)
		return _row_to_session(row) if row else None

	async def get_active_session(self, user_id: str, *, now: datetime) -> Optional[models.SnackSession]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.get_active_session(user_id, now)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				f"""
				SELECT {_SESSION_COLUMNS} FROM snack_sessions
				WHERE (user1_id = $1 OR user2_id = $1)
					AND status <> 'ended'
					AND expires_at > $2
				ORDER BY started_at DESC
				LIMIT 1
				""",
				user_id,
				now,
			)
		return _row_to_session(row) if row else None

	async def list_due_sessions(self, *, now: datetime, limit: int = 500) -> List[models.SnackSession]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.list_due_sessions(now, limit)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_SESSION_COLUMNS} FROM snack_sessions
				WHERE status <> 'ended' AND expires_at <= $1
				ORDER BY expires_at
				LIMIT $2
				""",
				now,
				limit,
			)
		return [_row_to_session(row) for row in rows]

	async def extend_session(self, session_id: str, *, minutes: int, now: datetime) -> Optional[models.SnackSession]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.extend_session(session_id, minutes, now)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				f"""
				UPDATE snack_sessions
				SET duration = duration + $2,
					expires_at = expires_at + ($2::int * INTERVAL '1 minute'),
					status = 'extended'
				WHERE id = $1 AND status IN ('active', 'extended') AND expires_at > $3
				RETURNING {_SESSION_COLUMNS}
				""",
				session_id,
				minutes,
				now,
			)
		return _row_to_session(row) if row else None

	async def end_session(self, session_id: str, *, reason: str, now: datetime) -> Optional[models.SnackSession]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.end_session(session_id, reason, now)
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				f"""
				UPDATE snack_sessions
				SET status = 'ended', ended_at = $3, end_reason = $2
				WHERE id = $1 AND status <> 'ended'
				RETURNING {_SESSION_COLUMNS}
				""",
				session_id,
				reason,
				now,
			)
		return _row_to_session(row) if row else None

	async def record_rating(
		self,
		session_id: str,
		*,
		rater_id: str,
		rating: int,
	) -> tuple[models.SnackSession, List[models.Reputation]]:
		"""Store one side's rating; fold both ratings into reputations once both exist."""
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.record_rating(session_id, rater_id, rating)
		async with pool.acquire() as conn:
			async with conn.transaction():
				row = await conn.fetchrow(
					f"SELECT {_SESSION_COLUMNS} FROM snack_sessions WHERE id = $1 FOR UPDATE",
					session_id,
				)
				session = _row_to_session(row) if row else None
				_check_rating_allowed(session, rater_id)
				column = "user1_rating" if rater_id == session.user1_id else "user2_rating"
				row = await conn.fetchrow(
					f"UPDATE snack_sessions SET {column} = $2 WHERE id = $1 RETURNING {_SESSION_COLUMNS}",
					session_id,
					rating,
				)
				session = _row_to_session(row)
				if not session.both_rated:
					return session, []
				updated = await self._apply_reputation(conn, session)
		return session, updated

	async def _apply_reputation(
		self,
		conn: asyncpg.Connection,
		session: models.SnackSession,
	) -> List[models.Reputation]:
		rows = await conn.fetch(
			"""
			SELECT id, snack_score, snack_count FROM users
			WHERE id = ANY($1::uuid[])
			ORDER BY id
			FOR UPDATE
			""",
			list(session.participants()),
		)
		current = {
			str(row["id"]): models.Reputation(
				user_id=str(row["id"]),
				score=int(row["snack_score"] or 0),
				count=int(row["snack_count"] or 0),
			)
			for row in rows
		}
		updated: List[models.Reputation] = []
		for user_id in session.participants():
			reputation = current.get(user_id)
			if reputation is None:
				logger.warning("snack reputation target missing", extra={"user_id": user_id, "session_id": session.id})
				continue
			received = session.rating_of(session.other(user_id))
			reputation.score, reputation.count = models.next_reputation(reputation.score, reputation.count, received)
			await conn.execute(
				"UPDATE users SET snack_score = $2, snack_count = $3 WHERE id = $1",
				user_id,
				reputation.score,
				reputation.count,
			)
			updated.append(reputation)
		return updated

	async def get_reputation(self, user_id: str) -> models.Reputation:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.get_reputation(user_id)
		async with pool.acquire() as conn:
			row = await conn.fetchrow("SELECT snack_score, snack_count FROM users WHERE id = $1", user_id)
		if not row:
			return models.Reputation(user_id=user_id)
		return models.Reputation(user_id=user_id, score=int(row["snack_score"] or 0), count=int(row["snack_count"] or 0))

	# Safety

	async def add_block(self, block: models.Block) -> bool:
		"""Insert a block edge; False when it already existed."""
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.add_block(block)
		async with pool.acquire() as conn:
			with _reference_errors():
				row = await conn.fetchrow(
					"""
					INSERT INTO snack_blocks (blocker_id, blocked_id, created_at)
					VALUES ($1, $2, $3)
					ON CONFLICT (blocker_id, blocked_id) DO NOTHING
					RETURNING blocker_id
					""",
					block.blocker_id,
					block.blocked_id,
					block.created_at,
				)
		return row is not None

	async def add_report(self, report: models.Report) -> models.Report:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.add_report(report)
		async with pool.acquire() as conn:
			with _reference_errors():
				await conn.execute(
					"""
					INSERT INTO snack_reports (id, reporter_id, reported_id, session_id, reason, description, created_at)
					VALUES ($1,$2,$3,$4,$5,$6,$7)
					""",
					report.id,
					report.reporter_id,
					report.reported_id,
					report.session_id,
					report.reason,
					report.description,
					report.created_at,
				)
		return report

	async def blocked_user_ids(self, user_id: str) -> set[str]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.blocked_user_ids(user_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT blocked_id AS other FROM snack_blocks WHERE blocker_id = $1
				UNION
				SELECT blocker_id AS other FROM snack_blocks WHERE blocked_id = $1
				""",
				user_id,
			)
		return {str(row["other"]) for row in rows}

	async def reported_user_ids(self, reporter_id: str) -> set[str]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.reported_user_ids(reporter_id)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT DISTINCT reported_id FROM snack_reports WHERE reporter_id = $1",
				reporter_id,
			)
		return {str(row["reported_id"]) for row in rows}

	# Messages

	async def create_message(self, message: models.SnackMessage) -> models.SnackMessage:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.create_message(message)
		async with pool.acquire() as conn:
			await conn.execute(
				"""
				INSERT INTO snack_messages (id, session_id, sender_id, content, created_at)
				VALUES ($1,$2,$3,$4,$5)
				""",
				message.id,
				message.session_id,
				message.sender_id,
				message.content,
				message.created_at,
			)
		return message

	async def list_messages(self, session_id: str, *, limit: int = MESSAGE_PAGE_LIMIT) -> List[models.SnackMessage]:
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.list_messages(session_id, limit)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT * FROM snack_messages
				WHERE session_id = $1
				ORDER BY created_at ASC, id ASC
				LIMIT $2
				""",
				session_id,
				limit,
			)
		return [_row_to_message(row) for row in rows]

	# Profiles

	async def fetch_profiles(self, user_ids: Sequence[str]) -> Dict[str, models.ParticipantProfile]:
		unique_ids = list(dict.fromkeys(user_ids))
		if not unique_ids:
			return {}
		pool = await self._pool_or_none()
		if pool is None:
			return await _MEMORY.fetch_profiles(unique_ids)
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT id, handle, display_name, avatar_url FROM users WHERE id = ANY($1::uuid[])",
				unique_ids,
			)
		found = {
			str(row["id"]): models.ParticipantProfile(
				id=str(row["id"]),
				handle=row["handle"],
				display_name=row["display_name"],
				avatar_url=row["avatar_url"],
			)
			for row in rows
		}
		return {uid: found.get(uid) or models.ParticipantProfile(id=uid) for uid in unique_ids}


async def seed_profile(profile: models.ParticipantProfile) -> None:
	"""Register a profile in the in-memory store (local runs and tests)."""
	await _MEMORY.seed_profile(profile)


async def list_memory_reports(reporter_id: str) -> List[models.Report]:
	return await _MEMORY.list_reports(reporter_id)


async def reset_memory_state() -> None:
	await _MEMORY.reset()


__all__ = ["SnackRepository", "new_id", "reset_memory_state", "seed_profile", "list_memory_reports"]
