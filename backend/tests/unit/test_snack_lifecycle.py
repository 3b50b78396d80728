from datetime import datetime, timedelta, timezone

import pytest

from snackmatch.domain.snack import models
from snackmatch.domain.snack.exceptions import (
	AlreadyRated,
	MatchConflict,
	NotParticipant,
	SessionNotFound,
	SnackValidationError,
)
from snackmatch.domain.snack.lifecycle import SessionLifecycle
from snackmatch.domain.snack.repository import SnackRepository, new_id


def _request(user_id: str, **overrides) -> models.SnackRequest:
	fields = {
		"id": new_id(),
		"user_id": user_id,
		"campus_id": "campus-1",
		"activity_type": "chill",
		"duration": 15,
		"status": "waiting",
		"created_at": models.now_utc(),
	}
	fields.update(overrides)
	return models.SnackRequest(**fields)


async def _session(
	repo: SnackRepository,
	lifecycle: SessionLifecycle,
	*,
	started: datetime | None = None,
	**overrides,
) -> models.SnackSession:
	first = await repo.create_request(_request("user-a", **overrides))
	second = await repo.create_request(_request("user-b", topic="Board games"))
	return await lifecycle.create(first, second, now=started)


@pytest.mark.parametrize(
	("score", "count", "rating", "expected"),
	[
		(0, 0, 5, (5, 1)),
		(5, 1, 4, (5, 2)),
		(4, 1, 4, (4, 2)),
		(3, 2, 5, (4, 3)),
		(2, 1, 1, (2, 2)),
	],
)
def test_next_reputation_rounds_half_up(score, count, rating, expected):
	assert models.next_reputation(score, count, rating) == expected


@pytest.mark.asyncio
async def test_create_uses_request_duration_and_topic_fallback():
	repo = SnackRepository()
	lifecycle = SessionLifecycle(repo)
	started = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
	session = await _session(repo, lifecycle, started=started, duration=30)

	assert session.status == "active"
	assert session.duration == 30
	assert session.expires_at == started + timedelta(minutes=30)
	assert session.topic == "Board games"
	assert session.user1_id == "user-a"


@pytest.mark.asyncio
async def test_create_rejects_request_that_left_waiting():
	repo = SnackRepository()
	lifecycle = SessionLifecycle(repo)
	first = await repo.create_request(_request("user-a"))
	second = await repo.create_request(_request("user-b"))
	await repo.cancel_request(second.id, "user-b")

	with pytest.raises(MatchConflict) as excinfo:
		await lifecycle.create(first, second)

	assert excinfo.value.request_ids == (second.id,)
	assert (await repo.get_request(first.id)).status == "waiting"
	assert await repo.get_active_session("user-a", now=models.now_utc()) is None


@pytest.mark.asyncio
async def test_extend_adds_ten_minutes_each_time():
	repo = SnackRepository()
	lifecycle = SessionLifecycle(repo)
	session = await _session(repo, lifecycle)

	once = await lifecycle.extend(session.id)
	twice = await lifecycle.extend(session.id)

	assert once.status == "extended"
	assert once.duration == 25
	assert once.expires_at == session.expires_at + timedelta(minutes=10)
	assert twice.duration == 35
	assert twice.expires_at == session.expires_at + timedelta(minutes=20)


@pytest.mark.asyncio
async def test_extend_ended_session_is_a_noop():
	repo = SnackRepository()
	lifecycle = SessionLifecycle(repo)
	session = await _session(repo, lifecycle)
	ended = await lifecycle.end(session.id)

	assert await lifecycle.extend(session.id) is None
	stored = await repo.get_session(session.id)
	assert stored.expires_at == ended.expires_at == session.expires_at
	assert stored.status == "ended"


@pytest.mark.asyncio
async def test_extend_missing_or_expired_session_returns_none():
	repo = SnackRepository()
	lifecycle = SessionLifecycle(repo)
	session = await _session(repo, lifecycle, started=models.now_utc() - timedelta(minutes=20))

	assert await lifecycle.extend("missing") is None
	assert await lifecycle.extend(session.id) is None


@pytest.mark.asyncio
async def test_end_is_terminal():
	repo = SnackRepository()
	lifecycle = SessionLifecycle(repo)
	session = await _session(repo, lifecycle)

	ended = await lifecycle.end(session.id, "left")

	assert ended.status == "ended"
	assert ended.end_reason == "left"
	assert ended.ended_at is not None
	assert await lifecycle.end(session.id) is None
	assert await lifecycle.end("missing") is None


@pytest.mark.asyncio
async def test_end_rejects_unknown_reason():
	repo = SnackRepository()
	lifecycle = SessionLifecycle(repo)
	session = await _session(repo, lifecycle)
	with pytest.raises(SnackValidationError):
		await lifecycle.end(session.id, "bored")


@pytest.mark.asyncio
async def test_reputation_changes_only_after_second_rating():
	repo = SnackRepository()
	lifecycle = SessionLifecycle(repo)
	session = await _session(repo, lifecycle)

	after_first = await lifecycle.submit_rating(session.id, "user-a", 4)
	assert after_first.user1_rating == 4
	assert after_first.user2_rating is None
	assert (await repo.get_reputation("user-a")).count == 0
	assert (await repo.get_reputation("user-b")).count == 0

	after_second = await lifecycle.submit_rating(session.id, "user-b", 5)
	assert after_second.both_rated

	rep_a = await repo.get_reputation("user-a")
	rep_b = await repo.get_reputation("user-b")
	assert (rep_a.score, rep_a.count) == (5, 1)
	assert (rep_b.score, rep_b.count) == (4, 1)


@pytest.mark.asyncio
async def test_rating_is_write_once():
	repo = SnackRepository()
	lifecycle = SessionLifecycle(repo)
	session = await _session(repo, lifecycle)
	await lifecycle.submit_rating(session.id, "user-a", 3)

	with pytest.raises(AlreadyRated):
		await lifecycle.submit_rating(session.id, "user-a", 5)
	assert (await repo.get_session(session.id)).user1_rating == 3


@pytest.mark.asyncio
async def test_rating_guards():
	repo = SnackRepository()
	lifecycle = SessionLifecycle(repo)
	session = await _session(repo, lifecycle)

	with pytest.raises(NotParticipant):
		await lifecycle.submit_rating(session.id, "user-z", 4)
	with pytest.raises(SessionNotFound):
		await lifecycle.submit_rating("missing", "user-a", 4)
	for rating in (0, 6):
		with pytest.raises(SnackValidationError):
			await lifecycle.submit_rating(session.id, "user-a", rating)


@pytest.mark.asyncio
async def test_expire_due_ends_only_overdue_sessions():
	repo = SnackRepository()
	lifecycle = SessionLifecycle(repo)
	overdue = await _session(repo, lifecycle, started=models.now_utc() - timedelta(minutes=16))
	first = await repo.create_request(_request("user-c"))
	second = await repo.create_request(_request("user-d"))
	fresh = await lifecycle.create(first, second)

	ended = await lifecycle.expire_due()

	assert [session.id for session in ended] == [overdue.id]
	assert ended[0].end_reason == "expired"
	assert (await repo.get_session(fresh.id)).status == "active"
	assert await lifecycle.expire_due() == []
