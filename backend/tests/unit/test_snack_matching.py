import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from snackmatch.domain.snack import models
from snackmatch.domain.snack.lifecycle import SessionLifecycle
from snackmatch.domain.snack.matching import MatchFinder, select_candidate
from snackmatch.domain.snack.repository import SnackRepository, new_id
from snackmatch.domain.snack.safety import SafetyRegistry

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _build(user_id: str, *, minutes: int = 0, **overrides) -> models.SnackRequest:
	fields = {
		"id": new_id(),
		"user_id": user_id,
		"campus_id": "campus-1",
		"activity_type": "study",
		"duration": 15,
		"status": "waiting",
		"created_at": BASE_TIME + timedelta(minutes=minutes),
	}
	fields.update(overrides)
	return models.SnackRequest(**fields)


async def _submit(repo: SnackRepository, user_id: str, **kwargs) -> models.SnackRequest:
	return await repo.create_request(_build(user_id, **kwargs))


def test_select_candidate_prefers_highest_score():
	request = _build("me", tags=["algebra"], location="Library")
	strong = _build("a", minutes=1, tags=["algebra"], location="Library")
	weak = _build("b", minutes=2, tags=["poetry"])
	chosen, value = select_candidate(request, [weak, strong], threshold=0.3)
	assert chosen.id == strong.id
	assert value == pytest.approx(1.0)


def test_select_candidate_ties_go_to_newest():
	request = _build("me", tags=["algebra"])
	older = _build("a", minutes=1, tags=["algebra"])
	newer = _build("b", minutes=5, tags=["algebra"])
	chosen, _ = select_candidate(request, [older, newer], threshold=0.3)
	assert chosen.id == newer.id


def test_select_candidate_falls_back_to_newest_below_threshold():
	request = _build("me", duration=10)
	older = _build("a", minutes=1, duration=30, tags=["x"])
	newer = _build("b", minutes=3, duration=30)
	chosen, value = select_candidate(request, [older, newer], threshold=0.3)
	assert chosen.id == newer.id
	assert value == 0.0


def test_select_candidate_empty_pool():
	assert select_candidate(_build("me"), [], threshold=0.3) is None


@pytest.mark.asyncio
async def test_two_compatible_requests_make_one_session():
	repo = SnackRepository()
	finder = MatchFinder(repo)
	first = await _submit(repo, "user-a", tags=["algebra", "study"], location="Library")
	second = await _submit(repo, "user-b", minutes=1, tags=["algebra", "study"], location="Library")

	result = await finder.find_match(second)

	assert result is not None
	assert result.score == pytest.approx(1.0)
	session = result.session
	assert session.user1_id == "user-b"
	assert session.user2_id == "user-a"
	assert {session.request1_id, session.request2_id} == {first.id, second.id}
	assert (await repo.get_request(first.id)).status == "matched"
	assert (await repo.get_request(second.id)).status == "matched"
	assert (await repo.get_request(first.id)).matched_at is not None
	assert session.expires_at - session.started_at == timedelta(minutes=15)


@pytest.mark.asyncio
async def test_no_candidates_leaves_request_waiting():
	repo = SnackRepository()
	finder = MatchFinder(repo)
	lonely = await _submit(repo, "user-a")

	assert await finder.find_match(lonely) is None
	assert (await repo.get_request(lonely.id)).status == "waiting"


@pytest.mark.asyncio
async def test_candidates_limited_to_same_campus_and_activity():
	repo = SnackRepository()
	finder = MatchFinder(repo)
	await _submit(repo, "user-a", campus_id="campus-2")
	await _submit(repo, "user-b", activity_type="game")
	mine = await _submit(repo, "user-c", minutes=1)

	assert await finder.find_match(mine) is None


@pytest.mark.asyncio
async def test_reported_user_is_never_candidate_even_when_alone():
	repo = SnackRepository()
	safety = SafetyRegistry(repo)
	finder = MatchFinder(repo, safety=safety)
	await safety.report("user-a", "user-b", reason="inappropriate_behavior")
	await _submit(repo, "user-b")
	mine = await _submit(repo, "user-a", minutes=1)

	assert await finder.find_match(mine) is None
	assert (await repo.get_request(mine.id)).status == "waiting"


@pytest.mark.asyncio
async def test_report_only_excludes_for_the_reporter():
	repo = SnackRepository()
	safety = SafetyRegistry(repo)
	finder = MatchFinder(repo, safety=safety)
	await safety.report("user-a", "user-b", reason="spam")
	await _submit(repo, "user-a")
	reported = await _submit(repo, "user-b", minutes=1)

	result = await finder.find_match(reported)
	assert result is not None
	assert result.session.participants() == ("user-b", "user-a")


@pytest.mark.asyncio
@pytest.mark.parametrize(("blocker", "blocked"), [("user-a", "user-b"), ("user-b", "user-a")])
async def test_blocks_exclude_in_both_directions(blocker, blocked):
	repo = SnackRepository()
	safety = SafetyRegistry(repo)
	finder = MatchFinder(repo, safety=safety)
	await safety.block(blocker, blocked)
	await _submit(repo, "user-b")
	mine = await _submit(repo, "user-a", minutes=1)

	assert await finder.find_match(mine) is None


@pytest.mark.asyncio
async def test_low_scores_fall_back_to_newest_candidate():
	repo = SnackRepository()
	finder = MatchFinder(repo)
	await _submit(repo, "user-a", duration=30, tags=["poetry"])
	newest = await _submit(repo, "user-b", minutes=2, duration=30, tags=["chess"])
	mine = await _submit(repo, "user-c", minutes=3, duration=10, tags=["algebra"])

	result = await finder.find_match(mine)
	assert result is not None
	assert result.candidate.id == newest.id


@pytest.mark.asyncio
async def test_cancelled_request_is_not_matched():
	repo = SnackRepository()
	finder = MatchFinder(repo)
	cancelled = await _submit(repo, "user-a")
	assert await repo.cancel_request(cancelled.id, "user-a") is not None
	mine = await _submit(repo, "user-b", minutes=1)

	assert await finder.find_match(mine) is None
	assert (await repo.get_request(cancelled.id)).status == "cancelled"


class _RacingLifecycle(SessionLifecycle):
	"""Lets another actor claim ``stolen_id`` right before the first pairing attempt."""

	def __init__(self, repo: SnackRepository, stolen: models.SnackRequest) -> None:
		super().__init__(repo)
		self._repo_ref = repo
		self._stolen = stolen
		self.attempts: list[str] = []

	async def create(self, request, candidate, *, now=None):
		self.attempts.append(candidate.id)
		if candidate.id == self._stolen.id and len(self.attempts) == 1:
			await self._repo_ref.cancel_request(self._stolen.id, self._stolen.user_id)
		return await super().create(request, candidate, now=now)


@pytest.mark.asyncio
async def test_lost_race_retries_with_next_candidate():
	repo = SnackRepository()
	backup = await _submit(repo, "user-a", tags=["poetry"])
	favourite = await _submit(repo, "user-b", minutes=1, tags=["algebra"], location="Library")
	lifecycle = _RacingLifecycle(repo, favourite)
	finder = MatchFinder(repo, lifecycle=lifecycle)
	mine = await _submit(repo, "user-c", minutes=2, tags=["algebra"], location="Library")

	result = await finder.find_match(mine)

	assert lifecycle.attempts == [favourite.id, backup.id]
	assert result is not None
	assert result.candidate.id == backup.id
	assert (await repo.get_request(favourite.id)).status == "cancelled"


@pytest.mark.asyncio
async def test_retry_budget_is_bounded():
	repo = SnackRepository()
	first = await _submit(repo, "user-a")
	second = await _submit(repo, "user-b", minutes=1)

	class _AlwaysStolen(SessionLifecycle):
		async def create(self, request, candidate, *, now=None):
			await repo.cancel_request(candidate.id, candidate.user_id)
			return await super().create(request, candidate, now=now)

	finder = MatchFinder(repo, lifecycle=_AlwaysStolen(repo), max_attempts=1)
	mine = await _submit(repo, "user-c", minutes=2)

	assert await finder.find_match(mine) is None
	statuses = {(await repo.get_request(r.id)).status for r in (first, second)}
	assert "matched" not in statuses
	assert (await repo.get_request(mine.id)).status == "waiting"


@pytest.mark.asyncio
async def test_concurrent_submissions_never_share_requests():
	repo = SnackRepository()
	finder = MatchFinder(repo)

	async def submit(index: int):
		request = await _submit(repo, f"user-{index}", tags=["algebra"])
		await asyncio.sleep(0)
		return await finder.find_match(request)

	results = await asyncio.gather(*(submit(i) for i in range(10)))
	sessions = [result.session for result in results if result is not None]

	assert sessions
	request_ids = [rid for session in sessions for rid in (session.request1_id, session.request2_id)]
	user_ids = [uid for session in sessions for uid in session.participants()]
	assert len(request_ids) == len(set(request_ids))
	assert len(user_ids) == len(set(user_ids))
	for rid in request_ids:
		assert (await repo.get_request(rid)).status == "matched"
