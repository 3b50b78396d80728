"""Snack repository against a real Postgres.

Set ``SNACK_TEST_POSTGRES_URL`` to run against an existing server (each test
works in a throwaway schema), or install testcontainers to start one in Docker.
Without either the module is skipped.
"""

from __future__ import annotations

import asyncio
import os
from datetime import timedelta
from pathlib import Path
from typing import AsyncIterator, Iterator
from uuid import uuid4

import asyncpg
import pytest
import pytest_asyncio

from snackmatch.domain.snack import models
from snackmatch.domain.snack.exceptions import (
	ActiveSessionExists,
	AlreadyRated,
	AlreadyWaiting,
	MatchConflict,
	SnackValidationError,
	UserNotFound,
)
from snackmatch.domain.snack.lifecycle import SessionLifecycle
from snackmatch.domain.snack.repository import SnackRepository, new_id
from snackmatch.infra import postgres

pytestmark = pytest.mark.asyncio

REPO_ROOT = Path(__file__).resolve().parents[3]
MIGRATIONS_DIR = REPO_ROOT / "infra" / "migrations"
POSTGRES_URL_ENV = "SNACK_TEST_POSTGRES_URL"


@pytest.fixture(scope="module")
def postgres_dsn() -> Iterator[str]:
	url = os.environ.get(POSTGRES_URL_ENV)
	if url:
		yield url
		return
	testcontainers = pytest.importorskip(
		"testcontainers.postgres",
		reason=f"set {POSTGRES_URL_ENV} or install testcontainers for Postgres integration tests",
	)
	container = testcontainers.PostgresContainer("postgres:16-alpine")
	try:
		container.start()
	except Exception as exc:  # pragma: no cover - environment without docker
		pytest.skip(f"unable to start postgres container: {exc}")
	try:
		yield container.get_connection_url().replace("postgresql+psycopg2", "postgresql")
	finally:
		container.stop()


@pytest_asyncio.fixture
async def snack_pool(postgres_dsn) -> AsyncIterator[asyncpg.Pool]:
	schema = f"snack_test_{uuid4().hex[:12]}"
	admin = await asyncpg.connect(postgres_dsn)
	await admin.execute(f"CREATE SCHEMA {schema}")
	pool = await asyncpg.create_pool(
		dsn=postgres_dsn,
		min_size=1,
		max_size=4,
		server_settings={"search_path": schema},
	)
	try:
		async with pool.acquire() as conn:
			for path in sorted(MIGRATIONS_DIR.glob("*.sql")):
				await conn.execute(path.read_text(encoding="utf-8"))
		postgres.set_pool(pool)
		yield pool
	finally:
		postgres.set_pool(None)
		await pool.close()
		await admin.execute(f"DROP SCHEMA IF EXISTS {schema} CASCADE")
		await admin.close()


async def _user(pool: asyncpg.Pool) -> str:
	user_id = str(uuid4())
	async with pool.acquire() as conn:
		await conn.execute("INSERT INTO users (id, handle) VALUES ($1, $2)", user_id, f"snack-{user_id[:8]}")
	return user_id


def _request(user_id: str, **overrides) -> models.SnackRequest:
	fields = dict(
		id=new_id(),
		user_id=user_id,
		campus_id="campus-1",
		activity_type="study",
		duration=15,
		status="waiting",
		created_at=models.now_utc(),
		tags=["algebra"],
	)
	fields.update(overrides)
	return models.SnackRequest(**fields)


async def _status(pool: asyncpg.Pool, request_id: str) -> str:
	async with pool.acquire() as conn:
		return await conn.fetchval("SELECT status FROM snack_requests WHERE id = $1", request_id)


async def _session_count(pool: asyncpg.Pool) -> int:
	async with pool.acquire() as conn:
		return await conn.fetchval("SELECT count(*) FROM snack_sessions")


@pytest.mark.integration
async def test_one_waiting_request_per_user(snack_pool):
	repo = SnackRepository()
	alice = await _user(snack_pool)
	await repo.create_request(_request(alice))

	with pytest.raises(AlreadyWaiting):
		await repo.create_request(_request(alice, activity_type="chill"))


@pytest.mark.integration
async def test_candidates_are_newest_first_and_respect_exclusions(snack_pool):
	repo = SnackRepository()
	alice, bob, carol, dave = [await _user(snack_pool) for _ in range(4)]
	start = models.now_utc() - timedelta(minutes=5)
	await repo.create_request(_request(bob, created_at=start))
	await repo.create_request(_request(carol, created_at=start + timedelta(minutes=1)))
	await repo.create_request(_request(dave, activity_type="chill"))
	mine = await repo.create_request(_request(alice))

	candidates = await repo.list_candidates(mine, excluded=set())
	assert [c.user_id for c in candidates] == [carol, bob]

	candidates = await repo.list_candidates(mine, excluded={carol})
	assert [c.user_id for c in candidates] == [bob]


@pytest.mark.integration
async def test_losing_claim_rolls_back_and_keeps_other_request_waiting(snack_pool):
	repo = SnackRepository()
	lifecycle = SessionLifecycle(repo)
	alice, bob, carol = [await _user(snack_pool) for _ in range(3)]
	bob_req = await repo.create_request(_request(bob))
	carol_req = await repo.create_request(_request(carol))
	alice_req = await repo.create_request(_request(alice))

	session = await lifecycle.create(alice_req, bob_req)
	assert session.participants() == (alice, bob)

	with pytest.raises(MatchConflict) as excinfo:
		await lifecycle.create(carol_req, bob_req)
	assert excinfo.value.request_ids == (bob_req.id,)

	assert await _status(snack_pool, carol_req.id) == "waiting"
	assert await _status(snack_pool, bob_req.id) == "matched"
	assert await _session_count(snack_pool) == 1


@pytest.mark.integration
async def test_claim_against_cancelled_request_leaves_both_sides_untouched(snack_pool):
	repo = SnackRepository()
	lifecycle = SessionLifecycle(repo)
	alice, bob = await _user(snack_pool), await _user(snack_pool)
	alice_req = await repo.create_request(_request(alice))
	bob_req = await repo.create_request(_request(bob))
	await repo.cancel_request(bob_req.id, bob)

	with pytest.raises(MatchConflict):
		await lifecycle.create(alice_req, bob_req)

	assert await _status(snack_pool, alice_req.id) == "waiting"
	assert await _status(snack_pool, bob_req.id) == "cancelled"
	assert await _session_count(snack_pool) == 0


@pytest.mark.integration
async def test_both_ratings_fold_into_reputation_once(snack_pool):
	repo = SnackRepository()
	lifecycle = SessionLifecycle(repo)
	alice, bob = await _user(snack_pool), await _user(snack_pool)
	bob_req = await repo.create_request(_request(bob))
	alice_req = await repo.create_request(_request(alice))
	session = await lifecycle.create(alice_req, bob_req)

	await lifecycle.submit_rating(session.id, alice, 4)
	assert (await repo.get_reputation(bob)).count == 0

	rated = await lifecycle.submit_rating(session.id, bob, 5)
	assert (rated.user1_rating, rated.user2_rating) == (4, 5)

	alice_rep = await repo.get_reputation(alice)
	bob_rep = await repo.get_reputation(bob)
	assert (alice_rep.score, alice_rep.count) == (5, 1)
	assert (bob_rep.score, bob_rep.count) == (4, 1)

	with pytest.raises(AlreadyRated):
		await lifecycle.submit_rating(session.id, bob, 1)
	assert (await repo.get_reputation(alice)).count == 1


@pytest.mark.integration
async def test_request_refused_while_session_is_live(snack_pool):
	repo = SnackRepository()
	lifecycle = SessionLifecycle(repo)
	alice, bob = await _user(snack_pool), await _user(snack_pool)
	bob_req = await repo.create_request(_request(bob))
	alice_req = await repo.create_request(_request(alice))
	await lifecycle.create(alice_req, bob_req)

	with pytest.raises(ActiveSessionExists):
		await repo.create_request(_request(alice, activity_type="chill"))
	assert await repo.get_waiting_request(alice) is None


@pytest.mark.integration
async def test_request_waits_for_in_flight_pairing_of_same_user(snack_pool):
	repo = SnackRepository()
	alice, bob = await _user(snack_pool), await _user(snack_pool)
	bob_req = await repo.create_request(_request(bob))
	alice_req = await repo.create_request(_request(alice))
	started = models.now_utc()

	async with snack_pool.acquire() as conn:
		tx = conn.transaction()
		await tx.start()
		# Pairing in progress: user rows locked, Alice's first request flipped, session not yet committed.
		await conn.execute(
			"SELECT id FROM users WHERE id = ANY($1::uuid[]) ORDER BY id FOR UPDATE",
			[alice, bob],
		)
		await conn.execute(
			"UPDATE snack_requests SET status = 'matched', matched_at = $2 WHERE id = ANY($1::text[])",
			[alice_req.id, bob_req.id],
			started,
		)
		await conn.execute(
			"""
			INSERT INTO snack_sessions
				(id, user1_id, user2_id, request1_id, request2_id, activity_type, duration, started_at, expires_at)
			VALUES ($1, $2, $3, $4, $5, 'study', 15, $6, $7)
			""",
			new_id(),
			alice,
			bob,
			alice_req.id,
			bob_req.id,
			started,
			started + timedelta(minutes=15),
		)

		second = asyncio.create_task(repo.create_request(_request(alice, activity_type="chill")))
		await asyncio.sleep(0.2)
		assert not second.done()

		await tx.commit()

	with pytest.raises(ActiveSessionExists):
		await second
	assert await repo.get_waiting_request(alice) is None


@pytest.mark.integration
async def test_safety_writes_reject_unknown_or_malformed_users(snack_pool):
	repo = SnackRepository()
	alice = await _user(snack_pool)

	with pytest.raises(UserNotFound):
		await repo.add_block(models.Block(blocker_id=alice, blocked_id=str(uuid4()), created_at=models.now_utc()))

	with pytest.raises(SnackValidationError):
		await repo.add_block(models.Block(blocker_id=alice, blocked_id="user-b", created_at=models.now_utc()))

	with pytest.raises(UserNotFound):
		await repo.add_report(
			models.Report(
				id=new_id(),
				reporter_id=alice,
				reported_id=str(uuid4()),
				reason="spam",
				created_at=models.now_utc(),
			)
		)
