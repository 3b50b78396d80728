import pytest

from snackmatch.domain.snack.exceptions import SelfBlockError, SelfReportError
from snackmatch.domain.snack.repository import SnackRepository, list_memory_reports
from snackmatch.domain.snack.safety import SafetyRegistry


@pytest.mark.asyncio
async def test_block_is_idempotent_and_excludes_both_ways():
	registry = SafetyRegistry(SnackRepository())

	assert await registry.block("user-a", "user-b") is True
	assert await registry.block("user-a", "user-b") is False

	assert "user-b" in await registry.exclusion_set("user-a")
	assert "user-a" in await registry.exclusion_set("user-b")


@pytest.mark.asyncio
async def test_reports_accumulate_and_exclude_for_reporter_only():
	registry = SafetyRegistry(SnackRepository())

	await registry.report("user-a", "user-b", reason="spam")
	await registry.report("user-a", "user-b", reason="harassment", description="again", session_id="s-1")

	reports = await list_memory_reports("user-a")
	assert [report.reason for report in reports] == ["spam", "harassment"]
	assert reports[1].session_id == "s-1"
	assert "user-b" in await registry.exclusion_set("user-a")
	assert "user-a" not in await registry.exclusion_set("user-b")


@pytest.mark.asyncio
async def test_exclusion_set_contains_self():
	registry = SafetyRegistry(SnackRepository())
	assert await registry.exclusion_set("user-a") == frozenset({"user-a"})


@pytest.mark.asyncio
async def test_self_block_and_self_report_are_rejected():
	registry = SafetyRegistry(SnackRepository())

	with pytest.raises(SelfBlockError) as blocked:
		await registry.block("user-a", "user-a")
	with pytest.raises(SelfReportError) as reported:
		await registry.report("user-a", "user-a", reason="spam")

	assert blocked.value.reason == "self_block"
	assert reported.value.status_code == 400
