"""Pairwise compatibility scoring for waiting requests.

score(a, b) sums independent criteria:

- tag overlap (Jaccard over trimmed, case-folded tags) weighted 0.6
- equal duration adds 0.2
- equal location (case-insensitive) adds 0.2
- one topic containing the other adds a 0.1 bonus

The bonus is not capped, so the highest observable score is 1.1.
"""

from __future__ import annotations

from typing import Iterable, Optional

from snackmatch.domain.snack.models import SnackRequest

TAG_WEIGHT = 0.6
DURATION_WEIGHT = 0.2
LOCATION_WEIGHT = 0.2
TOPIC_BONUS = 0.1


def _normalize_tags(tags: Optional[Iterable[str]]) -> set[str]:
	if not tags:
		return set()
	return {tag.strip().lower() for tag in tags if tag and tag.strip()}


def _normalize_text(value: Optional[str]) -> str:
	return (value or "").strip().lower()


def tag_similarity(tags_a: Optional[Iterable[str]], tags_b: Optional[Iterable[str]]) -> float:
	"""Jaccard similarity of two tag lists; 0 when either side is empty."""
	left = _normalize_tags(tags_a)
	right = _normalize_tags(tags_b)
	if not left or not right:
		return 0.0
	return len(left & right) / len(left | right)


def topics_related(topic_a: Optional[str], topic_b: Optional[str]) -> bool:
	left = _normalize_text(topic_a)
	right = _normalize_text(topic_b)
	if not left or not right:
		return False
	return left in right or right in left


def score(a: SnackRequest, b: SnackRequest) -> float:
	total = tag_similarity(a.tags, b.tags) * TAG_WEIGHT
	if a.duration == b.duration:
		total += DURATION_WEIGHT
	location_a = _normalize_text(a.location)
	if location_a and location_a == _normalize_text(b.location):
		total += LOCATION_WEIGHT
	if topics_related(a.topic, b.topic):
		total += TOPIC_BONUS
	return total


__all__ = ["score", "tag_similarity", "topics_related"]
