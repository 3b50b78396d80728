"""Domain models for Snack matchmaking."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


ActivityType = str
RequestStatus = str
SessionStatus = str
EndReason = str


ACTIVITY_TYPES: tuple[ActivityType, ...] = (
	"study",
	"chill",
	"debate",
	"game",
	"activity",
	"campus",
)

DURATIONS: tuple[int, ...] = (10, 15, 30)

REQUEST_STATUSES: tuple[RequestStatus, ...] = ("waiting", "matched", "cancelled")
SESSION_STATUSES: tuple[SessionStatus, ...] = ("active", "extended", "ended")
END_REASONS: tuple[EndReason, ...] = ("completed", "expired", "left")

MAX_TAGS = 5
MAX_MESSAGE_LENGTH = 500
MIN_RATING = 1
MAX_RATING = 5


def now_utc() -> datetime:
	return datetime.now(timezone.utc)


@dataclass(slots=True)
class SnackRequest:
	"""A user's pending wish to be paired."""

	id: str
	user_id: str
	campus_id: str
	activity_type: ActivityType
	duration: int
	status: RequestStatus
	created_at: datetime
	topic: Optional[str] = None
	tags: List[str] = field(default_factory=list)
	location: Optional[str] = None
	matched_at: Optional[datetime] = None

	@property
	def is_waiting(self) -> bool:
		return self.status == "waiting"

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"user_id": self.user_id,
			"campus_id": self.campus_id,
			"activity_type": self.activity_type,
			"topic": self.topic,
			"duration": self.duration,
			"tags": list(self.tags),
			"location": self.location,
			"status": self.status,
			"created_at": self.created_at,
			"matched_at": self.matched_at,
		}


@dataclass(slots=True)
class SnackSession:
	"""Time-boxed pairing of two users."""

	id: str
	user1_id: str
	user2_id: str
	request1_id: str
	request2_id: str
	activity_type: ActivityType
	duration: int
	started_at: datetime
	expires_at: datetime
	status: SessionStatus
	topic: Optional[str] = None
	user1_rating: Optional[int] = None
	user2_rating: Optional[int] = None
	ended_at: Optional[datetime] = None
	end_reason: Optional[EndReason] = None

	def participants(self) -> tuple[str, str]:
		return (self.user1_id, self.user2_id)

	def includes(self, user_id: str) -> bool:
		return user_id in self.participants()

	def other(self, user_id: str) -> str:
		if user_id == self.user1_id:
			return self.user2_id
		if user_id == self.user2_id:
			return self.user1_id
		raise ValueError(f"{user_id} is not a participant of session {self.id}")

	@property
	def is_ended(self) -> bool:
		return self.status == "ended"

	def is_expired(self, now: Optional[datetime] = None) -> bool:
		return not self.is_ended and self.expires_at <= (now or now_utc())

	def rating_of(self, user_id: str) -> Optional[int]:
		return self.user1_rating if user_id == self.user1_id else self.user2_rating

	@property
	def both_rated(self) -> bool:
		return self.user1_rating is not None and self.user2_rating is not None

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"user1_id": self.user1_id,
			"user2_id": self.user2_id,
			"request1_id": self.request1_id,
			"request2_id": self.request2_id,
			"activity_type": self.activity_type,
			"topic": self.topic,
			"duration": self.duration,
			"started_at": self.started_at,
			"expires_at": self.expires_at,
			"status": self.status,
			"user1_rating": self.user1_rating,
			"user2_rating": self.user2_rating,
			"ended_at": self.ended_at,
			"end_reason": self.end_reason,
		}


@dataclass(slots=True)
class SnackMessage:
	id: str
	session_id: str
	sender_id: str
	content: str
	created_at: datetime

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"session_id": self.session_id,
			"sender_id": self.sender_id,
			"content": self.content,
			"created_at": self.created_at,
		}


@dataclass(slots=True)
class Block:
	blocker_id: str
	blocked_id: str
	created_at: datetime


@dataclass(slots=True)
class Report:
	id: str
	reporter_id: str
	reported_id: str
	reason: str
	created_at: datetime
	session_id: Optional[str] = None
	description: Optional[str] = None


@dataclass(slots=True)
class Reputation:
	user_id: str
	score: int = 0
	count: int = 0


@dataclass(slots=True)
class ParticipantProfile:
	"""Read-side projection of a user shown next to sessions and messages."""

	id: str
	handle: Optional[str] = None
	display_name: Optional[str] = None
	avatar_url: Optional[str] = None

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"handle": self.handle,
			"display_name": self.display_name,
			"avatar_url": self.avatar_url,
		}


def next_reputation(score: int, count: int, rating: int) -> tuple[int, int]:
	"""Fold one more received rating into a rounded running mean.

	Rounds half up, so a mean of 4.5 becomes 5.
	"""
	numerator = score * count + rating
	denominator = count + 1
	return ((2 * numerator + denominator) // (2 * denominator), denominator)
