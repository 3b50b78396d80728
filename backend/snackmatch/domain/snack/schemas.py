"""Pydantic schemas for the Snack HTTP and realtime surfaces.

Wire payloads are camelCase; Python attribute names stay snake_case.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from snackmatch.domain.snack import models

ActivityType = Literal["study", "chill", "debate", "game", "activity", "campus"]
Duration = Literal[10, 15, 30]
RequestStatus = Literal["waiting", "matched", "cancelled"]
SessionStatus = Literal["active", "extended", "ended"]
EndReason = Literal["completed", "expired", "left"]


class _CamelModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateSnackRequest(_CamelModel):
	activity_type: ActivityType
	topic: Optional[str] = Field(default=None, max_length=200)
	duration: Duration
	tags: Optional[List[str]] = Field(default=None, max_length=models.MAX_TAGS)
	location: Optional[str] = Field(default=None, max_length=120)

	@field_validator("topic", "location")
	@classmethod
	def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
		if value is None:
			return None
		value = value.strip()
		return value or None

	@field_validator("tags")
	@classmethod
	def _clean_tags(cls, value: Optional[List[str]]) -> List[str]:
		if not value:
			return []
		cleaned: List[str] = []
		for tag in value:
			tag = tag.strip()
			if not tag:
				continue
			if len(tag) > 32:
				raise ValueError("tag too long")
			cleaned.append(tag)
		return cleaned


class RateSessionRequest(_CamelModel):
	session_id: str
	rating: int = Field(..., ge=models.MIN_RATING, le=models.MAX_RATING)


class ReportUserRequest(_CamelModel):
	reported_id: str = Field(..., min_length=1)
	session_id: Optional[str] = None
	reason: str = Field(..., min_length=1, max_length=64)
	description: Optional[str] = Field(default=None, max_length=1000)


class BlockUserRequest(_CamelModel):
	user_id: str = Field(..., min_length=1)


class SendMessageRequest(_CamelModel):
	content: str = Field(..., min_length=1, max_length=models.MAX_MESSAGE_LENGTH)


class ParticipantView(_CamelModel):
	id: str
	handle: Optional[str] = None
	display_name: Optional[str] = None
	avatar_url: Optional[str] = None


class SnackRequestView(_CamelModel):
	id: str
	user_id: str
	activity_type: ActivityType
	topic: Optional[str] = None
	duration: int
	tags: List[str] = Field(default_factory=list)
	location: Optional[str] = None
	status: RequestStatus
	created_at: datetime
	matched_at: Optional[datetime] = None


class SnackSessionView(_CamelModel):
	id: str
	user1_id: str
	user2_id: str
	request1_id: str
	request2_id: str
	activity_type: ActivityType
	topic: Optional[str] = None
	duration: int
	started_at: datetime
	expires_at: datetime
	status: SessionStatus
	user1_rating: Optional[int] = None
	user2_rating: Optional[int] = None
	ended_at: Optional[datetime] = None
	end_reason: Optional[EndReason] = None
	user1: Optional[ParticipantView] = None
	user2: Optional[ParticipantView] = None


class SnackMessageView(_CamelModel):
	id: str
	session_id: str
	sender_id: str
	content: str
	created_at: datetime
	sender: Optional[ParticipantView] = None


class CreateRequestResponse(_CamelModel):
	request: SnackRequestView
	matched: bool
	session: Optional[SnackSessionView] = None


class MatchStatusResponse(_CamelModel):
	has_active_request: bool
	request: Optional[SnackRequestView] = None
	has_active_session: bool
	session: Optional[SnackSessionView] = None


class SessionActionResponse(_CamelModel):
	success: bool = True
	session: SnackSessionView


class SuccessResponse(_CamelModel):
	success: bool = True


def wire(model: BaseModel) -> dict:
	"""Serialize a schema the way it travels over the socket."""
	return model.model_dump(by_alias=True, mode="json")
