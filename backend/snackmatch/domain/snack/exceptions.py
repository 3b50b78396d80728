"""Domain-level exceptions for Snack matchmaking."""

from __future__ import annotations


class SnackError(Exception):
	"""Base class for Snack errors; ``reason`` is the wire-level code."""

	reason: str = "snack_error"
	status_code: int = 400

	def __init__(self, reason: str | None = None, *, status_code: int | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason
		if status_code is not None:
			self.status_code = status_code


class SnackValidationError(SnackError):
	reason = "invalid_input"
	status_code = 400


class SelfBlockError(SnackValidationError):
	reason = "self_block"


class SelfReportError(SnackValidationError):
	reason = "self_report"


class SnackConflict(SnackError):
	reason = "conflict"
	status_code = 409


class AlreadyWaiting(SnackConflict):
	reason = "already_waiting"
	status_code = 400


class ActiveSessionExists(SnackConflict):
	reason = "active_session"
	status_code = 400


class RequestNotWaiting(SnackConflict):
	reason = "not_waiting"


class SessionEnded(SnackConflict):
	reason = "session_ended"


class AlreadyRated(SnackConflict):
	reason = "already_rated"


class SnackNotFound(SnackError):
	reason = "not_found"
	status_code = 404


class RequestNotFound(SnackNotFound):
	reason = "request_not_found"


class SessionNotFound(SnackNotFound):
	reason = "session_not_found"


class UserNotFound(SnackNotFound):
	reason = "user_not_found"


class NotParticipant(SnackError):
	reason = "not_participant"
	status_code = 403


class SnackRateLimited(SnackError):
	status_code = 429

	def __init__(self, kind: str, *, retry_after: int | None = None) -> None:
		super().__init__(f"rate_limited:{kind}")
		self.kind = kind
		self.retry_after = retry_after


class MatchConflict(Exception):
	"""Raised by the repository when a pairing lost a race for one of its requests."""

	def __init__(self, request_ids: tuple[str, ...]) -> None:
		super().__init__("match_conflict")
		self.request_ids = request_ids
