"""Authentication helpers for FastAPI endpoints and realtime handshakes.

- Bearer JWTs (HS256, settings.secret_key) are the only accepted credential outside dev.
- Dev headers (X-User-Id / X-Campus-Id) are honoured only in development.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWTError

from snackmatch.infra import jwt as jwt_helper
from snackmatch.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	campus_id: str
	handle: Optional[str] = None
	display_name: Optional[str] = None

	@property
	def username(self) -> str:
		return self.handle or self.display_name or self.id


_bearer_scheme = HTTPBearer(auto_error=False)


class InvalidToken(Exception):
	"""Raised when an access token cannot be verified."""


def decode_user_token(token: str) -> AuthenticatedUser:
	"""Decode an access JWT into an AuthenticatedUser or raise InvalidToken."""
	try:
		payload = jwt_helper.decode_access(token)
	except PyJWTError as exc:
		raise InvalidToken(str(exc) or "invalid_token") from exc
	handle = payload.get("handle")
	display_name = payload.get("name") or payload.get("display_name")
	return AuthenticatedUser(
		id=str(payload["sub"]).strip(),
		campus_id=str(payload["campus_id"]).strip(),
		handle=str(handle) if handle is not None else None,
		display_name=str(display_name) if display_name is not None else None,
	)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	try:
		return decode_user_token(token)
	except InvalidToken:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token") from None


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_campus_id: Optional[str] = Header(default=None, alias="X-Campus-Id"),
	x_user_handle: Optional[str] = Header(default=None, alias="X-User-Handle"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development we allow simple headers. In all other environments, headers are
	ignored and a valid Bearer JWT is required.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)

	if settings.is_dev() and x_user_id and x_campus_id:
		return AuthenticatedUser(id=x_user_id, campus_id=x_campus_id, handle=x_user_handle)

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
