"""HS256 access tokens shared by the HTTP API and the realtime handshake."""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import jwt
from jwt import InvalidTokenError

from snackmatch.settings import settings

ALGORITHM = "HS256"
REQUIRED_CLAIMS = ("sub", "campus_id")


def issue_access_token(
	user_id: str,
	campus_id: str,
	*,
	handle: Optional[str] = None,
	ttl_seconds: Optional[int] = None,
) -> str:
	"""Mint a token for ``user_id``; used by tooling and tests, the login service issues real ones."""
	now = int(time.time())
	claims: Dict[str, Any] = {
		"iss": settings.jwt_issuer,
		"aud": settings.jwt_audience,
		"iat": now,
		"exp": now + (ttl_seconds or settings.access_token_ttl_seconds),
		"sub": user_id,
		"campus_id": campus_id,
	}
	if handle:
		claims["handle"] = handle
	return jwt.encode(claims, settings.secret_key, algorithm=ALGORITHM)


def decode_access(token: str) -> Dict[str, Any]:
	"""Decode and validate an access token.

	Raises jwt.InvalidTokenError subclasses on failure.
	"""
	claims = jwt.decode(
		token,
		settings.secret_key,
		algorithms=[ALGORITHM],
		audience=settings.jwt_audience,
		issuer=settings.jwt_issuer,
		leeway=5,
		options={"require": ["exp", "iat", "iss", "aud"]},
	)
	missing = [name for name in REQUIRED_CLAIMS if not claims.get(name)]
	if missing:
		raise InvalidTokenError(f"missing_claim:{missing[0]}")
	return claims
