"""Credential verification for sockets and FastAPI endpoints.

Tokens are minted elsewhere; here we only verify the HS256 signature and
resolve the carried user id against the profile directory.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tribelife.domain.common.errors import AuthenticationError
from tribelife.domain.profiles import Profile, ProfileDirectory
from tribelife.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: int
	handle: Optional[str] = None
	locality: Optional[str] = None
	push_address: Optional[str] = None
	is_premium: bool = False

	@classmethod
	def from_profile(cls, profile: Profile) -> "AuthenticatedUser":
		return cls(
			id=profile.user_id,
			handle=profile.handle,
			locality=profile.locality,
			push_address=profile.push_address,
			is_premium=profile.is_premium,
		)

	def is_admin(self) -> bool:
		return self.id in settings.admin_user_ids


_bearer_scheme = HTTPBearer(auto_error=False)
_directory = ProfileDirectory()


def decode_user_id(token: Optional[str]) -> int:
	"""Return the user id carried by an access token.

	Raises AuthenticationError for missing, tampered or expired tokens.
	"""
	token = (token or "").strip()
	if not token:
		raise AuthenticationError("missing_token")
	try:
		payload = jwt.decode(token, settings.jwt_secret, algorithms=["HS256"], leeway=5)
	except jwt.ExpiredSignatureError:
		raise AuthenticationError("expired_token") from None
	except jwt.InvalidTokenError:
		raise AuthenticationError("invalid_token") from None
	raw = payload.get("userId", payload.get("sub"))
	try:
		return int(raw)
	except (TypeError, ValueError):
		raise AuthenticationError("missing_claims") from None


async def authenticate(token: Optional[str], directory: ProfileDirectory | None = None) -> AuthenticatedUser:
	user_id = decode_user_id(token)
	profile = await (directory or _directory).get_profile(user_id)
	if profile is None:
		raise AuthenticationError("unknown_user")
	return AuthenticatedUser.from_profile(profile)


async def get_current_user(
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	if not credentials or credentials.scheme.lower() != "bearer":
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_token")
	try:
		return await authenticate(credentials.credentials)
	except AuthenticationError as exc:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=exc.code) from None


async def get_admin_user(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
	if user.is_admin():
		return user
	raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_role")
