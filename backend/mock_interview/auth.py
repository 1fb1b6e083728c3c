from __future__ import annotations

import logging
import time
from typing import Optional

import jwt

from mock_interview.errors import AuthError

LOG = logging.getLogger("interview.auth")


class IdentityVerifier:
    """Verifies bearer tokens issued for the signed-in user and resolves the user id."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self.secret = secret
        self.algorithm = algorithm

    def verify(self, token: Optional[str]) -> str:
        if not token or not isinstance(token, str):
            raise AuthError("Missing token")
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise AuthError("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            LOG.info("Rejected token: %s", exc)
            raise AuthError("Invalid token") from exc
        user_id = payload.get("uid") or payload.get("sub")
        if not user_id:
            raise AuthError("Invalid token")
        return str(user_id)

    def verify_optional(self, token: Optional[str]) -> Optional[str]:
        """Same as verify, but a missing or bad token means 'anonymous'."""
        if not token:
            return None
        try:
            return self.verify(token)
        except AuthError:
            return None

    def issue(self, user_id: str, ttl_seconds: int = 3600) -> str:
        now = int(time.time())
        return jwt.encode(
            {"sub": user_id, "uid": user_id, "iat": now, "exp": now + ttl_seconds},
            self.secret,
            algorithm=self.algorithm,
        )
