"""Session oracle adapter and per-client session state.

Identities are issued by an external auth provider as HS256 JWTs signed with a
shared secret. This module only verifies them; ``issue_token`` exists for local
development and tests.
"""
import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt
from pydantic import BaseModel

from app.config import settings

logger = logging.getLogger(__name__)


class Identity(BaseModel):
    user_id: str
    email: str
    email_verified: bool = False
    full_name: Optional[str] = None


class SessionEvent(str, enum.Enum):
    signed_in = "SIGNED_IN"
    signed_out = "SIGNED_OUT"
    token_refreshed = "TOKEN_REFRESHED"


class TokenSessionOracle:
    """Resolves bearer tokens to identities."""

    def __init__(self, secret: Optional[str] = None, algorithm: Optional[str] = None):
        self.secret = secret or settings.JWT_SECRET
        self.algorithm = algorithm or settings.JWT_ALGORITHM

    def resolve(self, token: Optional[str]) -> Optional[Identity]:
        """Return the identity carried by ``token`` or None if absent/invalid/expired."""
        if not token:
            return None
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.InvalidTokenError as exc:
            logger.info("Rejected session token: %s", exc)
            return None
        if not claims.get("sub") or not claims.get("email"):
            logger.info("Rejected session token without sub/email claims")
            return None
        return Identity(
            user_id=str(claims["sub"]),
            email=claims["email"],
            email_verified=bool(claims.get("email_verified", False)),
            full_name=claims.get("full_name"),
        )

    def issue_token(
        self,
        user_id: str,
        email: str,
        email_verified: bool = False,
        full_name: Optional[str] = None,
        ttl_minutes: Optional[int] = None,
    ) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "email": email,
            "email_verified": email_verified,
            "iat": now,
            "exp": now + timedelta(minutes=ttl_minutes or settings.TOKEN_TTL_MINUTES),
        }
        if full_name:
            payload["full_name"] = full_name
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)


SessionListener = Callable[[SessionEvent, Optional[Identity]], None]


class SessionState:
    """Identity, loading flag and last error for one client.

    ``init`` resolves the initial token, ``apply`` feeds session changes
    (sign-in, sign-out, token refresh) and notifies listeners, ``teardown``
    drops listeners and the identity.
    """

    def __init__(self, oracle: TokenSessionOracle):
        self.oracle = oracle
        self.identity: Optional[Identity] = None
        self.loading = True
        self.error: Optional[str] = None
        self._listeners: list[SessionListener] = []

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    @property
    def is_verified(self) -> bool:
        return self.identity is not None and self.identity.email_verified

    def init(self, token: Optional[str]) -> Optional[Identity]:
        self.identity = self.oracle.resolve(token)
        self.error = "Invalid or expired session" if token and self.identity is None else None
        self.loading = False
        return self.identity

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def apply(self, event: SessionEvent, token: Optional[str] = None) -> Optional[Identity]:
        if event == SessionEvent.signed_out:
            self.identity = None
            self.error = None
        else:
            self.identity = self.oracle.resolve(token)
            self.error = None if self.identity else "Invalid or expired session"
        self.loading = False
        logger.info("Session %s (user=%s)", event.value, self.identity.user_id if self.identity else None)
        for listener in list(self._listeners):
            listener(event, self.identity)
        return self.identity

    def teardown(self) -> None:
        self._listeners.clear()
        self.identity = None
        self.loading = True
