"""Redirect gates for the chat and login surfaces."""
from typing import Optional

from app.session import Identity

CHAT_PREFIX = "/dashboard"
LOGIN_PATH = "/login"
SIGNUP_PATH = "/signup"
VERIFY_EMAIL_PATH = "/verify-email"


def redirect_for(path: str, identity: Optional[Identity]) -> Optional[str]:
    """Return where ``path`` must be redirected for this identity, or None to let it through."""
    if path == CHAT_PREFIX or path.startswith(CHAT_PREFIX + "/"):
        if identity is None:
            return LOGIN_PATH
        if not identity.email_verified:
            return VERIFY_EMAIL_PATH
        return None
    if identity is not None and path in (LOGIN_PATH, SIGNUP_PATH):
        return CHAT_PREFIX
    return None
