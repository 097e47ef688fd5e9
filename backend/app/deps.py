"""Request dependencies: app-scoped collaborators and the calling identity."""
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.services import store
from app.services.push_bus import PushBus
from app.session import Identity, TokenSessionOracle

bearer = HTTPBearer(auto_error=False)


def get_push_bus(request: Request) -> PushBus:
    return request.app.state.push_bus


def get_session_oracle(request: Request) -> TokenSessionOracle:
    return request.app.state.session_oracle


def request_token(request: Request, creds: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """Bearer header first, then the session cookie."""
    if creds is not None:
        return creds.credentials
    return request.cookies.get(settings.SESSION_COOKIE)


def current_identity(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    oracle: TokenSessionOracle = Depends(get_session_oracle),
    db: Session = Depends(get_db),
) -> Identity:
    """The authenticated caller; its profile row is created on first sight."""
    identity = oracle.resolve(request_token(request, creds))
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    store.upsert_profile(db, identity)
    return identity


def verified_identity(identity: Identity = Depends(current_identity)) -> Identity:
    """Chat operations additionally require a verified email."""
    if not identity.email_verified:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Email not verified")
    return identity
