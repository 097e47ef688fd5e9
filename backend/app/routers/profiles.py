"""Profile API routes for the calling identity."""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.deps import current_identity
from app.errors import NotFound
from app.schemas.profile import ProfileOut, ProfileUpdate
from app.services import store
from app.session import Identity

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/me", response_model=ProfileOut)
def get_my_profile(identity: Identity = Depends(current_identity), db: Session = Depends(get_db)):
    """Fetch the caller's profile (created on first authenticated request)."""
    profile = store.get_profile(db, identity.user_id)
    if profile is None:
        raise NotFound("Profile not found")
    return profile


@router.patch("/me", response_model=ProfileOut)
def update_my_profile(
    payload: ProfileUpdate,
    identity: Identity = Depends(current_identity),
    db: Session = Depends(get_db),
):
    """Update the caller's display name."""
    profile = store.get_profile(db, identity.user_id)
    if profile is None:
        raise NotFound("Profile not found")
    full_name = payload.full_name.strip() if payload.full_name else None
    profile = store.update_profile(db, profile, full_name or None)
    logger.info("Updated profile %s", identity.user_id)
    return profile
