"""Message API routes."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.deps import get_push_bus, verified_identity
from app.services import message_service
from app.services.push_bus import PushBus
from app.session import Identity

router = APIRouter()


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_message(
    message_id: str,
    identity: Identity = Depends(verified_identity),
    db: Session = Depends(get_db),
    bus: PushBus = Depends(get_push_bus),
):
    """Delete a message (author or room admin)."""
    message_service.delete_message(db, bus, message_id, identity)
