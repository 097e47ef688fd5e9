"""Profile ORM model — the stored projection of an authenticated identity."""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String

from app.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Profile(Base):
    __tablename__ = "profiles"

    # Same id the session oracle reports as the identity's subject.
    id = Column(String(36), primary_key=True)
    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(150), nullable=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
