"""Pydantic schemas for Messages."""
from __future__ import annotations
from datetime import datetime
from pydantic import BaseModel

from app.schemas.profile import AuthorOut


class MessageCreate(BaseModel):
    content: str


class MessageOut(BaseModel):
    id: str
    room_id: str
    user_id: str
    content: str
    created_at: datetime
    author: AuthorOut

    model_config = {"from_attributes": True}
