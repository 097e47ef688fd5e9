"""Pydantic schemas for Rooms and memberships."""
from __future__ import annotations
from datetime import datetime
from pydantic import BaseModel

from app.models.room import RoomRole


class RoomCreate(BaseModel):
    name: str


class RoomJoin(BaseModel):
    group_id: str


class RoomOut(BaseModel):
    id: str
    name: str
    group_id: str
    created_by: str
    created_at: datetime

    model_config = {"from_attributes": True}


class RoomListingOut(BaseModel):
    room: RoomOut
    role: RoomRole


class RoleOut(BaseModel):
    room_id: str
    role: RoomRole
