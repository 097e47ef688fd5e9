"""Pydantic schemas for Profiles and message authors."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class AuthorOut(BaseModel):
    email: str
    full_name: Optional[str] = None

    model_config = {"from_attributes": True}


class ProfileOut(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    email_verified: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
