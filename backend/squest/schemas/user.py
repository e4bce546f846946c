"""User-related Pydantic schemas."""

import uuid

from pydantic import BaseModel, Field, field_validator


class UserSummary(BaseModel):
    id: uuid.UUID
    username: str
    displayed_name: str = ""
    avatar_url: str | None = None
    level: int = 1

    model_config = {"from_attributes": True}


class UserProfile(UserSummary):
    xp: int = 0
    gold: int = 0
    current_quest: str | None = None


class ProfileUpdate(BaseModel):
    displayed_name: str | None = Field(default=None, max_length=200)
    avatar_url: str | None = Field(default=None, max_length=500)

    @field_validator("displayed_name")
    @classmethod
    def _check_displayed_name(cls, value: str | None) -> str | None:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("Display name cannot be empty")
        if len(value) > 50:
            raise ValueError("Display name must be 50 characters or less")
        return value
