"""Pydantic models for auth domain."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from core.models import Actor, Role


class Session(BaseModel):
    """An active user session and the roles it was issued with."""

    token: str = Field(..., description="Session token (opaque string)")
    user_id: UUID
    roles: frozenset[Role] = Field(default_factory=frozenset)
    created_at: datetime
    expires_at: datetime
    last_activity_at: datetime

    @property
    def actor(self) -> Actor:
        return Actor(id=self.user_id, roles=self.roles)
