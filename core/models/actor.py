"""Actor (authenticated principal) models."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Roles a user may declare on the marketplace."""

    CLIENT = "client"
    PROVIDER = "provider"
    ADMIN = "admin"
    SYSTEM = "system"


SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000000")


class Actor(BaseModel):
    """An already-authenticated principal and the roles it declared."""

    id: UUID
    roles: frozenset[Role] = Field(default_factory=frozenset)

    model_config = {"frozen": True}

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    @property
    def is_system(self) -> bool:
        """Whether this is the scheduler acting on nobody's behalf."""
        return Role.SYSTEM in self.roles

    @classmethod
    def system(cls) -> "Actor":
        return cls(id=SYSTEM_ACTOR_ID, roles=frozenset({Role.SYSTEM}))


class RoleFlags(BaseModel):
    """An actor's relationship to one specific booking."""

    is_client: bool = False
    is_provider: bool = False
    is_admin: bool = False

    model_config = {"frozen": True}

    @property
    def has_any(self) -> bool:
        return self.is_client or self.is_provider or self.is_admin
