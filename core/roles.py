"""Resolve an actor's relationship to a booking."""

from uuid import UUID

from core.models import Booking, Role, RoleFlags


def resolve_role(booking: Booking, actor_id: UUID, declared_roles) -> RoleFlags:
    """
    Work out whether the actor is this booking's client, provider, or an admin.

    Ownership is checked against the booking's user ids; admins bypass it.
    Never raises: all flags False means the caller must deny access.

    Args:
        booking: Booking being acted on
        actor_id: Authenticated user id
        declared_roles: Roles the actor authenticated with

    Returns:
        RoleFlags for this actor on this booking
    """
    roles = set(declared_roles)

    return RoleFlags(
        is_client=Role.CLIENT in roles and actor_id == booking.client_id,
        is_provider=Role.PROVIDER in roles and actor_id == booking.provider_id,
        is_admin=Role.ADMIN in roles,
    )
