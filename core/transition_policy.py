"""
Who may move a booking from which status to which.

Providers drive the operational path (confirm, start, finish). Clients accept
or dispute outcomes and may cancel early. Admins own the recovery edges.
Pure lookup, no side effects.
"""

from core.models import BookingStatus, RoleFlags

S = BookingStatus

# Edges open to the booking's provider and to admins
_OPERATOR_EDGES: dict[BookingStatus, frozenset[BookingStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.IN_PROGRESS, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.COMPLETED, S.CANCELLED}),
}

# Edges open to the booking's client
_CLIENT_EDGES: dict[BookingStatus, frozenset[BookingStatus]] = {
    S.PENDING: frozenset({S.CANCELLED}),
    S.CONFIRMED: frozenset({S.CANCELLED}),
    S.AWAITING_CLIENT_CONFIRMATION: frozenset({S.COMPLETED, S.DISPUTED}),
}

# Edges only admins may take
_ADMIN_EDGES: dict[BookingStatus, frozenset[BookingStatus]] = {
    S.AWAITING_CLIENT_CONFIRMATION: frozenset({S.COMPLETED, S.DISPUTED}),
    S.COMPLETED: frozenset({S.DISPUTED}),
    S.CANCELLED: frozenset({S.PENDING, S.CONFIRMED, S.REFUNDED}),
    S.DISPUTED: frozenset({S.COMPLETED, S.CANCELLED, S.REFUNDED}),
    S.REFUNDED: frozenset({S.CANCELLED}),
}

INITIAL_STATUS = S.PENDING

# No outgoing edges for clients or providers
TERMINAL_STATUSES = frozenset({S.COMPLETED, S.REFUNDED})


def allowed_next_statuses(current: BookingStatus, flags: RoleFlags) -> frozenset[BookingStatus]:
    """
    Statuses the actor may request from the current one.

    Args:
        current: Booking's current status
        flags: Actor's relationship to the booking

    Returns:
        Union of every edge the actor's roles open up. Empty if none.
    """
    allowed: set[BookingStatus] = set()

    if flags.is_provider or flags.is_admin:
        allowed |= _OPERATOR_EDGES.get(current, frozenset())
    if flags.is_client:
        allowed |= _CLIENT_EDGES.get(current, frozenset())
    if flags.is_admin:
        allowed |= _ADMIN_EDGES.get(current, frozenset())

    return frozenset(allowed)


def can_transition(current: BookingStatus, requested: BookingStatus, flags: RoleFlags) -> bool:
    """Whether a single edge is open to the actor."""
    return requested in allowed_next_statuses(current, flags)
