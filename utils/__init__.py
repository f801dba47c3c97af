"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_utc, to_local, combine_local, parse_iso
from utils.actor_context import (
    get_current_actor,
    set_current_actor,
    clear_current_actor,
    actor_context,
)
