"""Propagate the authenticated actor through the call stack using contextvars."""

from contextlib import contextmanager
from contextvars import ContextVar

from core.models import Actor

_current_actor: ContextVar[Actor | None] = ContextVar("current_actor", default=None)


def get_current_actor() -> Actor:
    """
    Get current actor from context.

    Raises RuntimeError if no actor is set.
    This is fail-fast behavior - if you're in a code path that
    requires an actor and it's not set, that's a bug.
    """
    actor = _current_actor.get()
    if actor is None:
        raise RuntimeError(
            "No actor set. This usually means you're calling "
            "actor-scoped code outside of an authenticated request."
        )
    return actor


def set_current_actor(actor: Actor) -> None:
    """Called by auth middleware after validating the session."""
    _current_actor.set(actor)


def clear_current_actor() -> None:
    """
    Clear actor context.

    Must be called in a finally block to prevent context leakage.
    """
    _current_actor.set(None)


@contextmanager
def actor_context(actor: Actor):
    """
    Temporarily act as someone.

    Useful for tests and for the confirmation sweeper, which runs as
    Actor.system().

    Example:
        with actor_context(Actor.system()):
            sweeper.run_once()
    """
    previous = _current_actor.get()
    set_current_actor(actor)
    try:
        yield
    finally:
        if previous is None:
            clear_current_actor()
        else:
            set_current_actor(previous)
