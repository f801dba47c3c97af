"""
Append-only audit trail for bookings.

One row per mutation: who acted (a party, an admin, or the system sweep),
what changed as an old/new diff, and when. Rows are never updated or deleted,
so a booking's history can always be replayed from audit_log.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.timezone import now_utc

# Bumped on every write, so never interesting in a diff
_ALWAYS_CHANGES = frozenset({"updated_at"})


class AuditAction(Enum):
    """What happened to the audited record. Bookings are never deleted."""

    CREATE = "create"
    UPDATE = "update"


def compute_changes(
    before: dict[str, Any],
    after: dict[str, Any],
    exclude_fields: set[str] | frozenset[str] | None = None,
) -> dict[str, dict[str, Any]]:
    """
    Diff two JSON-ready snapshots of a record.

    A field present on only one side counts as changed from/to None.
    exclude_fields replaces the default exclusion ({"updated_at"}).

    Returns:
        {field: {"old": ..., "new": ...}} for every differing field
    """
    skip = _ALWAYS_CHANGES if exclude_fields is None else exclude_fields

    return {
        field: {"old": before.get(field), "new": after.get(field)}
        for field in before.keys() | after.keys()
        if field not in skip and before.get(field) != after.get(field)
    }


class AuditLogger:
    """
    Writes and reads audit_log rows.

    Pass snapshots through model_dump(mode="json") first so UUIDs, enums and
    datetimes land in the JSONB column as strings.
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def log_change(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
        user_id: UUID,
        at: datetime | None = None,
    ) -> None:
        """
        Append one audit row.

        changes is {"created": {...}} for CREATE and a compute_changes()
        diff for UPDATE. user_id is SYSTEM_ACTOR_ID for sweep-driven
        auto-confirmation. Database errors propagate to the caller.
        """
        self.postgres.execute(
            """
            INSERT INTO audit_log (id, user_id, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (uuid4(), user_id, entity_type, entity_id, action.value, Json(changes), at or now_utc()),
        )

    def get_entity_history(self, entity_type: str, entity_id: UUID) -> list[dict[str, Any]]:
        """All audit rows for one record, newest first."""
        return self.postgres.execute(
            """
            SELECT id, user_id, entity_type, entity_id, action, changes, created_at
            FROM audit_log
            WHERE entity_type = %s AND entity_id = %s
            ORDER BY created_at DESC
            """,
            (entity_type, entity_id),
        )
