"""
Booking repository.

Flattens the client/provider/service joins into a BookingView so the state
machine never deals with the user tables. Every status write is a
compare-and-swap on the status it was validated against; a None return means
another request got there first.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.models import (
    BookingCreate, BookingStatus, BookingView, Party,
    Dispute, DisputeCreate, Review, ReviewCreate,
    Transaction, TransactionType,
)
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {
    "status", "notes", "cancellation_reason", "cancelled_by", "cancelled_at",
    "completed_at", "client_confirm_deadline", "client_confirmed_at",
}

_VIEW_QUERY = """
    SELECT b.*,
           c.name AS client_name, c.email AS client_email, c.phone AS client_phone,
           p.name AS provider_name, p.email AS provider_email, p.phone AS provider_phone,
           s.title AS service_title
    FROM bookings b
    JOIN users c ON c.id = b.client_id
    JOIN users p ON p.id = b.provider_id
    LEFT JOIN services s ON s.id = b.service_id
    WHERE b.id = %s
"""


def _to_view(row: dict[str, Any]) -> BookingView:
    """Fold the joined contact columns into Party objects."""
    row = dict(row)
    client = Party(
        id=row["client_id"],
        name=row.pop("client_name") or "Client",
        email=row.pop("client_email"),
        phone=row.pop("client_phone"),
    )
    provider = Party(
        id=row["provider_id"],
        name=row.pop("provider_name") or "Provider",
        email=row.pop("provider_email"),
        phone=row.pop("provider_phone"),
    )
    return BookingView(**row, client=client, provider=provider)


class BookingRepository:
    """Postgres-backed persistence for bookings."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def create(self, client_id: UUID, data: BookingCreate) -> BookingView:
        """
        Insert a new booking request in PENDING status.

        Args:
            client_id: User id of the requesting client
            data: Booking request

        Returns:
            Created booking view
        """
        booking_id = uuid4()
        now = now_utc()

        with self.postgres.transaction() as cur:
            cur.execute(
                """
                INSERT INTO bookings (
                    id, client_id, provider_id, service_id,
                    title, description, location,
                    scheduled_date, scheduled_time, duration_minutes,
                    total_amount_cents, currency, payment_method, is_paid, escrow_released,
                    status, notes, created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s,
                    %s, %s, %s,
                    %s, %s, %s,
                    %s, %s, %s, %s, %s,
                    %s, %s, %s, %s
                )
                """,
                (
                    booking_id, client_id, data.provider_id, data.service_id,
                    data.title, data.description, data.location,
                    data.scheduled_date, data.scheduled_time, data.duration_minutes,
                    data.total_amount_cents, data.currency, data.payment_method, False, False,
                    BookingStatus.PENDING.value, data.notes, now, now,
                )
            )
            cur.execute(_VIEW_QUERY, (booking_id,))
            row = cur.fetchone()

        return _to_view(row)

    def get_by_id(self, booking_id: UUID) -> BookingView | None:
        """
        Get booking with client, provider and service resolved.

        Returns:
            BookingView if found, None otherwise.
        """
        row = self.postgres.execute_single(_VIEW_QUERY, (booking_id,))

        if row is None:
            return None

        return _to_view(row)

    def update(
        self,
        booking_id: UUID,
        expected_status: BookingStatus,
        patch: dict[str, Any],
        review: ReviewCreate | None = None,
        dispute: DisputeCreate | None = None,
    ) -> tuple[BookingView, Review | Dispute | None] | None:
        """
        Apply a patch if the booking is still in expected_status.

        The status check, the patch, and any review or dispute row commit in
        one transaction; a reader sees all of it or none of it.
        Moving a booking out of DISPUTED also marks its open disputes resolved.

        Args:
            booking_id: Booking UUID
            expected_status: Status the caller validated against
            patch: Column -> value; unknown columns are rejected
            review: Review to insert alongside the write
            dispute: Dispute to insert alongside the write

        Returns:
            (updated view, created review/dispute or None), or None if the
            booking's status no longer matches (lost race).

        Raises:
            ValueError: If the patch names a column that is not updatable
        """
        unknown = set(patch) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update booking columns: {', '.join(sorted(unknown))}")

        set_parts = []
        params: list[Any] = []
        for column, value in patch.items():
            set_parts.append(f"{column} = %s")
            params.append(value.value if hasattr(value, "value") else value)

        now = now_utc()
        set_parts.append("updated_at = %s")
        params.append(now)
        params.extend([booking_id, expected_status.value])

        with self.postgres.transaction() as cur:
            cur.execute(
                f"""
                UPDATE bookings
                SET {', '.join(set_parts)}
                WHERE id = %s AND status = %s
                RETURNING id, client_id, provider_id
                """,
                tuple(params)
            )
            updated = cur.fetchone()
            if updated is None:
                return None

            if expected_status == BookingStatus.DISPUTED:
                # Leaving DISPUTED is the admin's resolution
                cur.execute(
                    "UPDATE disputes SET resolved_at = %s WHERE booking_id = %s AND resolved_at IS NULL",
                    (now, booking_id)
                )

            created = None
            if review is not None:
                created = self._insert_review(cur, booking_id, updated, review, now)
            elif dispute is not None:
                created = self._insert_dispute(cur, booking_id, dispute, now)

            cur.execute(_VIEW_QUERY, (booking_id,))
            row = cur.fetchone()

        return _to_view(row), created

    def _insert_review(self, cur, booking_id: UUID, booking_row: dict, review: ReviewCreate,
                       now: datetime) -> Review:
        cur.execute(
            """
            INSERT INTO reviews (id, booking_id, client_id, provider_id, overall_rating, comment, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                uuid4(), booking_id, booking_row["client_id"], booking_row["provider_id"],
                review.rating, review.comment, now,
            )
        )
        return Review.model_validate(cur.fetchone())

    def _insert_dispute(self, cur, booking_id: UUID, dispute: DisputeCreate, now: datetime) -> Dispute:
        cur.execute(
            """
            INSERT INTO disputes (id, booking_id, raised_by, type, subject, description, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                uuid4(), booking_id, dispute.raised_by, dispute.type.value,
                dispute.subject, dispute.description, now,
            )
        )
        return Dispute.model_validate(cur.fetchone())

    def mark_paid(
        self,
        booking_id: UUID,
        payment_method: str | None,
        reference: str,
    ) -> tuple[BookingView, Transaction] | None:
        """
        Record a captured payment on a CONFIRMED, unpaid booking.

        Returns:
            (updated view, BOOKING_PAYMENT transaction), or None if the booking
            is no longer CONFIRMED and unpaid.
        """
        now = now_utc()

        with self.postgres.transaction() as cur:
            cur.execute(
                """
                UPDATE bookings
                SET is_paid = TRUE,
                    payment_method = COALESCE(%s, payment_method),
                    updated_at = %s
                WHERE id = %s AND status = %s AND is_paid = FALSE
                RETURNING client_id, total_amount_cents, currency
                """,
                (payment_method, now, booking_id, BookingStatus.CONFIRMED.value)
            )
            paid = cur.fetchone()
            if paid is None:
                return None

            transaction = self._insert_transaction(
                cur, booking_id, paid["client_id"], TransactionType.BOOKING_PAYMENT,
                paid["total_amount_cents"], paid["currency"], reference,
                "Booking payment", None, now,
            )

            cur.execute(_VIEW_QUERY, (booking_id,))
            row = cur.fetchone()

        return _to_view(row), transaction

    def release_escrow(
        self,
        booking_id: UUID,
        amount_cents: int,
        metadata: dict[str, Any],
    ) -> Transaction | None:
        """
        Release held funds to the provider of a COMPLETED, paid booking.

        Flips escrow_released, records the ESCROW_RELEASE transaction and
        credits the provider wallet together.

        Returns:
            The transaction, or None if already released or not eligible.
        """
        now = now_utc()

        with self.postgres.transaction() as cur:
            cur.execute(
                """
                UPDATE bookings
                SET escrow_released = TRUE, updated_at = %s
                WHERE id = %s AND status = %s AND is_paid = TRUE AND escrow_released = FALSE
                RETURNING provider_id, currency, title
                """,
                (now, booking_id, BookingStatus.COMPLETED.value)
            )
            released = cur.fetchone()
            if released is None:
                return None

            transaction = self._insert_transaction(
                cur, booking_id, released["provider_id"], TransactionType.ESCROW_RELEASE,
                amount_cents, released["currency"], None,
                f"Escrow release for \"{released['title']}\"", metadata, now,
            )

            cur.execute(
                """
                INSERT INTO provider_wallets (provider_id, balance_cents, currency, updated_at)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (provider_id) DO UPDATE
                SET balance_cents = provider_wallets.balance_cents + EXCLUDED.balance_cents,
                    updated_at = EXCLUDED.updated_at
                """,
                (released["provider_id"], amount_cents, released["currency"], now)
            )

        return transaction

    def add_transaction(
        self,
        booking_id: UUID,
        user_id: UUID,
        transaction_type: TransactionType,
        amount_cents: int,
        currency: str,
        reference: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Transaction:
        """Record a money movement against a booking."""
        with self.postgres.transaction() as cur:
            return self._insert_transaction(
                cur, booking_id, user_id, transaction_type, amount_cents, currency,
                reference, description, metadata, now_utc(),
            )

    def _insert_transaction(self, cur, booking_id, user_id, transaction_type, amount_cents,
                            currency, reference, description, metadata, now) -> Transaction:
        cur.execute(
            """
            INSERT INTO transactions (
                id, booking_id, user_id, type, amount_cents, currency,
                reference, description, metadata, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                uuid4(), booking_id, user_id, transaction_type.value, amount_cents, currency,
                reference, description, Json(metadata) if metadata is not None else None, now,
            )
        )
        return Transaction.model_validate(cur.fetchone())

    def total_for(self, booking_id: UUID, transaction_type: TransactionType) -> int:
        """Sum of all transactions of one type on a booking, in cents."""
        total = self.postgres.execute_scalar(
            """
            SELECT COALESCE(SUM(amount_cents), 0)
            FROM transactions
            WHERE booking_id = %s AND type = %s
            """,
            (booking_id, transaction_type.value)
        )
        return int(total or 0)

    def refresh_provider_rating(self, provider_id: UUID) -> None:
        """Recompute a provider's average rating and review count."""
        self.postgres.execute(
            """
            UPDATE provider_profiles
            SET rating = sub.avg_rating, total_reviews = sub.review_count, updated_at = %s
            FROM (
                SELECT ROUND(AVG(overall_rating)::numeric, 1) AS avg_rating,
                       COUNT(*) AS review_count
                FROM reviews
                WHERE provider_id = %s AND overall_rating > 0
            ) sub
            WHERE provider_profiles.user_id = %s AND sub.review_count > 0
            """,
            (now_utc(), provider_id, provider_id)
        )

    def list_overdue_confirmations(self, now: datetime, limit: int = 100) -> list[UUID]:
        """
        Bookings whose client confirmation window has closed.

        Excludes bookings with an unresolved dispute.

        Returns:
            Booking ids, oldest deadline first
        """
        rows = self.postgres.execute(
            """
            SELECT b.id FROM bookings b
            WHERE b.status = %s
              AND b.client_confirm_deadline <= %s
              AND NOT EXISTS (
                  SELECT 1 FROM disputes d
                  WHERE d.booking_id = b.id AND d.resolved_at IS NULL
              )
            ORDER BY b.client_confirm_deadline ASC
            LIMIT %s
            """,
            (BookingStatus.AWAITING_CLIENT_CONFIRMATION.value, now, limit)
        )

        return [row["id"] if isinstance(row["id"], UUID) else UUID(str(row["id"])) for row in rows]
