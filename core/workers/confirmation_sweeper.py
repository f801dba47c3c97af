"""
Auto-confirm sweep for overdue completion reports.

Bookings left in AWAITING_CLIENT_CONFIRMATION past their deadline, with no
open dispute, are completed on the client's behalf by the system actor.
Run standalone with:

    python -m core.workers.confirmation_sweeper [--once]
"""

import argparse
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from core.exceptions import BookingError
from core.models import Actor
from core.repositories import BookingRepository
from core.services.confirmation_service import ConfirmationService
from utils.actor_context import actor_context
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Outcome of one sweep."""

    checked: int = 0
    confirmed: int = 0
    failed: int = 0


class ConfirmationSweeper:
    """Periodically auto-confirms bookings whose confirmation window closed."""

    def __init__(
        self,
        repository: BookingRepository,
        confirmation: ConfirmationService,
        interval_seconds: float = 300,
        batch_size: int = 100,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.repository = repository
        self.confirmation = confirmation
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self.clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> SweepResult:
        """
        Confirm one batch of overdue bookings.

        A booking that fails (including one the client answered mid-sweep)
        is logged and skipped; the rest of the batch still runs.
        """
        now = self.clock()
        result = SweepResult()

        with actor_context(Actor.system()):
            for booking_id in self.repository.list_overdue_confirmations(now, self.batch_size):
                result.checked += 1
                try:
                    self.confirmation.auto_confirm(booking_id, now)
                    result.confirmed += 1
                except BookingError as e:
                    result.failed += 1
                    logger.warning("Skipped auto-confirm of booking %s: %s", booking_id, e)
                except Exception:
                    result.failed += 1
                    logger.exception("Auto-confirm of booking %s failed", booking_id)

        if result.checked:
            logger.info(
                "Auto-confirm sweep: %d checked, %d confirmed, %d failed",
                result.checked, result.confirmed, result.failed,
            )
        return result

    def run_forever(self) -> None:
        """Sweep until stop() is called."""
        logger.info("Confirmation sweeper started (every %ss)", self.interval_seconds)
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Auto-confirm sweep failed")
            self._stop.wait(self.interval_seconds)
        logger.info("Confirmation sweeper stopped")

    def start(self) -> threading.Thread:
        """Run the sweeper in a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run_forever, name="confirmation-sweeper", daemon=True
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None


def main(argv: list[str] | None = None) -> int:
    from core.bootstrap import configure_logging, connect, load_environment

    parser = argparse.ArgumentParser(description="Auto-confirm overdue booking completions")
    parser.add_argument("--once", action="store_true", help="run a single sweep and exit")
    args = parser.parse_args(argv)

    load_environment()
    configure_logging()
    services = connect()

    sweeper = ConfirmationSweeper(
        services.repository,
        services.confirmation,
        interval_seconds=services.config.sweep_interval_seconds,
        batch_size=services.config.sweep_batch_size,
    )
    try:
        if args.once:
            result = sweeper.run_once()
            return 1 if result.failed else 0
        sweeper.run_forever()
    except KeyboardInterrupt:
        sweeper.stop()
    finally:
        services.shutdown()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
