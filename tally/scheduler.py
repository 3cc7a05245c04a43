"""Debounced, periodic, and on-unload autosave triggering.

The scheduler is driven by an injectable monotonic clock and by explicit
``tick()`` calls from the host loop, so there are no background threads.
"""

from __future__ import annotations

import time
from typing import Callable

from tally.errors import StorageWriteError
from tally.runtime_logging import append_runtime_event


IDLE = "idle"
PENDING_WRITE = "pending_write"
WRITING = "writing"


class PersistenceScheduler:
    def __init__(
        self,
        writer: Callable[[], None],
        debounce_seconds: float = 1.0,
        interval_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.writer = writer
        self.debounce_seconds = float(debounce_seconds)
        self.interval_seconds = float(interval_seconds)
        self.clock = clock
        self.state = IDLE
        self.deadline: float | None = None
        self.next_periodic = clock() + self.interval_seconds
        self.write_count = 0
        self.failure_count = 0
        self.last_error: StorageWriteError | None = None

    def mark_dirty(self) -> None:
        """Record a mutation and (re)arm the debounce timer, cancelling any earlier one."""
        if self.state != WRITING:
            self.state = PENDING_WRITE
        self.deadline = self.clock() + self.debounce_seconds

    def restart_periodic(self) -> None:
        self.next_periodic = self.clock() + self.interval_seconds

    def seconds_until_due(self) -> float | None:
        if self.state != PENDING_WRITE or self.deadline is None:
            return None
        return max(0.0, self.deadline - self.clock())

    def tick(self) -> bool:
        """Fire whichever trigger is due. Returns True when a write succeeded."""
        now = self.clock()
        if now >= self.next_periodic:
            self.next_periodic = now + self.interval_seconds
            return self.flush("periodic")
        if self.state == PENDING_WRITE and self.deadline is not None and now >= self.deadline:
            return self.flush("debounce")
        return False

    def flush(self, reason: str = "manual") -> bool:
        if self.state == WRITING:
            return False
        self.state = WRITING
        self.deadline = None
        try:
            self.writer()
        except StorageWriteError as exc:
            self.failure_count += 1
            self.last_error = exc
            self.state = PENDING_WRITE
            self.deadline = self.clock() + self.debounce_seconds
            append_runtime_event(
                level="ERROR",
                event="autosave_write_failed",
                message="Autosave write failed; will retry on the next trigger.",
                context={"reason": reason, "failures": self.failure_count},
                exc=exc,
            )
            return False
        except Exception:
            self.state = PENDING_WRITE
            self.deadline = self.clock() + self.debounce_seconds
            raise
        if self.deadline is None:
            self.state = IDLE
        else:
            # A mutation arrived while writing; keep it pending.
            self.state = PENDING_WRITE
        self.last_error = None
        self.write_count += 1
        return True

    def on_unload(self) -> bool:
        """Best-effort immediate write for a termination signal."""
        return self.flush("unload")
