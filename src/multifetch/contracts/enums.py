# src/multifetch/contracts/enums.py
"""Status enums used across the scheduler boundary."""

from enum import StrEnum


class SchedulerState(StrEnum):
    """Observable state of a FetchScheduler.

    IDLE is both the initial and the terminal state: nothing pending,
    nothing in flight, no queued results.
    """

    IDLE = "idle"
    DRAINING = "draining"  # Results queued, next pull returns immediately
    ADMITTING = "admitting"  # Pending work and free concurrency slots
    WAITING = "waiting"  # Transfers in flight, next pull blocks on the transport
    CLOSED = "closed"
