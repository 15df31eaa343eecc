# src/multifetch/scheduling/scheduler.py
"""Bounded-concurrency fetch scheduler with a pull-based result protocol.

Callers submit any number of request handles; the scheduler admits at most
max_concurrent of them to the transport multiplexer and hands back finished
results one at a time, in the order the transport completes them.

Each pull() either:
- returns a queued result immediately, or
- admits pending work, drives the transport, blocks until at least one
  transfer finishes (not at all if the drive already finished one), drains
  every finished transfer into the completion queue, refills free slots
  from the pending queue, and returns the head of the completion queue.

When nothing is pending, in flight, or queued, pull() returns EXHAUSTED.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator
from types import TracebackType
from typing import Any

import structlog

from multifetch.contracts.enums import SchedulerState
from multifetch.contracts.errors import (
    HandleRejectedError,
    InvariantViolationError,
    SchedulerClosedError,
    TransferErrorCode,
    describe_error,
    error_code_name,
)
from multifetch.contracts.requests import RequestDescriptor
from multifetch.contracts.results import EXHAUSTED, Exhausted, FetchResult
from multifetch.contracts.transport import Multiplexer
from multifetch.core.config import SchedulerConfig
from multifetch.scheduling.parser import parse_response
from multifetch.scheduling.pending import PendingQueue
from multifetch.scheduling.registry import InFlightRegistry

logger = structlog.get_logger(__name__)


class FetchScheduler:
    """Admission-controlled scheduler over a transport multiplexer.

    Single-threaded from the caller's perspective: pull() is not re-entrant
    and must not be called concurrently. Concurrency comes from the
    multiplexer running transfers on its own I/O workers.

    Invariants:
        - in_flight_count <= max_concurrent at all times
        - every submitted request yields exactly one FetchResult
        - once pull() returns EXHAUSTED, it keeps returning EXHAUSTED until
          something new is submitted; results are never re-yielded

    Usage:
        with FetchScheduler(SchedulerConfig(max_concurrent=4)) as scheduler:
            for i, url in enumerate(urls):
                scheduler.submit(client.build_request("GET", url), user_data=i)

            for result in scheduler.drain():
                print(result.user_data, result.transport_info["http_code"])
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        multiplexer: Multiplexer | None = None,
    ) -> None:
        """Initialize scheduler.

        Args:
            config: Scheduler configuration (defaults if None)
            multiplexer: Transport to drive. If None, an httpx-backed
                multiplexer sized to max_concurrent is created.
        """
        self._config = config or SchedulerConfig()
        if multiplexer is None:
            from multifetch.transport.httpx_multiplexer import HttpxMultiplexer

            multiplexer = HttpxMultiplexer(
                max_workers=self._config.max_concurrent,
                timeout=self._config.timeout_seconds,
                follow_redirects=self._config.follow_redirects,
            )
        self._multiplexer = multiplexer

        self._pending = PendingQueue()
        self._registry = InFlightRegistry()
        self._completed: deque[FetchResult] = deque()

        self._next_ticket = 0
        self._closed = False

        # Statistics
        self._submitted = 0
        self._admitted = 0
        self._finished = 0
        self._failed = 0
        self._rejected = 0
        self._invariant_violations = 0
        self._peak_in_flight = 0

    # --- Introspection ---

    @property
    def config(self) -> SchedulerConfig:
        """Scheduler configuration."""
        return self._config

    @property
    def max_concurrent(self) -> int:
        """Maximum transfers admitted at once."""
        return self._config.max_concurrent

    @property
    def pending_count(self) -> int:
        """Number of submitted requests that have not started executing."""
        return len(self._pending)

    @property
    def in_flight_count(self) -> int:
        """Number of requests currently admitted to the transport."""
        return len(self._registry)

    @property
    def completed_count(self) -> int:
        """Number of finished results waiting to be pulled."""
        return len(self._completed)

    @property
    def has_pending(self) -> bool:
        return len(self._pending) > 0

    @property
    def has_in_flight(self) -> bool:
        return len(self._registry) > 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> SchedulerState:
        """Current scheduler state, derived from the queues."""
        if self._closed:
            return SchedulerState.CLOSED
        if self._completed:
            return SchedulerState.DRAINING
        if self._pending and len(self._registry) < self._config.max_concurrent:
            return SchedulerState.ADMITTING
        if self._registry:
            return SchedulerState.WAITING
        return SchedulerState.IDLE

    def get_stats(self) -> dict[str, Any]:
        """Get scheduler statistics.

        Returns:
            Dict with scheduler_config and scheduler_stats including:
            - scheduler_config: max_concurrent, parse_headers, auto_close_handles
            - scheduler_stats: submitted, admitted, completed, failed, rejected,
              invariant_violations, peak_in_flight, pending, in_flight, queued
        """
        return {
            "scheduler_config": {
                "max_concurrent": self._config.max_concurrent,
                "parse_headers": self._config.parse_headers,
                "auto_close_handles": self._config.auto_close_handles,
            },
            "scheduler_stats": {
                "submitted": self._submitted,
                "admitted": self._admitted,
                "completed": self._finished,
                "failed": self._failed,
                "rejected": self._rejected,
                "invariant_violations": self._invariant_violations,
                "peak_in_flight": self._peak_in_flight,
                "pending": len(self._pending),
                "in_flight": len(self._registry),
                "queued": len(self._completed),
            },
        }

    # --- Submission ---

    def submit(self, handle: Any, user_data: Any = None) -> None:
        """Queue a request for execution. Never blocks.

        Args:
            handle: Transport handle (an httpx.Request for the default transport)
            user_data: Optional payload returned with the result, useful to
                identify which request a result belongs to

        Raises:
            SchedulerClosedError: If the scheduler has been closed
        """
        self._ensure_open()
        descriptor = RequestDescriptor(ticket=self._next_ticket, handle=handle, user_data=user_data)
        self._next_ticket += 1
        self._pending.submit(descriptor)
        self._submitted += 1

    def submit_many(self, handles: Iterable[Any], user_data: Iterable[Any] | None = None) -> None:
        """Queue several requests.

        Every item of handles is submitted as a handle, tuples included.
        To attach payloads, pass user_data with one entry per handle.

        Raises:
            ValueError: If user_data and handles differ in length (nothing is queued)
        """
        if user_data is None:
            for handle in handles:
                self.submit(handle)
            return
        handles, user_data = list(handles), list(user_data)
        if len(handles) != len(user_data):
            raise ValueError(f"Got {len(handles)} handles but {len(user_data)} user_data entries")
        for handle, data in zip(handles, user_data, strict=True):
            self.submit(handle, data)

    # --- Pull protocol ---

    def pull(self) -> FetchResult | Exhausted:
        """Return the next finished result, or EXHAUSTED.

        Blocks only when no result is queued and transfers are in flight,
        and only until at least one of them finishes.

        Raises:
            SchedulerClosedError: If the scheduler has been closed
        """
        self._ensure_open()
        while not self._completed and (self._pending or self._registry):
            self._advance()

        if self._completed:
            return self._completed.popleft()
        return EXHAUSTED

    def drain(self) -> Iterator[FetchResult]:
        """Yield results until the scheduler is exhausted.

        One-way: results already yielded are gone, so calling drain() again
        after exhaustion yields nothing (unless new work is submitted).
        """
        while True:
            result = self.pull()
            if isinstance(result, Exhausted):
                return
            yield result

    def _advance(self) -> None:
        """Run one admit/drive/wait/drain/refill cycle."""
        self._admit()
        if not self._registry:
            # Everything admitted this round was rejected by the transport;
            # the rejections are already queued as results.
            return

        running = self._drive()
        drained = self._harvest()
        if drained == 0 and running > 0:
            # Nothing finished during the drive; wait for the next completion
            was_running = running
            while running >= was_running:
                self._multiplexer.select(None)
                running = self._drive()
            drained = self._harvest()

        if drained == 0 and running == 0 and self._registry:
            self._fail_stranded()

        # At least one slot freed up, so start more work
        if self._admit():
            self._drive()

    def _admit(self) -> bool:
        """Move pending descriptors to the transport while slots are free.

        Returns:
            True if at least one transfer was admitted
        """
        admitted = False
        while len(self._registry) < self._config.max_concurrent and self._pending:
            descriptor = self._pending.dequeue_next()
            try:
                self._multiplexer.admit(descriptor.ticket, descriptor.handle)
            except HandleRejectedError as e:
                self._reject(descriptor, e)
                continue

            self._registry.admit(descriptor)
            admitted = True
            self._admitted += 1
            if len(self._registry) > self._peak_in_flight:
                self._peak_in_flight = len(self._registry)
            logger.debug("Admitted transfer", ticket=descriptor.ticket, in_flight=len(self._registry))
        return admitted

    def _drive(self) -> int:
        """Call perform() until the transport has no immediate work left.

        Returns:
            Number of transfers still running
        """
        while True:
            status = self._multiplexer.perform()
            if not status.call_again:
                break
        return status.running

    def _harvest(self) -> int:
        """Drain every finished transfer into the completion queue.

        Returns:
            Number of results queued
        """
        drained = 0
        while True:
            ticket = self._multiplexer.info_read()
            if ticket is None:
                break
            self._completed.append(self._finish(ticket))
            drained += 1
        return drained

    def _finish(self, ticket: int) -> FetchResult:
        """Build the result for a finished ticket and release its transfer."""
        registered = True
        try:
            handle = self._registry.handle_of(ticket)
            user_data = self._registry.resolve(ticket)
        except InvariantViolationError as e:
            # Bookkeeping bug upstream; report it but keep serving other transfers
            self._invariant_violations += 1
            logger.error("Finished transfer has no in-flight descriptor", ticket=ticket, error=str(e))
            registered = False
            handle = user_data = None

        try:
            result = parse_response(
                ticket=ticket,
                handle=handle,
                user_data=user_data,
                raw=self._multiplexer.raw_output(ticket),
                error=self._multiplexer.error_of(ticket),
                parse_headers=self._config.parse_headers,
            )
        finally:
            self._multiplexer.release(ticket)
            if self._config.auto_close_handles and registered:
                self._multiplexer.close_handle(handle)

        self._finished += 1
        if not result.ok:
            self._failed += 1
        logger.debug(
            "Transfer finished",
            ticket=ticket,
            error_code=error_code_name(result.error_code),
            http_code=result.transport_info.get("http_code"),
        )
        return result

    def _reject(self, descriptor: RequestDescriptor, error: HandleRejectedError) -> None:
        """Queue an INVALID_HANDLE result for a handle the transport refused."""
        self._rejected += 1
        self._finished += 1
        self._failed += 1
        logger.warning("Transport rejected handle", ticket=descriptor.ticket, error=str(error))
        self._completed.append(
            FetchResult(
                ticket=descriptor.ticket,
                handle=descriptor.handle,
                user_data=descriptor.user_data,
                error_code=TransferErrorCode.INVALID_HANDLE,
                error_message=str(error),
                error_description=describe_error(TransferErrorCode.INVALID_HANDLE),
            )
        )

    def _fail_stranded(self) -> None:
        """Fail transfers the transport reports neither running nor finished."""
        for descriptor in self._registry.drain():
            self._invariant_violations += 1
            self._finished += 1
            self._failed += 1
            logger.error("Transport lost in-flight transfer", ticket=descriptor.ticket)
            if self._config.auto_close_handles:
                self._multiplexer.close_handle(descriptor.handle)
            self._completed.append(
                FetchResult(
                    ticket=descriptor.ticket,
                    handle=descriptor.handle,
                    user_data=descriptor.user_data,
                    error_code=TransferErrorCode.TRANSFER_LOST,
                    error_message=f"Transfer {descriptor.ticket} was neither running nor finished",
                    error_description=describe_error(TransferErrorCode.TRANSFER_LOST),
                )
            )

    # --- Lifecycle ---

    def _ensure_open(self) -> None:
        if self._closed:
            raise SchedulerClosedError("Scheduler is closed")

    def close(self) -> None:
        """Shut down the transport and release every handle still owned.

        Safe to call more than once and mid-flight. Pending and in-flight
        requests are abandoned; when auto_close_handles is enabled their
        handles are closed after the transport has stopped using them.
        """
        if self._closed:
            return
        self._closed = True

        abandoned = [*self._registry.drain(), *self._pending.drain()]
        self._completed.clear()
        if abandoned:
            logger.info("Closing scheduler with unfinished requests", abandoned=len(abandoned))

        try:
            self._multiplexer.close()
        finally:
            if self._config.auto_close_handles:
                for descriptor in abandoned:
                    self._multiplexer.close_handle(descriptor.handle)

    def __enter__(self) -> FetchScheduler:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
