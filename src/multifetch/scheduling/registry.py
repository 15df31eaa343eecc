# src/multifetch/scheduling/registry.py
"""Registry of descriptors currently admitted to the transport.

The multiplexer only reports tickets when transfers finish. The registry
maps each ticket back to its descriptor so the caller's user_data can be
attached to the result.
"""

from __future__ import annotations

from typing import Any

from multifetch.contracts.errors import InvariantViolationError
from multifetch.contracts.requests import RequestDescriptor


class InFlightRegistry:
    """Ticket-keyed table of in-flight descriptors.

    Invariants:
        - Each ticket appears at most once
        - Size is bounded by the scheduler's concurrency limit (enforced by
          the scheduler, checked via len())
    """

    def __init__(self) -> None:
        self._entries: dict[int, RequestDescriptor] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, ticket: object) -> bool:
        return ticket in self._entries

    def admit(self, descriptor: RequestDescriptor) -> None:
        """Register a descriptor as in flight.

        Raises:
            InvariantViolationError: If the ticket is already registered
        """
        if descriptor.ticket in self._entries:
            raise InvariantViolationError(descriptor.ticket, f"Ticket {descriptor.ticket} is already in flight")
        self._entries[descriptor.ticket] = descriptor

    def handle_of(self, ticket: int) -> Any:
        """Return the handle registered under a ticket without removing it.

        Raises:
            InvariantViolationError: If no descriptor is registered under ticket
        """
        return self._lookup(ticket).handle

    def resolve(self, ticket: int) -> Any:
        """Remove a finished ticket and return its user_data.

        Raises:
            InvariantViolationError: If no descriptor is registered under ticket
        """
        descriptor = self._lookup(ticket)
        del self._entries[ticket]
        return descriptor.user_data

    def drain(self) -> list[RequestDescriptor]:
        """Remove and return every in-flight descriptor in admission order."""
        drained = list(self._entries.values())
        self._entries.clear()
        return drained

    def _lookup(self, ticket: int) -> RequestDescriptor:
        try:
            return self._entries[ticket]
        except KeyError:
            raise InvariantViolationError(ticket, f"Finished ticket {ticket} has no in-flight descriptor") from None
