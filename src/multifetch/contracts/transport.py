# src/multifetch/contracts/transport.py
"""Protocol for the transport multiplexer the scheduler drives.

The multiplexer owns the actual network I/O. The scheduler only admits
transfers, drives them, waits for progress and harvests finished ones.
All transfers are addressed by the integer ticket the scheduler assigned,
so implementations never need handle identity for bookkeeping.

Lifecycle of a transfer inside a multiplexer:

    admit(ticket, handle)   # attached but dormant
    perform()               # starts dormant transfers, reports progress
    select()                # blocks until some transfer can progress
    info_read() -> ticket   # one finished transfer per call
    raw_output(ticket)      # metrics + raw content
    error_of(ticket)        # transport error, if any
    release(ticket)         # detach
    close_handle(handle)    # optional, when the scheduler owns handles
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class DriveStatus:
    """Outcome of a single perform() call.

    Attributes:
        running: Number of admitted transfers that have not finished
        call_again: True if perform() can make more progress immediately
            without blocking and should be called again
    """

    running: int
    call_again: bool = False


@dataclass(frozen=True)
class RawTransfer:
    """Raw output of a finished transfer.

    Attributes:
        info: Flat mapping of transfer metrics. Keys the response parser
            relies on: header_size (bytes of header data at the start of
            content) and download_content_length (-1 when unknown).
        content: Header block (if any) followed by the body, framed the way
            HTTP/1.x puts them on the wire ("\\r\\n\\r\\n" between them)
    """

    info: dict[str, Any] = field(default_factory=dict)
    content: bytes = b""


@runtime_checkable
class Multiplexer(Protocol):
    """Transport that runs many transfers concurrently."""

    def admit(self, ticket: int, handle: Any) -> None:
        """Attach a transfer. Raises HandleRejectedError for unusable handles."""
        ...

    def perform(self) -> DriveStatus:
        """Advance all attached transfers without blocking."""
        ...

    def select(self, timeout: float | None = None) -> int:
        """Block until at least one transfer can progress; return how many can."""
        ...

    def info_read(self) -> int | None:
        """Return the ticket of the next finished transfer, or None."""
        ...

    def release(self, ticket: int) -> None:
        """Detach a finished transfer."""
        ...

    def raw_output(self, ticket: int) -> RawTransfer:
        """Return metrics and raw content of a finished transfer."""
        ...

    def error_of(self, ticket: int) -> tuple[int, str]:
        """Return (code, message) for a finished transfer.

        Codes are normally TransferErrorCode members; any other int is
        passed through to the result unchanged.
        """
        ...

    def close_handle(self, handle: Any) -> None:
        """Release resources held by a caller handle."""
        ...

    def close(self) -> None:
        """Shut down the multiplexer and release everything it holds."""
        ...
