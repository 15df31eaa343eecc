# src/multifetch/contracts/results.py
"""Result types produced by the scheduler's pull protocol."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Final

from multifetch.contracts.errors import TransferErrorCode


@dataclass(frozen=True)
class FetchResult:
    """A finished transfer, ready for the caller.

    Results are immutable once queued and are handed out exactly once.

    Attributes:
        ticket: Ticket of the descriptor this result completes
        handle: The caller's original handle
        user_data: Payload supplied at submission (None if the descriptor
            could not be recovered - see InvariantViolationError)
        transport_info: Flat, read-only mapping of transfer metrics
            (http_code, total_time, header_size, size_download, ...)
        header: Parsed header mapping, raw header text, or None when the
            transfer produced no header data
        body: Response payload (empty when nothing was received)
        error_code: Transport-level outcome, OK on success (a plain int for
            codes a third-party multiplexer defines)
        error_message: Transport error message, empty on success
        error_description: Human-readable description of error_code
    """

    ticket: int
    handle: Any
    user_data: Any
    transport_info: Mapping[str, Any] = field(default_factory=dict)
    header: str | dict[str, str] | None = None
    body: bytes = b""
    error_code: TransferErrorCode | int = TransferErrorCode.OK
    error_message: str = ""
    error_description: str | None = None

    def __post_init__(self) -> None:
        # Freeze the metrics mapping so queued results stay immutable
        object.__setattr__(self, "transport_info", MappingProxyType(dict(self.transport_info)))

    @property
    def ok(self) -> bool:
        """True if the transfer completed without a transport error."""
        return self.error_code == TransferErrorCode.OK


class Exhausted:
    """Sentinel type returned by pull() when no work remains."""

    _instance: Exhausted | None = None

    def __new__(cls) -> Exhausted:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "EXHAUSTED"

    def __bool__(self) -> bool:
        return False


EXHAUSTED: Final = Exhausted()
