# src/multifetch/contracts/errors.py
"""Error codes and exception types shared across multifetch.

Transfer failures are values, not exceptions: they travel inside a
FetchResult as a TransferErrorCode plus a message. The exception classes
below cover the remaining cases, which are bookkeeping defects and
protocol misuse.
"""

from __future__ import annotations

from enum import IntEnum


class TransferErrorCode(IntEnum):
    """Outcome classification for a single transfer.

    OK means the transfer completed at the transport level. HTTP status
    codes (404, 500, ...) are NOT transfer errors - they are reported in
    transport_info["http_code"] of a successful transfer.
    """

    OK = 0
    INVALID_HANDLE = 1
    INVALID_URL = 2
    UNSUPPORTED_PROTOCOL = 3
    CONNECT_FAILED = 4
    TIMEOUT = 5
    SEND_FAILED = 6
    RECEIVE_FAILED = 7
    PROTOCOL_ERROR = 8
    PROXY_ERROR = 9
    TOO_MANY_REDIRECTS = 10
    TRANSFER_LOST = 11
    TRANSPORT_FAILURE = 12


_DESCRIPTIONS: dict[TransferErrorCode, str] = {
    TransferErrorCode.OK: "No error",
    TransferErrorCode.INVALID_HANDLE: "Handle cannot be run by the transport",
    TransferErrorCode.INVALID_URL: "URL using bad/illegal format or missing URL",
    TransferErrorCode.UNSUPPORTED_PROTOCOL: "Unsupported protocol",
    TransferErrorCode.CONNECT_FAILED: "Couldn't connect to server",
    TransferErrorCode.TIMEOUT: "Timeout was reached",
    TransferErrorCode.SEND_FAILED: "Failed sending data to the peer",
    TransferErrorCode.RECEIVE_FAILED: "Failure when receiving data from the peer",
    TransferErrorCode.PROTOCOL_ERROR: "Weird server reply",
    TransferErrorCode.PROXY_ERROR: "Proxy handshake error",
    TransferErrorCode.TOO_MANY_REDIRECTS: "Number of redirects hit maximum amount",
    TransferErrorCode.TRANSFER_LOST: "Transport dropped the transfer without reporting it",
    TransferErrorCode.TRANSPORT_FAILURE: "Transport failure",
}


def as_error_code(code: int) -> TransferErrorCode | int:
    """Return code as a TransferErrorCode, or as a plain int if multifetch does not define it.

    Third-party multiplexers may report their own codes; those are kept
    as-is rather than rejected.
    """
    try:
        return TransferErrorCode(code)
    except ValueError:
        return int(code)


def error_code_name(code: int) -> str:
    """Symbolic name of an error code, "UNKNOWN_<n>" for foreign codes."""
    code = as_error_code(code)
    if isinstance(code, TransferErrorCode):
        return code.name
    return f"UNKNOWN_{code}"


def describe_error(code: int) -> str | None:
    """Return a human-readable description for a transfer error code.

    Args:
        code: TransferErrorCode (or its integer value)

    Returns:
        Description string, or None for codes multifetch does not define
    """
    code = as_error_code(code)
    if isinstance(code, TransferErrorCode):
        return _DESCRIPTIONS[code]
    return None


class InvariantViolationError(RuntimeError):
    """Raised when scheduler bookkeeping is inconsistent.

    The canonical case is a transfer reported finished whose ticket has no
    in-flight descriptor. This always indicates a bug upstream of the
    scheduler (usually in a multiplexer implementation).

    Attributes:
        ticket: Ticket the multiplexer reported
    """

    def __init__(self, ticket: int, message: str) -> None:
        super().__init__(message)
        self.ticket = ticket


class HandleRejectedError(ValueError):
    """Raised by a multiplexer when asked to admit a handle it cannot run."""

    def __init__(self, ticket: int, message: str) -> None:
        super().__init__(message)
        self.ticket = ticket


class SchedulerClosedError(RuntimeError):
    """Raised when submit() or pull() is called on a closed scheduler."""

    pass
