# src/multifetch/contracts/__init__.py
"""Shared data contracts: descriptors, results, errors and the transport protocol."""

from multifetch.contracts.enums import SchedulerState
from multifetch.contracts.errors import (
    HandleRejectedError,
    InvariantViolationError,
    SchedulerClosedError,
    TransferErrorCode,
    as_error_code,
    describe_error,
    error_code_name,
)
from multifetch.contracts.requests import RequestDescriptor
from multifetch.contracts.results import EXHAUSTED, Exhausted, FetchResult
from multifetch.contracts.transport import DriveStatus, Multiplexer, RawTransfer

__all__ = [
    "EXHAUSTED",
    "DriveStatus",
    "Exhausted",
    "FetchResult",
    "HandleRejectedError",
    "InvariantViolationError",
    "Multiplexer",
    "RawTransfer",
    "RequestDescriptor",
    "SchedulerState",
    "SchedulerClosedError",
    "TransferErrorCode",
    "as_error_code",
    "describe_error",
    "error_code_name",
]
