# src/multifetch/contracts/requests.py
"""Request descriptors tracked by the scheduler."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class RequestDescriptor:
    """A submitted request and the caller context attached to it.

    Attributes:
        ticket: Stable identifier assigned at submission. The registry and
            the multiplexer address transfers by ticket, never by handle
            identity, so two descriptors sharing a handle object (or carrying
            equal payloads) can never be confused.
        handle: Opaque transport handle built by the caller (an httpx.Request
            for the default multiplexer)
        user_data: Arbitrary caller payload returned with the result
    """

    ticket: int
    handle: Any
    user_data: Any = None
