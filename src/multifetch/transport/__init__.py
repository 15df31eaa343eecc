# src/multifetch/transport/__init__.py
"""Transport multiplexers the scheduler can drive."""

from multifetch.transport.httpx_multiplexer import HttpxMultiplexer, classify_error, format_head

__all__ = [
    "HttpxMultiplexer",
    "classify_error",
    "format_head",
]
