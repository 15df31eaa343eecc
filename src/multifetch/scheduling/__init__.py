# src/multifetch/scheduling/__init__.py
"""Admission control and the pull protocol for concurrent fetches."""

from multifetch.scheduling.parser import parse_header_block, parse_response
from multifetch.scheduling.pending import PendingQueue
from multifetch.scheduling.registry import InFlightRegistry
from multifetch.scheduling.scheduler import FetchScheduler

__all__ = [
    "FetchScheduler",
    "InFlightRegistry",
    "PendingQueue",
    "parse_header_block",
    "parse_response",
]
