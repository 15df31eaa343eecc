"""
multifetch: bounded-concurrency scheduling for outbound HTTP requests.

Submit any number of requests, pull finished results one at a time in the
order the transport completes them.
"""

__version__ = "0.1.0"

from multifetch.contracts import (  # noqa: E402
    EXHAUSTED,
    Exhausted,
    FetchResult,
    SchedulerState,
    TransferErrorCode,
)
from multifetch.core.config import SchedulerConfig, load_settings  # noqa: E402
from multifetch.scheduling import FetchScheduler  # noqa: E402
from multifetch.transport import HttpxMultiplexer  # noqa: E402

__all__ = [
    "EXHAUSTED",
    "Exhausted",
    "FetchResult",
    "FetchScheduler",
    "HttpxMultiplexer",
    "SchedulerConfig",
    "SchedulerState",
    "TransferErrorCode",
    "__version__",
    "load_settings",
]
