# src/multifetch/transport/httpx_multiplexer.py
"""httpx-backed transport multiplexer.

Runs admitted httpx.Request objects concurrently on a thread pool sharing
one httpx.Client (httpx.Client is thread-safe; its connection pool handles
concurrency). Implements the Multiplexer protocol the scheduler drives:

- admit() attaches a request but does not start it
- perform() starts attached requests and harvests finished ones
- select() blocks until at least one running request finishes

Responses are reported back in wire framing (status line, header block,
blank line, body) so the scheduler's response parser sees the same bytes
an HTTP/1.x transport would hand it.
"""

from __future__ import annotations

import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from multifetch.contracts.errors import HandleRejectedError, InvariantViolationError, TransferErrorCode
from multifetch.contracts.transport import DriveStatus, RawTransfer

logger = structlog.get_logger(__name__)

# Ordered most-specific first: ConnectTimeout is both a TimeoutException
# and a TransportError, ProxyError must win over generic TransportError.
_ERROR_CODES: tuple[tuple[type[Exception], TransferErrorCode], ...] = (
    (httpx.TimeoutException, TransferErrorCode.TIMEOUT),
    (httpx.ProxyError, TransferErrorCode.PROXY_ERROR),
    (httpx.UnsupportedProtocol, TransferErrorCode.UNSUPPORTED_PROTOCOL),
    (httpx.ConnectError, TransferErrorCode.CONNECT_FAILED),
    (httpx.WriteError, TransferErrorCode.SEND_FAILED),
    (httpx.ReadError, TransferErrorCode.RECEIVE_FAILED),
    (httpx.ProtocolError, TransferErrorCode.PROTOCOL_ERROR),
    (httpx.TooManyRedirects, TransferErrorCode.TOO_MANY_REDIRECTS),
    (httpx.InvalidURL, TransferErrorCode.INVALID_URL),
)


def classify_error(error: Exception) -> TransferErrorCode:
    """Map an httpx exception to a TransferErrorCode."""
    for error_type, code in _ERROR_CODES:
        if isinstance(error, error_type):
            return code
    return TransferErrorCode.TRANSPORT_FAILURE


def format_head(response: httpx.Response) -> bytes:
    """Rebuild the status line and header block of a response, CRLF framed.

    Header names and values come from headers.raw, so original casing and
    duplicate fields are preserved in wire order.
    """
    status_line = f"{response.http_version} {response.status_code} {response.reason_phrase}".encode("ascii")
    lines = [status_line]
    lines.extend(name + b": " + value for name, value in response.headers.raw)
    return b"\r\n".join(lines) + b"\r\n\r\n"


@dataclass
class _Transfer:
    """Internal state of one attached request."""

    ticket: int
    request: httpx.Request
    future: Future[None] | None = None
    response: httpx.Response | None = None
    error: Exception | None = None
    started_at: float = 0.0
    finished_at: float = 0.0
    reported: bool = False


class HttpxMultiplexer:
    """Concurrent httpx transport addressed by scheduler tickets.

    Usage:
        multiplexer = HttpxMultiplexer(max_workers=8, timeout=10.0)
        scheduler = FetchScheduler(SchedulerConfig(max_concurrent=8), multiplexer)

    A caller-supplied client is used as-is and is NOT closed by close();
    a client created here is.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        *,
        max_workers: int = 10,
        timeout: float = 30.0,
        follow_redirects: bool = False,
    ) -> None:
        """Initialize multiplexer.

        Args:
            client: Shared httpx.Client (one is created if None)
            max_workers: Worker threads, should be >= the scheduler's max_concurrent
            timeout: Default timeout for a created client, in seconds
            follow_redirects: Redirect policy for a created client
        """
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout, follow_redirects=follow_redirects)
        self._pool = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="multifetch")

        self._transfers: dict[int, _Transfer] = {}
        self._dormant: deque[int] = deque()
        self._finished: deque[int] = deque()
        self._closed = False

    @property
    def attached_count(self) -> int:
        """Number of transfers attached (dormant, running, or finished but not released)."""
        return len(self._transfers)

    def admit(self, ticket: int, handle: Any) -> None:
        """Attach a request; it starts on the next perform().

        Raises:
            HandleRejectedError: If handle is not an httpx.Request
        """
        if not isinstance(handle, httpx.Request):
            raise HandleRejectedError(ticket, f"Expected httpx.Request, got {type(handle).__name__}")
        if ticket in self._transfers:
            raise InvariantViolationError(ticket, f"Ticket {ticket} is already attached")
        self._transfers[ticket] = _Transfer(ticket=ticket, request=handle)
        self._dormant.append(ticket)

    def perform(self) -> DriveStatus:
        """Start dormant transfers and harvest finished ones. Never blocks."""
        while self._dormant:
            transfer = self._transfers[self._dormant.popleft()]
            transfer.started_at = time.perf_counter()
            transfer.future = self._pool.submit(self._run, transfer)

        running = 0
        done: list[_Transfer] = []
        for transfer in self._transfers.values():
            if transfer.reported or transfer.future is None:
                continue
            if transfer.future.done():
                transfer.reported = True
                done.append(transfer)
            else:
                running += 1

        # Report in finish order
        done.sort(key=lambda t: t.finished_at)
        self._finished.extend(t.ticket for t in done)
        return DriveStatus(running=running)

    def select(self, timeout: float | None = None) -> int:
        """Block until at least one running transfer finishes.

        Returns:
            Number of running transfers that are now finished (0 on timeout
            or when nothing is running)
        """
        active = [t.future for t in self._transfers.values() if t.future is not None and not t.reported]
        if not active:
            return 0
        done, _ = wait(active, timeout=timeout, return_when=FIRST_COMPLETED)
        return len(done)

    def info_read(self) -> int | None:
        if self._finished:
            return self._finished.popleft()
        return None

    def raw_output(self, ticket: int) -> RawTransfer:
        """Return metrics and wire-framed content of a finished transfer."""
        transfer = self._get(ticket)
        request = transfer.request
        info: dict[str, Any] = {
            "url": str(request.url),
            "effective_url": str(request.url),
            "method": request.method,
            "http_code": 0,
            "http_version": "",
            "content_type": None,
            "header_size": 0,
            "download_content_length": -1,
            "size_download": 0,
            "redirect_count": 0,
            "total_time": transfer.finished_at - transfer.started_at,
        }
        response = transfer.response
        if response is None:
            return RawTransfer(info=info)

        head = format_head(response)
        body = response.content
        content_length = response.headers.get("content-length", "")
        info.update(
            {
                "effective_url": str(response.url),
                "http_code": response.status_code,
                "http_version": response.http_version,
                "content_type": response.headers.get("content-type"),
                "header_size": len(head),
                "download_content_length": int(content_length) if content_length.isdigit() else -1,
                "size_download": len(body),
                "redirect_count": len(response.history),
            }
        )
        return RawTransfer(info=info, content=head + body)

    def error_of(self, ticket: int) -> tuple[TransferErrorCode, str]:
        transfer = self._get(ticket)
        if transfer.error is None:
            return TransferErrorCode.OK, ""
        return classify_error(transfer.error), str(transfer.error) or type(transfer.error).__name__

    def release(self, ticket: int) -> None:
        """Detach a transfer, cancelling it if it has not started."""
        transfer = self._transfers.pop(ticket, None)
        if transfer is None:
            return
        if transfer.future is not None and not transfer.future.done():
            transfer.future.cancel()
        if transfer.response is not None:
            transfer.response.close()

    def close_handle(self, handle: Any) -> None:
        """Close a request's upload stream, if it has one."""
        if isinstance(handle, httpx.Request) and isinstance(handle.stream, httpx.SyncByteStream):
            handle.stream.close()

    def close(self) -> None:
        """Stop all transfers and release the pool (and client, if owned).

        Transfers that have not started are cancelled; running ones are
        allowed to finish (bounded by the client timeout) before their
        responses are closed.
        """
        if self._closed:
            return
        self._closed = True

        self._pool.shutdown(wait=True, cancel_futures=True)
        for transfer in self._transfers.values():
            if transfer.response is not None:
                transfer.response.close()
        self._transfers.clear()
        self._dormant.clear()
        self._finished.clear()

        if self._owns_client:
            self._client.close()
        logger.debug("Multiplexer closed")

    def _get(self, ticket: int) -> _Transfer:
        try:
            transfer = self._transfers[ticket]
        except KeyError:
            raise InvariantViolationError(ticket, f"Ticket {ticket} is not attached") from None
        # Surface worker bugs (non-httpx exceptions) to the caller
        if transfer.future is not None and transfer.future.done() and not transfer.future.cancelled():
            transfer.future.result()
        return transfer

    def _run(self, transfer: _Transfer) -> None:
        """Worker: send one request, recording the response or transport error.

        Only httpx errors are recorded as transfer failures. Anything else is
        a bug and propagates through the future.
        """
        try:
            transfer.response = self._client.send(transfer.request)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            transfer.error = e
        finally:
            transfer.finished_at = time.perf_counter()
