# tests/integration/test_scheduler_httpx.py
"""End-to-end tests: FetchScheduler driving the httpx multiplexer."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator

import httpx
import pytest

from multifetch import EXHAUSTED, FetchScheduler, SchedulerConfig, TransferErrorCode
from multifetch.transport.httpx_multiplexer import HttpxMultiplexer

Handler = Callable[[httpx.Request], httpx.Response]


class ConcurrencyProbe:
    """MockTransport handler that records how many requests run at once."""

    def __init__(self, delay: float = 0.02) -> None:
        self._lock = threading.Lock()
        self._active = 0
        self.peak = 0
        self.delay = delay

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self._active += 1
            self.peak = max(self.peak, self._active)
        try:
            time.sleep(self.delay)
            if request.url.path == "/down":
                raise httpx.ConnectError("[Errno 111] Connection refused", request=request)
            return httpx.Response(200, headers=[("X-Path", request.url.path)], content=request.url.path.encode())
        finally:
            with self._lock:
                self._active -= 1


@pytest.fixture
def client_factory() -> Iterator[Callable[[Handler], httpx.Client]]:
    clients: list[httpx.Client] = []

    def _make(handler: Handler) -> httpx.Client:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()


def _scheduler(client: httpx.Client, **config: object) -> FetchScheduler:
    # More workers than the limit, so only the scheduler bounds concurrency
    return FetchScheduler(SchedulerConfig(**config), HttpxMultiplexer(client, max_workers=16))


class TestSchedulerOverHttpx:
    """Bounded concurrency and result delivery over real httpx request objects."""

    def test_concurrency_never_exceeds_limit(self, client_factory) -> None:
        probe = ConcurrencyProbe()
        client = client_factory(probe)

        with _scheduler(client, max_concurrent=3) as scheduler:
            for i in range(12):
                scheduler.submit(client.build_request("GET", f"http://test.invalid/{i}"), i)
            results = list(scheduler.drain())

        assert probe.peak <= 3
        assert sorted(r.user_data for r in results) == list(range(12))

    def test_fast_result_not_held_back_by_slow_transfer(self, client_factory) -> None:
        release_slow = threading.Event()

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/slow":
                release_slow.wait(5)
            return httpx.Response(200, content=request.url.path.encode())

        client = client_factory(handler)
        scheduler = _scheduler(client, max_concurrent=2)
        try:
            scheduler.submit(client.build_request("GET", "http://test.invalid/fast"), "fast")
            scheduler.submit(client.build_request("GET", "http://test.invalid/slow"), "slow")

            started = time.monotonic()
            first = scheduler.pull()
            elapsed = time.monotonic() - started

            assert first.user_data == "fast"
            assert elapsed < 2.5
            assert scheduler.in_flight_count == 1
        finally:
            release_slow.set()
            scheduler.close()

    def test_headers_and_body_parsed(self, client_factory) -> None:
        client = client_factory(ConcurrencyProbe(delay=0))

        with _scheduler(client) as scheduler:
            scheduler.submit(client.build_request("GET", "http://test.invalid/page"), "page")
            result = scheduler.pull()

        assert result is not EXHAUSTED
        assert result.ok
        assert result.header["X-Path"] == "/page"
        assert result.header["Content-Length"] == "5"
        assert result.body == b"/page"
        assert result.transport_info["http_code"] == 200

    def test_raw_header_mode(self, client_factory) -> None:
        client = client_factory(ConcurrencyProbe(delay=0))

        with _scheduler(client, parse_headers=False) as scheduler:
            scheduler.submit(client.build_request("GET", "http://test.invalid/raw"))
            result = scheduler.pull()

        assert isinstance(result.header, str)
        assert result.header.startswith("HTTP/1.1 200 OK\r\n")
        assert "X-Path: /raw" in result.header
        assert result.body == b"/raw"

    def test_connection_error_is_a_result(self, client_factory) -> None:
        client = client_factory(ConcurrencyProbe(delay=0))

        with _scheduler(client, max_concurrent=2) as scheduler:
            scheduler.submit(client.build_request("GET", "http://test.invalid/down"), "down")
            scheduler.submit(client.build_request("GET", "http://test.invalid/up"), "up")
            results = {r.user_data: r for r in scheduler.drain()}

        assert results["down"].error_code == TransferErrorCode.CONNECT_FAILED
        assert "Connection refused" in results["down"].error_message
        assert results["down"].body == b""
        assert results["up"].ok

    def test_non_request_handle_becomes_invalid_handle_result(self, client_factory) -> None:
        client = client_factory(ConcurrencyProbe(delay=0))

        with _scheduler(client) as scheduler:
            scheduler.submit("http://test.invalid/not-a-request", "bad")
            result = scheduler.pull()

            assert result.error_code == TransferErrorCode.INVALID_HANDLE
            assert result.user_data == "bad"
            assert scheduler.pull() is EXHAUSTED

    def test_close_mid_flight_releases_everything(self, client_factory) -> None:
        client = client_factory(ConcurrencyProbe(delay=0.05))
        scheduler = _scheduler(client, max_concurrent=2)
        for i in range(6):
            scheduler.submit(client.build_request("GET", f"http://test.invalid/{i}"))

        scheduler.pull()
        scheduler.close()

        assert scheduler.in_flight_count == 0
        assert scheduler.pending_count == 0
        assert not client.is_closed

    def test_default_transport_is_created_and_closed(self) -> None:
        with FetchScheduler() as scheduler:
            assert scheduler.pull() is EXHAUSTED
        assert scheduler.closed
