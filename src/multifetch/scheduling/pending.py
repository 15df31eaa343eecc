# src/multifetch/scheduling/pending.py
"""FIFO queue of submitted requests awaiting admission."""

from __future__ import annotations

from collections import deque

from multifetch.contracts.requests import RequestDescriptor


class PendingQueue:
    """Unbounded FIFO of descriptors not yet admitted to the transport.

    Not thread-safe: the scheduler is its only owner.
    """

    def __init__(self) -> None:
        self._queue: deque[RequestDescriptor] = deque()

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def pending_count(self) -> int:
        """Number of descriptors waiting for admission."""
        return len(self._queue)

    def submit(self, descriptor: RequestDescriptor) -> None:
        """Append a descriptor to the tail."""
        self._queue.append(descriptor)

    def dequeue_next(self) -> RequestDescriptor:
        """Pop the head descriptor.

        Raises:
            IndexError: If the queue is empty (callers check first)
        """
        if not self._queue:
            raise IndexError("dequeue from empty pending queue")
        return self._queue.popleft()

    def drain(self) -> list[RequestDescriptor]:
        """Remove and return every queued descriptor, head first."""
        drained = list(self._queue)
        self._queue.clear()
        return drained
