"""
Chunked send queue with one-shot end-of-stream.

Large payloads (contract blobs) do not fit a single notification, so
they are split into packet_size pieces and pushed one at a time. The
remote side pulls the next packet by acknowledging the previous one;
each pull calls drain_next().

Per fill cycle:
    packets... → EOF (exactly once) → silence

A drain after EOF does nothing (no notify) until the queue is refilled.
The queue is agnostic to transport timing.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from typing import Callable

from ethgatt.codes import EOF

DEFAULT_PACKET_SIZE = 128

Notify = Callable[[bytes], None]


def chunk(payload: bytes, packet_size: int = DEFAULT_PACKET_SIZE) -> list[bytes]:
    """Split a payload into packet_size pieces (last one may be shorter).

    Raises:
        ValueError: If packet_size is not positive.
    """
    if packet_size <= 0:
        raise ValueError(f"packet_size must be positive, got: {packet_size}")
    return [payload[i:i + packet_size] for i in range(0, len(payload), packet_size)]


class SendQueue:
    """FIFO of packets drained one per transport pull.

    Args:
        packet_size: Size used by fill() when chunking payloads.
        notify: Optional transport sink. Can be attached later with
            subscribe().
    """

    def __init__(
        self,
        packet_size: int = DEFAULT_PACKET_SIZE,
        notify: Notify | None = None,
    ) -> None:
        if packet_size <= 0:
            raise ValueError(f"packet_size must be positive, got: {packet_size}")
        self._packet_size = packet_size
        self._packets: deque[bytes] = deque()
        self._eof_sent = False
        self._notify = notify

    def __len__(self) -> int:
        return len(self._packets)

    @property
    def eof_sent(self) -> bool:
        return self._eof_sent

    @property
    def packet_size(self) -> int:
        return self._packet_size

    def subscribe(self, notify: Notify | None) -> None:
        """Attach (or detach, with None) the transport notify sink."""
        self._notify = notify

    def snapshot(self) -> list[bytes]:
        """Copy of the pending packets, head first."""
        return list(self._packets)

    def reset(self) -> None:
        self._packets.clear()
        self._eof_sent = False

    def enqueue_many(self, chunks: Iterable[bytes]) -> None:
        """Append packets and re-arm the EOF signal."""
        self._packets.extend(bytes(c) for c in chunks)
        self._eof_sent = False

    def fill(self, payload: bytes) -> int:
        """Replace the queue contents with a chunked payload.

        Returns:
            Number of packets queued.
        """
        packets = chunk(payload, self._packet_size)
        self.reset()
        self.enqueue_many(packets)
        return len(packets)

    def drain_next(self) -> bytes | None:
        """Send the next unit for one transport pull.

        Returns:
            The packet sent, EOF when the stream just ended, or None
            when EOF was already sent (nothing notified).
        """
        if self._packets:
            packet = self._packets.popleft()
            self._emit(packet)
            return packet

        if not self._eof_sent:
            self._eof_sent = True
            self._emit(EOF)
            return EOF

        return None

    def _emit(self, value: bytes) -> None:
        if self._notify is not None:
            self._notify(value)
