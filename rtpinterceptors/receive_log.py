"""Bitmap log of received RTP sequence numbers, used to detect losses."""

from __future__ import annotations

import threading
from typing import Iterator, List

_SEQ_MASK = 0xFFFF
UINT16_SIZE_HALF = 1 << 15


class InvalidSizeError(ValueError):
    """Raised when a buffer is created with an unsupported size."""

    def __init__(self, size: int, allowed: List[int]) -> None:
        allowed_text = " ".join(str(a) for a in allowed)
        super().__init__(
            f"invalid buffer size: {size} is not a valid size, allowed sizes: [{allowed_text}]"
        )
        self.size = size
        self.allowed = allowed


def check_size(size: int, min_exponent: int) -> None:
    """Raise InvalidSizeError unless size is a power of two in [2**min_exponent, 2**15]."""
    allowed = [1 << i for i in range(min_exponent, 16)]
    if size not in allowed:
        raise InvalidSizeError(size, allowed)


def seq_range(start: int, stop: int) -> Iterator[int]:
    """Yield sequence numbers from start up to, not including, stop, wrapping at 2**16."""
    start &= _SEQ_MASK
    for k in range((stop - start) & _SEQ_MASK):
        yield (start + k) & _SEQ_MASK


class ReceiveLog:
    """Tracks which of the last ``size`` sequence numbers have arrived."""

    def __init__(self, size: int) -> None:
        check_size(size, 6)
        self.size = size
        self._received = [False] * size
        self._end = 0
        self._started = False
        self._last_consecutive = 0
        self._lock = threading.Lock()

    @property
    def last_consecutive(self) -> int:
        """Highest sequence number up to which every packet has arrived."""
        return self._last_consecutive

    def add(self, seq: int) -> None:
        """Record that the packet with this sequence number arrived."""
        seq &= _SEQ_MASK
        with self._lock:
            if not self._started:
                self._set(seq)
                self._end = seq
                self._started = True
                self._last_consecutive = seq
                return

            diff = (seq - self._end) & _SEQ_MASK
            next_consecutive = (self._last_consecutive + 1) & _SEQ_MASK
            if diff == 0:
                return
            if diff < UINT16_SIZE_HALF:
                # Newer packet: forget stale entries between the old end and seq.
                for i in seq_range(self._end + 1, seq):
                    self._received[i % self.size] = False
                self._end = seq
                if next_consecutive == seq:
                    self._last_consecutive = seq
                elif (seq - self._last_consecutive) & _SEQ_MASK > self.size:
                    self._last_consecutive = (seq - self.size) & _SEQ_MASK
                    self._fix_last_consecutive()
            elif next_consecutive == seq:
                self._last_consecutive = seq
                self._fix_last_consecutive()

            self._set(seq)

    def get(self, seq: int) -> bool:
        """Whether the packet is within the window and was received."""
        seq &= _SEQ_MASK
        with self._lock:
            diff = (self._end - seq) & _SEQ_MASK
            if diff >= UINT16_SIZE_HALF or diff >= self.size:
                return False
            return self._received[seq % self.size]

    def missing_seq_numbers(self, skip_last_n: int) -> List[int]:
        """Sequence numbers still missing, ignoring the newest ``skip_last_n``."""
        with self._lock:
            until = (self._end - skip_last_n) & _SEQ_MASK
            if (until - self._last_consecutive) & _SEQ_MASK >= UINT16_SIZE_HALF:
                return []
            return [
                i
                for i in seq_range(self._last_consecutive + 1, until + 1)
                if not self._received[i % self.size]
            ]

    def _set(self, seq: int) -> None:
        self._received[seq % self.size] = True

    def _fix_last_consecutive(self) -> None:
        stop = (self._end + 1) & _SEQ_MASK
        i = (self._last_consecutive + 1) & _SEQ_MASK
        while i != stop and self._received[i % self.size]:
            i = (i + 1) & _SEQ_MASK
        self._last_consecutive = (i - 1) & _SEQ_MASK