"""Unwrapping of 16-bit RTP sequence numbers into a monotonic 64-bit space."""

from __future__ import annotations

from typing import Optional

_SEQ_MASK = 0xFFFF
MAX_SEQUENCE_NUMBER_PLUS_ONE = 65536
BREAKPOINT = 32768


def is_newer(value: int, previous: int) -> bool:
    """Whether ``value`` comes after ``previous`` in wrapping 16-bit order."""
    diff = (value - previous) & _SEQ_MASK
    if diff == BREAKPOINT:
        return value > previous
    return value != previous and diff < BREAKPOINT


class Unwrapper:
    """Turns wrapping sequence numbers into ever-growing integers."""

    def __init__(self) -> None:
        self.last_unwrapped: Optional[int] = None

    def unwrap(self, seq: int) -> int:
        """Return the unwrapped value of ``seq`` relative to the previous one."""
        seq &= _SEQ_MASK
        if self.last_unwrapped is None:
            self.last_unwrapped = seq
            return seq

        last_wrapped = self.last_unwrapped & _SEQ_MASK
        delta = (seq - last_wrapped) & _SEQ_MASK
        if not is_newer(seq, last_wrapped) and delta > 0:
            if self.last_unwrapped + delta - MAX_SEQUENCE_NUMBER_PLUS_ONE >= 0:
                delta -= MAX_SEQUENCE_NUMBER_PLUS_ONE

        self.last_unwrapped += delta
        return self.last_unwrapped