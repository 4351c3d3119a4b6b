"""Reference-counted RTP packets and the ring buffer that keeps them for resending."""

from __future__ import annotations

import threading
from typing import Callable, List, Optional

from .core import RTPHeader
from .receive_log import UINT16_SIZE_HALF, check_size, seq_range

_SEQ_MASK = 0xFFFF
MAX_PAYLOAD_LEN = 1460


class PacketReleasedError(RuntimeError):
    """Raised when retaining a packet that was already released."""

    def __init__(self) -> None:
        super().__init__("could not retain packet, already released")


def _ignore_release(header: Optional[RTPHeader], payload: Optional[bytes]) -> None:
    return None


class RetainablePacket:
    """An RTP packet with a retain count; released when the count drops to zero."""

    def __init__(
        self,
        header: RTPHeader,
        payload: Optional[bytes],
        on_release: Callable[[Optional[RTPHeader], Optional[bytes]], None] = _ignore_release,
    ) -> None:
        self.header: Optional[RTPHeader] = header
        self.payload: Optional[bytes] = payload
        self._on_release = on_release
        self._count = 1
        self._lock = threading.Lock()

    @property
    def count(self) -> int:
        """Current retain count."""
        return self._count

    def retain(self) -> None:
        """Take another reference; raise PacketReleasedError if already released."""
        with self._lock:
            if self._count == 0:
                raise PacketReleasedError()
            self._count += 1

    def release(self) -> None:
        """Drop one reference, freeing the contents on the last one."""
        with self._lock:
            self._count -= 1
            if self._count == 0:
                self._on_release(self.header, self.payload)
                self.header = None
                self.payload = None


class PacketManager:
    """Creates packets holding private copies of the header and payload."""

    def new_packet(self, header: RTPHeader, payload: Optional[bytes]) -> RetainablePacket:
        if payload is not None and len(payload) > MAX_PAYLOAD_LEN:
            raise ValueError(
                f"payload of {len(payload)} bytes exceeds the {MAX_PAYLOAD_LEN} byte limit"
            )
        copied = bytes(payload) if payload is not None else None
        return RetainablePacket(header.clone(), copied)


class NoOpPacketFactory:
    """Creates packets that share the caller's header and payload without copying."""

    def new_packet(self, header: RTPHeader, payload: Optional[bytes]) -> RetainablePacket:
        return RetainablePacket(header, payload)


class SendBuffer:
    """Ring buffer of the most recently sent packets, indexed by sequence number."""

    def __init__(self, size: int) -> None:
        check_size(size, 0)
        self.size = size
        self._packets: List[Optional[RetainablePacket]] = [None] * size
        self._last_added = 0
        self._started = False
        self._lock = threading.Lock()

    def add(self, packet: RetainablePacket) -> None:
        """Store a packet, releasing whatever it and any skipped slots displace."""
        seq = packet.header.sequence_number & _SEQ_MASK
        with self._lock:
            if not self._started:
                self._packets[seq % self.size] = packet
                self._last_added = seq
                self._started = True
                return

            diff = (seq - self._last_added) & _SEQ_MASK
            if diff == 0:
                return
            if diff < UINT16_SIZE_HALF:
                for i in seq_range(self._last_added + 1, seq):
                    self._drop(i % self.size)

            self._drop(seq % self.size)
            self._packets[seq % self.size] = packet
            self._last_added = seq

    def get(self, seq: int) -> Optional[RetainablePacket]:
        """Return the retained packet for seq, or None if it is not held."""
        seq &= _SEQ_MASK
        with self._lock:
            diff = (self._last_added - seq) & _SEQ_MASK
            if diff >= UINT16_SIZE_HALF or diff >= self.size:
                return None
            packet = self._packets[seq % self.size]
            if packet is None:
                return None
            header = packet.header
            if header is None or header.sequence_number != seq:
                return None
            try:
                packet.retain()
            except PacketReleasedError:
                return None
            return packet

    def _drop(self, idx: int) -> None:
        previous = self._packets[idx]
        if previous is not None:
            previous.release()
        self._packets[idx] = None