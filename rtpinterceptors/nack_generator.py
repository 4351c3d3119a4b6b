"""Interceptor that watches incoming RTP streams and sends NACKs for missing packets."""

from __future__ import annotations

import logging
import random
import threading
from typing import Dict, List, Optional

from .core import (
    Attributes,
    Interceptor,
    RTCPWriter,
    RTPReader,
    StreamInfo,
    TransportLayerNack,
    nack_pairs_from_sequence_numbers,
    stream_supports_nack,
)
from .receive_log import ReceiveLog

_DEFAULT_LOGGER = "rtpinterceptors.nack_generator"


class GeneratorInterceptorFactory:
    """Builds GeneratorInterceptor instances with a fixed configuration.

    ``size`` must be a power of two from 64 to 32768. ``skip_last_n`` is the
    number of newest packets left out when looking for losses, and
    ``interval`` is the time in seconds between two NACK rounds.
    """

    def __init__(
        self,
        *,
        size: int = 512,
        skip_last_n: int = 0,
        interval: float = 0.1,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.size = size
        self.skip_last_n = skip_last_n
        self.interval = interval
        self.log = log

    def new_interceptor(self, interceptor_id: str) -> "GeneratorInterceptor":
        """Create an interceptor; raises InvalidSizeError for a bad size."""
        ReceiveLog(self.size)
        if self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval}")
        return GeneratorInterceptor(
            size=self.size,
            skip_last_n=self.skip_last_n,
            interval=self.interval,
            log=self.log,
        )


class GeneratorInterceptor(Interceptor):
    """Records received sequence numbers and periodically requests the missing ones."""

    def __init__(
        self,
        *,
        size: int = 512,
        skip_last_n: int = 0,
        interval: float = 0.1,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self.size = size
        self.skip_last_n = skip_last_n
        self.interval = interval
        self.log = log or logging.getLogger(_DEFAULT_LOGGER)
        self._receive_logs: Dict[int, ReceiveLog] = {}
        self._logs_lock = threading.Lock()
        self._lock = threading.Lock()
        self._closed = threading.Event()
        self._threads: List[threading.Thread] = []

    def bind_rtcp_writer(self, writer: RTCPWriter) -> RTCPWriter:
        """Start sending NACKs through ``writer``; returns it unchanged."""
        with self._lock:
            if self._closed.is_set():
                return writer
            thread = threading.Thread(target=self._loop, args=(writer,), daemon=True)
            self._threads.append(thread)
            thread.start()
        return writer

    def bind_remote_stream(self, info: StreamInfo, reader: RTPReader) -> RTPReader:
        """Track sequence numbers of a stream that negotiated NACK feedback."""
        if not stream_supports_nack(info):
            return reader

        receive_log = ReceiveLog(self.size)
        with self._logs_lock:
            self._receive_logs[info.ssrc] = receive_log

        def read(attributes: Optional[Attributes] = None):
            packet, attrs = reader(attributes)
            if attrs is None:
                attrs = {}
            receive_log.add(packet.header.sequence_number)
            return packet, attrs

        return read

    def unbind_remote_stream(self, info: StreamInfo) -> None:
        """Forget the receive log of a removed stream."""
        with self._logs_lock:
            self._receive_logs.pop(info.ssrc, None)

    def close(self) -> None:
        """Stop all NACK loops and wait for them to finish."""
        with self._lock:
            self._closed.set()
            threads = list(self._threads)
        for thread in threads:
            thread.join()

    def _loop(self, writer: RTCPWriter) -> None:
        sender_ssrc = random.getrandbits(32)
        while not self._closed.wait(self.interval):
            self._send_nacks(writer, sender_ssrc)

    def _send_nacks(self, writer: RTCPWriter, sender_ssrc: int) -> None:
        with self._logs_lock:
            for ssrc, receive_log in self._receive_logs.items():
                missing = receive_log.missing_seq_numbers(self.skip_last_n)
                if not missing:
                    continue
                nack = TransportLayerNack(
                    sender_ssrc=sender_ssrc,
                    media_ssrc=ssrc,
                    nacks=nack_pairs_from_sequence_numbers(missing),
                )
                try:
                    writer([nack], {})
                except Exception as exc:  # keep the loop alive on write failures
                    self.log.warning("failed sending nack: %r", exc)