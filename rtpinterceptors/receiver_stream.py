"""Per-stream state used to build RTCP receiver reports."""

from __future__ import annotations

import random
import threading
from datetime import datetime
from typing import Optional

from .core import ReceiverReport, ReceptionReport, RTPHeader, SenderReport
from .receive_log import seq_range

_SEQ_MASK = 0xFFFF
_UINT32_MASK = 0xFFFFFFFF
_MAX_LOST = 0xFFFFFF
_WINDOW = 128


class ReceiverStream:
    """Tracks arrivals, losses and jitter of one incoming RTP stream."""

    def __init__(
        self, ssrc: int, clock_rate: int, receiver_ssrc: Optional[int] = None
    ) -> None:
        self.ssrc = ssrc
        self.receiver_ssrc = (
            receiver_ssrc if receiver_ssrc is not None else random.getrandbits(32)
        )
        self.clock_rate = float(clock_rate)
        self._lock = threading.Lock()
        self._received = [False] * _WINDOW
        self._started = False
        self._seqnum_cycles = 0
        self._last_seqnum = 0
        self._last_report_seqnum = 0
        self._last_rtp_time_rtp = 0
        self._last_rtp_time_time: Optional[datetime] = None
        self._jitter = 0.0
        self._last_sender_report = 0
        self._last_sender_report_time: Optional[datetime] = None
        self._total_lost = 0

    def process_rtp(self, now: datetime, header: RTPHeader) -> None:
        """Account for an arriving RTP packet."""
        seq = header.sequence_number & _SEQ_MASK
        with self._lock:
            if not self._started:
                self._started = True
                self._received[seq % _WINDOW] = True
                self._last_seqnum = seq
                self._last_report_seqnum = (seq - 1) & _SEQ_MASK
                self._last_rtp_time_rtp = header.timestamp
                self._last_rtp_time_time = now
                return

            self._received[seq % _WINDOW] = True
            diff = seq - self._last_seqnum
            if diff > 0 or diff < -0x0FFF:
                if diff < -0x0FFF:
                    self._seqnum_cycles = (self._seqnum_cycles + 1) & _SEQ_MASK
                for i in seq_range(self._last_seqnum + 1, seq):
                    self._received[i % _WINDOW] = False
                self._last_seqnum = seq

            # Interarrival jitter as defined in RFC 3550, section 6.4.1.
            elapsed = (now - self._last_rtp_time_time).total_seconds()
            d = abs(
                elapsed * self.clock_rate
                - (float(header.timestamp) - float(self._last_rtp_time_rtp))
            )
            self._jitter += (d - self._jitter) / 16
            self._last_rtp_time_rtp = header.timestamp
            self._last_rtp_time_time = now

    def process_sender_report(self, now: datetime, report: SenderReport) -> None:
        """Remember the middle bits of the sender's NTP time and when it arrived."""
        with self._lock:
            self._last_sender_report = (report.ntp_time >> 16) & _UINT32_MASK
            self._last_sender_report_time = now

    def generate_report(self, now: datetime) -> ReceiverReport:
        """Build a receiver report covering packets since the previous report."""
        with self._lock:
            total_since_report = (self._last_seqnum - self._last_report_seqnum) & _SEQ_MASK
            lost_since_report = sum(
                1
                for i in seq_range(self._last_report_seqnum + 1, self._last_seqnum)
                if not self._received[i % _WINDOW]
            )
            self._total_lost = min(self._total_lost + lost_since_report, _MAX_LOST)
            lost_since_report = min(lost_since_report, _MAX_LOST)

            fraction_lost = (
                int(lost_since_report * 256 / total_since_report) & 0xFF
                if total_since_report
                else 0
            )
            if self._last_sender_report_time is None:
                delay = 0
            else:
                seconds = (now - self._last_sender_report_time).total_seconds()
                delay = int(seconds * 65536) & _UINT32_MASK

            report = ReceiverReport(
                ssrc=self.receiver_ssrc,
                reports=[
                    ReceptionReport(
                        ssrc=self.ssrc,
                        last_sequence_number=(self._seqnum_cycles << 16) | self._last_seqnum,
                        last_sender_report=self._last_sender_report,
                        fraction_lost=fraction_lost,
                        total_lost=self._total_lost,
                        delay=delay,
                        jitter=int(self._jitter) & _UINT32_MASK,
                    )
                ],
            )
            self._last_report_seqnum = self._last_seqnum
            return report