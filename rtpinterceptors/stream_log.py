"""Per-stream log of packet arrivals for congestion control feedback (RFC 8888)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict

from .core import CCFeedbackMetricBlock, CCFeedbackReportBlock
from .unwrapper import Unwrapper

MAX_REPORTS_PER_REPORT_BLOCK = 16384
_SEQ_MASK = 0xFFFF


@dataclass
class PacketReport:
    """Arrival time and ECN marking of one received packet."""

    arrival_time: datetime
    ecn: int = 0


def arrival_time_offset(base: datetime, arrival: datetime) -> int:
    """Time from arrival to base in 1/1024 seconds, capped as RFC 8888 requires."""
    if base < arrival:
        return 0x1FFF
    ato = int((base - arrival).total_seconds() * 1024.0) & 0xFFFF
    if ato > 0x1FFD:
        return 0x1FFE
    return ato


class StreamLog:
    """Arrivals of one media stream that are still to be reported."""

    def __init__(self, ssrc: int) -> None:
        self.ssrc = ssrc
        self.sequence = Unwrapper()
        self.started = False
        self.next_sequence_number_to_report = 0
        self.last_sequence_number_received = 0
        self.reports: Dict[int, PacketReport] = {}

    def add(self, ts: datetime, sequence_number: int, ecn: int) -> None:
        """Record the arrival of a packet."""
        unwrapped = self.sequence.unwrap(sequence_number)
        if not self.started:
            self.started = True
            self.next_sequence_number_to_report = unwrapped
        self.reports[unwrapped] = PacketReport(arrival_time=ts, ecn=ecn)
        if self.last_sequence_number_received < unwrapped:
            self.last_sequence_number_received = unwrapped

    def metrics_after(self, reference: datetime, max_report_blocks: int) -> CCFeedbackReportBlock:
        """Build the report block for this stream.

        Packets are forgotten in sequence order until the first loss, so the
        ones after a gap are reported again next time.
        """
        if not self.reports:
            return CCFeedbackReportBlock(
                media_ssrc=self.ssrc,
                begin_sequence=self.next_sequence_number_to_report & _SEQ_MASK,
                metric_blocks=[],
            )

        num_reports = self.last_sequence_number_received - self.next_sequence_number_to_report + 1
        if num_reports > max_report_blocks:
            self.next_sequence_number_to_report = (
                self.last_sequence_number_received - max_report_blocks + 1
            )

        offset = self.next_sequence_number_to_report
        last_received = offset
        gap_detected = False
        metric_blocks = []
        for seq in range(offset, self.last_sequence_number_received + 1):
            report = self.reports.get(seq)
            received = report is not None
            metric_blocks.append(
                CCFeedbackMetricBlock(
                    received=received,
                    ecn=report.ecn if received else 0,
                    arrival_time_offset=(
                        arrival_time_offset(reference, report.arrival_time) if received else 0
                    ),
                )
            )

            if not gap_detected:
                if received and seq == self.next_sequence_number_to_report:
                    del self.reports[seq]
                    self.next_sequence_number_to_report += 1
                    last_received = seq
                if seq > last_received + 1:
                    gap_detected = True

        return CCFeedbackReportBlock(
            media_ssrc=self.ssrc,
            begin_sequence=offset & _SEQ_MASK,
            metric_blocks=metric_blocks,
        )