"""Recording of RTP arrivals and building of RFC 8888 feedback reports."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict

from .core import CCFeedbackReport
from .stream_log import StreamLog

_UINT32_MASK = 0xFFFFFFFF
_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NTP_UNIX_OFFSET = 2208988800


def _trunc_div(a: int, b: int) -> int:
    """Integer division rounding toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


def _trunc_mod(a: int, b: int) -> int:
    """Remainder matching division that rounds toward zero."""
    return a - b * _trunc_div(a, b)


def ntp_time32(t: datetime) -> int:
    """Middle 32 bits of the 64-bit NTP timestamp of ``t`` (naive datetimes are UTC)."""
    if t.tzinfo is None:
        t = t.replace(tzinfo=timezone.utc)
    micros = (t - _UNIX_EPOCH) // timedelta(microseconds=1)
    seconds = float(micros * 1000) / 1e9 + _NTP_UNIX_OFFSET
    whole = int(seconds)
    integer_part = whole & _UINT32_MASK
    fractional_part = int((seconds - whole) * 0xFFFFFFFF) & _UINT32_MASK
    return (((integer_part << 32) | fractional_part) >> 16) & _UINT32_MASK


class Recorder:
    """Records incoming RTP packets per stream and builds feedback reports from them."""

    def __init__(self, ssrc: int = 0) -> None:
        self.ssrc = ssrc
        self.streams: Dict[int, StreamLog] = {}

    def add_packet(self, ts: datetime, ssrc: int, seq: int, ecn: int) -> None:
        """Record the arrival of a packet of the stream ``ssrc``."""
        stream = self.streams.get(ssrc)
        if stream is None:
            stream = StreamLog(ssrc)
            self.streams[ssrc] = stream
        stream.add(ts, seq, ecn)

    def build_report(self, now: datetime, max_size: int) -> CCFeedbackReport:
        """Build a report of every recorded packet and the losses among them.

        ``max_size`` bounds the size of the report in bytes and so the number
        of metric blocks given to each stream.
        """
        report = CCFeedbackReport(
            sender_ssrc=self.ssrc,
            report_blocks=[],
            report_timestamp=ntp_time32(now),
        )

        count = len(self.streams)
        max_report_blocks = _trunc_div(max_size - 12 - 8 * count, 2)
        if count > 1:
            per_stream = _trunc_div(max_report_blocks, count - 1)
        else:
            per_stream = max_report_blocks

        for ssrc, log in self.streams.items():
            if count > 1 and ssrc == count - 1:
                per_stream = _trunc_mod(max_report_blocks, count)
            report.report_blocks.append(log.metrics_after(now, per_stream))

        return report