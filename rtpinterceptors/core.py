"""Packet types, stream descriptions and the interceptor base shared by all interceptors.

Readers and writers are plain callables:

* RTP reader: ``reader(attributes) -> (RTPPacket, attributes)``
* RTP writer: ``writer(header, payload, attributes) -> int``
* RTCP reader: ``reader(attributes) -> (list_of_rtcp_packets, attributes)``
* RTCP writer: ``writer(packets, attributes) -> int``

Failures are raised as exceptions.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

_SEQ_MASK = 0xFFFF
_NTP_EPOCH = datetime(1900, 1, 1, tzinfo=timezone.utc)

Attributes = Dict[str, Any]


@dataclass
class RTPHeader:
    """An RTP packet header."""

    version: int = 0
    padding: bool = False
    extension: bool = False
    marker: bool = False
    payload_type: int = 0
    sequence_number: int = 0
    timestamp: int = 0
    ssrc: int = 0
    csrc: List[int] = field(default_factory=list)
    extension_profile: int = 0
    extensions: List[Any] = field(default_factory=list)

    def clone(self) -> "RTPHeader":
        """Return a deep copy of the header."""
        return copy.deepcopy(self)


@dataclass
class RTPPacket:
    """An RTP packet: header plus payload."""

    header: RTPHeader = field(default_factory=RTPHeader)
    payload: bytes = b""
    padding_size: int = 0

    def __str__(self) -> str:
        h = self.header
        return (
            "RTP PACKET:\n"
            f"\tVersion: {h.version}\n"
            f"\tMarker: {str(h.marker).lower()}\n"
            f"\tPayload Type: {h.payload_type}\n"
            f"\tSequence Number: {h.sequence_number}\n"
            f"\tTimestamp: {h.timestamp}\n"
            f"\tSSRC: {h.ssrc} ({h.ssrc:x})\n"
            f"\tPayload Length: {len(self.payload or b'')}\n"
        )


@dataclass
class NackPair:
    """A lost packet id plus a bitmap of the 16 following lost packets."""

    packet_id: int = 0
    lost_packets: int = 0

    def packet_list(self) -> List[int]:
        """Return every sequence number this pair reports as lost."""
        return [self.packet_id] + [
            (self.packet_id + bit + 1) & _SEQ_MASK
            for bit in range(16)
            if self.lost_packets & (1 << bit)
        ]


@dataclass
class TransportLayerNack:
    """A generic NACK feedback message."""

    sender_ssrc: int = 0
    media_ssrc: int = 0
    nacks: List[NackPair] = field(default_factory=list)


def nack_pairs_from_sequence_numbers(seqs: List[int]) -> List[NackPair]:
    """Pack an ordered list of missing sequence numbers into NACK pairs."""
    if not seqs:
        return []
    pairs: List[NackPair] = []
    current = NackPair(packet_id=seqs[0])
    for seq in seqs[1:]:
        offset = (seq - current.packet_id) & _SEQ_MASK
        if offset > 16:
            pairs.append(current)
            current = NackPair(packet_id=seq)
            continue
        current.lost_packets |= 1 << (offset - 1)
    pairs.append(current)
    return pairs


@dataclass
class ReceptionReport:
    """One reception report block of a sender or receiver report."""

    ssrc: int = 0
    fraction_lost: int = 0
    total_lost: int = 0
    last_sequence_number: int = 0
    jitter: int = 0
    last_sender_report: int = 0
    delay: int = 0


@dataclass
class SenderReport:
    """An RTCP sender report."""

    ssrc: int = 0
    ntp_time: int = 0
    rtp_time: int = 0
    packet_count: int = 0
    octet_count: int = 0
    reports: List[ReceptionReport] = field(default_factory=list)


@dataclass
class ReceiverReport:
    """An RTCP receiver report."""

    ssrc: int = 0
    reports: List[ReceptionReport] = field(default_factory=list)


@dataclass
class CCFeedbackMetricBlock:
    """Per-packet metrics of a congestion control feedback report."""

    received: bool = False
    ecn: int = 0
    arrival_time_offset: int = 0


@dataclass
class CCFeedbackReportBlock:
    """Metrics of one media stream in a congestion control feedback report."""

    media_ssrc: int = 0
    begin_sequence: int = 0
    metric_blocks: List[CCFeedbackMetricBlock] = field(default_factory=list)


@dataclass
class CCFeedbackReport:
    """A congestion control feedback report."""

    sender_ssrc: int = 0
    report_blocks: List[CCFeedbackReportBlock] = field(default_factory=list)
    report_timestamp: int = 0


@dataclass
class PictureLossIndication:
    """A picture loss indication feedback message."""

    sender_ssrc: int = 0
    media_ssrc: int = 0


RTCPPacket = Union[
    TransportLayerNack,
    SenderReport,
    ReceiverReport,
    CCFeedbackReport,
    PictureLossIndication,
]

RTPReader = Callable[[Optional[Attributes]], Tuple[RTPPacket, Optional[Attributes]]]
RTPWriter = Callable[[RTPHeader, bytes, Optional[Attributes]], int]
RTCPReader = Callable[[Optional[Attributes]], Tuple[List[Any], Optional[Attributes]]]
RTCPWriter = Callable[[List[Any], Optional[Attributes]], int]


@dataclass
class RTCPFeedback:
    """An RTCP feedback mechanism negotiated for a stream."""

    type: str = ""
    parameter: str = ""


@dataclass
class StreamInfo:
    """Description of a local or remote media stream."""

    id: str = ""
    ssrc: int = 0
    payload_type: int = 0
    mime_type: str = ""
    clock_rate: int = 0
    channels: int = 0
    rtcp_feedback: List[RTCPFeedback] = field(default_factory=list)
    attributes: Attributes = field(default_factory=dict)


class Interceptor:
    """Base interceptor that passes everything through unchanged.

    It remembers the SSRCs of the streams bound through it until they are
    unbound or the interceptor is closed.
    """

    @property
    def bound_local_ssrcs(self) -> Set[int]:
        """SSRCs of the local streams currently bound through this base."""
        return self.__dict__.setdefault("_bound_local_ssrcs", set())

    @property
    def bound_remote_ssrcs(self) -> Set[int]:
        """SSRCs of the remote streams currently bound through this base."""
        return self.__dict__.setdefault("_bound_remote_ssrcs", set())

    def bind_rtcp_reader(self, reader: RTCPReader) -> RTCPReader:
        return reader

    def bind_rtcp_writer(self, writer: RTCPWriter) -> RTCPWriter:
        return writer

    def bind_local_stream(self, info: StreamInfo, writer: RTPWriter) -> RTPWriter:
        self.bound_local_ssrcs.add(info.ssrc)
        return writer

    def unbind_local_stream(self, info: StreamInfo) -> None:
        self.bound_local_ssrcs.discard(info.ssrc)

    def bind_remote_stream(self, info: StreamInfo, reader: RTPReader) -> RTPReader:
        self.bound_remote_ssrcs.add(info.ssrc)
        return reader

    def unbind_remote_stream(self, info: StreamInfo) -> None:
        self.bound_remote_ssrcs.discard(info.ssrc)

    def close(self) -> None:
        self.bound_local_ssrcs.clear()
        self.bound_remote_ssrcs.clear()


def stream_supports_nack(info: StreamInfo) -> bool:
    """Whether the stream negotiated plain NACK feedback."""
    return any(fb.type == "nack" and fb.parameter == "" for fb in info.rtcp_feedback)


def to_ntp(t: datetime) -> int:
    """Convert a datetime to a 64-bit NTP timestamp (naive datetimes are UTC)."""
    if t.tzinfo is None:
        t = t.replace(tzinfo=timezone.utc)
    micros = (t - _NTP_EPOCH) // timedelta(microseconds=1)
    seconds, nanos = divmod(micros * 1000, 10**9)
    fraction = (nanos << 32) // 10**9
    return ((seconds & 0xFFFFFFFF) << 32) | fraction