"""Interceptors that dump RTP and RTCP packets to text streams."""

from __future__ import annotations

import logging
import queue
import sys
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, TextIO, Union

from .core import (
    Attributes,
    Interceptor,
    RTCPReader,
    RTCPWriter,
    RTPHeader,
    RTPPacket,
    RTPReader,
    RTPWriter,
    StreamInfo,
)

_DEFAULT_LOGGER = "rtpinterceptors.packet_dumper"

RTPFilter = Callable[[RTPPacket], bool]
RTCPFilter = Callable[[List[Any]], bool]
RTPFormatter = Callable[[RTPPacket, Optional[Attributes]], str]
RTCPFormatter = Callable[[List[Any], Optional[Attributes]], str]


def default_rtp_formatter(packet: RTPPacket, attributes: Optional[Attributes]) -> str:
    """Default text for one RTP packet, newline terminated."""
    return f"{packet}\n"


def default_rtcp_formatter(packets: List[Any], attributes: Optional[Attributes]) -> str:
    """Default text for a batch of RTCP packets, newline terminated."""
    return "[" + " ".join(str(p) for p in packets) + "]\n"


@dataclass
class _RTPDump:
    packet: RTPPacket
    attributes: Optional[Attributes]


@dataclass
class _RTCPDump:
    packets: List[Any]
    attributes: Optional[Attributes]


_STOP = object()


class PacketDumper:
    """Formats packets on a background thread and writes them to text streams.

    Packets handed over before ``close`` are all written; the ones handed
    over afterwards are dropped. Filters decide which packets are written
    (no filter means every packet), formatters turn them into text.
    """

    def __init__(
        self,
        *,
        log: Optional[logging.Logger] = None,
        rtp_writer: Optional[TextIO] = None,
        rtcp_writer: Optional[TextIO] = None,
        rtp_formatter: RTPFormatter = default_rtp_formatter,
        rtcp_formatter: RTCPFormatter = default_rtcp_formatter,
        rtp_filter: Optional[RTPFilter] = None,
        rtcp_filter: Optional[RTCPFilter] = None,
    ) -> None:
        self.log = log or logging.getLogger(_DEFAULT_LOGGER)
        self.rtp_writer = rtp_writer if rtp_writer is not None else sys.stdout
        self.rtcp_writer = rtcp_writer if rtcp_writer is not None else sys.stdout
        self.rtp_formatter = rtp_formatter
        self.rtcp_formatter = rtcp_formatter
        self.rtp_filter = rtp_filter
        self.rtcp_filter = rtcp_filter
        self._queue: "queue.Queue[Union[_RTPDump, _RTCPDump, object]]" = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()

    def __enter__(self) -> "PacketDumper":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def log_rtp_packet(
        self, header: RTPHeader, payload: bytes, attributes: Optional[Attributes]
    ) -> None:
        """Queue one RTP packet for dumping."""
        dump = _RTPDump(RTPPacket(header=header.clone(), payload=payload), attributes)
        self._submit(dump)

    def log_rtcp_packets(self, packets: List[Any], attributes: Optional[Attributes]) -> None:
        """Queue a batch of RTCP packets for dumping."""
        self._submit(_RTCPDump(list(packets), attributes))

    def close(self) -> None:
        """Write what is queued, stop the worker and wait for it."""
        with self._lock:
            if not self._closed:
                self._closed = True
                self._queue.put(_STOP)
        self._thread.join()

    def _submit(self, item: Union[_RTPDump, _RTCPDump]) -> None:
        with self._lock:
            if self._closed:
                return
            self._queue.put(item)

    def _loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            if isinstance(item, _RTPDump):
                self._dump_rtp(item)
            elif isinstance(item, _RTCPDump):
                self._dump_rtcp(item)

    def _dump_rtp(self, dump: _RTPDump) -> None:
        if self.rtp_filter is not None and not self.rtp_filter(dump.packet):
            return
        try:
            self.rtp_writer.write(self.rtp_formatter(dump.packet, dump.attributes))
        except Exception as exc:  # a broken stream must not stop the worker
            self.log.error("could not dump RTP packet %s", exc)

    def _dump_rtcp(self, dump: _RTCPDump) -> None:
        if self.rtcp_filter is not None and not self.rtcp_filter(dump.packets):
            return
        try:
            self.rtcp_writer.write(self.rtcp_formatter(dump.packets, dump.attributes))
        except Exception as exc:  # a broken stream must not stop the worker
            self.log.error("could not dump RTCP packet %s", exc)


class ReceiverInterceptorFactory:
    """Builds ReceiverInterceptor instances; keyword options go to PacketDumper."""

    def __init__(self, **options: Any) -> None:
        self.options = options

    def new_interceptor(self, interceptor_id: str) -> "ReceiverInterceptor":
        return ReceiverInterceptor(PacketDumper(**self.options))


class ReceiverInterceptor(Interceptor):
    """Dumps incoming RTP and RTCP packets."""

    def __init__(self, dumper: PacketDumper) -> None:
        self.dumper = dumper

    def bind_remote_stream(self, info: StreamInfo, reader: RTPReader) -> RTPReader:
        """Dump every RTP packet read from the stream."""

        def read(attributes: Optional[Attributes] = None):
            packet, attrs = reader(attributes)
            if attrs is None:
                attrs = {}
            self.dumper.log_rtp_packet(packet.header, packet.payload, attrs)
            return packet, attrs

        return read

    def bind_rtcp_reader(self, reader: RTCPReader) -> RTCPReader:
        """Dump every RTCP batch read."""

        def read(attributes: Optional[Attributes] = None):
            packets, attrs = reader(attributes)
            if attrs is None:
                attrs = {}
            self.dumper.log_rtcp_packets(packets, attrs)
            return packets, attrs

        return read

    def close(self) -> None:
        self.dumper.close()


class SenderInterceptorFactory:
    """Builds SenderInterceptor instances; keyword options go to PacketDumper."""

    def __init__(self, **options: Any) -> None:
        self.options = options

    def new_interceptor(self, interceptor_id: str) -> "SenderInterceptor":
        return SenderInterceptor(PacketDumper(**self.options))


class SenderInterceptor(Interceptor):
    """Dumps outgoing RTP and RTCP packets."""

    def __init__(self, dumper: PacketDumper) -> None:
        self.dumper = dumper

    def bind_rtcp_writer(self, writer: RTCPWriter) -> RTCPWriter:
        """Dump every RTCP batch before writing it."""

        def write(packets: List[Any], attributes: Optional[Attributes] = None) -> int:
            self.dumper.log_rtcp_packets(packets, attributes)
            return writer(packets, attributes)

        return write

    def bind_local_stream(self, info: StreamInfo, writer: RTPWriter) -> RTPWriter:
        """Dump every RTP packet before writing it."""

        def write(header: RTPHeader, payload: bytes, attributes: Optional[Attributes] = None) -> int:
            self.dumper.log_rtp_packet(header, payload, attributes)
            return writer(header, payload, attributes)

        return write

    def close(self) -> None:
        self.dumper.close()