"""Interceptor that keeps sent RTP packets and resends them when NACKed."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Union

from .core import (
    Attributes,
    Interceptor,
    RTCPReader,
    RTPHeader,
    RTPWriter,
    StreamInfo,
    TransportLayerNack,
    stream_supports_nack,
)
from .send_buffer import NoOpPacketFactory, PacketManager, SendBuffer

_DEFAULT_LOGGER = "rtpinterceptors.nack_responder"


class ResponderInterceptorFactory:
    """Builds ResponderInterceptor instances with a fixed configuration.

    ``size`` must be a power of two from 1 to 32768. With ``disable_copy``
    the stored packets share the caller's header and payload instead of
    holding copies.
    """

    def __init__(
        self,
        *,
        size: int = 1024,
        log: Optional[logging.Logger] = None,
        disable_copy: bool = False,
    ) -> None:
        self.size = size
        self.log = log
        self.disable_copy = disable_copy

    def new_interceptor(self, interceptor_id: str) -> "ResponderInterceptor":
        """Create an interceptor; raises InvalidSizeError for a bad size."""
        SendBuffer(self.size)
        factory = NoOpPacketFactory() if self.disable_copy else PacketManager()
        return ResponderInterceptor(size=self.size, log=self.log, packet_factory=factory)


@dataclass
class _LocalStream:
    send_buffer: SendBuffer
    writer: RTPWriter


class ResponderInterceptor(Interceptor):
    """Buffers outgoing packets and answers NACK feedback by resending them."""

    def __init__(
        self,
        *,
        size: int = 1024,
        log: Optional[logging.Logger] = None,
        packet_factory: Union[PacketManager, NoOpPacketFactory, None] = None,
    ) -> None:
        self.size = size
        self.log = log or logging.getLogger(_DEFAULT_LOGGER)
        self.packet_factory = packet_factory or PacketManager()
        self._streams: Dict[int, _LocalStream] = {}
        self._streams_lock = threading.Lock()

    def bind_rtcp_reader(self, reader: RTCPReader) -> RTCPReader:
        """Watch incoming RTCP for NACKs and resend the requested packets."""

        def read(attributes: Optional[Attributes] = None):
            packets, attrs = reader(attributes)
            if attrs is None:
                attrs = {}
            for packet in packets:
                if isinstance(packet, TransportLayerNack):
                    threading.Thread(
                        target=self._resend_packets, args=(packet,), daemon=True
                    ).start()
            return packets, attrs

        return read

    def bind_local_stream(self, info: StreamInfo, writer: RTPWriter) -> RTPWriter:
        """Keep packets of a stream that negotiated NACK feedback."""
        if not stream_supports_nack(info):
            return writer

        send_buffer = SendBuffer(self.size)
        with self._streams_lock:
            self._streams[info.ssrc] = _LocalStream(send_buffer, writer)

        def write(header: RTPHeader, payload: bytes, attributes: Optional[Attributes] = None) -> int:
            send_buffer.add(self.packet_factory.new_packet(header, payload))
            return writer(header, payload, attributes)

        return write

    def unbind_local_stream(self, info: StreamInfo) -> None:
        """Drop the buffer of a removed stream."""
        with self._streams_lock:
            self._streams.pop(info.ssrc, None)

    def _resend_packets(self, nack: TransportLayerNack) -> None:
        with self._streams_lock:
            stream = self._streams.get(nack.media_ssrc)
        if stream is None:
            return

        for pair in nack.nacks:
            for seq in pair.packet_list():
                packet = stream.send_buffer.get(seq)
                if packet is None:
                    continue
                try:
                    stream.writer(packet.header, packet.payload, {})
                except Exception as exc:  # a failed resend must not stop the others
                    self.log.warning("failed resending nacked packet: %r", exc)
                finally:
                    packet.release()