# rtpinterceptors

Building blocks that sit between an RTP media stream and its transport and
add behaviour to it. The package has no dependencies outside the standard
library.

- **NACK** – `nack_generator.GeneratorInterceptor` keeps a `ReceiveLog` of
  received sequence numbers per stream and periodically sends
  `TransportLayerNack` feedback for the missing ones;
  `nack_responder.ResponderInterceptor` keeps recently sent packets in a
  `SendBuffer` and resends them when a NACK arrives.
- **Packet dumping** – `packetdump.SenderInterceptor` and
  `packetdump.ReceiverInterceptor` write every RTP/RTCP packet passing through
  to a text stream, with pluggable filters and formatters.
- **Receiver statistics** – `receiver_stream.ReceiverStream` tracks arrivals,
  losses, jitter and sender-report delay of one incoming stream and builds a
  `ReceiverReport` from them.
- **RFC 8888 feedback** – `recorder.Recorder` records packet arrivals per
  stream (each in a `stream_log.StreamLog`, with sequence numbers unwrapped by
  `unwrapper.Unwrapper`) and builds a `CCFeedbackReport`.

## Installation

```
pip install .
```

## Concepts

Packet and report types (`RTPHeader`, `RTPPacket`, `TransportLayerNack`,
`SenderReport`, `ReceiverReport`, `CCFeedbackReport`, ...) are dataclasses in
`rtpinterceptors.core`.

Readers and writers are plain callables:

- RTP reader: `reader(attributes) -> (RTPPacket, attributes)`
- RTP writer: `writer(header, payload, attributes) -> int`
- RTCP reader: `reader(attributes) -> (list_of_rtcp_packets, attributes)`
- RTCP writer: `writer(packets, attributes) -> int`

Every interceptor derives from `core.Interceptor` and is created by a factory
through `new_interceptor(interceptor_id)`. An interceptor wraps the readers and
writers of a stream through its `bind_*` methods and returns the wrapped
callable; `close()` stops its background work.

Streams are described by `core.StreamInfo`. The NACK interceptors only act on
streams whose feedback list contains `RTCPFeedback(type="nack")` with an empty
parameter (see `core.stream_supports_nack`).

Buffer sizes must be powers of two: 64 to 32768 for the NACK generator
(default 512), 1 to 32768 for the NACK responder (default 1024). Other sizes
raise `receive_log.InvalidSizeError` from `new_interceptor`.

## Example: generating NACKs

```python
from rtpinterceptors.core import RTCPFeedback, StreamInfo
from rtpinterceptors.nack_generator import GeneratorInterceptorFactory

factory = GeneratorInterceptorFactory(size=64, skip_last_n=2, interval=0.01)
generator = factory.new_interceptor("")

info = StreamInfo(ssrc=1, rtcp_feedback=[RTCPFeedback(type="nack")])
read = generator.bind_remote_stream(info, transport_read)
generator.bind_rtcp_writer(rtcp_write)   # starts the periodic NACK thread
...
generator.close()
```

## Example: answering NACKs

```python
from rtpinterceptors.core import RTCPFeedback, StreamInfo
from rtpinterceptors.nack_responder import ResponderInterceptorFactory

factory = ResponderInterceptorFactory(size=8)          # disable_copy=True shares buffers
responder = factory.new_interceptor("")

info = StreamInfo(ssrc=1, rtcp_feedback=[RTCPFeedback(type="nack")])
write = responder.bind_local_stream(info, transport_write)
read_rtcp = responder.bind_rtcp_reader(transport_read_rtcp)
```

Packets written through `write` are remembered; a `TransportLayerNack` read
through `read_rtcp` causes the stored packets to be written again through
`transport_write`, on a background thread.

## Example: dumping packets

```python
import io
from rtpinterceptors.packetdump import SenderInterceptorFactory

out = io.StringIO()
dumper = SenderInterceptorFactory(rtp_writer=out, rtcp_writer=out).new_interceptor("")
write = dumper.bind_local_stream(info, transport_write)
...
dumper.close()   # everything handed over before close is written
```

`PacketDumper` options: `log`, `rtp_writer`, `rtcp_writer` (default
`sys.stdout`), `rtp_formatter`, `rtcp_formatter` (default
`default_rtp_formatter` / `default_rtcp_formatter`), `rtp_filter`,
`rtcp_filter` (default: dump everything).

## Example: RFC 8888 feedback

```python
from datetime import datetime, timedelta, timezone
from rtpinterceptors.recorder import Recorder

start = datetime(2024, 1, 1, tzinfo=timezone.utc)
recorder = Recorder()
recorder.add_packet(start, 123456, 0, 0)
recorder.add_packet(start + timedelta(milliseconds=250), 123456, 2, 0)
report = recorder.build_report(start + timedelta(seconds=1), 1500)
```

## What the package does not do

There are no interceptors that send RTCP sender reports, receiver reports or
RFC 8888 feedback on a timer. `ReceiverStream` and `Recorder` build those
reports when asked, but calling them periodically and writing the result to a
transport is left to the application. There is no command-line program.

## Running the tests

```
pip install .[test]
pytest
```