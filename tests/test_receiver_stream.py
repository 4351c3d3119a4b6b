from datetime import datetime, timezone

from rtpinterceptors.core import ReceptionReport, RTPHeader, SenderReport, to_ntp
from rtpinterceptors.receiver_stream import ReceiverStream

T0 = datetime(2009, 11, 10, 23, 0, 0, tzinfo=timezone.utc)
T1 = datetime(2009, 11, 10, 23, 0, 1, tzinfo=timezone.utc)


def _stream():
    return ReceiverStream(123456, 90000, receiver_ssrc=42)


def _feed(stream, seqs, now=T0):
    for seq in seqs:
        stream.process_rtp(now, RTPHeader(sequence_number=seq))


def test_in_order_packets_report_no_loss():
    stream = _stream()
    _feed(stream, range(10))
    block = stream.generate_report(T0).reports[0]
    assert block == ReceptionReport(ssrc=123456, last_sequence_number=9)


def test_packet_loss_counts_fraction_and_total():
    stream = _stream()
    _feed(stream, [0x01, 0x03])
    block = stream.generate_report(T0).reports[0]
    assert block.last_sequence_number == 0x03
    assert block.fraction_lost == 256 * 1 // 3
    assert block.total_lost == 1


def test_sequence_wrap_increments_cycles():
    stream = _stream()
    _feed(stream, [0xFFFF, 0x00])
    block = stream.generate_report(T0).reports[0]
    assert block.last_sequence_number == 1 << 16
    assert block.total_lost == 0


def test_wrap_with_loss():
    stream = _stream()
    _feed(stream, [0xFFFF, 0x01])
    block = stream.generate_report(T0).reports[0]
    assert block.last_sequence_number == (1 << 16) | 0x01
    assert block.fraction_lost == 256 * 1 // 3
    assert block.total_lost == 1


def test_reordered_packets_are_not_lost():
    stream = _stream()
    _feed(stream, [0x01, 0x03, 0x02, 0x04])
    block = stream.generate_report(T0).reports[0]
    assert block.last_sequence_number == 0x04
    assert block.total_lost == 0
    assert block.fraction_lost == 0


def test_jitter():
    stream = _stream()
    stream.process_rtp(T0, RTPHeader(sequence_number=1, timestamp=42378934))
    stream.process_rtp(T1, RTPHeader(sequence_number=2, timestamp=42378934 + 60000))
    block = stream.generate_report(T1).reports[0]
    assert block.jitter == 30000 // 16


def test_sender_report_sets_lsr_and_delay():
    stream = _stream()
    stream.process_sender_report(T0, SenderReport(ssrc=123456, ntp_time=to_ntp(T0)))
    block = stream.generate_report(T1).reports[0]
    assert block.last_sender_report == 1861222400
    assert block.delay == 65536


def test_no_sender_report_means_zero_delay():
    stream = _stream()
    _feed(stream, [5, 6])
    assert stream.generate_report(T1).reports[0].delay == 0