from datetime import datetime, timedelta

import pytest

from rtpinterceptors.core import CCFeedbackMetricBlock, CCFeedbackReportBlock
from rtpinterceptors.recorder import Recorder, ntp_time32

ZERO_TIME = datetime(1, 1, 1)
NTP_ZERO = datetime(1900, 1, 1)


def _ms(n):
    return timedelta(milliseconds=n)


def _received(offset):
    return CCFeedbackMetricBlock(received=True, ecn=0, arrival_time_offset=offset)


def _lost():
    return CCFeedbackMetricBlock(received=False, ecn=0, arrival_time_offset=0)


def test_recorder_normal():
    recorder = Recorder()
    now = ZERO_TIME
    recorder.add_packet(now, 123456, 0, 0)
    recorder.add_packet(now + _ms(125), 123456, 1, 0)
    recorder.add_packet(now + _ms(250), 123456, 2, 0)
    recorder.add_packet(now + _ms(500), 123456, 3, 0)
    recorder.add_packet(now + _ms(625), 123456, 4, 0)
    recorder.add_packet(now + _ms(750), 123456, 5, 0)

    report = recorder.build_report(now + timedelta(seconds=1), 1500)
    assert len(report.report_blocks) == 1
    assert report.report_blocks[0] == CCFeedbackReportBlock(
        media_ssrc=123456,
        begin_sequence=0,
        metric_blocks=[
            _received(1024),
            _received(1024 - 128),
            _received(1024 - 256),
            _received(1024 - 512),
            _received(1024 - 640),
            _received(1024 - 768),
        ],
    )


def test_recorder_packet_loss():
    recorder = Recorder()
    now = ZERO_TIME
    recorder.add_packet(now, 123456, 0, 0)
    recorder.add_packet(now + _ms(250), 123456, 2, 0)
    recorder.add_packet(now + _ms(625), 123456, 4, 0)
    recorder.add_packet(now + _ms(750), 123456, 5, 0)

    report = recorder.build_report(now + timedelta(seconds=1), 1500)
    assert len(report.report_blocks) == 1
    assert len(report.report_blocks[0].metric_blocks) == 6
    assert report.report_blocks[0] == CCFeedbackReportBlock(
        media_ssrc=123456,
        begin_sequence=0,
        metric_blocks=[
            _received(1024),
            _lost(),
            _received(1024 - 256),
            _lost(),
            _received(1024 - 640),
            _received(1024 - 768),
        ],
    )


def test_recorder_max_reports_per_stream():
    recorder = Recorder()
    for ssrc in range(10):
        for seq in range(100):
            recorder.add_packet(ZERO_TIME, ssrc, seq, 0)

    report = recorder.build_report(ZERO_TIME, 1380)
    assert len(report.report_blocks) == 10
    for block in report.report_blocks:
        assert 3 < len(block.metric_blocks) < 72


def test_recorder_report_carries_sender_ssrc_and_timestamp():
    recorder = Recorder(ssrc=42)
    recorder.add_packet(NTP_ZERO, 7, 0, 0)
    report = recorder.build_report(NTP_ZERO + timedelta(seconds=1), 1500)
    assert report.sender_ssrc == 42
    assert report.report_timestamp == 1 << 16
    assert [b.media_ssrc for b in report.report_blocks] == [7]


def test_recorder_reported_packets_are_not_reported_again():
    recorder = Recorder()
    recorder.add_packet(ZERO_TIME, 1, 0, 0)
    recorder.add_packet(ZERO_TIME, 1, 1, 0)
    recorder.build_report(ZERO_TIME + timedelta(seconds=1), 1500)
    second = recorder.build_report(ZERO_TIME + timedelta(seconds=2), 1500)
    assert second.report_blocks[0].metric_blocks == []
    assert second.report_blocks[0].begin_sequence == 2


def test_recorder_empty_has_no_blocks():
    report = Recorder().build_report(NTP_ZERO, 1500)
    assert report.report_blocks == []
    assert report.report_timestamp == 0


NOT_SO_LONG_AGO = datetime(2022, 5, 5, 14, 48, 20)


@pytest.mark.parametrize(
    "moment, expected",
    [
        (NTP_ZERO, 0),
        (NTP_ZERO + timedelta(seconds=1), 1 << 16),
        (
            NOT_SO_LONG_AGO,
            (int((NOT_SO_LONG_AGO - NTP_ZERO).total_seconds()) & 0xFFFF) << 16,
        ),
        (NTP_ZERO + _ms(400), 26214),
        (NTP_ZERO + _ms(1400), (1 << 16) + 26214),
    ],
)
def test_ntp_time32(moment, expected):
    assert ntp_time32(moment) == expected