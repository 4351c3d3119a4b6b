from datetime import datetime, timedelta, timezone

import pytest

from rtpinterceptors.core import CCFeedbackMetricBlock, CCFeedbackReportBlock
from rtpinterceptors.stream_log import (
    MAX_REPORTS_PER_REPORT_BLOCK,
    PacketReport,
    StreamLog,
    arrival_time_offset,
)

ZERO = datetime(1, 1, 1, tzinfo=timezone.utc)


def ms(n):
    return ZERO + timedelta(milliseconds=n)


def block(received, ato):
    return CCFeedbackMetricBlock(received=received, ecn=0, arrival_time_offset=ato)


IN_ORDER = [(ms(0), 0), (ms(10), 1), (ms(20), 2), (ms(30), 3)]
REORDERED = [(ms(0), 0), (ms(10), 2), (ms(20), 1), (ms(30), 3)]
WRAPPING = [
    (ms(0), 65534),
    (ms(10), 0),
    (ms(20), 65535),
    (ms(30), 2),
    (ms(40), 1),
    (ms(50), 3),
]
MISSING = [(ms(0), 0), (ms(20), 2), (ms(30), 3)]

IN_ORDER_LOG = {0: PacketReport(ms(0)), 1: PacketReport(ms(10)), 2: PacketReport(ms(20)), 3: PacketReport(ms(30))}
REORDERED_LOG = {0: PacketReport(ms(0)), 1: PacketReport(ms(20)), 2: PacketReport(ms(10)), 3: PacketReport(ms(30))}
WRAPPING_LOG = {
    65534: PacketReport(ms(0)),
    65535: PacketReport(ms(20)),
    65536: PacketReport(ms(10)),
    65537: PacketReport(ms(40)),
    65538: PacketReport(ms(30)),
    65539: PacketReport(ms(50)),
}
MISSING_LOG = {0: PacketReport(ms(0)), 2: PacketReport(ms(20)), 3: PacketReport(ms(30))}


def _log_with(inputs):
    log = StreamLog(0)
    for ts, seq in inputs:
        log.add(ts, seq, 0)
    return log


@pytest.mark.parametrize(
    "inputs, expected_next, expected_last, expected_log",
    [
        ([], 0, 0, {}),
        (IN_ORDER, 0, 3, IN_ORDER_LOG),
        (REORDERED, 0, 3, REORDERED_LOG),
        (WRAPPING, 65534, 65539, WRAPPING_LOG),
    ],
    ids=["emptyLog", "addInOrderSequence", "reorderedSequence", "reorderedWrappingSequence"],
)
def test_stream_log_add(inputs, expected_next, expected_last, expected_log):
    log = _log_with(inputs)
    assert log.next_sequence_number_to_report == expected_next
    assert log.last_sequence_number_received == expected_last
    assert log.reports == expected_log


@pytest.mark.parametrize(
    "inputs, last, next_before, log_before, next_after, log_after, metrics",
    [
        ([], 0, 0, {}, 0, {}, CCFeedbackReportBlock(0, 0, [])),
        (
            IN_ORDER, 3, 0, IN_ORDER_LOG, 4, {},
            CCFeedbackReportBlock(0, 0, [block(True, 1024), block(True, 1013), block(True, 1003), block(True, 993)]),
        ),
        (
            REORDERED, 3, 0, REORDERED_LOG, 4, {},
            CCFeedbackReportBlock(0, 0, [block(True, 1024), block(True, 1003), block(True, 1013), block(True, 993)]),
        ),
        (
            WRAPPING, 65539, 65534, WRAPPING_LOG, 65540, {},
            CCFeedbackReportBlock(
                0,
                65534,
                [
                    block(True, 1024),
                    block(True, 1003),
                    block(True, 1013),
                    block(True, 983),
                    block(True, 993),
                    block(True, 972),
                ],
            ),
        ),
        (
            MISSING, 3, 0, MISSING_LOG, 1,
            {2: PacketReport(ms(20)), 3: PacketReport(ms(30))},
            CCFeedbackReportBlock(0, 0, [block(True, 1024), block(False, 0), block(True, 1003), block(True, 993)]),
        ),
    ],
    ids=["emptyLog", "addInOrderSequence", "reorderedSequence", "reorderedWrappingSequence", "addMissingPacketSequence"],
)
def test_stream_log_metrics_after(inputs, last, next_before, log_before, next_after, log_after, metrics):
    log = _log_with(inputs)
    assert log.next_sequence_number_to_report == next_before
    assert log.last_sequence_number_received == last
    assert log.reports == log_before

    result = log.metrics_after(ZERO + timedelta(seconds=1), 500)

    assert log.next_sequence_number_to_report == next_after
    assert log.last_sequence_number_received == last
    assert log.reports == log_after
    assert result == metrics


def test_remove_oldest_packets():
    log = StreamLog(0)
    log.add(ZERO + timedelta(seconds=1), 1, 0)
    now = datetime.now(timezone.utc) + timedelta(seconds=10)
    for seq in range(2, 16386):
        now += timedelta(milliseconds=10)
        log.add(now, seq & 0xFFFF, 0)
    metrics = log.metrics_after(now, MAX_REPORTS_PER_REPORT_BLOCK)
    assert metrics.begin_sequence == 2
    assert len(metrics.metric_blocks) == 16384


@pytest.mark.parametrize(
    "base, arrival, expected",
    [
        (ZERO + timedelta(seconds=1), ZERO, 1024),
        (ZERO + timedelta(milliseconds=500), ZERO, 512),
        (ZERO + timedelta(seconds=8), ZERO, 0x1FFE),
        (ZERO, ZERO + timedelta(seconds=1), 0x1FFF),
    ],
)
def test_arrival_time_offset(base, arrival, expected):
    assert arrival_time_offset(base, arrival) == expected