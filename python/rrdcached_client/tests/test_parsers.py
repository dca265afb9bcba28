# Copyright (c) 2025 by Terry Greeniaus.
# All rights reserved.
import numpy as np
import pytest

from rrdcached_client.errors import ProtocolException
from rrdcached_client.parsers import (FetchResponse,
                                     parse_fetch_header_line,
                                     parse_fetch_line,
                                     parse_queue_line,
                                     parse_stats_line,
                                     parse_timestamp)


def test_parse_timestamp():
    assert parse_timestamp('1234') == 1234
    assert parse_timestamp('1612345678 last update') == 1612345678
    with pytest.raises(ProtocolException):
        parse_timestamp('abcd')


def test_parse_stats_line():
    assert parse_stats_line('uptime: 1234') == ('uptime', 1234)
    assert parse_stats_line('QueueLength: 0') == ('QueueLength', 0)
    for line in ('uptime 1234', ' upti:me: 1234', 'uptime: x'):
        with pytest.raises(ProtocolException):
            parse_stats_line(line)


def test_parse_queue_line():
    assert parse_queue_line('12  test.rrd') == ('test.rrd', 12)
    with pytest.raises(ProtocolException):
        parse_queue_line('-0  test/test.rrd')


def test_parse_fetch_header_line():
    assert parse_fetch_header_line('FlushVersion: 1') == ('FlushVersion', '1')
    assert parse_fetch_header_line('DSName: ds1 ds2') == ('DSName', 'ds1 ds2')
    with pytest.raises(ProtocolException):
        parse_fetch_header_line('0 PONG')


def test_parse_fetch_line():
    ts, values = parse_fetch_line('1708800040: nan -nan')
    assert ts == 1708800040
    assert len(values) == 2
    assert all(np.isnan(values))
    assert parse_fetch_line('1708800040: 4.2 100000') == (1708800040,
                                                          [4.2, 100000.0])
    for line in ('End: 1708886440', '1708800040: abc', '1708800040:'):
        with pytest.raises(ProtocolException):
            parse_fetch_line(line)


def test_fetch_response():
    r = FetchResponse.from_lines([
        'FlushVersion: 1',
        'Start: 1708800030',
        'End: 1708886440',
        'Step: 10',
        'DSCount: 2',
        'DSName: ds1 ds2',
        '1708800040: 1 2',
        '1708800050: 3 nan',
    ])
    assert r.flush_version == 1
    assert r.start == 1708800030
    assert r.end == 1708886440
    assert r.step == 10
    assert r.ds_count == 2
    assert r.ds_names == ['ds1', 'ds2']
    assert len(r) == 2
    assert r.timestamps.dtype == np.uint64
    assert list(r.timestamps) == [1708800040, 1708800050]
    assert r.values.shape == (2, 2)
    assert r.values[0].tolist() == [1.0, 2.0]
    assert np.isnan(r.column('ds2')[1])
    assert r.column('ds1').tolist() == [1.0, 3.0]


def test_fetch_response_missing_header():
    r = FetchResponse.from_lines(['FlushVersion: 1', '1708800040: 1.0 2.0'])
    assert (r.start, r.end, r.step, r.ds_count, r.ds_names) == (0, 0, 0, 0, [])
    assert r.values.tolist() == [[1.0, 2.0]]


def test_fetch_response_no_rows():
    r = FetchResponse.from_lines(['DSCount: 2', 'DSName: ds1 ds2'])
    assert len(r) == 0
    assert r.values.shape == (0, 2)
    assert len(FetchResponse.from_lines([])) == 0


@pytest.mark.parametrize('lines', [
    ['FlushVersion: xyz'],
    ['Start: xyz'],
    ['End: xyz'],
    ['Step: xyz'],
    ['DSCount: xyz'],
    ['Bogus: 1'],
    ['FlushVersion: 1', '1708800040: abc def'],
    ['1708800040: 1.0 2.0', '1708800050: 2.0'],
    ['1708800040: 1.0', 'Step: 10'],
])
def test_fetch_response_malformed(lines):
    with pytest.raises(ProtocolException):
        FetchResponse.from_lines(lines)
