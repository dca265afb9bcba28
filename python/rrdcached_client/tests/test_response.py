# Copyright (c) 2025 by Terry Greeniaus.
# All rights reserved.
import pytest

from rrdcached_client.errors import (DaemonRejectedException,
                                    NotFoundException,
                                    OutOfOrderUpdateException,
                                    ProtocolException)
from rrdcached_client.response import (MAX_LINE_LENGTH,
                                      BatchResultParser,
                                      Response,
                                      ResponseParser,
                                      parse_status_line)


OUT_OF_ORDER = (b'illegal attempt to update using time 5 when last update '
                b'time is 10 (minimum one second step)')


def test_parse_status_line():
    assert parse_status_line('1234  hello world') == (1234, 'hello world')
    assert parse_status_line('0 PONG') == (0, 'PONG')
    assert parse_status_line('-20 errors, a lot of errors') == (
        -20, 'errors, a lot of errors')
    assert parse_status_line('0') == (0, '')


@pytest.mark.parametrize('line', ['', 'PONG', 'x 1', '- 1', '1.5 ok'])
def test_parse_bad_status_line(line):
    with pytest.raises(ProtocolException):
        parse_status_line(line)


def test_no_body():
    p = ResponseParser()
    assert p.feed(b'0 PONG\n') == Response(0, 'PONG')
    assert p.state == ResponseParser.COMPLETE


def test_body_across_partial_deliveries():
    p = ResponseParser()
    assert p.feed(b'2 li') is None
    assert p.state == ResponseParser.AWAITING_STATUS_LINE
    assert p.feed(b'nes\nline1') is None
    assert p.state == ResponseParser.AWAITING_BODY_LINES
    assert p.feed(b'\nline') is None
    assert p.remaining_lines == 1
    response = p.feed(b'2\n')
    assert response.ok
    assert response.message == 'lines'
    assert response.lines == ['line1', 'line2']
    assert p.state == ResponseParser.COMPLETE


def test_three_independent_deliveries():
    p = ResponseParser()
    assert p.feed(b'2 line1\n') is None
    assert p.feed(b'line1\n') is None
    assert p.feed(b'line2\n') == Response(2, 'line1', ['line1', 'line2'])


def test_one_byte_at_a_time():
    data = b'3 Stats follow\nA: 1\nB: 2\r\nC: 3\n'
    p = ResponseParser()
    results = [p.feed(data[i:i + 1]) for i in range(len(data))]
    assert results[:-1] == [None] * (len(data) - 1)
    assert results[-1].lines == ['A: 1', 'B: 2', 'C: 3']


def test_never_short():
    p = ResponseParser()
    assert p.feed(b'3 x\na\nb\n') is None
    assert p.lines == ['a', 'b']


def test_error_status():
    p = ResponseParser()
    response = p.feed(b'-1 No such file: /tmp/x.rrd\n')
    assert response.is_error
    assert p.state == ResponseParser.FAILED
    with pytest.raises(NotFoundException) as e:
        response.raise_for_status()
    assert e.value.status_code == -1
    assert e.value.message == 'No such file: /tmp/x.rrd'


def test_malformed_status_fails_parser():
    p = ResponseParser()
    with pytest.raises(ProtocolException):
        p.feed(b'hello\n')
    assert p.state == ResponseParser.FAILED
    with pytest.raises(ProtocolException):
        p.feed(b'0 ok\n')


def test_undecodable_line():
    with pytest.raises(ProtocolException):
        ResponseParser().feed(b'1 ok\n\xff\xfe\n')


def test_line_too_long():
    with pytest.raises(ProtocolException):
        ResponseParser().feed(b'1 ok\n' + b'x' * (MAX_LINE_LENGTH + 1))


def test_remaining_bytes_are_kept():
    p = ResponseParser()
    assert p.feed(b'0 ok\n0 extra') == Response(0, 'ok')
    assert p.remaining() == b'0 extra'


def test_batch_itemised():
    p = BatchResultParser(3)
    assert p.feed(b'OK\n-1 ' + OUT_OF_ORDER + b'\n') is None
    assert p.received == 2
    assert p.feed(b'OK\n0 Batch ') is None
    outcomes, status = p.feed(b'done\n')
    assert [o.ok for o in outcomes] == [True, False, True]
    assert isinstance(outcomes[1].error, OutOfOrderUpdateException)
    assert status == Response(0, 'Batch done')
    assert p.state == BatchResultParser.COMPLETE


def test_batch_itemised_closing_status_with_body():
    p = BatchResultParser(1)
    outcomes, status = p.feed(b'OK updated\n1 summary\nall good\n')
    assert outcomes[0].message == 'updated'
    assert status.lines == ['all good']


def test_batch_compact():
    p = BatchResultParser(3)
    assert p.feed(b'1 errors\n') is None
    outcomes, status = p.feed(b'2 ' + OUT_OF_ORDER + b'\n')
    assert [o.ok for o in outcomes] == [True, False, True]
    assert isinstance(outcomes[1].error, OutOfOrderUpdateException)
    assert status.code == 1
    assert status.message == 'errors'


def test_batch_compact_no_errors():
    outcomes, status = BatchResultParser(2).feed(b'0 errors\n')
    assert [o.ok for o in outcomes] == [True, True]
    assert status == Response(0, 'errors')


def test_batch_compact_unknown_error():
    outcomes, _ = BatchResultParser(2).feed(b'1 errors\n1 bad things\n')
    assert isinstance(outcomes[0].error, DaemonRejectedException)


@pytest.mark.parametrize('data', [
    b'1 errors\n3 out of range\n',
    b'1 errors\nnot numbered\n',
    b'OK\nwhat\n',
    b'OK\nOK\nOK\n',
])
def test_batch_malformed(data):
    with pytest.raises(ProtocolException):
        BatchResultParser(2).feed(data)
