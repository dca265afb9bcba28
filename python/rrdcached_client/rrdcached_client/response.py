# Copyright (c) 2025 by Terry Greeniaus.
# All rights reserved.
import re

from .errors import ProtocolException, map_status


MAX_LINE_LENGTH = 65536

STATUS_RE       = re.compile(r'^(-?\d+)(?:[ \t]+(.*))?$')
BATCH_ERROR_RE  = re.compile(r'^(\d+)[ \t]+(.*)$')


class Response:
    '''
    A complete reply: the status code and message from the status line plus
    exactly code body lines when code > 0.
    '''
    def __init__(self, code, message, lines=None):
        self.code    = code
        self.message = message
        self.lines   = lines or []

    def __repr__(self):
        return 'Response(%d, %r, %u lines)' % (self.code, self.message,
                                               len(self.lines))

    def __eq__(self, other):
        return (isinstance(other, Response) and
                (self.code, self.message, self.lines) ==
                (other.code, other.message, other.lines))

    @property
    def ok(self):
        return self.code >= 0

    @property
    def is_error(self):
        return self.code < 0

    def raise_for_status(self):
        if self.code < 0:
            raise map_status(self.code, self.message)


def parse_status_line(line):
    m = STATUS_RE.match(line)
    if not m:
        raise ProtocolException('Malformed status line %r' % line)
    return int(m.group(1)), m.group(2) or ''


class LineParser:
    '''
    Accumulates bytes from the stream and hands them back one complete line
    at a time.  A line is only complete once its '\\n' has arrived.
    '''
    def __init__(self, data=b''):
        self.buffer = bytearray(data)

    def remaining(self):
        return bytes(self.buffer)

    def _pop_line(self):
        i = self.buffer.find(b'\n')
        if i < 0:
            if len(self.buffer) > MAX_LINE_LENGTH:
                raise ProtocolException('Line exceeds %u bytes'
                                        % MAX_LINE_LENGTH)
            return None

        raw = bytes(self.buffer[:i])
        del self.buffer[:i + 1]
        if len(raw) > MAX_LINE_LENGTH:
            raise ProtocolException('Line exceeds %u bytes' % MAX_LINE_LENGTH)
        if raw.endswith(b'\r'):
            raw = raw[:-1]
        try:
            return raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ProtocolException('Undecodable line %r' % raw) from e


class ResponseParser(LineParser):
    '''
    Framing state machine for a single reply:

        AWAITING_STATUS_LINE -> AWAITING_BODY_LINES -> COMPLETE

    FAILED is entered on malformed input (feed() raises) or on a negative
    status (feed() returns the error Response).  feed() returns None until
    the whole reply has been buffered.
    '''
    AWAITING_STATUS_LINE = 'awaiting-status-line'
    AWAITING_BODY_LINES  = 'awaiting-body-lines'
    COMPLETE             = 'complete'
    FAILED               = 'failed'

    def __init__(self, data=b''):
        super().__init__(data)
        self.state           = ResponseParser.AWAITING_STATUS_LINE
        self.code            = None
        self.message         = None
        self.lines           = []
        self.remaining_lines = 0

    def feed(self, data=b''):
        if self.state in (ResponseParser.COMPLETE, ResponseParser.FAILED):
            raise ProtocolException('Parser already %s' % self.state)

        self.buffer += data
        try:
            return self._advance()
        except ProtocolException:
            self.state = ResponseParser.FAILED
            raise

    def _advance(self):
        while True:
            line = self._pop_line()
            if line is None:
                return None

            if self.state == ResponseParser.AWAITING_STATUS_LINE:
                self.code, self.message = parse_status_line(line)
                if self.code > 0:
                    self.remaining_lines = self.code
                    self.state = ResponseParser.AWAITING_BODY_LINES
                    continue
                if self.code < 0:
                    self.state = ResponseParser.FAILED
                else:
                    self.state = ResponseParser.COMPLETE
                return Response(self.code, self.message)

            self.lines.append(line)
            self.remaining_lines -= 1
            if self.remaining_lines == 0:
                self.state = ResponseParser.COMPLETE
                return Response(self.code, self.message, self.lines)


class BatchOutcome:
    def __init__(self, ok, message='', error=None):
        self.ok      = ok
        self.message = message
        self.error   = error

    def __repr__(self):
        return 'BatchOutcome(%s, %r)' % ('OK' if self.ok else 'ERROR',
                                         self.message)


class BatchResultParser(LineParser):
    '''
    Parses the daemon's answer to the batch terminator.  Two shapes are
    understood:

    Itemised, one line per submitted command followed by a framed closing
    status:

        OK
        -1 illegal attempt to update using time ...
        OK
        0 Batch complete

    Compact, as sent by stock rrdcached, listing only the failures by their
    1-based command number:

        1 errors
        2 illegal attempt to update using time ...

    Either way feed() eventually returns (outcomes, status), with one
    outcome per submitted command.
    '''
    AWAITING_FIRST_LINE     = 'awaiting-first-line'
    AWAITING_RESULT_LINES   = 'awaiting-result-lines'
    AWAITING_CLOSING_STATUS = 'awaiting-closing-status'
    AWAITING_ERROR_LINES    = 'awaiting-error-lines'
    COMPLETE                = 'complete'
    FAILED                  = 'failed'

    def __init__(self, ncommands, data=b''):
        super().__init__(data)
        self.ncommands   = ncommands
        self.state       = BatchResultParser.AWAITING_FIRST_LINE
        self.outcomes    = []
        self.status      = None
        self.closing     = None
        self.error_lines = []

    @property
    def received(self):
        return len(self.outcomes)

    def remaining(self):
        if self.closing is not None:
            return self.closing.remaining()
        return super().remaining()

    def feed(self, data=b''):
        if self.state in (BatchResultParser.COMPLETE,
                          BatchResultParser.FAILED):
            raise ProtocolException('Parser already %s' % self.state)

        try:
            if self.state == BatchResultParser.AWAITING_CLOSING_STATUS:
                return self._feed_closing(data)
            self.buffer += data
            return self._advance()
        except ProtocolException:
            self.state = BatchResultParser.FAILED
            raise

    def _feed_closing(self, data):
        self.status = self.closing.feed(data)
        if self.status is None:
            return None
        self.state = BatchResultParser.COMPLETE
        return self.outcomes, self.status

    def _begin_closing(self):
        self.state   = BatchResultParser.AWAITING_CLOSING_STATUS
        self.closing = ResponseParser(self.buffer)
        self.buffer  = bytearray()
        return self._feed_closing(b'')

    def _advance(self):
        while True:
            line = self._pop_line()
            if line is None:
                return None

            if self.state == BatchResultParser.AWAITING_FIRST_LINE:
                if line.startswith('OK') or line.startswith('-'):
                    self.state = BatchResultParser.AWAITING_RESULT_LINES
                else:
                    return self._begin_compact(line)

            if self.state == BatchResultParser.AWAITING_RESULT_LINES:
                if len(self.outcomes) == self.ncommands:
                    raise ProtocolException('More batch results than the %u '
                                            'commands submitted'
                                            % self.ncommands)
                self.outcomes.append(self._parse_result_line(line))
                if len(self.outcomes) == self.ncommands:
                    return self._begin_closing()
                continue

            self._add_error_line(line)
            if len(self.error_lines) == self.status.code:
                return self._finish_compact()

    def _parse_result_line(self, line):
        if line == 'OK' or line.startswith('OK '):
            return BatchOutcome(True, line[3:])
        if line.startswith('-'):
            code, message = parse_status_line(line)
            return BatchOutcome(False, message, map_status(code, message))
        raise ProtocolException('Malformed batch result line %r' % line)

    def _begin_compact(self, line):
        code, message = parse_status_line(line)
        self.status = Response(code, message)
        if code == 0:
            return self._finish_compact()
        self.state = BatchResultParser.AWAITING_ERROR_LINES
        return self._advance()

    def _add_error_line(self, line):
        m = BATCH_ERROR_RE.match(line)
        if not m:
            raise ProtocolException('Malformed batch error line %r' % line)
        n = int(m.group(1))
        if not 1 <= n <= self.ncommands:
            raise ProtocolException('Batch error for command %u but only %u '
                                    'were submitted' % (n, self.ncommands))
        self.error_lines.append((n, m.group(2)))
        self.status.lines.append(line)

    def _finish_compact(self):
        self.outcomes = [BatchOutcome(True) for _ in range(self.ncommands)]
        for n, message in self.error_lines:
            self.outcomes[n - 1] = BatchOutcome(False, message,
                                                map_status(-1, message))
        self.state = BatchResultParser.COMPLETE
        return self.outcomes, self.status
