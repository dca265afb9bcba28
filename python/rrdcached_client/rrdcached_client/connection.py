# Copyright (c) 2025 by Terry Greeniaus.
# All rights reserved.
import logging
import threading

from . import commands
from .errors import (BadRequestException,
                     ConnectionClosedException,
                     ProtocolException,
                     is_fatal)
from .parsers import (FetchResponse,
                      parse_queue_line,
                      parse_stats_line,
                      parse_timestamp)
from .response import BatchResultParser, ResponseParser


log = logging.getLogger(__name__)


class Mode:
    NORMAL = 'normal'
    BATCH  = 'batch'
    CLOSED = 'closed'


class BatchResult:
    def __init__(self, index, command, ok, message='', error=None):
        self.index   = index
        self.command = command
        self.ok      = ok
        self.message = message
        self.error   = error

    def __repr__(self):
        if self.ok:
            return '<%u %r OK>' % (self.index, self.command)
        return '<%u %r %s>' % (self.index, self.command, self.message)


class BatchResults(list):
    '''
    One BatchResult per submitted command, in submission order.  status is
    the daemon's closing status Response.
    '''
    def __init__(self, results, status):
        super().__init__(results)
        self.status = status

    @property
    def errors(self):
        return [r for r in self if not r.ok]


class BatchSession:
    '''
    Commands submitted to an open session are written to the stream
    immediately; the daemon holds its replies until commit() sends the
    terminator, at which point one result per command is read back.
    '''
    IDLE    = 'idle'
    OPEN    = 'open'
    CLOSED  = 'closed'
    ABORTED = 'aborted'

    def __init__(self, conn):
        self.conn     = conn
        self.state    = BatchSession.IDLE
        self.commands = []
        self.results  = None

    def __repr__(self):
        return 'BatchSession(%s, %u commands)' % (self.state,
                                                  len(self.commands))

    def _check_open(self):
        if self.state != BatchSession.OPEN:
            raise BadRequestException('Batch session is %s' % self.state)

    def submit(self, command):
        self._check_open()
        check_batchable(command)
        self.conn._batch_write(self, command)

    def commit(self):
        self._check_open()
        outcomes, status = self.conn._batch_finish(self)
        self.results = BatchResults(
            [BatchResult(i, c, o.ok, o.message, o.error)
             for i, (c, o) in enumerate(zip(self.commands, outcomes))],
            status)
        self.state = BatchSession.CLOSED
        return self.results


def check_batchable(command):
    if not isinstance(command, commands.Command):
        raise BadRequestException('Not a command: %r' % (command,))
    if not command.batchable:
        raise BadRequestException('%s is not allowed in a batch'
                                  % command.verb)


class Connection:
    '''
    A session with the daemon over a caller-supplied stream.  The stream
    only needs sendall(bytes) and recv(n) -> bytes, so a connected socket
    works as-is.

    The protocol has no request identifiers, so only one command may be in
    flight at a time; self.lock serializes callers.  Any I/O error,
    framing error or interruption while a command is in flight leaves the
    stream position unknown and the connection becomes permanently CLOSED.
    '''
    def __init__(self, stream, recv_size=4096):
        self.stream       = stream
        self.recv_size    = recv_size
        self.lock         = threading.Lock()
        self.mode         = Mode.NORMAL
        self.close_reason = None
        self.session      = None

    def __repr__(self):
        return 'Connection(%s)' % self.mode

    @property
    def closed(self):
        return self.mode == Mode.CLOSED

    def close(self):
        self._mark_closed('Connection closed by client.')
        close = getattr(self.stream, 'close', None)
        if close is not None:
            close()

    def _mark_closed(self, reason):
        self.mode         = Mode.CLOSED
        self.close_reason = reason
        if self.session is not None:
            self.session.state = BatchSession.ABORTED
            self.session       = None

    def _fail(self, e):
        reason = str(e) or type(e).__name__
        if not self.closed:
            log.warning('Connection unusable: %s', reason)
            self._mark_closed(reason)

    def _check_usable(self):
        if self.closed:
            raise ConnectionClosedException(self.close_reason)

    def _sendall(self, data):
        log.debug('>> %r', data)
        try:
            self.stream.sendall(data)
        except OSError as e:
            raise ConnectionClosedException('Send failed: %s' % e) from e

    def _recv(self):
        try:
            data = self.stream.recv(self.recv_size)
        except OSError as e:
            raise ConnectionClosedException('Receive failed: %s' % e) from e
        if not data:
            raise ConnectionClosedException('Connection closed.')
        return data

    def _read(self, parser):
        '''
        Feeds the parser until it produces a result.  This is the only place
        a call blocks waiting on the daemon.
        '''
        result = None
        while result is None:
            result = parser.feed(self._recv())

        if parser.remaining():
            raise ProtocolException('Unexpected data after reply: %r'
                                    % parser.remaining())
        return result

    def _transact(self, data):
        self._sendall(data)
        response = self._read(ResponseParser())
        log.debug('<< %d %s (%u lines)', response.code, response.message,
                  len(response.lines))
        return response

    def issue(self, command):
        '''
        Sends one command and returns its Response.  A negative status is
        raised as the matching StatusException subclass and leaves the
        connection usable.  QUIT returns None and closes the connection,
        since the daemon hangs up without replying.
        '''
        data = commands.encode_command(command)
        if isinstance(command, commands.Batch):
            raise BadRequestException('Use begin_batch() to start a batch')

        with self.lock:
            self._check_usable()
            if self.mode == Mode.BATCH:
                raise BadRequestException('Connection is in batch mode')

            try:
                if isinstance(command, commands.Quit):
                    self._sendall(data)
                    self._mark_closed('QUIT sent.')
                    return None
                response = self._transact(data)
            except BaseException as e:
                if is_fatal(e):
                    self._fail(e)
                raise

        response.raise_for_status()
        return response

    def begin_batch(self):
        session = BatchSession(self)
        with self.lock:
            self._check_usable()
            if self.mode == Mode.BATCH:
                raise BadRequestException('Connection is already in batch '
                                          'mode')

            try:
                response = self._transact(commands.Batch().encode())
            except BaseException as e:
                self._fail(e)
                raise

            response.raise_for_status()
            self.mode     = Mode.BATCH
            self.session  = session
            session.state = BatchSession.OPEN
        return session

    def _batch_write(self, session, command):
        data = command.encode()
        with self.lock:
            self._check_usable()
            if self.session is not session:
                raise BadRequestException('Batch session is not active')

            try:
                self._sendall(data)
            except BaseException as e:
                self._fail(e)
                raise

            # Recorded under the lock so results line up with wire order.
            session.commands.append(command)

    def _batch_finish(self, session):
        with self.lock:
            self._check_usable()
            if self.session is not session:
                raise BadRequestException('Batch session is not active')

            parser = BatchResultParser(len(session.commands))
            try:
                self._sendall(commands.BATCH_TERMINATOR)
                try:
                    outcomes, status = self._read(parser)
                except ConnectionClosedException as e:
                    raise ConnectionClosedException(
                        'Connection lost after %u of %u batch results: %s'
                        % (parser.received, len(session.commands), e)) from e
            except BaseException as e:
                self._fail(e)
                raise

            self.mode  = Mode.NORMAL
            self.session = None
        log.debug('Batch of %u commands finished: %d %s',
                  len(session.commands), status.code, status.message)
        return outcomes, status

    def batch(self, cmds):
        '''
        Runs cmds as a single batch and returns the BatchResults.  Every
        command is checked before BATCH is sent so that a bad command can't
        strand the connection half-way through a batch.
        '''
        cmds = list(cmds)
        for c in cmds:
            check_batchable(c)
            c.encode()

        session = self.begin_batch()
        for c in cmds:
            session.submit(c)
        return session.commit()

    def create(self, identifier, data_sources, archives,
               step=commands.DEFAULT_STEP, start=None, no_overwrite=False):
        self.issue(commands.Create(identifier, data_sources, archives,
                                   step=step, start=start,
                                   no_overwrite=no_overwrite))

    def update(self, identifier, samples):
        '''
        samples is a list of Sample objects or (timestamp, values) pairs, in
        increasing timestamp order.
        '''
        self.issue(commands.Update(identifier, samples))

    def update_one(self, identifier, values, timestamp=None):
        self.update(identifier, [(timestamp, values)])

    def updatev(self, identifier, samples):
        return self.issue(commands.UpdateV(identifier, samples)).lines

    def fetch(self, identifier, cf=commands.ConsolidationFunction.AVERAGE,
              start=None, end=None, columns=None):
        response = self.issue(commands.Fetch(identifier, cf, start, end,
                                             columns))
        return FetchResponse.from_lines(response.lines)

    def first(self, identifier, archive=0):
        response = self.issue(commands.First(identifier, archive))
        return parse_timestamp(response.message)

    def last(self, identifier):
        response = self.issue(commands.Last(identifier))
        return parse_timestamp(response.message)

    def flush(self, identifier):
        self.issue(commands.Flush(identifier))

    def flush_all(self):
        self.issue(commands.FlushAll())

    def pending(self, identifier):
        return self.issue(commands.Pending(identifier)).lines

    def forget(self, identifier):
        self.issue(commands.Forget(identifier))

    def stats(self):
        response = self.issue(commands.Stats())
        return dict(parse_stats_line(l) for l in response.lines)

    def help(self, command=None):
        response = self.issue(commands.Help(command))
        return response.message, response.lines

    def ping(self):
        response = self.issue(commands.Ping())
        if response.message != 'PONG':
            raise ProtocolException('Expected PONG, got %r'
                                    % response.message)

    def queue(self):
        response = self.issue(commands.Queue())
        return [parse_queue_line(l) for l in response.lines]

    def info(self, identifier):
        return self.issue(commands.Info(identifier)).lines

    def list(self, path='/', recursive=False):
        return self.issue(commands.List(path, recursive)).lines

    def suspend(self, identifier):
        self.issue(commands.Suspend(identifier))

    def resume(self, identifier):
        self.issue(commands.Resume(identifier))

    def suspend_all(self):
        self.issue(commands.SuspendAll())

    def resume_all(self):
        self.issue(commands.ResumeAll())

    def quit(self):
        self.issue(commands.Quit())
