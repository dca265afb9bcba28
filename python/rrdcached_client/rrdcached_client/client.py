# Copyright (c) 2025 by Terry Greeniaus.
# All rights reserved.
import logging
import socket

from . import commands
from .connection import Connection
from .errors import is_fatal


log = logging.getLogger(__name__)

DEFAULT_PORT = 42217


class Client:
    '''
    Convenience wrapper that owns the socket.  The socket is opened on first
    use; if a call fails in a way that leaves the Connection unusable the
    socket is closed and the next call opens a fresh one.  Daemon status
    errors and bad requests are simply re-raised.
    '''
    def __init__(self, host='127.0.0.1', port=DEFAULT_PORT, path=None,
                 timeout=None, recv_size=4096):
        self.host      = host
        self.port      = port
        self.path      = path
        self.timeout   = timeout
        self.recv_size = recv_size
        self.conn      = None

    def connect(self):
        assert self.conn is None
        if self.path is not None:
            log.info('Connecting to rrdcached at unix:%s', self.path)
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                sock.settimeout(self.timeout)
                sock.connect(self.path)
            except OSError:
                sock.close()
                raise
        else:
            log.info('Connecting to rrdcached at %s:%s', self.host, self.port)
            sock = socket.create_connection((self.host, self.port),
                                            timeout=self.timeout)
        self.conn = Connection(sock, recv_size=self.recv_size)

    def close(self):
        if self.conn is not None:
            try:
                self.conn.close()
            finally:
                self.conn = None

    def _call(self, name, *args, **kwargs):
        if self.conn is None:
            self.connect()

        try:
            return getattr(self.conn, name)(*args, **kwargs)
        except BaseException as e:
            if is_fatal(e) or self.conn.closed:
                self.close()
            raise

    def issue(self, command):
        result = self._call('issue', command)
        if isinstance(command, commands.Quit):
            self.close()
        return result

    def begin_batch(self):
        return self._call('begin_batch')

    def batch(self, cmds):
        return self._call('batch', cmds)

    def create(self, identifier, data_sources, archives,
               step=commands.DEFAULT_STEP, start=None, no_overwrite=False):
        return self._call('create', identifier, data_sources, archives,
                          step=step, start=start, no_overwrite=no_overwrite)

    def update(self, identifier, samples):
        return self._call('update', identifier, samples)

    def update_one(self, identifier, values, timestamp=None):
        return self._call('update_one', identifier, values,
                          timestamp=timestamp)

    def updatev(self, identifier, samples):
        return self._call('updatev', identifier, samples)

    def fetch(self, identifier, cf=commands.ConsolidationFunction.AVERAGE,
              start=None, end=None, columns=None):
        return self._call('fetch', identifier, cf, start=start, end=end,
                          columns=columns)

    def first(self, identifier, archive=0):
        return self._call('first', identifier, archive)

    def last(self, identifier):
        return self._call('last', identifier)

    def flush(self, identifier):
        return self._call('flush', identifier)

    def flush_all(self):
        return self._call('flush_all')

    def pending(self, identifier):
        return self._call('pending', identifier)

    def forget(self, identifier):
        return self._call('forget', identifier)

    def stats(self):
        return self._call('stats')

    def help(self, command=None):
        return self._call('help', command)

    def ping(self):
        return self._call('ping')

    def queue(self):
        return self._call('queue')

    def info(self, identifier):
        return self._call('info', identifier)

    def list(self, path='/', recursive=False):
        return self._call('list', path, recursive)

    def suspend(self, identifier):
        return self._call('suspend', identifier)

    def resume(self, identifier):
        return self._call('resume', identifier)

    def suspend_all(self):
        return self._call('suspend_all')

    def resume_all(self):
        return self._call('resume_all')

    def quit(self):
        try:
            return self._call('quit')
        finally:
            self.close()
