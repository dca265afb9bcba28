# Copyright (c) 2025 by Terry Greeniaus.
# All rights reserved.
import threading
import time

import pytest


class ScriptedStream:
    '''
    Stands in for a daemon socket.  recv() hands back the scripted chunks in
    order (an exception instance in the script is raised instead) and
    returns b'' once the script runs out, like a socket whose peer hung up.
    '''
    def __init__(self, chunks=()):
        self.chunks     = list(chunks)
        self.written    = []
        self.closed     = False
        self.recv_calls = 0

    def sendall(self, data):
        if self.closed:
            raise OSError('Stream closed')
        self.written.append(bytes(data))

    def recv(self, n):
        self.recv_calls += 1
        if not self.chunks:
            return b''
        chunk = self.chunks.pop(0)
        if isinstance(chunk, BaseException):
            raise chunk
        if len(chunk) > n:
            self.chunks.insert(0, chunk[n:])
            chunk = chunk[:n]
        return chunk

    def close(self):
        self.closed = True

    @property
    def sent(self):
        return b''.join(self.written)


class DaemonStream:
    '''
    Answers each command line written to it with a canned reply keyed by
    verb and trickles the reply back a few bytes at a time.  Every write and
    read is appended to events so tests can check the interleaving.
    '''
    def __init__(self, replies, chunk_size=3, delay=0.001):
        self.replies    = replies
        self.chunk_size = chunk_size
        self.delay      = delay
        self.cond       = threading.Condition()
        self.pending    = bytearray()
        self.events     = []

    def sendall(self, data):
        with self.cond:
            self.events.append(('write', bytes(data)))
            for line in bytes(data).splitlines():
                verb = line.split()[0].decode()
                self.pending += self.replies[verb]
            self.cond.notify_all()

    def recv(self, n):
        time.sleep(self.delay)
        with self.cond:
            if not self.pending:
                self.cond.wait(timeout=5)
            if not self.pending:
                return b''
            n     = min(n, self.chunk_size)
            chunk = bytes(self.pending[:n])
            del self.pending[:n]
            self.events.append(('read', chunk))
            return chunk


@pytest.fixture
def scripted():
    return ScriptedStream


@pytest.fixture
def daemon():
    return DaemonStream
