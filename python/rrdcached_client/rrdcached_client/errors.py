# Copyright (c) 2025 by Terry Greeniaus.
# All rights reserved.
import re


class RRDCachedException(Exception):
    pass


class BadRequestException(RRDCachedException):
    '''
    Raised when a command cannot be encoded.  Nothing has been written to
    the stream when this is raised.
    '''
    pass


class ProtocolException(RRDCachedException):
    pass


class ConnectionClosedException(RRDCachedException):
    pass


class StatusException(RRDCachedException):
    '''
    The daemon answered with a negative status code.  The connection is
    still usable.
    '''
    def __init__(self, status_code, message=''):
        super().__init__('Status %d: %s' % (status_code, message))
        self.status_code = status_code
        self.message     = message


class NotFoundException(StatusException):
    pass


class AlreadyExistsException(StatusException):
    pass


class OutOfOrderUpdateException(StatusException):
    pass


class DaemonRejectedException(StatusException):
    pass


# Message patterns, checked in order.  The daemon's wording varies between
# versions so anything unmatched becomes DaemonRejectedException.
STATUS_PATTERNS = [
    (re.compile(r'no such file', re.IGNORECASE),
     NotFoundException),
    (re.compile(r'file exists|already exists', re.IGNORECASE),
     AlreadyExistsException),
    (re.compile(r'illegal attempt to update using time|'
                r'minimum one second step', re.IGNORECASE),
     OutOfOrderUpdateException),
]


def map_status(status_code, message):
    for pattern, cls in STATUS_PATTERNS:
        if pattern.search(message):
            return cls(status_code, message)
    return DaemonRejectedException(status_code, message)


def is_fatal(e):
    '''
    Returns True if e leaves a connection unusable.  Daemon status errors
    and local validation errors do not; everything else raised while a
    command is in flight does, since the stream position is then unknown.
    '''
    return not isinstance(e, (StatusException, BadRequestException))
