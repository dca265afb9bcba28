# Copyright (c) 2025 by Terry Greeniaus.
# All rights reserved.
import re

import numpy as np

from .errors import ProtocolException


TIMESTAMP_RE    = re.compile(r'^\s*(\d+)')
STATS_RE        = re.compile(r'^([^:\s][^:]*):\s+(-?\d+)$')
QUEUE_RE        = re.compile(r'^(\d+)\s+(.+)$')
FETCH_HEADER_RE = re.compile(r'^([^:\s]+):\s+(.*)$')
FETCH_LINE_RE   = re.compile(r'^(\d+):\s+(\S.*)$')


def parse_timestamp(message):
    m = TIMESTAMP_RE.match(message)
    if not m:
        raise ProtocolException('Expected a timestamp, got %r' % message)
    return int(m.group(1))


def parse_stats_line(line):
    '''
    Parses "Name: value".
    '''
    m = STATS_RE.match(line)
    if not m:
        raise ProtocolException('Malformed STATS line %r' % line)
    return m.group(1), int(m.group(2))


def parse_queue_line(line):
    '''
    Parses "<pending updates> <path>".
    '''
    m = QUEUE_RE.match(line)
    if not m:
        raise ProtocolException('Malformed QUEUE line %r' % line)
    return m.group(2), int(m.group(1))


def parse_fetch_header_line(line):
    m = FETCH_HEADER_RE.match(line)
    if not m:
        raise ProtocolException('Malformed FETCH header line %r' % line)
    return m.group(1), m.group(2)


def parse_fetch_line(line):
    '''
    Parses "<timestamp>: v1 v2 ...".  Unknown values come back as nan.
    '''
    m = FETCH_LINE_RE.match(line)
    if not m:
        raise ProtocolException('Malformed FETCH data line %r' % line)
    try:
        values = [float(v) for v in m.group(2).split()]
    except ValueError:
        raise ProtocolException('Malformed FETCH data line %r' % line) from None
    return int(m.group(1)), values


class FetchResponse:
    '''
    Decoded FETCH body.  The header lines come first:

        FlushVersion: 1
        Start: 1708800030
        End: 1708886440
        Step: 10
        DSCount: 2
        DSName: ds1 ds2

    followed by one "<timestamp>: v1 v2" line per row.  Missing header lines
    leave the corresponding attribute at its default.  Rows are returned as
    numpy arrays: timestamps is a uint64 vector and values is a float64
    matrix with one column per data source.
    '''
    HEADER_KEYS = {
        'FlushVersion' : 'flush_version',
        'Start'        : 'start',
        'End'          : 'end',
        'Step'         : 'step',
        'DSCount'      : 'ds_count',
    }

    def __init__(self, flush_version=0, start=0, end=0, step=0, ds_count=0,
                 ds_names=None, timestamps=None, values=None):
        self.flush_version = flush_version
        self.start         = start
        self.end           = end
        self.step          = step
        self.ds_count      = ds_count
        self.ds_names      = ds_names or []
        if timestamps is None:
            timestamps = np.zeros(0, dtype=np.uint64)
        if values is None:
            values = np.zeros((0, ds_count), dtype=np.float64)
        self.timestamps = timestamps
        self.values     = values

    def __repr__(self):
        return 'FetchResponse(%s, %u rows)' % (' '.join(self.ds_names),
                                               len(self))

    def __len__(self):
        return len(self.timestamps)

    def column(self, name):
        return self.values[:, self.ds_names.index(name)]

    @staticmethod
    def from_lines(lines):
        header = {}
        rows   = []
        for i, line in enumerate(lines):
            key, value = parse_fetch_header_line(line)
            if key == 'DSName':
                header['ds_names'] = value.split()
            elif key in FetchResponse.HEADER_KEYS:
                try:
                    header[FetchResponse.HEADER_KEYS[key]] = int(value)
                except ValueError:
                    raise ProtocolException('Unable to parse %s: %r'
                                            % (key, value)) from None
            elif key.isdigit():
                rows = [parse_fetch_line(l) for l in lines[i:]]
                break
            else:
                raise ProtocolException('Unexpected FETCH header line %r'
                                        % line)

        ds_count = header.get('ds_count', 0)
        ncols    = len(rows[0][1]) if rows else ds_count
        for _, values in rows:
            if len(values) != ncols:
                raise ProtocolException('FETCH row has %u values, expected %u'
                                        % (len(values), ncols))

        timestamps = np.array([t for t, _ in rows], dtype=np.uint64)
        values     = np.array([v for _, v in rows], dtype=np.float64)
        values     = values.reshape(len(rows), ncols)
        return FetchResponse(timestamps=timestamps, values=values, **header)
