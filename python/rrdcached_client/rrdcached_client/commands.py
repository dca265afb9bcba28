# Copyright (c) 2025 by Terry Greeniaus.
# All rights reserved.
import math
import numbers
import re

from .errors import BadRequestException


BATCH_TERMINATOR = b'.\n'
FIELD_SEPARATOR  = ':'
DEFAULT_STEP     = 300

NAME_RE  = re.compile(r'[A-Za-z0-9_-]{1,64}')
VERB_RE  = re.compile(r'[A-Za-z]+')
TOKEN_RE = re.compile(r"'[^']*'|\S+")


class ConsolidationFunction:
    AVERAGE = 'AVERAGE'
    MIN     = 'MIN'
    MAX     = 'MAX'
    LAST    = 'LAST'

    ALL = (AVERAGE, MIN, MAX, LAST)


class DataSourceType:
    GAUGE    = 'GAUGE'
    COUNTER  = 'COUNTER'
    DCOUNTER = 'DCOUNTER'
    DERIVE   = 'DERIVE'
    DDERIVE  = 'DDERIVE'
    ABSOLUTE = 'ABSOLUTE'

    ALL = (GAUGE, COUNTER, DCOUNTER, DERIVE, DDERIVE, ABSOLUTE)


def check_identifier(identifier):
    '''
    Database identifiers are passed to the daemon as a single token.  They
    may contain whitespace (in which case they get quoted) but can't contain
    the quote character itself or anything that would break the line.
    '''
    if not isinstance(identifier, str) or not identifier:
        raise BadRequestException('Identifier must be a non-empty string')
    if "'" in identifier:
        raise BadRequestException('Identifier %r contains a quote'
                                  % identifier)
    for c in identifier:
        if ord(c) < 0x20 or ord(c) == 0x7F:
            raise BadRequestException('Identifier %r contains a control '
                                      'character' % identifier)


def quote_identifier(identifier):
    check_identifier(identifier)
    if any(c.isspace() for c in identifier):
        return "'%s'" % identifier
    return identifier


def unquote_token(token):
    if len(token) >= 2 and token[0] == "'" and token[-1] == "'":
        return token[1:-1]
    return token


def check_name(name, what='data source name'):
    if not isinstance(name, str) or not NAME_RE.fullmatch(name):
        raise BadRequestException('Invalid %s %r: must be 1-64 characters of '
                                  'letters, digits, "_" or "-"' % (what, name))


def check_positive_int(v, what):
    if (not isinstance(v, numbers.Integral) or isinstance(v, bool) or
            v <= 0):
        raise BadRequestException('%s must be a positive integer, got %r'
                                  % (what, v))


def check_int(v, what):
    if not isinstance(v, numbers.Integral) or isinstance(v, bool):
        raise BadRequestException('%s must be an integer, got %r' % (what, v))


def check_choice(v, choices, what):
    if v not in choices:
        raise BadRequestException('Invalid %s %r, expected one of %s'
                                  % (what, v, ', '.join(choices)))


def format_value(v):
    '''
    Formats a sample value or limit.  None and NaN are "unknown" to the
    daemon and are sent as U.
    '''
    if v is None:
        return 'U'
    if isinstance(v, bool) or not isinstance(v, numbers.Real):
        raise BadRequestException('Expected a number, got %r' % (v,))
    if isinstance(v, numbers.Integral):
        return '%d' % v
    v = float(v)
    if math.isnan(v):
        return 'U'
    return repr(v)


def parse_value(token):
    if token == 'U':
        return None
    try:
        return int(token)
    except ValueError:
        pass
    try:
        return float(token)
    except ValueError:
        raise BadRequestException('Invalid number %r' % token) from None


def parse_int(token, what):
    try:
        return int(token)
    except ValueError:
        raise BadRequestException('Invalid %s %r' % (what, token)) from None


class DataSource:
    def __init__(self, name, ds_type=DataSourceType.GAUGE, heartbeat=600,
                 minimum=None, maximum=None):
        self.name      = name
        self.ds_type   = ds_type
        self.heartbeat = heartbeat
        self.minimum   = minimum
        self.maximum   = maximum
        self.validate()

    def __repr__(self):
        return 'DataSource(%s)' % self.encode()

    def __eq__(self, other):
        return type(self) is type(other) and vars(self) == vars(other)

    def validate(self):
        check_name(self.name)
        check_choice(self.ds_type, DataSourceType.ALL, 'data source type')
        check_positive_int(self.heartbeat, 'Heartbeat')
        for limit in (self.minimum, self.maximum):
            format_value(limit)
        if self.minimum is not None and self.maximum is not None:
            if self.maximum <= self.minimum:
                raise BadRequestException('Maximum must be greater than '
                                          'minimum for %s' % self.name)

    def encode(self):
        return FIELD_SEPARATOR.join(['DS', self.name, self.ds_type,
                                     '%d' % self.heartbeat,
                                     format_value(self.minimum),
                                     format_value(self.maximum)])

    @staticmethod
    def decode(token):
        parts = token.split(FIELD_SEPARATOR)
        if len(parts) != 6 or parts[0] != 'DS':
            raise BadRequestException('Invalid data source %r' % token)
        return DataSource(parts[1], parts[2],
                          parse_int(parts[3], 'heartbeat'),
                          parse_value(parts[4]), parse_value(parts[5]))


class Archive:
    def __init__(self, cf=ConsolidationFunction.AVERAGE, xff=0.5, steps=1,
                 rows=100):
        self.cf    = cf
        self.xff   = xff
        self.steps = steps
        self.rows  = rows
        self.validate()

    def __repr__(self):
        return 'Archive(%s)' % self.encode()

    def __eq__(self, other):
        return type(self) is type(other) and vars(self) == vars(other)

    def validate(self):
        check_choice(self.cf, ConsolidationFunction.ALL,
                     'consolidation function')
        if (isinstance(self.xff, bool) or
                not isinstance(self.xff, numbers.Real) or
                not 0 <= self.xff <= 1):
            raise BadRequestException('xff must be between 0 and 1, got %r'
                                      % (self.xff,))
        check_positive_int(self.steps, 'Steps')
        check_positive_int(self.rows, 'Rows')

    def encode(self):
        return FIELD_SEPARATOR.join(['RRA', self.cf, format_value(self.xff),
                                     '%d' % self.steps, '%d' % self.rows])

    @staticmethod
    def decode(token):
        parts = token.split(FIELD_SEPARATOR)
        if len(parts) != 5 or parts[0] != 'RRA':
            raise BadRequestException('Invalid archive %r' % token)
        return Archive(parts[1], parse_value(parts[2]),
                       parse_int(parts[3], 'steps'),
                       parse_int(parts[4], 'rows'))


class Sample:
    '''
    One timestamp plus one value per data source, in data source order.  A
    timestamp of None means "now" on the daemon's clock.
    '''
    def __init__(self, timestamp, values):
        if isinstance(values, numbers.Real) or values is None:
            values = [values]
        self.timestamp = timestamp
        self.values    = list(values)
        self.validate()

    def __repr__(self):
        return 'Sample(%s)' % self.encode()

    def __eq__(self, other):
        return type(self) is type(other) and vars(self) == vars(other)

    def validate(self):
        if self.timestamp is not None:
            check_int(self.timestamp, 'Timestamp')
            if self.timestamp < 0:
                raise BadRequestException('Timestamp must not be negative')
        if not self.values:
            raise BadRequestException('Sample has no values')
        for v in self.values:
            format_value(v)

    def encode(self):
        ts = 'N' if self.timestamp is None else '%d' % self.timestamp
        return FIELD_SEPARATOR.join([ts] + [format_value(v)
                                            for v in self.values])

    @staticmethod
    def decode(token):
        parts = token.split(FIELD_SEPARATOR)
        if len(parts) < 2:
            raise BadRequestException('Invalid sample %r' % token)
        ts = None if parts[0] == 'N' else parse_int(parts[0], 'timestamp')
        return Sample(ts, [parse_value(p) for p in parts[1:]])


def to_sample(s):
    if isinstance(s, Sample):
        return s
    try:
        timestamp, values = s
    except (TypeError, ValueError):
        raise BadRequestException('Expected a (timestamp, values) pair, got '
                                  '%r' % (s,)) from None
    return Sample(timestamp, values)


class Command:
    '''
    Base class for every daemon verb.  Subclasses validate their fields in
    the constructor, so an invalid command can't be built in the first
    place; encode() validates again in case a field was modified since.
    '''
    verb      = None
    batchable = False

    def __repr__(self):
        return '<%s>' % ' '.join([self.verb] + self.arguments())

    def __eq__(self, other):
        return type(self) is type(other) and vars(self) == vars(other)

    def validate(self):
        pass

    def arguments(self):
        return []

    def encode(self):
        self.validate()
        line = ' '.join([self.verb] + self.arguments())
        if '\n' in line or '\r' in line:
            raise BadRequestException('%s would span multiple lines'
                                      % self.verb)
        return (line + '\n').encode()

    @classmethod
    def from_arguments(cls, args):
        if args:
            raise BadRequestException('%s takes no arguments' % cls.verb)
        return cls()


class IdentifierCommand(Command):
    def __init__(self, identifier):
        self.identifier = identifier
        self.validate()

    def validate(self):
        check_identifier(self.identifier)

    def arguments(self):
        return [quote_identifier(self.identifier)]

    @classmethod
    def from_arguments(cls, args):
        if len(args) != 1:
            raise BadRequestException('%s takes one identifier' % cls.verb)
        return cls(args[0])


class Create(Command):
    verb      = 'CREATE'
    batchable = True

    def __init__(self, identifier, data_sources, archives, step=DEFAULT_STEP,
                 start=None, no_overwrite=False):
        self.identifier   = identifier
        self.data_sources = list(data_sources)
        self.archives     = list(archives)
        self.step         = step
        self.start        = start
        self.no_overwrite = bool(no_overwrite)
        self.validate()

    def validate(self):
        check_identifier(self.identifier)
        if not self.data_sources:
            raise BadRequestException('At least one data source is required')
        if not self.archives:
            raise BadRequestException('At least one archive is required')
        names = set()
        for ds in self.data_sources:
            if not isinstance(ds, DataSource):
                raise BadRequestException('Expected a DataSource, got %r'
                                          % (ds,))
            ds.validate()
            if ds.name in names:
                raise BadRequestException('Duplicate data source %s'
                                          % ds.name)
            names.add(ds.name)
        for rra in self.archives:
            if not isinstance(rra, Archive):
                raise BadRequestException('Expected an Archive, got %r'
                                          % (rra,))
            rra.validate()
        check_positive_int(self.step, 'Step')
        if self.start is not None:
            check_int(self.start, 'Start')

    def arguments(self):
        args = [quote_identifier(self.identifier), '-s', '%d' % self.step]
        if self.start is not None:
            args += ['-b', '%d' % self.start]
        if self.no_overwrite:
            args.append('-O')
        args += [ds.encode() for ds in self.data_sources]
        args += [rra.encode() for rra in self.archives]
        return args

    @classmethod
    def from_arguments(cls, args):
        if not args:
            raise BadRequestException('CREATE requires an identifier')
        identifier   = args[0]
        step         = DEFAULT_STEP
        start        = None
        no_overwrite = False
        data_sources = []
        archives     = []
        i = 1
        while i < len(args):
            arg = args[i]
            if arg in ('-s', '-b'):
                if i + 1 >= len(args):
                    raise BadRequestException('%s requires a value' % arg)
                v = parse_int(args[i + 1], arg)
                if arg == '-s':
                    step = v
                else:
                    start = v
                i += 2
                continue
            if arg == '-O':
                no_overwrite = True
            elif arg.startswith('DS:'):
                data_sources.append(DataSource.decode(arg))
            elif arg.startswith('RRA:'):
                archives.append(Archive.decode(arg))
            else:
                raise BadRequestException('Unexpected CREATE argument %r'
                                          % arg)
            i += 1
        return cls(identifier, data_sources, archives, step=step, start=start,
                   no_overwrite=no_overwrite)


class Update(Command):
    verb      = 'UPDATE'
    batchable = True

    def __init__(self, identifier, samples):
        self.identifier = identifier
        self.samples    = [to_sample(s) for s in samples]
        self.validate()

    def validate(self):
        check_identifier(self.identifier)
        if not self.samples:
            raise BadRequestException('%s requires at least one sample'
                                      % self.verb)
        for s in self.samples:
            s.validate()

    def arguments(self):
        return ([quote_identifier(self.identifier)] +
                [s.encode() for s in self.samples])

    @classmethod
    def from_arguments(cls, args):
        if len(args) < 2:
            raise BadRequestException('%s requires an identifier and samples'
                                      % cls.verb)
        return cls(args[0], [Sample.decode(a) for a in args[1:]])


class UpdateV(Update):
    verb = 'UPDATEV'


class Fetch(Command):
    verb = 'FETCH'

    def __init__(self, identifier, cf=ConsolidationFunction.AVERAGE,
                 start=None, end=None, columns=None):
        self.identifier = identifier
        self.cf         = cf
        self.start      = start
        self.end        = end
        self.columns    = None if columns is None else list(columns)
        self.validate()

    def validate(self):
        check_identifier(self.identifier)
        check_choice(self.cf, ConsolidationFunction.ALL,
                     'consolidation function')
        if self.start is None:
            if self.end is not None:
                raise BadRequestException('FETCH end requires a start')
        else:
            check_int(self.start, 'Start')
        if self.end is not None:
            check_int(self.end, 'End')
        if self.columns is not None:
            if self.end is None:
                raise BadRequestException('FETCH columns require a start '
                                          'and an end')
            if not self.columns:
                raise BadRequestException('FETCH columns must not be empty')
            for c in self.columns:
                check_name(c, 'column name')

    def arguments(self):
        args = [quote_identifier(self.identifier), self.cf]
        if self.start is not None:
            args.append('%d' % self.start)
        if self.end is not None:
            args.append('%d' % self.end)
        if self.columns:
            args += self.columns
        return args

    @classmethod
    def from_arguments(cls, args):
        if len(args) < 2:
            raise BadRequestException('FETCH requires an identifier and a '
                                      'consolidation function')
        start   = parse_int(args[2], 'start') if len(args) > 2 else None
        end     = parse_int(args[3], 'end') if len(args) > 3 else None
        columns = args[4:] or None
        return cls(args[0], args[1], start, end, columns)


class First(Command):
    verb = 'FIRST'

    def __init__(self, identifier, archive=0):
        self.identifier = identifier
        self.archive    = archive
        self.validate()

    def validate(self):
        check_identifier(self.identifier)
        check_int(self.archive, 'Archive index')
        if self.archive < 0:
            raise BadRequestException('Archive index must not be negative')

    def arguments(self):
        return [quote_identifier(self.identifier), '%d' % self.archive]

    @classmethod
    def from_arguments(cls, args):
        if len(args) not in (1, 2):
            raise BadRequestException('FIRST takes an identifier and an '
                                      'optional archive index')
        archive = parse_int(args[1], 'archive index') if len(args) > 1 else 0
        return cls(args[0], archive)


class Last(IdentifierCommand):
    verb = 'LAST'


class Flush(IdentifierCommand):
    verb      = 'FLUSH'
    batchable = True


class Forget(IdentifierCommand):
    verb      = 'FORGET'
    batchable = True


class Pending(IdentifierCommand):
    verb = 'PENDING'


class Info(IdentifierCommand):
    verb = 'INFO'


class Suspend(IdentifierCommand):
    verb = 'SUSPEND'


class Resume(IdentifierCommand):
    verb = 'RESUME'


class List(Command):
    verb = 'LIST'

    def __init__(self, path='/', recursive=False):
        self.path      = path
        self.recursive = bool(recursive)
        self.validate()

    def validate(self):
        check_identifier(self.path)

    def arguments(self):
        args = ['RECURSIVE'] if self.recursive else []
        return args + [quote_identifier(self.path)]

    @classmethod
    def from_arguments(cls, args):
        recursive = bool(args) and args[0] == 'RECURSIVE'
        if recursive:
            args = args[1:]
        if len(args) > 1:
            raise BadRequestException('LIST takes at most one path')
        return cls(args[0] if args else '/', recursive)


class Help(Command):
    verb = 'HELP'

    def __init__(self, command=None):
        self.command = command
        self.validate()

    def validate(self):
        if self.command is not None:
            if not isinstance(self.command, str) or not VERB_RE.fullmatch(
                    self.command):
                raise BadRequestException('Invalid HELP topic %r'
                                          % (self.command,))

    def arguments(self):
        return [] if self.command is None else [self.command]

    @classmethod
    def from_arguments(cls, args):
        if len(args) > 1:
            raise BadRequestException('HELP takes at most one topic')
        return cls(args[0] if args else None)


class FlushAll(Command):
    verb = 'FLUSHALL'


class Stats(Command):
    verb = 'STATS'


class Ping(Command):
    verb = 'PING'


class Queue(Command):
    verb = 'QUEUE'


class SuspendAll(Command):
    verb = 'SUSPENDALL'


class ResumeAll(Command):
    verb = 'RESUMEALL'


class Quit(Command):
    verb = 'QUIT'


class Batch(Command):
    verb = 'BATCH'


VERBS = {cls.verb: cls for cls in (Create, Update, UpdateV, Fetch, First, Last,
                                   Flush, FlushAll, Pending, Forget, Stats,
                                   Help, Quit, Batch, Ping, Queue, Info, List,
                                   Suspend, Resume, SuspendAll, ResumeAll)}


def encode_command(command):
    if not isinstance(command, Command):
        raise BadRequestException('Not a command: %r' % (command,))
    return command.encode()


def tokenize(line):
    if isinstance(line, bytes):
        line = line.decode()
    if line.endswith('\n'):
        line = line[:-1]
    if '\n' in line:
        raise BadRequestException('Command spans multiple lines')
    return [unquote_token(t) for t in TOKEN_RE.findall(line)]


def decode_command(line):
    '''
    Parses one protocol line back into the Command that would produce it.
    '''
    tokens = tokenize(line)
    if not tokens:
        raise BadRequestException('Empty command line')
    cls = VERBS.get(tokens[0].upper())
    if cls is None:
        raise BadRequestException('Unknown verb %r' % tokens[0])
    return cls.from_arguments(tokens[1:])
