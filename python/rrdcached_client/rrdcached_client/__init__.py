# Copyright (c) 2025 by Terry Greeniaus.
# All rights reserved.
from .client import Client
from .commands import (Archive,
                       Batch,
                       Command,
                       ConsolidationFunction,
                       Create,
                       DataSource,
                       DataSourceType,
                       Fetch,
                       First,
                       Flush,
                       FlushAll,
                       Forget,
                       Help,
                       Info,
                       Last,
                       List,
                       Pending,
                       Ping,
                       Queue,
                       Quit,
                       Resume,
                       ResumeAll,
                       Sample,
                       Stats,
                       Suspend,
                       SuspendAll,
                       Update,
                       UpdateV,
                       decode_command,
                       encode_command)
from .connection import (BatchResult,
                         BatchResults,
                         BatchSession,
                         Connection,
                         Mode)
from .errors import (AlreadyExistsException,
                     BadRequestException,
                     ConnectionClosedException,
                     DaemonRejectedException,
                     NotFoundException,
                     OutOfOrderUpdateException,
                     ProtocolException,
                     RRDCachedException,
                     StatusException,
                     map_status)
from .parsers import FetchResponse
from .response import Response, ResponseParser


__all__ = [
    'Client',
    'Connection',
    'Mode',
    'BatchSession',
    'BatchResult',
    'BatchResults',
    'Command',
    'Create',
    'Update',
    'UpdateV',
    'Fetch',
    'First',
    'Last',
    'Flush',
    'FlushAll',
    'Pending',
    'Forget',
    'Stats',
    'Help',
    'Quit',
    'Batch',
    'Ping',
    'Queue',
    'Info',
    'List',
    'Suspend',
    'Resume',
    'SuspendAll',
    'ResumeAll',
    'Archive',
    'DataSource',
    'Sample',
    'ConsolidationFunction',
    'DataSourceType',
    'encode_command',
    'decode_command',
    'Response',
    'ResponseParser',
    'FetchResponse',
    'RRDCachedException',
    'BadRequestException',
    'ProtocolException',
    'ConnectionClosedException',
    'StatusException',
    'NotFoundException',
    'AlreadyExistsException',
    'OutOfOrderUpdateException',
    'DaemonRejectedException',
    'map_status',
]
