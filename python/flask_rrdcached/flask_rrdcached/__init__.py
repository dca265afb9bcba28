# Copyright (c) 2025 by Terry Greeniaus.
# All rights reserved.
from .flask_rrdcached import RRDCached


__all__ = [
    'RRDCached',
]
