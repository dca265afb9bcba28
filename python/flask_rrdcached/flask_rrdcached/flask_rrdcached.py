# Copyright (c) 2025 by Terry Greeniaus.
# All rights reserved.
import rrdcached_client
from flask import current_app, g


class RRDCached:
    def __init__(self, app=None):
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        app.config.setdefault('RRDCACHED_HOST', 'localhost')
        app.config.setdefault('RRDCACHED_PORT', '42217')
        app.config.setdefault('RRDCACHED_PATH', None)
        app.config.setdefault('RRDCACHED_TIMEOUT', None)
        app.teardown_appcontext(self.teardown)

    @staticmethod
    def connect():
        timeout = current_app.config['RRDCACHED_TIMEOUT']
        return rrdcached_client.Client(
            host=current_app.config['RRDCACHED_HOST'],
            port=int(current_app.config['RRDCACHED_PORT']),
            path=current_app.config['RRDCACHED_PATH'],
            timeout=None if timeout is None else float(timeout))

    @staticmethod
    def teardown(_exc):
        client = g.pop('rrdcached_client', None)
        if client is not None:
            client.close()

    @property
    def client(self):
        '''
        The Client for the current application context.  Its socket is only
        opened on the first command.
        '''
        if 'rrdcached_client' not in g:
            g.rrdcached_client = RRDCached.connect()
        return g.rrdcached_client
