""" Configuration handling for the relay. There are two sources: the command
    line, and a JSON configuration file. The file defines the handlers and
    may also carry a 'relay' block overriding default settings; anything on
    the command line overrides the file.

    A minimal configuration file::

        {
            "handlers": {
                "alarms": {
                    "handler": "log",
                    "destination": "/queue/monitoring.alarms",
                    "settings": {"level": "warning"}
                }
            }
        }
"""

import os
import socket

from . import handlers
from . import json
from .errors import ConfigurationError
from .registry import HandlerRegistry, Health


class Settings:
    """ Every tunable the relay uses, with defaults. Settings are passed as
        keyword arguments; unknown names are rejected. All time values are
        in seconds.
    """

    defaults = {
        'broker': None,
        'broker_list': None,
        'config': None,
        'error_queue': None,
        'outbound_queue': None,
        'error_destination': '/queue/msgrelay.errors',
        'client_id': None,
        'timeout': 60.0,
        'handler_timeout': None,
        'ping_interval': 300.0,
        'receipt_wait': 5.0,
        'frame_wait': 1.0,
        'reconnect_cooldown': 30.0,
        'retry_cooldown': 300.0,
        'retry_limit': 3,
        'drain_budget': 100,
        'drain_interval': 5.0,
        'purge_threshold': 1000,
        'health': None,
        'daemon': False,
        'pidfile': None,
        'quit_file': None,
        'log_level': 'info',
        'syslog': False,
    }

    _floats = ('timeout', 'handler_timeout', 'ping_interval', 'receipt_wait', 'frame_wait',
               'reconnect_cooldown', 'retry_cooldown', 'drain_interval')

    _integers = ('retry_limit', 'drain_budget', 'purge_threshold')


    def __init__(self, **kwargs):

        for name in kwargs.keys():
            if name not in self.defaults:
                raise ConfigurationError('unknown setting: ' + repr(name))

        values = dict(self.defaults)
        values.update(kwargs)

        for name in self._floats:
            value = values[name]
            if value is None:
                continue
            try:
                values[name] = float(value)
            except (TypeError, ValueError):
                raise ConfigurationError('setting %s must be a number, not %r' % (name, value))

        for name in self._integers:
            try:
                values[name] = int(values[name])
            except (TypeError, ValueError):
                raise ConfigurationError('setting %s must be an integer, not %r' % (name, values[name]))

        if values['handler_timeout'] is None and values['timeout'] is not None:
            values['handler_timeout'] = values['timeout'] * 0.8

        if values['client_id'] is None:
            values['client_id'] = socket.getfqdn()

        self.__dict__.update(values)
        self.validate()


    def __repr__(self):
        return '<Settings %r>' % (self.__dict__)


    def validate(self):

        if self.broker is not None and self.broker_list is not None:
            raise ConfigurationError('a broker URI and a broker list file are mutually exclusive')

        if self.timeout <= 0:
            raise ConfigurationError('the timeout must be positive')

        if self.handler_timeout <= 0 or self.handler_timeout >= self.timeout:
            raise ConfigurationError('the handler timeout (%s) must be positive and shorter than the timeout (%s)' % (self.handler_timeout, self.timeout))

        for name in ('ping_interval', 'reconnect_cooldown', 'retry_cooldown', 'drain_interval'):
            if getattr(self, name) < 0:
                raise ConfigurationError('setting %s must not be negative' % (name))

        for name in ('receipt_wait', 'frame_wait'):
            if getattr(self, name) <= 0:
                raise ConfigurationError('setting %s must be positive' % (name))

        if self.retry_limit < 1:
            raise ConfigurationError('the retry limit must be at least 1')

        if self.drain_budget < 1:
            raise ConfigurationError('the drain budget must be at least 1')

        if self.health is not None and not isinstance(self.health, dict):
            raise ConfigurationError("the 'health' setting must be an object")


    @classmethod
    def from_sources(cls, arguments=None, document=None):
        """ Combine settings from a configuration *document* (as returned by
            :func:`load`) and *arguments* (an :class:`argparse.Namespace`, or
            anything with matching attributes). Attributes set to None on
            *arguments* do not override the document.
        """

        values = dict()

        if document is not None:
            relay = document.get('relay', dict())
            values.update(relay)

        if arguments is not None:
            for name in cls.defaults.keys():
                value = getattr(arguments, name, None)
                if value is None:
                    continue
                values[name] = value

        return cls(**values)


    def brokers(self):
        """ Return the list of broker URIs to cycle through. """

        if self.broker is not None:
            return [self.broker]

        if self.broker_list is not None:
            return read_broker_list(self.broker_list)

        raise ConfigurationError('either a broker URI or a broker list file is required')


    def health_policy(self):

        health = self.health or dict()

        try:
            return Health(**health)
        except (TypeError, ValueError) as e:
            raise ConfigurationError('bad health settings: %s' % (e))


# end of class Settings



def load(filename):
    """ Load and sanity check the JSON configuration file *filename*,
        returning the decoded document.
    """

    try:
        raw = open(filename, 'rb').read()
    except OSError as e:
        raise ConfigurationError('cannot read configuration file %s: %s' % (filename, e.strerror))

    try:
        document = json.loads(raw)
    except (json.DecodeError, ValueError) as e:
        raise ConfigurationError('configuration file %s is not valid JSON: %s' % (filename, e))

    return check(document, filename)


def check(document, origin='configuration'):
    """ Validate the structure of a configuration *document*. """

    if not isinstance(document, dict):
        raise ConfigurationError('%s must be a JSON object' % (origin))

    for key in document.keys():
        if key not in ('handlers', 'relay'):
            raise ConfigurationError('%s: unexpected top-level key %r' % (origin, key))

    relay = document.get('relay', dict())
    if not isinstance(relay, dict):
        raise ConfigurationError("%s: 'relay' must be an object" % (origin))

    blocks = document.get('handlers', dict())
    if not isinstance(blocks, dict):
        raise ConfigurationError("%s: 'handlers' must be an object" % (origin))

    for name, block in blocks.items():
        if not isinstance(block, dict):
            raise ConfigurationError("%s: handler '%s' must be an object" % (origin, name))

        for key in block.keys():
            if key not in ('handler', 'destination', 'options', 'settings'):
                raise ConfigurationError("%s: handler '%s' has unexpected key %r" % (origin, name, key))

        if 'handler' not in block:
            raise ConfigurationError("%s: handler '%s' does not name a handler" % (origin, name))

        destination = block.get('destination')
        if not isinstance(destination, str) or destination == '':
            raise ConfigurationError("%s: handler '%s' needs a destination" % (origin, name))

        for key in ('options', 'settings'):
            if not isinstance(block.get(key, dict()), dict):
                raise ConfigurationError("%s: handler '%s' %s must be an object" % (origin, name, key))

    return document


def build_registry(document, health=None):
    """ Build a :class:`msgrelay.registry.HandlerRegistry` from the handler
        blocks in *document*. Every handler is instantiated here, so an
        unknown or malformed handler identifier is reported before the relay
        does anything else.
    """

    registry = HandlerRegistry(health)
    blocks = document.get('handlers', dict())

    for name, block in blocks.items():
        handler = handlers.load(block['handler'], name, block.get('settings'))
        options = block.get('options', dict())
        registry.register(name, block['destination'], options, handler)

    return registry


def read_broker_list(filename):
    """ Return the broker URIs listed in *filename*, one per line. Blank lines
        and lines beginning with '#' are ignored.
    """

    try:
        lines = open(filename, 'r').readlines()
    except OSError as e:
        raise ConfigurationError('cannot read broker list %s: %s' % (filename, e.strerror))

    uris = list()

    for line in lines:
        line = line.strip()
        if line == '' or line[0] == '#':
            continue
        uris.append(line)

    if len(uris) == 0:
        raise ConfigurationError('broker list %s is empty' % (filename))

    return uris


def directory(path, purpose):
    """ Confirm that *path* is usable as a queue directory, creating it if
        necessary.
    """

    if os.path.exists(path):
        if not os.path.isdir(path):
            raise ConfigurationError('%s directory is not a directory: %s' % (purpose, path))
        if os.access(path, os.W_OK) != True:
            raise ConfigurationError('cannot write to %s directory: %s' % (purpose, path))
    else:
        try:
            os.makedirs(path, mode=0o775)
        except OSError as e:
            raise ConfigurationError('cannot create %s directory %s: %s' % (purpose, path, e.strerror))

    return path


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
