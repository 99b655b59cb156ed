""" Handlers shipped with the relay. Anything more interesting is expected to
    live in its own package and be referenced by a dotted identifier.
"""

import logging

from . import Handler, Status
from ..errors import QueueError
from ..queue import DirQueue
from ..message import QueueEntry


class LogHandler(Handler):
    """ Log every message at the configured *level* (default 'info') and
        report success. Useful for verifying a subscription end to end.
    """

    def __init__(self, name, level='info', **settings):
        Handler.__init__(self, name, **settings)

        numeric = logging.getLevelName(str(level).upper())
        if not isinstance(numeric, int):
            raise ValueError('unknown log level: ' + repr(level))

        self.level = numeric
        self.logger = logging.getLogger('msgrelay.handler.' + name)


    def handle(self, headers, body):
        self.logger.log(self.level, "%s: %d bytes, headers %s", headers.get('destination', '?'), len(body), dict(headers))
        return Status.SUCCESS, ''


# end of class LogHandler



class QueueHandler(Handler):
    """ Store every message in a local directory queue rooted at *path*, from
        where another process can consume it. The stored entry keeps the
        original headers; the 'destination' header is replaced by
        *destination* if one is configured.
    """

    def __init__(self, name, path=None, destination=None, **settings):
        Handler.__init__(self, name, **settings)

        if not path:
            raise ValueError("the 'path' setting is required")

        try:
            self.queue = DirQueue(path)
        except QueueError as e:
            raise ValueError(str(e))

        self.destination = destination


    def handle(self, headers, body):

        headers = dict(headers)

        if self.destination is not None:
            headers['destination'] = self.destination

        try:
            self.queue.add(QueueEntry(headers, body))
        except QueueError as e:
            return Status.ERROR, str(e)

        return Status.SUCCESS, ''


# end of class QueueHandler


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
