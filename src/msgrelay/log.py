""" Logging setup for the relay process. Library modules only ever call
    ``logging.getLogger(__name__)``; handlers and formatting are installed
    here, once, by the command line entry point.
"""

import logging
import logging.handlers
import os
import sys

from .errors import ConfigurationError


FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'
SYSLOG_FORMAT = 'msgrelay[%(process)d]: %(levelname)s %(name)s: %(message)s'
SYSLOG_SOCKET = '/dev/log'


def setup(level='info', syslog=False):
    """ Configure the root logger for the relay. Messages go to standard
        error, or to the local syslog daemon if *syslog* is True.
    """

    numeric = logging.getLevelName(str(level).upper())

    if not isinstance(numeric, int):
        raise ConfigurationError('unknown log level: ' + repr(level))

    if syslog:
        if os.path.exists(SYSLOG_SOCKET):
            address = SYSLOG_SOCKET
        else:
            address = ('localhost', logging.handlers.SYSLOG_UDP_PORT)

        handler = logging.handlers.SysLogHandler(address=address, facility=logging.handlers.SysLogHandler.LOG_DAEMON)
        handler.setFormatter(logging.Formatter(SYSLOG_FORMAT))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(FORMAT))

    root = logging.getLogger()

    for existing in list(root.handlers):
        root.removeHandler(existing)

    root.addHandler(handler)
    root.setLevel(numeric)

    # pika is chatty at INFO about every connection state change.
    logging.getLogger('pika').setLevel(max(numeric, logging.WARNING))

    return handler


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
