""" Python implementation of a monitoring message relay. The relay keeps a
    subscription to a message broker on behalf of a set of configured
    handlers, dispatches inbound messages to them, and delivers messages
    waiting in a local durable queue back out to the broker.
"""

# Utility components.

from . import errors
from . import json
from . import message

# Adapters around the broker and the durable queue.

from . import broker
from . import queue

# Engines.

from . import handlers
from . import registry
from . import invoke
from . import dispatch
from . import keepalive
from . import delivery
from . import session

# Primary public-facing interfaces.

from . import config
from .config import Settings
from .handlers import Handler, Status
from .relay import Relay, RelayContext

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
