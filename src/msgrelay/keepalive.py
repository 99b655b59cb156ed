""" Detection of a silently dead broker connection. A connection that has
    carried no inbound traffic for the idle interval is probed with a
    transaction that is immediately aborted: the round trip proves the broker
    is still answering without leaving anything behind on the broker side.
"""

import enum
import itertools
import logging
import time

from .errors import BrokerError


logger = logging.getLogger(__name__)


class Liveness(enum.Enum):
    ALIVE = 'alive'         # Recent activity, or the probe was answered.
    DEAD = 'dead'           # The probe went unanswered; close gracefully.
    BROKEN = 'broken'       # The probe itself failed; drop the connection.


class KeepaliveMonitor:
    """ Check a session's liveness once per control loop iteration. The
        *interval* is the idle time, in seconds, after which the connection
        is probed; zero disables probing. *wait* is how long to wait for
        the probe receipt.
    """

    def __init__(self, interval, wait, clock=time.time):

        self.interval = float(interval)
        self.wait = float(wait)
        self.clock = clock
        self.probes = 0
        self._sequence = itertools.count(1)


    def due(self, session):

        if self.interval <= 0:
            return False

        return self.clock() - session.last_alive >= self.interval


    def check(self, session):
        """ Return the :class:`Liveness` of *session*, probing the broker if
            the idle interval has elapsed.
        """

        if self.due(session) == False:
            return Liveness.ALIVE

        sequence = next(self._sequence)
        txid = 'keepalive-%d' % (sequence)
        receipt = 'keepalive-receipt-%d' % (sequence)
        broker = session.broker

        self.probes += 1
        logger.debug("no activity for %.0f seconds, probing with %s", self.clock() - session.last_alive, txid)

        try:
            broker.begin(txid, receipt)
            pending = broker.wait_for_receipts(self.wait)
            broker.abort(txid)
        except BrokerError as e:
            logger.warning("keepalive probe failed: %s", e)
            return Liveness.BROKEN

        if receipt in pending:
            logger.warning("keepalive probe unanswered after %.1f seconds, connection presumed dead", self.wait)
            return Liveness.DEAD

        session.touch()
        return Liveness.ALIVE


# end of class KeepaliveMonitor


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
