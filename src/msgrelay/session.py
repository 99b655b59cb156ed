""" The broker session state machine. A :class:`Session` owns exactly one
    broker client connection for its whole life:

        DISCONNECTED -> CONNECTING -> SUBSCRIBING -> LIVE -> DISCONNECTED

    A session is never reused; the relay creates a new one for each
    connection attempt.
"""

import enum
import itertools
import logging

from . import broker
from .dispatch import Dispatcher
from .errors import BrokerConnectionError, BrokerError, SubscriptionError
from .keepalive import KeepaliveMonitor, Liveness


logger = logging.getLogger(__name__)


class State(enum.Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    SUBSCRIBING = 'subscribing'
    LIVE = 'live'


class End(enum.Enum):
    """ Why a live session ended. """

    ERROR = 'error'             # Broker I/O error or dead connection.
    QUIT = 'quit'               # Cooperative quit request.
    ABORT = 'abort'             # Signal-driven abort.
    EXHAUSTED = 'exhausted'     # No active handlers remain.


class Session:
    """ One connection to one broker, within the relay *context*. The
        broker client is created from *client*, or from the context's client
        factory if not given.
    """

    def __init__(self, context, uri, client=None):

        if client is None:
            client = context.client_factory(uri)

        self.context = context
        self.uri = uri
        self.broker = client
        self.state = State.DISCONNECTED
        self.last_alive = None
        self.subscriptions = dict()

        settings = context.settings
        self.dispatcher = Dispatcher(context)
        self.keepalive = KeepaliveMonitor(settings.ping_interval, settings.receipt_wait, context.clock)
        self.next_drain = None
        self._receipts = itertools.count(1)


    def __repr__(self):
        return '<Session %s %s>' % (broker.redact(self.uri), self.state.value)


    def touch(self):
        """ Record inbound activity on this connection. """

        self.last_alive = self.context.clock()


    def connect(self):
        """ Establish the connection, bounded by the configured timeout.
            Raises :class:`BrokerConnectionError` on failure, leaving the
            session disconnected.
        """

        self.state = State.CONNECTING
        logger.info("connecting to %s", broker.redact(self.uri))

        try:
            self.broker.connect(self.uri, self.context.settings.timeout)
        except BrokerError as e:
            self.state = State.DISCONNECTED
            raise BrokerConnectionError(str(e))

        self.touch()


    def subscribe_all(self):
        """ Subscribe every active handler, each request with its own receipt,
            then wait for all the receipts. If any subscription fails or goes
            unconfirmed the connection is dropped, so that no partial set of
            subscriptions survives, and :class:`SubscriptionError` is raised.
        """

        self.state = State.SUBSCRIBING
        receipts = dict()

        try:
            for entry in self.context.registry.active():
                receipt = 'subscribe-%d' % (next(self._receipts))
                self.broker.subscribe(entry.destination, entry.subscribe_options(), receipt)
                receipts[receipt] = entry
                self.subscriptions[entry.name] = entry.destination

            if receipts:
                pending = self.broker.wait_for_receipts(self.context.settings.timeout)
            else:
                pending = set()

        except BrokerError as e:
            self.disconnect(graceful=False)
            raise SubscriptionError('subscription failed: %s' % (e))

        missing = [receipts[receipt].name for receipt in receipts if receipt in pending]

        if missing:
            self.disconnect(graceful=False)
            raise SubscriptionError('no subscription receipt for: ' + ', '.join(sorted(missing)))

        self.state = State.LIVE
        self.touch()

        for name, destination in self.subscriptions.items():
            logger.info("handler '%s' subscribed to %s", name, destination)


    def unsubscribe(self, name):
        """ Best-effort removal of the subscription for handler *name*. """

        if name not in self.subscriptions:
            return False

        try:
            self.broker.unsubscribe(name)
        except BrokerError as e:
            logger.warning("cannot unsubscribe handler '%s': %s", name, e)
            return False

        del self.subscriptions[name]
        logger.info("handler '%s' unsubscribed", name)
        return True


    def send(self, destination, headers, body, receipt=None):
        self.broker.send(destination, headers, body, receipt)


    def ack(self, message):
        self.broker.ack(message.ack_id)


    def live(self):
        """ Run the live receive loop until the session ends, returning an
            :class:`End` describing why. The connection is torn down before
            this method returns.
        """

        context = self.context
        settings = context.settings
        registry = context.registry
        wait = min(settings.frame_wait, settings.timeout)

        while True:
            if context.aborted:
                self.disconnect(graceful=True)
                return End.ABORT

            if context.quit_requested():
                self.disconnect(graceful=True)
                return End.QUIT

            try:
                frames = self.broker.wait_for_frames(wait)
            except BrokerError as e:
                logger.warning("connection to %s lost: %s", broker.redact(self.uri), e)
                self.disconnect(graceful=False)
                return End.ERROR

            for frame in frames:
                self.touch()
                self.dispatcher.dispatch(self, frame)

                if registry.exhausted():
                    logger.critical("no active handlers remain")
                    self.disconnect(graceful=True)
                    return End.EXHAUSTED

            self.drain()

            if self.broker.connected == False:
                logger.warning("connection to %s lost", broker.redact(self.uri))
                self.disconnect(graceful=False)
                return End.ERROR

            liveness = self.keepalive.check(self)

            if liveness is Liveness.DEAD:
                self.disconnect(graceful=True)
                return End.ERROR

            if liveness is Liveness.BROKEN:
                self.disconnect(graceful=False)
                return End.ERROR


    def drain(self):
        """ Run an outbound delivery pass if one is due. """

        outbound = self.context.outbound
        if outbound is None:
            return

        now = self.context.clock()
        if self.next_drain is not None and now < self.next_drain:
            return

        settings = self.context.settings
        self.next_drain = now + settings.drain_interval

        tally = outbound.drain_once(self.broker, settings.drain_budget)

        if tally.interrupted:
            logger.warning("outbound delivery interrupted by a broker connection error")


    def disconnect(self, graceful=True):
        """ Close the connection. A graceful disconnect says goodbye to the
            broker; an abrupt one just drops the connection.
        """

        if self.state is State.DISCONNECTED and self.broker.connected == False:
            return

        try:
            self.broker.disconnect(graceful)
        except BrokerError as e:
            logger.debug("error while disconnecting: %s", e)

        self.subscriptions.clear()
        self.state = State.DISCONNECTED

        kind = 'closed' if graceful else 'dropped'
        logger.info("connection to %s %s", broker.redact(self.uri), kind)


# end of class Session


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
