""" The relay control loop, and the :class:`RelayContext` threaded through
    every engine in place of process-wide state.

    The developer-facing entry point is :class:`Relay`: build one from
    :class:`msgrelay.config.Settings` with :func:`Relay.from_settings`, then
    call :func:`Relay.run`, which keeps a broker session alive until asked to
    stop or until no handler is left to dispatch to.
"""

import logging
import os
import socket
import threading
import time

from . import broker
from . import config
from .delivery import Outbound
from .errors import BrokerConnectionError, ConfigurationError, FatalExhaustion, SubscriptionError
from .invoke import Invoker
from .queue import DirQueue, ErrorSink
from .session import End, Session


logger = logging.getLogger(__name__)


class RelayContext:
    """ Everything the engines share for one relay run: the *settings*,
        the handler *registry*, the *error_sink*, the optional *outbound*
        delivery engine, the handler *invoker*, and the *abort* event set
        by signal handlers. *client_factory* turns a broker URI into a new
        broker client; *clock* returns the current UNIX time.
    """

    def __init__(self, settings, registry, error_sink, outbound=None, invoker=None, client_factory=None, abort=None, clock=time.time, hostname=None):

        if invoker is None:
            invoker = Invoker(settings.handler_timeout)

        if client_factory is None:
            client_factory = broker.client

        if abort is None:
            abort = threading.Event()

        if hostname is None:
            hostname = socket.getfqdn()

        self.settings = settings
        self.registry = registry
        self.error_sink = error_sink
        self.outbound = outbound
        self.invoker = invoker
        self.client_factory = client_factory
        self.abort = abort
        self.clock = clock
        self.hostname = hostname


    @property
    def aborted(self):
        return self.abort.is_set()


    def wait(self, seconds):
        """ Sleep for *seconds*, returning early (and True) if an abort is
            requested in the meantime.
        """

        return self.abort.wait(seconds)


    def quit_requested(self):
        """ Check for the external quit file. The file is consumed when
            found, so that a restart is not immediately told to quit again.
        """

        quit_file = self.settings.quit_file

        if quit_file is None or os.path.exists(quit_file) == False:
            return False

        logger.info("quit file %s found, shutting down", quit_file)

        try:
            os.remove(quit_file)
        except OSError as e:
            logger.warning("cannot remove quit file %s: %s", quit_file, e.strerror)

        return True


# end of class RelayContext



class Relay:
    """ Reconnecting control loop around :class:`msgrelay.session.Session`.
        Broker URIs are tried in rotation; a failed connection or
        subscription attempt is followed by the reconnect cooldown.
    """

    def __init__(self, context, uris):

        if len(uris) == 0:
            raise ConfigurationError('no broker URIs configured')

        self.context = context
        self.uris = list(uris)
        self.session = None
        self.attempts = 0


    @classmethod
    def from_settings(cls, settings, abort=None, document=None):
        """ Assemble a relay from *settings*: load the handler configuration,
            open the error and outbound queues, and set up the context. An
            already loaded configuration *document* is used as-is.
        """

        if settings.error_queue is None:
            raise ConfigurationError('an error queue directory is required')

        if document is not None:
            config.check(document)
        elif settings.config is not None:
            document = config.load(settings.config)
        else:
            document = {'handlers': {}}

        registry = config.build_registry(document, settings.health_policy())
        uris = settings.brokers()

        for uri in uris:
            # Fail fast on an unsupported scheme.
            broker.client(uri)

        hostname = socket.getfqdn()
        errors = DirQueue(config.directory(settings.error_queue, 'error queue'))
        sink = ErrorSink(errors, settings.error_destination)

        outbound = None
        if settings.outbound_queue is not None:
            queue = DirQueue(config.directory(settings.outbound_queue, 'outbound queue'))
            outbound = Outbound(queue, sink, settings.retry_limit, settings.retry_cooldown,
                                settings.receipt_wait, settings.purge_threshold, host=hostname)

        if len(registry) == 0 and outbound is None:
            raise ConfigurationError('nothing to do: no handlers and no outbound queue configured')

        context = RelayContext(settings, registry, sink, outbound, abort=abort, hostname=hostname)
        return cls(context, uris)


    def next_uri(self):
        uri = self.uris[self.attempts % len(self.uris)]
        self.attempts += 1
        return uri


    def run(self):
        """ Keep a live broker session going until a quit request or an abort.
            Raises :class:`FatalExhaustion` if every handler is deactivated.
        """

        context = self.context
        cooldown = context.settings.reconnect_cooldown

        try:
            while True:
                if context.aborted or context.quit_requested():
                    break

                if context.registry.exhausted():
                    raise FatalExhaustion('no active handlers remain')

                self.session = Session(context, self.next_uri())

                try:
                    self.session.connect()
                    self.session.subscribe_all()
                except (BrokerConnectionError, SubscriptionError) as e:
                    logger.error("%s; retrying in %.0f seconds", e, cooldown)
                    self.session = None
                    context.wait(cooldown)
                    continue

                end = self.session.live()
                self.session = None

                if end is End.EXHAUSTED:
                    raise FatalExhaustion('no active handlers remain')

                if end is End.QUIT or end is End.ABORT:
                    break

                logger.info("session ended (%s), reconnecting", end.value)
        finally:
            self.cleanup()


    def cleanup(self):
        """ Best-effort shutdown: disconnect any session still open and close
            the handlers.
        """

        session = self.session
        self.session = None

        if session is not None:
            session.disconnect(graceful=True)

        self.context.registry.close()


# end of class Relay


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
