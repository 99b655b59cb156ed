""" Inbound dispatch: route one broker frame to the handler it was delivered
    for, bound the handler's run time, score the outcome against the
    handler's health, file anything unhandled, and acknowledge the frame.
"""

import enum
import logging
import time

from .errors import BrokerError, HandlerFailure, HandlerTimeout, QueueError, UnroutableMessage
from .handlers import Status
from .invoke import Outcome
from .message import ErrorEnvelope
from .registry import Severity


logger = logging.getLogger(__name__)

# Headers marking a monitoring probe. A probe carries the test marker and
# names this relay's client id; it is answered directly and never reaches a
# handler.

PROBE_TEST = 'probe-test'
PROBE_CLIENT = 'probe-client'


class Disposition(enum.Enum):
    HANDLED = 'handled'
    UNHANDLED = 'unhandled'
    PROBE = 'probe'
    DROPPED = 'dropped'


class Dispatcher:
    """ Dispatch inbound frames within the given relay *context*, which
        supplies the handler registry, the handler invoker, the error sink
        and the settings.
    """

    def __init__(self, context):
        self.context = context


    def dispatch(self, session, message):
        """ Handle one inbound *message* received on *session*, returning a
            :class:`Disposition`. Nothing raised by the broker, a handler,
            or the error sink escapes this call.
        """

        registry = self.context.registry
        name = message.subscription

        if name is None:
            self.unhandled(message, UnroutableMessage('missing subscription header'), 'dispatch')
            self.ack(session, message)
            return Disposition.UNHANDLED

        try:
            entry = registry.lookup(name)
        except KeyError:
            self.unhandled(message, UnroutableMessage('unexpected subscription header: %s' % (name)), 'dispatch')
            self.ack(session, message)
            return Disposition.UNHANDLED

        if entry.active == False:
            # The handler is being, or has been, taken out of service. The
            # frame is left unacknowledged for the broker to deal with.
            logger.debug("dropping frame for inactive handler '%s'", name)
            return Disposition.DROPPED

        if self.is_probe(message):
            disposition = self.reply(session, message)
            self.ack(session, message)
            return disposition

        result = self.context.invoker.call(entry.handler.handle, message.headers, message.body)
        severity, error = self.judge(result)

        if severity is None:
            registry.record_success(name)
            disposition = Disposition.HANDLED
        else:
            deactivated = registry.record_failure(name, severity)
            self.unhandled(message, error, name)
            disposition = Disposition.UNHANDLED

            if deactivated:
                session.unsubscribe(name)

        self.ack(session, message)
        return disposition


    def judge(self, result):
        """ Translate an invocation :class:`msgrelay.invoke.Result` into a
            (severity, error) tuple. Both are None for success; otherwise
            the error is a :class:`HandlerTimeout` or :class:`HandlerFailure`
            describing what went wrong.
        """

        timeout = self.context.invoker.timeout

        if result.outcome is Outcome.TIMEOUT:
            return Severity.MINOR, HandlerTimeout('handler timed out after %.1f seconds' % (timeout))

        if result.outcome is Outcome.RAISED:
            error = result.error
            if result.debug:
                logger.debug("handler traceback:\n%s", result.debug)
            return Severity.MAJOR, HandlerFailure('handler raised %s: %s' % (error.__class__.__name__, error))

        value = result.value

        try:
            status, reason = value
            status = Status.coerce(status)
        except (TypeError, ValueError):
            return Severity.MAJOR, HandlerFailure('handler returned an invalid status: %r' % (value,))

        if status is Status.SUCCESS:
            return None, None

        if status is Status.WARNING:
            return Severity.MINOR, HandlerFailure('handler warning: %s' % (reason))

        return Severity.MAJOR, HandlerFailure('handler error: %s' % (reason))


    def is_probe(self, message):

        marker = message.get(PROBE_TEST)
        if marker is None:
            return False

        return message.get(PROBE_CLIENT) == self.context.settings.client_id


    def reply(self, session, message):
        """ Answer a monitoring probe by echoing it back to its reply-to
            destination with a fresh timestamp.
        """

        reply_to = message.get('reply-to')

        if not reply_to:
            self.unhandled(message, UnroutableMessage('probe without reply-to header'), 'dispatch')
            return Disposition.UNHANDLED

        headers = dict()
        headers[PROBE_TEST] = message.get(PROBE_TEST)
        headers[PROBE_CLIENT] = message.get(PROBE_CLIENT)
        headers['timestamp'] = '%d' % (time.time() * 1000)

        try:
            session.send(reply_to, headers, message.body)
        except BrokerError as e:
            logger.warning("cannot reply to probe at %s: %s", reply_to, e)
            return Disposition.UNHANDLED

        logger.debug("answered probe, reply sent to %s", reply_to)
        return Disposition.PROBE


    def unhandled(self, message, error, component):
        """ File *message* to the error sink; the *error* is the
            :class:`msgrelay.errors.RelayError` saying why it was not handled.
        """

        kind = error.__class__.__name__
        logger.info("unhandled message for %s (%s): %s", component, kind, error)

        envelope = ErrorEnvelope.wrap(message, str(error), component, host=self.context.hostname)

        try:
            self.context.error_sink.file(envelope)
        except QueueError as e:
            logger.error("cannot file unhandled message for %s (%s): %s", component, kind, e)


    def ack(self, session, message):

        if message.ack_id is None:
            return

        try:
            session.ack(message)
        except BrokerError as e:
            logger.warning("cannot acknowledge message %s: %s", message.message_id, e)


# end of class Dispatcher


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
