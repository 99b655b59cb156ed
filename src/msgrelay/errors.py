""" Exception classes for the relay. Every error raised at an adapter boundary
    (broker client, durable queue, handler invocation) is converted to one of
    these kinds before it leaves the adapter. Only :class:`ConfigurationError`
    and :class:`FatalExhaustion` are expected to terminate the process.
"""


class RelayError(Exception):
    """ Base class for all relay errors. """


class ConfigurationError(RelayError):
    """ The configuration or command line is unusable; startup aborts. """


class BrokerError(RelayError):
    """ The broker client reported a failure for a single operation. """


class BrokerConnectionError(BrokerError):
    """ The broker connection could not be established, or was lost. The
        relay reconnects after a cooldown.
    """


class SubscriptionError(BrokerError):
    """ One or more subscriptions could not be confirmed. The whole session
        is abandoned so that no partial subscription is left standing.
    """


class QueueError(RelayError):
    """ The durable queue adapter failed, or an entry could not be decoded. """


class HandlerTimeout(RelayError):
    """ A handler did not return within its time budget. """


class HandlerFailure(RelayError):
    """ A handler raised, returned an error status, or returned garbage. """


class UnroutableMessage(RelayError):
    """ An inbound message could not be matched to any handler. """


class DeliveryFailure(RelayError):
    """ An outbound queue entry could not be delivered to the broker. """


class FatalExhaustion(RelayError):
    """ Every configured handler has been deactivated. """


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
