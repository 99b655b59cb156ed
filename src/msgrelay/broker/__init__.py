"""Broker client implementations."""

from ..errors import ConfigurationError
from .base import BrokerClient, destination_parts, redact

_SCHEMES = {
    "amqp": "amqp",
    "amqps": "amqp",
}


def client(uri):
    """Return a new, unconnected :class:`BrokerClient` suitable for *uri*.
    The implementation is chosen by the URI scheme."""

    scheme = uri.partition("://")[0].lower()

    try:
        backend = _SCHEMES[scheme]
    except KeyError:
        raise ConfigurationError(f"unsupported broker URI scheme: {scheme!r}")

    if backend == "amqp":
        from . import amqp
        return amqp.Client()

    raise ConfigurationError(f"unknown broker backend: {backend!r}")
