"""Broker client interface.

This is the contract the session, dispatch, keepalive and delivery engines
rely on. It is modelled on a receipt-oriented publish/subscribe client:
operations can carry a receipt token, and :meth:`BrokerClient.wait_for_receipts`
reports which tokens are still unconfirmed.

Implementations convert every library-specific failure into
:class:`msgrelay.errors.BrokerError` or one of its subclasses.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Set

from ..message import Message


class BrokerClient(ABC):
    """Minimal contract for a publish/subscribe broker client."""

    @abstractmethod
    def connect(self, uri: str, timeout: float) -> None:
        """Establish the connection, giving up after *timeout* seconds."""

    @abstractmethod
    def disconnect(self, graceful: bool = True) -> None:
        """Tear down the connection. An abrupt disconnect skips any
        protocol-level goodbye; the connection is assumed to be suspect."""

    @abstractmethod
    def subscribe(self, destination: str, options: Mapping[str, Any], receipt: str) -> None:
        """Subscribe to *destination*. ``options['id']`` is the subscription
        id that inbound frames will carry."""

    @abstractmethod
    def unsubscribe(self, id: str) -> None:
        """Cancel the subscription with the given id."""

    @abstractmethod
    def send(self, destination: str, headers: Mapping[str, str], body: bytes, receipt: Optional[str] = None) -> None:
        """Send one message."""

    @abstractmethod
    def ack(self, ack_id: Any) -> None:
        """Acknowledge an inbound frame by its ack token."""

    @abstractmethod
    def begin(self, txid: str, receipt: Optional[str] = None) -> None:
        """Begin a transaction."""

    @abstractmethod
    def abort(self, txid: str) -> None:
        """Abort a transaction begun with :meth:`begin`."""

    @abstractmethod
    def wait_for_receipts(self, timeout: float) -> Set[str]:
        """Wait up to *timeout* seconds for outstanding receipts; return the
        set of receipt tokens still pending."""

    @abstractmethod
    def wait_for_frames(self, timeout: float) -> List[Message]:
        """Wait up to *timeout* seconds for inbound frames, returning all of
        those received (possibly none)."""

    @property
    def connected(self) -> bool:
        """Whether the client currently holds an open connection."""
        return False


def destination_parts(destination: str) -> Dict[str, str]:
    """Split a destination of the form ``/queue/<name>``, ``/topic/<key>``,
    ``/exchange/<exchange>/<key>`` or ``/amq/queue/<name>`` into its kind
    and components. A bare name is treated as a queue name.
    """

    if not destination:
        raise ValueError('empty destination')

    if not destination.startswith('/'):
        return {'kind': 'queue', 'name': destination}

    parts = destination[1:].split('/', 2)
    kind = parts[0]

    if kind == 'queue' and len(parts) >= 2 and parts[1]:
        return {'kind': 'queue', 'name': '/'.join(parts[1:])}

    if kind == 'amq' and len(parts) == 3 and parts[1] == 'queue' and parts[2]:
        return {'kind': 'queue', 'name': parts[2]}

    if kind == 'topic' and len(parts) >= 2 and parts[1]:
        return {'kind': 'topic', 'key': '/'.join(parts[1:])}

    if kind == 'exchange' and len(parts) >= 2 and parts[1]:
        key = parts[2] if len(parts) == 3 else ''
        return {'kind': 'exchange', 'exchange': parts[1], 'key': key}

    raise ValueError('unrecognized destination: ' + repr(destination))


def redact(uri: Optional[str]) -> str:
    """Strip any credentials from a broker URI so it can be logged."""

    if uri is None:
        return "<none>"

    scheme, sep, rest = uri.partition("://")
    if not sep or "@" not in rest:
        return uri

    return scheme + "://" + rest.split("@", 1)[1]
