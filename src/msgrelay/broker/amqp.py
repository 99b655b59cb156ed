"""AMQP broker client built on pika.

The receipt-oriented :class:`~msgrelay.broker.base.BrokerClient` contract is
mapped onto AMQP 0-9-1 as follows:

    - subscribe: ``basic.consume`` on a single channel; the ``consume-ok``
      reply is the receipt. Topic and exchange destinations get an exclusive,
      server-named queue bound to the exchange.
    - send: ``basic.publish`` on a channel in publisher-confirm mode; the
      broker confirm is the receipt, a nack or an unroutable return is an
      error.
    - begin/abort: ``tx.select``/``tx.rollback`` on a throwaway channel, which
      exercises a full round trip without any broker-visible side effect.
    - ack: ``basic.ack`` by delivery tag.

pika's BlockingConnection completes these round trips synchronously, so
receipts are settled before the call returns; anything left pending is given
one more chance inside :meth:`Client.wait_for_receipts`.

The broker timeout given to :meth:`Client.connect` bounds every blocking call:
it is the socket and connection set-up timeout, and the heartbeat interval is
half of it. A broker that stops answering in the middle of a consume, confirm,
transaction or ack is declared dead by pika's heartbeat checker, which raises
out of the blocked call as a connection error.

Tearing down a session always closes the AMQP connection, gracefully or not,
so no consumer or prefetched delivery is left behind on the broker side.
"""

from __future__ import annotations

import collections
import logging
from typing import Any, Dict, List, Mapping, Optional, Set

import pika
import pika.exceptions

from ..errors import BrokerConnectionError, BrokerError, SubscriptionError
from ..message import Message
from .base import BrokerClient, destination_parts, redact


logger = logging.getLogger(__name__)

_TOPIC_EXCHANGE = "amq.topic"

# Frame headers that map onto AMQP basic properties rather than the
# free-form headers table.

_PROPERTIES = (
    ("content-type", "content_type"),
    ("content-encoding", "content_encoding"),
    ("correlation-id", "correlation_id"),
    ("reply-to", "reply_to"),
    ("expiration", "expiration"),
    ("message-id", "message_id"),
    ("type", "type"),
    ("user-id", "user_id"),
    ("app-id", "app_id"),
)

# Failures that concern a single operation; anything else from pika means
# the channel or connection can no longer be trusted.

_OPERATION_ERRORS = (
    pika.exceptions.UnroutableError,
    pika.exceptions.NackError,
    pika.exceptions.DuplicateConsumerTag,
)

_ALL_ERRORS = (
    pika.exceptions.AMQPError,
    pika.exceptions.ChannelError,
    OSError,
)


class Client(BrokerClient):
    """Broker client for an AMQP broker such as RabbitMQ."""

    prefetch = 20

    def __init__(self):
        self._connection = None
        self._channel = None
        self._inbox: collections.deque = collections.deque()
        self._pending: Set[str] = set()
        self._transactions: Dict[str, Any] = {}
        self.uri = None

    @property
    def connected(self) -> bool:
        return self._connection is not None and self._connection.is_open

    def connect(self, uri: str, timeout: float) -> None:
        try:
            parameters = pika.URLParameters(uri)
        except (ValueError, TypeError) as e:
            raise BrokerConnectionError(f"bad broker URI {uri!r}: {e}") from e

        parameters.heartbeat = heartbeat(timeout)
        parameters.socket_timeout = timeout
        parameters.stack_timeout = timeout
        parameters.blocked_connection_timeout = timeout
        parameters.connection_attempts = 1

        self.uri = uri

        try:
            self._connection = pika.BlockingConnection(parameters)
            self._channel = self._connection.channel()
            self._channel.confirm_delivery()
            self._channel.basic_qos(prefetch_count=self.prefetch)
        except _ALL_ERRORS as e:
            self._drop()
            raise BrokerConnectionError(f"cannot connect to {redact(uri)}: {e!r}") from e

    def disconnect(self, graceful: bool = True) -> None:
        if graceful:
            self._drop(200, "normal shutdown")
        else:
            self._drop(320, "session abandoned")

    def subscribe(self, destination: str, options: Mapping[str, Any], receipt: str) -> None:
        channel = self._require_channel()
        self._pending.add(receipt)

        try:
            parts = destination_parts(destination)
        except ValueError as e:
            raise SubscriptionError(str(e)) from e

        consumer_tag = options.get("id")
        exclusive = str(options.get("exclusive", "")).lower() == "true"

        try:
            if parts["kind"] == "queue":
                queue = parts["name"]
            else:
                queue = self._bind(channel, parts)

            channel.basic_consume(
                queue=queue,
                on_message_callback=self._on_message,
                auto_ack=False,
                exclusive=exclusive,
                consumer_tag=consumer_tag,
            )
        except _OPERATION_ERRORS as e:
            raise SubscriptionError(f"subscribe to {destination}: {e!r}") from e
        except _ALL_ERRORS as e:
            raise BrokerConnectionError(f"subscribe to {destination}: {e!r}") from e

        self._pending.discard(receipt)

    def unsubscribe(self, id: str) -> None:
        channel = self._require_channel()

        try:
            channel.basic_cancel(consumer_tag=id)
        except _ALL_ERRORS as e:
            raise BrokerError(f"unsubscribe {id}: {e!r}") from e

    def send(self, destination: str, headers: Mapping[str, str], body: bytes, receipt: Optional[str] = None) -> None:
        channel = self._require_channel()

        try:
            parts = destination_parts(destination)
        except ValueError as e:
            raise BrokerError(str(e)) from e

        if parts["kind"] == "queue":
            exchange, routing_key = "", parts["name"]
        elif parts["kind"] == "topic":
            exchange, routing_key = _TOPIC_EXCHANGE, parts["key"]
        else:
            exchange, routing_key = parts["exchange"], parts["key"]

        if receipt is not None:
            self._pending.add(receipt)

        try:
            channel.basic_publish(
                exchange=exchange,
                routing_key=routing_key,
                body=body,
                properties=_properties(headers),
                mandatory=True,
            )
        except _OPERATION_ERRORS as e:
            raise BrokerError(f"send to {destination}: {e!r}") from e
        except _ALL_ERRORS as e:
            raise BrokerConnectionError(f"send to {destination}: {e!r}") from e

        if receipt is not None:
            self._pending.discard(receipt)

    def ack(self, ack_id: Any) -> None:
        channel = self._require_channel()

        try:
            channel.basic_ack(delivery_tag=ack_id)
        except _ALL_ERRORS as e:
            raise BrokerConnectionError(f"ack {ack_id}: {e!r}") from e

    def begin(self, txid: str, receipt: Optional[str] = None) -> None:
        if self._connection is None:
            raise BrokerConnectionError("not connected")

        if receipt is not None:
            self._pending.add(receipt)

        try:
            channel = self._connection.channel()
            channel.tx_select()
        except _ALL_ERRORS as e:
            raise BrokerConnectionError(f"begin {txid}: {e!r}") from e

        self._transactions[txid] = channel

        if receipt is not None:
            self._pending.discard(receipt)

    def abort(self, txid: str) -> None:
        try:
            channel = self._transactions.pop(txid)
        except KeyError:
            raise BrokerError(f"no such transaction: {txid}")

        try:
            channel.tx_rollback()
            channel.close()
        except _ALL_ERRORS as e:
            raise BrokerConnectionError(f"abort {txid}: {e!r}") from e

    def wait_for_receipts(self, timeout: float) -> Set[str]:
        if self._pending and self.connected:
            try:
                self._connection.process_data_events(time_limit=timeout)
            except _ALL_ERRORS as e:
                raise BrokerConnectionError(f"waiting for receipts: {e!r}") from e

        return set(self._pending)

    def wait_for_frames(self, timeout: float) -> List[Message]:
        if self._connection is None:
            raise BrokerConnectionError("not connected")

        if not self._inbox:
            try:
                self._connection.process_data_events(time_limit=timeout)
            except _ALL_ERRORS as e:
                raise BrokerConnectionError(f"waiting for frames: {e!r}") from e

        frames = list(self._inbox)
        self._inbox.clear()
        return frames

    # --- internal ---

    def _bind(self, channel, parts: Dict[str, str]) -> str:
        """Declare an exclusive server-named queue bound to the exchange
        described by *parts*, returning the queue name."""

        if parts["kind"] == "topic":
            exchange, routing_key = _TOPIC_EXCHANGE, parts["key"]
        else:
            exchange, routing_key = parts["exchange"], parts["key"]

        result = channel.queue_declare(queue="", exclusive=True)
        queue = result.method.queue
        channel.queue_bind(exchange=exchange, queue=queue, routing_key=routing_key)
        return queue

    def _drop(self, reply_code: int = 320, reply_text: str = "session abandoned") -> None:
        connection = self._connection

        if connection is not None and connection.is_open:
            try:
                connection.close(reply_code=reply_code, reply_text=reply_text)
            except _ALL_ERRORS as e:
                logger.debug("error closing connection to %s: %r", redact(self.uri), e)

        self._connection = None
        self._channel = None
        self._inbox.clear()
        self._pending.clear()
        self._transactions.clear()

    def _on_message(self, _ch, method, properties, body: bytes) -> None:
        self._inbox.append(_frame(method, properties, body))

    def _require_channel(self):
        if self._channel is None:
            raise BrokerConnectionError("not connected")
        return self._channel


def heartbeat(timeout: float) -> int:
    """Return the AMQP heartbeat interval, in whole seconds, for the broker
    *timeout*."""

    return max(1, int(timeout // 2))


def _frame(method, properties, body: bytes) -> Message:
    """Translate a pika delivery into a :class:`Message`."""

    headers: Dict[str, str] = {}

    if method.exchange:
        headers["destination"] = f"/exchange/{method.exchange}/{method.routing_key}"
    else:
        headers["destination"] = f"/queue/{method.routing_key}"

    headers["subscription"] = method.consumer_tag

    for name, attribute in _PROPERTIES:
        value = getattr(properties, attribute, None)
        if value is not None:
            headers[name] = str(value)

    if properties.priority is not None:
        headers["priority"] = str(properties.priority)

    if properties.delivery_mode == 2:
        headers["persistent"] = "true"

    if method.redelivered:
        headers["redelivered"] = "true"

    for name, value in (properties.headers or {}).items():
        if name in headers:
            continue
        if isinstance(value, bytes):
            value = value.decode("utf-8", "replace")
        headers[name] = str(value)

    return Message(
        headers,
        body,
        subscription=method.consumer_tag,
        message_id=properties.message_id,
        ack_id=method.delivery_tag,
    )


def _properties(headers: Mapping[str, str]) -> pika.BasicProperties:
    """Translate outbound frame headers into AMQP basic properties."""

    fields: Dict[str, Any] = {}
    table: Dict[str, str] = {}
    mapped = dict(_PROPERTIES)

    for name, value in headers.items():
        if name == "destination":
            continue
        elif name in mapped:
            fields[mapped[name]] = value
        elif name == "priority":
            try:
                fields["priority"] = int(value)
            except ValueError:
                table[name] = value
        elif name == "persistent":
            if str(value).lower() == "true":
                fields["delivery_mode"] = 2
        else:
            table[name] = value

    if table:
        fields["headers"] = table

    return pika.BasicProperties(**fields)

