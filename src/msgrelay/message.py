""" Class representations of the units of data moved by the relay: inbound
    broker :class:`Message` instances, outbound :class:`QueueEntry` records
    as stored in the durable queue, and the :class:`ErrorEnvelope` used to
    file anything that could not be processed.
"""

import base64
import binascii
import socket
import time
import types

from . import json
from .errors import QueueError


class Message:
    """ A single frame as delivered by the broker. The *headers* are an
        ordered mapping of header name to value; duplicate names are not
        allowed, the first occurrence wins if a sequence of pairs is supplied.
        The *body* is always bytes.

        The *subscription* is the subscription id the broker delivered the
        frame for, which is the name of the target handler; *message_id* is
        the broker-assigned identifier, if any; *ack_id* is the opaque token
        the broker client needs to acknowledge this frame.

        Instances are read-only once created.
    """

    __slots__ = ('headers', 'body', 'subscription', 'message_id', 'ack_id')

    def __init__(self, headers=None, body=b'', subscription=None, message_id=None, ack_id=None):

        object.__setattr__(self, 'headers', types.MappingProxyType(_ordered(headers)))
        object.__setattr__(self, 'body', _bytes(body))
        object.__setattr__(self, 'subscription', subscription)
        object.__setattr__(self, 'message_id', message_id)
        object.__setattr__(self, 'ack_id', ack_id)


    def __setattr__(self, name, value):
        raise AttributeError('Message instances are read-only')


    def __repr__(self):
        return '<Message subscription=%r id=%r headers=%d body=%d>' % (self.subscription, self.message_id, len(self.headers), len(self.body))


    def get(self, header, default=None):
        return self.headers.get(header, default)


# end of class Message



class Failure:
    """ Delivery failure bookkeeping for an outbound :class:`QueueEntry`.
        *last_failed* is a UNIX timestamp, *last_error* the reason given for
        the most recent failure, *count* the number of consecutive failures.
    """

    def __init__(self, last_failed=None, last_error=None, count=0):
        self.last_failed = last_failed
        self.last_error = last_error
        self.count = int(count)


    def record(self, when, reason):
        self.last_failed = when
        self.last_error = reason
        self.count += 1
        return self.count


    def cooling(self, now, cooldown):
        """ Return True if the last failure happened less than *cooldown*
            seconds before *now*.
        """

        if self.last_failed is None:
            return False

        return now - self.last_failed < cooldown


    def to_dict(self):
        return {'time': self.last_failed, 'error': self.last_error, 'count': self.count}


# end of class Failure



class QueueEntry:
    """ An outbound message as held by the durable queue. The broker
        destination is carried in the 'destination' header; every other
        header is passed through to the broker untouched.
    """

    def __init__(self, headers=None, body=b'', failure=None):
        self.headers = _ordered(headers)
        self.body = _bytes(body)

        if failure is None:
            failure = Failure()

        self.failure = failure


    @property
    def destination(self):
        return self.headers.get('destination')


    def encode(self):
        """ Return the bytes representation of this entry, suitable for
            storage in the durable queue.
        """

        text, encoding = encode_body(self.body)

        document = dict()
        document['headers'] = self.headers
        document['body'] = text
        document['encoding'] = encoding
        document['failure'] = self.failure.to_dict()

        return json.dumps(document)


    @classmethod
    def decode(cls, raw):
        """ The inverse of :func:`encode`. Raises :class:`QueueError` if the
            stored bytes do not describe a queue entry.
        """

        try:
            document = json.loads(raw)
        except (json.DecodeError, ValueError, TypeError) as e:
            raise QueueError('queue entry is not valid JSON: %s' % (e))

        if not isinstance(document, dict):
            raise QueueError('queue entry is not a JSON object')

        headers = document.get('headers', dict())
        if not isinstance(headers, dict):
            raise QueueError("queue entry 'headers' is not an object")

        body = document.get('body', '')
        if not isinstance(body, str):
            raise QueueError("queue entry 'body' is not a string")

        body = decode_body(body, document.get('encoding', 'utf-8'))

        failure = document.get('failure') or dict()
        try:
            failure = Failure(failure.get('time'), failure.get('error'), failure.get('count', 0))
        except (AttributeError, TypeError, ValueError):
            raise QueueError("queue entry 'failure' is malformed")

        return cls(headers, body, failure)


# end of class QueueEntry



class ErrorEnvelope:
    """ Wrapper for a message that could not be handled or delivered. The
        envelope records where (*host*), when (*timestamp*), why (*reason*)
        and by which part of the relay (*component*) the message was given
        up on, and embeds the original *headers* and *body* so the message
        can be inspected or replayed later.
    """

    def __init__(self, reason, component, headers=None, body=b'', host=None, timestamp=None):

        if host is None:
            host = socket.getfqdn()

        if timestamp is None:
            timestamp = time.time()

        self.host = host
        self.timestamp = timestamp
        self.reason = str(reason)
        self.component = component
        self.headers = _ordered(headers)
        self.body = _bytes(body)


    @classmethod
    def wrap(cls, message, reason, component, **kwargs):
        return cls(reason, component, message.headers, message.body, **kwargs)


    def to_entry(self, destination):
        """ Return a :class:`QueueEntry` carrying this envelope, addressed
            to the broker *destination*.
        """

        headers = dict()
        headers['destination'] = destination
        headers['host'] = self.host
        headers['timestamp'] = repr(self.timestamp)
        headers['reason'] = self.reason
        headers['component'] = self.component
        headers['content-type'] = 'application/json'

        text, encoding = encode_body(self.body)

        original = dict()
        original['headers'] = self.headers
        original['body'] = text
        original['encoding'] = encoding

        document = dict()
        document['host'] = self.host
        document['timestamp'] = self.timestamp
        document['reason'] = self.reason
        document['component'] = self.component
        document['message'] = original

        return QueueEntry(headers, json.dumps(document))


    @classmethod
    def from_entry(cls, entry):
        """ The inverse of :func:`to_entry`. Raises :class:`QueueError` if the
            entry body is not an error envelope.
        """

        try:
            document = json.loads(entry.body)
            original = document['message']
            body = decode_body(original['body'], original.get('encoding', 'utf-8'))
            return cls(document['reason'], document['component'], original['headers'], body, document['host'], document['timestamp'])
        except (json.DecodeError, ValueError, TypeError, KeyError) as e:
            raise QueueError('not an error envelope: %s' % (e))


    @property
    def message(self):
        return Message(self.headers, self.body)


# end of class ErrorEnvelope



def encode_body(body):
    """ Return a (text, encoding) tuple for the bytes *body*. Bodies that are
        valid UTF-8 are kept readable; anything else is base64 encoded.
    """

    try:
        return body.decode('utf-8'), 'utf-8'
    except UnicodeDecodeError:
        return base64.b64encode(body).decode('ascii'), 'base64'


def decode_body(text, encoding):
    """ The inverse of :func:`encode_body`. """

    if encoding == 'utf-8':
        return text.encode('utf-8')

    if encoding == 'base64':
        try:
            return base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as e:
            raise QueueError('bad base64 body: %s' % (e))

    raise QueueError('unknown body encoding: ' + repr(encoding))


def _ordered(headers):

    ordered = dict()

    if headers is None:
        return ordered

    try:
        pairs = headers.items()
    except AttributeError:
        pairs = headers

    for name, value in pairs:
        name = str(name)
        if name in ordered:
            continue
        ordered[name] = str(value)

    return ordered


def _bytes(body):

    if body is None:
        return b''

    if isinstance(body, str):
        return body.encode('utf-8')

    return bytes(body)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
