""" Durable queue adapter. The relay only ever sees the :class:`DurableQueue`
    contract: a crash-recoverable holding area of opaque entries, each of
    which must be locked before it is read, rewritten, or removed.
    :class:`DirQueue` implements the contract with the :mod:`dirq` directory
    queue, one file per entry.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

import dirq.Exceptions
from dirq.QueueSimple import QueueSimple

from .errors import QueueError
from .message import QueueEntry


logger = logging.getLogger(__name__)


class DurableQueue(ABC):
    """ Minimal contract for a lockable, persistent queue of
        :class:`msgrelay.message.QueueEntry` instances.
    """

    @abstractmethod
    def names(self) -> List[str]:
        """ Return a snapshot of the names of the entries currently queued. """

    @abstractmethod
    def lock(self, name: str) -> bool:
        """ Lock the entry; return False if it is already locked elsewhere,
            or no longer exists.
        """

    @abstractmethod
    def unlock(self, name: str) -> None:
        """ Release a lock taken with :func:`lock`. """

    @abstractmethod
    def read(self, name: str) -> QueueEntry:
        """ Return the decoded contents of a locked entry. """

    @abstractmethod
    def read_raw(self, name: str) -> bytes:
        """ Return the stored bytes of a locked entry, undecoded. """

    @abstractmethod
    def add(self, entry: QueueEntry) -> str:
        """ Store a new entry, returning its name. """

    @abstractmethod
    def remove(self, name: str) -> None:
        """ Remove a locked entry. """

    @abstractmethod
    def count(self) -> int:
        """ Return the number of queued entries. """

    def purge(self) -> None:
        """ Housekeeping hint: clean up stale temporary files and locks. The
            default implementation does nothing.
        """


class DirQueue(DurableQueue):
    """ :class:`DurableQueue` backed by :class:`dirq.QueueSimple`, rooted at
        the directory *path*. The directory is created if necessary.
    """

    # Arguments handed to QueueSimple.purge(); locks older than this are
    # considered abandoned by a crashed consumer.

    maxtemp = 300
    maxlock = 600

    def __init__(self, path: str):

        self.path = path

        try:
            self._queue = QueueSimple(path)
        except (OSError, dirq.Exceptions.QueueError) as e:
            raise QueueError('cannot open queue directory %s: %s' % (path, e))


    def __repr__(self):
        return '<DirQueue %s>' % (self.path)


    def names(self) -> List[str]:

        names = list()

        try:
            name = self._queue.first()
            while name:
                names.append(name)
                name = self._queue.next()
        except (OSError, dirq.Exceptions.QueueError) as e:
            raise QueueError('cannot list %s: %s' % (self.path, e))

        return names


    def lock(self, name: str) -> bool:

        try:
            locked = self._queue.lock(name)
        except (OSError, dirq.Exceptions.QueueError) as e:
            raise QueueError('cannot lock %s in %s: %s' % (name, self.path, e))

        return bool(locked)


    def unlock(self, name: str) -> None:

        try:
            self._queue.unlock(name, permissive=True)
        except (OSError, dirq.Exceptions.QueueError) as e:
            raise QueueError('cannot unlock %s in %s: %s' % (name, self.path, e))


    def read(self, name: str) -> QueueEntry:
        return QueueEntry.decode(self.read_raw(name))


    def read_raw(self, name: str) -> bytes:

        try:
            raw = self._queue.get(name)
        except (OSError, dirq.Exceptions.QueueError) as e:
            raise QueueError('cannot read %s in %s: %s' % (name, self.path, e))

        if isinstance(raw, str):
            raw = raw.encode('utf-8')

        return raw


    def add(self, entry: QueueEntry) -> str:

        try:
            return self._queue.add(entry.encode())
        except (OSError, dirq.Exceptions.QueueError) as e:
            raise QueueError('cannot add to %s: %s' % (self.path, e))


    def remove(self, name: str) -> None:

        try:
            self._queue.remove(name)
        except (OSError, dirq.Exceptions.QueueError) as e:
            raise QueueError('cannot remove %s from %s: %s' % (name, self.path, e))


    def count(self) -> int:

        try:
            return self._queue.count()
        except (OSError, dirq.Exceptions.QueueError) as e:
            raise QueueError('cannot count %s: %s' % (self.path, e))


    def purge(self) -> None:

        try:
            self._queue.purge(maxtemp=self.maxtemp, maxlock=self.maxlock)
        except (OSError, dirq.Exceptions.QueueError) as e:
            raise QueueError('cannot purge %s: %s' % (self.path, e))


# end of class DirQueue



class ErrorSink:
    """ Durable destination for :class:`msgrelay.message.ErrorEnvelope`
        instances. Envelopes are stored as ordinary queue entries addressed
        to *destination*, which means the error queue can later be replayed
        through the outbound delivery engine.
    """

    def __init__(self, queue: DurableQueue, destination: str):
        self.queue = queue
        self.destination = destination


    def add_message(self, destination: str, headers, body: bytes) -> str:
        """ Store an arbitrary message. The 'destination' header is always
            set to *destination*.
        """

        headers = dict(headers)
        headers['destination'] = destination
        return self.queue.add(QueueEntry(headers, body))


    def file(self, envelope) -> str:
        """ Store an :class:`msgrelay.message.ErrorEnvelope`. """

        entry = envelope.to_entry(self.destination)
        name = self.queue.add(entry)

        logger.debug("filed %s error from %s as %s: %s", envelope.component, envelope.host, name, envelope.reason)
        return name


# end of class ErrorSink



def enqueue(queue: DurableQueue, destination: str, headers: Optional[dict] = None, body: bytes = b'') -> str:
    """ Producer-side helper: add a new outbound message for *destination*
        to *queue*, returning the name of the new entry.
    """

    if not destination:
        raise ValueError('the destination must be specified')

    fields = dict()
    fields['destination'] = destination

    if headers:
        for key, value in headers.items():
            if key == 'destination':
                continue
            fields[key] = value

    return queue.add(QueueEntry(fields, body))


def entries(queue: DurableQueue) -> Iterable[QueueEntry]:
    """ Yield every readable entry in *queue*, locking each one while it is
        read. Entries locked elsewhere are skipped.
    """

    for name in queue.names():
        if not queue.lock(name):
            continue

        try:
            yield queue.read(name)
        finally:
            queue.unlock(name)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
