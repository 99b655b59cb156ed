""" Outbound delivery: drain the local durable queue into the broker. Each
    entry is sent with a receipt; an entry that fails is stamped with the
    time and reason, held back for a cooldown period, and retried on a later
    pass. An entry that fails too many times in a row is wrapped in an error
    envelope, filed to the error sink, and removed from the queue.
"""

import logging
import time

from .errors import BrokerConnectionError, BrokerError, DeliveryFailure, QueueError
from .message import ErrorEnvelope


logger = logging.getLogger(__name__)


class Tally:
    """ Counts for one :func:`Outbound.drain_once` pass. """

    def __init__(self):
        self.sent = 0
        self.retried = 0
        self.dead = 0
        self.cooling = 0
        self.locked = 0
        self.interrupted = False


    @property
    def attempts(self):
        return self.sent + self.retried + self.dead


    def __repr__(self):
        return '<Tally sent=%d retried=%d dead=%d cooling=%d locked=%d>' % (self.sent, self.retried, self.dead, self.cooling, self.locked)


# end of class Tally



class Outbound:
    """ Delivery engine for the durable *queue*. Entries that exhaust their
        retries are filed to *sink* (a :class:`msgrelay.queue.ErrorSink`).

        *retry_limit* is the number of consecutive failures that dead-letter
        an entry; *cooldown* is how long, in seconds, a failed entry is left
        alone; *receipt_wait* is how long to wait for each delivery receipt.
        When the queue holds fewer than *purge_threshold* entries after a
        pass the queue is asked to purge stale files.
    """

    def __init__(self, queue, sink, retry_limit=3, cooldown=300, receipt_wait=5, purge_threshold=1000, host=None, clock=time.time):

        self.queue = queue
        self.sink = sink
        self.retry_limit = int(retry_limit)
        self.cooldown = float(cooldown)
        self.receipt_wait = float(receipt_wait)
        self.purge_threshold = int(purge_threshold)
        self.host = host
        self.clock = clock

        # Failure records that could not be written back to the queue, by
        # entry name.
        self.unrecorded = dict()


    def drain_once(self, broker, budget):
        """ Make one pass over the queue, attempting at most *budget* sends
            through *broker*. Returns a :class:`Tally`. A lost broker
            connection ends the pass early, with ``interrupted`` set.
        """

        tally = Tally()

        try:
            names = self.queue.names()
        except QueueError as e:
            logger.error("cannot list outbound queue: %s", e)
            return tally

        for name in names:
            if tally.attempts >= budget or tally.interrupted:
                break

            try:
                locked = self.queue.lock(name)
            except QueueError as e:
                logger.warning("cannot lock outbound entry %s: %s", name, e)
                continue

            if locked == False:
                tally.locked += 1
                continue

            try:
                self._deliver(broker, name, tally)
            except QueueError as e:
                logger.error("outbound entry %s: %s", name, e)
                self._unlock(name)

        self._housekeeping()

        if tally.attempts > 0:
            logger.debug("outbound pass: %r", tally)

        return tally


    def _deliver(self, broker, name, tally):
        """ Attempt delivery of the locked entry *name*. The entry is either
            removed, or unlocked, before this method returns normally.
        """

        try:
            entry = self.queue.read(name)
        except QueueError as e:
            self._bury(name, str(e))
            tally.dead += 1
            return

        held = self.unrecorded.get(name)
        if held is not None:
            entry.failure = held

        now = self.clock()

        if entry.failure.cooling(now, self.cooldown):
            self._unlock(name)
            tally.cooling += 1
            return

        receipt = 'delivery-' + name

        try:
            self._send(broker, entry, receipt)
        except BrokerConnectionError as e:
            reason = str(e)
            tally.interrupted = True
        except (BrokerError, DeliveryFailure) as e:
            reason = str(e)
        else:
            self.queue.remove(name)
            self.unrecorded.pop(name, None)
            tally.sent += 1
            return

        count = entry.failure.record(now, reason)

        if count >= self.retry_limit:
            self._dead_letter(name, entry, reason)
            tally.dead += 1
        else:
            self._requeue(name, entry)
            tally.retried += 1
            logger.info("outbound entry %s failed (%d of %d): %s", name, count, self.retry_limit, reason)


    def _send(self, broker, entry, receipt):

        destination = entry.destination
        if not destination:
            raise DeliveryFailure('entry has no destination header')

        headers = dict(entry.headers)
        del headers['destination']

        broker.send(destination, headers, entry.body, receipt)
        pending = broker.wait_for_receipts(self.receipt_wait)

        if receipt in pending:
            raise DeliveryFailure('no receipt from the broker within %.1f seconds' % (self.receipt_wait))


    def _dead_letter(self, name, entry, reason):

        envelope = ErrorEnvelope(reason, 'outbound', entry.headers, entry.body, host=self.host)

        try:
            self.sink.file(envelope)
        except QueueError as e:
            # Keep the entry, with its failure count, rather than lose it.
            logger.error("cannot dead-letter outbound entry %s, requeueing: %s", name, e)
            self._requeue(name, entry)
            return

        self.queue.remove(name)
        self.unrecorded.pop(name, None)
        logger.warning("outbound entry %s dead-lettered after %d failures: %s", name, entry.failure.count, reason)


    def _requeue(self, name, entry):
        """ Replace the locked entry *name* with *entry*, which carries an
            updated failure record. If the queue will not take the new copy,
            the old one is kept and the failure record is held in memory
            instead, so the cooldown still applies on the next pass.
        """

        try:
            self.queue.add(entry)
        except QueueError as e:
            logger.error("cannot record failure %d of outbound entry %s, holding it in memory: %s", entry.failure.count, name, e)
            self.unrecorded[name] = entry.failure
            self._unlock(name)
            return

        self.unrecorded.pop(name, None)
        self.queue.remove(name)


    def _bury(self, name, reason):
        """ File an entry that cannot be decoded, verbatim, and remove it. """

        raw = self.queue.read_raw(name)
        envelope = ErrorEnvelope('unreadable queue entry: ' + reason, 'outbound', None, raw, host=self.host)
        self.sink.file(envelope)
        self.queue.remove(name)

        logger.warning("unreadable outbound entry %s filed and removed: %s", name, reason)


    def _housekeeping(self):

        try:
            if self.queue.count() < self.purge_threshold:
                self.queue.purge()
        except QueueError as e:
            logger.warning("outbound queue housekeeping failed: %s", e)


    def _unlock(self, name):

        try:
            self.queue.unlock(name)
        except QueueError as e:
            logger.error("cannot unlock outbound entry %s: %s", name, e)


# end of class Outbound


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
