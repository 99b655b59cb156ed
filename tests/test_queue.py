import pytest

from msgrelay.errors import QueueError
from msgrelay.message import ErrorEnvelope, QueueEntry
from msgrelay.queue import DirQueue, ErrorSink, enqueue, entries

import fakes


def test_directory_queue(tmp_path):

    queue = DirQueue(str(tmp_path / 'outbound'))
    assert queue.count() == 0

    first = queue.add(QueueEntry({'destination': '/queue/a'}, b'one'))
    second = queue.add(QueueEntry({'destination': '/queue/b'}, b'\xfftwo'))

    assert queue.count() == 2
    assert sorted(queue.names()) == sorted([first, second])

    assert queue.lock(first) == True
    entry = queue.read(first)
    assert entry.destination == '/queue/a'
    assert entry.body == b'one'

    queue.remove(first)
    assert queue.count() == 1

    assert queue.lock(second) == True
    assert queue.read(second).body == b'\xfftwo'
    queue.unlock(second)

    queue.purge()
    assert queue.count() == 1


def test_directory_queue_lock_is_exclusive(tmp_path):

    path = str(tmp_path / 'outbound')
    one = DirQueue(path)
    two = DirQueue(path)

    name = one.add(QueueEntry({'destination': '/queue/a'}, b'one'))

    assert one.lock(name) == True
    assert two.lock(name) == False

    one.unlock(name)
    assert two.lock(name) == True
    two.unlock(name)


def test_enqueue(tmp_path):

    queue = DirQueue(str(tmp_path / 'outbound'))

    name = enqueue(queue, '/queue/reports', {'destination': '/queue/ignored', 'type': 'report'}, b'body')
    queue.lock(name)
    entry = queue.read(name)
    queue.unlock(name)

    assert entry.headers == {'destination': '/queue/reports', 'type': 'report'}
    assert entry.body == b'body'
    assert entry.failure.count == 0

    with pytest.raises(ValueError):
        enqueue(queue, '', None, b'')


def test_entries():

    queue = fakes.MemoryQueue()
    enqueue(queue, '/queue/a', None, b'one')
    locked = enqueue(queue, '/queue/b', None, b'two')
    enqueue(queue, '/queue/c', None, b'three')

    queue.lock(locked)

    bodies = [entry.body for entry in entries(queue)]
    assert bodies == [b'one', b'three']
    assert queue.locks == set([locked])


def test_error_sink():

    queue = fakes.MemoryQueue()
    sink = ErrorSink(queue, '/queue/errors')

    envelope = ErrorEnvelope('bad things', 'dispatch', {'destination': '/queue/in'}, b'payload', host='relay.example.com')
    sink.file(envelope)
    sink.add_message('/queue/elsewhere', {'destination': '/queue/overridden', 'a': 'b'}, b'raw')

    filed, added = queue.decoded()

    assert filed.destination == '/queue/errors'
    assert ErrorEnvelope.from_entry(filed).body == b'payload'

    assert added.destination == '/queue/elsewhere'
    assert added.headers['a'] == 'b'
    assert added.body == b'raw'


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
