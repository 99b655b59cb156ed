import pytest
import threading

import msgrelay
from msgrelay.delivery import Outbound
from msgrelay.invoke import Invoker
from msgrelay.queue import ErrorSink
from msgrelay.registry import HandlerRegistry
from msgrelay.relay import RelayContext

import fakes
from fakes import BROKER, HOSTNAME


@pytest.fixture
def clock():
    return fakes.Clock()


@pytest.fixture
def broker():
    return fakes.FakeBroker()


@pytest.fixture
def errors():
    return fakes.MemoryQueue()


@pytest.fixture
def outbox():
    return fakes.MemoryQueue()


@pytest.fixture
def sink(errors):
    return ErrorSink(errors, '/queue/msgrelay.errors')


@pytest.fixture
def settings():

    values = dict()
    values['broker'] = BROKER
    values['client_id'] = HOSTNAME
    values['timeout'] = 2
    values['handler_timeout'] = 0.2
    values['receipt_wait'] = 0.01
    values['frame_wait'] = 0.01
    values['drain_interval'] = 0

    return msgrelay.Settings(**values)


@pytest.fixture
def registry():
    return HandlerRegistry()


@pytest.fixture
def outbound(outbox, sink, clock):
    return Outbound(outbox, sink, receipt_wait=0.01, host=HOSTNAME, clock=clock)


@pytest.fixture
def context(settings, registry, sink, broker, clock):

    invoker = Invoker(settings.handler_timeout)
    factory = lambda uri: broker

    return RelayContext(settings, registry, sink, None, invoker, factory, threading.Event(), clock, HOSTNAME)


@pytest.fixture
def release():
    """ Event used to let stalled handler threads finish once a test is
        done with them.
    """

    event = threading.Event()
    yield event
    event.set()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
