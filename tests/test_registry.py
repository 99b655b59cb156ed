import pytest

from msgrelay.errors import ConfigurationError
from msgrelay.registry import HandlerRegistry, Health, Severity

import fakes


def populated(*names):

    registry = HandlerRegistry()

    for name in names:
        registry.register(name, '/queue/' + name, None, fakes.Recorder(name))

    return registry


def test_register():

    registry = populated('alarms', 'metrics')

    assert len(registry) == 2
    assert 'alarms' in registry
    assert 'nothing' not in registry

    entry = registry.lookup('alarms')
    assert entry.active == True
    assert entry.error_score == 0
    assert entry.destination == '/queue/alarms'

    with pytest.raises(KeyError):
        registry.lookup('nothing')


def test_register_rejects_bad_entries():

    registry = populated('alarms')

    with pytest.raises(ConfigurationError):
        registry.register('alarms', '/queue/other', None, fakes.Recorder())

    with pytest.raises(ConfigurationError):
        registry.register('blank', '', None, fakes.Recorder())

    with pytest.raises(ConfigurationError):
        registry.register('', '/queue/x', None, fakes.Recorder())


def test_subscribe_options():
    """ The subscription id must always be the handler name, even if the
        configured options try to say otherwise.
    """

    registry = HandlerRegistry()
    entry = registry.register('alarms', '/queue/alarms', {'id': 'bogus', 'exclusive': 'true'}, fakes.Recorder())

    options = entry.subscribe_options()
    assert options['id'] == 'alarms'
    assert options['exclusive'] == 'true'
    assert entry.options['id'] == 'bogus'


def test_score_law():

    registry = populated('alarms')
    entry = registry.lookup('alarms')

    assert registry.record_success('alarms') == 0

    assert registry.record_failure('alarms', Severity.MINOR) == False
    assert entry.error_score == 10

    registry.record_success('alarms')
    assert entry.error_score == 9

    for count in range(20):
        registry.record_success('alarms')

    assert entry.error_score == 0

    for count in range(9):
        registry.record_failure('alarms', Severity.MINOR)

    assert entry.error_score == 90
    assert entry.active == True

    # The tenth minor failure reaches the threshold exactly.
    assert registry.record_failure('alarms', Severity.MINOR) == True
    assert entry.error_score == 100
    assert entry.active == False


def test_single_major_failure_deactivates():

    registry = populated('alarms')

    assert registry.record_failure('alarms', Severity.MAJOR) == True
    assert registry.lookup('alarms').active == False


def test_timeouts_then_major():
    """ Three timeouts leave the handler active with a score of 30; the
        following major failure takes it to 130 and deactivates it.
    """

    registry = populated('alarms')
    entry = registry.lookup('alarms')

    for count in range(3):
        assert registry.record_failure('alarms', Severity.MINOR) == False

    assert entry.error_score == 30
    assert entry.active == True

    assert registry.record_failure('alarms', Severity.MAJOR) == True
    assert entry.error_score == 130
    assert entry.active == False


def test_inactive_entries_are_frozen():

    registry = populated('alarms')
    entry = registry.lookup('alarms')

    registry.record_failure('alarms', Severity.MAJOR)
    assert entry.error_score == 100

    # Neither successes nor failures change an inactive entry, and it is
    # never deactivated a second time.

    assert registry.record_failure('alarms', Severity.MAJOR) == False
    registry.record_success('alarms')
    assert entry.error_score == 100
    assert registry.deactivate('alarms') == False


def test_exhaustion():

    registry = HandlerRegistry()
    assert registry.any_active() == False
    assert registry.exhausted() == False

    registry = populated('alarms', 'metrics')
    assert registry.exhausted() == False

    registry.deactivate('alarms')
    assert registry.any_active() == True
    assert [entry.name for entry in registry.active()] == ['metrics']

    registry.deactivate('metrics')
    assert registry.any_active() == False
    assert registry.exhausted() == True

    # Deactivated entries are still registered.
    assert len(registry) == 2


def test_custom_health():

    registry = HandlerRegistry(Health(credit=5, minor=20, major=50, threshold=60))
    registry.register('alarms', '/queue/alarms', None, fakes.Recorder())
    entry = registry.lookup('alarms')

    registry.record_failure('alarms', Severity.MAJOR)
    assert entry.error_score == 50

    registry.record_success('alarms')
    assert entry.error_score == 45

    assert registry.record_failure('alarms', Severity.MINOR) == True

    with pytest.raises(ConfigurationError):
        Health(credit=-1)


def test_close():

    registry = HandlerRegistry()
    recorder = fakes.Recorder()

    class Broken:
        def handle(self, headers, body):
            pass

        def close(self):
            raise RuntimeError('nope')

    registry.register('broken', '/queue/broken', None, Broken())
    registry.register('recorder', '/queue/recorder', None, recorder)

    registry.close()
    assert recorder.closed == True


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
