import argparse
import os
import pytest

from msgrelay import config
from msgrelay.errors import ConfigurationError
from msgrelay.handlers.builtin import LogHandler


def test_defaults():

    settings = config.Settings(client_id='relay.example.com')

    assert settings.timeout == 60
    assert settings.handler_timeout == 48
    assert settings.ping_interval == 300
    assert settings.reconnect_cooldown == 30
    assert settings.retry_cooldown == 300
    assert settings.retry_limit == 3
    assert settings.drain_budget == 100
    assert settings.client_id == 'relay.example.com'


def test_handler_timeout_follows_timeout():

    settings = config.Settings(client_id='x', timeout=10)
    assert settings.handler_timeout == 8


@pytest.mark.parametrize('values', [
    {'bogus': 1},
    {'timeout': 'soon'},
    {'timeout': 0},
    {'timeout': 10, 'handler_timeout': 10},
    {'timeout': 10, 'handler_timeout': 20},
    {'ping_interval': -1},
    {'retry_limit': 0},
    {'drain_budget': 0},
    {'broker': 'amqp://a/', 'broker_list': '/etc/brokers'},
    {'health': [1, 2]},
])
def test_bad_settings(values):

    with pytest.raises(ConfigurationError):
        config.Settings(client_id='x', **values)


def test_from_sources():
    """ Command line values override the configuration file; options left
        unset on the command line do not.
    """

    document = {'handlers': {}, 'relay': {'timeout': 30, 'ping_interval': 0, 'client_id': 'from-file'}}

    arguments = argparse.Namespace(timeout=20, ping_interval=None, client_id=None, broker='amqp://b/')
    settings = config.Settings.from_sources(arguments, document)

    assert settings.timeout == 20
    assert settings.handler_timeout == 16
    assert settings.ping_interval == 0
    assert settings.client_id == 'from-file'
    assert settings.broker == 'amqp://b/'


def test_brokers(tmp_path):

    settings = config.Settings(client_id='x', broker='amqp://one/')
    assert settings.brokers() == ['amqp://one/']

    listing = tmp_path / 'brokers'
    listing.write_text('# primary first\namqp://one/\n\n  amqp://two/  \n')

    settings = config.Settings(client_id='x', broker_list=str(listing))
    assert settings.brokers() == ['amqp://one/', 'amqp://two/']

    with pytest.raises(ConfigurationError):
        config.Settings(client_id='x').brokers()


def test_empty_broker_list(tmp_path):

    listing = tmp_path / 'brokers'
    listing.write_text('# nothing here\n\n')

    with pytest.raises(ConfigurationError):
        config.read_broker_list(str(listing))

    with pytest.raises(ConfigurationError):
        config.read_broker_list(str(tmp_path / 'missing'))


def test_health_policy():

    settings = config.Settings(client_id='x', health={'minor': 5})
    health = settings.health_policy()
    assert health.minor == 5
    assert health.major == 100

    settings = config.Settings(client_id='x', health={'colour': 'red'})
    with pytest.raises(ConfigurationError):
        settings.health_policy()


def test_load(tmp_path):

    filename = tmp_path / 'relay.json'
    filename.write_text('''{
        "handlers": {
            "alarms": {
                "handler": "log",
                "destination": "/queue/alarms",
                "options": {"exclusive": "true"},
                "settings": {"level": "warning"}
            }
        },
        "relay": {"timeout": 30}
    }''')

    document = config.load(str(filename))
    registry = config.build_registry(document)

    assert len(registry) == 1
    entry = registry.lookup('alarms')
    assert entry.destination == '/queue/alarms'
    assert entry.options == {'exclusive': 'true'}
    assert isinstance(entry.handler, LogHandler)


def test_load_failures(tmp_path):

    with pytest.raises(ConfigurationError):
        config.load(str(tmp_path / 'missing.json'))

    filename = tmp_path / 'broken.json'
    filename.write_text('{"handlers": ')

    with pytest.raises(ConfigurationError):
        config.load(str(filename))


@pytest.mark.parametrize('document', [
    [],
    {'extra': {}},
    {'handlers': []},
    {'relay': 'fast'},
    {'handlers': {'a': 'log'}},
    {'handlers': {'a': {'destination': '/queue/a'}}},
    {'handlers': {'a': {'handler': 'log'}}},
    {'handlers': {'a': {'handler': 'log', 'destination': ''}}},
    {'handlers': {'a': {'handler': 'log', 'destination': '/queue/a', 'colour': 'red'}}},
    {'handlers': {'a': {'handler': 'log', 'destination': '/queue/a', 'settings': []}}},
])
def test_check(document):

    with pytest.raises(ConfigurationError):
        config.check(document)


def test_unknown_handler():

    document = {'handlers': {'a': {'handler': 'nonexistent', 'destination': '/queue/a'}}}

    with pytest.raises(ConfigurationError):
        config.build_registry(config.check(document))


def test_directory(tmp_path):

    path = str(tmp_path / 'queues' / 'errors')
    assert config.directory(path, 'error queue') == path
    assert os.path.isdir(path)

    blocker = tmp_path / 'file'
    blocker.write_text('in the way')

    with pytest.raises(ConfigurationError):
        config.directory(str(blocker), 'error queue')


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
