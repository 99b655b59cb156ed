import logging
import pytest

from msgrelay import log
from msgrelay.errors import ConfigurationError


@pytest.fixture
def root():
    """ Restore the root logger once the test is done with it. """

    logger = logging.getLogger()
    level = logger.level
    pika = logging.getLogger('pika').level

    yield logger

    for handler in list(logger.handlers):
        if getattr(handler.formatter, '_fmt', None) == log.FORMAT:
            logger.removeHandler(handler)

    logger.setLevel(level)
    logging.getLogger('pika').setLevel(pika)


def test_setup(root):

    handler = log.setup('debug')

    assert root.handlers == [handler]
    assert root.level == logging.DEBUG
    assert handler.formatter._fmt == log.FORMAT
    assert logging.getLogger('pika').level == logging.WARNING

    # Calling it again replaces, rather than stacks, the handler.
    handler = log.setup('error')
    assert root.handlers == [handler]
    assert logging.getLogger('pika').level == logging.ERROR


def test_bad_level(root):

    with pytest.raises(ConfigurationError):
        log.setup('chatty')


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
