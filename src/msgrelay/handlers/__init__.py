""" Handler capability and the name-to-factory registry used to build
    handlers from configuration. A handler identifier is either the name of
    a registered factory (see :func:`register`) or a dotted reference of the
    form ``package.module:Attribute``. Identifiers are resolved when the
    configuration is loaded, never at dispatch time, so a bad identifier
    stops the relay before it connects to anything.
"""

import enum
import importlib

from ..errors import ConfigurationError


class Status(enum.Enum):
    """ The outcome a handler reports for one message. """

    SUCCESS = 'success'
    WARNING = 'warning'
    ERROR = 'error'


    @classmethod
    def coerce(cls, value):
        """ Return the :class:`Status` matching *value*, which may be a
            :class:`Status` member or a string naming one, in any case.
            Raises ValueError for anything else.
        """

        if isinstance(value, cls):
            return value

        if isinstance(value, str):
            return cls(value.lower())

        raise ValueError('not a handler status: ' + repr(value))


class Handler:
    """ Base class for handler units. Subclasses implement :func:`handle`;
        the relay calls it once per inbound message for the subscription the
        handler was configured with.

        The *name* is the unique handler name from the configuration; any
        *settings* from the configuration block are passed as keyword
        arguments to the constructor, subclasses pick out what they need.
    """

    def __init__(self, name, **settings):
        self.name = name
        self.settings = settings


    def handle(self, headers, body):
        """ Process one message. *headers* is a read-only mapping of header
            name to value, *body* is bytes. Return a (status, reason) tuple;
            the reason is free text, and is recorded whenever the status is
            not :attr:`Status.SUCCESS`.
        """

        raise NotImplementedError('Handler subclasses must implement handle()')


    def close(self):
        """ Release any resources; called once when the relay shuts down.
            The default implementation takes no action.
        """

        pass


# end of class Handler



_factories = dict()


def register(identifier, factory):
    """ Make *factory* available under the short name *identifier*. The
        factory is called as ``factory(name, **settings)`` and must return
        an object with a callable ``handle`` attribute.
    """

    identifier = str(identifier)

    if identifier in _factories and _factories[identifier] is not factory:
        raise ValueError('handler factory already registered: ' + identifier)

    _factories[identifier] = factory


def registered():
    return tuple(sorted(_factories.keys()))


def factory(identifier):
    """ Resolve *identifier* to a handler factory, raising
        :class:`ConfigurationError` if it cannot be resolved.
    """

    if not isinstance(identifier, str) or identifier == '':
        raise ConfigurationError('handler identifier must be a non-empty string, not ' + repr(identifier))

    try:
        return _factories[identifier]
    except KeyError:
        pass

    if ':' in identifier:
        module_name, attribute = identifier.split(':', 1)
    elif '.' in identifier:
        module_name, attribute = identifier.rsplit('.', 1)
    else:
        raise ConfigurationError("unknown handler '%s'; registered handlers are: %s" % (identifier, ', '.join(registered())))

    if module_name == '' or attribute == '':
        raise ConfigurationError('malformed handler identifier: ' + repr(identifier))

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError("cannot import handler module '%s': %s" % (module_name, e))

    try:
        found = getattr(module, attribute)
    except AttributeError:
        raise ConfigurationError("module '%s' has no handler '%s'" % (module_name, attribute))

    if not callable(found):
        raise ConfigurationError('handler %s is not callable' % (identifier))

    return found


def load(identifier, name, settings=None):
    """ Build the handler *name* from the factory named by *identifier*,
        passing *settings* as keyword arguments. The returned object is
        checked for a callable ``handle`` attribute.
    """

    if settings is None:
        settings = dict()

    if not isinstance(settings, dict):
        raise ConfigurationError("settings for handler '%s' must be an object" % (name))

    builder = factory(identifier)

    try:
        handler = builder(name, **settings)
    except (TypeError, ValueError) as e:
        raise ConfigurationError("cannot create handler '%s' from %s: %s" % (name, identifier, e))

    handle = getattr(handler, 'handle', None)

    if not callable(handle):
        raise ConfigurationError("handler '%s' (%s) has no handle() method" % (name, identifier))

    return handler


from . import builtin

register('log', builtin.LogHandler)
register('queue', builtin.QueueHandler)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
