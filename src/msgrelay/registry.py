""" Registry of the handlers this relay dispatches to, with the per-handler
    health bookkeeping that decides when a misbehaving handler is taken out
    of service.

    Each :class:`HandlerEntry` carries an error score. Successful handling
    lowers the score, failures raise it, and once the score reaches the
    deactivation threshold the entry is marked inactive for the rest of the
    run. Inactive entries are never deleted and never scored again.
"""

import enum
import logging

from .errors import ConfigurationError


logger = logging.getLogger(__name__)


class Severity(enum.Enum):
    MINOR = 'minor'
    MAJOR = 'major'


class Health:
    """ Scoring policy. The defaults bucket failures by order of magnitude:
        a timeout or a warning is minor, any other failure is major, and a
        single major failure is enough to deactivate a handler.
    """

    def __init__(self, credit=1, minor=10, major=100, threshold=100):

        for name, value in (('credit', credit), ('minor', minor), ('major', major), ('threshold', threshold)):
            if int(value) < 0:
                raise ConfigurationError('health %s must not be negative' % (name))

        self.credit = int(credit)
        self.minor = int(minor)
        self.major = int(major)
        self.threshold = int(threshold)


    def penalty(self, severity):
        if severity is Severity.MINOR:
            return self.minor
        return self.major


# end of class Health



class HandlerEntry:
    """ A named handler: the broker *destination* it subscribes to, the
        subscription *options*, the *handler* object itself, whether it is
        still *active*, and its current *error_score*.
    """

    def __init__(self, name, destination, options, handler):

        self.name = name
        self.destination = destination
        self.options = dict(options or ())
        self.handler = handler
        self.active = True
        self.error_score = 0


    def __repr__(self):
        state = 'active' if self.active else 'inactive'
        return '<HandlerEntry %s %s score=%d>' % (self.name, state, self.error_score)


    def subscribe_options(self):
        """ Return the options for a subscribe request. The subscription id
            is always the handler name, which is how inbound frames are
            routed back to this entry.
        """

        options = dict(self.options)
        options['id'] = self.name
        return options


# end of class HandlerEntry



class HandlerRegistry:
    """ The set of :class:`HandlerEntry` instances for one relay run. """

    def __init__(self, health=None):

        if health is None:
            health = Health()

        self.health = health
        self._entries = dict()


    def __contains__(self, name):
        return name in self._entries


    def __iter__(self):
        return iter(self._entries.values())


    def __len__(self):
        return len(self._entries)


    def register(self, name, destination, options, handler):
        """ Add a new, active entry. Names must be unique. """

        if not name:
            raise ConfigurationError('handler name must be a non-empty string')

        if name in self._entries:
            raise ConfigurationError('duplicate handler name: ' + name)

        if not destination:
            raise ConfigurationError("handler '%s' has no destination" % (name))

        entry = HandlerEntry(name, destination, options, handler)
        self._entries[name] = entry
        return entry


    def lookup(self, name):
        """ Return the entry for *name*; raises KeyError if there is no such
            handler.
        """

        return self._entries[name]


    def active(self):
        return [entry for entry in self._entries.values() if entry.active]


    def any_active(self):
        for entry in self._entries.values():
            if entry.active:
                return True

        return False


    def exhausted(self):
        """ True if handlers were configured and every one of them has been
            deactivated.
        """

        return len(self._entries) > 0 and not self.any_active()


    def deactivate(self, name):
        """ Take the named handler out of service. Returns True if this call
            changed its state, False if it was already inactive.
        """

        entry = self._entries[name]

        if entry.active == False:
            return False

        entry.active = False
        logger.warning("handler '%s' deactivated (error score %d)", name, entry.error_score)
        return True


    def record_success(self, name):
        """ Credit the named handler for a successful dispatch; the score
            never drops below zero. Returns the new score.
        """

        entry = self._entries[name]

        if entry.active:
            entry.error_score = max(0, entry.error_score - self.health.credit)

        return entry.error_score


    def record_failure(self, name, severity):
        """ Penalize the named handler according to *severity*. Returns True
            if this failure pushed the score to the deactivation threshold
            and the entry was deactivated as a result.
        """

        entry = self._entries[name]

        if entry.active == False:
            return False

        entry.error_score += self.health.penalty(severity)
        logger.debug("handler '%s' %s failure, score now %d", name, severity.value, entry.error_score)

        if entry.error_score >= self.health.threshold:
            return self.deactivate(name)

        return False


    def close(self):
        """ Invoke close() on every handler object, logging any errors. """

        for entry in self._entries.values():
            closer = getattr(entry.handler, 'close', None)
            if closer is None:
                continue

            try:
                closer()
            except Exception:
                logger.exception("error closing handler '%s'", entry.name)


# end of class HandlerRegistry


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
