""" Bounded invocation of handler code. The control loop is single-threaded;
    a handler call is handed to a background thread and the loop waits for
    the result with a time budget. A call that runs past its budget produces
    a :attr:`Outcome.TIMEOUT` result instead of blocking the relay; the
    stalled thread is left behind as a daemon thread, so it cannot hold up
    process exit either.
"""

import enum
import logging
import threading
import traceback


logger = logging.getLogger(__name__)


class Outcome(enum.Enum):
    RETURNED = 'returned'
    RAISED = 'raised'
    TIMEOUT = 'timeout'


class Result:
    """ What happened to one invocation: the *outcome*, plus the *value*
        returned or the *error* raised, as appropriate.
    """

    def __init__(self, outcome, value=None, error=None, debug=None):
        self.outcome = outcome
        self.value = value
        self.error = error
        self.debug = debug


    def __repr__(self):
        return '<Result %s>' % (self.outcome.value)


# end of class Result



class Invoker:
    """ Run callables with a *timeout* in seconds. """

    def __init__(self, timeout):

        timeout = float(timeout)
        if timeout <= 0:
            raise ValueError('invocation timeout must be positive')

        self.timeout = timeout
        self.abandoned = 0


    def __call__(self, method, *args, **kwargs):
        return self.call(method, *args, **kwargs)


    def call(self, method, *args, **kwargs):
        """ Invoke *method* with the supplied arguments, returning a
            :class:`Result`. Exceptions raised by *method* are captured in the
            result, never propagated.
        """

        call = _Call(method, args, kwargs)

        thread = threading.Thread(target=call.run, name='msgrelay-handler')
        thread.daemon = True
        thread.start()
        thread.join(self.timeout)

        if thread.is_alive():
            # There is no way to interrupt the thread; whatever it eventually
            # produces is discarded.
            self.abandoned += 1
            logger.debug("abandoned stalled call to %r after %.1f seconds", method, self.timeout)
            return Result(Outcome.TIMEOUT)

        if call.result is None:
            # Only possible if the callable raised a BaseException, such as
            # SystemExit, which ends the thread without a result.
            return Result(Outcome.RAISED, error=RuntimeError('handler thread exited without a result'))

        return call.result


# end of class Invoker



class _Call:

    def __init__(self, method, args, kwargs):
        self.method = method
        self.args = args
        self.kwargs = kwargs
        self.result = None


    def run(self):

        try:
            value = self.method(*self.args, **self.kwargs)
        except Exception as e:
            self.result = Result(Outcome.RAISED, error=e, debug=traceback.format_exc())
        else:
            self.result = Result(Outcome.RETURNED, value=value)


# end of class _Call


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
