""" A cancellable work loop: a background thread that calls a step function
    over and over until it is cancelled. Every publisher or service client
    that does periodic work gets its own :class:`Loop`, running on its own
    schedule.

    Cancellation is cooperative. It is checked before every iteration, and
    the wait between iterations is interrupted by it, so a loop notices
    within one throttle interval; a step that is in the middle of a blocking
    call is allowed to finish.
"""

import logging
import threading
import traceback

from .errors import InterruptedOperation

logger = logging.getLogger(__name__)


class Loop:
    """ Call *step* repeatedly in a dedicated thread, waiting *throttle*
        seconds between calls, until :func:`cancel` is invoked. A step may
        raise :class:`mros.errors.InterruptedOperation` to end the loop;
        this is treated as a normal cancellation. Any other exception is
        logged to *log* and also ends the loop.

        The thread is a daemon thread, so that a step that never returns
        cannot prevent the process from exiting.
    """

    def __init__(self, step, throttle=0, name=None, log=None):

        if callable(step):
            pass
        else:
            raise TypeError('step must be callable')

        throttle = float(throttle)
        if throttle < 0:
            raise ValueError('throttle cannot be negative')

        if name is None:
            name = 'Loop.%d' % (id(self))

        if log is None:
            log = logger

        self.step = step
        self.throttle = throttle
        self.name = name
        self.log = log

        self.iterations = 0
        self.error = None
        self.cancelled = threading.Event()
        self.finished = threading.Event()
        self.thread = None


    def start(self):

        if self.thread is not None:
            raise RuntimeError('a loop can only be started once')

        self.thread = threading.Thread(target=self.run, name=self.name)
        self.thread.daemon = True
        self.thread.start()
        return self


    @property
    def running(self):

        if self.thread is None:
            return False

        return self.finished.is_set() == False


    def run(self):

        try:
            while self.cancelled.is_set() == False:
                try:
                    self.step()
                except InterruptedOperation:
                    break

                self.iterations += 1

                if self.throttle > 0:
                    # Waiting on the event rather than sleeping is what makes
                    # the throttle interruptible.
                    self.cancelled.wait(self.throttle)

        except Exception as e:
            self.error = e
            self.log.error("loop %s failed:\n%s" % (self.name, traceback.format_exc()))

        finally:
            self.finished.set()


    def sleep(self, seconds):
        """ Interruptible replacement for :func:`time.sleep`, intended for
            use inside a step. Raises
            :class:`mros.errors.InterruptedOperation` if the loop is
            cancelled before or during the wait.
        """

        if self.cancelled.wait(seconds) == True:
            raise InterruptedOperation('loop %s cancelled' % (self.name))


    def cancel(self):
        """ Signal the loop to stop. No new iteration starts after this call;
            an iteration already in progress runs to completion.
        """

        self.cancelled.set()


    def join(self, timeout=None):
        """ Wait for the loop thread to finish. Returns True if it finished,
            False if *timeout* seconds elapsed first.
        """

        if self.thread is None:
            return True

        return self.finished.wait(timeout)


    def stop(self, timeout=None):
        """ Cancel the loop and wait up to *timeout* seconds for it to
            finish. A loop that does not finish in time is abandoned; this
            is logged as an error, since the thread and whatever it holds
            are leaked until the process exits.
        """

        self.cancel()
        finished = self.join(timeout)

        if finished == False:
            self.log.error("loop %s did not stop within %.2f sec, abandoning it" % (self.name, timeout))

        return finished


# end of class Loop



def start(step, throttle=0, name=None, log=None):
    """ Create and start a :class:`Loop`, returning the instance.
    """

    loop = Loop(step, throttle, name, log)
    loop.start()
    return loop


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
