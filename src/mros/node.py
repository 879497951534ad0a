""" Nodes and their lifecycle. An application subclasses :class:`NodeMain`
    and implements :func:`NodeMain.on_start`; an :class:`Executor` runs any
    number of them, each in its own :class:`NodeRuntime`. Inside
    :func:`NodeMain.on_start` the :class:`Node` handle is used to create
    publishers, subscribers, services, and work loops; the runtime tears all
    of them down again when the node is shut down.

    A runtime moves through the states CREATED, STARTING, RUNNING,
    STOPPING, and STOPPED, in that order. A failure while starting moves a
    runtime straight to STOPPED.
"""

import threading
import time
import traceback

from . import errors
from . import logging
from . import loop
from . import names
from . import registry
from .endpoint import Endpoint
from .service import ServiceClient, ServiceServer
from .topic import Publisher, Subscriber

CREATED = 'CREATED'
STARTING = 'STARTING'
RUNNING = 'RUNNING'
STOPPING = 'STOPPING'
STOPPED = 'STOPPED'


class NodeMain:
    """ Base class for applications. A subclass sets :attr:`default_name`,
        or passes a *name* to the constructor, and overrides
        :func:`on_start` to set up whatever the node does. The remaining
        hooks are optional.
    """

    default_name = None

    def __init__(self, name=None):

        if name is not None:
            self.default_name = names.canonical(name)


    def on_start(self, node):
        """ Invoked exactly once, when the node is connected to the
            registry. Raising an exception here aborts the node.
        """

        pass


    def on_shutdown(self, node):
        """ Invoked when the node begins shutting down, before any of its
            publishers, subscribers, or services are removed.
        """

        pass


    def on_error(self, node, error):
        """ Invoked if the node failed to start. *node* is None if the
            failure happened before the node handle existed.
        """

        pass


# end of class NodeMain



class Node:
    """ The handle given to :func:`NodeMain.on_start`. Everything created
        through it is owned by the node, and is shut down with it.

        :ivar name: The global name of this node.
        :ivar log: The logging sink for this node; anything with info()
                   and error() methods.
        :ivar registry: The :class:`mros.registry.Proxy` for the registry.
        :ivar endpoint: The :class:`mros.endpoint.Endpoint` of this node.
    """

    def __init__(self, name, configuration, endpoint, registry, log):

        self.name = name
        self.configuration = configuration
        self.endpoint = endpoint
        self.registry = registry
        self.log = log

        self.loops = list()
        self.resources = list()
        self.lock = threading.Lock()
        self.closed = False


    @property
    def host(self):
        return self.configuration.host


    def resolve(self, name):
        """ Resolve *name* relative to the namespace of this node.
        """

        return names.resolve(name, self.name)


    def _own(self, resource):

        self.lock.acquire()
        if self.closed == True:
            self.lock.release()
            resource.shutdown()
            raise RuntimeError('node %s is shut down' % (self.name))

        self.resources.append(resource)
        self.lock.release()

        return resource


    def new_publisher(self, topic, message_type='*'):
        return self._own(Publisher(self, topic, message_type))


    def new_subscriber(self, topic, message_type='*'):
        return self._own(Subscriber(self, topic, message_type))


    def new_service_server(self, name, service_type, handler):
        return self._own(ServiceServer(self, name, service_type, handler))


    def new_service_client(self, name, service_type):
        return self._own(ServiceClient(self, name, service_type))


    def execute_loop(self, step, throttle=0, name=None):
        """ Start a :class:`mros.loop.Loop` calling *step* every *throttle*
            seconds until the node shuts down. Returns the loop.
        """

        if name is None:
            name = "%s.loop.%d" % (self.name, len(self.loops))

        instance = loop.Loop(step, throttle, name, self.log)

        self.lock.acquire()
        if self.closed == True:
            self.lock.release()
            raise RuntimeError('node %s is shut down' % (self.name))

        self.loops.append(instance)
        self.lock.release()

        instance.start()
        return instance


    def shutdown(self, grace=2.0):
        """ Cancel every work loop, wait up to *grace* seconds for them to
            finish, then shut down and deregister everything this node
            created, and close the endpoint. Loops that do not finish in
            time are abandoned, and logged as errors.
        """

        self.lock.acquire()
        if self.closed == True:
            self.lock.release()
            return

        self.closed = True
        loops = list(self.loops)
        resources = list(self.resources)
        self.lock.release()

        for instance in loops:
            instance.cancel()

        deadline = time.time() + grace

        for instance in loops:
            remaining = deadline - time.time()
            if remaining < 0:
                remaining = 0

            instance.stop(remaining)

        resources.reverse()

        for resource in resources:
            try:
                resource.shutdown()
            except Exception:
                self.log.error("error shutting down %s:\n%s" % (repr(resource), traceback.format_exc()))

        # Sweep up anything left behind, for example by a resource whose
        # creation failed halfway.

        try:
            self.registry.deregister_node(self.name)
        except errors.MrosError as e:
            self.log.error("could not remove registrations for %s: %s" % (self.name, e))

        self.endpoint.close()


# end of class Node



class NodeRuntime:
    """ Run *node_main* with *configuration*. The node is started in a
        dedicated thread by :func:`start`; the same thread performs the
        shutdown sequence when :func:`shutdown` is called.

        :ivar state: The current lifecycle state.
        :ivar error: The exception that prevented the node from starting,
                     if any.
    """

    def __init__(self, node_main, configuration, log=None):

        self.node_main = node_main
        self.configuration = configuration
        self.log = log

        name = configuration.name

        if name is None:
            name = node_main.default_name

        if name is None:
            raise errors.ConfigurationError('no name for node ' + repr(node_main))

        self.name = names.canonical(name)

        if self.log is None:
            self.log = logging.node_logger(self.name)

        self.state = CREATED
        self.state_lock = threading.Lock()
        self.error = None
        self.node = None

        self.started = threading.Event()
        self.stop_requested = threading.Event()
        self.stopped = threading.Event()
        self.thread = None
        self.grace = configuration.grace


    def _transition(self, state):

        self.state_lock.acquire()
        self.state = state
        self.state_lock.release()


    def start(self):

        if self.thread is not None:
            raise RuntimeError('node %s was already started' % (self.name))

        self.thread = threading.Thread(target=self.run, name='NodeRuntime' + self.name)
        self.thread.daemon = True
        self.thread.start()
        return self


    def run(self):

        try:
            self._start()
        finally:
            self.started.set()

        if self.state == RUNNING:
            self.stop_requested.wait()
            self._stop()

        self.stopped.set()


    def _start(self):

        self._transition(STARTING)

        configuration = self.configuration
        endpoint = None
        node = None

        try:
            proxy = registry.Proxy(configuration.master_host, configuration.master_port, configuration.registry_wait)
            endpoint = Endpoint(configuration.host)
            node = Node(self.name, configuration, endpoint, proxy, self.log)
            self.node = node

            self.node_main.on_start(node)

        except Exception as e:
            self.error = e
            self.log.error("node %s failed to start:\n%s" % (self.name, traceback.format_exc()))

            try:
                self.node_main.on_error(node, e)
            except Exception:
                self.log.error("on_error for %s failed:\n%s" % (self.name, traceback.format_exc()))

            # Nothing registered by a failed node is allowed to linger.

            if node is not None:
                node.shutdown(0)
            elif endpoint is not None:
                endpoint.close()

            self._transition(STOPPED)
            return

        self._transition(RUNNING)
        self.log.info("node %s running, requests on %s:%d" % (self.name, configuration.host, endpoint.request_port))


    def _stop(self):

        self._transition(STOPPING)

        try:
            self.node_main.on_shutdown(self.node)
        except Exception:
            self.log.error("on_shutdown for %s failed:\n%s" % (self.name, traceback.format_exc()))

        self.node.shutdown(self.grace)
        self._transition(STOPPED)
        self.log.info("node %s stopped" % (self.name))


    def wait_started(self, timeout=None):
        """ Block until the node has either started or failed to start, or
            until *timeout* seconds elapse. Returns True only if the node is
            running; check :attr:`error` to find out why it is not.
        """

        self.started.wait(timeout)
        return self.state == RUNNING


    def shutdown(self, grace=None):
        """ Stop the node, waiting at most *grace* seconds for its work
            loops, plus a little for deregistration. Returns True if the
            node reached the STOPPED state in that time. A node that does not
            stop in time is abandoned and logged as an error.
        """

        if grace is not None:
            self.grace = grace

        if self.thread is None:
            self._transition(STOPPED)
            self.stopped.set()
            return True

        self.stop_requested.set()

        # The margin beyond the grace period is for deregistration and the
        # closing of sockets, each of which has its own short timeout.

        finished = self.stopped.wait(self.grace + 5)

        if finished == False:
            self.log.error("node %s did not stop in time, abandoning it in state %s" % (self.name, self.state))

        return finished


# end of class NodeRuntime



class Executor:
    """ Run any number of nodes concurrently, each independent of the
        others: a node failing to start, or failing to stop cleanly, has no
        effect on the rest.
    """

    def __init__(self, log=None):

        self.log = log
        self.runtimes = list()
        self.lock = threading.Lock()


    def execute(self, node_main, configuration, log=None):
        """ Start *node_main* with *configuration* in a new
            :class:`NodeRuntime`, and return the runtime. This method does
            not wait for the node to finish starting; see
            :func:`NodeRuntime.wait_started`.
        """

        if log is None:
            log = self.log

        runtime = NodeRuntime(node_main, configuration, log)

        self.lock.acquire()
        self.runtimes.append(runtime)
        self.lock.release()

        runtime.start()
        return runtime


    def runtime(self, node_main):
        """ Return the most recent :class:`NodeRuntime` for *node_main*, or
            None if it was never executed here.
        """

        self.lock.acquire()
        found = None
        for runtime in self.runtimes:
            if runtime.node_main is node_main:
                found = runtime
        self.lock.release()

        return found


    def shutdown_node(self, node_main, grace=None):
        """ Shut down the node(s) running *node_main*. Returns True if they
            all stopped in time.
        """

        self.lock.acquire()
        matches = [runtime for runtime in self.runtimes if runtime.node_main is node_main]
        for runtime in matches:
            self.runtimes.remove(runtime)
        self.lock.release()

        stopped = True

        for runtime in matches:
            if runtime.shutdown(grace) == False:
                stopped = False

        return stopped


    def shutdown(self, grace=None):
        """ Shut down every node, most recently started first. Returns True
            if they all stopped in time.
        """

        self.lock.acquire()
        runtimes = list(self.runtimes)
        self.runtimes = list()
        self.lock.release()

        runtimes.reverse()
        stopped = True

        for runtime in runtimes:
            try:
                if runtime.shutdown(grace) == False:
                    stopped = False
            except Exception:
                stopped = False
                runtime.log.error("error shutting down %s:\n%s" % (runtime.name, traceback.format_exc()))

        return stopped


# end of class Executor


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
