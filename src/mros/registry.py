""" The registry is the discovery plane for mros: a directory mapping topic
    and service names to the endpoints of the nodes providing or consuming
    them. Messages never flow through the registry; once two nodes have
    found each other they talk directly.

    A :class:`Registry` instance owns the authoritative table of
    :class:`Record` instances and serves it over the network; nodes talk
    to it through a :class:`Proxy`.
"""

import logging
import threading
import time

from . import errors
from . import names
from . import protocol

default_port = 11311

PUBLISHER = 'topic-publisher'
SUBSCRIBER = 'topic-subscriber'
SERVICE = 'service'

types = (PUBLISHER, SUBSCRIBER, SERVICE)

logger = logging.getLogger(__name__)


class Record:
    """ A single registration: the topic or service *name*, the *type* of
        registration (one of :data:`types`), the *host* and *port* where the
        registrant can be reached for this purpose, the *message_type* of
        the topic or service, and the name of the owning *node*.

        For publishers the port is the node's publish port; for subscribers
        and services it is the node's request port.
    """

    def __init__(self, name, type, host, port, message_type='*', node=None, time=None):

        if type in types:
            pass
        else:
            raise errors.ConfigurationError('invalid registration type: ' + repr(type))

        if host is None or str(host).strip() == '':
            raise errors.ConfigurationError('a registration requires a host')

        if port is None:
            raise errors.ConfigurationError('a registration requires a port')

        self.name = names.canonical(name)
        self.type = type
        self.host = str(host)
        self.port = int(port)
        self.message_type = message_type
        self.time = time

        if node is None:
            self.node = None
        else:
            self.node = names.canonical(node)


    @property
    def endpoint(self):
        return (self.host, self.port)


    def key(self):
        """ Return the key identifying this record in the registry. There is
            only one server for a given service name, but any number of
            publishers and subscribers for a topic, one per node.
        """

        if self.type == SERVICE:
            return (self.name, self.type)

        return (self.name, self.type, self.node)


    def __eq__(self, other):

        if isinstance(other, Record):
            pass
        else:
            return NotImplemented

        mine = (self.name, self.type, self.host, self.port, self.message_type, self.node)
        theirs = (other.name, other.type, other.host, other.port, other.message_type, other.node)
        return mine == theirs


    def __repr__(self):
        return "Record(%s %s @ %s:%d, %s, node=%s)" % (self.type, self.name, self.host, self.port, self.message_type, self.node)


    def to_dict(self):

        record = dict()
        record['name'] = self.name
        record['type'] = self.type
        record['host'] = self.host
        record['port'] = self.port
        record['message_type'] = self.message_type
        record['node'] = self.node
        record['time'] = self.time
        return record


    @classmethod
    def from_dict(cls, record):
        return cls(**record)


# end of class Record



class Registry:
    """ The authoritative registration table, and the server exposing it to
        other processes. The table is only ever modified while holding
        :attr:`lock`, no matter which thread is asking.

        Call :func:`start` to begin listening, :func:`await_ready` to wait
        until registrations are accepted, and :func:`shutdown` to stop.
    """

    def __init__(self, hostname='127.0.0.1'):

        self.hostname = hostname
        self.port = None
        self.server = None
        self.records = dict()
        self.lock = threading.Lock()
        self.started = threading.Event()


    @property
    def ready(self):

        server = self.server

        if server is None:
            return False

        return server.ready.is_set()


    @property
    def uri(self):

        if self.port is None:
            return None

        return "tcp://%s:%d" % (self.hostname, self.port)


    def start(self, port=default_port):
        """ Begin listening for registration traffic on *port*. If *port*
            is None an available port is chosen automatically; either way
            the port in use is available as :attr:`port` afterwards.
            :class:`mros.errors.BindError` is raised if the port cannot be
            acquired.
        """

        if self.server is not None:
            raise RuntimeError('this registry is already started')

        self.server = RequestServer(self, self.hostname, port)
        self.port = self.server.port
        self.started.set()

        logger.info("registry listening on %s", self.uri)


    def await_ready(self, timeout):
        """ Block until the registry can accept registrations, or until
            *timeout* seconds elapse. Returns True if the registry is ready,
            False otherwise; this method does not raise an exception for a
            timeout.
        """

        begin = time.time()

        if self.started.wait(timeout) == False:
            return False

        server = self.server

        if server is None:
            return False

        remaining = timeout - (time.time() - begin)
        if remaining < 0:
            remaining = 0

        return server.ready.wait(remaining)


    def _check_ready(self):

        if self.ready == False:
            raise errors.NotReadyError('the registry is not accepting requests')


    def register(self, record):
        """ Add or update *record*, and return the accepted record. Repeating
            a registration is harmless; the record keeps its original place
            in the lookup order. Registering a service name that is already
            registered replaces the previous server.
        """

        self._check_ready()

        key = record.key()
        record.time = time.time()

        self.lock.acquire()
        try:
            existing = self.records[key]
        except KeyError:
            existing = None

        self.records[key] = record
        self.lock.release()

        if existing is None:
            logger.debug("registered %s", record)
        elif existing.node != record.node:
            logger.info("%s %s moved from %s to %s", record.type, record.name, existing.node, record.node)

        return record


    def lookup(self, name, type):
        """ Return a list of the records registered for *name* and *type*,
            ordered by their first registration. An unknown name returns
            an empty list.
        """

        self._check_ready()
        name = names.canonical(name)

        if type in types:
            pass
        else:
            raise errors.ConfigurationError('invalid registration type: ' + repr(type))

        self.lock.acquire()
        found = [record for record in self.records.values() if record.name == name and record.type == type]
        self.lock.release()

        return found


    def deregister(self, name, type, node=None):
        """ Remove the record(s) for *name* and *type*; if *node* is
            specified, only the record owned by that node is removed.
            Removing a record that is not present is not an error.
            Returns the number of records removed.
        """

        self._check_ready()
        name = names.canonical(name)

        if node is not None:
            node = names.canonical(node)

        removed = 0

        self.lock.acquire()
        for key, record in list(self.records.items()):
            if record.name != name or record.type != type:
                continue
            if node is not None and record.node != node:
                continue
            del self.records[key]
            removed += 1
        self.lock.release()

        return removed


    def deregister_node(self, node):
        """ Remove every record owned by *node*. Returns the number of
            records removed.
        """

        self._check_ready()
        node = names.canonical(node)

        removed = 0

        self.lock.acquire()
        for key, record in list(self.records.items()):
            if record.node == node:
                del self.records[key]
                removed += 1
        self.lock.release()

        if removed > 0:
            logger.debug("removed %d records for %s", removed, node)

        return removed


    def lookup_node(self, node):

        self._check_ready()
        node = names.canonical(node)

        self.lock.acquire()
        found = [record for record in self.records.values() if record.node == node]
        self.lock.release()

        return found


    def state(self):
        """ Return a snapshot of every record in the registry.
        """

        self._check_ready()

        self.lock.acquire()
        found = list(self.records.values())
        self.lock.release()

        return found


    def ping(self):
        self._check_ready()
        return time.time()


    def shutdown(self):
        """ Stop accepting requests and release the listening port. Existing
            connections between nodes are not affected.
        """

        server = self.server

        if server is None:
            return

        server.close()
        self.started.clear()
        self.server = None

        logger.info("registry on port %s shut down", self.port)


# end of class Registry



class RequestServer(protocol.request.Server):
    """ Expose the operations of a :class:`Registry` over the network. The
        request type selects the operation, the payload value carries the
        arguments.
    """

    def __init__(self, registry, *args, **kwargs):
        self.registry = registry
        protocol.request.Server.__init__(self, *args, **kwargs)


    def req_handler(self, request):
        """ Inspect the incoming request type and decide how a response
            will be generated.
        """

        type = request.type

        if request.payload is None:
            arguments = dict()
        else:
            arguments = request.payload.value

        if arguments is None:
            arguments = dict()

        if type == 'REGISTER':
            record = Record.from_dict(arguments)
            response = self.registry.register(record).to_dict()
        elif type == 'LOOKUP':
            found = self.registry.lookup(arguments['name'], arguments['type'])
            response = [record.to_dict() for record in found]
        elif type == 'DEREGISTER':
            response = self.registry.deregister(arguments['name'], arguments['type'], arguments.get('node'))
        elif type == 'DEREGISTER_NODE':
            response = self.registry.deregister_node(arguments['node'])
        elif type == 'LOOKUP_NODE':
            found = self.registry.lookup_node(arguments['node'])
            response = [record.to_dict() for record in found]
        elif type == 'STATE':
            response = [record.to_dict() for record in self.registry.state()]
        elif type == 'PING':
            response = self.registry.ping()
        else:
            raise ValueError('unhandled request type: ' + type)

        return protocol.message.Payload(response)


# end of class RequestServer



class Proxy:
    """ Client-side access to a remote :class:`Registry` at *host* and
        *port*, with the same operations. A registry that does not answer
        is reported as :class:`mros.errors.NotReadyError`; if *retry* is
        greater than zero, operations failing that way are retried with
        a growing backoff for up to *retry* seconds before giving up.
        Errors raised by the registry itself are re-raised locally.
    """

    timeout = 5
    backoff_initial = 0.05
    backoff_maximum = 0.5

    def __init__(self, host, port, retry=0):

        if host is None or str(host).strip() == '':
            raise errors.ConfigurationError('the registry host must be specified')

        if port is None:
            raise errors.ConfigurationError('the registry port must be specified')

        self.host = str(host)
        self.port = int(port)
        self.retry = retry


    def _send(self, type, arguments=None, retry=None):

        if retry is None:
            retry = self.retry

        deadline = time.time() + retry
        backoff = self.backoff_initial

        while True:
            payload = protocol.message.Payload(arguments)
            request = protocol.message.Request(type, 'registry', payload)

            try:
                return protocol.request.send(self.host, self.port, request, self.timeout)
            except (protocol.request.TransportTimeout, errors.ServiceTimeoutError, errors.NotReadyError) as e:
                if time.time() + backoff > deadline:
                    raise errors.NotReadyError("registry at %s:%d is not ready: %s" % (self.host, self.port, e))

            time.sleep(backoff)
            backoff = min(backoff * 2, self.backoff_maximum)


    def await_ready(self, timeout):
        """ Block until the remote registry answers, or until *timeout*
            seconds elapse. Returns True or False, never raises.
        """

        try:
            self._send('PING', retry=timeout)
        except errors.NotReadyError:
            return False

        return True


    def register(self, record):
        response = self._send('REGISTER', record.to_dict())
        return Record.from_dict(response)


    def lookup(self, name, type):

        arguments = dict()
        arguments['name'] = name
        arguments['type'] = type

        response = self._send('LOOKUP', arguments)
        return [Record.from_dict(record) for record in response]


    def deregister(self, name, type, node=None):

        arguments = dict()
        arguments['name'] = name
        arguments['type'] = type
        arguments['node'] = node

        return self._send('DEREGISTER', arguments)


    def deregister_node(self, node):

        arguments = dict()
        arguments['node'] = node

        return self._send('DEREGISTER_NODE', arguments)


    def lookup_node(self, node):

        arguments = dict()
        arguments['node'] = node

        response = self._send('LOOKUP_NODE', arguments)
        return [Record.from_dict(record) for record in response]


    def state(self):
        response = self._send('STATE')
        return [Record.from_dict(record) for record in response]


    def ping(self):
        return self._send('PING')


# end of class Proxy


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
