""" Classes and methods implemented here implement the request/response
    aspects of the mros transport: registry requests, publisher
    announcements, and service calls all travel through these sockets.
"""

import atexit
import concurrent.futures
import logging
import queue
import socket
import sys
import threading
import time
import traceback
import zmq

from .. import errors
from .. import json
from . import message

minimum_port = 10079
maximum_port = 13679
zmq_context = zmq.Context()

logger = logging.getLogger(__name__)


class TransportTimeout(errors.MrosError):
    """ A request was not acknowledged in time; nobody is listening at the
        other end, or the other end is badly overloaded.
    """


class Client:
    """ Issue requests via a ZeroMQ DEALER socket and receive responses.
        Maintains a persistent connection to a single server; the *address*
        and *port* number must be specified.

        ZeroMQ sockets are not thread-safe; only the background thread
        touches the DEALER socket. Outgoing requests are handed to that
        thread through a queue, with an inproc PAIR socket used to wake it.
    """

    timeout = 1.0

    def __init__(self, address, port):

        port = int(port)
        self.port = port
        self.address = address
        self.closed = False

        server = "tcp://%s:%d" % (address, port)
        identity = "request.Client.%d" % (id(self))

        self.socket = zmq_context.socket(zmq.DEALER)
        self.socket.setsockopt(zmq.LINGER, 0)
        self.socket.identity = identity.encode()
        self.socket.connect(server)

        self.outbox = queue.SimpleQueue()

        internal = "inproc://request.Client.signal.%d" % (id(self))
        self.signal_rx = zmq_context.socket(zmq.PAIR)
        self.signal_rx.setsockopt(zmq.LINGER, 0)
        self.signal_rx.bind(internal)
        self.signal_tx = zmq_context.socket(zmq.PAIR)
        self.signal_tx.setsockopt(zmq.LINGER, 0)
        self.signal_tx.connect(internal)
        self.signal_lock = threading.Lock()

        self.pending = dict()
        self.pending_lock = threading.Lock()

        self.shutdown = False
        self.thread = threading.Thread(target=self.run, name=identity)
        self.thread.daemon = True
        self.thread.start()


    def _rep_incoming(self, parts):
        """ A client only receives two types of messages from the remote side:
            an ACK, or a REP. The response payload, if any, is handed back to
            the relevant :class:`message.Request` instance for any further
            handling by the original caller. A frame that cannot be
            interpreted is logged and dropped; if the request it answers can
            be identified, that request completes with an error.
        """

        if len(parts) != 5:
            logger.error("dropping response from %s:%d with %d frames, expected 5", self.address, self.port, len(parts))
            return

        their_version = parts[0]
        response_id = parts[1]

        self.pending_lock.acquire()
        try:
            pending = self.pending[response_id]
        except KeyError:
            pending = None
        self.pending_lock.release()

        if pending is None:
            # The original caller's request is gone, no further processing
            # is possible.
            return

        error = None

        if their_version != message.version:
            error = dict()
            error['type'] = 'RuntimeError'
            error['text'] = "message is mros protocol %s, recipient expects %s" % (repr(their_version), repr(message.version))
        else:
            try:
                response_type = parts[2].decode()
                target = parts[3].decode()
                payload = message.decode_payload(parts[4])
            except (UnicodeDecodeError, json.DecodeError) as e:
                logger.error("undecodable response from %s:%d: %s", self.address, self.port, e)
                error = errors.to_dict(e)

        if error is not None:
            payload = message.Payload(None, error=error)
            response_type = 'REP'
            target = None

        if response_type == 'ACK':
            pending._complete_ack()
            return

        response = message.Message('REP', target, payload, response_id)
        pending._complete(response)
        self.forget(pending)


    def forget(self, request):
        """ Stop tracking *request*; any response arriving for it later is
            ignored.
        """

        self.pending_lock.acquire()
        self.pending.pop(request.id, None)
        self.pending_lock.release()


    def _req_outgoing(self):

        self.signal_rx.recv(flags=zmq.NOBLOCK)
        request = self.outbox.get(block=False)
        self.socket.send_multipart(tuple(request))


    def run(self):

        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)
        poller.register(self.signal_rx, zmq.POLLIN)

        while self.shutdown == False:
            sockets = poller.poll(100)
            for active, flag in sockets:
                if self.signal_rx == active:
                    self._req_outgoing()
                elif self.socket == active:
                    parts = self.socket.recv_multipart()
                    self._rep_incoming(parts)

        self.socket.close()
        self.signal_rx.close()


    def send(self, request, timeout=None):
        """ A *request* is a fully populated :class:`message.Request`
            instance, which will also be used for notification of any/all
            responses from the remote end; this method blocks while waiting
            for the ACK, but the caller is free to decide whether to block
            or wait for the full response.

            If the ACK does not arrive within *timeout* seconds (the class
            default if not specified) this client is closed, so that the
            unacknowledged request cannot be delivered at some later time,
            and :class:`TransportTimeout` is raised.
        """

        if self.closed == True:
            raise TransportTimeout("client for %s:%d is closed" % (self.address, self.port))

        if timeout is None:
            timeout = self.timeout

        self.pending_lock.acquire()
        self.pending[request.id] = request
        self.pending_lock.release()

        self.outbox.put(request)

        # The lock around the ZeroMQ socket is necessary in a multithreaded
        # application; otherwise, if two different threads both invoke
        # send(), the signals can and will get mixed together.

        self.signal_lock.acquire()
        self.signal_tx.send(b'')
        self.signal_lock.release()

        ack = request.wait_ack(timeout)

        if ack == False:
            self.forget(request)
            self.close()
            raise TransportTimeout("%s @ %s:%d: no ACK in %.2f sec" % (request.type, self.address, self.port, timeout))


    def close(self):

        if self.closed == True:
            return

        self.closed = True
        self.shutdown = True

        if threading.current_thread() is not self.thread:
            self.thread.join(1)

        self.signal_lock.acquire()
        self.signal_tx.close()
        self.signal_lock.release()


# end of class Client



class Server:
    """ Receive requests via a ZeroMQ ROUTER socket, and respond to them. The
        server listens on every available interface; the *hostname* is the
        name or address other processes should use to reach it. If *port*
        is None the first available port in the default range is used,
        otherwise the server listens on exactly that port and raises
        :class:`mros.errors.BindError` if it is unavailable.

        :ivar hostname: The hostname on which this server can be contacted.
        :ivar port: The port on which this server is listening for connections.
        :ivar ready: A :class:`threading.Event` set once requests are served.
    """

    worker_count = 8

    def __init__(self, hostname=None, port=None):

        if hostname is None:
            hostname = socket.getfqdn()

        self.hostname = hostname
        self.socket = zmq_context.socket(zmq.ROUTER)
        self.socket.setsockopt(zmq.LINGER, 0)

        try:
            self.port = bind(self.socket, port)
        except errors.BindError:
            self.socket.close()
            raise

        # Responses are handed to the background thread via a queue; using
        # ZeroMQ sockets from more than one thread is not safe.

        self.responses = queue.SimpleQueue()

        internal = "inproc://request.Server.signal.%d" % (id(self))
        self.signal_rx = zmq_context.socket(zmq.PAIR)
        self.signal_rx.setsockopt(zmq.LINGER, 0)
        self.signal_rx.bind(internal)
        self.signal_tx = zmq_context.socket(zmq.PAIR)
        self.signal_tx.setsockopt(zmq.LINGER, 0)
        self.signal_tx.connect(internal)
        self.signal_lock = threading.Lock()

        # Multiple worker threads allow for a request to block until
        # completion without jamming up the processing of other requests.

        self.workers = concurrent.futures.ThreadPoolExecutor(max_workers=self.worker_count)

        self.ready = threading.Event()
        self.shutdown = False
        self.thread = threading.Thread(target=self.run, name="request.Server.%d" % (self.port))
        self.thread.daemon = True
        self.thread.start()


    def req_ack(self, ident, request):
        """ Acknowledge the incoming request. The client is expecting an
            immediate ACK for all request types, including errors; this is
            how a client knows whether a server is online to respond to its
            request.
        """

        ack = dict()
        ack['time'] = time.time()
        ack = message.Payload(None, **ack)

        response = message.Message('ACK', request.target, ack, request.id)
        self.send(ident, response)


    def req_handler(self, request):
        """ The default request handler is for debug purposes only, and
            returns the current time. Subclasses override this method to
            handle the request types they understand; the return value is
            a :class:`message.Payload` instance, or a plain value that will
            be wrapped in one. Any exception raised here is packaged up and
            returned to the client as an error.
        """

        return message.Payload(time.time())


    def _req_incoming(self, parts):
        """ All inbound requests are filtered through this method. It will
            parse the request, acknowledge it, and hand it off to
            :func:`req_handler` for further processing. Error handling is
            managed here; if :func:`req_handler` raises an exception it will
            be packaged up and returned to the client as an error.
        """

        ident = parts[0]
        their_version = parts[1]
        req_id = parts[2]

        error = None
        payload = None
        target = None

        if their_version != message.version:
            error = dict()
            error['type'] = 'RuntimeError'
            error['text'] = "message is mros protocol %s, recipient is %s" % (repr(their_version), repr(message.version))
            error['debug'] = None
            request = None
        else:
            req_type = parts[3].decode()
            target = parts[4].decode()
            req_payload = message.decode_payload(parts[5])

            try:
                request = message.Request(req_type, target, req_payload, req_id)
            except ValueError:
                request = None
                e_class, e_instance, e_traceback = sys.exc_info()
                error = errors.to_dict(e_instance, traceback.format_exc())

        if request is not None:
            self.req_ack(ident, request)

            try:
                payload = self.req_handler(request)
            except Exception:
                e_class, e_instance, e_traceback = sys.exc_info()
                error = errors.to_dict(e_instance, traceback.format_exc())
                payload = None

        if isinstance(payload, message.Payload):
            pass
        else:
            payload = message.Payload(payload)

        if error is not None:
            payload.error = error

        response = message.Message('REP', target, payload, req_id)
        self.send(ident, response)


    def _rep_outgoing(self):

        self.signal_rx.recv(flags=zmq.NOBLOCK)
        ident, response = self.responses.get(block=False)
        parts = (ident,) + tuple(response)
        self.socket.send_multipart(parts)


    def run(self):

        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)
        poller.register(self.signal_rx, zmq.POLLIN)

        self.ready.set()

        while self.shutdown == False:
            sockets = poller.poll(100)
            for active,flag in sockets:
                if self.signal_rx == active:
                    self._rep_outgoing()
                elif self.socket == active:
                    parts = self.socket.recv_multipart()
                    try:
                        self.workers.submit(self._worker_main, parts)
                    except RuntimeError:
                        # The worker pool is already shut down.
                        break

        self.ready.clear()
        self.socket.close()
        self.signal_rx.close()


    def send(self, ident, response):
        """ Queue a response for delivery to the client identified by
            *ident*. This is safe to call from any thread.
        """

        if self.shutdown == True:
            return

        self.responses.put((ident, response))

        self.signal_lock.acquire()
        try:
            self.signal_tx.send(b'')
        except zmq.ZMQError:
            # The signal socket was closed during shutdown.
            pass
        self.signal_lock.release()


    def _worker_main(self, parts):

        try:
            self._req_incoming(parts)
        except Exception:
            logger.error("unhandled error processing request:\n%s", traceback.format_exc())


    def close(self):
        """ Stop serving requests and release the listening port. Requests
            still being handled by worker threads will not have their
            responses delivered.
        """

        if self.shutdown == True:
            return

        self.shutdown = True
        self.workers.shutdown(wait=False)
        self.thread.join(1)

        self.signal_lock.acquire()
        self.signal_tx.close()
        self.signal_lock.release()


# end of class Server



def bind(zmq_socket, port=None, minimum=None, maximum=None):
    """ Bind *zmq_socket* on all interfaces. If *port* is specified, bind to
        exactly that port; otherwise, look for the first available port in
        the range *minimum* to *maximum*. Return the port number, or raise
        :class:`mros.errors.BindError` if no port could be acquired.
    """

    if port is None:
        if minimum is None:
            minimum = minimum_port
        if maximum is None:
            maximum = maximum_port
    else:
        port = int(port)
        minimum = port
        maximum = port

    trial = minimum
    while trial <= maximum:
        listen_address = 'tcp://*:' + str(trial)
        try:
            zmq_socket.bind(listen_address)
        except zmq.error.ZMQError:
            # Assume this port is in use.
            trial += 1
        else:
            return trial

    if port is None:
        error = "no ports available in range %d:%d" % (minimum, maximum)
    else:
        error = 'port already in use: ' + str(port)

    raise errors.BindError(error)



client_connections = dict()
client_lock = threading.Lock()

def client(address, port):
    """ Factory function for a :class:`Client` instance. Use of this method is
        encouraged to streamline re-use of established connections. A closed
        client is replaced with a fresh one.
    """

    key = (address, int(port))

    client_lock.acquire()
    try:
        instance = client_connections[key]
    except KeyError:
        instance = None

    if instance is None or instance.closed == True:
        instance = Client(address, port)
        client_connections[key] = instance

    client_lock.release()
    return instance



def send(address, port, request, timeout=60):
    """ Use :func:`client` to connect to the specified *address* and *port*,
        and send the specified :class:`message.Request` instance. This method
        blocks until the completion of the request, and returns the response
        payload. If the response carries an error, the equivalent exception
        is raised.
    """

    connection = client(address, port)
    connection.send(request)
    response = request.wait(timeout)

    if response is None:
        connection.forget(request)
        raise errors.ServiceTimeoutError("%s: no response received in %.2f sec" % (request.type, timeout))

    payload = response.payload

    if payload is None:
        return None

    if payload.error:
        raise errors.from_dict(payload.error)

    return payload.value


def shutdown():

    client_lock.acquire()
    instances = list(client_connections.values())
    client_connections.clear()
    client_lock.release()

    for instance in instances:
        instance.close()


atexit.register(shutdown)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
