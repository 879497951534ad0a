""" Classes and methods implemented here implement the publish/subscribe
    aspects of the mros transport. Every node owns one :class:`Server`,
    shared by all of its publishers; every subscriber owns one
    :class:`Client`, connected to each publisher it has been told about.
"""

import logging
import queue
import threading
import traceback
import zmq

from .. import json
from . import message
from . import request

minimum_port = 10139
maximum_port = 13679
zmq_context = zmq.Context()

logger = logging.getLogger(__name__)


class Client:
    """ A ZeroMQ SUB socket receiving broadcasts for a single *topic* from
        any number of publishers. Connections are added and removed with
        :func:`connect` and :func:`disconnect`; those requests are handed to
        the background thread, the only thread that touches the socket.
        Each arriving message is passed to *callback* as a
        :class:`message.Broadcast` instance.
    """

    def __init__(self, topic, callback):

        if callable(callback):
            pass
        else:
            raise TypeError('callback must be callable')

        self.topic = topic
        self.prefix = message.topic_prefix(topic)
        self.callback = callback
        self.connected = set()

        self.socket = zmq_context.socket(zmq.SUB)
        self.socket.setsockopt(zmq.LINGER, 0)
        self.socket.setsockopt(zmq.SUBSCRIBE, self.prefix)

        self.commands = queue.SimpleQueue()

        internal = "inproc://publish.Client.signal.%d" % (id(self))
        self.signal_rx = zmq_context.socket(zmq.PAIR)
        self.signal_rx.setsockopt(zmq.LINGER, 0)
        self.signal_rx.bind(internal)
        self.signal_tx = zmq_context.socket(zmq.PAIR)
        self.signal_tx.setsockopt(zmq.LINGER, 0)
        self.signal_tx.connect(internal)
        self.signal_lock = threading.Lock()

        self.shutdown = False
        self.thread = threading.Thread(target=self.run, name='publish.Client.' + topic)
        self.thread.daemon = True
        self.thread.start()


    def _command(self, command, address, port):

        if self.shutdown == True:
            return

        self.commands.put((command, address, int(port)))

        self.signal_lock.acquire()
        try:
            self.signal_tx.send(b'')
        except zmq.ZMQError:
            pass
        self.signal_lock.release()


    def connect(self, address, port):
        """ Start receiving broadcasts from the publisher at *address* and
            *port*. Connecting twice to the same publisher is a no-op.
        """

        self._command('connect', address, port)


    def disconnect(self, address, port):
        self._command('disconnect', address, port)


    def _apply_command(self):

        self.signal_rx.recv(flags=zmq.NOBLOCK)
        command, address, port = self.commands.get(block=False)

        key = (address, port)
        server = "tcp://%s:%d" % key

        if command == 'connect':
            if key in self.connected:
                return
            self.socket.connect(server)
            self.connected.add(key)

        elif command == 'disconnect':
            if key in self.connected:
                self.connected.remove(key)
                try:
                    self.socket.disconnect(server)
                except zmq.ZMQError:
                    pass


    def _pub_incoming(self, parts):

        if len(parts) != 3:
            logger.error("dropping broadcast on %s with %d frames, expected 3", self.topic, len(parts))
            return

        topic = parts[0]
        their_version = parts[1]

        if topic != self.prefix:
            return

        if their_version != message.version:
            logger.debug("dropping broadcast on %s with protocol version %s", self.topic, repr(their_version))
            return

        try:
            payload = message.decode_payload(parts[2])
        except json.DecodeError as e:
            logger.error("dropping undecodable broadcast on %s: %s", self.topic, e)
            return

        broadcast = message.Broadcast('PUB', self.topic, payload)

        try:
            self.callback(broadcast)
        except Exception:
            logger.error("broadcast callback for %s failed:\n%s", self.topic, traceback.format_exc())


    def run(self):

        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)
        poller.register(self.signal_rx, zmq.POLLIN)

        while self.shutdown == False:
            sockets = poller.poll(100)
            for active,flag in sockets:
                if self.signal_rx == active:
                    self._apply_command()
                elif self.socket == active:
                    parts = self.socket.recv_multipart()
                    self._pub_incoming(parts)

        self.socket.close()
        self.signal_rx.close()


    def close(self):

        if self.shutdown == True:
            return

        self.shutdown = True
        self.thread.join(1)

        self.signal_lock.acquire()
        self.signal_tx.close()
        self.signal_lock.release()


# end of class Client



class Server:
    """ Send broadcasts via a ZeroMQ XPUB socket. The default behavior is to
        set up a listener on all available network interfaces on the first
        available automatically assigned port; a fixed *port* raises
        :class:`mros.errors.BindError` if unavailable.

        The XPUB socket reports subscriptions arriving from connected SUB
        sockets, which is how :func:`subscribers` knows how many
        subscribers are currently listening to a topic. Broken subscriber
        connections are dropped by ZeroMQ without any further action here.

        :ivar port: The port on which this server is listening for connections.
    """

    def __init__(self, port=None):

        self.socket = zmq_context.socket(zmq.XPUB)
        self.socket.setsockopt(zmq.LINGER, 0)
        self.socket.setsockopt(zmq.XPUB_VERBOSE, 1)
        self.socket.setsockopt(zmq.XPUB_VERBOSER, 1)

        try:
            self.port = request.bind(self.socket, port, minimum_port, maximum_port)
        except Exception:
            self.socket.close()
            raise

        self.counts = dict()
        self.counts_lock = threading.Lock()
        self.counts_changed = threading.Condition(self.counts_lock)

        # Outgoing broadcasts are queued; a single background thread sends
        # them, which keeps the order of broadcasts intact.

        self.outbox = queue.SimpleQueue()

        internal = "inproc://publish.Server.signal.%d" % (id(self))
        self.signal_rx = zmq_context.socket(zmq.PAIR)
        self.signal_rx.setsockopt(zmq.LINGER, 0)
        self.signal_rx.bind(internal)
        self.signal_tx = zmq_context.socket(zmq.PAIR)
        self.signal_tx.setsockopt(zmq.LINGER, 0)
        self.signal_tx.connect(internal)
        self.signal_lock = threading.Lock()

        self.shutdown = False
        self.thread = threading.Thread(target=self.run, name="publish.Server.%d" % (self.port))
        self.thread.daemon = True
        self.thread.start()


    def publish(self, broadcast):
        """ A *broadcast* is a :class:`message.Broadcast` instance intended
            for any/all subscribers. This method does not block; the
            broadcast is queued and sent by the background thread.
        """

        if self.shutdown == True:
            return

        parts = tuple(broadcast)
        self.outbox.put(parts)

        self.signal_lock.acquire()
        try:
            self.signal_tx.send(b'')
        except zmq.ZMQError:
            pass
        self.signal_lock.release()


    def subscribers(self, topic):
        """ Return the number of subscriptions currently registered for
            *topic* by connected subscribers.
        """

        prefix = message.topic_prefix(topic)

        self.counts_lock.acquire()
        count = self.counts.get(prefix, 0)
        self.counts_lock.release()

        return count


    def wait_for_subscribers(self, topic, count=1, timeout=None):
        """ Block until at least *count* subscribers are listening to *topic*,
            or until *timeout* seconds elapse. Returns True if the count was
            reached.
        """

        prefix = message.topic_prefix(topic)

        self.counts_lock.acquire()
        try:
            reached = self.counts_changed.wait_for(lambda: self.counts.get(prefix, 0) >= count, timeout)
        finally:
            self.counts_lock.release()

        return reached


    def _subscription(self, frame):
        """ The first byte of a subscription notification is 1 for a new
            subscription, 0 for a removed subscription; the remainder is
            the subscribed prefix.
        """

        if len(frame) == 0:
            return

        flag = frame[0]
        prefix = frame[1:]

        self.counts_lock.acquire()
        count = self.counts.get(prefix, 0)

        if flag == 1:
            count += 1
        elif flag == 0:
            count -= 1

        if count > 0:
            self.counts[prefix] = count
        else:
            self.counts.pop(prefix, None)

        self.counts_changed.notify_all()
        self.counts_lock.release()


    def _pub_outgoing(self):

        self.signal_rx.recv(flags=zmq.NOBLOCK)
        parts = self.outbox.get(block=False)
        self.socket.send_multipart(parts)


    def run(self):

        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)
        poller.register(self.signal_rx, zmq.POLLIN)

        while self.shutdown == False:
            sockets = poller.poll(100)
            for active,flag in sockets:
                if self.signal_rx == active:
                    self._pub_outgoing()
                elif self.socket == active:
                    frame = self.socket.recv()
                    self._subscription(frame)

        self.socket.close()
        self.signal_rx.close()


    def close(self):

        if self.shutdown == True:
            return

        self.shutdown = True
        self.thread.join(1)

        self.signal_lock.acquire()
        self.signal_tx.close()
        self.signal_lock.release()


# end of class Server


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
