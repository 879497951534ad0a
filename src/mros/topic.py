""" Publishers and subscribers: the two ends of a topic. Neither end keeps
    any authoritative state about the other; the registry is asked who is
    out there, and publishers announce themselves to the subscribers the
    registry knows about.
"""

import threading
import traceback

from . import errors
from . import protocol
from . import registry


def compatible(expected, offered):
    """ Return True if a topic or service of type *offered* can be used
        where type *expected* is required. '*' matches anything.
    """

    if expected == '*' or offered == '*':
        return True

    return expected == offered



class Publisher:
    """ Broadcast messages on the topic *name* on behalf of *node*. On
        creation the publisher registers with the registry, then tells every
        registered subscriber of the topic about the current set of
        publishers, so that they can connect.

        :func:`publish` never blocks on subscribers; delivery is best effort,
        at most once to each subscriber connected at the time.
    """

    announce_timeout = 2

    def __init__(self, node, name, message_type='*'):

        self.node = node
        self.name = node.resolve(name)
        self.message_type = message_type
        self.closed = False

        endpoint = node.endpoint
        self.record = registry.Record(self.name, registry.PUBLISHER, node.host, endpoint.publish_port, message_type, node.name)

        node.registry.register(self.record)

        try:
            self.announce()
        except Exception:
            node.registry.deregister(self.name, registry.PUBLISHER, node.name)
            raise


    @property
    def subscriber_count(self):
        return self.node.endpoint.pub.subscribers(self.name)


    def wait_for_subscribers(self, count=1, timeout=None):
        """ Block until at least *count* subscribers are connected, or until
            *timeout* seconds elapse. Returns True if the count was reached.
        """

        return self.node.endpoint.pub.wait_for_subscribers(self.name, count, timeout)


    def announce(self):
        """ Send the current list of publishers for this topic to every
            registered subscriber. Subscribers that cannot be reached are
            logged and skipped.
        """

        publishers = self.node.registry.lookup(self.name, registry.PUBLISHER)
        subscribers = self.node.registry.lookup(self.name, registry.SUBSCRIBER)

        publishers = [record.to_dict() for record in publishers]

        for subscriber in subscribers:
            payload = protocol.message.Payload(publishers)
            request = protocol.message.Request('UPDATE', self.name, payload)

            try:
                protocol.request.send(subscriber.host, subscriber.port, request, self.announce_timeout)
            except errors.MrosError as e:
                self.node.log.error("could not announce %s to %s at %s:%d: %s" % (self.name, subscriber.node, subscriber.host, subscriber.port, e))


    def publish(self, message):
        """ Broadcast *message*, which must be serializable as JSON, to all
            currently connected subscribers. Returns immediately.
        """

        if self.closed == True:
            raise RuntimeError('publisher for %s is shut down' % (self.name))

        self.node.endpoint.publish(self.name, message)


    def shutdown(self):
        """ Remove this publisher from the registry and tell the remaining
            subscribers about the reduced set of publishers.
        """

        if self.closed == True:
            return

        self.closed = True

        self.node.registry.deregister(self.name, registry.PUBLISHER, self.node.name)
        self.announce()


# end of class Publisher



class Subscriber:
    """ Receive messages on the topic *name* on behalf of *node*. On creation
        the subscriber registers with the registry, asks it for the current
        publishers, and connects to each of them. Publishers appearing later
        announce themselves; :func:`refresh` asks the registry again.

        Message listeners are plain callables receiving the message; they
        run on the subscriber's receiving thread, and should be quick.
    """

    def __init__(self, node, name, message_type='*'):

        self.node = node
        self.name = node.resolve(name)
        self.message_type = message_type
        self.closed = False

        self.listeners = list()
        self.listeners_lock = threading.Lock()
        self.publishers = set()
        self.publishers_lock = threading.Lock()

        endpoint = node.endpoint

        self.client = protocol.publish.Client(self.name, self._incoming)
        endpoint.add_subscriber(self.name, self)

        self.record = registry.Record(self.name, registry.SUBSCRIBER, node.host, endpoint.request_port, message_type, node.name)

        try:
            node.registry.register(self.record)
            self.refresh()
        except Exception:
            endpoint.remove_subscriber(self.name, self)
            self.client.close()
            raise


    def add_message_listener(self, listener):
        """ Invoke *listener* with every message received from now on.
        """

        if callable(listener):
            pass
        else:
            raise TypeError('listener must be callable')

        self.listeners_lock.acquire()
        self.listeners.append(listener)
        self.listeners_lock.release()


    def remove_message_listener(self, listener):

        self.listeners_lock.acquire()
        if listener in self.listeners:
            self.listeners.remove(listener)
        self.listeners_lock.release()


    def _incoming(self, broadcast):

        payload = broadcast.payload

        if payload is None:
            message = None
        else:
            message = payload.value

        self.listeners_lock.acquire()
        listeners = list(self.listeners)
        self.listeners_lock.release()

        for listener in listeners:
            try:
                listener(message)
            except Exception:
                self.node.log.error("message listener on %s failed:\n%s" % (self.name, traceback.format_exc()))


    @property
    def publisher_count(self):

        self.publishers_lock.acquire()
        count = len(self.publishers)
        self.publishers_lock.release()

        return count


    def update(self, records, prune=True):
        """ Reconcile connections with the publisher *records*: connect to
            publishers not yet connected, and, if *prune* is True, disconnect
            from those no longer present. Publishers of an incompatible
            message type are logged and ignored.
        """

        if self.closed == True:
            return

        wanted = set()

        for record in records:
            if record.type != registry.PUBLISHER or record.name != self.name:
                continue

            if compatible(self.message_type, record.message_type):
                wanted.add(record.endpoint)
            else:
                self.node.log.error("ignoring publisher %s on %s: message type %s, expected %s" % (record.node, self.name, record.message_type, self.message_type))

        self.publishers_lock.acquire()
        added = wanted - self.publishers
        self.publishers = self.publishers | added

        if prune == True:
            stale = self.publishers - wanted
        else:
            stale = set()

        self.publishers_lock.release()

        for host, port in added:
            self.client.connect(host, port)

        if not stale:
            return

        # An announcement can be overtaken by a newer one; only disconnect
        # from publishers the registry no longer lists.

        try:
            current = self.node.registry.lookup(self.name, registry.PUBLISHER)
        except errors.MrosError as e:
            self.node.log.error("could not confirm publishers of %s, keeping connections: %s" % (self.name, e))
            return

        current = set(record.endpoint for record in current)

        self.publishers_lock.acquire()
        removed = (stale - current) & self.publishers
        self.publishers = self.publishers - removed
        self.publishers_lock.release()

        for host, port in removed:
            self.client.disconnect(host, port)


    def refresh(self):
        """ Ask the registry for the current publishers of this topic, and
            connect to any that are not yet connected. Existing connections
            are left alone; an announcement from a publisher may be more
            recent than the answer from the registry.
        """

        records = self.node.registry.lookup(self.name, registry.PUBLISHER)
        self.update(records, prune=False)


    def shutdown(self):

        if self.closed == True:
            return

        self.closed = True

        self.node.endpoint.remove_subscriber(self.name, self)
        self.client.close()
        self.node.registry.deregister(self.name, registry.SUBSCRIBER, self.node.name)


# end of class Subscriber


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
