""" The transport endpoint of a node: the listening sockets other nodes
    connect to. Each node has exactly one :class:`Endpoint`, which is shared
    by everything the node creates. The request port answers service calls
    and publisher announcements; the publish port carries topic data for
    every publisher in the node.
"""

import threading

from . import errors
from . import protocol
from . import registry


class Endpoint:
    """ Bind the request and publish servers for a node reachable at
        *hostname*. The ports are assigned automatically unless specified.
        :class:`mros.errors.BindError` is raised if a port cannot be
        acquired; nothing is left listening in that case.
    """

    def __init__(self, hostname, request_port=None, publish_port=None):

        self.hostname = hostname
        self.services = dict()
        self.subscribers = dict()
        self.lock = threading.Lock()

        self.rep = RequestServer(self, hostname, request_port)

        try:
            self.pub = protocol.publish.Server(publish_port)
        except Exception:
            self.rep.close()
            raise

        self.closed = False


    @property
    def request_port(self):
        return self.rep.port


    @property
    def publish_port(self):
        return self.pub.port


    def add_service(self, name, server):
        """ Route incoming calls for the service *name* to *server*, which
            must have a handle(value) method.
        """

        self.lock.acquire()
        if name in self.services:
            self.lock.release()
            raise errors.ConfigurationError('service already provided by this node: ' + name)

        self.services[name] = server
        self.lock.release()


    def remove_service(self, name, server):

        self.lock.acquire()
        if self.services.get(name) is server:
            del self.services[name]
        self.lock.release()


    def add_subscriber(self, topic, subscriber):
        """ Route publisher announcements for *topic* to *subscriber*, which
            must have an update(records) method.
        """

        self.lock.acquire()
        try:
            subscribers = self.subscribers[topic]
        except KeyError:
            subscribers = list()
            self.subscribers[topic] = subscribers

        subscribers.append(subscriber)
        self.lock.release()


    def remove_subscriber(self, topic, subscriber):

        self.lock.acquire()
        try:
            subscribers = self.subscribers[topic]
        except KeyError:
            subscribers = list()

        if subscriber in subscribers:
            subscribers.remove(subscriber)

        if len(subscribers) == 0:
            self.subscribers.pop(topic, None)

        self.lock.release()


    def publish(self, topic, value):
        """ Queue *value* for broadcast on *topic*. Returns immediately.
        """

        payload = protocol.message.Payload(value)
        broadcast = protocol.message.Broadcast('PUB', topic, payload)
        self.pub.publish(broadcast)


    def close(self):

        if self.closed == True:
            return

        self.closed = True
        self.rep.close()
        self.pub.close()


# end of class Endpoint



class RequestServer(protocol.request.Server):
    """ The request server of a node. CALL requests are handed to the
        service named in the target; UPDATE requests carry the current list
        of publishers for the topic named in the target, and are handed to
        every local subscriber of that topic.
    """

    def __init__(self, endpoint, *args, **kwargs):
        self.endpoint = endpoint
        protocol.request.Server.__init__(self, *args, **kwargs)


    def req_handler(self, request):

        type = request.type

        if request.payload is None:
            value = None
        else:
            value = request.payload.value

        if type == 'CALL':
            return self.req_call(request.target, value)
        elif type == 'UPDATE':
            return self.req_update(request.target, value)
        elif type == 'PING':
            return protocol.message.Payload(None)
        else:
            raise ValueError('unhandled request type: ' + type)


    def req_call(self, name, value):

        self.endpoint.lock.acquire()
        server = self.endpoint.services.get(name)
        self.endpoint.lock.release()

        if server is None:
            raise errors.ServiceNotFoundError('no service named %s at this node' % (name))

        response = server.handle(value)
        return protocol.message.Payload(response)


    def req_update(self, topic, value):

        if value is None:
            value = list()

        records = [registry.Record.from_dict(record) for record in value]

        self.endpoint.lock.acquire()
        subscribers = list(self.endpoint.subscribers.get(topic, ()))
        self.endpoint.lock.release()

        for subscriber in subscribers:
            subscriber.update(records)

        return protocol.message.Payload(len(subscribers))


# end of class RequestServer


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
