""" Demonstration nodes: a string publisher and a subscriber that logs what
    it receives, and a server and client for a service that adds two
    integers. The :mod:`mros.__main__` entry points run them.
"""

import time

from . import names
from .node import NodeMain

string_type = 'std_msgs/String'
add_two_ints_type = 'rosjava_test_msgs/AddTwoInts'


class PublisherNode(NodeMain):
    """ Publish a message on *topic* every :attr:`interval` seconds, giving
        the time elapsed since the node started.
    """

    interval = 1.0

    def __init__(self, topic, name):
        NodeMain.__init__(self, name)
        self.topic = names.canonical(topic)
        self.publisher = None


    def on_start(self, node):

        self.publisher = node.new_publisher(self.topic, string_type)
        started = time.time()
        log = node.log

        def step():
            elapsed = int((time.time() - started) * 1000)

            message = dict()
            message['data'] = "%d milliseconds" % (elapsed)

            self.publisher.publish(message)
            log.info("Publisher - Published: [%s]" % (message['data']))

        node.execute_loop(step, self.interval)


# end of class PublisherNode



class SubscriberNode(NodeMain):

    def __init__(self, topic, name):
        NodeMain.__init__(self, name)
        self.topic = names.canonical(topic)
        self.subscriber = None


    def on_start(self, node):

        log = node.log

        def received(message):
            log.info("Subscriber - Received: [%s]" % (message['data']))

        self.subscriber = node.new_subscriber(self.topic, string_type)
        self.subscriber.add_message_listener(received)


# end of class SubscriberNode



class AddTwoIntsServerNode(NodeMain):
    """ Serve requests of the form {'a': 1, 'b': 2} on *service*, answering
        with {'sum': 3}.
    """

    def __init__(self, service, name):
        NodeMain.__init__(self, name)
        self.service = names.canonical(service)
        self.log = None


    def add(self, request):

        a = int(request['a'])
        b = int(request['b'])

        response = dict()
        response['sum'] = a + b

        if self.log is not None:
            self.log.info("Server: %d + %d = %d" % (a, b, response['sum']))

        return response


    def on_start(self, node):

        self.log = node.log
        server = node.new_service_server(self.service, add_two_ints_type, self.add)
        self.log.info("Server: serving %s at %s" % (server.name, server.uri))


# end of class AddTwoIntsServerNode



class AddTwoIntsClientNode(NodeMain):
    """ Ask the server on *service* for the sum of 1 and 2, every
        :attr:`interval` seconds.
    """

    interval = 1.0

    def __init__(self, service, name):
        NodeMain.__init__(self, name)
        self.service = names.canonical(service)
        self.client = None


    def on_start(self, node):

        log = node.log
        self.client = node.new_service_client(self.service, add_two_ints_type)

        def success(response):
            log.info("Client: Thanks, now I know the sum is: %d!" % (response['sum']))

        def failure(error):
            log.error("Client: call to %s failed: %s" % (self.service, error))

        def step():
            request = dict()
            request['a'] = 1
            request['b'] = 2

            log.info("Client: How much is the sum %d+%d?" % (request['a'], request['b']))
            self.client.call(request, success, failure)

        node.execute_loop(step, self.interval)


# end of class AddTwoIntsClientNode


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
