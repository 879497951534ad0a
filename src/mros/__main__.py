""" Command line entry points. 'mros local' runs a registry, a publisher,
    and a subscriber in this process; 'mros external' runs all four
    demonstration nodes against the registry named in the environment;
    'mros registry' runs a standalone registry until interrupted.
"""

import argparse
import sys
import time

from . import config
from . import errors
from . import examples
from . import logging
from . import registry
from .node import Executor

EXIT_OK = 0
EXIT_ERROR = 1

topic_name = '/mros/test/topic'
service_name = '/mros/test/service/sum'

publisher_name = '/mros/test/publisher'
subscriber_name = '/mros/test/subscriber'
server_name = '/mros/test/server'
client_name = '/mros/test/client'

start_timeout = 10


def _sleep(seconds, log):

    try:
        time.sleep(seconds)
    except KeyboardInterrupt:
        log.info('interrupted, shutting down')


def _execute(executor, node_main, configuration):
    """ Start *node_main* and wait for it to be running. Raises the error
        that prevented it from starting, if any.
    """

    runtime = executor.execute(node_main, configuration.copy(node_main.default_name))

    if runtime.wait_started(start_timeout) == True:
        return runtime

    if runtime.error is None:
        raise errors.NotReadyError("node %s did not start within %d sec" % (runtime.name, start_timeout))

    raise runtime.error


def local(arguments, log):

    master = registry.Registry('127.0.0.1')

    try:
        master.start(arguments.port)
    except errors.BindError as e:
        log.error("could not start the registry: %s" % (e))
        return EXIT_ERROR

    try:
        if master.await_ready(2.0) == False:
            log.error('the registry did not become ready in time')
            return EXIT_ERROR

        configuration = config.NodeConfiguration.local(master)
        executor = Executor()

        publisher = examples.PublisherNode(topic_name, publisher_name)
        subscriber = examples.SubscriberNode(topic_name, subscriber_name)

        try:
            _execute(executor, publisher, configuration)
            _execute(executor, subscriber, configuration)
        except Exception as e:
            log.error("startup failed: %s" % (e))
            executor.shutdown()
            return EXIT_ERROR

        _sleep(arguments.duration, log)

        executor.shutdown_node(subscriber)
        executor.shutdown_node(publisher)
        executor.shutdown()

    finally:
        master.shutdown()

    return EXIT_OK


def external(arguments, log):

    try:
        configuration = config.NodeConfiguration.from_environment()
    except errors.ConfigurationError as e:
        log.error(str(e))
        return EXIT_ERROR

    executor = Executor()

    server = examples.AddTwoIntsServerNode(service_name, server_name)
    client = examples.AddTwoIntsClientNode(service_name, client_name)
    publisher = examples.PublisherNode(topic_name, publisher_name)
    subscriber = examples.SubscriberNode(topic_name, subscriber_name)

    try:
        _execute(executor, server, configuration)

        # Give the service registration a moment to settle before the
        # client starts asking for it.
        time.sleep(arguments.settle)

        _execute(executor, client, configuration)
        _execute(executor, publisher, configuration)
        _execute(executor, subscriber, configuration)
    except Exception as e:
        log.error("startup failed: %s" % (e))
        executor.shutdown()
        return EXIT_ERROR

    _sleep(arguments.duration, log)

    executor.shutdown_node(client)
    executor.shutdown_node(subscriber)
    executor.shutdown_node(publisher)
    executor.shutdown_node(server)

    return EXIT_OK


def standalone(arguments, log):

    master = registry.Registry(arguments.hostname)

    try:
        master.start(arguments.port)
    except errors.BindError as e:
        log.error("could not start the registry: %s" % (e))
        return EXIT_ERROR

    log.info("registry running at %s, Ctrl-C to stop" % (master.uri))

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        master.shutdown()

    return EXIT_OK


def parse(argv=None):

    parser = argparse.ArgumentParser(prog='mros', description='Run mros registries and demonstration nodes')
    parser.add_argument('--level', default='INFO', help='Logging level (default: %(default)s)')

    commands = parser.add_subparsers(dest='command', required=True)

    command = commands.add_parser('local', help='Run a registry, publisher, and subscriber in this process')
    command.add_argument('--port', type=int, default=registry.default_port, help='Registry port (default: %(default)s)')
    command.add_argument('--duration', type=float, default=30, help='Seconds to run before shutting down (default: %(default)s)')
    command.set_defaults(function=local)

    command = commands.add_parser('external', help='Run all demonstration nodes against $' + config.master_uri_variable)
    command.add_argument('--duration', type=float, default=30, help='Seconds to run before shutting down (default: %(default)s)')
    command.add_argument('--settle', type=float, default=2, help='Seconds to wait after starting the service server (default: %(default)s)')
    command.set_defaults(function=external)

    command = commands.add_parser('registry', help='Run a standalone registry')
    command.add_argument('--hostname', default='127.0.0.1', help='Address advertised for the registry (default: %(default)s)')
    command.add_argument('--port', type=int, default=registry.default_port, help='Registry port (default: %(default)s)')
    command.set_defaults(function=standalone)

    return parser.parse_args(argv)


def main(argv=None):

    arguments = parse(argv)
    log = logging.init_logger('main', arguments.level.upper())

    return arguments.function(arguments, log)


if __name__ == '__main__':
    sys.exit(main())


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
