import mros
import pytest
import threading
import time

from mros import examples
from mros import node as node_module
from mros.registry import PUBLISHER, SERVICE


class Talker(mros.NodeMain):

    default_name = '/talker'

    def __init__(self, name=None):
        mros.NodeMain.__init__(self, name)
        self.events = list()
        self.published = 0

    def on_start(self, node):
        self.events.append('start')
        self.publisher = node.new_publisher('/chatter', 'std_msgs/String')
        self.loop = node.execute_loop(self.step, 0.01)

    def step(self):
        self.publisher.publish({'data': str(self.published)})
        self.published += 1

    def on_shutdown(self, node):
        self.events.append('shutdown')


class Broken(mros.NodeMain):

    default_name = '/broken'

    def __init__(self):
        mros.NodeMain.__init__(self)
        self.errors = list()

    def on_start(self, node):
        node.new_publisher('/chatter')
        node.new_service_server('/add', '*', lambda request: request)
        raise RuntimeError('on_start failed on purpose')

    def on_error(self, node, error):
        self.errors.append(error)


def test_lifecycle(executor, configuration, registry, collector):

    talker = Talker()
    runtime = executor.execute(talker, configuration, collector)

    assert runtime.wait_started(5) == True
    assert runtime.state == node_module.RUNNING
    assert runtime.error is None
    assert talker.events == ['start']

    found = registry.lookup('/chatter', PUBLISHER)
    assert len(found) == 1
    assert found[0].node == '/talker'

    assert executor.runtime(talker) is runtime
    assert executor.shutdown_node(talker, grace=1) == True

    assert runtime.state == node_module.STOPPED
    assert talker.events == ['start', 'shutdown']
    assert talker.loop.running == False
    assert registry.lookup('/chatter', PUBLISHER) == []
    assert registry.lookup_node('/talker') == []
    assert executor.runtime(talker) is None

    # Shutting down again is harmless.

    assert runtime.shutdown() == True


def test_configured_name(executor, configuration, registry):

    talker = Talker()
    runtime = executor.execute(talker, configuration.copy('/renamed'))

    assert runtime.wait_started(5) == True
    assert runtime.name == '/renamed'
    assert len(registry.lookup_node('/renamed')) == 1


def test_startup_failure(executor, configuration, registry, collector):

    broken = Broken()
    runtime = executor.execute(broken, configuration, collector)

    assert runtime.wait_started(5) == False
    assert runtime.state == node_module.STOPPED
    assert isinstance(runtime.error, RuntimeError)
    assert broken.errors == [runtime.error]

    # Everything registered before the failure is gone again.

    assert registry.lookup_node('/broken') == []
    assert registry.lookup('/chatter', PUBLISHER) == []
    assert registry.lookup('/add', SERVICE) == []

    failures = [message for message in collector.errors if 'on_start failed on purpose' in message]
    assert len(failures) == 1


def test_sibling_isolation(executor, configuration, registry):

    talker = Talker()
    broken = Broken()

    good = executor.execute(talker, configuration)
    bad = executor.execute(broken, configuration)

    assert good.wait_started(5) == True
    assert bad.wait_started(5) == False

    time.sleep(0.1)

    assert good.state == node_module.RUNNING
    assert talker.published > 0
    assert len(registry.lookup('/chatter', PUBLISHER)) == 1

    assert executor.shutdown(grace=1) == True
    assert good.state == node_module.STOPPED


def test_registry_unreachable(executor, collector):

    # Start and stop a registry to find a port where nobody is listening.

    registry = mros.Registry()
    registry.start(port=None)
    uri = registry.uri
    registry.shutdown()

    configuration = mros.NodeConfiguration('127.0.0.1', uri, registry_wait=0)

    talker = Talker()
    runtime = executor.execute(talker, configuration, collector)

    assert runtime.wait_started(10) == False
    assert runtime.state == node_module.STOPPED
    assert isinstance(runtime.error, mros.errors.NotReadyError)


def test_no_name(configuration):

    with pytest.raises(mros.errors.ConfigurationError):
        node_module.NodeRuntime(mros.NodeMain(), configuration)


def test_stuck_loop_abandoned(executor, configuration, registry, collector):

    release = threading.Event()

    class Stuck(mros.NodeMain):

        default_name = '/stuck'

        def on_start(self, node):
            node.new_publisher('/chatter')
            node.execute_loop(lambda: release.wait(10), name='stuck-loop')

    runtime = executor.execute(Stuck(), configuration, collector)
    assert runtime.wait_started(5) == True

    begin = time.time()
    assert runtime.shutdown(grace=0.2) == True
    elapsed = time.time() - begin

    release.set()

    # The loop is abandoned after the grace period; the node still stops,
    # and its registrations are still removed.

    assert elapsed < 5
    assert runtime.state == node_module.STOPPED
    assert registry.lookup_node('/stuck') == []

    abandoned = [message for message in collector.errors if 'stuck-loop' in message]
    assert len(abandoned) == 1


def test_shutdown_before_start(configuration):

    runtime = node_module.NodeRuntime(Talker(), configuration)
    assert runtime.state == node_module.CREATED

    assert runtime.shutdown() == True
    assert runtime.state == node_module.STOPPED


def test_end_to_end(executor, configuration, registry, collector):

    publisher = examples.PublisherNode('/spyros/test/topic/', '/spyros/test/publisher/')
    subscriber = examples.SubscriberNode('/spyros/test/topic/', '/spyros/test/subscriber/')
    server = examples.AddTwoIntsServerNode('/spyros/test/service/sum', '/spyros/test/server/')
    client = examples.AddTwoIntsClientNode('/spyros/test/service/sum', '/spyros/test/client/')

    publisher.interval = 0.05
    client.interval = 0.05

    runtimes = list()
    for node_main in (server, client, publisher, subscriber):
        runtime = executor.execute(node_main, configuration, collector)
        assert runtime.wait_started(5) == True
        runtimes.append(runtime)

    assert publisher.publisher.wait_for_subscribers(1, 5) == True

    def seen(prefix):
        return [message for message in list(collector.infos) if message.startswith(prefix)]

    deadline = time.time() + 5
    while time.time() < deadline:
        if seen('Subscriber - Received') and seen('Client: Thanks'):
            break
        time.sleep(0.05)

    assert len(seen('Publisher - Published: [')) > 0
    assert len(seen('Subscriber - Received: [')) > 0
    assert len(seen('Server: 1 + 2 = 3')) > 0
    assert len(seen('Client: Thanks, now I know the sum is: 3!')) > 0

    received = seen('Subscriber - Received: [')[0]
    assert received.endswith(' milliseconds]')

    assert executor.shutdown_node(client) == True
    assert executor.shutdown_node(subscriber) == True
    assert executor.shutdown_node(publisher) == True
    assert executor.shutdown_node(server) == True

    for runtime in runtimes:
        assert runtime.state == node_module.STOPPED

    assert registry.state() == []


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
