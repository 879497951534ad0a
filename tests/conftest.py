import mros
import pytest


class Holder(mros.NodeMain):
    """ A node that does nothing on its own; the test drives it through the
        node handle captured at startup.
    """

    def on_start(self, node):
        self.node = node


class Collector:
    """ A logging sink that remembers what it was told.
    """

    def __init__(self):
        self.infos = list()
        self.errors = list()

    def info(self, message):
        self.infos.append(message)

    def error(self, message):
        self.errors.append(message)

    def debug(self, message):
        pass


@pytest.fixture
def registry():
    """ A registry listening on an automatically assigned port, so that
        tests do not collide with each other or with a registry already
        running on the default port.
    """

    instance = mros.Registry('127.0.0.1')
    instance.start(port=None)

    assert instance.await_ready(2) == True

    yield instance

    instance.shutdown()


@pytest.fixture
def configuration(registry):
    return mros.NodeConfiguration.local(registry)


@pytest.fixture
def executor(registry):

    instance = mros.Executor()

    yield instance

    instance.shutdown(grace=1)


@pytest.fixture
def start_node(executor, configuration):
    """ Return a function that starts a :class:`Holder` node with the given
        name and returns its node handle.
    """

    def start(name, log=None):

        if log is None:
            log = Collector()

        holder = Holder(name)
        runtime = executor.execute(holder, configuration, log)

        assert runtime.wait_started(5) == True
        return holder.node

    return start


@pytest.fixture
def collector():
    return Collector()

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
