import mros
import mros.__main__ as cli
import pytest


def free_port():

    registry = mros.Registry()
    registry.start(port=None)
    port = registry.port
    registry.shutdown()

    return port


def test_exit_codes():
    assert cli.EXIT_OK == 0
    assert cli.EXIT_ERROR == 1


def test_parse():

    arguments = cli.parse(['local', '--duration', '1.5'])
    assert arguments.function is cli.local
    assert arguments.duration == 1.5
    assert arguments.port == 11311

    arguments = cli.parse(['external'])
    assert arguments.function is cli.external
    assert arguments.settle == 2

    arguments = cli.parse(['registry', '--port', '12000'])
    assert arguments.function is cli.standalone
    assert arguments.port == 12000

    with pytest.raises(SystemExit):
        cli.parse([])


def test_local():

    port = free_port()
    assert cli.main(['local', '--port', str(port), '--duration', '0.5']) == cli.EXIT_OK


def test_local_port_taken(registry):
    assert cli.main(['local', '--port', str(registry.port), '--duration', '0']) == cli.EXIT_ERROR


def test_external_needs_environment(monkeypatch):

    monkeypatch.delenv('MROS_MASTER_URI', raising=False)
    monkeypatch.delenv('MROS_IP', raising=False)

    assert cli.main(['external', '--duration', '0']) == cli.EXIT_ERROR


def test_external(registry, monkeypatch):

    monkeypatch.setenv('MROS_MASTER_URI', registry.uri)
    monkeypatch.setenv('MROS_IP', '127.0.0.1')

    arguments = ['external', '--duration', '0.5', '--settle', '0.1']
    assert cli.main(arguments) == cli.EXIT_OK

    assert registry.state() == []


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
