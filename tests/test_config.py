import mros
import pytest

from mros import config


def test_parse_uri():

    assert config.parse_uri('tcp://127.0.0.1:11311') == ('127.0.0.1', 11311)
    assert config.parse_uri('http://localhost:12000') == ('localhost', 12000)
    assert config.parse_uri('http://127.0.0.1') == ('127.0.0.1', 11311)
    assert config.parse_uri('  tcp://10.0.0.1:5000/  ') == ('10.0.0.1', 5000)

    for bad in (None, '', '   ', 'ftp://127.0.0.1:11311', 'tcp://:11311', 'tcp://127.0.0.1:notaport'):
        with pytest.raises(mros.errors.ConfigurationError):
            config.parse_uri(bad)


def test_configuration():

    configuration = mros.NodeConfiguration('127.0.0.1', 'http://127.0.0.1:11311', '/spyros/test/publisher/')

    assert configuration.host == '127.0.0.1'
    assert configuration.master_host == '127.0.0.1'
    assert configuration.master_port == 11311
    assert configuration.name == '/spyros/test/publisher'

    renamed = configuration.copy('/other')
    assert renamed.name == '/other'
    assert renamed.master_uri == configuration.master_uri

    with pytest.raises(mros.errors.ConfigurationError):
        mros.NodeConfiguration('  ', 'http://127.0.0.1:11311')

    with pytest.raises(mros.errors.ConfigurationError):
        mros.NodeConfiguration('127.0.0.1', None)

    with pytest.raises(mros.errors.ConfigurationError):
        mros.NodeConfiguration('127.0.0.1', 'http://127.0.0.1:11311', '   ')


def test_from_environment():

    environment = dict()
    environment['MROS_MASTER_URI'] = 'http://192.168.1.10:11311'
    environment['MROS_IP'] = '192.168.1.20'

    configuration = mros.NodeConfiguration.from_environment('/node', environment)

    assert configuration.host == '192.168.1.20'
    assert configuration.master_host == '192.168.1.10'
    assert configuration.master_port == 11311
    assert configuration.name == '/node'

    for variable in ('MROS_MASTER_URI', 'MROS_IP'):
        for value in (None, '', '  '):
            broken = dict(environment)

            if value is None:
                del broken[variable]
            else:
                broken[variable] = value

            with pytest.raises(mros.errors.ConfigurationError) as caught:
                mros.NodeConfiguration.from_environment(environment=broken)

            assert variable in str(caught.value)


def test_from_process_environment(monkeypatch):

    monkeypatch.setenv('MROS_MASTER_URI', 'tcp://127.0.0.1:12345')
    monkeypatch.setenv('MROS_IP', '127.0.0.1')

    configuration = mros.NodeConfiguration.from_environment()
    assert configuration.master_port == 12345


def test_local(registry):

    configuration = mros.NodeConfiguration.local(registry)

    assert configuration.master_host == '127.0.0.1'
    assert configuration.master_port == registry.port
    assert configuration.name is None


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
