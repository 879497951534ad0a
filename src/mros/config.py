""" Configuration for a node: where the node can be reached, where the
    registry can be reached, and what the node is called. None of this is
    read from disk; it is either supplied directly or taken from the
    environment via :func:`NodeConfiguration.from_environment`.
"""

import os
import urllib.parse

from . import errors
from . import names
from . import registry

master_uri_variable = 'MROS_MASTER_URI'
host_variable = 'MROS_IP'

schemes = ('tcp', 'http')


def parse_uri(uri):
    """ Split a registry *uri* such as 'tcp://127.0.0.1:11311' into a
        (host, port) tuple. The 'http' scheme is accepted as a synonym for
        'tcp'; if the port is omitted the default registry port is used.
    """

    if uri is None or str(uri).strip() == '':
        raise errors.ConfigurationError('the registry URI must be specified')

    uri = str(uri).strip()
    parsed = urllib.parse.urlsplit(uri)

    if parsed.scheme in schemes:
        pass
    else:
        raise errors.ConfigurationError('unsupported registry URI scheme: ' + repr(uri))

    host = parsed.hostname

    if host is None or host == '':
        raise errors.ConfigurationError('no host in registry URI: ' + repr(uri))

    try:
        port = parsed.port
    except ValueError:
        raise errors.ConfigurationError('invalid port in registry URI: ' + repr(uri))

    if port is None:
        port = registry.default_port

    return (host, port)



class NodeConfiguration:
    """ The settings a node needs before it can start: the *host* address
        other nodes should use to reach it, the *master_uri* of the
        registry, and optionally the node *name*, which overrides the
        default name of the node being executed.

        *registry_wait* is how long, in seconds, registry operations are
        retried while the registry is not answering. *grace* is how long
        shutdown waits for the node's work loops to finish.

        Invalid values raise :class:`mros.errors.ConfigurationError`
        immediately.
    """

    registry_wait = 2.0
    grace = 2.0

    def __init__(self, host, master_uri, name=None, registry_wait=None, grace=None):

        if host is None or str(host).strip() == '':
            raise errors.ConfigurationError('the node host must be specified')

        self.host = str(host).strip()
        self.master_uri = str(master_uri).strip() if master_uri is not None else None
        self.master_host, self.master_port = parse_uri(master_uri)

        if name is None:
            self.name = None
        else:
            self.name = names.canonical(name)

        if registry_wait is not None:
            self.registry_wait = float(registry_wait)

        if grace is not None:
            self.grace = float(grace)


    def __repr__(self):
        return "NodeConfiguration(host=%s, master_uri=%s, name=%s)" % (repr(self.host), repr(self.master_uri), repr(self.name))


    def copy(self, name=None):
        """ Return a new :class:`NodeConfiguration` with the same settings,
            with the node name replaced by *name* if specified.
        """

        if name is None:
            name = self.name

        return NodeConfiguration(self.host, self.master_uri, name, self.registry_wait, self.grace)


    @classmethod
    def from_environment(cls, name=None, environment=None):
        """ Build a configuration from the MROS_MASTER_URI and MROS_IP
            environment variables. Both must be set and non-blank.
        """

        if environment is None:
            environment = os.environ

        master_uri = environment.get(master_uri_variable)
        host = environment.get(host_variable)

        if master_uri is None or master_uri.strip() == '':
            raise errors.ConfigurationError(master_uri_variable + ' environment variable needs to be set.')

        if host is None or host.strip() == '':
            raise errors.ConfigurationError(host_variable + ' environment variable needs to be set.')

        return cls(host, master_uri, name)


    @classmethod
    def local(cls, registry, name=None):
        """ Configuration for a node running against the in-process
            :class:`mros.registry.Registry` instance *registry*.
        """

        return cls(registry.hostname, registry.uri, name)


# end of class NodeConfiguration


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
