""" Python implementation of mros, a small publish/subscribe and service
    call substrate. Nodes find each other through a registry, exchange
    messages on named topics, and call named services on each other.
"""

# Utility components.

from . import errors
from . import json
from . import names
from . import logging

# Submodules used by multiple other components.

from . import protocol
from . import registry
from . import loop
from . import config

# Primary public-facing interfaces.

from .config import NodeConfiguration
from .registry import Registry, Proxy, Record
from .node import NodeMain, Node, NodeRuntime, Executor
from .topic import Publisher, Subscriber
from .service import ServiceServer, ServiceClient, Result

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
