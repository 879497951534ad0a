""" Logger construction. The core of mros only ever calls methods like
    info() and error() on whatever logging sink it is handed; this module
    supplies the default sinks, which are standard library loggers in the
    'mros' hierarchy, with pretty console output courtesy of rich.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

root_name = 'mros'
default_level = 'INFO'

_handler = None


def init_logger(name=None, level=None, width=None):
    """ Return a :class:`logging.Logger` named *name* within the 'mros'
        hierarchy. The first call installs a :class:`rich.logging.RichHandler`
        on the root 'mros' logger; subsequent calls reuse it. *level* is a
        logging level name such as 'INFO' or 'DEBUG'.
    """

    global _handler

    if level is None:
        level = default_level

    if name is None or name == '':
        name = root_name
    elif name.startswith(root_name + '.') or name == root_name:
        pass
    else:
        name = root_name + '.' + name.strip('/').replace('/', '.')

    root = logging.getLogger(root_name)

    if _handler is None:
        console = Console(stderr=True, width=width)
        _handler = RichHandler(console=console, rich_tracebacks=False, markup=False)
        _handler.setFormatter(logging.Formatter('[%(name)s] %(message)s'))
        root.addHandler(_handler)
        root.propagate = False

    root.setLevel(getattr(logging, level))

    return logging.getLogger(name)


def node_logger(node_name):
    """ Return the default logging sink for the node named *node_name*,
        without installing any handlers.
    """

    name = node_name.strip('/').replace('/', '.')

    if name == '':
        return logging.getLogger(root_name + '.node')

    return logging.getLogger(root_name + '.node.' + name)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
