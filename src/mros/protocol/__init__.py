""" Wire-level components of mros: message framing, and the request and
    publish transports built on ZeroMQ.
"""

from . import message
from . import request
from . import publish

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
