""" Exception classes shared by every mros component. Errors that cross the
    wire are carried as a dictionary with 'type', 'text', and 'debug' fields;
    :func:`from_dict` maps them back onto the classes defined here.
"""


class MrosError(Exception):
    """ Base class for all mros errors. """


class ConfigurationError(MrosError, ValueError):
    """ A required name or endpoint is missing or invalid. Raised at
        construction time, before any network activity takes place.
    """


class NotReadyError(MrosError):
    """ The registry is not (yet) accepting requests. The caller is expected
        to retry after a backoff.
    """


class BindError(MrosError):
    """ A listening endpoint could not be acquired. """


class ServiceNotFoundError(MrosError):
    """ A service name could not be resolved to a running server. """


class RemoteError(MrosError):
    """ The remote side raised an exception while handling a request. The
        exception type name and traceback of the remote side are retained
        in *remote_type* and *debug*.
    """

    def __init__(self, text, remote_type=None, debug=None):
        MrosError.__init__(self, text)
        self.remote_type = remote_type
        self.debug = debug


class ServiceTimeoutError(RemoteError):
    """ No response arrived within the caller-supplied timeout. This is not
        proof that the request was not executed.
    """


class InterruptedOperation(MrosError):
    """ A blocking wait inside a work loop was interrupted by cancellation. """


_by_name = dict()

for _class in (ConfigurationError, NotReadyError, BindError,
               ServiceNotFoundError, RemoteError, ServiceTimeoutError):
    _by_name[_class.__name__] = _class


def to_dict(exception, debug=None):
    """ Describe *exception* as a dictionary suitable for inclusion in a
        response payload.
    """

    error = dict()
    error['type'] = type(exception).__name__
    error['text'] = str(exception)
    error['debug'] = debug
    return error


def from_dict(error):
    """ Return an exception instance for the *error* dictionary found in a
        response payload. Known mros error types are rebuilt as themselves;
        anything else becomes a :class:`RemoteError`.
    """

    e_type = error.get('type')
    e_text = error.get('text', '')
    e_debug = error.get('debug')

    try:
        e_class = _by_name[e_type]
    except KeyError:
        return RemoteError("%s: %s" % (e_type, e_text), e_type, e_debug)

    if issubclass(e_class, RemoteError):
        return e_class(e_text, e_type, e_debug)

    return e_class(e_text)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
