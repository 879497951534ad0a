""" Service servers and clients: synchronous request/response calls over a
    named service. A service name is bound to exactly one server at a time;
    any number of clients may call it.

    Failures of a call are reported, not raised: :func:`ServiceClient.call`
    returns a :class:`Result` and invokes exactly one of the success or
    failure callbacks. Retrying is up to the caller.
"""

import concurrent.futures
import threading
import time
import traceback

from . import errors
from . import protocol
from . import registry
from .topic import compatible


class Result:
    """ The outcome of a service call. *ok* is True on success, in which
        case *value* holds the response; otherwise *error* holds the
        exception describing the failure.
    """

    def __init__(self, ok, value=None, error=None):
        self.ok = ok
        self.value = value
        self.error = error


    def __bool__(self):
        return self.ok


    def __repr__(self):
        if self.ok:
            return "Result(ok, %s)" % (repr(self.value))
        else:
            return "Result(failed, %s)" % (repr(self.error))


    def unwrap(self):
        """ Return the response value, or raise the failure.
        """

        if self.ok:
            return self.value

        raise self.error


# end of class Result



class ServiceServer:
    """ Bind *handler* to the service *name* on behalf of *node*. The
        handler receives the request value and returns the response value;
        it is invoked from a pool of worker threads, and may be running
        for several calls at once. An exception raised by the handler is
        returned to the caller as a :class:`mros.errors.RemoteError`, and
        does not affect the server.
    """

    def __init__(self, node, name, service_type, handler):

        if callable(handler):
            pass
        else:
            raise TypeError('handler must be callable')

        self.node = node
        self.name = node.resolve(name)
        self.service_type = service_type
        self.handler = handler
        self.closed = False

        endpoint = node.endpoint
        self.record = registry.Record(self.name, registry.SERVICE, node.host, endpoint.request_port, service_type, node.name)

        endpoint.add_service(self.name, self)

        try:
            node.registry.register(self.record)
        except Exception:
            endpoint.remove_service(self.name, self)
            raise


    @property
    def uri(self):
        return "tcp://%s:%d" % (self.record.host, self.record.port)


    def handle(self, request):
        return self.handler(request)


    def shutdown(self):

        if self.closed == True:
            return

        self.closed = True
        self.node.endpoint.remove_service(self.name, self)
        self.node.registry.deregister(self.name, registry.SERVICE, self.node.name)


# end of class ServiceServer



class ServiceClient:
    """ Call the service *name* on behalf of *node*. The server is looked
        up in the registry on first use; the endpoint is remembered, and
        looked up again after any failure that suggests the server moved.
        One call is in flight at a time for a given client.
    """

    timeout = 5

    def __init__(self, node, name, service_type):

        self.node = node
        self.name = node.resolve(name)
        self.service_type = service_type
        self.endpoint = None
        self.lock = threading.Lock()
        self.closed = False

        self.workers = concurrent.futures.ThreadPoolExecutor(max_workers=1)


    def resolve(self):
        """ Return the (host, port) endpoint of the server currently bound to
            this service. Raises :class:`mros.errors.ServiceNotFoundError`
            if there is no such server, or if its type is incompatible.
        """

        records = self.node.registry.lookup(self.name, registry.SERVICE)

        if len(records) == 0:
            raise errors.ServiceNotFoundError('no server for service ' + self.name)

        record = records[0]

        if compatible(self.service_type, record.message_type):
            pass
        else:
            raise errors.ServiceNotFoundError("service %s is of type %s, expected %s" % (self.name, record.message_type, self.service_type))

        return record.endpoint


    @property
    def connected(self):
        """ True if this client currently knows where its server is.
        """

        return self.endpoint is not None


    def _call(self, request, timeout):

        if self.endpoint is None:
            self.endpoint = self.resolve()

        host, port = self.endpoint

        payload = protocol.message.Payload(request)
        message = protocol.message.Request('CALL', self.name, payload)

        started = time.time()
        connection = protocol.request.client(host, port)

        try:
            connection.send(message, min(timeout, connection.timeout))
        except protocol.request.TransportTimeout as e:
            self.endpoint = None
            raise errors.ServiceNotFoundError("service %s at %s:%d is not answering: %s" % (self.name, host, port, e))

        remaining = max(timeout - (time.time() - started), 0)
        response = message.wait(remaining)

        if response is None:
            connection.forget(message)
            raise errors.ServiceTimeoutError("service %s: no response in %.2f sec" % (self.name, timeout))

        payload = response.payload

        if payload is None:
            return None

        error = payload.error

        if error:
            if error.get('type') == 'ServiceNotFoundError':
                # The node answering is no longer providing the service.
                self.endpoint = None
                raise errors.ServiceNotFoundError(error.get('text'))

            text = "%s: %s" % (error.get('type'), error.get('text'))
            raise errors.RemoteError(text, error.get('type'), error.get('debug'))

        return payload.value


    def call(self, request, on_success=None, on_failure=None, timeout=None):
        """ Send *request* to the service and wait up to *timeout* seconds
            for the response. On success *on_success* is invoked with the
            response value; on failure *on_failure* is invoked with an
            :class:`mros.errors.MrosError` describing what went wrong. The
            outcome is also returned as a :class:`Result`. No exception
            escapes this method, other than those raised by the callbacks.
        """

        if timeout is None:
            timeout = self.timeout

        self.lock.acquire()
        try:
            if self.closed == True:
                raise errors.ServiceNotFoundError('client for %s is shut down' % (self.name))

            value = self._call(request, timeout)
        except errors.MrosError as e:
            result = Result(False, error=e)
        else:
            result = Result(True, value)
        finally:
            self.lock.release()

        if result.ok:
            if on_success is not None:
                on_success(result.value)
        else:
            if on_failure is not None:
                on_failure(result.error)

        return result


    def call_async(self, request, on_success=None, on_failure=None, timeout=None):
        """ The same as :func:`call`, but run in the background. Returns a
            :class:`concurrent.futures.Future` whose result is the
            :class:`Result` of the call.
        """

        return self.workers.submit(self._call_logged, request, on_success, on_failure, timeout)


    def _call_logged(self, request, on_success, on_failure, timeout):

        try:
            return self.call(request, on_success, on_failure, timeout)
        except Exception:
            self.node.log.error("callback for service %s failed:\n%s" % (self.name, traceback.format_exc()))
            raise


    def shutdown(self):

        if self.closed == True:
            return

        self.closed = True
        self.workers.shutdown(wait=False)


# end of class ServiceClient


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
