""" Message types carried by the mros transport. Requests travel from a
    client to a server as five frames and are answered with an ACK and then
    a REP in the same shape; topic data travels as three-frame PUB
    broadcasts. Every message body is a JSON-encoded :class:`Payload`.
"""

import itertools
import threading
import time

from .. import json


# Single byte identifying the wire format. Peers reject frames carrying
# any other value.

version = b'a'


class Message:
    """ A message that does not expect an answer: the ACK and REP sent by
        a server in response to a request. *type* is one of
        :attr:`valid_types`, *target* names the registry, service, or
        topic the exchange concerns, *payload* is a :class:`Payload` or
        None, and *id* ties a response to the request it answers.

        Iterating over a message yields its wire frames::

            (version, id, type, target, payload)
    """

    valid_types = set(('ACK', 'REP'))

    def __init__(self, type, target=None, payload=None, id=None):

        if type not in self.valid_types:
            raise ValueError('invalid message type: ' + str(type))

        self.type = type
        self.target = target
        self.payload = payload
        self.id = id

        self.frames = None


    def __iter__(self):
        if self.frames is None:
            self.frames = self._build()

        return iter(self.frames)


    def __repr__(self):
        return "%s(%s, %s, id=%s)" % (type(self).__name__, repr(self.type), repr(self.target), repr(self.id))


    def _build(self):

        if self.id is None:
            raise RuntimeError("%s message for %s has no id" % (self.type, repr(self.target)))

        id = self.id

        if isinstance(id, int):
            id = ('%08x' % (id)).encode()

        return (version, id, self.type.encode(), _encode_target(self.target), _encode_payload(self.payload))


# end of class Message



class Broadcast(Message):
    """ A topic message. The first frame is the topic name with a trailing
        dot, which is what subscribers filter on::

            (topic + '.', version, payload)
    """

    valid_types = set(('PUB',))

    def _build(self):
        return (topic_prefix(self.target), version, _encode_payload(self.payload))


# end of class Broadcast



class Request(Message):
    """ A message sent by a client that the server will answer. The
        request is assigned a fresh id if none is given; the client's I/O
        thread calls :func:`_complete_ack` and :func:`_complete` as the
        answers arrive, releasing whoever is blocked in :func:`wait_ack`
        or :func:`wait`.

        :ivar response: The REP :class:`Message`, once it has arrived.
    """

    valid_types = set(('REGISTER', 'LOOKUP', 'DEREGISTER', 'DEREGISTER_NODE',
                       'LOOKUP_NODE', 'STATE', 'PING', 'CALL', 'UPDATE'))

    def __init__(self, type, target=None, payload=None, id=None):

        if id is None:
            id = _id_next()

        Message.__init__(self, type, target, payload, id)

        self.response = None
        self.acknowledged = threading.Event()
        self.answered = threading.Event()


    def _complete_ack(self):
        self.acknowledged.set()


    def _complete(self, response):

        # A REP implies the ACK, whether or not it was seen.

        self.response = response
        self.acknowledged.set()
        self.answered.set()


    def wait_ack(self, timeout):
        """ Return True once the server has acknowledged the request, or
            False if *timeout* seconds pass first.
        """

        return self.acknowledged.wait(timeout)


    def wait(self, timeout=60):
        """ Return the REP :class:`Message` once it arrives, or None if
            *timeout* seconds pass first.
        """

        self.answered.wait(timeout)
        return self.response


# end of class Request



class Payload:
    """ The body of a message. *value* is any JSON-serializable value,
        *time* defaults to the creation time, and *error* is either None
        or a dictionary produced by :func:`mros.errors.to_dict`. Extra
        keyword arguments become extra JSON fields.
    """

    omit = set(('_encoded', 'omit'))

    def __init__(self, value, time=None, error=None, **kwargs):

        if time is None:
            time = _now()

        self.value = value
        self.time = time
        self.error = error

        for key,extra in kwargs.items():
            setattr(self, key, extra)

        self._encoded = None


    def __repr__(self):
        return self.encapsulate().decode()


    def encapsulate(self):
        """ Return the JSON bytes for this payload. The encoding is done
            once; later calls return the same bytes.
        """

        if self._encoded is None:
            fields = dict()
            for key,value in vars(self).items():
                if key not in self.omit:
                    fields[key] = value

            self._encoded = json.dumps(fields)

        return self._encoded


# end of class Payload



def decode_payload(raw):
    """ Build a :class:`Payload` from the bytes of a payload frame; an
        empty frame is None. JSON that is not an object with the expected
        fields becomes the value of a new payload. Raises
        :class:`mros.json.DecodeError` for bytes that are not JSON.
    """

    if raw is None or raw == b'':
        return None

    decoded = json.loads(raw)

    if isinstance(decoded, dict):
        try:
            return Payload(**decoded)
        except TypeError:
            pass

    return Payload(decoded)


def topic_prefix(topic):
    """ Return the subscription prefix, as bytes, for *topic*.
    """

    return (topic + '.').encode()


def _encode_target(target):

    if target is None or target == '':
        return b''

    if isinstance(target, bytes):
        return target

    return target.encode()


def _encode_payload(payload):

    if payload is None:
        return b''

    return payload.encapsulate()


_now = time.time

_id_limit = 0x100000000
_id_lock = threading.Lock()
_id_counter = itertools.count()


def _id_next():
    """ Return a request id unique within this process, as eight hex
        digits. Ids wrap around after 0xffffffff.
    """

    _id_lock.acquire()
    id = next(_id_counter) % _id_limit
    _id_lock.release()

    return ('%08x' % (id)).encode()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
