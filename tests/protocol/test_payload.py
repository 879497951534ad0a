import mros
import pytest
import time


def test_basics():

    start = time.time()

    for test_value in (44, True, None, 35.5, (1,2,3), {'data': 'one'}, 'string'):
        payload = mros.protocol.message.Payload(test_value)
        assert payload.value is test_value
        assert payload.time >= start
        assert payload.error == None
        payload.encapsulate()


def test_encapsulate():

    for test_value in (44, True, None, 35.5, [1,2,3], 'string'):
        payload = mros.protocol.message.Payload(test_value)

        encapsulated = payload.encapsulate()
        assert isinstance(encapsulated, bytes)

        decoded = mros.json.loads(encapsulated)
        assert isinstance(decoded, dict)

        assert 'time' in decoded
        assert 'value' in decoded
        assert decoded['value'] == test_value


    bad_payload = mros.protocol.message.Payload({None: 'none'})

    with pytest.raises(TypeError):
        bad_payload.encapsulate()


def test_kwargs():

    payload = mros.protocol.message.Payload('something', testing='testing')
    assert payload.testing == 'testing'

    encapsulated = payload.encapsulate()
    decoded = mros.json.loads(encapsulated)

    assert 'time' in decoded
    assert 'value' in decoded
    assert 'testing' in decoded


def test_decode():

    assert mros.protocol.message.decode_payload(b'') is None

    original = mros.protocol.message.Payload({'sum': 3})
    error = mros.errors.to_dict(ValueError('bad'))
    failed = mros.protocol.message.Payload(None, error=error)

    decoded = mros.protocol.message.decode_payload(original.encapsulate())
    assert decoded.value == {'sum': 3}
    assert decoded.error == None

    decoded = mros.protocol.message.decode_payload(failed.encapsulate())
    assert decoded.value == None
    assert decoded.error['type'] == 'ValueError'

    # Something that isn't shaped like a payload is wrapped up as the value.

    decoded = mros.protocol.message.decode_payload(mros.json.dumps([1, 2]))
    assert decoded.value == [1, 2]


def test_frames():

    payload = mros.protocol.message.Payload({'data': 'hello'})
    request = mros.protocol.message.Request('CALL', '/add', payload)
    parts = tuple(request)

    assert len(parts) == 5
    assert parts[0] == mros.protocol.message.version
    assert parts[1] == request.id
    assert parts[2] == b'CALL'
    assert parts[3] == b'/add'

    broadcast = mros.protocol.message.Broadcast('PUB', '/chatter', payload)
    parts = tuple(broadcast)

    assert parts[0] == b'/chatter.'
    assert parts[1] == mros.protocol.message.version

    with pytest.raises(ValueError):
        mros.protocol.message.Request('BOGUS', '/add', payload)


def test_unique_ids():

    ids = set()

    for count in range(100):
        request = mros.protocol.message.Request('PING')
        ids.add(request.id)

    assert len(ids) == 100


def test_request_completion():

    request = mros.protocol.message.Request('PING')

    assert request.wait_ack(0.01) == False
    assert request.wait(0.01) is None

    request._complete_ack()
    assert request.wait_ack(0) == True
    assert request.wait(0.01) is None

    response = mros.protocol.message.Message('REP', None, mros.protocol.message.Payload(5), request.id)
    request._complete(response)

    assert request.wait(0) is response
    assert 'PING' in repr(request)

    # A message cannot be put on the wire without an id.

    with pytest.raises(RuntimeError):
        tuple(mros.protocol.message.Message('ACK'))


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
