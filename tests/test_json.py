import json
import mros


def test_json_encode_and_decode():
    encode_and_decode(json.dumps, json.loads, dump_is_bytes=False)


def test_mros_encode_and_decode():
    encode_and_decode(mros.json.dumps, mros.json.loads)


def encode_and_decode(dumps, loads, dump_is_bytes=True):

    input_dictionary = dict()
    input_dictionary['list'] = [1, 2, 3, 'a', 'b', None, 'c', 'z']
    input_dictionary['dict'] = {'sum': 3, 'nested': {'a': 1, 'b': 2}}
    input_dictionary['none'] = None
    input_dictionary['true'] = True
    input_dictionary['false'] = False
    input_dictionary['data'] = '1042 milliseconds'

    encoded = dumps(input_dictionary)

    if dump_is_bytes:
        assert isinstance(encoded, bytes)
    else:
        assert isinstance(encoded, str)

    decoded = loads(encoded)
    assert isinstance(decoded, dict)
    assert decoded == input_dictionary


def test_tuples_become_lists():

    # Anything sent as a message arrives as the JSON equivalent; a tuple
    # goes out and a list comes back.

    encoded = mros.json.dumps({'pair': (1, 2)})
    decoded = mros.json.loads(encoded)

    assert decoded['pair'] == [1, 2]


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
