''' Wrapper module providing the equivalent of :func:`json.loads` and
    :func:`json.dumps`, backed by msgspec. Both the encoder and the decoder
    are created once and reused; :func:`dumps` always returns bytes.
'''

import msgspec

encoder = msgspec.json.Encoder()
decoder = msgspec.json.Decoder()

dumps = encoder.encode
loads = decoder.decode

DecodeError = msgspec.DecodeError
EncodeError = msgspec.EncodeError

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
