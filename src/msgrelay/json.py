''' JSON codec for everything the relay stores or reads: queue entries, error
    envelopes, and the configuration file. :func:`dumps` always returns bytes,
    :func:`loads` accepts bytes or text, and :class:`DecodeError` is whatever
    the selected library raises for malformed input.

    The :attr:`backend` attribute names the library in use, which is msgspec
    if it is installed, otherwise orjson, the declared dependency.
'''

msgspec = None
orjson = None
json = None

try:
    import msgspec
except ImportError:
    pass

if msgspec is None:
    try:
        import orjson
    except ImportError:
        pass

if msgspec is None and orjson is None:
    import json


def _stdlib_dumps(thing):
    return json.dumps(thing, separators=(',', ':')).encode()


def _stdlib_loads(raw):
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode()
    return json.loads(raw)


if msgspec is not None:
    backend = 'msgspec'
    dumps = msgspec.json.Encoder().encode
    loads = msgspec.json.Decoder().decode
    DecodeError = msgspec.DecodeError
elif orjson is not None:
    backend = 'orjson'
    dumps = orjson.dumps
    loads = orjson.loads
    DecodeError = orjson.JSONDecodeError
else:
    backend = 'json'
    dumps = _stdlib_dumps
    loads = _stdlib_loads
    DecodeError = json.JSONDecodeError


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
