"""Order preserving encoding of tuples into binary keys.

Each element starts with a type code followed by its payload. Encoded
elements are self-terminating, so tuples can be concatenated and decoded
without length information, and comparing two encoded tuples byte by byte
gives the same result as comparing the tuples themselves.
"""
from typing import Iterable, Tuple

from .const import (
    NULL_CODE, BYTES_CODE, STRING_CODE, INT_ZERO_CODE, INT_MAX_BYTES,
    INT_MIN, INT_MAX, KEY_ENDIAN
)
from .errors import (
    MalformedEncoding, UnknownTypeCode, Truncated, IntegerOutOfRange,
    UnsupportedType
)

TEXT_ENCODING = 'utf-8'
TEXT_ERRORS = 'surrogateescape'

# Encoded payload of the most negative integer
INT_MIN_PAYLOAD = b'\x7f' + b'\xff' * (INT_MAX_BYTES - 1)


def encode(values: Iterable) -> bytes:
    """Encode a sequence of values into a single key."""
    return b''.join(_encode_value(value) for value in values)


def decode(data: bytes) -> tuple:
    """Decode a key into the tuple of values it was created from.

    The whole input is consumed, trailing bytes that do not form a complete
    value raise an error.
    """
    rv = list()
    pos = 0
    while pos < len(data):
        value, pos = _decode_value(data, pos)
        rv.append(value)
    return tuple(rv)


def range(values: Iterable) -> Tuple[bytes, bytes]:
    """Range of keys strictly starting with the encoding of values."""
    prefix = encode(values)
    return prefix + b'\x00', prefix + b'\xff'


def _encode_value(value) -> bytes:
    if value is None:
        return bytes((NULL_CODE,))

    if isinstance(value, (bytes, bytearray)):
        return _encode_bytes(BYTES_CODE, bytes(value))

    if isinstance(value, str):
        try:
            data = value.encode(TEXT_ENCODING, TEXT_ERRORS)
        except UnicodeEncodeError as e:
            raise MalformedEncoding('Cannot encode string: {}'.format(
                e.reason
            )) from e
        return _encode_bytes(STRING_CODE, data)

    # A bool would come back as an int
    if isinstance(value, int) and not isinstance(value, bool):
        return _encode_int(value)

    raise UnsupportedType('Cannot encode value of type {}'.format(
        type(value).__name__
    ))


def _encode_bytes(code: int, value: bytes) -> bytes:
    return (bytes((code,)) + value.replace(b'\x00', b'\x00\xff') +
            b'\x00')


def _encode_int(value: int) -> bytes:
    if value == 0:
        return bytes((INT_ZERO_CODE,))

    if not INT_MIN <= value <= INT_MAX:
        raise IntegerOutOfRange('Integer {} does not fit in {} bytes'.format(
            value, INT_MAX_BYTES
        ))

    length = (abs(value).bit_length() + 7) // 8
    if value > 0:
        return (bytes((INT_ZERO_CODE + length,)) +
                value.to_bytes(length, KEY_ENDIAN))

    # Negative integers are stored as the ones' complement of their
    # magnitude, INT_MIN ends up as 0x7fffffffffffffff
    complement = value + (1 << (8 * length)) - 1
    return (bytes((INT_ZERO_CODE - length,)) +
            complement.to_bytes(length, KEY_ENDIAN))


def _decode_value(data: bytes, pos: int) -> tuple:
    code = data[pos]

    if code == NULL_CODE:
        return None, pos + 1

    if code == BYTES_CODE:
        value, end = _decode_bytes(data, pos + 1)
        return value, end

    if code == STRING_CODE:
        value, end = _decode_bytes(data, pos + 1)
        return value.decode(TEXT_ENCODING, TEXT_ERRORS), end

    if INT_ZERO_CODE - INT_MAX_BYTES <= code <= INT_ZERO_CODE + INT_MAX_BYTES:
        return _decode_int(data, pos)

    raise UnknownTypeCode('Unknown type code {:#04x} at position {}'.format(
        code, pos
    ))


def find_terminator(data: bytes, pos: int) -> int:
    """Position of the 0x00 ending the string starting at pos.

    A 0x00 followed by 0xff is an escaped null byte, not a terminator.
    """
    while True:
        pos = data.find(b'\x00', pos)
        if pos == -1:
            raise Truncated('String is not terminated')
        if pos + 1 == len(data) or data[pos + 1] != 0xff:
            return pos
        pos += 2


def _decode_bytes(data: bytes, start: int) -> tuple:
    end = find_terminator(data, start)
    value = data[start:end].replace(b'\x00\xff', b'\x00')
    return bytes(value), end + 1


def _decode_int(data: bytes, pos: int) -> tuple:
    code = data[pos]
    if code == INT_ZERO_CODE:
        return 0, pos + 1

    length = abs(code - INT_ZERO_CODE)
    start = pos + 1
    end = start + length
    if end > len(data):
        raise Truncated('Integer needs {} bytes, {} available'.format(
            length, len(data) - start
        ))
    payload = data[start:end]

    if length == INT_MAX_BYTES:
        if code > INT_ZERO_CODE and payload[0] > 0x7f:
            raise IntegerOutOfRange('Cannot decode integer bigger than '
                                    '{}'.format(INT_MAX))
        if code < INT_ZERO_CODE and (
                payload[0] < 0x7f or
                (payload[0] == 0x7f and payload != INT_MIN_PAYLOAD)):
            raise IntegerOutOfRange('Cannot decode integer smaller than '
                                    '{}'.format(INT_MIN))

    value = int.from_bytes(payload, KEY_ENDIAN)
    if code < INT_ZERO_CODE:
        value -= (1 << (8 * length)) - 1
    return value, end
