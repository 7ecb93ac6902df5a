"""Structural checks for PHP serialize() output stored in WordPress tables.

A literal search/replace that changes the length of a string inside a
serialized value leaves the declared byte length (``s:<n>:"..."``) stale,
and PHP's unserialize() then rejects the whole value. These helpers detect
that condition without needing PHP.
"""
import re
from typing import Tuple


_SERIALIZED_START = re.compile(r'^(?:[aOC]:\d+:|s:\d+:"|[ib]:-?\d+;|d:[-0-9.eE+INFNA]+;|N;)')


class _Invalid(ValueError):
    pass


def looks_serialized(value) -> bool:
    """Return True if value has the shape of PHP serialize() output."""
    if not isinstance(value, str):
        return False
    stripped = value.strip()
    if not stripped or stripped[-1] not in ';}':
        return False
    return bool(_SERIALIZED_START.match(stripped))


def _expect(data: bytes, pos: int, token: bytes) -> int:
    if data[pos:pos + len(token)] != token:
        raise _Invalid(f"expected {token!r} at offset {pos}")
    return pos + len(token)


def _read_until(data: bytes, pos: int, terminator: bytes) -> Tuple[bytes, int]:
    end = data.find(terminator, pos)
    if end < 0:
        raise _Invalid(f"missing {terminator!r} after offset {pos}")
    return data[pos:end], end + len(terminator)


def _read_int(data: bytes, pos: int, terminator: bytes) -> Tuple[int, int]:
    raw, pos = _read_until(data, pos, terminator)
    try:
        return int(raw), pos
    except ValueError:
        raise _Invalid(f"bad integer {raw!r}")


def _parse(data: bytes, pos: int) -> int:
    kind = data[pos:pos + 1]

    if kind == b'N':
        return _expect(data, pos + 1, b';')

    if kind in (b'b', b'i'):
        pos = _expect(data, pos + 1, b':')
        _, pos = _read_int(data, pos, b';')
        return pos

    if kind == b'd':
        pos = _expect(data, pos + 1, b':')
        _, pos = _read_until(data, pos, b';')
        return pos

    if kind == b's':
        pos = _expect(data, pos + 1, b':')
        length, pos = _read_int(data, pos, b':')
        pos = _expect(data, pos, b'"')
        if pos + length > len(data):
            raise _Invalid("declared string length runs past end of value")
        return _expect(data, pos + length, b'";')

    if kind == b'a':
        pos = _expect(data, pos + 1, b':')
        count, pos = _read_int(data, pos, b':')
        pos = _expect(data, pos, b'{')
        for _ in range(count * 2):
            pos = _parse(data, pos)
        return _expect(data, pos, b'}')

    if kind == b'O':
        pos = _expect(data, pos + 1, b':')
        name_length, pos = _read_int(data, pos, b':')
        pos = _expect(data, pos, b'"')
        pos = _expect(data, pos + name_length, b'":')
        count, pos = _read_int(data, pos, b':')
        pos = _expect(data, pos, b'{')
        for _ in range(count * 2):
            pos = _parse(data, pos)
        return _expect(data, pos, b'}')

    if kind == b'C':
        pos = _expect(data, pos + 1, b':')
        name_length, pos = _read_int(data, pos, b':')
        pos = _expect(data, pos, b'"')
        pos = _expect(data, pos + name_length, b'":')
        payload_length, pos = _read_int(data, pos, b':')
        pos = _expect(data, pos, b'{')
        return _expect(data, pos + payload_length, b'}')

    raise _Invalid(f"unknown type {kind!r} at offset {pos}")


def is_valid_serialized(value: str) -> bool:
    """
    Check that a serialized value is structurally intact.

    String lengths are compared as UTF-8 byte counts, the way PHP writes them.

    Args:
        value: Candidate serialized string

    Returns:
        True if the whole value parses, False otherwise
    """
    data = value.strip().encode('utf-8')
    try:
        return _parse(data, 0) == len(data)
    except _Invalid:
        return False


def is_corrupted(value) -> bool:
    """Return True if value looks serialized but no longer parses."""
    return looks_serialized(value) and not is_valid_serialized(value)
