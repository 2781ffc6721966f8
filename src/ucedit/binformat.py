"""
The binformat module :mod:`binformat` contains functionality for handling binary formats, \
esentially expanding on :external:mod:`struct`'s functionality.

All the formats handled here are little-endian, and strings are single-byte
text cut at the first null.
"""
from typing import IO, Any, Collection, Final, List, Mapping, Tuple, Union
from struct import Struct
import functools

from ucedit import MalformedRegion


__all__ = [
    'SIZES', 'ENCODING',
    'struct_read', 'read_exact', 'read_array', 'write_array',
    'strip_cstring', 'pad_string', 'splice',
]

SIZES: Final[Mapping[str, int]] = {
    fmt: Struct('<' + fmt).size
    for fmt in 'cbB?hHiIlLqQfd'
}

# The games just copy bytes around, Latin-1 lets any of them survive a decode.
ENCODING: Final = 'latin-1'
_cached_struct = functools.lru_cache()(Struct)


def read_exact(file: IO[bytes], size: int) -> bytes:
    """Read exactly this many bytes, raising :py:class:`MalformedRegion` if the file ends early."""
    data = file.read(size)
    if len(data) != size:
        raise MalformedRegion(
            f'Fell off end of file, needed {size} bytes '
            f'at offset {file.tell() - len(data)} but only {len(data)} remain!'
        )
    return data


def struct_read(fmt: Union[Struct, str], file: IO[bytes]) -> Tuple[Any, ...]:
    """Read a structure from the file, automatically computing the required number of bytes."""
    if not isinstance(fmt, Struct):
        fmt = _cached_struct(fmt)
    return fmt.unpack(read_exact(file, fmt.size))


def read_array(fmt: Union[str, Struct], data: bytes) -> List[int]:
    """Read a buffer containing a stream of integers.

    The format string should be one of the integer format characters, optionally prefixed by an
    endianness indicator. As many integers as possible will then be read from the data.
    """
    if isinstance(fmt, Struct):
        fmt = fmt.format

    if len(fmt) == 2:
        endianness = fmt[0]
        fmt = fmt[1]
    else:
        endianness = '<'
    try:
        item_size = SIZES[fmt]
    except KeyError:
        raise ValueError(f'Unknown format character {fmt!r}!') from None
    count = len(data) // item_size
    return list(Struct(endianness + fmt * count).unpack_from(data))


def write_array(fmt: Union[str, Struct], data: Collection[int]) -> bytes:
    """Build a packed array of integers.

    The format string should be one of the integer format characters, optionally prefixed by an
    endianness indicator. The integers in the data will then be packed into a bytes buffer and returned.
    """
    if isinstance(fmt, Struct):
        fmt = fmt.format

    if len(fmt) == 2:
        endianness = fmt[0]
        fmt = fmt[1]
    else:
        endianness = '<'

    return Struct(endianness + fmt * len(data)).pack(*data)


def strip_cstring(data: bytes) -> str:
    """Strip strings to the first null, and decode.

    Fixed-size fields often have junk data in the unused
    sections after the null byte, where C code doesn't touch.
    """
    if b'\0' in data:
        return data[:data.index(b'\0')].decode(ENCODING)
    else:
        return data.decode(ENCODING)


def pad_string(text: str, length: int) -> bytes:
    """Pad the string to the specified length and convert.

    At least one null is always left at the end.
    """
    encoded = text.encode(ENCODING)
    if len(encoded) >= length:
        raise ValueError(f'{text!r} is longer than {length - 1}!')
    return encoded + b'\0' * (length - len(encoded))


def splice(data: bytes, offset: int, chunk: bytes, replaced: int = -1) -> bytes:
    """Return a copy of data, with ``replaced`` bytes at the offset swapped for ``chunk``.

    If ``replaced`` is not given, it matches the length of the chunk so the buffer
    keeps the same size.
    """
    if replaced < 0:
        replaced = len(chunk)
    if offset < 0 or offset + replaced > len(data):
        raise MalformedRegion(
            f'Cannot write {replaced} bytes at offset {offset} '
            f'into a buffer of {len(data)} bytes!'
        )
    return data[:offset] + chunk + data[offset + replaced:]
