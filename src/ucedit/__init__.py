"""Codecs for the binary asset files used by the Urban Chaos level editors.

Each submodule owns one file format (or one region of a file), decoding raw
``bytes`` into typed records and encoding edits back into a fresh buffer.
"""
from typing import TYPE_CHECKING, Union
from typing_extensions import TypeAlias
import os as _os


__version__: str
if not TYPE_CHECKING:
    from importlib.metadata import PackageNotFoundError, version as _version
    try:
        __version__ = _version('ucedit')
    except PackageNotFoundError:
        __version__ = '<unknown>'
    del _version, PackageNotFoundError

__all__ = [
    '__version__',
    'StringPath',
    'UCError', 'BufferTooSmall', 'IndexOutOfRange', 'CapacityExceeded',
    'MalformedRegion', 'UnsupportedVersion', 'IoFailure',
    'check_size', 'check_index',

    # Submodules:
    'binformat', 'buildings', 'const', 'coords', 'cutscene', 'lights', 'logger',  # pyright: ignore
    'mission', 'objects', 'store', 'textures', 'types', 'waypoint_data',  # pyright: ignore
]

StringPath: TypeAlias = Union[str, '_os.PathLike[str]']


class UCError(Exception):
    """Base class for all errors raised by the codecs."""


class BufferTooSmall(UCError, ValueError):
    """The buffer is shorter than the fixed minimum size of its format."""
    kind: str  #: The format being decoded, ``lgt``, ``iam`` etc.
    size: int  #: The actual buffer size.
    required: int  #: The minimum size required.

    def __init__(self, kind: str, size: int, required: int) -> None:
        super().__init__(kind, size, required)
        self.kind = kind
        self.size = size
        self.required = required

    def __str__(self) -> str:
        return f'.{self.kind} buffer too small (got {self.size} bytes, expected >= {self.required})!'


class IndexOutOfRange(UCError, IndexError):
    """A light, prim, EventPoint or tile index was outside the valid bounds."""
    what: str  #: The kind of record being indexed.
    index: int  #: The bad index.
    limit: int  #: Indexes must be less than this.

    def __init__(self, what: str, index: int, limit: int) -> None:
        super().__init__(what, index, limit)
        self.what = what
        self.index = index
        self.limit = limit

    def __str__(self) -> str:
        return f'{self.what} index {self.index} out of range (0 <= index < {self.limit})!'


class CapacityExceeded(UCError, ValueError):
    """A fixed-size table is full, or a packed field cannot hold a value."""


class MalformedRegion(UCError, ValueError):
    """A computed section offset or a stored value does not make sense."""


class UnsupportedVersion(UCError, ValueError):
    """The file declares a version newer than any we know how to read."""
    version: int
    maximum: int

    def __init__(self, version: int, maximum: int) -> None:
        super().__init__(version, maximum)
        self.version = version
        self.maximum = maximum

    def __str__(self) -> str:
        return f'Unsupported version {self.version}, maximum supported is {self.maximum}!'


class IoFailure(UCError, OSError):
    """Reading or writing a file failed."""


def check_size(kind: str, data: bytes, required: int) -> None:
    """Raise :py:class:`BufferTooSmall` if the data is not long enough."""
    if len(data) < required:
        raise BufferTooSmall(kind, len(data), required)


def check_index(what: str, index: int, limit: int) -> None:
    """Raise :py:class:`IndexOutOfRange` unless ``0 <= index < limit``."""
    if not 0 <= index < limit:
        raise IndexOutOfRange(what, index, limit)
