"""Common types shared by different modules."""
from typing import Protocol, Union


class FileWBinary(Protocol):
    """A writable binary file."""
    def write(self, data: Union[bytes, bytearray], /) -> object: ...
