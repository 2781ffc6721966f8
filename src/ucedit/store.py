"""Holds the raw bytes of one loaded asset file.

The codecs never touch the store directly. Each one takes a ``bytes`` snapshot
and returns a new buffer, which is then swapped in here under a lock. Since
``bytes`` is immutable, any snapshot handed out stays valid no matter what
later edits are made.
"""
from typing import Any, Callable, Optional, Tuple, TypeVar
from pathlib import Path
import asyncio
import shutil
import threading

from ucedit import IoFailure, StringPath, check_size
from ucedit import logger


__all__ = ['BufferStore']
LOGGER = logger.get_logger(__name__)
ResultT = TypeVar('ResultT')


class BufferStore:
    """The single-writer store for one file format.

    :param kind: The file extension, used in messages.
    :param min_size: Buffers shorter than this are rejected with
        :py:class:`~ucedit.BufferTooSmall`.
    """
    kind: str
    min_size: int
    _data: bytes
    _path: Optional[Path]
    _loaded: bool
    _dirty: bool

    def __init__(self, kind: str, min_size: int = 0) -> None:
        self.kind = kind
        self.min_size = min_size
        self._lock = threading.Lock()
        self._data = b''
        self._path = None
        self._loaded = False
        self._dirty = False

    def __repr__(self) -> str:
        return (
            f'<{type(self).__name__} .{self.kind}: {len(self._data)} bytes, '
            f'path={self._path!s}, dirty={self._dirty}>'
        )

    def __len__(self) -> int:
        return len(self._data)

    @property
    def path(self) -> Optional[Path]:
        """The file this was loaded from or last saved to, or None for unsaved data."""
        return self._path

    @property
    def is_loaded(self) -> bool:
        """True once a buffer is present, from a load or a template."""
        return self._loaded

    @property
    def dirty(self) -> bool:
        """True if there are unsaved changes."""
        return self._dirty

    def snapshot(self) -> bytes:
        """Return the current buffer."""
        return self._data

    def replace(self, data: bytes, *, mark_dirty: bool = True) -> None:
        """Swap in a new buffer wholesale."""
        data = bytes(data)
        check_size(self.kind, data, self.min_size)
        with self._lock:
            self._swap(data, mark_dirty)

    def _swap(self, data: bytes, mark_dirty: bool) -> None:
        """Store the new data. The lock must be held."""
        self._data = data
        self._loaded = True
        if mark_dirty:
            self._dirty = True

    def apply(self, func: Callable[..., bytes], *args: Any, **kwargs: Any) -> bytes:
        """Run an encode function against the current buffer, and store the result.

        The function is called as ``func(snapshot, *args, **kwargs)``, and must return the new
        buffer. The read and the replace happen under the lock, so concurrent writers cannot
        interleave. The new buffer is also returned.
        """
        with self._lock:
            new_data = func(self._data, *args, **kwargs)
            check_size(self.kind, new_data, self.min_size)
            self._swap(new_data, True)
        return new_data

    def apply_with_result(
        self,
        func: Callable[..., Tuple[bytes, ResultT]],
        *args: Any, **kwargs: Any,
    ) -> ResultT:
        """Like :py:meth:`apply`, for functions returning ``(new_buffer, result)``.

        Only the result is returned.
        """
        with self._lock:
            new_data, result = func(self._data, *args, **kwargs)
            check_size(self.kind, new_data, self.min_size)
            self._swap(new_data, True)
        return result

    def new_from_template(self, data: bytes) -> None:
        """Seed the buffer from template bytes. This is not dirty, and has no path."""
        data = bytes(data)
        check_size(self.kind, data, self.min_size)
        with self._lock:
            self._swap(data, False)
            self._dirty = False
            self._path = None
        LOGGER.debug('New .{} buffer from template ({} bytes)', self.kind, len(data))

    def clear(self) -> None:
        """Discard the buffer and reset all state."""
        with self._lock:
            self._data = b''
            self._path = None
            self._loaded = False
            self._dirty = False

    async def load(self, path: StringPath) -> None:
        """Read a file from disk, replacing the current buffer.

        If the read fails or is cancelled, the current state is left as it was.
        """
        path = Path(path)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise IoFailure(f'Could not read "{path}": {exc}') from exc
        check_size(self.kind, data, self.min_size)
        with self._lock:
            self._swap(data, False)
            self._dirty = False
            self._path = path
        with logger.context(path.name):
            LOGGER.info('Loaded {} bytes', len(data))

    async def save(self, path: Optional[StringPath] = None, *, backup: bool = False) -> Path:
        """Write the buffer to disk.

        If no path is given, this saves back to the file it was loaded from. With ``backup``
        set, any existing file is first copied to :file:`{path}.bak`. The dirty flag is only
        cleared if no other edits happened while the write was in progress.
        """
        with self._lock:
            data = self._data
            target = Path(path) if path is not None else self._path
        if target is None:
            raise IoFailure(f'No file path for this .{self.kind} buffer, a path must be given!')
        if not self._loaded:
            raise IoFailure(f'No .{self.kind} buffer is loaded!')

        def write() -> None:
            """Run in the worker thread."""
            if backup and target.exists():
                shutil.copyfile(target, target.with_name(target.name + '.bak'))
            target.write_bytes(data)

        try:
            await asyncio.to_thread(write)
        except OSError as exc:
            raise IoFailure(f'Could not write "{target}": {exc}') from exc

        with self._lock:
            self._path = target
            if self._data is data:
                self._dirty = False
        LOGGER.info('Saved "{}" ({} bytes)', target, len(data))
        return target
