"""Reads the floor texture assignments from ``.iam`` maps.

The map starts with an 8-byte header, then 128x128 tile records of 6 bytes. Each
record starts with a texture byte, then a byte packing the texture bank in the low two
bits and the rotation in the next two. Tiles are stored mirrored on both axes, and with
rows and columns swapped relative to the editor's ``(tx, ty)`` grid.
"""
from typing import Final, Iterator, Tuple
import enum
import struct

import attrs

from ucedit import check_index, check_size


__all__ = [
    'TextureBank', 'TileTexture',
    'HEADER_SIZE', 'TILE_SIZE', 'GRID_SIZE',
    'tile_offset', 'save_type', 'world_number', 'read_tile', 'read_all_tiles',
]

HEADER_SIZE: Final = 8
TILE_SIZE: Final = 6
GRID_SIZE: Final = 128
TILES_END: Final = HEADER_SIZE + GRID_SIZE * GRID_SIZE * TILE_SIZE
# Newer saves have a 2000-byte trailer after the world number.
LARGE_TRAILER_SAVE_TYPE: Final = 25
# The rotation bits do not increase monotonically.
ROTATIONS: Final = (180, 90, 0, 270)


class TextureBank(enum.Enum):
    """The texture folders a tile can draw from."""
    WORLD = 'world'
    SHARED = 'shared'
    SHARED_PRIMS = 'shared_prims'


@attrs.frozen
class TileTexture:
    """The texture shown on a single tile."""
    #: Which folder the texture is in.
    bank: TextureBank
    #: The texture number within that folder.
    texture_id: int
    #: Clockwise rotation in degrees.
    rotation: int
    #: The world number, only meaningful for :py:attr:`TextureBank.WORLD`.
    world: int = attrs.field(default=0, kw_only=True)

    @property
    def folder(self) -> str:
        """The folder name the texture is found in."""
        if self.bank is TextureBank.WORLD:
            return f'world{self.world}'
        return self.bank.value

    @property
    def key(self) -> str:
        """The relative key used to look the texture up, like ``shared_257``."""
        tex_id = max(-999, min(999, self.texture_id))
        if tex_id < 0:
            return f'{self.folder}_-{-tex_id:03d}'
        return f'{self.folder}_{tex_id:03d}'


def tile_offset(tx: int, ty: int) -> int:
    """Compute the file offset for the logical tile position."""
    check_index('Tile X', tx, GRID_SIZE)
    check_index('Tile Y', ty, GRID_SIZE)
    file_index = (GRID_SIZE - 1 - tx) * GRID_SIZE + (GRID_SIZE - 1 - ty)
    return HEADER_SIZE + file_index * TILE_SIZE


def save_type(data: bytes) -> int:
    """Read the save format version at the start of the map."""
    check_size('iam', data, 4)
    [value] = struct.unpack_from('<i', data, 0)
    return value


def world_number(data: bytes) -> int:
    """Read the world number, which picks the texture set for world-bank tiles."""
    check_size('iam', data, TILES_END + 4)
    if save_type(data) >= LARGE_TRAILER_SAVE_TYPE:
        offset = len(data) - 2004
    else:
        offset = len(data) - 4
    [world] = struct.unpack_from('<i', data, offset)
    return world


def _decode(texture: int, combined: int, world: int) -> TileTexture:
    """Decode the two bytes of a tile record."""
    rotation = ROTATIONS[(combined >> 2) & 0b11]
    bank_bits = combined & 0b11
    if bank_bits == 0:
        return TileTexture(TextureBank.WORLD, texture, rotation, world=world)
    elif bank_bits == 1:
        return TileTexture(TextureBank.SHARED, texture + 256, rotation)
    else:
        # The texture byte is signed here.
        if texture >= 128:
            texture -= 256
        return TileTexture(TextureBank.SHARED_PRIMS, texture + 64, rotation)


def read_tile(data: bytes, tx: int, ty: int) -> TileTexture:
    """Read the texture for a tile."""
    offset = tile_offset(tx, ty)
    world = world_number(data)
    return _decode(data[offset], data[offset + 1], world)


def read_all_tiles(data: bytes) -> Iterator[Tuple[int, int, TileTexture]]:
    """Yield ``(tx, ty, texture)`` for every tile in the map."""
    world = world_number(data)
    for tx in range(GRID_SIZE):
        for ty in range(GRID_SIZE):
            offset = tile_offset(tx, ty)
            yield tx, ty, _decode(data[offset], data[offset + 1], world)
