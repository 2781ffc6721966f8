"""Conversions between the game's world coordinates and editor map coordinates.

The world runs from 0 to 32768 on each horizontal axis, but increases in the
opposite direction to the editor's map display. One map pixel is four world
units, and the map is split into 128x128 tiles of 256 world units each.
"""
from typing import Final

__all__ = [
    'WORLD_SIZE', 'PIXELS_PER_UNIT', 'MAP_PIXELS', 'TILE_COUNT', 'TILE_SHIFT',
    'ui_to_world', 'world_to_ui', 'world_to_tile',
]

WORLD_SIZE: Final = 32768
#: World units per map pixel.
PIXELS_PER_UNIT: Final = 4
#: Width and height of the map in pixels.
MAP_PIXELS: Final = WORLD_SIZE // PIXELS_PER_UNIT
TILE_COUNT: Final = 128
TILE_SHIFT: Final = 8


def ui_to_world(pixel: int) -> int:
    """Convert a map pixel position into a world coordinate."""
    return WORLD_SIZE - pixel * PIXELS_PER_UNIT


def world_to_ui(world: int) -> int:
    """Convert a world coordinate into a map pixel position.

    Division truncates towards zero, so positions outside the map still mirror
    :py:func:`ui_to_world` exactly.
    """
    offset = WORLD_SIZE - world
    if offset >= 0:
        return offset // PIXELS_PER_UNIT
    else:
        return -(-offset // PIXELS_PER_UNIT)


def world_to_tile(world: int) -> int:
    """Return the mirrored tile index a world coordinate falls in."""
    return (TILE_COUNT - 1) - (world >> TILE_SHIFT)
