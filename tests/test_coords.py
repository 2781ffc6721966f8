"""Test conversions between world and map coordinates."""
import pytest

from ucedit import coords


@pytest.mark.parametrize('pixel, world', [
    (0, 32768),
    (1, 32764),
    (4096, 16384),
    (8192, 0),
    (8200, -32),
    (-10, 32808),
])
def test_ui_to_world(pixel: int, world: int) -> None:
    """The map is mirrored, and one pixel is four world units."""
    assert coords.ui_to_world(pixel) == world
    assert coords.world_to_ui(world) == pixel


@pytest.mark.parametrize('pixel', [0, 1, 3, 127, 4095, 8191, 8192, 9000, -1, -4096])
def test_round_trip(pixel: int) -> None:
    """Converting to the world and back gives the same pixel."""
    assert coords.world_to_ui(coords.ui_to_world(pixel)) == pixel


@pytest.mark.parametrize('world, pixel', [
    (32767, 0),  # 1 / 4 truncates.
    (32765, 0),
    (32764, 1),
    (32771, 0),  # -3 / 4 truncates towards zero, not down.
    (32772, -1),
])
def test_world_to_ui_truncates(world: int, pixel: int) -> None:
    """World positions between pixels truncate towards zero."""
    assert coords.world_to_ui(world) == pixel


@pytest.mark.parametrize('world, tile', [
    (0, 127),
    (255, 127),
    (256, 126),
    (16384, 63),
    (32767, 0),
])
def test_world_to_tile(world: int, tile: int) -> None:
    """Tiles are numbered from the opposite side."""
    assert coords.world_to_tile(world) == tile
