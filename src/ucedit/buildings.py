"""Locates and decodes the building block embedded in ``.iam`` maps.

The building block has no stored offset. It normally starts with a signature and ends
where the object section begins, so we scan backwards from the object section to find
it. Older maps lack the signature; for those we assume the block directly follows the
tile data. Neither strategy is guaranteed, so the result records which one was used.
"""
from typing import ClassVar, Dict, Final, List, Tuple, Union
from struct import Struct
import enum
import struct

from typing_extensions import Self, TypeAlias
import attrs

from ucedit import MalformedRegion
from ucedit import logger, objects, textures


__all__ = [
    'FoundBySignature', 'FoundByFallback', 'NotFound', 'BuildingRegion',
    'FacetKind', 'Building', 'Facet', 'BuildingBlock',
    'SIGNATURE', 'SCAN_WINDOW',
    'locate', 'parse_block', 'facet_kind',
]
LOGGER = logger.get_logger(__name__)

#: The little-endian form of 0xFC09F00D.
SIGNATURE: Final = b'\x0D\xF0\x09\xFC'
#: How far back from the object section to look for the signature.
SCAN_WINDOW: Final = 500_000
FALLBACK_START: Final = textures.TILES_END

HEADER_SIZE: Final = 48
# Unexplained gap between the last building and the first facet.
AFTER_BUILDINGS_PAD: Final = 14


@attrs.frozen
class FoundBySignature:
    """The block was found by its signature."""
    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length


@attrs.frozen
class FoundByFallback:
    """No signature was found, the block is assumed to follow the tile data."""
    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length


@attrs.frozen
class NotFound:
    """There does not appear to be a building block. This is valid, not an error."""
    reason: str


BuildingRegion: TypeAlias = Union[FoundBySignature, FoundByFallback, NotFound]


def _scan_signature(data: bytes, object_offset: int, window: int) -> int:
    """Find the signature nearest before the object section, or return -1."""
    # bytes.rfind() searches the same range back to front.
    search_start = max(0, object_offset - window)
    return data.rfind(SIGNATURE, search_start, object_offset)


def locate(data: bytes, *, window: int = SCAN_WINDOW) -> BuildingRegion:
    """Find the building block.

    The signature is searched for in the ``window`` bytes before the object section. If that
    fails, the block is assumed to lie between the tile data and the object section.
    """
    if len(data) < 12:
        return NotFound(f'Map is only {len(data)} bytes long.')
    object_offset = objects.object_offset(data)

    if 0 < object_offset <= len(data):
        pos = _scan_signature(data, object_offset, window)
        if pos >= 0:
            LOGGER.debug('Building block at {:#x} by signature, {} bytes', pos, object_offset - pos)
            return FoundBySignature(pos, object_offset - pos)

    end = max(0, min(object_offset, len(data)))
    length = end - FALLBACK_START
    if length > 0:
        LOGGER.warning(
            'No building signature found, assuming block at {:#x} ({} bytes)',
            FALLBACK_START, length,
        )
        return FoundByFallback(FALLBACK_START, length)
    return NotFound(f'Object section at {object_offset} leaves no room for buildings.')


class FacetKind(enum.Enum):
    """Broad categories of facet types."""
    WALL = 'wall'
    CABLE = 'cable'
    FENCE = 'fence'
    LADDER = 'ladder'
    DOOR = 'door'
    ROOF = 'roof'
    INSIDE = 'inside'
    OTHER = 'other'


FACET_KINDS: Final[Dict[int, FacetKind]] = {
    2: FacetKind.ROOF,
    3: FacetKind.WALL,
    4: FacetKind.ROOF,
    9: FacetKind.CABLE,
    10: FacetKind.FENCE,
    11: FacetKind.FENCE,
    12: FacetKind.LADDER,
    13: FacetKind.FENCE,
    15: FacetKind.INSIDE,
    16: FacetKind.INSIDE,
    17: FacetKind.INSIDE,
    18: FacetKind.DOOR,
    19: FacetKind.DOOR,
    21: FacetKind.DOOR,
}


def facet_kind(facet_type: int) -> FacetKind:
    """Categorise a raw facet type."""
    return FACET_KINDS.get(facet_type, FacetKind.OTHER)


@attrs.define
class Building:
    """A building, owning a range of facets."""
    ST: ClassVar[Struct] = Struct('<iiiHHHBBHBB')
    x: int
    y: int
    z: int
    start_facet: int = attrs.field(kw_only=True)
    end_facet: int = attrs.field(kw_only=True)
    walkable: int = attrs.field(default=0, kw_only=True)
    counter: Tuple[int, int] = attrs.field(default=(0, 0), kw_only=True)
    padding: int = attrs.field(default=0, kw_only=True)
    ware: int = attrs.field(default=0, kw_only=True)
    type: int = attrs.field(default=0, kw_only=True)

    @classmethod
    def parse_binary(cls, data: bytes, offset: int) -> Self:
        (
            x, y, z, start, end, walkable,
            count_a, count_b, padding, ware, typ,
        ) = cls.ST.unpack_from(data, offset)
        return cls(
            x, y, z,
            start_facet=start, end_facet=end, walkable=walkable,
            counter=(count_a, count_b), padding=padding, ware=ware, type=typ,
        )


@attrs.define
class Facet:
    """A single wall, fence, roof edge etc, running between two tile corners."""
    ST: ClassVar[Struct] = Struct('<BBBBhhBBHHHHBBBBBBBB')
    type: int
    height: int = attrs.field(kw_only=True)
    x: Tuple[int, int] = attrs.field(kw_only=True)
    y: Tuple[int, int] = attrs.field(kw_only=True)
    z: Tuple[int, int] = attrs.field(kw_only=True)
    flags: int = attrs.field(default=0, kw_only=True)
    style: int = attrs.field(default=0, kw_only=True)
    building: int = attrs.field(default=0, kw_only=True)
    storey: int = attrs.field(default=0, kw_only=True)
    fheight: int = attrs.field(default=0, kw_only=True)
    block_height: int = attrs.field(default=0, kw_only=True)
    open: int = attrs.field(default=0, kw_only=True)
    dfcache: int = attrs.field(default=0, kw_only=True)
    shake: int = attrs.field(default=0, kw_only=True)
    cut_hole: int = attrs.field(default=0, kw_only=True)
    counter: Tuple[int, int] = attrs.field(default=(0, 0), kw_only=True)

    @classmethod
    def parse_binary(cls, data: bytes, offset: int) -> Self:
        (
            typ, height, x0, x1, y0, y1, z0, z1,
            flags, style, building, storey,
            fheight, block_height, open_, dfcache, shake, cut_hole,
            count_a, count_b,
        ) = cls.ST.unpack_from(data, offset)
        return cls(
            typ, height=height,
            x=(x0, x1), y=(y0, y1), z=(z0, z1),
            flags=flags, style=style, building=building, storey=storey,
            fheight=fheight, block_height=block_height, open=open_,
            dfcache=dfcache, shake=shake, cut_hole=cut_hole,
            counter=(count_a, count_b),
        )

    @property
    def kind(self) -> FacetKind:
        return facet_kind(self.type)

    @property
    def is_empty(self) -> bool:
        """Facets with all-zero tile coordinates are unused."""
        return not any(self.x) and not any(self.z)

    @property
    def ui_points(self) -> Tuple[Tuple[int, int], Tuple[int, int]]:
        """The two endpoints in map pixels."""
        tile_px = 64
        return (
            ((textures.GRID_SIZE - self.x[0]) * tile_px, (textures.GRID_SIZE - self.z[0]) * tile_px),
            ((textures.GRID_SIZE - self.x[1]) * tile_px, (textures.GRID_SIZE - self.z[1]) * tile_px),
        )


@attrs.define
class BuildingBlock:
    """The decoded building block."""
    region: Union[FoundBySignature, FoundByFallback]
    buildings: List[Building]
    facets: List[Facet]
    #: Absolute offset of the first facet.
    facets_offset: int


def parse_block(
    data: bytes,
    region: Union[FoundBySignature, FoundByFallback],
) -> BuildingBlock:
    """Decode the buildings and facets inside a located region."""
    hdr = region.start
    if hdr < 0 or hdr + HEADER_SIZE > min(region.end, len(data)):
        raise MalformedRegion(f'Building region at {hdr} is too short for its header!')
    next_building, next_facet = struct.unpack_from('<HH', data, hdr + 2)
    # The counts are the next free slot, and slot zero is unused.
    building_count = max(0, next_building - 1)
    facet_count = max(0, next_facet - 1)

    facets_offset = hdr + HEADER_SIZE + building_count * Building.ST.size + AFTER_BUILDINGS_PAD
    facets_end = facets_offset + facet_count * Facet.ST.size
    if facets_offset < region.start or facets_end > region.end or facets_end > len(data):
        raise MalformedRegion(
            f'{facet_count} facets at {facets_offset} run past '
            f'the end of the building region ({region.end})!'
        )

    buildings = [
        Building.parse_binary(data, hdr + HEADER_SIZE + i * Building.ST.size)
        for i in range(building_count)
    ]
    facets = [
        Facet.parse_binary(data, facets_offset + i * Facet.ST.size)
        for i in range(facet_count)
    ]
    LOGGER.debug('Parsed {} buildings and {} facets', len(buildings), len(facets))
    return BuildingBlock(region, buildings, facets, facets_offset)
