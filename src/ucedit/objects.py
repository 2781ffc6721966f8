"""Reads and rewrites the placed objects ("prims") in ``.iam`` maps.

The object section sits near the end of the file. Its position is computed from the
save type and object size fields in the header::

    offset = len - 12 - trailer - object_bytes + 8

where the trailer is 2000 bytes for save type 25 and above. The section holds a count,
that many 8-byte prim records (the first being an unused sentinel), then the "MapWho"
grid. That is 32x32 packed cells each giving the 1-based start and the count of a run
of prims inside that cell. A prim's ``x``/``z`` are only relative to its cell, so a prim
no cell claims has no position at all.
"""
from typing import ClassVar, Dict, Final, List, Optional, Tuple
from struct import Struct
import struct

from typing_extensions import Self
import attrs

from ucedit import CapacityExceeded, MalformedRegion, check_index, check_size
from ucedit import coords, logger
from ucedit.binformat import read_array, splice, write_array


__all__ = [
    'Prim', 'ObjectSection',
    'MAX_OBJECTS', 'MAPWHO_SIZE', 'MAPWHO_CELLS',
    'object_offset', 'object_section', 'read_mapwho', 'read_prims', 'visible_prims',
    'rebuild_mapwho', 'replace_prims', 'delete_prim', 'write_prim',
    'pack_cell', 'unpack_cell',
]
LOGGER = logger.get_logger(__name__)

#: Sanity limit on the stored object count, rejecting garbage offsets.
MAX_OBJECTS: Final = 10_000
PRIM_SIZE: Final = 8
MAPWHO_SIZE: Final = 32
MAPWHO_CELLS: Final = MAPWHO_SIZE * MAPWHO_SIZE
MAPWHO_BYTES: Final = MAPWHO_CELLS * 2
#: Map pixels along each side of a cell.
CELL_PIXELS: Final = coords.MAP_PIXELS // MAPWHO_SIZE
LARGE_TRAILER_SAVE_TYPE: Final = 25
LARGE_TRAILER: Final = 2000

# Limits of the packed MapWho fields.
MAX_CELL_START: Final = (1 << 11) - 1
MAX_CELL_COUNT: Final = (1 << 5) - 1


def unpack_cell(packed: int) -> Tuple[int, int]:
    """Split a MapWho cell into its 1-based start index and count."""
    return packed & 0x7FF, (packed >> 11) & 0x1F


def pack_cell(start: int, count: int) -> int:
    """Build a MapWho cell, checking the values fit."""
    if not 0 <= count <= MAX_CELL_COUNT:
        raise CapacityExceeded(f'A cell can hold at most {MAX_CELL_COUNT} prims, not {count}!')
    if not 0 <= start <= MAX_CELL_START:
        raise CapacityExceeded(f'Cell start index {start} is larger than {MAX_CELL_START}!')
    return start | (count << 11)


@attrs.define
class Prim:
    """A placed object."""
    ST: ClassVar[Struct] = Struct('<hBBBBBB')

    #: The object type, 0 is an empty slot.
    prim_number: int
    x: int = attrs.field(default=0, kw_only=True)  #: Position inside the cell, 0-255.
    y: int = attrs.field(default=0, kw_only=True)  #: Height.
    z: int = attrs.field(default=0, kw_only=True)  #: Position inside the cell, 0-255.
    yaw: int = attrs.field(default=0, kw_only=True)
    flags: int = attrs.field(default=0, kw_only=True)
    inside_index: int = attrs.field(default=0, kw_only=True)
    #: The MapWho cell which owns this prim, or None if it is orphaned.
    cell: Optional[int] = attrs.field(default=None, kw_only=True)

    @classmethod
    def parse_binary(cls, data: bytes, offset: int) -> Self:
        y, x, z, prim_number, yaw, flags, inside = cls.ST.unpack_from(data, offset)
        return cls(prim_number, x=x, y=y, z=z, yaw=yaw, flags=flags, inside_index=inside)

    def export_binary(self) -> bytes:
        return self.ST.pack(
            self.y, self.x, self.z,
            self.prim_number, self.yaw, self.flags, self.inside_index,
        )

    @property
    def visible(self) -> bool:
        """Prims are only drawn if they have a type and an owning cell."""
        return self.prim_number != 0 and self.cell is not None

    @property
    def pixel(self) -> Optional[Tuple[int, int]]:
        """The map pixel position, or None if orphaned."""
        if self.cell is None:
            return None
        col, row = divmod(self.cell, MAPWHO_SIZE)
        return (
            (MAPWHO_SIZE - 1 - col) * CELL_PIXELS + (CELL_PIXELS - 1 - self.x),
            (MAPWHO_SIZE - 1 - row) * CELL_PIXELS + (CELL_PIXELS - 1 - self.z),
        )

    def move_to_pixel(self, pixel_x: int, pixel_z: int) -> None:
        """Place the prim at a map pixel position, changing its cell if required."""
        check_index('Pixel X', pixel_x, coords.MAP_PIXELS)
        check_index('Pixel Z', pixel_z, coords.MAP_PIXELS)
        col_off, self.x = divmod(pixel_x, CELL_PIXELS)
        row_off, self.z = divmod(pixel_z, CELL_PIXELS)
        self.x = CELL_PIXELS - 1 - self.x
        self.z = CELL_PIXELS - 1 - self.z
        self.cell = (MAPWHO_SIZE - 1 - col_off) * MAPWHO_SIZE + (MAPWHO_SIZE - 1 - row_off)


@attrs.frozen
class ObjectSection:
    """The location of the object section within a map."""
    save_type: int
    object_bytes: int
    #: Offset of the object count.
    offset: int
    #: Number of stored records, including the sentinel.
    count: int

    @property
    def prims_offset(self) -> int:
        return self.offset + 4

    @property
    def mapwho_offset(self) -> int:
        return self.prims_offset + self.count * PRIM_SIZE

    @property
    def end(self) -> int:
        return self.mapwho_offset + MAPWHO_BYTES

    @property
    def size(self) -> int:
        return self.end - self.offset


def object_offset(data: bytes) -> int:
    """Compute where the object section should start, without validating it."""
    check_size('iam', data, 8)
    save_type, object_bytes = struct.unpack_from('<ii', data, 0)
    trailer = LARGE_TRAILER if save_type >= LARGE_TRAILER_SAVE_TYPE else 0
    return len(data) - 12 - trailer - object_bytes + 8


def object_section(data: bytes) -> ObjectSection:
    """Locate and validate the object section."""
    check_size('iam', data, 8)
    save_type, object_bytes = struct.unpack_from('<ii', data, 0)
    offset = object_offset(data)
    if offset < 0 or offset + 4 > len(data):
        raise MalformedRegion(
            f'Object section offset {offset} is outside the file '
            f'(save type {save_type}, object bytes {object_bytes}, size {len(data)})!'
        )
    [count] = struct.unpack_from('<i', data, offset)
    if not 1 <= count <= MAX_OBJECTS:
        raise CapacityExceeded(f'Object count {count} at offset {offset} is not in 1-{MAX_OBJECTS}!')
    section = ObjectSection(save_type, object_bytes, offset, count)
    if section.end > len(data):
        raise MalformedRegion(
            f'Object section runs to {section.end}, past the end of the file ({len(data)})!'
        )
    return section


def read_mapwho(data: bytes) -> List[Tuple[int, int]]:
    """Read the MapWho grid, as ``(start, count)`` pairs for each cell."""
    section = object_section(data)
    grid = read_array('<H', data[section.mapwho_offset:section.end])
    return [unpack_cell(packed) for packed in grid]


def read_prims(data: bytes) -> List[Prim]:
    """Read every prim, excluding the sentinel.

    Each prim claimed by a MapWho cell has that cell set.
    """
    section = object_section(data)
    prims = [
        Prim.parse_binary(data, section.prims_offset + i * PRIM_SIZE)
        for i in range(1, section.count)
    ]
    grid = read_array('<H', data[section.mapwho_offset:section.end])
    for cell, packed in enumerate(grid):
        start, count = unpack_cell(packed)
        if start == 0 or count == 0:
            continue
        for i in range(start - 1, min(start - 1 + count, len(prims))):
            prims[i].cell = cell
    LOGGER.debug('Read {} prims at offset {}', len(prims), section.offset)
    return prims


def visible_prims(prims: List[Prim]) -> List[Prim]:
    """Filter to the prims which would be drawn on the map."""
    return [prim for prim in prims if prim.visible]


def rebuild_mapwho(prims: List[Prim]) -> Tuple[List[Prim], List[int]]:
    """Compute a new prim ordering and MapWho grid.

    Prims are grouped by cell in cell order, keeping their relative order inside each
    cell. Orphaned prims go at the end where no cell will claim them.
    Returns the reordered prims and the packed grid.
    """
    by_cell: Dict[int, List[Prim]] = {}
    orphans: List[Prim] = []
    for prim in prims:
        if prim.cell is None:
            orphans.append(prim)
        else:
            check_index('MapWho cell', prim.cell, MAPWHO_CELLS)
            by_cell.setdefault(prim.cell, []).append(prim)

    ordered: List[Prim] = []
    grid = [0] * MAPWHO_CELLS
    for cell in sorted(by_cell):
        group = by_cell[cell]
        try:
            grid[cell] = pack_cell(len(ordered) + 1, len(group))
        except CapacityExceeded as exc:
            raise CapacityExceeded(f'MapWho cell {cell}: {exc}') from None
        ordered.extend(group)
    ordered.extend(orphans)
    return ordered, grid


def replace_prims(data: bytes, prims: List[Prim]) -> bytes:
    """Rewrite the object section with a new set of prims, rebuilding MapWho.

    The header's object size is adjusted by the change in section size, so the section
    stays at the same offset. The sentinel record is kept as it was.
    """
    section = object_section(data)
    if len(prims) + 1 > MAX_OBJECTS:
        raise CapacityExceeded(f'Cannot store {len(prims)} prims, the limit is {MAX_OBJECTS - 1}!')
    ordered, grid = rebuild_mapwho(prims)
    sentinel = data[section.prims_offset:section.prims_offset + PRIM_SIZE]
    body = b''.join([
        struct.pack('<i', len(ordered) + 1),
        sentinel,
        *[prim.export_binary() for prim in ordered],
        write_array('<H', grid),
    ])
    delta = len(body) - section.size
    data = splice(data, section.offset, body, section.size)
    data = splice(data, 4, struct.pack('<i', section.object_bytes + delta))
    LOGGER.debug('Wrote {} prims, object section changed by {} bytes', len(ordered), delta)
    return data


def delete_prim(data: bytes, index: int) -> bytes:
    """Remove the prim at the logical index, compacting the array."""
    prims = read_prims(data)
    check_index('Prim', index, len(prims))
    del prims[index]
    return replace_prims(data, prims)


def write_prim(data: bytes, index: int, prim: Prim) -> bytes:
    """Replace the prim at the logical index.

    The prim may have moved to a different cell, so the whole section is rebuilt.
    """
    prims = read_prims(data)
    check_index('Prim', index, len(prims))
    prims[index] = prim
    return replace_prims(data, prims)
