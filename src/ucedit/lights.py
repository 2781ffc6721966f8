"""Reads and writes ``.lgt`` light maps.

The file is a fixed 5171-byte image of the game's light editor tables::

    0      header (12 bytes)
    12     reserved (20 bytes)
    32     255 light entries (20 bytes each)
    5132   properties (36 bytes)
    5168   night sky colour (3 bytes)

Light slots form an implicit free-list. ``LightProperties.ed_light_free``
holds the 1-based index of a free slot, or 0 if the table is full.
"""
from typing import ClassVar, Final, Iterator, List, Optional, Tuple
from struct import Struct
import enum

from typing_extensions import Self
import attrs

from ucedit import CapacityExceeded, check_index, check_size
from ucedit import coords, logger
from ucedit.binformat import splice


__all__ = [
    'NightFlags', 'LightHeader', 'LightEntry', 'LightProperties', 'NightColour', 'LightsFile',
    'MAX_LIGHTS', 'TOTAL_SIZE',
    'parse', 'read_entry', 'write_entry', 'read_properties', 'write_properties',
    'read_night_colour', 'write_night_colour',
    'find_first_free', 'add_light', 'delete_light', 'move_light', 'used_lights',
    'empty_template',
]
LOGGER = logger.get_logger(__name__)

MAX_LIGHTS: Final = 255
HEADER_SIZE: Final = 12
RESERVED_SIZE: Final = 20
ENTRY_SIZE: Final = 20
PROPERTIES_SIZE: Final = 36
NIGHT_COLOUR_SIZE: Final = 3

ENTRIES_OFFSET: Final = HEADER_SIZE + RESERVED_SIZE
PROPERTIES_OFFSET: Final = ENTRIES_OFFSET + ENTRY_SIZE * MAX_LIGHTS
NIGHT_COLOUR_OFFSET: Final = PROPERTIES_OFFSET + PROPERTIES_SIZE
TOTAL_SIZE: Final = NIGHT_COLOUR_OFFSET + NIGHT_COLOUR_SIZE
assert TOTAL_SIZE == 5171, TOTAL_SIZE


class NightFlags(enum.IntFlag):
    """Lighting modes stored in :py:attr:`LightProperties.night_flag`."""
    NONE = 0
    NIGHT = 1 << 0  #: Use the night-time lighting model.
    LAMPS = 1 << 1  #: Street lamps are lit.
    DARKEN_WALLS = 1 << 2  #: Shade building walls.
    DAY = 1 << 3


@attrs.define
class LightHeader:
    """The header at the start of the file, giving the sizes of the tables."""
    ST: ClassVar[Struct] = Struct('<iii')
    size_of_ed_light: int
    ed_max_lights: int
    size_of_night_colour: int

    @classmethod
    def parse_binary(cls, data: bytes) -> Self:
        return cls(*cls.ST.unpack_from(data, 0))

    def export_binary(self) -> bytes:
        return self.ST.pack(self.size_of_ed_light, self.ed_max_lights, self.size_of_night_colour)


@attrs.define
class LightEntry:
    """A single light slot."""
    ST: ClassVar[Struct] = Struct('<BbbbBBBBiii')

    range: int = 0  #: Radius of the light, 0-255.
    red: int = 0  #: Signed colour channels.
    green: int = 0
    blue: int = 0
    #: Free-list link, always written as zero by the editor.
    next: int = attrs.field(default=0, kw_only=True)
    used: bool = attrs.field(default=False, kw_only=True)
    flags: int = attrs.field(default=0, kw_only=True)
    padding: int = attrs.field(default=0, kw_only=True)
    x: int = attrs.field(default=0, kw_only=True)  #: World position.
    y: int = attrs.field(default=0, kw_only=True)
    z: int = attrs.field(default=0, kw_only=True)
    # The stored used byte, which may be a value other than 1.
    _raw_used: int = attrs.field(default=0, kw_only=True, eq=False, repr=False)

    @classmethod
    def parse_binary(cls, data: bytes, offset: int) -> Self:
        """Parse an entry at the specified offset."""
        (
            rng, red, green, blue,
            nxt, used, flags, padding,
            x, y, z,
        ) = cls.ST.unpack_from(data, offset)
        return cls(
            rng, red, green, blue,
            next=nxt, used=used != 0, flags=flags, padding=padding,
            x=x, y=y, z=z, raw_used=used,
        )

    def export_binary(self) -> bytes:
        used = self._raw_used if bool(self._raw_used) == self.used else int(self.used)
        return self.ST.pack(
            self.range, self.red, self.green, self.blue,
            self.next, used, self.flags, self.padding,
            self.x, self.y, self.z,
        )

    @property
    def ui_x(self) -> int:
        """The horizontal map pixel position."""
        return coords.world_to_ui(self.x)

    @property
    def ui_z(self) -> int:
        """The vertical map pixel position."""
        return coords.world_to_ui(self.z)


@attrs.define
class LightProperties:
    """Global lighting settings, stored after the light table."""
    ST: ClassVar[Struct] = Struct('<iIIIiiibbbBi')

    #: 1-based index of the free-list head, or 0 if every slot is used.
    ed_light_free: int = 1
    night_flag: NightFlags = NightFlags.NONE
    #: Packed ARGB ambient colour.
    night_amb_d3d_colour: int = 0xFF404040
    #: Packed ARGB ambient specular colour.
    night_amb_d3d_specular: int = 0xFF000000
    night_amb_red: int = 64
    night_amb_green: int = 64
    night_amb_blue: int = 64
    night_lampost_red: int = 127
    night_lampost_green: int = 127
    night_lampost_blue: int = 100
    padding: int = 0
    night_lampost_radius: int = 512

    @classmethod
    def parse_binary(cls, data: bytes) -> Self:
        (
            free, flags, colour, specular,
            amb_r, amb_g, amb_b,
            lamp_r, lamp_g, lamp_b,
            padding, radius,
        ) = cls.ST.unpack_from(data, PROPERTIES_OFFSET)
        return cls(
            free, NightFlags(flags), colour, specular,
            amb_r, amb_g, amb_b,
            lamp_r, lamp_g, lamp_b,
            padding, radius,
        )

    def export_binary(self) -> bytes:
        return self.ST.pack(
            self.ed_light_free, self.night_flag.value,
            self.night_amb_d3d_colour, self.night_amb_d3d_specular,
            self.night_amb_red, self.night_amb_green, self.night_amb_blue,
            self.night_lampost_red, self.night_lampost_green, self.night_lampost_blue,
            self.padding, self.night_lampost_radius,
        )


@attrs.define
class NightColour:
    """The colour of the sky at night."""
    ST: ClassVar[Struct] = Struct('<BBB')
    red: int = 20
    green: int = 20
    blue: int = 40

    @classmethod
    def parse_binary(cls, data: bytes) -> Self:
        return cls(*cls.ST.unpack_from(data, NIGHT_COLOUR_OFFSET))

    def export_binary(self) -> bytes:
        return self.ST.pack(self.red, self.green, self.blue)


@attrs.define
class LightsFile:
    """The complete decoded contents of a ``.lgt`` file."""
    header: LightHeader
    entries: List[LightEntry]
    properties: LightProperties
    night_colour: NightColour
    #: The unused bytes after the header, kept so files round-trip.
    reserved: bytes = attrs.field(default=bytes(RESERVED_SIZE), repr=False, kw_only=True)
    #: Anything past the end of the tables.
    trailer: bytes = attrs.field(default=b'', repr=False, kw_only=True)

    @classmethod
    def parse(cls, data: bytes) -> Self:
        """Parse a full lights buffer."""
        check_size('lgt', data, TOTAL_SIZE)
        return cls(
            LightHeader.parse_binary(data),
            [
                LightEntry.parse_binary(data, ENTRIES_OFFSET + i * ENTRY_SIZE)
                for i in range(MAX_LIGHTS)
            ],
            LightProperties.parse_binary(data),
            NightColour.parse_binary(data),
            reserved=data[HEADER_SIZE:ENTRIES_OFFSET],
            trailer=data[TOTAL_SIZE:],
        )

    def export(self) -> bytes:
        """Build the file again."""
        if len(self.entries) != MAX_LIGHTS:
            raise ValueError(f'Expected {MAX_LIGHTS} light entries, got {len(self.entries)}!')
        if len(self.reserved) != RESERVED_SIZE:
            raise ValueError(f'Reserved block must be {RESERVED_SIZE} bytes, got {len(self.reserved)}!')
        return b''.join([
            self.header.export_binary(),
            self.reserved,
            *[entry.export_binary() for entry in self.entries],
            self.properties.export_binary(),
            self.night_colour.export_binary(),
            self.trailer,
        ])


def parse(data: bytes) -> LightsFile:
    """Decode a lights buffer."""
    return LightsFile.parse(data)


def _entry_offset(index: int) -> int:
    check_index('Light', index, MAX_LIGHTS)
    return ENTRIES_OFFSET + index * ENTRY_SIZE


def read_entry(data: bytes, index: int) -> LightEntry:
    """Read the light in the specified 0-based slot."""
    check_size('lgt', data, TOTAL_SIZE)
    return LightEntry.parse_binary(data, _entry_offset(index))


def write_entry(data: bytes, index: int, entry: LightEntry) -> bytes:
    """Return a copy of the buffer with the light slot overwritten."""
    check_size('lgt', data, TOTAL_SIZE)
    return splice(data, _entry_offset(index), entry.export_binary())


def read_properties(data: bytes) -> LightProperties:
    """Read the global light properties."""
    check_size('lgt', data, TOTAL_SIZE)
    return LightProperties.parse_binary(data)


def write_properties(data: bytes, props: LightProperties) -> bytes:
    """Return a copy of the buffer with new light properties."""
    check_size('lgt', data, TOTAL_SIZE)
    return splice(data, PROPERTIES_OFFSET, props.export_binary())


def read_night_colour(data: bytes) -> NightColour:
    """Read the night sky colour."""
    check_size('lgt', data, TOTAL_SIZE)
    return NightColour.parse_binary(data)


def write_night_colour(data: bytes, colour: NightColour) -> bytes:
    """Return a copy of the buffer with a new night sky colour."""
    check_size('lgt', data, TOTAL_SIZE)
    return splice(data, NIGHT_COLOUR_OFFSET, colour.export_binary())


def _used_flags(data: bytes) -> List[bool]:
    """Read just the used flag of each entry."""
    # The flag is the sixth byte of each entry.
    return [
        data[ENTRIES_OFFSET + i * ENTRY_SIZE + 5] != 0
        for i in range(MAX_LIGHTS)
    ]


def find_first_free(data: bytes) -> Optional[int]:
    """Find a free light slot, returning its 0-based index or None if the table is full.

    The free-list head is used if it points to an unused slot, otherwise this scans from
    the first slot.
    """
    check_size('lgt', data, TOTAL_SIZE)
    used = _used_flags(data)
    head = read_properties(data).ed_light_free
    if 0 < head <= MAX_LIGHTS and not used[head - 1]:
        return head - 1
    for i, is_used in enumerate(used):
        if not is_used:
            return i
    return None


def add_light(data: bytes, entry: LightEntry) -> Tuple[bytes, int]:
    """Place a light in a free slot.

    The entry is stored with ``used`` set and ``next`` cleared. The free-list head then
    moves to the next free slot after this one, wrapping around to the start.
    Returns the new buffer and the slot used.
    """
    index = find_first_free(data)
    if index is None:
        raise CapacityExceeded(f'All {MAX_LIGHTS} light slots are in use!')

    entry = attrs.evolve(entry, used=True, next=0)
    data = write_entry(data, index, entry)

    used = _used_flags(data)
    new_head = 0
    for i in [*range(index + 1, MAX_LIGHTS), *range(index)]:
        if not used[i]:
            new_head = i + 1
            break

    props = read_properties(data)
    props.ed_light_free = new_head
    LOGGER.debug('Added light {}, free head is now {}', index, new_head)
    return write_properties(data, props), index


def delete_light(data: bytes, index: int) -> bytes:
    """Mark a light slot as unused.

    If the free-list head is empty or points past this slot, it is moved here. This does
    not guarantee the head is the lowest free slot.
    """
    entry = read_entry(data, index)
    entry.used = False
    data = write_entry(data, index, entry)

    props = read_properties(data)
    if props.ed_light_free == 0 or props.ed_light_free - 1 > index:
        props.ed_light_free = index + 1
        data = write_properties(data, props)
    LOGGER.debug('Deleted light {}, free head is {}', index, props.ed_light_free)
    return data


def move_light(data: bytes, index: int, x: int, z: int) -> bytes:
    """Change the horizontal position of a light, keeping everything else."""
    entry = read_entry(data, index)
    entry.x = x
    entry.z = z
    return write_entry(data, index, entry)


def used_lights(data: bytes) -> Iterator[Tuple[int, LightEntry]]:
    """Yield ``(index, entry)`` for every light in use."""
    check_size('lgt', data, TOTAL_SIZE)
    for i in range(MAX_LIGHTS):
        entry = LightEntry.parse_binary(data, ENTRIES_OFFSET + i * ENTRY_SIZE)
        if entry.used:
            yield i, entry


def empty_template() -> bytes:
    """Build a valid lights file with no lights."""
    return LightsFile(
        LightHeader(ENTRY_SIZE | (1 << 16), MAX_LIGHTS, NIGHT_COLOUR_SIZE),
        [LightEntry() for _ in range(MAX_LIGHTS)],
        LightProperties(),
        NightColour(),
    ).export()
