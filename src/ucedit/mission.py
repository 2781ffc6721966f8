"""Reads and writes ``.ucm`` mission scripts.

Missions are a fixed header and table of 512 EventPoints, followed by a variable
section holding strings (and cutscenes) for the EventPoints that need them, then
a grid of zone flags. The layout::

    header          version, flags, five 260-byte paths, map index, list heads, rates
    event points    512 * 74 bytes
    skill levels    254 bytes
    rates           boredom, cars, music world
    extras          per used EventPoint, in slot order
    zones           128 * 128 bytes, X-major

Missions double as the engine's save format, so everything that is read is kept,
and unchanged values are written back exactly as they were found.
"""
from typing import IO, Callable, ClassVar, Final, List, Optional, Tuple, Type, TypeVar, Union
from struct import Struct
import io
import enum
import struct

from typing_extensions import Self
import attrs

from ucedit import CapacityExceeded, MalformedRegion, UnsupportedVersion, check_index, check_size
from ucedit import coords, logger
from ucedit.binformat import ENCODING, pad_string, read_exact, struct_read, strip_cstring
from ucedit.const import (
    SHOUT_TRIGGERS, TEXT_WAYPOINTS,
    MissionFlags, OnTrigger, TriggerType, WaypointCategory, WaypointFlags, WaypointType, ZoneFlags,
    category_of,
)
from ucedit.cutscene import Cutscene
from ucedit.types import FileWBinary


__all__ = [
    'EventPoint', 'Mission', 'MissionInfo',
    'CURRENT_VERSION', 'MAX_EVENT_POINTS', 'ZONE_SIZE',
    'parse', 'read_info',
]
LOGGER = logger.get_logger(__name__)
T = TypeVar('T')
E = TypeVar('E', bound=enum.IntEnum)

CURRENT_VERSION: Final = 10
MAX_EVENT_POINTS: Final = 512
NAME_SIZE: Final = 260
NAME_COUNT: Final = 5
SKILL_LEVELS_SIZE: Final = 254
ZONE_SIZE: Final = 128
#: Longest string accepted in the extras section.
TEXT_SANITY_LIMIT: Final = 10_000
#: Older versions store extra text in a fixed field.
OLD_TEXT_SIZE: Final = 260

# Versions which added features.
LENGTH_PREFIX_VERSION: Final = 5
TYPE_TAG_VERSION: Final = 8

TEXT_TAG: Final = 1
CUTSCENE_TAG: Final = 2

ST_HEADER: Final = Struct('<II')
ST_META: Final = Struct('<HHHBB')
ST_RATES: Final = Struct('<BBB')
HEADER_SIZE: Final = ST_HEADER.size + NAME_SIZE * NAME_COUNT + ST_META.size
# Messages can be spoken by these instead of an EventPoint.
_SPEAKER_SPECIAL: Final = frozenset({0, 0xFFFF, 0xFFFE})


@attrs.frozen
class _RawBlock:
    """The original bytes for a variable-length section, and the version they were read in."""
    version: int
    data: bytes


def _read_text(file: IO[bytes], version: int) -> Optional[str]:
    """Read a string from the extras section."""
    if version >= TYPE_TAG_VERSION:
        [tag] = read_exact(file, 1)
        if tag != TEXT_TAG:
            return None
    if version >= LENGTH_PREFIX_VERSION:
        [length] = struct_read('<i', file)
    else:
        length = OLD_TEXT_SIZE
    if 0 < length < TEXT_SANITY_LIMIT:
        return strip_cstring(read_exact(file, length))
    return None


def _build_text(text: Optional[str], version: int) -> bytes:
    """Build a string for the extras section."""
    encoded = (text or '').encode(ENCODING)
    buf = bytearray()
    if version >= TYPE_TAG_VERSION:
        buf.append(TEXT_TAG)
    if version >= LENGTH_PREFIX_VERSION:
        buf += struct.pack('<i', len(encoded) + 1)
        buf += encoded
        buf.append(0)
    else:
        buf += pad_string(text or '', OLD_TEXT_SIZE)
    return bytes(buf)


def _read_cutscene(file: IO[bytes]) -> Tuple[int, Optional[Cutscene]]:
    """Read the cutscene section, which is a type code and optional data."""
    [code] = read_exact(file, 1)
    if code == CUTSCENE_TAG:
        return code, Cutscene.parse(file)
    return code, None


def _read_block(
    file: IO[bytes], version: int,
    func: Callable[[IO[bytes]], T],
) -> Tuple[T, _RawBlock]:
    """Call func to read a section, returning the result and the bytes consumed."""
    start = file.tell()
    result = func(file)
    end = file.tell()
    file.seek(start)
    raw = file.read(end - start)
    return result, _RawBlock(version, raw)


def _lookup(enum_cls: Type[E], value: int, index: int, used: int) -> Union[E, int]:
    """Convert a stored value to the enum.

    Unused slots may hold leftover values, those are kept as integers.
    """
    try:
        return enum_cls(value)
    except ValueError:
        if used:
            raise MalformedRegion(
                f'EventPoint {index}: {value} is not a valid {enum_cls.__name__}!'
            ) from None
        return value


@attrs.define(eq=False)
class EventPoint:
    """A single scripted event, placed in the world.

    Indexes are 1-based, matching how EventPoints refer to each other. Index 0 means
    "no EventPoint".
    """
    ST: ClassVar[Struct] = Struct('<BBBBBBBBHHH10iiiiiHH')

    index: int
    #: Unused slots may hold leftover values, which are kept as integers.
    waypoint_type: Union[WaypointType, int] = WaypointType.NONE
    used: bool = False
    colour: int = attrs.field(default=0, kw_only=True)
    group: int = attrs.field(default=0, kw_only=True)
    triggered_by: Union[TriggerType, int] = attrs.field(default=TriggerType.NONE, kw_only=True)
    on_trigger: Union[OnTrigger, int] = attrs.field(default=OnTrigger.NONE, kw_only=True)
    #: Facing, 0-255 for a full turn.
    direction: int = attrs.field(default=0, kw_only=True)
    flags: WaypointFlags = attrs.field(default=WaypointFlags.NONE, kw_only=True)
    #: EventPoint this depends on.
    ep_ref: int = attrs.field(default=0, kw_only=True)
    #: The second EventPoint for boolean triggers.
    ep_ref_bool: int = attrs.field(default=0, kw_only=True)
    after_timer: int = attrs.field(default=0, kw_only=True)
    #: Meaning depends on the waypoint type, see :py:mod:`ucedit.waypoint_data`.
    data: List[int] = attrs.field(factory=lambda: [0] * 10, kw_only=True)
    radius: int = attrs.field(default=0, kw_only=True)
    x: int = attrs.field(default=0, kw_only=True)
    y: int = attrs.field(default=0, kw_only=True)
    z: int = attrs.field(default=0, kw_only=True)
    next: int = attrs.field(default=0, kw_only=True)
    prev: int = attrs.field(default=0, kw_only=True)

    #: Message, shout, map exit or other text for this waypoint.
    extra_text: Optional[str] = attrs.field(default=None, kw_only=True)
    #: Text to listen for, for shout triggers.
    trigger_text: Optional[str] = attrs.field(default=None, kw_only=True)
    cutscene: Optional[Cutscene] = attrs.field(default=None, kw_only=True)
    #: The stored type code for cutscene waypoints without data.
    cutscene_code: int = attrs.field(default=0, kw_only=True)

    _raw_extra: Optional[_RawBlock] = attrs.field(default=None, kw_only=True, repr=False)
    _raw_trigger: Optional[_RawBlock] = attrs.field(default=None, kw_only=True, repr=False)
    _raw_cutscene: Optional[_RawBlock] = attrs.field(default=None, kw_only=True, repr=False)
    # The stored used byte, which may be a value other than 1.
    _raw_used: int = attrs.field(default=0, kw_only=True, eq=False, repr=False)

    @classmethod
    def parse_binary(cls, data: bytes, offset: int, index: int) -> Self:
        """Parse the fixed part of an EventPoint."""
        (
            colour, group, waypoint, used, triggered_by, on_trigger, direction, flags,
            ep_ref, ep_ref_bool, after_timer,
            *values,
        ) = cls.ST.unpack_from(data, offset)
        ep_data = values[:10]
        radius, x, y, z, next_ep, prev_ep = values[10:]
        return cls(
            index, _lookup(WaypointType, waypoint, index, used), used != 0,
            colour=colour, group=group,
            triggered_by=_lookup(TriggerType, triggered_by, index, used),
            on_trigger=_lookup(OnTrigger, on_trigger, index, used),
            direction=direction, flags=WaypointFlags(flags),
            ep_ref=ep_ref, ep_ref_bool=ep_ref_bool, after_timer=after_timer,
            data=ep_data, radius=radius,
            x=x, y=y, z=z, next=next_ep, prev=prev_ep,
            raw_used=used,
        )

    def export_binary(self) -> bytes:
        """Build the fixed part of the EventPoint."""
        if len(self.data) != 10:
            raise ValueError(f'EventPoint {self.index} has {len(self.data)} data values, not 10!')
        used = self._raw_used if bool(self._raw_used) == self.used else int(self.used)
        return self.ST.pack(
            self.colour, self.group, int(self.waypoint_type), used,
            int(self.triggered_by), int(self.on_trigger), self.direction, self.flags.value,
            self.ep_ref, self.ep_ref_bool, self.after_timer,
            *self.data,
            self.radius, self.x, self.y, self.z, self.next, self.prev,
        )

    @property
    def has_text(self) -> bool:
        return self.used and self.waypoint_type in TEXT_WAYPOINTS

    @property
    def has_trigger_text(self) -> bool:
        return self.used and self.triggered_by in SHOUT_TRIGGERS

    def parse_extras(self, file: IO[bytes], version: int) -> None:
        """Read the variable-length data for this EventPoint."""
        if not self.used:
            return
        if self.waypoint_type in TEXT_WAYPOINTS:
            self.extra_text, self._raw_extra = _read_block(
                file, version, lambda f: _read_text(f, version),
            )
        if self.waypoint_type is WaypointType.CUTSCENE and version >= TYPE_TAG_VERSION:
            (self.cutscene_code, self.cutscene), self._raw_cutscene = _read_block(
                file, version, _read_cutscene,
            )
        if self.triggered_by in SHOUT_TRIGGERS:
            self.trigger_text, self._raw_trigger = _read_block(
                file, version, lambda f: _read_text(f, version),
            )

    def export_extras(self, file: FileWBinary, version: int) -> None:
        """Write the variable-length data for this EventPoint."""
        if not self.used:
            return
        if self.waypoint_type in TEXT_WAYPOINTS:
            file.write(_reuse_text(self._raw_extra, self.extra_text, version))
        if self.waypoint_type is WaypointType.CUTSCENE and version >= TYPE_TAG_VERSION:
            file.write(self._cutscene_block(version))
        if self.triggered_by in SHOUT_TRIGGERS:
            file.write(_reuse_text(self._raw_trigger, self.trigger_text, version))

    def _cutscene_block(self, version: int) -> bytes:
        raw = self._raw_cutscene
        if raw is not None and raw.version == version:
            code, old = _read_cutscene(io.BytesIO(raw.data))
            if code == self.cutscene_code and old == self.cutscene:
                return raw.data
        if self.cutscene is not None:
            return bytes([CUTSCENE_TAG]) + self.cutscene.export_bytes()
        if self.cutscene_code == CUTSCENE_TAG:
            # The data was removed, so this no longer has a cutscene.
            return b'\0'
        return bytes([self.cutscene_code])

    @property
    def map_x(self) -> int:
        """The tile column this is in."""
        return coords.world_to_tile(self.x)

    @property
    def map_z(self) -> int:
        """The tile row this is in."""
        return coords.world_to_tile(self.z)

    @property
    def pixel(self) -> Tuple[int, int]:
        """The position on the map image."""
        return coords.world_to_ui(self.x), coords.world_to_ui(self.z)

    @property
    def direction_degrees(self) -> float:
        return self.direction / 255.0 * 360.0

    @property
    def group_letter(self) -> str:
        """Groups are displayed as letters, A-Z."""
        return chr(ord('A') + min(self.group, 25))

    @property
    def category(self) -> WaypointCategory:
        return category_of(self.waypoint_type)

    @property
    def is_valid(self) -> bool:
        """EventPoints flagged as broken are skipped by the game."""
        return WaypointFlags.SUCKS not in self.flags


def _reuse_text(raw: Optional[_RawBlock], text: Optional[str], version: int) -> bytes:
    """Return the original text block if the text is unchanged, otherwise build a new one."""
    if raw is not None and raw.version == version:
        if _read_text(io.BytesIO(raw.data), version) == text:
            return raw.data
    return _build_text(text, version)


@attrs.frozen
class MissionInfo:
    """Summary information from the header, without decoding everything."""
    version: int
    flags: MissionFlags
    brief_name: str
    light_map_name: str
    map_name: str
    mission_name: str
    citsez_map_name: str
    map_index: int
    crime_rate: int
    civs_rate: int
    #: The number of used EventPoints.
    event_point_count: int


def _read_names(data: bytes) -> List[bytes]:
    offset = ST_HEADER.size
    return [
        data[offset + i * NAME_SIZE: offset + (i + 1) * NAME_SIZE]
        for i in range(NAME_COUNT)
    ]


def read_info(data: bytes) -> MissionInfo:
    """Quickly read the header and count the used EventPoints."""
    check_size('ucm', data, HEADER_SIZE + MAX_EVENT_POINTS * EventPoint.ST.size)
    version, flags = ST_HEADER.unpack_from(data, 0)
    names = [strip_cstring(name) for name in _read_names(data)]
    map_index, _free, _used, crime, civs = ST_META.unpack_from(data, HEADER_SIZE - ST_META.size)
    # The used flag is the fourth byte of each EventPoint.
    used_offset = HEADER_SIZE + 3
    count = sum(
        1 for i in range(MAX_EVENT_POINTS)
        if data[used_offset + i * EventPoint.ST.size]
    )
    return MissionInfo(version, MissionFlags(flags), *names, map_index, crime, civs, count)


@attrs.define(eq=False)
class Mission:
    """A complete mission."""
    version: int = CURRENT_VERSION
    flags: MissionFlags = MissionFlags.NONE
    brief_name: str = attrs.field(default='', kw_only=True)
    light_map_name: str = attrs.field(default='', kw_only=True)
    map_name: str = attrs.field(default='', kw_only=True)
    mission_name: str = attrs.field(default='', kw_only=True)
    citsez_map_name: str = attrs.field(default='', kw_only=True)
    #: Index into the game's list of maps.
    map_index: int = attrs.field(default=0, kw_only=True)
    #: Head of the free list of EventPoints.
    free_epoints: int = attrs.field(default=0, kw_only=True)
    #: Head of the used list of EventPoints.
    used_epoints: int = attrs.field(default=0, kw_only=True)
    crime_rate: int = attrs.field(default=0, kw_only=True)
    civs_rate: int = attrs.field(default=4, kw_only=True)
    event_points: List[EventPoint] = attrs.field(
        factory=lambda: [EventPoint(i + 1) for i in range(MAX_EVENT_POINTS)],
        kw_only=True, repr=False,
    )
    skill_levels: bytes = attrs.field(default=bytes(SKILL_LEVELS_SIZE), kw_only=True, repr=False)
    boredom_rate: int = attrs.field(default=4, kw_only=True)
    cars_rate: int = attrs.field(default=0, kw_only=True)
    music_world: int = attrs.field(default=0, kw_only=True)
    zones: bytearray = attrs.field(
        factory=lambda: bytearray(ZONE_SIZE * ZONE_SIZE),
        kw_only=True, repr=False,
    )
    #: Anything after the zones.
    trailer: bytes = attrs.field(default=b'', kw_only=True, repr=False)
    # The stored path fields, which may contain junk after the null.
    _raw_names: Optional[List[bytes]] = attrs.field(default=None, kw_only=True, repr=False)

    NAME_FIELDS: ClassVar[Tuple[str, ...]] = (
        'brief_name', 'light_map_name', 'map_name', 'mission_name', 'citsez_map_name',
    )

    @classmethod
    def new(cls) -> Self:
        """Create a blank mission, with the editor's defaults."""
        return cls(
            CURRENT_VERSION, MissionFlags.USED,
            light_map_name='Data\\Lighting\\newmap.lgt',
            map_name='Data\\newmap.iam',
            mission_name='newmission',
            free_epoints=1,
            crime_rate=4,
            civs_rate=4,
            boredom_rate=4,
            cars_rate=2,
        )

    @classmethod
    def parse(cls, data: bytes) -> Self:
        """Parse a mission file."""
        check_size('ucm', data, ST_HEADER.size)
        version, flags = ST_HEADER.unpack_from(data, 0)
        if version > CURRENT_VERSION:
            raise UnsupportedVersion(version, CURRENT_VERSION)
        fixed_size = (
            HEADER_SIZE + MAX_EVENT_POINTS * EventPoint.ST.size
            + SKILL_LEVELS_SIZE + ST_RATES.size
        )
        check_size('ucm', data, fixed_size)

        raw_names = _read_names(data)
        map_index, free_ep, used_ep, crime, civs = ST_META.unpack_from(
            data, HEADER_SIZE - ST_META.size,
        )
        event_points = [
            EventPoint.parse_binary(data, HEADER_SIZE + i * EventPoint.ST.size, i + 1)
            for i in range(MAX_EVENT_POINTS)
        ]
        offset = HEADER_SIZE + MAX_EVENT_POINTS * EventPoint.ST.size
        skill_levels = data[offset: offset + SKILL_LEVELS_SIZE]
        offset += SKILL_LEVELS_SIZE
        boredom, cars, music = ST_RATES.unpack_from(data, offset)
        offset += ST_RATES.size

        file = io.BytesIO(data)
        file.seek(offset)
        for ep in event_points:
            try:
                ep.parse_extras(file, version)
            except MalformedRegion as exc:
                raise MalformedRegion(f'EventPoint {ep.index} extras: {exc}') from None
        LOGGER.debug('Mission extras: {} bytes', file.tell() - offset)
        zones = bytearray(read_exact(file, ZONE_SIZE * ZONE_SIZE))
        trailer = file.read()
        if trailer:
            LOGGER.debug('{} bytes after the zone grid', len(trailer))

        brief, lights, map_name, name, citsez = [strip_cstring(raw) for raw in raw_names]
        return cls(
            version, MissionFlags(flags),
            brief_name=brief, light_map_name=lights, map_name=map_name,
            mission_name=name, citsez_map_name=citsez,
            map_index=map_index, free_epoints=free_ep, used_epoints=used_ep,
            crime_rate=crime, civs_rate=civs,
            event_points=event_points,
            skill_levels=skill_levels,
            boredom_rate=boredom, cars_rate=cars, music_world=music,
            zones=zones, trailer=trailer,
            raw_names=raw_names,
        )

    def _name_fields(self) -> List[bytes]:
        result = []
        for i, attr in enumerate(self.NAME_FIELDS):
            value: str = getattr(self, attr)
            if self._raw_names is not None and strip_cstring(self._raw_names[i]) == value:
                result.append(self._raw_names[i])
            else:
                result.append(pad_string(value, NAME_SIZE))
        return result

    def export(self) -> bytes:
        """Build the mission file."""
        if self.version > CURRENT_VERSION:
            raise UnsupportedVersion(self.version, CURRENT_VERSION)
        if len(self.event_points) != MAX_EVENT_POINTS:
            raise ValueError(
                f'Missions must have {MAX_EVENT_POINTS} EventPoints, not {len(self.event_points)}!'
            )
        if len(self.skill_levels) != SKILL_LEVELS_SIZE:
            raise ValueError(f'Skill levels must be {SKILL_LEVELS_SIZE} bytes!')
        if len(self.zones) != ZONE_SIZE * ZONE_SIZE:
            raise ValueError(f'Zones must be {ZONE_SIZE * ZONE_SIZE} bytes!')

        file = io.BytesIO()
        file.write(ST_HEADER.pack(self.version, self.flags.value))
        for name in self._name_fields():
            file.write(name)
        file.write(ST_META.pack(
            self.map_index, self.free_epoints, self.used_epoints,
            self.crime_rate, self.civs_rate,
        ))
        for ep in self.event_points:
            file.write(ep.export_binary())
        file.write(self.skill_levels)
        file.write(ST_RATES.pack(self.boredom_rate, self.cars_rate, self.music_world))
        for ep in self.event_points:
            ep.export_extras(file, self.version)
        file.write(self.zones)
        file.write(self.trailer)
        return file.getvalue()

    def __getitem__(self, index: int) -> EventPoint:
        """Fetch an EventPoint by its 1-based index."""
        check_index('EventPoint', index - 1, MAX_EVENT_POINTS)
        return self.event_points[index - 1]

    @property
    def used_event_points(self) -> List[EventPoint]:
        return [ep for ep in self.event_points if ep.used]

    def find_free_slot(self) -> Optional[int]:
        """Return the 1-based index of the first unused EventPoint, or None if full.

        The first slot is reserved.
        """
        for ep in self.event_points[1:]:
            if not ep.used:
                return ep.index
        return None

    def add_event_point(self, ep: EventPoint) -> int:
        """Place this EventPoint into a free slot, returning its new index.

        :raises ValueError: If the type or triggers are not valid values.
        """
        index = self.find_free_slot()
        if index is None:
            raise CapacityExceeded(f'All {MAX_EVENT_POINTS} EventPoints are in use!')
        ep.waypoint_type = WaypointType(ep.waypoint_type)
        ep.triggered_by = TriggerType(ep.triggered_by)
        ep.on_trigger = OnTrigger(ep.on_trigger)
        ep.index = index
        ep.used = True
        ep.next = ep.prev = 0
        self.event_points[index - 1] = ep
        LOGGER.debug('Added {} EventPoint at {}', ep.waypoint_type.name, index)
        return index

    def references_to(self, index: int) -> List[EventPoint]:
        """Find all used EventPoints which refer to this one."""
        found = []
        for ep in self.event_points:
            if not ep.used or ep.index == index:
                continue
            if index in (ep.ep_ref, ep.ep_ref_bool, ep.next, ep.prev):
                found.append(ep)
                continue
            data = ep.data
            typ = ep.waypoint_type
            if typ is WaypointType.CONVERSATION:
                refers = index in (data[1], data[2])
            elif typ is WaypointType.ADJUST_ENEMY:
                refers = data[6] == index
            elif typ in (WaypointType.MOVE_THING, WaypointType.KILL_WAYPOINT):
                refers = data[0] == index
            elif typ is WaypointType.CREATE_VEHICLE:
                refers = data[2] == index
            elif typ is WaypointType.MESSAGE:
                refers = data[2] == index and data[2] not in _SPEAKER_SPECIAL
            else:
                refers = False
            if refers:
                found.append(ep)
        return found

    def delete_event_point(self, index: int) -> None:
        """Clear an EventPoint slot.

        :raises ValueError: If other EventPoints still refer to this one.
        """
        check_index('EventPoint', index - 1, MAX_EVENT_POINTS)
        refs = self.references_to(index)
        if refs:
            raise ValueError(
                f'EventPoint {index} is still referenced by '
                + ', '.join(str(ep.index) for ep in refs)
            )
        self.event_points[index - 1] = EventPoint(index)

    def zone(self, x: int, z: int) -> ZoneFlags:
        """Return the zone flags for a tile."""
        check_index('zone X', x, ZONE_SIZE)
        check_index('zone Z', z, ZONE_SIZE)
        return ZoneFlags(self.zones[x * ZONE_SIZE + z])

    def set_zone(self, x: int, z: int, flags: ZoneFlags) -> None:
        """Set the zone flags for a tile."""
        check_index('zone X', x, ZONE_SIZE)
        check_index('zone Z', z, ZONE_SIZE)
        self.zones[x * ZONE_SIZE + z] = int(flags) & 0xFF


def parse(data: bytes) -> Mission:
    """Parse a mission file."""
    return Mission.parse(data)
