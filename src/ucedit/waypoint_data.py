"""Named access to the ``data`` array of EventPoints.

Each EventPoint has ten 32-bit integers, whose meaning depends entirely on the
waypoint type. Some slots hold two 16-bit values, or a bitmask. Every layout is
listed explicitly in :py:data:`LAYOUTS`, so nothing here guesses at a meaning.
"""
from typing import TYPE_CHECKING, Dict, Final, Mapping, MutableSequence, Optional, Sequence, Tuple, Type
from enum import IntFlag

import attrs

from ucedit.const import WaypointType


if TYPE_CHECKING:
    from ucedit.mission import EventPoint


__all__ = [
    'Field', 'DataLayout', 'LAYOUTS',
    'EnemyHas', 'EnemyBehaviour', 'EnemyCombat', 'VisualFX', 'BurnFX', 'BombFX',
    'ItemFlags', 'PlatformFlags', 'SignFlip',
    'MESSAGE_FROM_RADIO', 'MESSAGE_FROM_PLACE', 'MESSAGE_FROM_TUTORIAL',
    'MAX_EP_REFERENCE', 'MAX_THING_INDEX',
    'layout_for', 'read_fields', 'write_field',
]

DATA_SLOTS: Final = 10
# Special speakers for messages, anything else is an EventPoint index.
MESSAGE_FROM_RADIO: Final = 0
MESSAGE_FROM_PLACE: Final = 0xFFFF
MESSAGE_FROM_TUTORIAL: Final = 0xFFFE
#: Highest EventPoint a kill waypoint may target, the last slot is never used.
MAX_EP_REFERENCE: Final = 511
#: Highest index accepted for waypoints referring to vehicles or other things.
MAX_THING_INDEX: Final = 2048


class EnemyHas(IntFlag):
    """Weapons an enemy starts with, in the high half of slot 2."""
    NONE = 0
    PISTOL = 1 << 0
    SHOTGUN = 1 << 1
    AK47 = 1 << 2
    GRENADE = 1 << 3
    BALLOON = 1 << 4
    KNIFE = 1 << 5
    BAT = 1 << 6


class EnemyBehaviour(IntFlag):
    """Behaviour options for enemies, in slot 4."""
    NONE = 0
    LAZY = 1 << 0
    DILIGENT = 1 << 1
    GANG = 1 << 2
    FIGHT_BACK = 1 << 3
    JUST_KILL_PLAYER = 1 << 4
    ROBOTIC = 1 << 5
    RESTRICTED = 1 << 6
    ONLY_PLAYER_KILLS = 1 << 7
    BLUE_ZONE = 1 << 8
    CYAN_ZONE = 1 << 9
    YELLOW_ZONE = 1 << 10
    MAGENTA_ZONE = 1 << 11
    INVULNERABLE = 1 << 12
    GUILTY = 1 << 13
    FAKE_WANDER = 1 << 14
    CAN_CARRY = 1 << 15


class EnemyCombat(IntFlag):
    """Fighting moves an enemy may use, in the high half of slot 7."""
    NONE = 0
    SLIDE = 1 << 0
    COMBO_PPP = 1 << 1
    COMBO_KKK = 1 << 2
    COMBO_ANY = 1 << 3
    GRAPPLE = 1 << 4
    SIDE_KICK = 1 << 5
    BACK_KICK = 1 << 6


class VisualFX(IntFlag):
    """Effects for visual effect and mist waypoints."""
    NONE = 0
    FLARE = 1 << 0
    FIRE_DOME = 1 << 1
    SHOCKWAVE = 1 << 2
    SMOKE_TRAILS = 1 << 3
    BONFIRE = 1 << 4


class BurnFX(IntFlag):
    """Fire effects for burning prims."""
    NONE = 0
    FLICKER = 1 << 0
    BONFIRES = 1 << 1
    THICK_FLAMES = 1 << 2
    SMOKE = 1 << 3
    STATIC = 1 << 4


class BombFX(IntFlag):
    """Explosion effects for bombs."""
    NONE = 0
    FLARE = 1 << 0
    FIRE_DOME = 1 << 1
    SHOCKWAVE = 1 << 2
    SMOKE_TRAILS = 1 << 3
    BONFIRE = 1 << 4


class ItemFlags(IntFlag):
    """Options for created items."""
    NONE = 0
    FOLLOWS_PERSON = 1 << 0
    HIDDEN_IN_PRIM = 1 << 1


class PlatformFlags(IntFlag):
    """Movement options for linked platforms."""
    NONE = 0
    LOCK_AXIS = 1 << 0
    LOCK_ROTATION = 1 << 1
    ROCKET = 1 << 2


class SignFlip(IntFlag):
    """Mirroring for signs."""
    NONE = 0
    LEFT_RIGHT = 1 << 0
    TOP_BOTTOM = 1 << 1


def _to_signed(value: int) -> int:
    """Reinterpret an unsigned 32-bit value as signed."""
    value &= 0xFFFF_FFFF
    return value - (1 << 32) if value & 0x8000_0000 else value


@attrs.frozen
class Field:
    """A named value packed into one data slot."""
    name: str
    slot: int = attrs.field(validator=[attrs.validators.ge(0), attrs.validators.lt(DATA_SLOTS)])
    shift: int = attrs.field(default=0, kw_only=True)
    width: int = attrs.field(default=32, kw_only=True)
    #: If set, values are converted to this flag type.
    flag_type: Optional[Type[IntFlag]] = attrs.field(default=None, kw_only=True)
    #: Inclusive range the editor allows for the value.
    limits: Optional[Tuple[int, int]] = attrs.field(default=None, kw_only=True)

    @property
    def mask(self) -> int:
        return (1 << self.width) - 1

    def get(self, data: Sequence[int]) -> int:
        """Extract this field from the data array.

        Whole slots are signed, unless they hold flags.
        """
        raw = data[self.slot] & 0xFFFF_FFFF
        if self.flag_type is not None:
            return self.flag_type((raw >> self.shift) & self.mask)
        if self.width == 32:
            return _to_signed(raw)
        return (raw >> self.shift) & self.mask

    def set(self, data: MutableSequence[int], value: int) -> None:
        """Store this field into the data array, leaving the rest of the slot unchanged."""
        value = int(value)
        if self.limits is not None:
            low, high = self.limits
            if not low <= value <= high:
                raise ValueError(f'{self.name} must be in the range {low}-{high}, not {value}!')
        if self.width == 32:
            if not -(1 << 31) <= value <= 0xFFFF_FFFF:
                raise ValueError(f'{self.name} value {value} does not fit in 32 bits!')
            data[self.slot] = _to_signed(value)
            return
        if not 0 <= value <= self.mask:
            raise ValueError(f'{self.name} value {value} does not fit in {self.width} bits!')
        raw = data[self.slot] & 0xFFFF_FFFF
        raw &= ~(self.mask << self.shift)
        raw |= value << self.shift
        data[self.slot] = _to_signed(raw)


def _low(name: str, slot: int, **kwargs: object) -> Field:
    """A field in the low 16 bits of a slot."""
    return Field(name, slot, shift=0, width=16, **kwargs)  # type: ignore[arg-type]


def _high(name: str, slot: int, **kwargs: object) -> Field:
    """A field in the high 16 bits of a slot."""
    return Field(name, slot, shift=16, width=16, **kwargs)  # type: ignore[arg-type]


@attrs.frozen
class DataLayout:
    """The fields used by one waypoint type."""
    fields: Tuple[Field, ...]

    @classmethod
    def of(cls, *fields: Field) -> 'DataLayout':
        names = [field.name for field in fields]
        if len(set(names)) != len(names):
            raise ValueError(f'Duplicate field names in {names}')
        return cls(fields)

    def __getitem__(self, name: str) -> Field:
        for field in self.fields:
            if field.name == name:
                return field
        raise KeyError(name)

    def __contains__(self, name: object) -> bool:
        return any(field.name == name for field in self.fields)

    def read(self, data: Sequence[int]) -> Dict[str, int]:
        return {field.name: field.get(data) for field in self.fields}


_ENEMY_FIELDS: Final = (
    _low('enemy_type', 0),
    _high('count', 0),
    Field('follow', 1),
    _low('health', 2),
    _high('has', 2, flag_type=EnemyHas),
    Field('move', 3),
    Field('behaviour', 4, flag_type=EnemyBehaviour),
    _low('ai', 5),
    _high('ability', 5),
    _low('guard', 7),
    _high('combat', 7, flag_type=EnemyCombat),
    Field('weapons', 8),
    Field('items', 9),
)
_EFFECT_FIELDS: Final = (
    Field('effects', 0, flag_type=VisualFX),
    Field('scale', 1),
)

#: The data layout for each waypoint type which uses the data array.
LAYOUTS: Final[Mapping[WaypointType, DataLayout]] = {
    WaypointType.SIMPLE: DataLayout.of(
        Field('delay', 0),  # Tenths of a second.
    ),
    WaypointType.CREATE_PLAYER: DataLayout.of(
        Field('player_type', 0),
    ),
    WaypointType.CREATE_ENEMIES: DataLayout.of(*_ENEMY_FIELDS),
    WaypointType.ADJUST_ENEMY: DataLayout.of(
        *_ENEMY_FIELDS,
        Field('enemy_to_change', 6),
    ),
    WaypointType.CREATE_VEHICLE: DataLayout.of(
        Field('vehicle_type', 0),
        Field('move', 1),
        Field('target', 2),
        Field('key', 3),
    ),
    WaypointType.CREATE_ITEM: DataLayout.of(
        Field('item_type', 0),
        Field('count', 1, limits=(1, 99)),
        Field('flags', 2, flag_type=ItemFlags),
    ),
    WaypointType.CREATE_CREATURE: DataLayout.of(
        Field('creature_type', 0),
        Field('count', 1),
    ),
    WaypointType.CREATE_CAMERA: DataLayout.of(
        Field('camera_type', 0),
        Field('target_type', 1),
        Field('follow_player', 2),
    ),
    WaypointType.CREATE_TARGET: DataLayout.of(
        Field('move', 0),
        Field('target_type', 1),
        Field('speed', 2),
        Field('delay', 3),
        Field('zoom', 4),
        Field('rotate', 5),
    ),
    WaypointType.CAMERA_WAYPOINT: DataLayout.of(
        Field('move', 0),
        Field('dwell', 1),
    ),
    WaypointType.MESSAGE: DataLayout.of(
        Field('time', 1),
        Field('who', 2),
    ),
    WaypointType.SOUND_EFFECT: DataLayout.of(
        Field('sound_type', 0, limits=(0, 1)),  # 0 is an effect, 1 is music.
        Field('sound_id', 1),
    ),
    WaypointType.VISUAL_EFFECT: DataLayout.of(*_EFFECT_FIELDS),
    WaypointType.CREATE_MIST: DataLayout.of(*_EFFECT_FIELDS),
    WaypointType.ACTIVATE_PRIM: DataLayout.of(
        Field('prim_type', 0, limits=(0, 3)),
        Field('anim', 1),
    ),
    WaypointType.CREATE_TRAP: DataLayout.of(
        Field('trap_type', 0),
        Field('speed', 1, limits=(1, 32)),
        Field('steps', 2, limits=(1, 32)),
        Field('mask', 3),
        Field('axis', 4),
        Field('range', 5, limits=(1, 32)),
    ),
    WaypointType.LINK_PLATFORM: DataLayout.of(
        Field('speed', 0),
        Field('flags', 1, flag_type=PlatformFlags),
    ),
    WaypointType.CREATE_BOMB: DataLayout.of(
        Field('bomb_type', 0),
        Field('size', 1),
        Field('effects', 2, flag_type=BombFX),
    ),
    WaypointType.BURN_PRIM: DataLayout.of(
        Field('effects', 0, flag_type=BurnFX),
    ),
    WaypointType.NAV_BEACON: DataLayout.of(
        Field('person', 1),
    ),
    WaypointType.SPOT_EFFECT: DataLayout.of(
        Field('effect_type', 0),
        Field('scale', 1, limits=(0, 1024)),
    ),
    WaypointType.CREATE_BARREL: DataLayout.of(
        Field('barrel_type', 0),
    ),
    WaypointType.KILL_WAYPOINT: DataLayout.of(
        Field('target', 0, limits=(1, MAX_EP_REFERENCE)),
    ),
    WaypointType.CREATE_TREASURE: DataLayout.of(
        Field('value', 0),
    ),
    WaypointType.BONUS_POINTS: DataLayout.of(
        Field('points', 1),
        Field('bonus_type', 2),
        Field('gender', 3),
    ),
    WaypointType.CONVERSATION: DataLayout.of(
        Field('person_1', 1),
        Field('person_2', 2),
        Field('grab_camera', 3),
    ),
    WaypointType.INCREMENT: DataLayout.of(
        Field('amount', 0, limits=(0, 256)),
        Field('counter', 1, limits=(1, 10)),
    ),
    WaypointType.DYNAMIC_LIGHT: DataLayout.of(
        Field('light_type', 0),
        Field('speed', 1, limits=(1, 32)),
        Field('steps', 2, limits=(1, 32)),
        Field('mask', 3),
        Field('colour_a', 4),
        Field('colour_b', 5),
    ),
    WaypointType.TRANSFER_PLAYER: DataLayout.of(
        Field('target', 0, limits=(1, MAX_THING_INDEX)),
    ),
    WaypointType.LOCK_VEHICLE: DataLayout.of(
        Field('vehicle', 0, limits=(1, MAX_THING_INDEX)),
        Field('lock', 1),
    ),
    WaypointType.RESET_COUNTER: DataLayout.of(
        Field('counter', 0, limits=(0, 9)),
    ),
    WaypointType.ENEMY_FLAGS: DataLayout.of(
        Field('target', 0),
        _low('flags', 1, flag_type=EnemyBehaviour),
    ),
    WaypointType.STALL_CAR: DataLayout.of(
        Field('vehicle', 0, limits=(1, MAX_THING_INDEX)),
    ),
    WaypointType.EXTEND: DataLayout.of(
        Field('target', 0),
        Field('amount', 1),
    ),
    WaypointType.MOVE_THING: DataLayout.of(
        Field('waypoint', 0, limits=(1, MAX_THING_INDEX)),
    ),
    WaypointType.MAKE_PERSON_PEE: DataLayout.of(
        Field('waypoint', 0, limits=(1, MAX_THING_INDEX)),
    ),
    WaypointType.SIGN: DataLayout.of(
        Field('sign_type', 0, limits=(0, 3)),
        Field('flip', 1, flag_type=SignFlip),
    ),
    WaypointType.WARE_FX: DataLayout.of(
        Field('effect_type', 0),
    ),
}
_EMPTY: Final = DataLayout(())


def layout_for(waypoint: WaypointType) -> DataLayout:
    """Return the layout for a waypoint type. Types without data get an empty layout."""
    return LAYOUTS.get(waypoint, _EMPTY)


def read_fields(ep: 'EventPoint') -> Dict[str, int]:
    """Decode every named value in an EventPoint's data array."""
    return layout_for(ep.waypoint_type).read(ep.data)


def write_field(ep: 'EventPoint', name: str, value: int) -> None:
    """Store a named value into an EventPoint's data array.

    :raises KeyError: If the waypoint type has no field with this name.
    """
    try:
        field = layout_for(ep.waypoint_type)[name]
    except KeyError:
        typ = getattr(ep.waypoint_type, 'name', ep.waypoint_type)
        raise KeyError(f'{typ} waypoints have no "{name}" data!') from None
    field.set(ep.data, value)
