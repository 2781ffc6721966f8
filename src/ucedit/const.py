"""Enums shared by the mission format and the typed EventPoint data."""
from enum import Enum, IntEnum, IntFlag
from typing import Final, FrozenSet


__all__ = [
    'WaypointType', 'TriggerType', 'OnTrigger', 'WaypointCategory',
    'WaypointFlags', 'ZoneFlags', 'MissionFlags',
    'TEXT_WAYPOINTS', 'SHOUT_TRIGGERS',
    'category_of',
]


class WaypointType(IntEnum):
    """What an EventPoint does when triggered."""
    NONE = 0
    SIMPLE = 1
    CREATE_PLAYER = 2
    CREATE_ENEMIES = 3
    CREATE_VEHICLE = 4
    CREATE_ITEM = 5
    CREATE_CREATURE = 6
    CREATE_CAMERA = 7
    CREATE_TARGET = 8
    CREATE_MAP_EXIT = 9
    CAMERA_WAYPOINT = 10
    TARGET_WAYPOINT = 11
    MESSAGE = 12
    SOUND_EFFECT = 13
    VISUAL_EFFECT = 14
    CUTSCENE = 15
    TELEPORT = 16
    TELEPORT_TARGET = 17
    END_GAME_LOSE = 18
    SHOUT = 19
    ACTIVATE_PRIM = 20
    CREATE_TRAP = 21
    ADJUST_ENEMY = 22
    LINK_PLATFORM = 23
    CREATE_BOMB = 24
    BURN_PRIM = 25
    END_GAME_WIN = 26
    NAV_BEACON = 27
    SPOT_EFFECT = 28
    CREATE_BARREL = 29
    KILL_WAYPOINT = 30
    CREATE_TREASURE = 31
    BONUS_POINTS = 32
    GROUP_LIFE = 33
    GROUP_DEATH = 34
    CONVERSATION = 35
    INTERESTING = 36
    INCREMENT = 37
    DYNAMIC_LIGHT = 38
    GOTHERE_DOTHIS = 39
    TRANSFER_PLAYER = 40
    AUTOSAVE = 41
    MAKE_SEARCHABLE = 42
    LOCK_VEHICLE = 43
    GROUP_RESET = 44
    COUNT_UP_TIMER = 45
    RESET_COUNTER = 46
    CREATE_MIST = 47
    ENEMY_FLAGS = 48
    STALL_CAR = 49
    EXTEND = 50
    MOVE_THING = 51
    MAKE_PERSON_PEE = 52
    CONE_PENALTIES = 53
    SIGN = 54
    WARE_FX = 55
    NO_FLOOR = 56
    SHAKE_CAMERA = 57


class TriggerType(IntEnum):
    """The condition which activates an EventPoint."""
    NONE = 0
    DEPENDENCY = 1
    RADIUS = 2
    DOOR = 3
    TRIPWIRE = 4
    PRESSURE_PAD = 5
    ELECTRIC_FENCE = 6
    WATER_LEVEL = 7
    SECURITY_CAMERA = 8
    SWITCH = 9
    ANIM_PRIM = 10
    TIMER = 11
    SHOUT_ALL = 12
    BOOLEAN_AND = 13
    BOOLEAN_OR = 14
    ITEM_HELD = 15
    ITEM_SEEN = 16
    KILLED = 17
    SHOUT_ANY = 18
    COUNTDOWN = 19
    ENEMY_RADIUS = 20
    VISIBLE_COUNTDOWN = 21
    CUBOID = 22
    HALF_DEAD = 23
    GROUP_DEAD = 24
    PERSON_SEEN = 25
    PERSON_USED = 26
    PLAYER_USES_RADIUS = 27
    PRIM_DAMAGED = 28
    PERSON_ARRESTED = 29
    CONVERSATION_OVER = 30
    COUNTER = 31
    KILLED_NOT_ARRESTED = 32
    CRIME_RATE_ABOVE = 33
    CRIME_RATE_BELOW = 34
    PERSON_IS_MURDERER = 35
    PERSON_IN_VEHICLE = 36
    THING_RADIUS_DIR = 37
    PLAYER_CARRY_PERSON = 38
    SPECIFIC_ITEM_HELD = 39
    RANDOM = 40
    PLAYER_FIRES_GUN = 41
    DARCI_GRABBED = 42
    PUNCHED_AND_KICKED = 43
    MOVE_RADIUS_DIR = 44


class OnTrigger(IntEnum):
    """How long an EventPoint stays active once triggered."""
    NONE = 0
    ACTIVE = 1
    ACTIVE_WHILE = 2
    ACTIVE_TIME = 3
    ACTIVE_DIE = 4


class WaypointFlags(IntFlag):
    """Options for an EventPoint."""
    NONE = 0
    SUCKS = 1  #: Marked as broken.
    INVERSE = 2  #: Invert the trigger condition.
    INSIDE = 4
    WARE = 8
    REFERENCED = 16  #: Another EventPoint refers to this one.
    OPTIONAL = 32


class ZoneFlags(IntFlag):
    """Flags painted onto the mission's zone grid."""
    NONE = 0
    INSIDE = 1
    REVERB = 2
    NO_WANDER = 4
    ZONE_1 = 8
    ZONE_2 = 16
    ZONE_3 = 32
    ZONE_4 = 64
    NO_GO = 128


class MissionFlags(IntFlag):
    """Mission-wide options."""
    NONE = 0
    USED = 1
    SHOW_CRIME_RATE = 2
    CARS_WITH_ROAD_PRIMS = 4


class WaypointCategory(Enum):
    """Rough grouping of waypoint types, for filtering."""
    PLAYER = 'player'
    ENEMIES = 'enemies'
    ITEMS = 'items'
    TRAPS = 'traps'
    CAMERAS = 'cameras'
    MISC = 'misc'
    MAP_EXITS = 'map_exits'
    TEXT_MESSAGES = 'text_messages'


#: Waypoint types with a text string stored in the extra section.
TEXT_WAYPOINTS: Final[FrozenSet[WaypointType]] = frozenset({
    WaypointType.MESSAGE,
    WaypointType.CREATE_MAP_EXIT,
    WaypointType.SHOUT,
    WaypointType.NAV_BEACON,
    WaypointType.CONVERSATION,
    WaypointType.BONUS_POINTS,
})
#: Trigger types with a text string stored in the extra section.
SHOUT_TRIGGERS: Final[FrozenSet[TriggerType]] = frozenset({
    TriggerType.SHOUT_ALL,
    TriggerType.SHOUT_ANY,
})

_CATEGORIES = {
    WaypointType.CREATE_PLAYER: WaypointCategory.PLAYER,
    WaypointType.AUTOSAVE: WaypointCategory.PLAYER,
    WaypointType.CREATE_ENEMIES: WaypointCategory.ENEMIES,
    WaypointType.ADJUST_ENEMY: WaypointCategory.ENEMIES,
    WaypointType.CREATE_CREATURE: WaypointCategory.ENEMIES,
    WaypointType.ENEMY_FLAGS: WaypointCategory.ENEMIES,
    WaypointType.CREATE_ITEM: WaypointCategory.ITEMS,
    WaypointType.CREATE_BARREL: WaypointCategory.ITEMS,
    WaypointType.CREATE_TREASURE: WaypointCategory.ITEMS,
    WaypointType.BONUS_POINTS: WaypointCategory.ITEMS,
    WaypointType.CREATE_TRAP: WaypointCategory.TRAPS,
    WaypointType.CREATE_BOMB: WaypointCategory.TRAPS,
    WaypointType.CREATE_CAMERA: WaypointCategory.CAMERAS,
    WaypointType.CREATE_TARGET: WaypointCategory.CAMERAS,
    WaypointType.CAMERA_WAYPOINT: WaypointCategory.CAMERAS,
    WaypointType.TARGET_WAYPOINT: WaypointCategory.CAMERAS,
    WaypointType.CREATE_MAP_EXIT: WaypointCategory.MAP_EXITS,
    WaypointType.MESSAGE: WaypointCategory.TEXT_MESSAGES,
    WaypointType.CONVERSATION: WaypointCategory.TEXT_MESSAGES,
}


def category_of(waypoint: WaypointType) -> WaypointCategory:
    """Categorise a waypoint type."""
    return _CATEGORIES.get(waypoint, WaypointCategory.MISC)
