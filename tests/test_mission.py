"""Test parsing and exporting missions."""
from typing import Dict, Sequence
import struct

import pytest

from ucedit import (
    BufferTooSmall, CapacityExceeded, IndexOutOfRange, MalformedRegion, UnsupportedVersion,
)
from ucedit import mission
from ucedit.const import (
    MissionFlags, OnTrigger, TriggerType, WaypointCategory, WaypointFlags, WaypointType,
    ZoneFlags,
)
from ucedit.cutscene import Channel, ChannelType, Cutscene
from ucedit.mission import EventPoint, Mission


NAMES = [
    b'Data\\brief.txt',
    b'Data\\Lighting\\gang.lgt',
    b'Data\\gang.iam\0leftover junk',
    b'Gang Order',
    b'',
]
CUTSCENE = bytes([2, 1, 3, 0, 0, 0, 2, 0, 0, 0, 0, 0, 0, 0])


def build_ep(
    waypoint: int, *,
    used: int = 1,
    trigger: int = 0,
    on_trigger: int = 0,
    flags: int = 0,
    group: int = 0,
    direction: int = 0,
    ep_ref: int = 0,
    data: Sequence[int] = (0,) * 10,
    x: int = 0, y: int = 0, z: int = 0,
    next_ep: int = 0,
) -> bytes:
    """Build the fixed part of an EventPoint."""
    return struct.pack(
        '<BBBBBBBBHHH10iiiiiHH',
        3, group, waypoint, used, trigger, on_trigger, direction, flags,
        ep_ref, 0, 0,
        *data,
        256, x, y, z, next_ep, 0,
    )


def build_mission(
    version: int,
    event_points: Dict[int, bytes],
    extras: bytes = b'',
    trailer: bytes = b'',
) -> bytes:
    """Build a mission file, with the given EventPoints and extras section."""
    eps = [bytes(74)] * 512
    for index, raw in event_points.items():
        eps[index - 1] = raw
    zones = bytearray(128 * 128)
    zones[5 * 128 + 9] = 0x81
    return b''.join([
        struct.pack('<II', version, 3),
        *[name.ljust(260, b'\0') for name in NAMES],
        struct.pack('<HHHBB', 7, 6, 2, 40, 12),
        *eps,
        bytes(range(254)),
        bytes([5, 3, 1]),
        extras,
        zones,
        trailer,
    ])


def sample_v10() -> bytes:
    """A current mission, with each kind of extra data."""
    return build_mission(10, {
        2: build_ep(12, data=[30, 5, 0xFFFF, 0, 0, 0, 0, 0, 0, 0], x=4096, z=8192),
        3: build_ep(1, trigger=12, ep_ref=2, next_ep=4),
        4: build_ep(19, trigger=18),
        5: build_ep(15),
        6: build_ep(15),
        7: build_ep(12, used=0),
    }, b''.join([
        b'\x01\x06\0\0\0Hello\0',
        b'\x01\x05\0\0\0open\0',
        b'\x01\x04\0\0\0Hey\0', b'\x01\x04\0\0\0you\0',
        b'\x02' + CUTSCENE,
        b'\0',
    ]), trailer=b'extra')


def test_struct_sizes() -> None:
    """Check the record sizes match the game."""
    assert EventPoint.ST.size == 74
    assert mission.HEADER_SIZE == 1316


def test_parse() -> None:
    """Test parsing the header and EventPoints."""
    miss = mission.parse(sample_v10())
    assert miss.version == 10
    assert miss.flags == MissionFlags.USED | MissionFlags.SHOW_CRIME_RATE
    assert miss.brief_name == 'Data\\brief.txt'
    assert miss.light_map_name == 'Data\\Lighting\\gang.lgt'
    assert miss.map_name == 'Data\\gang.iam'
    assert miss.mission_name == 'Gang Order'
    assert miss.citsez_map_name == ''
    assert miss.map_index == 7
    assert miss.free_epoints == 6
    assert miss.used_epoints == 2
    assert miss.crime_rate == 40
    assert miss.civs_rate == 12
    assert miss.skill_levels == bytes(range(254))
    assert (miss.boredom_rate, miss.cars_rate, miss.music_world) == (5, 3, 1)
    assert miss.zone(5, 9) == ZoneFlags.INSIDE | ZoneFlags.NO_GO
    assert miss.trailer == b'extra'

    assert [ep.index for ep in miss.used_event_points] == [2, 3, 4, 5, 6]
    message = miss[2]
    assert message.waypoint_type is WaypointType.MESSAGE
    assert message.colour == 3
    assert message.radius == 256
    assert message.data == [30, 5, 0xFFFF, 0, 0, 0, 0, 0, 0, 0]
    assert message.extra_text == 'Hello'
    assert message.trigger_text is None

    assert miss[3].triggered_by is TriggerType.SHOUT_ALL
    assert miss[3].trigger_text == 'open'
    assert miss[3].extra_text is None
    assert miss[4].extra_text == 'Hey'
    assert miss[4].trigger_text == 'you'

    assert miss[5].cutscene_code == 2
    assert miss[5].cutscene == Cutscene(2, [Channel(ChannelType.SOUND, 2)])
    assert miss[6].cutscene_code == 0
    assert miss[6].cutscene is None
    # Unused EventPoints have no extra data, even if their type needs it.
    assert miss[7].waypoint_type is WaypointType.MESSAGE
    assert not miss[7].used
    assert miss[7].extra_text is None


def test_round_trip() -> None:
    """Unchanged missions export identically."""
    data = sample_v10()
    assert mission.parse(data).export() == data


@pytest.mark.parametrize('version, text_block', [
    (8, b'\x01\x06\0\0\0Hello\0'),
    (6, b'\x05\0\0\0Hello'),
    (5, b'\x0A\0\0\0Hello\0\0\0\0\0'),
    (4, b'Hello'.ljust(260, b'\0')),
])
def test_old_versions(version: int, text_block: bytes) -> None:
    """Older versions store text differently, and cutscenes only exist from version 8."""
    data = build_mission(version, {
        2: build_ep(12),
        3: build_ep(15),
    }, text_block + (b'\x02' + CUTSCENE if version >= 8 else b''))
    miss = mission.parse(data)
    assert miss.version == version
    assert miss[2].extra_text == 'Hello'
    assert miss[3].cutscene == (Cutscene(2, [Channel(ChannelType.SOUND, 2)]) if version >= 8 else None)
    assert miss.export() == data


def test_edited_text() -> None:
    """Changed text is written in the format for the version."""
    miss = mission.parse(sample_v10())
    miss[2].extra_text = 'Bye'
    miss[3].trigger_text = None
    result = miss.export()
    assert b'\x01\x04\0\0\0Bye\0\x01\x01\0\0\0\0\x01\x04\0\0\0Hey\0' in result

    reparsed = mission.parse(result)
    assert reparsed[2].extra_text == 'Bye'
    # Cleared text is written as an empty string.
    assert reparsed[3].trigger_text == ''
    assert reparsed[4].extra_text == 'Hey'


@pytest.mark.parametrize('version, original, block', [
    (6, b'\x03\0\0\0abc', b'\x04\0\0\0Bye\0'),
    (4, b'abc'.ljust(260, b'\0'), b'Bye'.ljust(260, b'\0')),
])
def test_edited_text_old(version: int, original: bytes, block: bytes) -> None:
    """Text edits in older versions."""
    data = build_mission(version, {2: build_ep(12)}, original)
    miss = mission.parse(data)
    assert miss[2].extra_text == 'abc'
    miss[2].extra_text = 'Bye'
    assert miss.export() == build_mission(version, {2: build_ep(12)}, block)


def test_text_too_long() -> None:
    """Old fixed-size text fields cannot overflow."""
    miss = mission.parse(build_mission(4, {2: build_ep(12)}, bytes(260)))
    miss[2].extra_text = 'x' * 300
    with pytest.raises(ValueError):
        miss.export()


def test_edited_cutscene() -> None:
    """Changing or removing the cutscene rewrites the block."""
    miss = mission.parse(sample_v10())
    scene = miss[5].cutscene
    assert scene is not None
    scene.channels.append(Channel(ChannelType.CAMERA))
    result = miss.export()
    assert mission.parse(result)[5].cutscene == Cutscene(2, [
        Channel(ChannelType.SOUND, 2),
        Channel(ChannelType.CAMERA),
    ])

    miss[5].cutscene = None
    result = miss.export()
    extras_end = len(result) - len(b'extra') - 128 * 128
    assert result[extras_end - 11: extras_end] == b'\x01\x04\0\0\0you\0\0\0'
    assert mission.parse(result)[5].cutscene is None

    miss[6].cutscene = Cutscene()
    reparsed = mission.parse(miss.export())
    assert reparsed[6].cutscene == Cutscene()
    assert reparsed[6].cutscene_code == 2


def test_renamed() -> None:
    """Names are rewritten only when changed."""
    miss = mission.parse(sample_v10())
    miss.mission_name = 'Renamed'
    result = miss.export()
    # The junk in the unchanged field is kept.
    assert b'Data\\gang.iam\0leftover junk' in result
    assert b'Renamed'.ljust(260, b'\0') in result
    assert mission.parse(result).mission_name == 'Renamed'

    miss.map_name = 'Data\\other.iam'
    assert b'leftover junk' not in miss.export()


def test_unsupported_version() -> None:
    """Newer versions cannot be read or written."""
    with pytest.raises(UnsupportedVersion) as exc:
        mission.parse(build_mission(11, {}))
    assert exc.value.version == 11
    assert exc.value.maximum == 10

    miss = Mission.new()
    miss.version = 12
    with pytest.raises(UnsupportedVersion):
        miss.export()


@pytest.mark.parametrize('size', [0, 4, 1316, 1316 + 512 * 74 + 256])
def test_too_small(size: int) -> None:
    """Missions missing fixed sections are rejected."""
    with pytest.raises(BufferTooSmall):
        mission.parse(sample_v10()[:size])


def test_truncated_extras() -> None:
    """Missions ending partway through the variable data are rejected."""
    data = sample_v10()
    extras = 1316 + 512 * 74 + 257
    with pytest.raises(MalformedRegion, match='EventPoint 2 extras'):
        mission.parse(data[:extras + 4])
    with pytest.raises(MalformedRegion, match='EventPoint 5 extras'):
        mission.parse(data[:extras + 45])
    with pytest.raises(MalformedRegion):  # The zones.
        mission.parse(data[:-1000])


def test_bad_values() -> None:
    """Unknown waypoint and trigger types are rejected."""
    with pytest.raises(MalformedRegion, match='EventPoint 9'):
        mission.parse(build_mission(10, {9: build_ep(200)}))
    with pytest.raises(MalformedRegion, match='EventPoint 3'):
        mission.parse(build_mission(10, {3: build_ep(1, trigger=100)}))


def test_unused_leftover_values() -> None:
    """Unused slots may hold invalid types, which are kept as integers."""
    data = build_mission(10, {9: build_ep(99, used=0, trigger=100, on_trigger=9)})
    miss = mission.parse(data)
    ep = miss[9]
    assert not ep.used
    assert ep.waypoint_type == 99
    assert ep.triggered_by == 100
    assert ep.on_trigger == 9
    assert ep.category is WaypointCategory.MISC
    assert miss.export() == data

    # These can't be placed until the types are fixed.
    with pytest.raises(ValueError):
        Mission.new().add_event_point(ep)
    ep.waypoint_type = WaypointType.SIMPLE
    ep.triggered_by = 0
    ep.on_trigger = OnTrigger.NONE
    fresh = Mission.new()
    assert fresh.add_event_point(ep) == 2
    assert ep.triggered_by is TriggerType.NONE


def test_used_byte() -> None:
    """Other non-zero values in the used byte are kept."""
    data = build_mission(10, {2: build_ep(12, used=2)}, b'\x01\x03\0\0\0Hi\0')
    miss = mission.parse(data)
    assert miss[2].used
    assert miss[2].extra_text == 'Hi'
    assert miss.export() == data

    miss.delete_event_point(2)
    assert mission.parse(miss.export())[2].used is False


def test_read_info() -> None:
    """Test the quick header summary."""
    info = mission.read_info(sample_v10())
    assert info == mission.MissionInfo(
        10, MissionFlags.USED | MissionFlags.SHOW_CRIME_RATE,
        'Data\\brief.txt', 'Data\\Lighting\\gang.lgt', 'Data\\gang.iam', 'Gang Order', '',
        7, 40, 12, 5,
    )
    with pytest.raises(BufferTooSmall):
        mission.read_info(bytes(2000))


def test_new() -> None:
    """Test the blank mission."""
    miss = Mission.new()
    data = miss.export()
    assert len(data) == 1316 + 512 * 74 + 257 + 128 * 128
    reparsed = mission.parse(data)
    assert reparsed.version == mission.CURRENT_VERSION
    assert reparsed.flags == MissionFlags.USED
    assert reparsed.light_map_name == 'Data\\Lighting\\newmap.lgt'
    assert reparsed.map_name == 'Data\\newmap.iam'
    assert reparsed.mission_name == 'newmission'
    assert reparsed.free_epoints == 1
    assert (reparsed.crime_rate, reparsed.civs_rate) == (4, 4)
    assert (reparsed.boredom_rate, reparsed.cars_rate) == (4, 2)
    assert reparsed.used_event_points == []


def test_indexing() -> None:
    """EventPoints are indexed from 1."""
    miss = Mission.new()
    assert miss[1].index == 1
    assert miss[512].index == 512
    for index in [0, 513, -1]:
        with pytest.raises(IndexOutOfRange):
            miss[index]


def test_add_event_point() -> None:
    """Adding fills the first free slot, skipping the first."""
    miss = Mission.new()
    assert miss.find_free_slot() == 2
    ep = EventPoint(0, WaypointType.CREATE_PLAYER, x=100, next=8)
    assert miss.add_event_point(ep) == 2
    assert miss[2] is ep
    assert ep.used
    assert ep.index == 2
    assert ep.next == 0
    assert miss.add_event_point(EventPoint(0, WaypointType.SIMPLE)) == 3
    assert miss.find_free_slot() == 4

    # Freed slots are reused.
    miss.delete_event_point(2)
    assert miss.find_free_slot() == 2

    reparsed = mission.parse(miss.export())
    assert reparsed[3].waypoint_type is WaypointType.SIMPLE
    assert reparsed[3].used


def test_full() -> None:
    """The table has a fixed size."""
    miss = Mission.new()
    for _ in range(511):
        miss.add_event_point(EventPoint(0, WaypointType.SIMPLE))
    assert miss.find_free_slot() is None
    with pytest.raises(CapacityExceeded):
        miss.add_event_point(EventPoint(0, WaypointType.SIMPLE))


def test_references() -> None:
    """EventPoints cannot be deleted while they're referenced."""
    miss = Mission.new()
    target = miss.add_event_point(EventPoint(0, WaypointType.CREATE_ENEMIES))
    by_ref = miss.add_event_point(EventPoint(0, WaypointType.SIMPLE, ep_ref=target))
    talk = miss.add_event_point(EventPoint(
        0, WaypointType.CONVERSATION, data=[0, 8, target, 0, 0, 0, 0, 0, 0, 0],
    ))
    miss.add_event_point(EventPoint(
        0, WaypointType.MESSAGE, data=[0, 0, 0xFFFF, 0, 0, 0, 0, 0, 0, 0],
    ))
    # Data values only count for the types which use them.
    miss.add_event_point(EventPoint(
        0, WaypointType.CREATE_ITEM, data=[target] * 10,
    ))
    unused = EventPoint(20, WaypointType.SIMPLE, ep_ref=target)
    miss.event_points[19] = unused

    assert [ep.index for ep in miss.references_to(target)] == [by_ref, talk]
    with pytest.raises(ValueError, match=f'still referenced by {by_ref}, {talk}'):
        miss.delete_event_point(target)
    assert miss[target].used

    miss.delete_event_point(by_ref)
    miss.delete_event_point(talk)
    miss.delete_event_point(target)
    assert not miss[target].used
    assert miss[target].waypoint_type is WaypointType.NONE
    assert miss[target].index == target


@pytest.mark.parametrize('waypoint, slot', [
    (WaypointType.ADJUST_ENEMY, 6),
    (WaypointType.MOVE_THING, 0),
    (WaypointType.KILL_WAYPOINT, 0),
    (WaypointType.CREATE_VEHICLE, 2),
    (WaypointType.MESSAGE, 2),
    (WaypointType.CONVERSATION, 1),
])
def test_data_references(waypoint: WaypointType, slot: int) -> None:
    """Test each data value which refers to another EventPoint."""
    miss = Mission.new()
    data = [0] * 10
    data[slot] = 7
    miss.add_event_point(EventPoint(0, waypoint, data=data))
    assert [ep.index for ep in miss.references_to(7)] == [2]
    assert miss.references_to(8) == []


def test_zones() -> None:
    """Zones are stored X-major."""
    miss = Mission.new()
    miss.set_zone(3, 5, ZoneFlags.INSIDE | ZoneFlags.NO_GO)
    assert miss.zones[3 * 128 + 5] == 0x81
    assert miss.zone(3, 5) == ZoneFlags.INSIDE | ZoneFlags.NO_GO
    assert miss.zone(5, 3) == ZoneFlags.NONE
    with pytest.raises(IndexOutOfRange):
        miss.zone(128, 0)
    with pytest.raises(IndexOutOfRange):
        miss.set_zone(0, -1, ZoneFlags.REVERB)


def test_event_point_properties() -> None:
    """Test the derived values."""
    ep = EventPoint(
        4, WaypointType.CREATE_ENEMIES, True,
        x=4096, z=8192, group=2, direction=64,
        flags=WaypointFlags.SUCKS | WaypointFlags.INSIDE,
    )
    assert ep.map_x == 111
    assert ep.map_z == 95
    assert ep.pixel == (7168, 6144)
    assert ep.direction_degrees == pytest.approx(90.35, abs=0.01)
    assert ep.group_letter == 'C'
    assert ep.category is WaypointCategory.ENEMIES
    assert not ep.is_valid
    assert EventPoint(1, group=40).group_letter == 'Z'
    assert EventPoint(1).is_valid


def test_extra_text_flags() -> None:
    """Only used EventPoints of the right type have text."""
    assert EventPoint(1, WaypointType.MESSAGE, True).has_text
    assert not EventPoint(1, WaypointType.MESSAGE, False).has_text
    assert not EventPoint(1, WaypointType.SIMPLE, True).has_text
    assert EventPoint(1, used=True, triggered_by=TriggerType.SHOUT_ANY).has_trigger_text
    assert not EventPoint(1, used=True, triggered_by=TriggerType.RADIUS).has_trigger_text


def test_export_binary() -> None:
    """Test writing the fixed part of an EventPoint."""
    raw = build_ep(
        12, trigger=2, on_trigger=3, flags=4, group=1, direction=9, ep_ref=5,
        data=range(10), x=-5, y=6, z=7, next_ep=3,
    )
    ep = EventPoint.parse_binary(b'ab' + raw, 2, 8)
    assert ep.index == 8
    assert ep.triggered_by is TriggerType.RADIUS
    assert ep.on_trigger is OnTrigger.ACTIVE_TIME
    assert ep.flags == WaypointFlags.INSIDE
    assert ep.x == -5
    assert ep.export_binary() == raw

    ep.data.append(1)
    with pytest.raises(ValueError):
        ep.export_binary()
