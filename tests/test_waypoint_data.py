"""Test named access to EventPoint data."""
import attrs
import pytest

from ucedit import waypoint_data
from ucedit.const import WaypointType
from ucedit.mission import EventPoint
from ucedit.waypoint_data import (
    BombFX, DataLayout, EnemyBehaviour, EnemyCombat, EnemyHas, Field, SignFlip,
)


def test_full_slot() -> None:
    """Full slots are signed 32-bit values."""
    field = Field('value', 3)
    data = [0] * 10
    field.set(data, -5)
    assert data == [0, 0, 0, -5, 0, 0, 0, 0, 0, 0]
    assert field.get(data) == -5
    field.set(data, 0xFFFF_FFFF)
    assert data[3] == -1

    for bad in [1 << 32, -(1 << 31) - 1]:
        with pytest.raises(ValueError, match='32 bits'):
            field.set(data, bad)


def test_half_slots() -> None:
    """Slots can hold two 16-bit values, which don't affect each other."""
    low = Field('low', 0, width=16)
    high = Field('high', 0, shift=16, width=16)
    data = [0] * 10
    high.set(data, 0xFFFF)
    low.set(data, 0x1234)
    assert data[0] == -0xEDCC  # 0xFFFF1234 as signed.
    assert high.get(data) == 0xFFFF
    assert low.get(data) == 0x1234

    low.set(data, 0)
    assert high.get(data) == 0xFFFF
    high.set(data, 2)
    assert data[0] == 0x0002_0000

    with pytest.raises(ValueError, match='16 bits'):
        low.set(data, 0x10000)
    with pytest.raises(ValueError, match='16 bits'):
        high.set(data, -1)


def test_bad_slot() -> None:
    """There are only ten slots."""
    with pytest.raises(ValueError):
        Field('value', 10)
    with pytest.raises(ValueError):
        Field('value', -1)


def test_limits() -> None:
    """Values are restricted to the range the editor allows."""
    field = Field('count', 1, limits=(1, 99))
    data = [0] * 10
    field.set(data, 99)
    assert field.get(data) == 99
    for bad in [0, 100]:
        with pytest.raises(ValueError, match='range 1-99'):
            field.set(data, bad)
    assert data[1] == 99


def test_flag_fields() -> None:
    """Flag fields are converted to their enum."""
    field = Field('effects', 2, flag_type=BombFX)
    data = [0, 0, 0b101, 0, 0, 0, 0, 0, 0, 0]
    value = field.get(data)
    assert isinstance(value, BombFX)
    assert value == BombFX.FLARE | BombFX.SHOCKWAVE
    field.set(data, BombFX.SMOKE_TRAILS)
    assert data[2] == 8


def test_layout() -> None:
    """Test looking up fields by name."""
    layout = DataLayout.of(Field('a', 0), Field('b', 1))
    assert 'a' in layout
    assert 'c' not in layout
    assert layout['b'] == Field('b', 1)
    with pytest.raises(KeyError):
        layout['c']
    with pytest.raises(ValueError, match='Duplicate'):
        DataLayout.of(Field('a', 0), Field('a', 1))


def test_layouts_valid() -> None:
    """Fields in a layout must not overlap."""
    for waypoint, layout in waypoint_data.LAYOUTS.items():
        used = [0] * 10
        for field in layout.fields:
            bits = field.mask << field.shift
            assert used[field.slot] & bits == 0, (waypoint, field.name)
            used[field.slot] |= bits


def test_empty_layout() -> None:
    """Waypoint types without data have no fields."""
    ep = EventPoint(1, WaypointType.END_GAME_WIN, True)
    assert waypoint_data.layout_for(WaypointType.END_GAME_WIN).fields == ()
    assert waypoint_data.read_fields(ep) == {}
    with pytest.raises(KeyError, match='END_GAME_WIN waypoints have no "delay" data'):
        waypoint_data.write_field(ep, 'delay', 5)


def test_enemies() -> None:
    """Test the packed enemy fields."""
    ep = EventPoint(1, WaypointType.CREATE_ENEMIES, True)
    waypoint_data.write_field(ep, 'enemy_type', 7)
    waypoint_data.write_field(ep, 'count', 3)
    waypoint_data.write_field(ep, 'health', 200)
    waypoint_data.write_field(ep, 'has', EnemyHas.PISTOL | EnemyHas.KNIFE)
    waypoint_data.write_field(ep, 'behaviour', EnemyBehaviour.GANG | EnemyBehaviour.CAN_CARRY)
    waypoint_data.write_field(ep, 'combat', EnemyCombat.GRAPPLE)
    assert ep.data == [
        0x0003_0007, 0, 0x0021_00C8, 0, 0x8004,
        0, 0, 0x0010_0000, 0, 0,
    ]
    fields = waypoint_data.read_fields(ep)
    assert fields['enemy_type'] == 7
    assert fields['count'] == 3
    assert fields['health'] == 200
    assert fields['has'] == EnemyHas.PISTOL | EnemyHas.KNIFE
    assert fields['behaviour'] == EnemyBehaviour.GANG | EnemyBehaviour.CAN_CARRY
    assert fields['combat'] == EnemyCombat.GRAPPLE
    assert 'enemy_to_change' not in fields

    assert 'enemy_to_change' in waypoint_data.layout_for(WaypointType.ADJUST_ENEMY)
    with pytest.raises(KeyError):
        waypoint_data.write_field(ep, 'enemy_to_change', 2)


@pytest.mark.parametrize('stored, expected', [
    (-1, 0xFFFF_FFFF),
    (0x8000_0004 - (1 << 32), 0x8000_0004),
])
def test_flags_high_bit(stored: int, expected: int) -> None:
    """Flags in a whole slot read as unsigned, and keep unknown bits when written back."""
    ep = EventPoint(1, WaypointType.CREATE_ENEMIES, True)
    ep.data[4] = stored
    behaviour = waypoint_data.read_fields(ep)['behaviour']
    assert isinstance(behaviour, EnemyBehaviour)
    assert behaviour == expected
    assert EnemyBehaviour.GANG in behaviour
    waypoint_data.write_field(ep, 'behaviour', behaviour)
    assert ep.data[4] == stored


def test_enemy_flags() -> None:
    """Only the low half of the flags slot is used."""
    ep = EventPoint(1, WaypointType.ENEMY_FLAGS, True, data=[4, 0x7FFF_0000, 0, 0, 0, 0, 0, 0, 0, 0])
    waypoint_data.write_field(ep, 'flags', EnemyBehaviour.LAZY | EnemyBehaviour.GUILTY)
    assert ep.data[1] == 0x7FFF_2001
    assert waypoint_data.read_fields(ep) == {
        'target': 4,
        'flags': EnemyBehaviour.LAZY | EnemyBehaviour.GUILTY,
    }


@pytest.mark.parametrize('waypoint, name, low, high', [
    (WaypointType.CREATE_ITEM, 'count', 1, 99),
    (WaypointType.INCREMENT, 'amount', 0, 256),
    (WaypointType.INCREMENT, 'counter', 1, 10),
    (WaypointType.RESET_COUNTER, 'counter', 0, 9),
    (WaypointType.SIGN, 'sign_type', 0, 3),
    (WaypointType.SPOT_EFFECT, 'scale', 0, 1024),
    (WaypointType.KILL_WAYPOINT, 'target', 1, 511),
    (WaypointType.TRANSFER_PLAYER, 'target', 1, 2048),
    (WaypointType.LOCK_VEHICLE, 'vehicle', 1, 2048),
    (WaypointType.STALL_CAR, 'vehicle', 1, 2048),
    (WaypointType.MOVE_THING, 'waypoint', 1, 2048),
    (WaypointType.DYNAMIC_LIGHT, 'speed', 1, 32),
    (WaypointType.DYNAMIC_LIGHT, 'steps', 1, 32),
    (WaypointType.CREATE_TRAP, 'range', 1, 32),
])
def test_layout_limits(waypoint: WaypointType, name: str, low: int, high: int) -> None:
    """Check the ranges enforced for specific fields."""
    ep = EventPoint(1, waypoint, True)
    waypoint_data.write_field(ep, name, low)
    waypoint_data.write_field(ep, name, high)
    assert waypoint_data.read_fields(ep)[name] == high
    with pytest.raises(ValueError):
        waypoint_data.write_field(ep, name, high + 1)
    with pytest.raises(ValueError):
        waypoint_data.write_field(ep, name, low - 1)


def test_message_speakers() -> None:
    """Messages may come from special speakers rather than an EventPoint."""
    ep = EventPoint(1, WaypointType.MESSAGE, True)
    waypoint_data.write_field(ep, 'who', waypoint_data.MESSAGE_FROM_PLACE)
    waypoint_data.write_field(ep, 'time', 30)
    assert ep.data[:3] == [0, 30, 0xFFFF]
    assert waypoint_data.read_fields(ep) == {'time': 30, 'who': 0xFFFF}


def test_sign_flip() -> None:
    ep = EventPoint(1, WaypointType.SIGN, True, data=[2, 3, 0, 0, 0, 0, 0, 0, 0, 0])
    assert waypoint_data.read_fields(ep) == {
        'sign_type': 2,
        'flip': SignFlip.LEFT_RIGHT | SignFlip.TOP_BOTTOM,
    }


def test_fields_frozen() -> None:
    """Shared layouts cannot be modified."""
    field = waypoint_data.layout_for(WaypointType.SIMPLE)['delay']
    with pytest.raises(attrs.exceptions.FrozenInstanceError):
        field.slot = 2  # type: ignore[misc]
