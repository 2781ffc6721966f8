"""Reads and writes cutscene scripts, stored inside mission files.

A cutscene is a set of channels (tracks), each with a list of packets (keyframes)
placed on a timeline. The data is a direct dump of the game's structures, so each
channel header still contains a pointer from the game's memory. That is ignored on
read and written as zero.

Text packets reuse their X position as a flag. If it is non-zero, a length-prefixed
string follows the packet.
"""
from typing import IO, ClassVar, Final, List, Optional
from struct import Struct
import enum
import io
import struct

from typing_extensions import Self
import attrs

from ucedit import MalformedRegion
from ucedit.binformat import ENCODING, read_exact, struct_read
from ucedit.types import FileWBinary


__all__ = [
    'ChannelType', 'PacketType', 'PacketFlags',
    'Packet', 'Channel', 'Cutscene',
    'CURRENT_VERSION', 'V1_CAMERA_LENGTH',
]

CURRENT_VERSION: Final = 2
#: Version 1 stored no lens or fade for cameras, this is the default.
V1_CAMERA_LENGTH: Final = 0xFF7F
TEXT_SANITY_LIMIT: Final = 65_536
CAMERA_DISPLAY_LENGTH: Final = 10
MAX_DISPLAY_LENGTH: Final = 1000


class ChannelType(enum.IntEnum):
    """The kind of thing a channel controls."""
    UNUSED = 0
    CHARACTER = 1
    CAMERA = 2
    SOUND = 3
    VISUAL_FX = 4
    SUBTITLES = 5


class PacketType(enum.IntEnum):
    """The kind of keyframe."""
    UNUSED = 0
    ANIMATION = 1
    ACTION = 2
    SOUND = 3
    CAMERA = 4
    TEXT = 5


class PacketFlags(enum.IntFlag):
    """Playback options for a packet."""
    NONE = 0
    #: Play animations backwards. For cameras, this is "securicam" mode instead.
    BACKWARDS = 1
    INTERPOLATE_MOVE = 2
    SMOOTH_MOVE_IN = 4
    SMOOTH_MOVE_OUT = 8
    INTERPOLATE_ROT = 16
    SMOOTH_ROT_IN = 32
    SMOOTH_ROT_OUT = 64
    SLOW_MOTION = 128

    SMOOTH_MOVE_BOTH = SMOOTH_MOVE_IN | SMOOTH_MOVE_OUT
    SMOOTH_ROT_BOTH = SMOOTH_ROT_IN | SMOOTH_ROT_OUT


def _decode_text(raw: bytes) -> Optional[str]:
    """Decode the length-prefixed text following a packet."""
    [text_len] = struct.unpack_from('<i', raw, 0)
    if 0 < text_len < TEXT_SANITY_LIMIT:
        return raw[4:4 + text_len].decode(ENCODING).rstrip('\0')
    return None


@attrs.define
class Packet:
    """A keyframe on a channel's timeline."""
    ST: ClassVar[Struct] = Struct('<BBHHHiiiHH')

    type: PacketType
    start: int  #: Frame the packet begins on.
    #: Duration. Camera packets store the lens in the low byte and the fade in the high byte.
    length: int = 0
    flags: PacketFlags = attrs.field(default=PacketFlags.NONE, kw_only=True)
    #: The animation, sound etc to use.
    index: int = attrs.field(default=0, kw_only=True)
    x: int = attrs.field(default=0, kw_only=True)
    y: int = attrs.field(default=0, kw_only=True)
    z: int = attrs.field(default=0, kw_only=True)
    angle: int = attrs.field(default=0, kw_only=True)
    pitch: int = attrs.field(default=0, kw_only=True)
    #: Subtitle text, only for text packets.
    text: Optional[str] = attrs.field(default=None, kw_only=True)
    # The stored length and text, and the stored value of the text flag, reused while
    # the text is unchanged.
    _raw_text: Optional[bytes] = attrs.field(default=None, kw_only=True, eq=False, repr=False)
    _text_flag: int = attrs.field(default=1, kw_only=True, eq=False, repr=False)

    @classmethod
    def parse(cls, file: IO[bytes]) -> Self:
        """Read a packet, and the text which follows it if present."""
        (
            typ, flags, index, start, length,
            x, y, z, angle, pitch,
        ) = struct_read(cls.ST, file)
        try:
            typ = PacketType(typ)
        except ValueError:
            raise MalformedRegion(f'Unknown cutscene packet type {typ}!') from None

        text: Optional[str] = None
        raw_text: Optional[bytes] = None
        text_flag = 1
        if typ is PacketType.TEXT and x != 0:
            # Used purely as a flag, not a real position.
            text_flag, x = x, 0
            len_bytes = read_exact(file, 4)
            [text_len] = struct.unpack('<i', len_bytes)
            if 0 < text_len < TEXT_SANITY_LIMIT:
                raw_text = len_bytes + read_exact(file, text_len)
            else:
                raw_text = len_bytes
            text = _decode_text(raw_text)
        return cls(
            typ, start, length,
            flags=PacketFlags(flags), index=index,
            x=x, y=y, z=z, angle=angle, pitch=pitch,
            text=text, raw_text=raw_text, text_flag=text_flag,
        )

    def _text_payload(self) -> Optional[bytes]:
        """Build the data following the packet, or None if there is no text."""
        if self.type is not PacketType.TEXT:
            return None
        if self._raw_text is not None and _decode_text(self._raw_text) == self.text:
            return self._raw_text
        if self.text:
            encoded = self.text.encode(ENCODING)
            return struct.pack('<i', len(encoded)) + encoded
        return None

    def export(self, file: FileWBinary) -> None:
        """Write the packet, and its text."""
        payload = self._text_payload()
        if payload is None:
            x = self.x
        elif payload is self._raw_text:
            x = self._text_flag
        else:
            x = 1
        file.write(self.ST.pack(
            self.type.value, self.flags.value, self.index,
            self.start, self.length,
            x, self.y, self.z,
            self.angle, self.pitch,
        ))
        if payload is not None:
            file.write(payload)

    @property
    def camera_lens(self) -> int:
        """For cameras, the lens zoom."""
        return self.length & 0xFF

    @camera_lens.setter
    def camera_lens(self, value: int) -> None:
        self.length = (self.length & 0xFF00) | (value & 0xFF)

    @property
    def camera_fade(self) -> int:
        """For cameras, the fade amount."""
        return (self.length >> 8) & 0xFF

    @camera_fade.setter
    def camera_fade(self, value: int) -> None:
        self.length = (self.length & 0x00FF) | ((value & 0xFF) << 8)

    @property
    def effective_length(self) -> int:
        """The length to show on a timeline.

        Camera packets use the length for other data, so they get a fixed width.
        """
        if self.type is PacketType.CAMERA:
            return CAMERA_DISPLAY_LENGTH
        return min(self.length, MAX_DISPLAY_LENGTH)

    @property
    def end(self) -> int:
        return self.start + self.effective_length

    @property
    def position_interpolation(self) -> str:
        """Describe how the position is interpolated."""
        if PacketFlags.INTERPOLATE_MOVE not in self.flags:
            return 'Snap'
        smooth_in = PacketFlags.SMOOTH_MOVE_IN in self.flags
        smooth_out = PacketFlags.SMOOTH_MOVE_OUT in self.flags
        if smooth_in and smooth_out:
            return 'Smooth Both'
        elif smooth_in:
            return 'Smooth In'
        elif smooth_out:
            return 'Smooth Out'
        return 'Linear'


@attrs.define
class Channel:
    """A track in the cutscene."""
    ST: ClassVar[Struct] = Struct('<BBBBHHi')

    type: ChannelType
    #: For characters, the person type. For sounds and effects, which one to use.
    index: int = 0
    flags: int = attrs.field(default=0, kw_only=True)
    packets: List[Packet] = attrs.Factory(list)

    @classmethod
    def parse(cls, file: IO[bytes]) -> Self:
        typ, flags, _pad1, _pad2, index, packet_count, _pointer = struct_read(cls.ST, file)
        try:
            typ = ChannelType(typ)
        except ValueError:
            raise MalformedRegion(f'Unknown cutscene channel type {typ}!') from None
        return cls(
            typ, index, flags=flags,
            packets=[Packet.parse(file) for _ in range(packet_count)],
        )

    def export(self, file: FileWBinary) -> None:
        file.write(self.ST.pack(
            self.type.value, self.flags, 0, 0,
            self.index, len(self.packets), 0,
        ))
        for packet in self.packets:
            packet.export(file)

    def packet_at(self, time: int) -> Optional[Packet]:
        """Return the packet starting exactly at this frame, if any."""
        for packet in self.packets:
            if packet.start == time:
                return packet
        return None

    def packet_containing(self, time: int) -> Optional[Packet]:
        """Return the first packet running over this frame, if any."""
        for packet in self.packets:
            if packet.start <= time < packet.end:
                return packet
        return None


@attrs.define
class Cutscene:
    """A full cutscene script."""
    version: int = CURRENT_VERSION
    channels: List[Channel] = attrs.Factory(list)

    @classmethod
    def parse(cls, file: IO[bytes]) -> Self:
        """Read a cutscene from the file."""
        version, channel_count = struct_read('<BB', file)
        return cls(version, [Channel.parse(file) for _ in range(channel_count)])

    @classmethod
    def parse_bytes(cls, data: bytes) -> Self:
        return cls.parse(io.BytesIO(data))

    def export(self, file: FileWBinary) -> None:
        """Write the cutscene to the file."""
        if len(self.channels) > 255:
            raise ValueError(f'Cutscenes can have at most 255 channels, not {len(self.channels)}!')
        file.write(struct.pack('<BB', self.version, len(self.channels)))
        for channel in self.channels:
            channel.export(file)

    def export_bytes(self) -> bytes:
        buf = io.BytesIO()
        self.export(buf)
        return buf.getvalue()

    @property
    def duration(self) -> int:
        """The last frame any packet runs to."""
        return max(
            (packet.end for channel in self.channels for packet in channel.packets),
            default=0,
        )

    def upgrade(self) -> None:
        """Convert an old version 1 cutscene to the current version.

        Version 1 had no camera lens or fade, so those packets get the default.
        """
        if self.version == 1:
            for channel in self.channels:
                for packet in channel.packets:
                    if packet.type is PacketType.CAMERA:
                        packet.length = V1_CAMERA_LENGTH
        self.version = CURRENT_VERSION
