"""Serial framing protocol spoken by the acquisition firmware.

The link carries three kinds of traffic:

* command frames ``0xFE, value (u32 LE), command id, channel``;
* binary transfers ``0xFF, channel, length (u16 LE), payload``;
* any other byte is plain text printed by the target.
"""

from __future__ import annotations

import enum
import struct
import sys
from dataclasses import dataclass
from typing import Any, Callable, Optional, TextIO, Union

COMMAND_START = 0xFE
BINARY_START = 0xFF
ALL_CAPABILITIES = 0xFFFFFFFF
CORE_CHANNEL = 0

_COMMAND_FORMAT = "<BIBB"


class Signal:
    """A minimal observer list: callbacks run in connection order on emit."""

    def __init__(self) -> None:
        self._callbacks: list[Callable[..., Any]] = []

    def connect(self, callback: Callable[..., Any]) -> None:
        self._callbacks.append(callback)

    def emit(self, *args: Any) -> None:
        for callback in list(self._callbacks):
            callback(*args)


class BinaryTransfer:
    """A binary payload addressed to one channel, filled as bytes arrive."""

    def __init__(self, channel: int) -> None:
        self.channel = channel
        self._buffer = bytearray()
        self._written = 0

    def allocate(self, size: int) -> None:
        """Reserve room for ``size`` payload bytes and restart filling."""
        if size < 0:
            raise ValueError("transfer size must not be negative")
        self._buffer = bytearray(size)
        self._written = 0

    def write(self, data: bytes) -> int:
        """Append as much of ``data`` as fits; return the number of bytes taken."""
        count = min(self.remaining_size(), len(data))
        self._buffer[self._written:self._written + count] = data[:count]
        self._written += count
        return count

    def remaining_size(self) -> int:
        return len(self._buffer) - self._written

    @property
    def size(self) -> int:
        return len(self._buffer)

    @property
    def data(self) -> bytes:
        return bytes(self._buffer)


@dataclass
class Command:
    """A command frame received from the target."""

    channel: int = 0
    command_id: int = 0
    value: int = 0


class Capability(enum.IntEnum):
    """Bit positions in the target's capability word."""

    OSCILLOSCOPE = 1
    PWM = 2
    VOLTMETER = 3
    PWM_IN = 4
    GENERATOR = 5


class DeviceDescription:
    """What the connected target has reported about itself."""

    def __init__(self) -> None:
        self.name = ""
        self.configuration_name = ""
        self.capabilities = ALL_CAPABILITIES
        self.supply_voltage = 0.0
        self.values_changed = Signal()

    def has_capability(self, cap: Union[Capability, int]) -> bool:
        return (self.capabilities & (1 << int(cap))) > 0

    def clear(self) -> None:
        self.name = ""
        self.configuration_name = ""
        self.supply_voltage = 0.0


class _State(enum.Enum):
    IDLE = enum.auto()
    BINARY_START = enum.auto()
    BINARY_LENGTH_1 = enum.auto()
    BINARY_LENGTH_2 = enum.auto()
    BINARY_DATA = enum.auto()
    COMMAND_VALUE = enum.auto()
    COMMAND_ID = enum.auto()
    COMMAND_CHANNEL = enum.auto()


@dataclass
class _CoreState:
    last_command: str = ""
    valid: bool = False


def _c_string(data: bytes) -> Optional[str]:
    """Decode a NUL-terminated string, or None when the terminator is missing."""
    if not data or data[-1] != 0:
        return None
    return data.split(b"\0", 1)[0].decode("utf-8", errors="replace")


class Protocol:
    """Decodes the byte stream from a target and sends commands to it.

    ``device`` is any object with ``read(size) -> bytes`` and
    ``write(data) -> int``; an ``in_waiting`` attribute, when present,
    tells how many bytes are ready to be read.
    """

    def __init__(self, buffer_size: int = 1024, console: Optional[TextIO] = None) -> None:
        if buffer_size <= 0:
            raise ValueError("buffer size must be positive")
        self.buffer_size = buffer_size
        self.console = console
        self.device_description = DeviceDescription()
        self.binary_received = Signal()
        self.command_received = Signal()
        self.device_reconnected = Signal()
        self.supply_voltage_value = Signal()

        self._device: Any = None
        self._state = _State.IDLE
        self._core = _CoreState()
        self._current_transfer: Optional[BinaryTransfer] = None
        self._last_command = Command()
        self._pending_value = 0
        self._pending_id = 0
        self._count = 0

    @property
    def last_command(self) -> Command:
        return self._last_command

    def is_connected(self) -> bool:
        return self._device is not None

    def set_device(self, device: Any) -> None:
        """Attach a new device (or None) and start querying its description."""
        self._device = device
        self._state = _State.IDLE
        self.device_description.capabilities = ALL_CAPABILITIES
        self.device_description.values_changed.emit()
        self.device_reconnected.emit()
        self._query("N")

    def next_device_configuration(self) -> None:
        """Ask the target to switch configuration, then re-read its description."""
        self.command("C", CORE_CHANNEL, 0)
        self.device_reconnected.emit()
        self._query("N")

    def process_data(self) -> None:
        """Read whatever the device has ready and decode it."""
        if self._device is None:
            return
        available = getattr(self._device, "in_waiting", self.buffer_size)
        while available > 0:
            chunk = self._device.read(self.buffer_size)
            if not chunk:
                break
            self.feed(chunk)
            available -= len(chunk)

    def command(self, cmd: Union[str, int], channel: int, value: int) -> None:
        """Send one command frame; does nothing when no device is attached."""
        if self._device is None:
            return
        cmd_id = ord(cmd) if isinstance(cmd, str) else int(cmd)
        frame = struct.pack(
            _COMMAND_FORMAT,
            COMMAND_START,
            int(value) & 0xFFFFFFFF,
            cmd_id & 0xFF,
            int(channel) & 0xFF,
        )
        sent = 0
        while sent < len(frame):
            written = self._device.write(frame[sent:])
            if written is None:
                written = len(frame) - sent
            if written <= 0:
                raise ConnectionError("device accepted no data")
            sent += written

    def pop_transfer(self, channel: int) -> Optional[BinaryTransfer]:
        """Return the latest transfer if it is addressed to ``channel``."""
        transfer = self._current_transfer
        if transfer is not None and transfer.channel == channel:
            return transfer
        return None

    def feed(self, data: bytes) -> None:
        """Decode a chunk of bytes received from the device."""
        data = bytes(data)
        end = len(data)
        pos = 0
        while pos < end:
            if self._state is _State.BINARY_DATA:
                pos = self._consume_payload(data, pos)
                continue
            byte = data[pos]
            pos += 1
            self._step(byte)

    def _consume_payload(self, data: bytes, pos: int) -> int:
        transfer = self._current_transfer
        assert transfer is not None
        length = transfer.remaining_size()
        if length > len(data) - pos:
            transfer.write(data[pos:])
            return len(data)
        transfer.write(data[pos:pos + length])
        if transfer.channel == CORE_CHANNEL:
            self._core_transfer(transfer)
        else:
            self.binary_received.emit()
        self._state = _State.IDLE
        return pos + length

    def _step(self, byte: int) -> None:
        state = self._state
        if state is _State.IDLE:
            if byte == BINARY_START:
                self._state = _State.BINARY_START
            elif byte == COMMAND_START:
                self._state = _State.COMMAND_VALUE
                self._count = 0
                self._pending_value = 0
            else:
                self._echo(byte)
        elif state is _State.COMMAND_VALUE:
            self._pending_value |= byte << (8 * self._count)
            self._count += 1
            if self._count == 4:
                self._state = _State.COMMAND_ID
        elif state is _State.COMMAND_ID:
            self._pending_id = byte
            self._state = _State.COMMAND_CHANNEL
        elif state is _State.COMMAND_CHANNEL:
            self._last_command = Command(byte, self._pending_id, self._pending_value)
            self._state = _State.IDLE
            self.command_received.emit()
        elif state is _State.BINARY_START:
            self._current_transfer = BinaryTransfer(byte)
            self._state = _State.BINARY_LENGTH_1
        elif state is _State.BINARY_LENGTH_1:
            self._count = byte
            self._state = _State.BINARY_LENGTH_2
        elif state is _State.BINARY_LENGTH_2:
            self._count += byte << 8
            assert self._current_transfer is not None
            self._current_transfer.allocate(self._count)
            self._state = _State.BINARY_DATA

    def _echo(self, byte: int) -> None:
        stream = self.console if self.console is not None else sys.stdout
        char = chr(byte)
        stream.write(char)
        if char == "\n":
            stream.flush()

    def _query(self, name: str) -> None:
        self._core.last_command = name
        self._core.valid = True
        self.command("G", CORE_CHANNEL, ord(name))

    def _core_transfer(self, transfer: BinaryTransfer) -> None:
        core = self._core
        if not core.valid:
            return
        desc = self.device_description
        data = transfer.data
        last = core.last_command
        if last == "N":
            name = _c_string(data)
            if name is not None:
                desc.name = name
                desc.values_changed.emit()
            self._query("V")
        elif last == "V":
            if transfer.size == 4:
                (millivolts,) = struct.unpack("<I", data)
                supply = millivolts * 0.001
                self.supply_voltage_value.emit(supply)
                desc.supply_voltage = supply
                desc.values_changed.emit()
            self._query("C")
        elif last == "C":
            name = _c_string(data)
            if name is not None:
                desc.configuration_name = name
                desc.values_changed.emit()
            self._query("F")
        elif last == "F":
            if transfer.size == 4:
                (desc.capabilities,) = struct.unpack("<I", data)
                core.valid = False
                desc.values_changed.emit()