"""Multi-channel sample sets decoded from oscilloscope transfers.

A scope transfer starts with a header: one byte giving the number of
buffers, then one descriptor byte per buffer.  Each buffer holds the
interleaved samples of its channels and the buffers follow each other.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import numpy as np

from elabview.converter import DataConverter
from elabview.protocol import BinaryTransfer

DATASET_MAX_AVG = 32
MAX_BUFFER_COUNT = 15
CHANNEL_SPACING = 4.0


class DataType(enum.IntEnum):
    """Kind of samples a buffer carries."""

    ANALOG = 0
    BITS = 1


class ApproxType(enum.Enum):
    """How the sub-sample trigger position is compensated."""

    NONE = enum.auto()
    SHIFT = enum.auto()
    LINEAR = enum.auto()


class OffsetCalculation(enum.IntEnum):
    """Rule for stacking channels vertically on the plot."""

    SPREAD = 0
    NONE = 1


@dataclass
class BufferDescription:
    """One buffer of a transfer, decoded from its header byte."""

    channels: int
    sample_width: int
    data_type: DataType
    size: int = 0

    @property
    def total_width(self) -> int:
        """Bytes taken by one sample of every channel in the buffer."""
        return self.channels * self.sample_width

    @classmethod
    def from_byte(cls, value: int) -> "BufferDescription":
        value &= 0xFF
        kind = value & 0x3
        try:
            data_type = DataType(kind)
        except ValueError:
            raise ValueError(f"unsupported buffer data type {kind}") from None
        return cls((value >> 4) & 0xF, (value >> 2) & 0x3, data_type)


class DataStream:
    """Samples of one channel together with the display offset applied to them."""

    def __init__(self, data_type: DataType, values: Union[int, Sequence[float], np.ndarray] = 0) -> None:
        self.data_type = DataType(data_type)
        if isinstance(values, (int, np.integer)):
            self._values = np.zeros(int(values), dtype=self._dtype)
        else:
            self._values = np.array(values, dtype=self._dtype)
        self._current_offset = 0.0
        self._new_offset = 0.0

    @property
    def _dtype(self) -> type:
        return np.float64 if self.data_type is DataType.ANALOG else np.uint8

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def offset(self) -> float:
        return self._current_offset

    def __len__(self) -> int:
        return len(self._values)

    def _load(self, values: np.ndarray) -> None:
        self._values = np.array(values, dtype=self._dtype)

    def resize(self, size: int) -> None:
        """Truncate or zero-pad to ``size`` samples."""
        if size < 0:
            raise ValueError("size must not be negative")
        resized = np.zeros(size, dtype=self._dtype)
        keep = min(size, len(self._values))
        resized[:keep] = self._values[:keep]
        self._values = resized

    def apply_offset(self, value: float) -> None:
        """Shift analog samples by ``value`` and record it as the current offset."""
        if self.data_type is DataType.ANALOG:
            self._values += value
        self._current_offset = self._new_offset = value

    def remove_offset(self) -> None:
        if self.data_type is DataType.ANALOG:
            self._values -= self._current_offset
        self._current_offset = self._new_offset = 0.0

    def set_offset(self, value: float) -> None:
        self._new_offset = value

    def update_offset(self) -> None:
        self._current_offset = self._new_offset

    def clear(self) -> None:
        """Zero analog samples; digital samples are kept."""
        if self.data_type is DataType.ANALOG:
            self._values[:] = 0.0
        self._current_offset = self._new_offset = 0.0

    def add(self, other: "DataStream") -> None:
        """Accumulate ``other``; digital streams take its samples instead.

        Streams of another type or length are ignored.
        """
        if other.data_type is not self.data_type or len(other) != len(self):
            return
        if self.data_type is DataType.ANALOG:
            self._values += other._values
        else:
            self._values = other._values.copy()

    def multiply(self, value: float) -> None:
        if self.data_type is DataType.ANALOG:
            self._values *= value

    def value(self, index: int) -> float:
        """Sample ``index`` without the display offset."""
        return float(self._values[index]) - self._current_offset


def _trigger_channel_index(channel: int, channel_mask: int) -> int:
    """Position of ``channel`` among the enabled channels, 0 if it is disabled."""
    if channel < 0 or not channel_mask & (1 << channel):
        return 0
    return bin(channel_mask & ((1 << channel) - 1)).count("1")


class DataSet:
    """All channels of the latest acquisition with a shared time axis."""

    def __init__(self, channels: int, fs: float = 1.0) -> None:
        if channels < 1:
            channels = 1
        self.channels = channels
        self.fs = fs
        self.size = 0
        self.display_offset = 0.0
        self.trigger_x = 0.0
        self.trigger_y = 0.0
        self.approx = ApproxType.SHIFT
        self.offset_calculation = OffsetCalculation.SPREAD
        self.total_channels = 0

        self._channel_mask = (1 << channels) - 1
        self._trigger_channel = 0
        self._x: Optional[np.ndarray] = None
        self._y: Optional[List[Optional[DataStream]]] = None
        self._averaging = 1
        self._avg_index = 0
        self._avg_count = 0
        self._current_y_size = 0
        self._previous_header = b"\x00"
        self._last_transfer_size = 0

    @property
    def x_axis(self) -> Optional[np.ndarray]:
        return self._x

    @property
    def channel_mask(self) -> int:
        return self._channel_mask

    @property
    def trigger_channel(self) -> int:
        return self._trigger_channel

    @property
    def averaging(self) -> int:
        return self._averaging

    @property
    def avg_samples(self) -> int:
        return self._avg_count

    @property
    def avg_index(self) -> int:
        return self._avg_count if self._avg_index == 0 else self._avg_index

    def data(self, index: int) -> DataStream:
        stream = self._stream(index)
        if stream is None:
            raise IndexError(f"no data for channel {index}")
        return stream

    def _stream(self, index: int) -> Optional[DataStream]:
        if self._y is None or not 0 <= index < len(self._y):
            return None
        return self._y[index]

    def set_channel_mask(self, value: int) -> None:
        self._channel_mask = value

    def set_trigger_channel(self, value: int) -> None:
        self._trigger_channel = value

    def set_sampling_frequency(self, fs: float) -> None:
        self.fs = fs

    def set_trigger(self, x: float, y: float) -> None:
        self.trigger_x = x
        self.trigger_y = y

    def set_offset(self, channel: int, value: float) -> None:
        if 0 <= channel < self.channels:
            stream = self._stream(channel)
            if stream is not None:
                stream.set_offset(value)

    def set_averaging(self, value: int) -> None:
        if value < 0:
            raise ValueError("averaging must not be negative")
        self._averaging = min(int(value), DATASET_MAX_AVG)

    def reset_average(self) -> None:
        self._avg_count = 0
        self._avg_index = 0

    def _clear_y_axises(self) -> None:
        self._y = None
        self._avg_index = 0
        self._avg_count = 0

    def set_offset_calculation(self, kind: OffsetCalculation, value: float) -> float:
        """Switch the stacking rule and return the height the channels now span."""
        inc_offset = 0.0
        if self.offset_calculation is not kind:
            if kind is OffsetCalculation.SPREAD:
                for i in range(self.channels):
                    stream = self._stream(i)
                    if stream is not None:
                        stream.apply_offset(inc_offset)
                    inc_offset += CHANNEL_SPACING
            else:
                for i in range(self.channels):
                    stream = self._stream(i)
                    if stream is None:
                        continue
                    stream.remove_offset()
                    if stream.data_type is DataType.BITS:
                        if i != 0:
                            inc_offset += CHANNEL_SPACING
                        stream.apply_offset(inc_offset)
                inc_offset += CHANNEL_SPACING
        self.offset_calculation = OffsetCalculation(kind)
        return inc_offset

    def _reshape_averaging(self, descs: List[BufferDescription], new_y_size: int) -> None:
        """Keep the newest averaging buffers when only the averaging depth changed."""
        old_y = self._y
        assert old_y is not None
        tc = self.total_channels
        averaging = self._averaging
        old_averaging = self._current_y_size // tc - 1
        if old_averaging <= 1:
            self._clear_y_axises()
            return

        new_y: List[Optional[DataStream]] = [None] * new_y_size
        a_offset = 0
        if self._avg_count > averaging:
            a_offset = self._avg_index - averaging
            if a_offset < 0:
                a_offset += old_averaging
        elif self._avg_count >= old_averaging:
            a_offset = self._avg_index

        for y_index in range(sum(d.channels for d in descs)):
            new_y[y_index] = old_y[y_index]
            for a in range(min(old_averaging, averaging)):
                src = a + a_offset
                if src >= old_averaging:
                    src -= old_averaging
                new_y[y_index + (a + 1) * tc] = old_y[y_index + (src + 1) * tc]

        self._y = new_y
        self._avg_count = min(self._avg_count, averaging)
        self._avg_index = self._avg_count
        if self._avg_index >= averaging:
            self._avg_index -= averaging

    def data_input(self, transfer: BinaryTransfer, converter: DataConverter) -> float:
        """Decode one scope transfer and return the height the channels span.

        Returns 0.0 when the header lists too many buffers and 3.0 when the
        payload does not split evenly between the buffers.
        """
        data = transfer.data
        if not data:
            raise ValueError("empty transfer")
        buffer_count = data[0]
        header_size = buffer_count + 1
        if buffer_count > MAX_BUFFER_COUNT:
            return 0.0
        if buffer_count == 0:
            raise ValueError("transfer describes no buffers")
        if header_size > len(data):
            raise ValueError("transfer header is truncated")

        header = data[:header_size]
        descs = [BufferDescription.from_byte(b) for b in header[1:]]

        buffer_changed = header != self._previous_header
        self._previous_header = header
        buffer_changed = buffer_changed or self._last_transfer_size != len(data)
        self._last_transfer_size = len(data)

        total_width = sum(d.total_width for d in descs)
        total_length = len(data) - header_size
        self.total_channels = sum(d.channels for d in descs)
        if total_width == 0:
            raise ValueError("transfer buffers carry no samples")
        for desc in descs:
            desc.size = total_length * desc.total_width // total_width
            if desc.size * total_width != total_length * desc.total_width:
                return 3.0
        if descs[0].total_width == 0:
            raise ValueError("first buffer carries no samples")
        sample_count = descs[0].size // descs[0].total_width

        tc = self.total_channels
        averaging = self._averaging
        new_y_size = (averaging + 1) * tc if averaging > 1 else tc

        buffer_changed = buffer_changed or (averaging <= 1 and new_y_size != self._current_y_size)
        if buffer_changed:
            self._clear_y_axises()
            self.channels = tc
        elif new_y_size != self._current_y_size and self._y is not None:
            self._reshape_averaging(descs, new_y_size)
        self._current_y_size = new_y_size

        if self._y is None:
            self._y = [None] * new_y_size
        y = self._y

        raw = np.frombuffer(data + b"\0", dtype=np.uint8)
        read = header_size
        y_index = (self._avg_index + 1) * tc if averaging > 1 else 0
        for desc in descs:
            count = desc.size // desc.total_width if desc.total_width else 0
            base = read + np.arange(count) * desc.total_width
            for x in range(desc.channels):
                starts = base + x * desc.sample_width
                stream = y[y_index]
                if stream is not None and stream.data_type is not desc.data_type:
                    stream = None
                if desc.data_type is DataType.ANALOG:
                    pairs = np.stack((raw[starts], raw[starts + 1]), axis=1).tobytes()
                    values = converter.from_device_16bit_stream(pairs, 2)
                else:
                    indices = starts[:, None] + np.arange(desc.sample_width)
                    values = raw[indices].reshape(-1)
                if stream is None:
                    y[y_index] = DataStream(desc.data_type, values)
                else:
                    stream._load(values)
                y_index += 1
            read += desc.size

        if averaging > 1:
            self._average(descs)

        inc_offset = 0.0
        y_index = 0
        for desc in descs:
            for _ in range(desc.channels):
                if desc.data_type is DataType.BITS and self.offset_calculation is OffsetCalculation.NONE:
                    inc_offset += CHANNEL_SPACING
                stream = y[y_index]
                assert stream is not None
                stream.apply_offset(inc_offset)
                if self.offset_calculation is OffsetCalculation.SPREAD:
                    inc_offset += CHANNEL_SPACING
                y_index += 1
        if self.offset_calculation is OffsetCalculation.NONE:
            inc_offset += CHANNEL_SPACING

        if self._x is None:
            self._x = np.zeros(sample_count, dtype=np.float64)
        elif len(self._x) != sample_count:
            resized = np.zeros(sample_count, dtype=np.float64)
            keep = min(sample_count, len(self._x))
            resized[:keep] = self._x[:keep]
            self._x = resized
        self.size = sample_count

        trig_index = _trigger_channel_index(self._trigger_channel, self._channel_mask)
        self.display_offset = self.trigger_offset(trig_index) if trig_index < tc else 0.0
        if self.approx is ApproxType.SHIFT:
            self._x = (np.arange(self.size, dtype=np.float64) + self.display_offset) / self.fs
        return inc_offset

    def _average(self, descs: List[BufferDescription]) -> None:
        y = self._y
        assert y is not None
        tc = self.total_channels
        self._avg_count = min(self._avg_count + 1, self._averaging)

        y_index = 0
        for desc in descs:
            for _ in range(desc.channels):
                stream = y[y_index]
                if stream is not None and stream.data_type is not desc.data_type:
                    stream = None
                if stream is None:
                    y[y_index] = DataStream(desc.data_type, desc.size // desc.total_width)
                else:
                    stream.clear()
                y_index += 1

        scale = 1.0 / self._avg_count
        y_index = 0
        for desc in descs:
            for _ in range(desc.channels):
                target = y[y_index]
                assert target is not None
                if desc.data_type is DataType.ANALOG:
                    for a in range(self._avg_count):
                        source = y[y_index + (a + 1) * tc]
                        if source is not None:
                            target.add(source)
                    target.multiply(scale)
                else:
                    source = y[y_index + (self._avg_index + 1) * tc]
                    if source is not None:
                        target.add(source)
                y_index += 1

        self._avg_index += 1
        if self._avg_index >= self._averaging:
            self._avg_index = 0

    def trigger_offset(self, index: int) -> float:
        """Sub-sample position of the trigger crossing on channel ``index``."""
        i = max(math.floor(self.size * self.trigger_x) - 1, 0)
        if i + 1 >= self.size:
            return 0.0
        stream = self._stream(index)
        if stream is None or stream.data_type is not DataType.ANALOG:
            return 0.0
        y1 = stream.value(i)
        y2 = stream.value(i + 1)
        ty = self.trigger_y
        if (y1 <= ty <= y2) or (y2 <= ty <= y1):
            if y1 == y2:
                # A flat segment has no defined crossing point.
                return 0.0
            return 1.0 - (ty - y1) / (y2 - y1)
        return 0.0

    def trigger_channel_offset(self) -> float:
        """Display offset of the channel the trigger is set on."""
        index = _trigger_channel_index(self._trigger_channel, self._channel_mask)
        if index >= self.total_channels:
            return 0.0
        stream = self._stream(index)
        return stream.offset if stream is not None else 0.0