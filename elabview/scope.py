"""Oscilloscope control and decoding of captured waveforms."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from elabview.averaging import DataAveraging
from elabview.converter import DataConverter, convert_sample_rate, unit_prefix
from elabview.dataset import DATASET_MAX_AVG, DataSet, OffsetCalculation
from elabview.measurement import SignalMeasurement, measure
from elabview.protocol import Protocol, Signal


class RunState(enum.IntEnum):
    """Acquisition state of the oscilloscope."""

    STOPPED = 0
    RUNNING = 1
    SINGLE = 2


@dataclass(frozen=True)
class ScopeFrame:
    """Everything derived from one captured transfer."""

    x_axis: np.ndarray
    size: int
    max_height: float
    zoom_y: float
    plot_width: float
    trigger_time: float
    trigger_level: float
    avg_samples: int
    avg_index: int
    averaging: int
    measurement: SignalMeasurement

    @property
    def samples_text(self) -> str:
        return f"Samples: {self.size}"

    @property
    def average_text(self) -> str:
        return f"Average: {self.measurement.average:7.4f} V"

    @property
    def max_text(self) -> str:
        return f"Max: {self.measurement.max_value:7.4f} V"

    @property
    def min_text(self) -> str:
        return f"Min: {self.measurement.min_value:7.4f} V"

    @property
    def noise_text(self) -> str:
        return f"Noise: {self.measurement.noise:7.4f} V"


class ScopeController:
    """Configures the oscilloscope on one protocol channel and decodes its captures."""

    def __init__(
        self,
        protocol: Protocol,
        channel: int,
        converter: DataConverter,
        trigger: float = 1.5,
        trigger_position: float = 15.0,
        sample_rate: float = 1000.0,
        channel_mask: int = 0x1,
    ) -> None:
        self.protocol = protocol
        self.channel = channel
        self.converter = converter
        self.dataset = DataSet(2)

        self.trigger = trigger
        self.trigger_position = trigger_position
        self.sample_rate = sample_rate
        self.channel_mask = channel_mask
        self.wave_averaging = 1.0
        self.rising_edge = True
        self.falling_edge = False
        self.single = False

        self.run_state = RunState.STOPPED
        self.timer_frequency = 0
        self.real_sample_rate: Optional[float] = None
        self.max_impedance: Optional[int] = None
        self.averaging = 0
        self.signal_averaging = DataAveraging(0)
        self.last_frame: Optional[ScopeFrame] = None
        self.average_voltage = Signal()

        protocol.binary_received.connect(self.display_data)
        protocol.device_reconnected.connect(self.configure_all)
        protocol.command_received.connect(self.handle_command)

    @property
    def impedance_text(self) -> str:
        if self.max_impedance is None:
            return "Maximum input impedance: ? Ohms"
        value, prefix = unit_prefix(self.max_impedance)
        return f"Maximum input impedance: {value:g} {prefix}Ohms"

    @property
    def averaging_text(self) -> str:
        if self.wave_averaging > 1.5:
            ds = self.dataset
            return f"Avg. samples {ds.avg_samples}/{ds.averaging}, (index {ds.avg_index})"
        return "No averaging"

    def handle_command(self) -> None:
        """React to a command frame reported by the target."""
        command = self.protocol.last_command
        if command.channel != self.channel:
            return
        if command.command_id == ord("F"):
            self.timer_frequency = command.value
        elif command.command_id == ord("D"):
            if self.timer_frequency > 0 and command.value > 0:
                self.real_sample_rate = self.timer_frequency / command.value
        elif command.command_id == ord("R"):
            self.max_impedance = command.value

    def configure_all(self) -> None:
        self.configure_trigger(self.trigger)
        self.configure_trigger_position(self.trigger_position)
        self.configure_sample_rate(self.sample_rate)
        self.configure_trigger_polarity()
        self.configure_channels(self.channel_mask)

    def configure_channels(self, channel_mask: int) -> None:
        self.channel_mask = channel_mask
        self.dataset.set_channel_mask(channel_mask)
        self.protocol.command("C", self.channel, channel_mask)

    def configure_trigger(self, value: float) -> None:
        """Set the trigger level in volts."""
        self.trigger = value
        self.protocol.command("T", self.channel, self.converter.to_device(value) & 0xFFFF)

    def configure_trigger_channel(self, channel: int) -> None:
        self.dataset.set_trigger_channel(channel)
        self.protocol.command("R", self.channel, channel & 0xFFFF)

    def configure_buffer_size(self, value: float) -> None:
        self.protocol.command("B", self.channel, math.floor(value + 0.5))

    def configure_wave_averaging(self, value: float) -> None:
        """Set how many captured waveforms are averaged together."""
        self.wave_averaging = value
        self.dataset.set_averaging(min(math.floor(value + 0.5), DATASET_MAX_AVG))

    def configure_trigger_position(self, value: float) -> None:
        """Set the trigger position in percent of the buffer, sent in tenths."""
        self.trigger_position = value
        self.protocol.command("D", self.channel, math.floor(value * 10.0 + 0.5) & 0xFFFF)

    def configure_trigger_mode(self, value: int) -> None:
        self.protocol.command("M", self.channel, value)

    def configure_averaging(self, value: float) -> None:
        count = int(value)
        if self.averaging == 0 and count > 0:
            self.signal_averaging.reset()
        self.signal_averaging.set_averaging(count)
        self.averaging = count

    def configure_trigger_polarity(self) -> None:
        """Send the enabled trigger edges: bit 0 rising, bit 1 falling."""
        value = 0
        if self.falling_edge:
            value |= 0x2
        if self.rising_edge:
            value |= 0x1
        self.protocol.command("P", self.channel, value)

    def configure_sample_rate(self, value: float) -> None:
        self.sample_rate = value
        self.protocol.command("F", self.channel, convert_sample_rate(value))
        self.dataset.reset_average()

    def set_channel_offset(self, value: bool) -> float:
        """Spread channels vertically or overlay them; return the height they span."""
        kind = OffsetCalculation.SPREAD if value else OffsetCalculation.NONE
        return self.dataset.set_offset_calculation(kind, 0.0)

    def single_trigger_toggle(self, value: bool) -> None:
        self.single = bool(value)
        if self.run_state is not RunState.STOPPED:
            self.start()

    def start(self) -> None:
        if self.single:
            self.protocol.command("S", self.channel, 2)
            self.run_state = RunState.SINGLE
        else:
            self.protocol.command("S", self.channel, 1)
            self.run_state = RunState.RUNNING

    def stop(self) -> None:
        self.protocol.command("S", self.channel, 0)
        self.run_state = RunState.STOPPED

    def display_data(self) -> Optional[ScopeFrame]:
        """Decode the pending transfer if it belongs to this channel."""
        transfer = self.protocol.pop_transfer(self.channel)
        if transfer is None:
            return None
        if self.run_state is RunState.SINGLE:
            self.run_state = RunState.STOPPED

        ds = self.dataset
        ds.set_trigger(self.trigger_position * 0.01, self.trigger)
        sample_time = self.sample_rate * 0.001
        ds.set_sampling_frequency(sample_time)
        max_height = ds.data_input(transfer, self.converter)
        ds.set_offset(1, 4.0)

        x_axis = ds.x_axis
        if x_axis is None:
            raise ValueError("scope transfer could not be decoded")
        size = len(x_axis)
        zoom_y = max_height if ds.channels > 1 else self.converter.dest_max
        trigger_time = math.floor(size * self.trigger_position * 0.01) / sample_time
        plot_width = (size - 1) / sample_time
        trigger_level = self.trigger + ds.trigger_channel_offset()

        result = measure(ds.data(0).values)
        frame = ScopeFrame(
            x_axis=x_axis.copy(),
            size=size,
            max_height=max_height,
            zoom_y=zoom_y,
            plot_width=plot_width,
            trigger_time=trigger_time,
            trigger_level=trigger_level,
            avg_samples=ds.avg_samples,
            avg_index=ds.avg_index,
            averaging=ds.averaging,
            measurement=result,
        )
        self.last_frame = frame
        self.average_voltage.emit(result.average)
        return frame

    def trigger_offset(self, data: Sequence[float]) -> float:
        """Sub-sample position of the trigger crossing around the trigger point."""
        values = np.asarray(data, dtype=np.float64).ravel()
        size = values.size
        i = max(math.floor(size * self.trigger_position * 0.01) - 1, 0)
        if i + 1 >= size:
            return 0.0
        y1 = float(values[i])
        y2 = float(values[i + 1])
        ty = self.trigger
        if (y1 <= ty <= y2) or (y2 <= ty <= y1):
            if y1 == y2:
                return 0.0
            return 1.0 - (ty - y1) / (y2 - y1)
        return 0.0