import numpy as np
import pytest

from elabview.converter import DataConverter
from elabview.dataset import (
    CHANNEL_SPACING,
    DATASET_MAX_AVG,
    BufferDescription,
    DataSet,
    DataStream,
    DataType,
    OffsetCalculation,
)
from elabview.protocol import BinaryTransfer


def identity_converter():
    return DataConverter(0, 1, 0.0, 1.0)


def make_transfer(payload):
    transfer = BinaryTransfer(1)
    transfer.allocate(len(payload))
    transfer.write(bytes(payload))
    return transfer


def analog_frame(*channels):
    header = [1, (len(channels) << 4) | 0x08]
    body = []
    for samples in zip(*channels):
        for sample in samples:
            body += [sample & 0xFF, sample >> 8]
    return make_transfer(header + body)


def test_buffer_description_from_byte():
    desc = BufferDescription.from_byte(0x28)
    assert (desc.channels, desc.sample_width, desc.total_width) == (2, 2, 4)
    assert desc.data_type is DataType.ANALOG
    bits = BufferDescription.from_byte(0x15)
    assert (bits.channels, bits.sample_width, bits.data_type) == (1, 1, DataType.BITS)


def test_buffer_description_rejects_unknown_type():
    with pytest.raises(ValueError):
        BufferDescription.from_byte(0x1A)


def test_stream_offsets_round_trip():
    stream = DataStream(DataType.ANALOG, [1.0, 2.0, 3.0])
    stream.apply_offset(5.0)
    assert stream.offset == 5.0
    assert [stream.value(i) for i in range(3)] == [1.0, 2.0, 3.0]
    stream.remove_offset()
    assert stream.values.tolist() == [1.0, 2.0, 3.0]
    assert stream.offset == 0.0


def test_stream_set_and_update_offset():
    stream = DataStream(DataType.ANALOG, 2)
    stream.set_offset(2.5)
    assert stream.offset == 0.0
    stream.update_offset()
    assert stream.offset == 2.5


def test_stream_add_multiply_clear():
    a = DataStream(DataType.ANALOG, [1.0, 2.0])
    b = DataStream(DataType.ANALOG, [3.0, 4.0])
    a.add(b)
    a.multiply(0.5)
    assert a.values.tolist() == [2.0, 3.0]
    a.clear()
    assert a.values.tolist() == [0.0, 0.0]


def test_stream_add_ignores_mismatch():
    a = DataStream(DataType.ANALOG, [1.0, 2.0])
    a.add(DataStream(DataType.ANALOG, [1.0]))
    a.add(DataStream(DataType.BITS, [1, 2]))
    assert a.values.tolist() == [1.0, 2.0]


def test_bits_stream_add_takes_latest():
    a = DataStream(DataType.BITS, [1, 2])
    a.add(DataStream(DataType.BITS, [7, 9]))
    a.clear()
    assert a.values.tolist() == [7, 9]


def test_stream_resize_pads_with_zeros():
    stream = DataStream(DataType.ANALOG, [1.0, 2.0])
    stream.resize(4)
    assert stream.values.tolist() == [1.0, 2.0, 0.0, 0.0]
    stream.resize(1)
    assert stream.values.tolist() == [1.0]


def test_single_analog_channel():
    ds = DataSet(1)
    height = ds.data_input(analog_frame([1, 2, 3]), identity_converter())
    assert height == CHANNEL_SPACING
    assert ds.data(0).values.tolist() == [1.0, 2.0, 3.0]
    assert ds.x_axis.tolist() == [0.0, 1.0, 2.0]
    assert ds.size == 3


def test_two_channels_spread():
    ds = DataSet(2)
    height = ds.data_input(analog_frame([1, 2], [300, 400]), identity_converter())
    assert height == 2 * CHANNEL_SPACING
    second = ds.data(1)
    assert second.offset == CHANNEL_SPACING
    assert [second.value(i) for i in range(2)] == [300.0, 400.0]
    assert ds.data(0).values.tolist() == [1.0, 2.0]


def test_sampling_frequency_scales_x_axis():
    ds = DataSet(1)
    ds.set_sampling_frequency(2.0)
    ds.data_input(analog_frame([1, 2, 3]), identity_converter())
    assert ds.x_axis.tolist() == [0.0, 0.5, 1.0]


def test_misaligned_payload_returns_three():
    ds = DataSet(1)
    payload = [2, 0x18, 0x15, 1, 2, 3, 4]
    assert ds.data_input(make_transfer(payload), identity_converter()) == 3.0


def test_too_many_buffers_returns_zero():
    ds = DataSet(1)
    payload = [16] + [0x18] * 16 + [0, 0]
    assert ds.data_input(make_transfer(payload), identity_converter()) == 0.0


def test_empty_transfer_raises():
    ds = DataSet(1)
    with pytest.raises(ValueError):
        ds.data_input(BinaryTransfer(1), identity_converter())


def test_mixed_analog_and_bits():
    ds = DataSet(1)
    payload = [2, 0x18, 0x15, 5, 0, 6, 0, 0xAA, 0x55]
    height = ds.data_input(make_transfer(payload), identity_converter())
    assert height == 2 * CHANNEL_SPACING
    bits = ds.data(1)
    assert bits.data_type is DataType.BITS
    assert bits.values.tolist() == [0xAA, 0x55]
    assert bits.offset == CHANNEL_SPACING
    assert ds.data(0).values.tolist() == [5.0, 6.0]
    assert ds.channels == 2


def test_offset_calculation_switch_round_trip():
    ds = DataSet(2)
    ds.data_input(analog_frame([1, 2], [3, 4]), identity_converter())
    assert ds.set_offset_calculation(OffsetCalculation.NONE, 0.0) == CHANNEL_SPACING
    assert ds.data(1).values.tolist() == [3.0, 4.0]
    assert ds.set_offset_calculation(OffsetCalculation.SPREAD, 0.0) == 2 * CHANNEL_SPACING
    assert ds.data(1).offset == CHANNEL_SPACING
    assert ds.set_offset_calculation(OffsetCalculation.SPREAD, 0.0) == 0.0


def test_averaging_uses_last_inputs():
    ds = DataSet(1)
    ds.set_averaging(2)
    conv = identity_converter()
    inputs = [[2, 4], [4, 8], [6, 12]]
    ds.data_input(analog_frame(inputs[0]), conv)
    assert ds.data(0).values.tolist() == [2.0, 4.0]
    ds.data_input(analog_frame(inputs[1]), conv)
    assert ds.data(0).values.tolist() == np.mean(inputs[:2], axis=0).tolist()
    ds.data_input(analog_frame(inputs[2]), conv)
    assert ds.data(0).values.tolist() == np.mean(inputs[1:], axis=0).tolist()
    assert ds.avg_samples == 2


def test_averaging_depth_reduction_keeps_newest():
    ds = DataSet(1)
    conv = identity_converter()
    ds.set_averaging(4)
    inputs = [[10, 20], [30, 40], [50, 60], [70, 80]]
    for samples in inputs[:3]:
        ds.data_input(analog_frame(samples), conv)
    assert ds.avg_samples == 3
    ds.set_averaging(2)
    ds.data_input(analog_frame(inputs[3]), conv)
    assert ds.avg_samples == 2
    assert ds.data(0).values.tolist() == np.mean(inputs[2:], axis=0).tolist()


def test_set_averaging_limits_and_errors():
    ds = DataSet(1)
    ds.set_averaging(100)
    assert ds.averaging == DATASET_MAX_AVG
    with pytest.raises(ValueError):
        ds.set_averaging(-1)


def test_reset_average():
    ds = DataSet(1)
    ds.set_averaging(3)
    ds.data_input(analog_frame([1, 2]), identity_converter())
    assert ds.avg_samples == 1
    ds.reset_average()
    assert ds.avg_samples == 0
    assert ds.avg_index == 0


def test_trigger_offset_interpolates():
    ds = DataSet(1)
    ds.set_trigger(0.5, 5.0)
    ds.data_input(analog_frame([0, 10]), identity_converter())
    assert ds.display_offset == pytest.approx(0.5)
    assert ds.x_axis.tolist() == pytest.approx([0.5, 1.5])


def test_trigger_outside_segment_gives_no_shift():
    ds = DataSet(1)
    ds.set_trigger(0.5, 50.0)
    ds.data_input(analog_frame([0, 10]), identity_converter())
    assert ds.display_offset == 0.0


def test_trigger_channel_offset_follows_mask():
    ds = DataSet(2)
    ds.data_input(analog_frame([1, 2], [3, 4]), identity_converter())
    ds.set_channel_mask(0b101)
    ds.set_trigger_channel(2)
    assert ds.trigger_channel_offset() == ds.data(1).offset
    ds.set_trigger_channel(1)
    assert ds.trigger_channel_offset() == ds.data(0).offset


def test_header_change_updates_channel_count():
    ds = DataSet(1)
    conv = identity_converter()
    ds.data_input(analog_frame([1, 2]), conv)
    assert ds.channels == 1
    ds.data_input(analog_frame([1, 2], [3, 4]), conv)
    assert ds.channels == 2
    assert ds.data(1).values.tolist() == [3.0 + CHANNEL_SPACING, 4.0 + CHANNEL_SPACING]


def test_missing_channel_raises_index_error():
    ds = DataSet(1)
    with pytest.raises(IndexError):
        ds.data(0)