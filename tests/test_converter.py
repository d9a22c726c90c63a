import struct

import numpy as np
import pytest

from elabview.converter import DataConverter, convert_sample_rate, unit_prefix
from elabview.protocol import BinaryTransfer


def adc():
    return DataConverter(0, 4096, 0.0, 3.3)


def test_range_ends_map_to_destination_ends():
    conv = adc()
    assert conv.from_device(0) == pytest.approx(0.0)
    assert conv.from_device(4096) == pytest.approx(3.3)


@pytest.mark.parametrize("volts", [0.0, 0.5, 1.5, 2.2, 3.2])
def test_to_device_round_trip_within_one_step(volts):
    conv = adc()
    back = conv.from_device(conv.to_device(volts))
    assert abs(back - volts) <= 3.3 / 4096
    assert back <= volts + 1e-12


def test_set_dest_max_changes_scale():
    conv = adc()
    conv.set_dest_max(5.0)
    assert conv.dest_max == 5.0
    assert conv.from_device(4096) == pytest.approx(5.0)


def test_16bit_stream_single_channel():
    conv = adc()
    samples = [0, 100, 4095, 2048]
    data = struct.pack("<4H", *samples)
    result = conv.from_device_16bit_stream(data, 2)
    assert np.allclose(result, [conv.from_device(s) for s in samples])


def test_16bit_stream_interleaved_channels():
    conv = adc()
    first = [10, 20, 30]
    second = [1000, 2000, 3000]
    data = b"".join(struct.pack("<HH", a, b) for a, b in zip(first, second))
    ch0 = conv.from_device_16bit_stream(data, 4)
    ch1 = conv.from_device_16bit_stream(data[2:], 4)
    assert np.allclose(ch0, [conv.from_device(s) for s in first])
    assert np.allclose(ch1, [conv.from_device(s) for s in second])


def test_16bit_stream_rejects_bad_step():
    with pytest.raises(ValueError):
        adc().from_device_16bit_stream(b"\x00\x00", 0)


def test_from_transfer_reads_signed_samples():
    conv = adc()
    samples = [-5, 0, 1234]
    transfer = BinaryTransfer(1)
    transfer.allocate(6)
    transfer.write(struct.pack("<3h", *samples))
    result = conv.from_transfer(transfer)
    assert np.allclose(result, [conv.from_device(s) for s in samples])


def test_convert_sample_rate_plain_hertz():
    assert convert_sample_rate(5000) == 5000


def test_convert_sample_rate_kilohertz_and_megahertz():
    assert convert_sample_rate(50_000) == (1 << 14) | 50
    assert convert_sample_rate(20_000_000) == (2 << 14) | 20


def test_convert_sample_rate_out_of_range():
    assert convert_sample_rate(1e9) == 0


@pytest.mark.parametrize(
    "value, scaled, prefix",
    [
        (1500.0, 1.5, "k"),
        (2e-3, 2.0, "m"),
        (-2e6, -2.0, "M"),
        (3e9, 3.0, "G"),
        (5.0, 5.0, ""),
        (4e-6, 4.0, "u"),
    ],
)
def test_unit_prefix(value, scaled, prefix):
    out, unit = unit_prefix(value)
    assert unit == prefix
    assert out == pytest.approx(scaled)


def test_unit_prefix_tiny_value_unscaled():
    assert unit_prefix(5e-8) == (5e-8, "")