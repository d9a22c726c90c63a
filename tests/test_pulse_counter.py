import io
import struct

import pytest

from elabview.protocol import Protocol
from elabview.pulse_counter import PulseCounterController, PulseReading, decode_pulse_count


class FakeDevice:
    def __init__(self):
        self.written = bytearray()

    def write(self, data):
        self.written += data
        return len(data)

    def read(self, size):
        return b""


def make_protocol():
    device = FakeDevice()
    protocol = Protocol(console=io.StringIO())
    protocol.set_device(device)
    device.written.clear()
    return protocol, device


def transfer(channel, payload):
    return bytes([0xFF, channel, len(payload) & 0xFF, len(payload) >> 8]) + payload


def test_decode_count():
    assert decode_pulse_count(struct.pack("<I", 1234)).frequency == 1234.0


def test_decode_ignores_trailing_bytes():
    reading = decode_pulse_count(struct.pack("<II", 77, 99))
    assert reading == PulseReading(77.0)


def test_short_payload_rejected():
    with pytest.raises(ValueError):
        decode_pulse_count(b"\x01\x02")


def test_text_in_hz():
    assert PulseReading(500.0).frequency_text() == "Frequency: 500.000 Hz"


def test_text_in_khz():
    assert PulseReading(1500.0).frequency_text() == "Frequency:   1.500 kHz"


def test_exactly_thousand_stays_in_hz():
    assert PulseReading(1000.0).frequency_text().endswith(" Hz")


def test_large_count_reaches_ghz():
    assert PulseReading(3e9).frequency_text().endswith(" GHz")


def test_controller_yields_frequency():
    protocol, _ = make_protocol()
    controller = PulseCounterController(protocol, 6)
    seen = []
    controller.frequency_yielded.connect(seen.append)
    protocol.feed(transfer(6, struct.pack("<I", 4321)))
    assert seen == [4321.0]
    assert controller.last_reading == PulseReading(4321.0)


def test_controller_ignores_other_channel():
    protocol, _ = make_protocol()
    controller = PulseCounterController(protocol, 6)
    protocol.feed(transfer(3, struct.pack("<I", 10)))
    assert controller.last_reading is None
    assert controller.display_data() is None


def test_start_and_stop_commands():
    protocol, device = make_protocol()
    controller = PulseCounterController(protocol, 6)
    controller.start()
    controller.stop()
    assert bytes(device.written) == b"\xfe\x01\x00\x00\x00S\x06" + b"\xfe\x00\x00\x00\x00S\x06"