# elabview

elabview is a host-side library for small data acquisition boards that talk to
a PC over a serial link, such as a USB CDC port. It speaks the board's framed
binary protocol and converts raw ADC samples into volts. It also drives each of
the board's functions: oscilloscope, signal generator, PWM output, PWM input,
pulse counter and voltmeter.

## Installation

```
pip install elabview
```

To run the test suite:

```
pip install "elabview[test]"
pytest
```

## What is inside

| Module | Purpose |
| --- | --- |
| `elabview.protocol` | Contains the `Protocol` frame decoder and command encoder, plus `BinaryTransfer`, `Command`, `DeviceDescription`, `Capability`, and a small `Signal` callback list. |
| `elabview.converter` | Holds `DataConverter`, which converts between ADC counts and volts, along with `convert_sample_rate` and `unit_prefix`. |
| `elabview.averaging` | `DataAveraging` is a block averager for successive sample vectors. |
| `elabview.dataset` | `DataSet` splits multi-buffer scope transfers into channel streams. It handles waveform averaging, trigger interpolation and display offsets. `DataStream` holds one channel's samples, and the module also has `BufferDescription`, `DataType`, `OffsetCalculation` and `ApproxType`. |
| `elabview.measurement` | `measure` returns a `SignalMeasurement` with the average, min, max and RMS noise. |
| `elabview.spectral` | `SpectralAnalysis` computes an FFT magnitude spectrum, with an optional Hamming window. |
| `elabview.generator` | Holds `GeneratorController` and `Waveform`. |
| `elabview.pwm` | Holds `PwmController`. |
| `elabview.pwm_input` | Holds `PwmInputController`, `PwmReading` and `decode_pwm`. |
| `elabview.pulse_counter` | Holds `PulseCounterController`, `PulseReading` and `decode_pulse_count`. |
| `elabview.voltmeter` | Holds `VoltmeterController`, `VoltmeterReading`, `decode_voltages` and `volt_filter`. |
| `elabview.scope` | Holds `ScopeController`, `ScopeFrame` and `RunState`. |

## Wire protocol in brief

A command sent to the board is seven bytes long:

- `0xFE`
- a 32-bit little-endian value
- a one-byte command id
- a one-byte channel

The board sends commands back in the same format. `Protocol.last_command` holds the latest one, and `command_received` fires for it.

The board sends a binary transfer in this order:

- `0xFF`
- a channel byte
- a 16-bit little-endian length
- the payload

Any other byte is plain text from the board. `Protocol` echoes it to its `console` stream, which is `sys.stdout` unless you give another one.

Channel 0 carries the device's description:

- its name
- its supply voltage
- its configuration name
- its capability mask

Whenever a device is attached, `Protocol` asks for these one by one and stores them in `Protocol.device_description`. After each stored value, `values_changed` fires. `supply_voltage_value` also fires, with the supply voltage in volts. Transfers on other channels fire `binary_received`, and each controller picks up the transfers addressed to its channel with `pop_transfer`.

## The device object

`Protocol.set_device` accepts any object with:

- `read(size) -> bytes`
- `write(data) -> int`

The `write` method may also return `None`, which means everything was written. If the object has an `in_waiting` attribute, `process_data` reads that many bytes. Without it, `process_data` reads up to one buffer's worth. An open `pyserial` port fits this shape, and so does a small in-memory fake. If `write` accepts no bytes, `ConnectionError` is raised. Commands sent while no device is attached are silently dropped.

## Example

```python
from elabview.protocol import Protocol
from elabview.converter import DataConverter
from elabview.scope import ScopeController

protocol = Protocol(1024)
converter = DataConverter(0, 4096, 0.0, 3.3)
protocol.supply_voltage_value.connect(converter.set_dest_max)

scope = ScopeController(protocol, 1, converter)
scope.average_voltage.connect(print)

protocol.set_device(port)      # port: an open serial connection
scope.start()

# call whenever bytes are waiting on the port
protocol.process_data()
print(scope.last_frame.average_text if scope.last_frame else "no frame yet")
```

If the bytes reach you some other way, pass them to `Protocol.feed(data)`.

## Building blocks on their own

```python
from elabview.converter import convert_sample_rate, unit_prefix
from elabview.measurement import measure

convert_sample_rate(1000.0)   # 1000: rates below 10 kHz are sent in Hz
unit_prefix(4700.0)           # (about 4.7, "k")
measure([0.0, 1.0, 2.0])      # average 1.0, min 0.0, max 2.0
```

## What this package does not do

elabview is a library only. It has:

- no command-line program
- no graphical interface
- no plotting
- no recording of readings over time
- no user scripting of measurements

It does not find or open serial ports. You open the port yourself and hand it to `Protocol.set_device`.

The controllers do not draw anything. They send commands and return decoded readings and frames, which your own display can use. For example, `ScopeFrame` carries the x axis, the trigger position and the formatted measurement texts.