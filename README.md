# asservstream

Reads the telemetry stream that a robot's motion-control ("asserv") board
sends over a USB serial link. It turns that stream into named numeric
series and sends tuning and motion commands back to the board.

## The stream format

The board sends framed messages in little-endian byte order. Each frame
starts with a 32-bit synchronisation word, then a 32-bit byte count, then
the payload:

- `0xCAFED00D`: a sample, a run of 32-bit floats with one value per field.
- `0xDEADBEEF`: a description, a comma-separated list of field names.
- `0xCAFEDECA`: a configuration block of 32-bit floats. It holds the PID
  gains, the speed ranges and the accelerations.

A sample is queued only once the synchronisation word of the next frame
has arrived intact. A byte that breaks a synchronisation word discards the
sample that was waiting. A sample frame longer than `max_values` floats is
treated as garbage and dropped.

When `AsservStream` starts, it writes `0xDEADBEEF` to the board so that the
board replies with its field description. Sample timestamps come from the
field named `timestamp`. They count ticks of the 600 Hz control loop
(`ASSERV_FREQ`) and are converted to seconds.

## Installation

```
pip install .
```

## Command line

```
asservstream [PORT] [--log FILE] [--max-values N]
```

- `PORT` is the serial device to use. If you leave it out, the first entry
  of `list_ports()` is used. That function returns the `/dev/ttyACM*`
  devices in reverse sorted order. The command exits with status 1 if no
  device is found or the port cannot be opened.
- `--log FILE` is the file that every sent command is appended to, one per
  line. The default is `commandLog`.
- `--max-values N` is the largest number of values accepted in one sample.
  The default is 50.

Once the port is open, the command reads lines from standard input. Each
non-empty line is sent to the board as a command, for example
`asserv enablemotor 1`. It stops at end of input or on Ctrl-C.

## Library use

### Decoding bytes

`asservstream.decoder.StreamDecoder` is the framing state machine on its own:

```python
from asservstream.decoder import StreamDecoder

decoder = StreamDecoder(50)
decoder.process_bytes(chunk)
names = decoder.take_description()   # list of field names, or None
for sample in decoder.samples():     # each sample is a list of floats
    ...
if decoder.config_available:
    values = decoder.config_values() # floats of the last config frame
```

Its members work as follows:

- `take_description()` returns a new description only once.
- `samples()` removes the samples it yields.
- `config` holds the raw payload of the last configuration frame.

### Streaming from a port

`asservstream.stream.AsservStream` ties a serial port to a decoder. It
collects one series of `(time, value)` points per described field.

The `port` argument is either a device path, which is opened at 115200 baud
with 8N1 framing, or an object that has `read`, `write` and `close` methods.

```python
from asservstream.stream import AsservStream, list_ports

with AsservStream(list_ports()[0], "commandLog", 50) as stream:
    ...
    for name, points in stream.series().items():
        ...
```

- `start()` opens the port and the command log, then starts a background
  thread. That thread reads from the port, calls `feed()` and calls
  `push_cycle()`.
- `shutdown()` stops the thread and closes the port and the log.
- `is_running()` reports whether the stream is running.
- `push_cycle()` moves newly decoded data into the series. A NaN value is
  stored as 0. If points were added, it calls the optional `on_data`
  callback.
- `value_from_name(name, sample)` returns the value of a field in a sample,
  or 0 when the field is absent.
- After `start()`, `stream.panel` holds a `ControlPanel` bound to the port
  and the command log.

### Sending commands

`asservstream.control.ControlPanel(transport, decoder, log, left_range, right_range)`
builds and sends the text commands the board understands:

- `reset()`
- `enable_motor(enabled)` and `enable_polar(enabled)`
- `set_speed_control(side, kp, ki, speed_range)`
- `set_distance_control(kp)` and `set_angle_control(kp)`
- `set_angle_acceleration(acc)`
- `set_distance_acceleration(acc_max, acc_min, threshold)`
- `set_distance_acc_dec(acc_fw, dec_fw, acc_bw, dec_bw, damping)`
- `robot_linear_speed_step(speed, duration)` and
  `robot_angular_speed_step(speed, duration)`
- `wheel_speed_step(side, speed, duration)`
- `add_distance(distance)`, `add_angle(angle)` and `add_goto(x, y)`
- `goto_test()` and `request_config()`
- `send(command)` for any other command

`side` is `Side.LEFT` or `Side.RIGHT`, or the letters `"l"` and `"r"`.

`send()` raises `ValueError` for a command longer than 127 bytes. If a log
is given, it also writes each command, followed by a newline, to that log.

Each wheel has three speed ranges, and each range has its own gains:

- `select_range(side, index, kp, ki)` stores the gains of the current range,
  switches to `index` and returns the gains stored for it.
- `apply_config()` reads the decoder's last configuration block into an
  `AsservConfig`. `AsservConfig.left_range_label` and `right_range_label`
  describe the ranges with `format_range_label()`. It raises `ValueError`
  if the block holds fewer than 24 values.

## What it does not do

The package draws no plots and has no graphical control panel. The
collected series are available only through `AsservStream.series()`. The
command line sends commands typed on standard input and does not display
the incoming data.

## Running the tests

```
pip install .[test]
pytest
```