# a64modem

This package holds the control logic for the cellular modem and some on-chip
peripherals of an Allwinner A64 phone. It does not depend on a particular
transport or operating system. It uses only the standard library.

The package covers four areas.

- **AT protocol**: `a64modem.line`, `a64modem.read_buffer`, `a64modem.qcfg`,
  `a64modem.status`, `a64modem.control`, `a64modem.driver` and
  `a64modem.terminal_modem`.
  - These modules split the modem's output into lines.
  - They track what the modem reports: SIM PIN state, the call list, ring and
    no-carrier counters, and persistent `QCFG` settings.
  - They issue one AT command at a time to bring the modem in line with a
    configuration node. That covers unlocking the SIM, dialling, accepting or
    rejecting calls, playing a command on each ring, and powering down. It
    also covers rebooting the modem after a `QCFG` setting was changed.
- **Power sequencing and supervision**: `a64modem.power` and
  `a64modem.manager`.
  - These modules drive the modem's control pins through the power-up and
    power-down sequences.
  - `ModemManager` combines power control with the AT driver and handles
    command timeouts and state reports.
- **Pin I/O**: `a64modem.pin_types`, `a64modem.pio` and
  `a64modem.pio_driver`.
  - These modules parse pin declarations (`<in>`, `<out>`, `<select>`).
  - They program the configuration, data, pull and IRQ registers of the PIO
    banks.
  - They assign pins to clients by label.
- **System-control processor**: `a64modem.scp`.
  - This module queues requests from sessions towards the SCP.
  - It exchanges byte-swizzled data through shared buffers and passes each
    response back to the session that issued the request.

Configuration and reports are `xml.etree.ElementTree.Element` nodes.

## The AT-protocol driver

`Driver` works with two channels, which you provide:

- a **command channel**, which has `send_command_to_modem(command)`;
- a **response channel**, which has `read_from_modem(size)`. It returns bytes,
  or `b""` when nothing more is available.

`TerminalModem` provides both channels on top of any object with
`write(data) -> int` and `read(size) -> bytes`. It appends `"\r\n"` to each
command. A command longer than `max_command_len` bytes is cut down to that
length, and a warning is logged.

```python
import xml.etree.ElementTree as ET

from a64modem.driver import Driver
from a64modem.terminal_modem import TerminalModem

modem = TerminalModem(terminal, max_command_len=256)
driver = Driver(max_line_len=256)
driver.qcfg.add_entry("usbnet", "1")

config = ET.fromstring('<config pin="placeholder"><call number="+490000000"/></config>')

# Call whenever the configuration changes, data arrives, or a poll timer fires.
driver.apply(config, modem, modem)

report = ET.Element("state")
driver.generate_report(report)
print(ET.tostring(report, encoding="unicode"))
```

### Configuration attributes and sub nodes

| Item | Effect |
| --- | --- |
| `pin` attribute | Sent to the modem with `AT+CPIN=` when the modem asks for a SIM PIN. |
| `power="off"` | Issues `AT+QPOWD`. |
| `<call number="..."/>` | Dials the number. |
| `<call state="accepted"/>` | Accepts an incoming call. |
| `<call state="rejected"/>` | Hangs up. |
| Removing `<call>` | Hangs up a call that was dialled. |
| `<ring>COMMAND</ring>` | Sends `COMMAND` once for each new `RING` from the modem. |

### The report

The report node can get these attributes:

- `ring_count` and `no_carrier_count`;
- `sim`;
- `pin`, with the value `ok` or `required`;
- `pin_remaining_attempts`.

It can also get a `<call number="..." state="..."/>` sub node.

### Keeping the driver going between calls

Between calls to `apply`, use these methods:

- Use `driver.response_outstanding()` and `driver.command_timeout_ms()` to
  decide when to give up on a command. Then call `driver.cancel_command()`.
- While `driver.outbound()` is true, call `driver.invalidate_call_list()`
  regularly to poll the state of the call being dialled.
- Use `driver.powering_down()` and `driver.powered_down()` to follow an
  orderly shutdown.
- `driver.busy_count()` counts the answers that mean "try again later".

The lower layers can also be used on their own:

- `ReadBuffer` turns received bytes into `Line` objects.
- `Status` updates itself from lines.
- `Control` decides the next command.
- `comma_separated_element` splits response fields and drops double quotes.

## Power supervision

`Power(pins, delayer)` drives the power sequences.

- `pins` has `status()`, which is high while the modem is off, and
  `set(name, level)` for the control pins `battery`, `dtr`, `enable`,
  `host-ready`, `pwrkey` and `reset`.
- `delayer` has `msleep(ms)`.

`ModemManager(power, clock, modem_factory, reporter)` ties everything
together.

- `clock` has `elapsed_ms()` and `trigger_once(us)`. The manager asks for
  `handle_timer()` to be called after the given time.
- `modem_factory()` returns an object with both channel methods. It is called
  once the modem is powered on.
- `reporter`, if given, receives the report element after each change.

Pass configuration updates to `handle_config(config)` and timer expiries to
`handle_timer()`. The configuration node takes these boolean attributes:

- `power`
- `at_protocol`
- `verbose`

`generate_report()` returns a `state` element. It has these attributes:

- `power`, with the value `starting up`, `on`, `shutting down` or `off`;
- `startup_seconds` or `shutdown_seconds`.

It also carries the AT driver's report.

## Pin I/O

`Pio` works on two `RegisterBlock` instances, one for the main PIO range and
one for the R_PIO range. `PioDriver` applies pin declarations to it:

```python
import xml.etree.ElementTree as ET

from a64modem.pin_types import Direction
from a64modem.pio import Pio, RegisterBlock
from a64modem.pio_driver import PioDriver

pio_driver = PioDriver(Pio(RegisterBlock(), RegisterBlock()))
config = ET.fromstring(
    '<config>'
    '  <out name="pwrkey" bank="B" index="3"/>'
    '  <in  name="status" bank="H" index="9" pull="up"/>'
    '  <policy label="modem -> pwrkey" pin="pwrkey"/>'
    '</config>'
)
pio_driver.apply_config(config)
pin = pio_driver.assigned_pin("modem -> pwrkey", Direction.OUT)
pio_driver.acquire_pin(pin, Direction.OUT)
```

Errors are reported as follows:

- `ServiceDenied` is raised when no policy or no pin matches a label.
- `InvalidPinDeclaration` marks a malformed declaration. Such a declaration
  leaves its pin disabled.

## System-control processor

`ScpDriver(mailbox, inbox, outbox)` uses a `Mailbox` and two `SharedBuffer`s.

1. Sessions are created with `create_session(label)`.
2. A session submits a request with `request(data)`. It reads the reply with
   `response()`, which returns `None` while the reply is outstanding.
3. A reply arrives when `Mailbox.post_from_scp(seq)` is followed by
   `handle_irq()`.

A reply that is too large raises `ScpError`.

## What the package does not do

- There is no command-line program or service.
- Nothing touches real hardware:
  - registers, the mailbox and the shared buffers live in memory;
  - terminals, pins, clocks and timers are objects that you supply.
- Clock gating, reset lines and PMIC power domains of the A64 are not covered.

## Tests

The test suite uses pytest. Install it with the `test` extra and run `pytest`.