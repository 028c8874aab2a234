"""Tests for the Pi command facade."""

import threading
import time

import pytest

from pigpiod_mcp.client import Pi, connect
from pigpiod_mcp.protocol.commands import Command, Edge, Level, Mode, Pull

from conftest import FakeSocket, record


def _pi(daemon, results=None, *extra):
    sock = FakeSocket(results)
    daemon(sock, *extra)
    return connect("pi", 8888), sock


def test_connect_opens_socket(daemon):
    """connect() returns an open handle for the endpoint."""
    pi, _ = _pi(daemon)
    assert pi.connected
    assert pi.pi_id == "pi:8888"
    daemon.mock.assert_called_once_with(("pi", 8888), timeout=5.0)


def test_connect_failure(daemon):
    """An unreachable daemon raises ConnectionError."""
    daemon(OSError("refused"))
    with pytest.raises(ConnectionError):
        connect("pi", 8888)


@pytest.mark.parametrize(
    "call, expected",
    [
        (lambda pi: pi.set_mode(17, Mode.OUTPUT), (Command.MODES, 17, 1)),
        (lambda pi: pi.get_mode(17), (Command.MODEG, 17, 0)),
        (lambda pi: pi.set_pull_up_down(4, Pull.UP), (Command.PUD, 4, 2)),
        (lambda pi: pi.read(4), (Command.READ, 4, 0)),
        (lambda pi: pi.write(4, Level.HIGH), (Command.WRITE, 4, 1)),
        (lambda pi: pi.set_watchdog(4, 500), (Command.WDOG, 4, 500)),
        (lambda pi: pi.read_bank_1(), (Command.BR1, 0, 0)),
        (lambda pi: pi.read_bank_2(), (Command.BR2, 0, 0)),
        (lambda pi: pi.get_current_tick(), (Command.TICK, 0, 0)),
        (lambda pi: pi.get_hardware_revision(), (Command.HWVER, 0, 0)),
        (lambda pi: pi.get_pigpio_version(), (Command.PIGPV, 0, 0)),
        (lambda pi: pi.spi_close(2), (Command.SPIC, 2, 0)),
        (lambda pi: pi.serial_close(2), (Command.SERC, 2, 0)),
        (lambda pi: pi.serial_read_byte(2), (Command.SERRB, 2, 0)),
        (lambda pi: pi.serial_write_byte(2, 0x41), (Command.SERWB, 2, 0x41)),
        (lambda pi: pi.serial_data_available(2), (Command.SERDA, 2, 0)),
    ],
)
def test_simple_commands(daemon, call, expected):
    """Each operation maps to one command with its parameters."""
    pi, sock = _pi(daemon)
    call(pi)
    assert sock.sent == [expected + (b"",)]


def test_daemon_error_returned(daemon):
    """Negative results are passed back to the caller."""
    pi, _ = _pi(daemon, {Command.MODES: -4})
    assert pi.set_mode(4, 9) == -4


def test_bank_reads_are_unsigned(daemon):
    """Bit masks with bit 31 set come back as positive integers."""
    pi, _ = _pi(daemon, {Command.BR1: -1})
    assert pi.read_bank_1() == 0xFFFFFFFF


@pytest.mark.parametrize(
    "call",
    [
        lambda pi: pi.set_mode(None, Mode.OUTPUT),
        lambda pi: pi.set_mode(4, None),
        lambda pi: pi.write(4, "1"),
        lambda pi: pi.read(True),
        lambda pi: pi.set_watchdog(4, None),
    ],
)
def test_missing_argument_not_sent(daemon, call):
    """Missing or non-integer arguments fail before reaching the socket."""
    pi, sock = _pi(daemon)
    with pytest.raises(ValueError):
        call(pi)
    assert sock.sent == []


def test_gpio_trigger_sends_level_word(daemon):
    """The trigger level travels as a 4-byte extension word."""
    pi, sock = _pi(daemon)
    pi.gpio_trigger(4, 10, Level.HIGH)
    assert sock.sent == [(Command.TRIG, 4, 10, b"\x01\x00\x00\x00")]


def test_spi_open_sends_flags_word(daemon):
    """SPI flags travel as an extension word; the handle is returned."""
    pi, sock = _pi(daemon, {Command.SPIO: 0})
    assert pi.spi_open(1, 500000, 3) == 0
    assert sock.sent == [(Command.SPIO, 1, 500000, b"\x03\x00\x00\x00")]


def test_spi_read_returns_data(daemon):
    """SPI reads return the count and the bytes that follow the response."""
    pi, _ = _pi(daemon, {Command.SPIR: (3, b"\x01\x02\x03")})
    assert pi.spi_read(0, 3) == (3, b"\x01\x02\x03")


def test_spi_read_error_has_no_data(daemon):
    """A negative count means no payload follows."""
    pi, _ = _pi(daemon, {Command.SPIR: -25})
    assert pi.spi_read(9, 3) == (-25, b"")


def test_spi_write_raw_bytes(daemon):
    """SPI writes carry the raw bytes and their length."""
    pi, sock = _pi(daemon, {Command.SPIW: 2})
    assert pi.spi_write(0, b"\xaa\x55") == 2
    assert sock.sent == [(Command.SPIW, 0, 0, b"\xaa\x55")]


def test_spi_xfer(daemon):
    """A transfer returns as many bytes as were written."""
    pi, sock = _pi(daemon, {Command.SPIX: (2, b"\x10\x20")})
    assert pi.spi_xfer(0, b"\x01\x02") == (2, b"\x10\x20")
    assert sock.sent == [(Command.SPIX, 0, 0, b"\x01\x02")]


def test_serial_open_sends_tty(daemon):
    """The device name is the payload; baud and flags are parameters."""
    pi, sock = _pi(daemon, {Command.SERO: 1})
    assert pi.serial_open("/dev/ttyAMA0", 9600) == 1
    assert sock.sent == [(Command.SERO, 9600, 0, b"/dev/ttyAMA0")]


def test_serial_open_requires_tty(daemon):
    """An empty device name is a programmer error."""
    pi, sock = _pi(daemon)
    with pytest.raises(ValueError):
        pi.serial_open("", 9600)
    assert sock.sent == []


def test_serial_read_and_write(daemon):
    """Serial data moves as raw byte payloads."""
    pi, sock = _pi(daemon, {Command.SERR: (2, b"ok"), Command.SERW: 0})
    assert pi.serial_write(1, b"hi") == 0
    assert pi.serial_read(1, 2) == (2, b"ok")
    assert sock.sent[0] == (Command.SERW, 1, 0, b"hi")


def test_payload_too_large(daemon):
    """Payloads above the daemon's limit are rejected locally."""
    pi, sock = _pi(daemon)
    with pytest.raises(ValueError):
        pi.serial_write(1, bytes(65537))
    assert sock.sent == []


def test_callback_requires_handler(daemon):
    """Registering without a handler is a programmer error."""
    pi, _ = _pi(daemon)
    with pytest.raises(ValueError):
        pi.callback(4, Edge.EITHER)


def test_callback_delivers_edges(daemon):
    """A registered handler receives edges from the notification stream."""
    gate = threading.Event()
    notify = FakeSocket(
        {Command.NOIB: 0},
        stream=record(1 << 4, 100) + record(0, 170),
        gate=gate,
    )
    pi, sock = _pi(daemon, None, notify)
    calls = []
    assert pi.callback(4, Edge.EITHER, lambda *args: calls.append(args)) == 0
    gate.set()
    pi._listener.join(timeout=2.0)
    assert calls == [("pi:8888", 4, 1, 100), ("pi:8888", 4, 0, 170)]
    assert (Command.NB, 0, 1 << 4, b"") in sock.sent


def test_concurrent_callbacks_share_one_stream(daemon):
    """Callbacks registered from two threads on a fresh Pi open one stream."""
    def slow_noib(p1, p2, payload):
        time.sleep(0.2)
        return 0

    notify = FakeSocket({Command.NOIB: slow_noib}, gate=threading.Event())
    spare = FakeSocket({Command.NOIB: 1}, gate=threading.Event())
    pi, sock = _pi(daemon, None, notify, spare)
    threads = [
        threading.Thread(target=pi.callback, args=(gpio, Edge.EITHER, lambda *args: None))
        for gpio in (4, 5)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=2.0)

    assert daemon.mock.call_count == 2
    assert notify.commands() == [Command.NOIB]
    assert spare.sent == []
    assert pi.callbacks() == [4, 5]
    assert sock.commands().count(Command.BR1) == 1
    pi.disconnect()


def test_listening_reports_stream_loss(daemon):
    """listening goes False when the stream ends and True again on re-register."""
    gate = threading.Event()
    first = FakeSocket({Command.NOIB: 0}, gate=gate)
    pi, _ = _pi(daemon, None, first)
    assert not pi.listening
    pi.callback(4, Edge.EITHER, lambda *args: None)
    assert pi.listening
    gate.set()
    pi._listener.join(timeout=2.0)
    assert not pi.listening
    assert pi.callbacks() == []

    daemon(FakeSocket({Command.NOIB: 1}, gate=threading.Event()))
    assert pi.callback(4, Edge.EITHER, lambda *args: None) == 0
    assert pi.listening
    assert pi.callbacks() == [4]
    pi.disconnect()


def test_cancel_callback_without_listener(daemon):
    """Cancelling when nothing was registered sends nothing."""
    pi, sock = _pi(daemon)
    assert pi.cancel_callback(4) == 0
    assert sock.sent == []


def test_disconnect_cancels_watchdogs_and_closes(daemon):
    """Disconnect clears armed watchdogs then closes both sockets."""
    notify = FakeSocket({Command.NOIB: 0}, gate=threading.Event())
    pi, sock = _pi(daemon, None, notify)
    pi.set_watchdog(4, 100)
    pi.set_watchdog(5, 100)
    pi.set_watchdog(5, 0)
    pi.callback(4, Edge.EITHER, lambda *args: None)
    pi.disconnect()

    wdog = [(p1, p2) for c, p1, p2, _ in sock.sent if c == Command.WDOG]
    assert wdog == [(4, 100), (5, 100), (5, 0), (4, 0)]
    assert (Command.NC, 0, 0, b"") in sock.sent
    assert sock.closed and notify.closed
    assert not pi.connected


def test_context_manager(daemon):
    """Using Pi as a context manager opens and disconnects."""
    sock = daemon(FakeSocket())
    with Pi("pi", 8888) as pi:
        assert pi.connected
    assert sock.closed
