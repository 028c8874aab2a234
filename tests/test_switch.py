"""Tests for digital outputs, switches and LEDs."""

from unittest.mock import MagicMock, call

import pytest

from pigpiod_mcp.devices.switch import LED, DigitalOutput, Switch
from pigpiod_mcp.protocol.commands import Level, Mode
from pigpiod_mcp.protocol.errors import DaemonError


def _pi():
    pi = MagicMock()
    pi.set_mode.return_value = 0
    pi.write.return_value = 0
    return pi


def test_output_mode_set_once():
    """OUTPUT mode is configured on the first write only."""
    pi = _pi()
    out = DigitalOutput(pi, 17)
    out.set_output(Level.HIGH)
    out.set_output(Level.LOW)
    assert pi.mock_calls == [
        call.set_mode(17, Mode.OUTPUT),
        call.write(17, Level.HIGH),
        call.write(17, Level.LOW),
    ]


def test_output_mode_refused():
    """A refused mode change raises with the daemon code."""
    pi = _pi()
    pi.set_mode.return_value = -41
    with pytest.raises(DaemonError) as exc:
        DigitalOutput(pi, 17).set_output(Level.HIGH)
    assert exc.value.code == -41
    pi.write.assert_not_called()


def test_output_write_refused():
    """A refused write raises with the daemon code."""
    pi = _pi()
    pi.write.return_value = -3
    with pytest.raises(DaemonError):
        DigitalOutput(pi, 99).set_output(Level.HIGH)


def test_output_requires_gpio():
    """A GPIO number is required."""
    with pytest.raises(ValueError):
        DigitalOutput(_pi(), None)


def test_switch_status_starts_unknown():
    """Status is None until the switch is commanded."""
    assert Switch(_pi(), 17).status is None


def test_switch_on_off():
    """on() drives HIGH and off() drives LOW."""
    pi = _pi()
    sw = Switch(pi, 17)
    sw.on()
    assert sw.status is True
    sw.off()
    assert sw.status is False
    assert pi.write.call_args_list == [call(17, Level.HIGH), call(17, Level.LOW)]


def test_switch_toggle():
    """Toggle flips the last commanded state; unknown counts as off."""
    pi = _pi()
    sw = Switch(pi, 17)
    assert sw.toggle() is True
    assert sw.toggle() is False
    assert pi.write.call_args_list == [call(17, Level.HIGH), call(17, Level.LOW)]


def test_switch_failed_write_keeps_status():
    """A refused write leaves the recorded state alone."""
    pi = _pi()
    sw = Switch(pi, 17)
    sw.on()
    pi.write.return_value = -41
    with pytest.raises(DaemonError):
        sw.off()
    assert sw.status is True


def test_led_behaves_like_switch():
    """An LED is switched the same way."""
    pi = _pi()
    led = LED(pi, 18)
    led.on()
    assert led.status is True
    assert led.gpio == 18
    pi.write.assert_called_once_with(18, Level.HIGH)
