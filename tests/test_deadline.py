"""Tests for deadlines and the shared wait primitive."""

import pytest

from smartmeter_mcp.errors import LinkClosed
from smartmeter_mcp.utils.deadline import Deadline, DeadlineExpired, wait_line

from conftest import Delay


def test_deadline_expires_and_resets(clock):
    deadline = Deadline(3.0, clock=clock)
    clock.advance(2.0)
    assert not deadline.expired
    assert deadline.remaining() == pytest.approx(1.0)
    deadline.reset()
    clock.advance(2.5)
    assert not deadline.expired
    clock.advance(0.5)
    assert deadline.expired
    assert deadline.remaining() == 0.0


def test_wait_line_returns_next_line(modem, clock):
    modem.feed(Delay(1.0), "OK")
    assert wait_line(modem, Deadline(3.0, clock=clock)) == "OK"
    assert clock.now == pytest.approx(1.0)


def test_wait_line_reports_earliest_deadline(modem, clock):
    total = Deadline(20.0, name="total", clock=clock)
    attempt = Deadline(10.0, name="attempt", clock=clock)
    with pytest.raises(DeadlineExpired) as excinfo:
        wait_line(modem, total, attempt)
    assert excinfo.value.deadline is attempt
    assert clock.now == pytest.approx(10.0)


def test_wait_line_prefers_argument_order_on_tie(modem, clock):
    first = Deadline(5.0, name="first", clock=clock)
    second = Deadline(5.0, name="second", clock=clock)
    with pytest.raises(DeadlineExpired) as excinfo:
        wait_line(modem, first, second)
    assert excinfo.value.deadline is first


def test_wait_line_propagates_closure(modem, clock):
    modem.closed = True
    with pytest.raises(LinkClosed):
        wait_line(modem, Deadline(1.0, clock=clock))


def test_wait_line_needs_a_deadline(modem):
    with pytest.raises(ValueError):
        wait_line(modem)
