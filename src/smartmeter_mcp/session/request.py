"""ECHONET Lite request/response over ``SKSENDTO`` and ``ERXUDP``."""

from __future__ import annotations

import logging
import random
import time
from typing import Callable

from ..errors import DatagramFormatError, DecodeError, ReadTimeout, Unauthenticated
from ..protocol.commands import build_send_to
from ..protocol.framing import Frame, correlates, decode_frame, encode_frame
from ..protocol.parser import DATAGRAM_PREFIX, SendStatus, parse_datagram, parse_send_status
from ..utils.deadline import DeadlineExpired
from .driver import CommandDriver

logger = logging.getLogger(__name__)

INITIAL_RETRY_INTERVAL = 0.5
READ_TIMEOUT = 3.0


class RequestEngine:
    """Sends a frame and waits for the correlated response.

    The command form (plain or dual-stack ``SKSENDTO``/``ERXUDP``) is fixed
    at construction.

    Args:
        driver: SK command driver.
        address: IPv6 address of the meter.
        dual_stack: Use the dual-stack edition command form.
        rng: Random source for transaction ids.
        sleep: Called with the backoff interval between send attempts.
        initial_interval: First backoff interval in seconds; doubles per retry.
        read_timeout: Longest gap between lines while waiting for the response.
    """

    def __init__(
        self,
        driver: CommandDriver,
        address: str,
        dual_stack: bool = False,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
        initial_interval: float = INITIAL_RETRY_INTERVAL,
        read_timeout: float = READ_TIMEOUT,
    ) -> None:
        self._driver = driver
        self.address = address
        self.dual_stack = dual_stack
        self._rng = rng or random.Random()
        self._sleep = sleep
        self.initial_interval = initial_interval
        self.read_timeout = read_timeout

    def execute(self, request: Frame) -> Frame:
        """Send ``request`` until the module transmits it, then read the response.

        The transaction id is regenerated before every attempt.

        Raises:
            Unauthenticated: The module has no PANA session with the meter.
            ReadTimeout: The datagram went out but no correlated response came.
            CommandRejected, CommandTimeout, LinkClosed: From the driver.
        """
        interval = self.initial_interval
        while True:
            request.regenerate_transaction_id(self._rng)
            raw = encode_frame(request)
            command = build_send_to(self.address, len(raw), dual_stack=self.dual_stack)
            reply = self._driver.send(command, payload=raw)

            status = parse_send_status(reply)
            if status == SendStatus.NEIGHBOR_SOLICITATION:
                raise Unauthenticated("PANA unconnected? UDP send rejected")
            if status == SendStatus.SUCCESS:
                logger.debug("UDP sent (tid=0x%04X), reading response", request.transaction_id)
                return self._read_response(request)

            logger.warning("Failed sending UDP. Retrying in %gs...", interval)
            self._sleep(interval)
            interval *= 2

    def _read_response(self, request: Frame) -> Frame:
        gap = self._driver.deadline(self.read_timeout, "read")
        while True:
            try:
                line = self._driver.next_line(gap)
            except DeadlineExpired:
                raise ReadTimeout(f"Read timeout ({self.read_timeout:g}sec)") from None
            gap.reset()

            if not line.startswith(DATAGRAM_PREFIX):
                continue
            try:
                datagram = parse_datagram(line, dual_stack=self.dual_stack)
                response = decode_frame(datagram.payload)
            except (DatagramFormatError, DecodeError) as e:
                # PANA packets also arrive as ERXUDP and fail the header check
                logger.debug("Skipping datagram: %s", e)
                continue
            if correlates(request, response):
                return response
            logger.debug("Skipping uncorrelated frame %r", response)
