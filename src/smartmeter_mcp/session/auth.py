"""PANA authentication as a timeout-bounded state machine.

::

    IDLE --credentials--> CREDENTIALS_SET --SKJOIN--> JOINING --EVENT 25--> AUTHENTICATED
      |                         |                        |
      +-------------------------+------------------------+----------------> FAILED

While joining, ``EVENT 24`` (PANA failure at the link layer) is expected and
healthy: the join is re-issued. Every line received while joining restarts
the per-attempt deadline; the total deadline keeps running.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from ..errors import JoinFailed, JoinTimeout, SmartMeterError
from ..protocol.commands import (
    build_join,
    build_set_channel,
    build_set_pan_id,
    build_set_password,
    build_set_route_b_id,
)
from ..protocol.parser import EventCode, is_event
from ..utils.deadline import DeadlineExpired
from .driver import CommandDriver

logger = logging.getLogger(__name__)

ATTEMPT_TIMEOUT = 10.0
TOTAL_TIMEOUT = 20.0


class AuthState(Enum):
    IDLE = "idle"
    CREDENTIALS_SET = "credentials_set"
    JOINING = "joining"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


@dataclass
class Credentials:
    """Everything the handshake needs to know about the meter."""

    route_b_id: str
    password: str
    channel: str
    pan_id: str
    address: str

    def __repr__(self) -> str:
        return (
            f"Credentials(route_b_id={self.route_b_id!r}, password=<redacted>, "
            f"channel={self.channel!r}, pan_id={self.pan_id!r}, address={self.address!r})"
        )


class Authenticator:
    """Runs the PANA handshake through a :class:`CommandDriver`."""

    def __init__(
        self,
        driver: CommandDriver,
        credentials: Credentials,
        attempt_timeout: float = ATTEMPT_TIMEOUT,
        total_timeout: float = TOTAL_TIMEOUT,
    ) -> None:
        self._driver = driver
        self.credentials = credentials
        self.attempt_timeout = attempt_timeout
        self.total_timeout = total_timeout
        self.state = AuthState.IDLE
        self.joins = 0

    @property
    def authenticated(self) -> bool:
        return self.state is AuthState.AUTHENTICATED

    def _set_state(self, state: AuthState) -> None:
        logger.debug("PANA state: %s -> %s", self.state.value, state.value)
        self.state = state

    def reset(self) -> None:
        self._set_state(AuthState.IDLE)
        self.joins = 0

    def authenticate(self) -> None:
        """Run the whole handshake.

        A terminal machine (authenticated or failed) restarts from IDLE.

        Raises:
            JoinFailed: The per-attempt or total deadline expired.
            CommandRejected, CommandTimeout, LinkClosed: A command failed;
                the machine is left in FAILED.
        """
        if self.state is not AuthState.IDLE:
            self.reset()
        try:
            self._set_credentials()
            self._join()
        except SmartMeterError:
            self._set_state(AuthState.FAILED)
            raise

    def _set_credentials(self) -> None:
        creds = self.credentials
        for command in (
            build_set_password(creds.password),
            build_set_route_b_id(creds.route_b_id),
            build_set_channel(creds.channel),
            build_set_pan_id(creds.pan_id),
        ):
            self._driver.send(command)
        self._set_state(AuthState.CREDENTIALS_SET)

    def _send_join(self) -> None:
        self._driver.send(build_join(self.credentials.address))
        self.joins += 1

    def _join(self) -> None:
        self._set_state(AuthState.JOINING)
        logger.info("startPANA")
        total = self._driver.deadline(self.total_timeout, JoinTimeout.TOTAL.value)
        attempt = self._driver.deadline(self.attempt_timeout, JoinTimeout.ATTEMPT.value)
        self._send_join()

        while True:
            try:
                line = self._driver.next_line(total, attempt)
            except DeadlineExpired as e:
                kind = JoinTimeout.TOTAL if e.deadline is total else JoinTimeout.ATTEMPT
                raise JoinFailed(kind, e.deadline.seconds) from None

            if is_event(line, EventCode.PANA_COMPLETE):
                self._set_state(AuthState.AUTHENTICATED)
                logger.info("endPANA")
                return
            if is_event(line, EventCode.PANA_FAILED):
                logger.warning("PANA connection error. retrying...")
                self._send_join()
            attempt.reset()
