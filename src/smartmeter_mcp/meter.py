"""Polling flow: read meter properties, authenticating on demand.

The first read is attempted straight away, since the module usually keeps
its PANA session between polls. Only if that read fails is the handshake
run, after which the read is retried a bounded number of times.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Sequence, TextIO

from .errors import (
    CommandRejected,
    CommandTimeout,
    ReadTimeout,
    SmartMeterError,
    Unauthenticated,
)
from .models.config import MeterConfig
from .models.metrics import METRIC_PROPERTIES, properties_to_metrics
from .protocol.commands import build_link_local
from .protocol.framing import ClassCode, Frame, ServiceCode, build_request
from .session.auth import Authenticator, Credentials
from .session.driver import CommandDriver
from .session.request import RequestEngine
from .transport.serial_connection import SerialConnection

logger = logging.getLogger(__name__)

MAX_READ_ATTEMPTS = 3

# Errors after which re-authenticating and retrying the read may help
RECOVERABLE_ERRORS = (CommandTimeout, CommandRejected, Unauthenticated, ReadTimeout)


class SmartMeter:
    """A Route B smart electric energy meter reached through a Wi-SUN module.

    Usage::

        with SmartMeter(MeterConfig.from_yaml("meter.yaml")) as meter:
            print(meter.fetch_metrics())
    """

    def __init__(
        self,
        config: MeterConfig,
        connection: SerialConnection | None = None,
        rng: random.Random | None = None,
        echo: TextIO | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self._connection = connection or SerialConnection(
            config.serial_port, baud_rate=config.baud_rate
        )
        self._rng = rng
        self._echo = echo
        self._clock = clock
        self._sleep = sleep
        self.driver: CommandDriver | None = None
        self.authenticator: Authenticator | None = None
        self.engine: RequestEngine | None = None

    @property
    def connected(self) -> bool:
        return self.driver is not None and self._connection.connected

    @property
    def authenticated(self) -> bool:
        return self.authenticator is not None and self.authenticator.authenticated

    def open(self) -> None:
        """Open the serial port and wire up the session layer.

        Raises:
            ValueError: The configuration is incomplete.
            ConnectionError: The port could not be opened.
        """
        self.config.validate()
        self._connection.open()
        self.driver = CommandDriver(
            self._connection.lines,
            self._connection,
            debug=self.config.debug,
            echo=self._echo,
            clock=self._clock,
        )
        try:
            address = self.config.address or self.resolve_address(self.config.mac_address)
        except SmartMeterError:
            self.close()
            raise
        self.authenticator = Authenticator(
            self.driver,
            Credentials(
                route_b_id=self.config.route_b_id,
                password=self.config.route_b_password,
                channel=self.config.channel,
                pan_id=self.config.pan_id,
                address=address,
            ),
        )
        self.engine = RequestEngine(
            self.driver,
            address,
            dual_stack=self.config.dual_stack,
            rng=self._rng,
            sleep=self._sleep,
        )

    def close(self) -> None:
        self._connection.close()
        self.driver = None
        self.authenticator = None
        self.engine = None

    def __enter__(self) -> SmartMeter:
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _require_open(self) -> tuple[CommandDriver, Authenticator, RequestEngine]:
        if self.driver is None or self.authenticator is None or self.engine is None:
            raise ConnectionError("Smart meter connection is not open")
        return self.driver, self.authenticator, self.engine

    def resolve_address(self, mac_address: str) -> str:
        """Derive the meter's IPv6 link-local address from its MAC with SKLL64."""
        if self.driver is None:
            raise ConnectionError("Smart meter connection is not open")
        reply = self.driver.send(build_link_local(mac_address))
        address = reply.strip()
        logger.info("Resolved %s to %s", mac_address, address)
        return address

    def authenticate(self) -> None:
        """Run the PANA handshake (see :class:`Authenticator`)."""
        driver, authenticator, _ = self._require_open()
        driver.drain()
        authenticator.authenticate()

    def _execute(self, request: Frame) -> dict[int, bytes]:
        # stale lines from an abandoned exchange must not be read as this reply
        driver, _, engine = self._require_open()
        driver.drain()
        return engine.execute(request).values()

    def read_properties(self, codes: Sequence[int]) -> dict[int, bytes]:
        """Get the given properties from the meter.

        Returns:
            Property code -> raw value bytes of the correlated response.

        Raises:
            JoinFailed, LinkClosed: Authentication or the link failed.
            SmartMeterError: The read kept failing after authentication.
        """
        self._require_open()
        request = build_request(
            ClassCode.SMART_ELECTRIC_METER, ServiceCode.GET, list(codes), rng=self._rng
        )

        try:
            return self._execute(request)
        except RECOVERABLE_ERRORS as e:
            logger.warning("ECHONET request error: %s", e)

        self.authenticate()

        last_error: SmartMeterError | None = None
        for _ in range(MAX_READ_ATTEMPTS):
            try:
                return self._execute(request)
            except RECOVERABLE_ERRORS as e:
                logger.warning("ECHONET request error: %s", e)
                last_error = e
        raise SmartMeterError(
            f"ECHONET request failed after {MAX_READ_ATTEMPTS} attempts"
        ) from last_error

    def fetch_metrics(self) -> dict[str, float]:
        """Read instantaneous power and current as named metrics."""
        return properties_to_metrics(self.read_properties(METRIC_PROPERTIES))
