"""Connection lifecycle and frame transactions for one APT controller.

The controller is reached through an FTDI USB-to-serial bridge chip. The
ConnectionManager owns the transport handle and drives it through:

    DISCONNECTED --open--> OPENED --connect (9 steps)--> CONNECTED
    any state --close--> DISCONNECTED

The connect sequence is: read chip id, set baud rate, set 8-N-1, sleep,
flush, sleep, reset, enable RTS/CTS, assert RTS. Each step that fails
stops the sequence where it is (no rollback) and raises an error whose
code identifies the step.

It also owns the two 256-byte frame buffers and performs the
write-then-accumulate transaction every command goes through.

Note: Not thread-safe. Callers must serialize all calls on one instance.
"""
from __future__ import annotations

import logging
import time
from typing import Optional

from ..config import ConnectionConfig, DeviceIdentity
from ..errors import (
    POST_FLUSH_INTERRUPTED,
    PRE_FLUSH_INTERRUPTED,
    AptError,
    ProtocolError,
    Reporter,
    Stage,
    TimingError,
    TransportError,
    log_reporter,
)
from ..models import ConnectionState
from ..protocol.frame import BUFFER_SIZE
from ..transport.base import FlowControl, Parity, Transport, TransportFault
from .timing import Delay

logger = logging.getLogger(__name__)

DATA_BITS = 8
STOP_BITS = 1


class ConnectionManager:
    """Owns one transport handle and brings the device to a usable state.

    Example:
        >>> from tmc_sdk.transport import FtdiTransport
        >>> conn = ConnectionManager(FtdiTransport(), DeviceIdentity(serial="29252712"))
        >>> with conn:
        ...     conn.connect()
        ...     conn.chip_id
    """

    def __init__(self,
                 transport: Transport,
                 identity: Optional[DeviceIdentity] = None,
                 config: Optional[ConnectionConfig] = None,
                 reporter: Optional[Reporter] = log_reporter,
                 delay: Optional[Delay] = None):
        """Initialize ConnectionManager.

        Args:
            transport: Bridge chip transport
            identity: USB descriptor of the device (default Thorlabs VID/PID, no serial)
            config: Connection tunables (default ConnectionConfig())
            reporter: Diagnostic callback (source, message, code), or None for silence
            delay: Settle delay primitive (default Delay())
        """
        self._transport = transport
        self._identity = identity or DeviceIdentity()
        self._config = config or ConnectionConfig()
        self._reporter = reporter
        self._delay = delay or Delay()

        self._sndbuf = bytearray(BUFFER_SIZE)
        self._rdbuf = bytearray(BUFFER_SIZE)

        self._opened = False
        self._connected = False
        self._chip_id = 0

    # --- Identification and configuration ---

    @property
    def identity(self) -> DeviceIdentity:
        return self._identity

    @identity.setter
    def identity(self, identity: DeviceIdentity) -> None:
        # A new identity needs a fresh open, even if closing the old one fails
        if identity == self._identity or not self._opened:
            self._identity = identity
            return
        try:
            self.close()
        finally:
            self._identity = identity

    @property
    def vendor_id(self) -> int:
        return self._identity.vendor_id

    @vendor_id.setter
    def vendor_id(self, vendor_id: int) -> None:
        self.identity = DeviceIdentity(vendor_id, self._identity.product_id, self._identity.serial)

    @property
    def product_id(self) -> int:
        return self._identity.product_id

    @product_id.setter
    def product_id(self, product_id: int) -> None:
        self.identity = DeviceIdentity(self._identity.vendor_id, product_id, self._identity.serial)

    @property
    def serial(self) -> str:
        return self._identity.serial

    @serial.setter
    def serial(self, serial: str) -> None:
        self.identity = DeviceIdentity(self._identity.vendor_id, self._identity.product_id, serial)

    @property
    def config(self) -> ConnectionConfig:
        return self._config

    @property
    def delay(self) -> Delay:
        return self._delay

    # --- State ---

    @property
    def state(self) -> ConnectionState:
        if self._connected:
            return ConnectionState.CONNECTED
        if self._opened:
            return ConnectionState.OPENED
        return ConnectionState.DISCONNECTED

    @property
    def is_opened(self) -> bool:
        return self._opened

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def chip_id(self) -> int:
        """Chip id of the bridge chip, read during connect()."""
        return self._chip_id

    # --- Lifecycle ---

    def open(self, identity: Optional[DeviceIdentity] = None) -> None:
        """Open the USB device matching the identity.

        Raises:
            TransportError: With the transport's code unchanged.
        """
        if identity is not None:
            self.identity = identity
        if self._opened:
            return

        ident = self._identity
        try:
            self._transport.open(ident.vendor_id, ident.product_id, ident.serial)
        except TransportFault as e:
            self._opened = False
            raise self._report(
                TransportError("unable to open device", e.code, Stage.OPEN, "open")
            ) from e

        self._opened = True
        logger.info("Opened device %s", ident)

    def close(self) -> None:
        """Close the device. Always leaves the manager DISCONNECTED.

        Raises:
            TransportError: With the transport's code unchanged, after the
                state has already been reset.
        """
        if not self._opened:
            return
        try:
            self._transport.close()
        except TransportFault as e:
            raise self._report(
                TransportError("unable to close device", e.code, Stage.CLOSE, "close")
            ) from e
        finally:
            self._opened = False
            self._connected = False
            logger.info("Closed device %s", self._identity)

    def connect(self, identity: Optional[DeviceIdentity] = None) -> None:
        """Open (if needed) and initialize the bridge chip.

        Does nothing if already connected.

        Raises:
            TransportError: A step failed; the code identifies the step.
            TimingError: A settle delay was interrupted.
        """
        if identity is not None:
            self.identity = identity
        if self._connected:
            return
        if not self._opened:
            self.open()

        transport = self._transport
        config = self._config

        self._chip_id = self._step(Stage.READ_CHIPID, "unable to read chip id", transport.read_chipid)
        self._step(Stage.SET_BAUDRATE, "unable to set baud rate", transport.set_baudrate, config.baud_rate)
        self._step(Stage.SET_LINE_PROPERTY, "unable to set line property",
                   transport.set_line_property, DATA_BITS, STOP_BITS, Parity.NONE)
        self.settle(config.pre_flush_delay_ms, Stage.PRE_FLUSH_SLEEP, PRE_FLUSH_INTERRUPTED, "connect")
        self._step(Stage.FLUSH, "unable to flush", transport.flush)
        self.settle(config.post_flush_delay_ms, Stage.POST_FLUSH_SLEEP, POST_FLUSH_INTERRUPTED, "connect")
        self._step(Stage.RESET, "unable to reset device", transport.reset)
        self._step(Stage.SET_FLOW_CONTROL, "unable to set flow control",
                   transport.set_flow_control, FlowControl.RTS_CTS)
        self._step(Stage.SET_RTS, "unable to set RTS", transport.set_rts, True)

        self._connected = True
        logger.info("Connected to %s (chip id 0x%08X)", self._identity, self._chip_id)

    def ensure_connected(self, source: str) -> None:
        """Connect if not already connected, on behalf of operation `source`."""
        if self._connected:
            return
        try:
            self.connect()
        except AptError as e:
            self.report(source, "connect failed", e.code)
            raise

    # --- Frame transactions ---

    def transact(self, source: str, frame: bytes, response_length: int = 0) -> bytes:
        """Write one request frame and read back the response.

        Data frames are written like short frames, without a flush or
        settle first. Unverified on hardware.

        Args:
            source: Operation name, used in errors and diagnostics
            frame: Complete request frame (header plus payload)
            response_length: Exact number of response bytes expected,
                0 to skip reading

        Returns:
            A copy of the response bytes (empty if none expected)

        Raises:
            TransportError: Write or read failed.
            ProtocolError: The response length did not match.
        """
        size = len(frame)
        if size > BUFFER_SIZE:
            raise ValueError(f"Frame of {size} bytes exceeds {BUFFER_SIZE}-byte buffer")

        self._sndbuf[:size] = frame
        logger.debug("%s TX (%d bytes): %s", source, size, self._sndbuf[:size].hex(" "))
        try:
            self._transport.write(bytes(self._sndbuf[:size]))
        except TransportFault as e:
            raise self._report(
                TransportError("unable to write data", e.code, Stage.WRITE, source)
            ) from e

        if response_length <= 0:
            return b""
        return self._read_response(source, response_length)

    def drain(self, source: str) -> int:
        """Read and discard whatever the device has sent.

        An empty read is not an error.

        Returns:
            Number of bytes discarded
        """
        try:
            chunk = self._transport.read(BUFFER_SIZE)
        except TransportFault as e:
            raise self._report(
                TransportError("unable to read data", e.code, Stage.READ, source)
            ) from e
        if chunk:
            logger.debug("%s drained (%d bytes): %s", source, len(chunk), chunk.hex(" "))
        return len(chunk)

    def settle(self, ms: int, stage: Stage, code: int, source: str) -> None:
        """Sleep for a settle delay.

        Raises:
            TimingError: The delay was cancelled.
        """
        if not self._delay.sleep_ms(ms):
            raise self._report(TimingError("settle delay interrupted", code, stage, source))

    def report(self, source: str, message: str, code: Optional[int] = None) -> None:
        if self._reporter is not None:
            self._reporter(source, message, code)

    def _read_response(self, source: str, expected: int) -> bytes:
        deadline = time.monotonic() + self._config.read_timeout_ms / 1000.0
        total = 0
        while total < expected:
            try:
                chunk = self._transport.read(BUFFER_SIZE - total)
            except TransportFault as e:
                raise self._report(
                    TransportError("unable to read data", e.code, Stage.READ, source)
                ) from e

            chunk = chunk[:BUFFER_SIZE - total]
            self._rdbuf[total:total + len(chunk)] = chunk
            total += len(chunk)

            if total >= BUFFER_SIZE:
                break
            if total < expected and time.monotonic() >= deadline:
                break

        logger.debug("%s RX (%d bytes): %s", source, total, self._rdbuf[:total].hex(" "))
        if total != expected:
            raise self._report(ProtocolError(expected, total, source))
        return bytes(self._rdbuf[:expected])

    def _step(self, stage: Stage, message: str, fn, *args):
        logger.debug("connect: %s", stage.value)
        try:
            return fn(*args)
        except TransportFault as e:
            raise self._report(TransportError(message, e.code, stage, "connect")) from e

    def _report(self, error: AptError) -> AptError:
        self.report(error.source, str(error), error.code)
        return error

    # --- Context manager ---

    def __enter__(self) -> ConnectionManager:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"ConnectionManager({self._identity}, {self.state.value})"
