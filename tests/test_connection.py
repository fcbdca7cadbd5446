"""Tests for ConnectionManager lifecycle, connect sequence and transactions."""
import unittest
from unittest.mock import MagicMock

from fakes import CONNECT_SEQUENCE, InstantDelay, RecordingTransport

from tmc_sdk.config import ConnectionConfig, DeviceIdentity
from tmc_sdk.device.connection import ConnectionManager
from tmc_sdk.errors import (
    DEVICE_UNAVAILABLE,
    ProtocolError,
    Stage,
    TimingError,
    TransportError,
)
from tmc_sdk.models import ConnectionState
from tmc_sdk.transport.base import FlowControl, Parity

IDENTITY = DeviceIdentity(0x0403, 0xFAF0, "29252712")


def make_manager(transport=None, reporter=None, **config):
    transport = transport or RecordingTransport()
    delay = InstantDelay()
    conn = ConnectionManager(transport, IDENTITY, ConnectionConfig(**config),
                             reporter=reporter, delay=delay)
    return conn, transport, delay


class TestOpenClose(unittest.TestCase):
    """Tests for open() and close()."""

    def test_open_close_open(self):
        conn, transport, _ = make_manager()
        conn.open()
        self.assertEqual(conn.state, ConnectionState.OPENED)
        conn.close()
        self.assertEqual(conn.state, ConnectionState.DISCONNECTED)
        conn.open()
        self.assertTrue(conn.is_opened)
        self.assertEqual(transport.names, ["open", "close", "open"])
        self.assertEqual(transport.calls[0][1], (0x0403, 0xFAF0, "29252712"))

    def test_open_twice_is_noop(self):
        conn, transport, _ = make_manager()
        conn.open()
        conn.open()
        self.assertEqual(transport.names, ["open"])

    def test_open_failure_keeps_raw_code(self):
        transport = RecordingTransport()
        transport.fail("open", -3)
        conn, _, _ = make_manager(transport)
        with self.assertRaises(TransportError) as ctx:
            conn.open()
        self.assertEqual(ctx.exception.code, -3)
        self.assertEqual(ctx.exception.stage, Stage.OPEN)
        self.assertFalse(conn.is_opened)

    def test_close_when_not_opened(self):
        conn, transport, _ = make_manager()
        conn.close()
        self.assertEqual(transport.names, [])

    def test_close_failure_still_disconnects(self):
        transport = RecordingTransport()
        transport.fail("close", -2)
        conn, _, _ = make_manager(transport)
        conn.connect()
        with self.assertRaises(TransportError) as ctx:
            conn.close()
        self.assertEqual(ctx.exception.code, -2)
        self.assertEqual(ctx.exception.stage, Stage.CLOSE)
        self.assertEqual(conn.state, ConnectionState.DISCONNECTED)

    def test_identity_change_closes(self):
        conn, transport, _ = make_manager()
        conn.connect()
        conn.serial = "00000001"
        self.assertEqual(conn.state, ConnectionState.DISCONNECTED)
        self.assertEqual(transport.names[-1], "close")
        self.assertEqual(conn.identity.serial, "00000001")

    def test_identity_change_when_close_fails(self):
        """The new identity is used on the next open even if close failed."""
        conn, transport, _ = make_manager()
        conn.connect()
        transport.fail("close", -2)
        with self.assertRaises(TransportError):
            conn.serial = "00000002"
        self.assertEqual(conn.identity.serial, "00000002")
        self.assertEqual(conn.state, ConnectionState.DISCONNECTED)

        del transport.faults["close"]
        transport.reset_calls()
        conn.connect()
        self.assertEqual(transport.calls[0], ("open", (0x0403, 0xFAF0, "00000002")))

    def test_same_identity_keeps_connection(self):
        conn, transport, _ = make_manager()
        conn.connect()
        conn.identity = DeviceIdentity(0x0403, 0xFAF0, "29252712")
        self.assertTrue(conn.is_connected)

    def test_context_manager_closes(self):
        conn, transport, _ = make_manager()
        with conn:
            conn.open()
        self.assertEqual(transport.names, ["open", "close"])
        self.assertFalse(conn.is_opened)


class TestConnect(unittest.TestCase):
    """Tests for the connect sequence."""

    def test_sequence(self):
        conn, transport, delay = make_manager(baud_rate=9600)
        conn.connect()
        self.assertEqual(transport.names, ["open"] + CONNECT_SEQUENCE)
        args = dict(transport.calls)
        self.assertEqual(args["set_baudrate"], (9600,))
        self.assertEqual(args["set_line_property"], (8, 1, Parity.NONE))
        self.assertEqual(args["set_flow_control"], (FlowControl.RTS_CTS,))
        self.assertEqual(args["set_rts"], (True,))
        self.assertEqual(delay.sleeps, [50, 50])
        self.assertEqual(conn.state, ConnectionState.CONNECTED)
        self.assertEqual(conn.chip_id, 0x12345678)

    def test_second_connect_does_nothing(self):
        conn, transport, _ = make_manager()
        conn.connect()
        transport.reset_calls()
        conn.connect()
        self.assertEqual(transport.calls, [])

    def test_connect_when_already_opened(self):
        conn, transport, _ = make_manager()
        conn.open()
        conn.connect()
        self.assertEqual(transport.names.count("open"), 1)

    def test_step_failure_codes(self):
        """Each failing step raises in its own band and stops the sequence."""
        cases = [
            ("read_chipid", -1, -21),
            ("set_baudrate", -1, -31),
            ("set_line_property", -1, -41),
            ("flush", -2, -52),
            ("reset", -1, -61),
            ("set_flow_control", -1, -71),
            ("set_rts", -1, -81),
        ]
        for method, raw, code in cases:
            with self.subTest(method=method):
                transport = RecordingTransport()
                transport.fail(method, raw)
                conn, _, _ = make_manager(transport)
                with self.assertRaises(TransportError) as ctx:
                    conn.connect()
                self.assertEqual(ctx.exception.code, code)
                self.assertEqual(ctx.exception.source, "connect")
                self.assertEqual(transport.names[-1], method)
                self.assertFalse(conn.is_connected)
                self.assertTrue(conn.is_opened)

    def test_device_unavailable_passes_through(self):
        transport = RecordingTransport()
        transport.fail("set_baudrate", DEVICE_UNAVAILABLE)
        conn, _, _ = make_manager(transport)
        with self.assertRaises(TransportError) as ctx:
            conn.connect()
        self.assertEqual(ctx.exception.code, -666)

    def test_open_failure_stops_connect(self):
        transport = RecordingTransport()
        transport.fail("open", -4)
        conn, _, _ = make_manager(transport)
        with self.assertRaises(TransportError) as ctx:
            conn.connect()
        self.assertEqual(ctx.exception.code, -4)
        self.assertEqual(transport.names, ["open"])

    def test_pre_flush_sleep_cancelled(self):
        conn, transport, delay = make_manager()
        delay.cancel()
        with self.assertRaises(TimingError) as ctx:
            conn.connect()
        self.assertEqual(ctx.exception.code, -49)
        self.assertNotIn("flush", transport.names)

    def test_post_flush_sleep_cancelled(self):
        conn, transport, delay = make_manager()
        transport.flush = lambda: delay.cancel()
        with self.assertRaises(TimingError) as ctx:
            conn.connect()
        self.assertEqual(ctx.exception.code, -59)
        self.assertNotIn("reset", transport.names)

    def test_failure_is_reported(self):
        reporter = MagicMock()
        transport = RecordingTransport()
        transport.fail("reset", -1)
        conn, _, _ = make_manager(transport, reporter=reporter)
        with self.assertRaises(TransportError):
            conn.connect()
        reporter.assert_called_once()
        source, _, code = reporter.call_args[0]
        self.assertEqual(source, "connect")
        self.assertEqual(code, -61)

    def test_ensure_connected_reports_source(self):
        reporter = MagicMock()
        transport = RecordingTransport()
        transport.fail("read_chipid", -1)
        conn, _, _ = make_manager(transport, reporter=reporter)
        with self.assertRaises(TransportError):
            conn.ensure_connected("get_pz_status")
        reporter.assert_called_with("get_pz_status", "connect failed", -21)


class TestTransact(unittest.TestCase):
    """Tests for write-then-read transactions."""

    def setUp(self):
        self.conn, self.transport, _ = make_manager()
        self.conn.connect()
        self.transport.reset_calls()

    def test_write_only(self):
        self.assertEqual(self.conn.transact("identify", b"\x23\x02\x00\x00\x50\x01"), b"")
        self.assertEqual(self.transport.names, ["write"])
        self.assertEqual(self.transport.written, [b"\x23\x02\x00\x00\x50\x01"])

    def test_read_exact(self):
        self.transport.queue(bytes(range(6)))
        self.assertEqual(self.conn.transact("get", bytes(6), 6), bytes(range(6)))

    def test_accumulates_chunks(self):
        self.transport.queue(bytes(4), bytes(range(6)), bytes(6))
        data = self.conn.transact("get_pz_status", bytes(6), 16)
        self.assertEqual(data, bytes(4) + bytes(range(6)) + bytes(6))

    def test_short_read(self):
        conn, transport, _ = make_manager(read_timeout_ms=0)
        conn.connect()
        transport.queue(bytes(3))
        with self.assertRaises(ProtocolError) as ctx:
            conn.transact("get_pz_status", bytes(6), 16)
        self.assertEqual(ctx.exception.code, -300)
        self.assertEqual(ctx.exception.received, 3)

    def test_long_read(self):
        self.transport.queue(bytes(20))
        with self.assertRaises(ProtocolError) as ctx:
            self.conn.transact("get_pz_status", bytes(6), 16)
        self.assertEqual(ctx.exception.code, -300)

    def test_write_failure(self):
        self.transport.fail("write", -4)
        with self.assertRaises(TransportError) as ctx:
            self.conn.transact("identify", bytes(6))
        self.assertEqual(ctx.exception.code, -104)
        self.assertEqual(ctx.exception.source, "identify")

    def test_read_failure(self):
        self.transport.fail("read", -1)
        with self.assertRaises(TransportError) as ctx:
            self.conn.transact("get_pz_status", bytes(6), 16)
        self.assertEqual(ctx.exception.code, -201)

    def test_unavailable_passes_through(self):
        self.transport.fail("write", DEVICE_UNAVAILABLE)
        with self.assertRaises(TransportError) as ctx:
            self.conn.transact("identify", bytes(6))
        self.assertEqual(ctx.exception.code, -666)

    def test_oversized_frame(self):
        with self.assertRaises(ValueError):
            self.conn.transact("x", bytes(257))

    def test_drain(self):
        self.transport.queue(bytes(6))
        self.assertEqual(self.conn.drain("set_channel_enable_state"), 6)
        self.assertEqual(self.conn.drain("set_channel_enable_state"), 0)

    def test_drain_failure(self):
        self.transport.fail("read", -2)
        with self.assertRaises(TransportError) as ctx:
            self.conn.drain("set_channel_enable_state")
        self.assertEqual(ctx.exception.code, -202)


if __name__ == '__main__':
    unittest.main()
