"""Tests for TMCController operations."""
import unittest
from unittest.mock import MagicMock, patch

from fakes import CONNECT_SEQUENCE, InstantDelay, RecordingTransport

from tmc_sdk.config import ConnectionConfig, DeviceIdentity
from tmc_sdk.device.controller import TMCController
from tmc_sdk.errors import ProtocolError, Stage, TimingError, TransportError, ValidationError
from tmc_sdk.models import EnableState, KMMIParams, TPZIOSettings, VoltLimit
from tmc_sdk.protocol.commands import build_set_mmi_params


def make_controller(reporter=None, **config):
    transport = RecordingTransport()
    delay = InstantDelay()
    tmc = TMCController(transport, DeviceIdentity(serial="29252712"),
                        ConnectionConfig(**config), reporter=reporter, delay=delay)
    return tmc, transport, delay


class TestValidation(unittest.TestCase):
    """Invalid input is rejected before any I/O."""

    def test_invalid_enable_state(self):
        reporter = MagicMock()
        tmc, transport, _ = make_controller(reporter)
        with self.assertRaises(ValidationError) as ctx:
            tmc.set_channel_enable_state(1, EnableState.INVALID)
        self.assertEqual(ctx.exception.code, -400)
        self.assertEqual(ctx.exception.source, "set_channel_enable_state")
        self.assertEqual(transport.calls, [])
        reporter.assert_called_once()

    def test_enable_state_none(self):
        reporter = MagicMock()
        tmc, transport, _ = make_controller(reporter)
        with self.assertRaises(ValidationError) as ctx:
            tmc.set_channel_enable_state(1, None)
        self.assertEqual(ctx.exception.code, -400)
        self.assertEqual(transport.calls, [])
        reporter.assert_called_once()

    def test_voltage_out_of_range(self):
        tmc, transport, _ = make_controller()
        with self.assertRaises(ValidationError) as ctx:
            tmc.set_output_volts(1.5)
        self.assertEqual(ctx.exception.code, -401)
        self.assertEqual(transport.calls, [])

    def test_invalid_voltage_limit(self):
        tmc, transport, _ = make_controller()
        with self.assertRaises(ValidationError) as ctx:
            tmc.set_tpz_io_settings(TPZIOSettings(VoltLimit.INVALID))
        self.assertEqual(ctx.exception.code, -402)
        self.assertEqual(transport.calls, [])


class TestDefaults(unittest.TestCase):

    @patch("tmc_sdk.device.controller.FtdiTransport")
    def test_default_transport(self, transport_cls):
        """Without a transport, direct USB access through pyftdi is used."""
        tmc = TMCController(reporter=None)
        transport_cls.assert_called_once_with()
        self.assertFalse(tmc.connection.is_opened)


class TestAutoConnect(unittest.TestCase):
    """Operations connect on demand."""

    def test_first_operation_connects(self):
        tmc, transport, _ = make_controller()
        tmc.identify()
        self.assertEqual(transport.names, ["open"] + CONNECT_SEQUENCE + ["write"])
        self.assertTrue(tmc.connection.is_connected)

    def test_connect_once(self):
        tmc, transport, _ = make_controller()
        tmc.identify()
        tmc.stop_update_messages()
        self.assertEqual(transport.names.count("open"), 1)
        self.assertEqual(transport.written, [
            bytes([0x23, 0x02, 0x00, 0x00, 0x50, 0x01]),
            bytes([0x12, 0x00, 0x00, 0x00, 0x50, 0x01]),
        ])

    def test_connect_failure_propagates(self):
        reporter = MagicMock()
        tmc, transport, _ = make_controller(reporter)
        transport.fail("set_baudrate", -1)
        with self.assertRaises(TransportError) as ctx:
            tmc.get_pz_status()
        self.assertEqual(ctx.exception.code, -31)
        self.assertNotIn("write", transport.names)
        reporter.assert_called_with("get_pz_status", "connect failed", -31)


class TestEnableState(unittest.TestCase):
    """Tests for channel enable operations."""

    def test_set_drains_late_response(self):
        tmc, transport, delay = make_controller(post_enable_change_delay_ms=250)
        tmc.connect()
        transport.reset_calls()
        transport.queue(bytes([0x12, 0x02, 0x01, 0x01, 0x01, 0x50]))
        tmc.set_channel_enable_state(1, EnableState.ENABLED)
        self.assertEqual(transport.names, ["write", "read"])
        self.assertEqual(transport.written[0], bytes([0x10, 0x02, 0x01, 0x01, 0x50, 0x01]))
        self.assertEqual(delay.sleeps[-1], 250)
        self.assertEqual(len(transport.chunks), 0)

    def test_set_with_nothing_to_drain(self):
        tmc, transport, _ = make_controller()
        tmc.set_channel_enable_state(1, EnableState.DISABLED)
        self.assertEqual(transport.names[-2:], ["write", "read"])

    def test_settle_interrupted(self):
        tmc, transport, delay = make_controller()
        tmc.connect()
        transport.reset_calls()
        delay.cancel()
        with self.assertRaises(TimingError) as ctx:
            tmc.set_channel_enable_state(1, EnableState.ENABLED)
        self.assertEqual(ctx.exception.code, -350)
        self.assertEqual(ctx.exception.stage, Stage.ENABLE_SETTLE_SLEEP)
        self.assertEqual(transport.names, ["write"])

    def test_get(self):
        tmc, transport, _ = make_controller()
        transport.queue(bytes([0x12, 0x02, 0x01, 0x02, 0x01, 0x50]))
        self.assertEqual(tmc.get_channel_enable_state(), EnableState.DISABLED)
        self.assertEqual(transport.written[-1], bytes([0x11, 0x02, 0x01, 0x00, 0x50, 0x01]))


class TestQueries(unittest.TestCase):
    """Tests for operations that read a response."""

    def setUp(self):
        self.tmc, self.transport, _ = make_controller()
        self.tmc.connect()
        self.transport.reset_calls()

    def test_get_hardware_info(self):
        data = bytearray(90)
        data[6:10] = (29252712).to_bytes(4, "little")
        data[10:16] = b"KPZ101"
        data[88:90] = (1).to_bytes(2, "little")
        self.transport.queue(bytes(data))
        info = self.tmc.get_hardware_info()
        self.assertEqual(info.model_number, "KPZ101")
        self.assertEqual(info.serial_number, 29252712)
        self.assertEqual(info.num_channels, 1)
        self.assertEqual(self.transport.calls[1], ("read", (256,)))

    def test_get_output_volts(self):
        self.transport.queue(bytes([0x45, 0x06, 0x04, 0x00, 0x81, 0x50, 0x01, 0x00, 0xFF, 0x7F]))
        self.assertEqual(self.tmc.get_output_volts(), 1.0)

    def test_get_pz_status(self):
        data = bytearray(16)
        data[12:16] = (0x0131).to_bytes(4, "little")
        self.transport.queue(bytes(data))
        status = self.tmc.get_pz_status()
        self.assertTrue(status.connected)
        self.assertTrue(status.sg_connected)
        self.assertFalse(status.pc_mode)

    def test_get_pz_status_short_read(self):
        tmc, transport, _ = make_controller(read_timeout_ms=0)
        tmc.connect()
        transport.queue(bytes(10))
        with self.assertRaises(ProtocolError) as ctx:
            tmc.get_pz_status()
        self.assertEqual(ctx.exception.code, -300)
        self.assertEqual(ctx.exception.source, "get_pz_status")

    def test_get_display_intensity(self):
        self.transport.queue(bytes([0xD3, 0x07, 0x02, 0x00, 0x81, 0x50, 0x32, 0x00]))
        self.assertEqual(self.tmc.get_display_intensity(), 50)

    def test_get_tpz_io_settings(self):
        data = bytearray(16)
        data[8:10] = (2).to_bytes(2, "little")
        self.transport.queue(bytes(data))
        self.assertEqual(self.tmc.get_tpz_io_settings(), TPZIOSettings(VoltLimit.V100, 0))

    def test_get_mmi_params(self):
        params = KMMIParams(js_mode=1, js_volt_step=-20, disp_brightness=80)
        self.transport.queue(build_set_mmi_params(params))
        self.assertEqual(self.tmc.get_mmi_params(), params)


class TestCommands(unittest.TestCase):
    """Tests for write-only operations."""

    def setUp(self):
        self.tmc, self.transport, _ = make_controller()
        self.tmc.connect()
        self.transport.reset_calls()

    def test_set_output_volts(self):
        self.tmc.set_output_volts(-1.0)
        self.assertEqual(self.transport.names, ["write"])
        self.assertEqual(self.transport.written[0][6:], bytes([0x01, 0x00, 0x00, 0x80]))

    def test_set_display_intensity(self):
        self.tmc.set_display_intensity(100)
        self.assertEqual(self.transport.written[0][6:], bytes([0x64, 0x00]))

    def test_set_tpz_io_settings(self):
        self.tmc.set_tpz_io_settings(TPZIOSettings(VoltLimit.V150, 1))
        frame = self.transport.written[0]
        self.assertEqual(len(frame), 16)
        self.assertEqual(frame[8:12], bytes([0x03, 0x00, 0x01, 0x00]))
        self.assertEqual(self.transport.names, ["write"])

    def test_set_mmi_params(self):
        self.tmc.set_mmi_params(KMMIParams(disp_timeout=3))
        self.assertEqual(len(self.transport.written[0]), 40)
        self.assertEqual(self.transport.names, ["write"])

    def test_write_failure_code(self):
        self.transport.fail("write", -1)
        with self.assertRaises(TransportError) as ctx:
            self.tmc.identify()
        self.assertEqual(ctx.exception.code, -101)

    def test_context_manager_closes(self):
        with self.tmc:
            pass
        self.assertEqual(self.transport.names, ["close"])
        self.assertFalse(self.tmc.connection.is_opened)


if __name__ == '__main__':
    unittest.main()
