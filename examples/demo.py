#!/usr/bin/env python3
"""
Piezo controller demo.

Connects to a K-Cube / T-Cube piezo controller, prints its hardware info
and piezo status, and flashes its front panel.

    python examples/demo.py 29252712

The serial number is printed on the unit (also visible in `dmesg`).
"""

import argparse
import logging
import sys
from pathlib import Path

# Add SDK to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tmc_sdk import AptError, DeviceIdentity, TMCController, format_value
from tmc_sdk.transport import FtdiTransport, SerialTransport


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("serial", help="USB serial number of the controller")
    parser.add_argument("--vcp", action="store_true",
                        help="use the virtual COM port driver instead of direct USB")
    parser.add_argument("-v", "--verbose", action="store_true", help="log frames")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    transport = SerialTransport() if args.vcp else FtdiTransport()

    try:
        with TMCController(transport, DeviceIdentity(serial=args.serial)) as tmc:
            tmc.connect()
            print(format_value(tmc.get_hardware_info()))
            print()
            print(format_value(tmc.get_pz_status()))

            print("\nIdentifying device, look for blinking display")
            tmc.identify()
    except AptError as e:
        print(f"Failed: {e} (stage: {e.stage.value})", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
