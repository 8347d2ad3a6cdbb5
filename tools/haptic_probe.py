"""
Bench check for the haptic glove.

Lists serial ports, opens one, and steps through every HAPTIC code so the
firmware response can be felt by hand.

    python tools/haptic_probe.py [PORT] [BAUD]
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "backend"))

from actuator.serial_link import SerialActuatorLink  # pylint: disable=wrong-import-position
from control.haptics import HapticCode  # pylint: disable=wrong-import-position

STEP_S = 1.5


async def main(port: str | None, baud_rate: int) -> int:
    link = SerialActuatorLink(preferred_port=port)
    print("selected:", await link.request_device())
    await link.open(baud_rate)

    try:
        for code in HapticCode:
            ok = await link.write_line(code.value)
            print(f"{code.value:<9} {code.meaning:<12} {'sent' if ok else 'FAILED'}")
            await asyncio.sleep(STEP_S)
    finally:
        await link.close()
    return 0


if __name__ == "__main__":
    port_arg = sys.argv[1] if len(sys.argv) > 1 else None
    baud_arg = int(sys.argv[2]) if len(sys.argv) > 2 else 9600
    raise SystemExit(asyncio.run(main(port_arg, baud_arg)))
