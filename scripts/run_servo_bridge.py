#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[bridge] host={os.environ.get('SERVO_BRIDGE_HOST', '127.0.0.1')} | "
    f"port={os.environ.get('SERVO_BRIDGE_PORT', '8080')} | "
    f"log_level={os.environ.get('SERVO_BRIDGE_LOG_LEVEL', 'INFO')}",
    file=sys.stderr,
)

from servo_bridge.main import main  # noqa: E402

if __name__ == "__main__":
    main()
