"""
Process entry point: bind the bridge and serve until interrupted.

Configuration comes from ``SERVO_BRIDGE_*`` environment variables (see config.py).
"""

from __future__ import annotations

import logging
import sys

from .config import BridgeConfig
from .gateway import BridgeGateway

logger = logging.getLogger("servo.bridge")

__all__ = ["main"]


def main() -> None:
    """Main entry point for the bridge server."""
    config = BridgeConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )

    gateway = BridgeGateway(config)
    try:
        gateway.start()
    except RuntimeError as exc:
        logger.error("bridge_start_failed: %s", exc)
        sys.exit(1)

    logger.info("waiting for frontend connections on ws://%s:%s", gateway.host, gateway.port)
    try:
        gateway.wait()
    except KeyboardInterrupt:
        logger.info("interrupted, shutting down")
    finally:
        gateway.stop()


if __name__ == "__main__":
    main()
