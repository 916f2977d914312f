"""Session bridge between a browser frontend and a page-rendering backend.

Keep this package import light: importing ``servo_bridge.protocol`` or
``servo_bridge.registry`` should not pull in the WebSocket server.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
