"""
Shared mutable state for the web server.

The project root and the model service live here so route modules and the
CLI agree on them. Import web.state as a module to read/write them.
"""

import logging
import os
from typing import Any, Dict, Optional

from fastapi import WebSocket

from config import app_config

logger = logging.getLogger(__name__)

# ============================================================
# Globals
# ============================================================

_project_root: str = os.path.realpath(os.path.expanduser(app_config.project_root))
_service = None  # BedrockService, created on first use


def project_root() -> str:
    return _project_root


def set_project_root(path: str) -> None:
    global _project_root
    _project_root = os.path.realpath(os.path.expanduser(path))
    logger.info(f"Project root set to {_project_root}")


def get_service():
    """The shared model service. Created lazily; construction errors propagate."""
    global _service
    if _service is None:
        from bedrock_service import BedrockService
        _service = BedrockService()
    return _service


def set_service(service) -> None:
    """Replace the shared model service (tests install a fake here)."""
    global _service
    _service = service


# ============================================================
# WebSocket reference wrapper
# ============================================================


class _WSRef:
    """WebSocket reference that silently drops sends once the client is gone.

    A run keeps emitting events for a moment after a disconnect (until it
    observes the cancellation signal); those sends become no-ops.
    """
    __slots__ = ("ws",)

    def __init__(self, ws: Optional[WebSocket]):
        self.ws: Optional[WebSocket] = ws

    async def send_json(self, data: Dict[str, Any]) -> None:
        _ws = self.ws
        if _ws is None:
            return
        try:
            await _ws.send_json(data)
        except Exception as e:
            logger.debug(f"Dropping WebSocket frame after disconnect: {e!r}")
            self.ws = None          # mark disconnected on first failure
