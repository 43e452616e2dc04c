"""
Viewport and device emulation.
"""
import asyncio
import logging
from typing import Any, Dict

from .exceptions import UsageError

logger = logging.getLogger(__name__)


class EmulationManager:
    """Applies viewport settings to a page session."""

    def __init__(self, client: Any):
        self._client = client
        self._emulating_mobile = False
        self._has_touch = False

    async def emulate_viewport(self, viewport: Dict[str, Any]) -> bool:
        """
        Apply a viewport.

        Args:
            viewport: Dict with width and height, plus optional
                device_scale_factor, is_mobile, has_touch and is_landscape

        Returns:
            True if the page must reload for touch/mobile changes to apply
        """
        if "width" not in viewport or "height" not in viewport:
            raise UsageError("Viewport requires width and height")
        mobile = bool(viewport.get("is_mobile", False))
        has_touch = bool(viewport.get("has_touch", False))
        if viewport.get("is_landscape"):
            screen_orientation = {"angle": 90, "type": "landscapePrimary"}
        else:
            screen_orientation = {"angle": 0, "type": "portraitPrimary"}

        await asyncio.gather(
            self._client.send(
                "Emulation.setDeviceMetricsOverride",
                {
                    "mobile": mobile,
                    "width": viewport["width"],
                    "height": viewport["height"],
                    "deviceScaleFactor": viewport.get("device_scale_factor", 1),
                    "screenOrientation": screen_orientation,
                },
            ),
            self._client.send(
                "Emulation.setTouchEmulationEnabled", {"enabled": has_touch}
            ),
        )

        reload_needed = self._emulating_mobile != mobile or self._has_touch != has_touch
        self._emulating_mobile = mobile
        self._has_touch = has_touch
        return reload_needed
