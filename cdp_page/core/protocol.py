"""
Protocol module for CDP Page.
Contains functions for handling CDP protocol messages.
"""
import json
import logging
from typing import Any, Dict, Optional

from cdp_page.core.exceptions import CDPProtocolError

logger = logging.getLogger(__name__)


class CDPProtocol:
    """
    Handles CDP protocol messages.
    """

    @staticmethod
    def parse_ws_url(debug_url: str) -> str:
        """
        Parse WebSocket URL from Chrome debug URL.

        Args:
            debug_url: Chrome debug URL (e.g., http://localhost:9222/devtools/browser/...)

        Returns:
            WebSocket URL for CDP connection
        """
        if debug_url.startswith("ws://") or debug_url.startswith("wss://"):
            return debug_url

        if not debug_url.startswith("http"):
            debug_url = f"http://{debug_url}"

        return debug_url.replace("http://", "ws://").replace("https://", "wss://")

    @staticmethod
    def format_command(
        message_id: int,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> str:
        """
        Serialize a CDP command.

        Args:
            message_id: Command id used to correlate the response
            method: CDP method name
            params: CDP method parameters
            session_id: Flattened session the command is addressed to

        Returns:
            JSON text ready to be sent over the socket
        """
        command: Dict[str, Any] = {"id": message_id, "method": method, "params": params or {}}
        if session_id:
            command["sessionId"] = session_id
        return json.dumps(command)

    @staticmethod
    def parse_response(method: str, response: Dict[str, Any]) -> Any:
        """
        Parse a CDP response.

        Args:
            method: CDP method the response belongs to
            response: CDP response

        Returns:
            Parsed response data

        Raises:
            CDPProtocolError: If the response contains an error
        """
        if "error" in response:
            error = response["error"]
            message = error.get("message", "Unknown CDP error")
            if error.get("data"):
                message = f"{message} {error['data']}"
            raise CDPProtocolError(message, method=method, code=error.get("code", -1))

        return response.get("result", {})

