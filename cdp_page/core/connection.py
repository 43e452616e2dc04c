"""
Connection module for CDP Page.
Handles the WebSocket connection to Chrome DevTools Protocol and the
flattened target sessions multiplexed over it.
"""
import asyncio
import json
import logging
from typing import Any, Dict, Optional, Tuple

import websockets
from websockets.exceptions import ConnectionClosed

from cdp_page.core.events import ConnectionEvent, EventEmitter, SessionEvent
from cdp_page.core.exceptions import CDPConnectionError
from cdp_page.core.protocol import CDPProtocol

logger = logging.getLogger(__name__)


class CDPConnection(EventEmitter):
    """
    Manages a WebSocket connection to Chrome DevTools Protocol.

    Browser-level events are emitted on the connection itself. Events that
    carry a ``sessionId`` are routed to the matching ``CDPSession``.
    """

    def __init__(self, ws_url: str, ws=None):
        """
        Initialize a CDP connection.

        Args:
            ws_url: WebSocket URL for CDP
            ws: Already-open websocket, mostly useful for tests
        """
        super().__init__()
        self.ws_url = ws_url
        self.ws = ws
        self.connected = ws is not None
        self._closing = False
        self.message_id = 0
        self.callbacks: Dict[int, Tuple[str, Optional[str], asyncio.Future]] = {}
        self._sessions: Dict[str, "CDPSession"] = {}
        self._listener_task: Optional[asyncio.Task] = None

    async def connect(self) -> None:
        """
        Connect to Chrome DevTools Protocol.
        """
        if self.connected:
            return

        try:
            self.ws = await websockets.connect(
                self.ws_url,
                ping_interval=None,
                max_size=None,
                close_timeout=5,
            )
        except Exception as e:
            self.ws = None
            self.connected = False
            raise CDPConnectionError(f"Failed to connect to CDP: {str(e)}")

        self.connected = True
        self._closing = False
        self._listener_task = asyncio.create_task(self._listen_for_messages())
        logger.debug(f"Connected to {self.ws_url}")

    async def disconnect(self) -> None:
        """
        Disconnect from Chrome DevTools Protocol.
        """
        if not self.connected:
            return

        self._closing = True
        try:
            if self.ws:
                await self.ws.close()
        except Exception as e:
            logger.warning(f"Error closing WebSocket: {str(e)}")
        finally:
            self._on_close()

    async def _listen_for_messages(self) -> None:
        """
        Listen for messages from CDP and dispatch them.
        """
        try:
            async for message in self.ws:
                logger.debug(f"RECV {message}")
                try:
                    data = json.loads(message)
                except json.JSONDecodeError as e:
                    logger.error(f"Failed to decode message: {str(e)}")
                    continue
                self._on_message(data)
        except ConnectionClosed:
            if not self._closing:
                logger.warning("WebSocket connection closed unexpectedly")
        except Exception as e:
            if not self._closing:
                logger.error(f"Error in message listener: {str(e)}")
        finally:
            self._on_close()

    def _on_message(self, data: Dict[str, Any]) -> None:
        """
        Dispatch one decoded protocol message.

        Args:
            data: Decoded CDP message
        """
        method = data.get("method")
        params = data.get("params", {})

        if method == "Target.attachedToTarget":
            session_id = params["sessionId"]
            if session_id not in self._sessions:
                target_type = params.get("targetInfo", {}).get("type", "")
                self._sessions[session_id] = CDPSession(self, target_type, session_id)
        elif method == "Target.detachedFromTarget":
            session = self._sessions.pop(params.get("sessionId"), None)
            if session is not None:
                session._on_closed()

        message_id = data.get("id")
        if message_id is not None:
            callback = self.callbacks.pop(message_id, None)
            if callback is None:
                return
            command, _, future = callback
            if future.done():
                return
            try:
                future.set_result(CDPProtocol.parse_response(command, data))
            except Exception as e:
                future.set_exception(e)
            return

        session_id = data.get("sessionId")
        if session_id:
            session = self._sessions.get(session_id)
            if session is not None:
                session.emit(method, params)
            return

        if method:
            self.emit(method, params)

    def _on_close(self) -> None:
        if not self.connected:
            return
        self.connected = False
        self.ws = None
        callbacks = list(self.callbacks.values())
        self.callbacks.clear()
        for method, _, future in callbacks:
            if not future.done():
                future.set_exception(
                    CDPConnectionError(f"Protocol error ({method}): Target closed.")
                )
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            session._on_closed()
        self.emit(ConnectionEvent.DISCONNECTED)

    async def send_command(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
    ) -> Any:
        """
        Send a command to Chrome DevTools Protocol.

        Args:
            method: CDP method name
            params: CDP method parameters
            session_id: Flattened session to address, or None for the browser

        Returns:
            Response from CDP

        Raises:
            CDPConnectionError: If the connection is down
            CDPProtocolError: If the remote end reports an error
        """
        if not self.ws or not self.connected:
            raise CDPConnectionError("Not connected to CDP")

        if self._closing:
            raise CDPConnectionError("Connection is closing")

        self.message_id += 1
        message_id = self.message_id

        future = asyncio.get_running_loop().create_future()
        self.callbacks[message_id] = (method, session_id, future)

        message = CDPProtocol.format_command(message_id, method, params, session_id)
        logger.debug(f"SEND {message}")
        try:
            await self.ws.send(message)
        except ConnectionClosed as e:
            self.callbacks.pop(message_id, None)
            raise CDPConnectionError(f"Error in CDP command {method}: {str(e)}")

        try:
            return await future
        finally:
            self.callbacks.pop(message_id, None)

    def session(self, session_id: str) -> Optional["CDPSession"]:
        return self._sessions.get(session_id)

    async def create_session(self, target_id: str) -> "CDPSession":
        """
        Attach to a target and return its flattened session.

        Args:
            target_id: Target to attach to

        Returns:
            The session bound to the target
        """
        result = await self.send_command(
            "Target.attachToTarget", {"targetId": target_id, "flatten": True}
        )
        session = self._sessions.get(result["sessionId"])
        if session is None:
            raise CDPConnectionError(f"Session for target {target_id} was not created")
        return session


class CDPSession(EventEmitter):
    """
    A protocol session bound to one target.

    Emits every protocol event addressed to the target under its method name,
    plus ``SessionEvent.DISCONNECTED`` once the target detaches.
    """

    def __init__(self, connection: CDPConnection, target_type: str, session_id: str):
        super().__init__()
        self._connection: Optional[CDPConnection] = connection
        self._target_type = target_type
        self.session_id = session_id

    @property
    def connection(self) -> Optional[CDPConnection]:
        return self._connection

    async def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Send a command scoped to this session.

        Raises:
            CDPConnectionError: If the session is already closed
        """
        if self._connection is None:
            raise CDPConnectionError(
                f"Protocol error ({method}): Session closed. Most likely the "
                f"{self._target_type} has been closed."
            )
        return await self._connection.send_command(method, params, self.session_id)

    async def detach(self) -> None:
        if self._connection is None:
            raise CDPConnectionError(
                f"Session already detached. Most likely the {self._target_type} has been closed."
            )
        await self._connection.send_command(
            "Target.detachFromTarget", {"sessionId": self.session_id}
        )

    def _on_closed(self) -> None:
        if self._connection is None:
            return
        connection = self._connection
        for message_id, (method, session_id, future) in list(connection.callbacks.items()):
            if session_id != self.session_id:
                continue
            connection.callbacks.pop(message_id, None)
            if not future.done():
                future.set_exception(
                    CDPConnectionError(f"Protocol error ({method}): Target closed.")
                )
        self._connection = None
        self.emit(SessionEvent.DISCONNECTED)
