"""
WebSocket Registry

Long-lived connections opened by `ws` actions, keyed by connection id
(or by URL when no id is given).

- connect replaces an existing entry under the same key (last writer wins)
- entries are removed on close, on error before open, and on timeout
- the connector collaborator owns the actual socket; `WebsocketsConnector`
  is the default built on the `websockets` library
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

import websockets

from ..exceptions.errors import ConnectionNotFound, ConnectionTimeout, WebSocketError
from ..expression.builtins import to_plain
from ..expression.values import to_js_string

logger = logging.getLogger(__name__)


class ReadyState(IntEnum):
    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3


@dataclass
class WebSocketEvent:
    """
    Connection lifecycle event

    Attributes:
        type: "open", "message", "error" or "close"
        data: Message payload (message events)
        code: Close code (close events)
        reason: Close reason (close events)
        error: Failure cause (error events)
    """

    type: str
    data: Any = None
    code: Optional[int] = None
    reason: Optional[str] = None
    error: Optional[Exception] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "data": self.data,
            "code": self.code,
            "reason": self.reason,
            "error": str(self.error) if self.error is not None else None,
        }


Listener = Callable[[WebSocketEvent], Any]


class WebSocketConnector(Protocol):
    """WebSocket collaborator: opens sockets and reports their events"""

    def open(self, url: str, protocols: Optional[List[str]], listener: Listener) -> Any: ...

    async def send(self, handle: Any, payload: Union[str, bytes]) -> None: ...

    async def close(self, handle: Any, code: Optional[int] = None, reason: Optional[str] = None) -> None: ...


def parse_message(data: Any, response_type: str = "auto") -> Any:
    """
    Decode an incoming message

    Args:
        data: Raw message
        response_type: "text" (as is), "json" (must decode) or "auto"
            (decode when the text is JSON, otherwise keep the text)

    Raises:
        ValueError: `json` mode and the text is not JSON
    """
    if isinstance(data, bytes) and response_type != "text":
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError:
            return data

    if response_type == "text":
        return data if isinstance(data, (str, bytes)) else to_js_string(data)
    if not isinstance(data, str):
        return data
    if response_type == "json":
        return json.loads(data)

    if not data.strip():
        return data
    try:
        return json.loads(data)
    except json.JSONDecodeError:
        return data


def encode_message(message: Any, send_as: Optional[str] = None) -> str:
    """Serialize an outgoing message: strings as text, everything else as JSON"""
    mode = send_as or ("text" if isinstance(message, str) else "json")
    if mode == "json":
        return json.dumps(to_plain(message), ensure_ascii=False)
    return "" if message is None else to_js_string(message)


@dataclass
class ConnectionEntry:
    """Registry entry for one connection"""

    key: str
    url: str
    opened: "asyncio.Future[None]"
    listener: Optional[Listener] = None
    handle: Any = None
    protocols: Optional[List[str]] = field(default=None)

    @property
    def is_open(self) -> bool:
        return self.opened.done() and not self.opened.cancelled() and self.opened.exception() is None


def _retrieve(future: "asyncio.Future[None]") -> None:
    if not future.cancelled():
        future.exception()


class WebSocketRegistry:
    """
    Connection registry shared by the actions of one scope

    Args:
        connector: Socket collaborator (defaults to WebsocketsConnector)
        close_code: Code used when replacing or disposing connections
    """

    def __init__(self, connector: Optional[WebSocketConnector] = None, close_code: int = 1000):
        self.connector = connector or WebsocketsConnector()
        self.close_code = close_code
        self._entries: Dict[str, ConnectionEntry] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[ConnectionEntry]:
        return self._entries.get(key)

    def keys(self) -> List[str]:
        return list(self._entries)

    async def connect(
        self,
        url: str,
        key: Optional[str] = None,
        protocols: Optional[Union[str, List[str]]] = None,
        timeout: Optional[float] = None,
        listener: Optional[Listener] = None,
    ) -> ConnectionEntry:
        """
        Open a connection and wait for its open event

        Args:
            url: Socket URL
            key: Registry key (defaults to the URL)
            protocols: Sub-protocol(s)
            timeout: Milliseconds to wait for the open event; None or 0 waits forever
            listener: Receives every WebSocketEvent of the connection

        Returns:
            Registered entry

        Raises:
            ConnectionTimeout: Not open within `timeout`; nothing stays registered
            WebSocketError: The connection failed before opening
        """
        key = key or url
        if isinstance(protocols, str):
            protocols = [protocols]

        existing = self._entries.pop(key, None)
        if existing is not None:
            logger.info(f"Replacing WebSocket connection '{key}'")
            await self._close_handle(existing, self.close_code, "Replaced")

        loop = asyncio.get_running_loop()
        entry = ConnectionEntry(key=key, url=url, opened=loop.create_future(), listener=listener, protocols=protocols)
        entry.opened.add_done_callback(_retrieve)
        self._entries[key] = entry

        try:
            entry.handle = self.connector.open(url, protocols, lambda event: self._dispatch(entry, event))
            waiter = asyncio.shield(entry.opened)
            if timeout:
                await asyncio.wait_for(waiter, timeout / 1000)
            else:
                await waiter
        except asyncio.TimeoutError:
            self._discard(entry)
            await self._close_handle(entry, self.close_code, "Connect timeout")
            raise ConnectionTimeout(
                f"WebSocket connect timed out after {timeout}ms",
                {"key": key, "url": url, "timeout": timeout},
            )
        except WebSocketError:
            self._discard(entry)
            raise
        except Exception as e:
            self._discard(entry)
            raise WebSocketError(f"WebSocket connect failed: {e}", {"key": key, "url": url})

        logger.info(f"WebSocket connection '{key}' open")
        return entry

    async def send(self, key: str, payload: Union[str, bytes], timeout: Optional[float] = None) -> None:
        """
        Send a serialized payload

        Raises:
            ConnectionNotFound: No entry under `key`
            ConnectionTimeout: Still connecting after `timeout` ms
        """
        entry = self._entries.get(key)
        if entry is None:
            raise ConnectionNotFound(f"WebSocket connection not found: {key}", {"key": key})

        if not entry.opened.done():
            try:
                if timeout:
                    await asyncio.wait_for(asyncio.shield(entry.opened), timeout / 1000)
                else:
                    await asyncio.shield(entry.opened)
            except asyncio.TimeoutError:
                raise ConnectionTimeout(
                    f"WebSocket connection '{key}' not open after {timeout}ms", {"key": key}
                )

        if not entry.is_open:
            raise WebSocketError(f"WebSocket connection '{key}' is not open", {"key": key})
        await self.connector.send(entry.handle, payload)

    async def close(self, key: str, code: Optional[int] = None, reason: Optional[str] = None) -> bool:
        """
        Close and remove a connection

        Returns:
            False when no entry exists under `key`
        """
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        await self._close_handle(entry, code, reason)
        logger.info(f"WebSocket connection '{key}' closed")
        return True

    async def dispose(self) -> None:
        """Close every live connection"""
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            await self._close_handle(entry, self.close_code, "Scope disposed")
        if entries:
            logger.info(f"Closed {len(entries)} WebSocket connection(s)")

    def _discard(self, entry: ConnectionEntry) -> None:
        if self._entries.get(entry.key) is entry:
            del self._entries[entry.key]

    async def _close_handle(self, entry: ConnectionEntry, code: Optional[int], reason: Optional[str]) -> None:
        if entry.handle is None:
            return
        try:
            await self.connector.close(entry.handle, code, reason)
        except Exception as e:
            logger.warning(f"Closing WebSocket connection '{entry.key}' failed: {e}")

    def _dispatch(self, entry: ConnectionEntry, event: WebSocketEvent) -> None:
        if event.type == "open":
            if not entry.opened.done():
                entry.opened.set_result(None)
        elif event.type == "error":
            if not entry.opened.done():
                entry.opened.set_exception(
                    WebSocketError(f"WebSocket connection error: {event.error}", {"key": entry.key})
                )
        elif event.type == "close":
            if not entry.opened.done():
                entry.opened.set_exception(
                    WebSocketError("WebSocket closed before opening", {"key": entry.key, "code": event.code})
                )
            self._discard(entry)

        if entry.listener is None:
            return
        try:
            entry.listener(event)
        except Exception:
            logger.exception(f"WebSocket listener for '{entry.key}' failed")


class WebsocketsConnection:
    """One client connection driven by a background task"""

    def __init__(self, url: str, protocols: Optional[List[str]], listener: Listener):
        self.url = url
        self.protocols = protocols
        self.listener = listener
        self.socket = None
        self.ready_state = ReadyState.CONNECTING
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        code: Optional[int] = None
        reason: Optional[str] = None
        try:
            async with websockets.connect(self.url, subprotocols=self.protocols) as socket:
                self.socket = socket
                self.ready_state = ReadyState.OPEN
                self.listener(WebSocketEvent("open"))
                async for message in socket:
                    self.listener(WebSocketEvent("message", data=message))
                code, reason = socket.close_code, socket.close_reason
        except websockets.ConnectionClosed as e:
            code = e.rcvd.code if e.rcvd else 1006
            reason = e.rcvd.reason if e.rcvd else str(e)
            self.listener(WebSocketEvent("error", error=e))
        except (websockets.WebSocketException, OSError) as e:
            code, reason = 1006, str(e)
            self.listener(WebSocketEvent("error", error=e))
        finally:
            self.ready_state = ReadyState.CLOSED
            self.socket = None
            self.listener(WebSocketEvent("close", code=code, reason=reason))

    async def send(self, payload: Union[str, bytes]) -> None:
        if self.socket is None or self.ready_state != ReadyState.OPEN:
            raise WebSocketError(f"WebSocket to {self.url} is not open")
        await self.socket.send(payload)

    async def close(self, code: Optional[int] = None, reason: Optional[str] = None) -> None:
        if self.ready_state == ReadyState.CLOSED:
            return
        if self.socket is None:
            self._task.cancel()
            return
        self.ready_state = ReadyState.CLOSING
        await self.socket.close(code or 1000, reason or "")


class WebsocketsConnector:
    """Connector built on the `websockets` asyncio client"""

    def open(self, url: str, protocols: Optional[List[str]], listener: Listener) -> WebsocketsConnection:
        return WebsocketsConnection(url, protocols, listener)

    async def send(self, handle: WebsocketsConnection, payload: Union[str, bytes]) -> None:
        await handle.send(payload)

    async def close(
        self, handle: WebsocketsConnection, code: Optional[int] = None, reason: Optional[str] = None
    ) -> None:
        await handle.close(code, reason)
