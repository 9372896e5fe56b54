"""
Shared test fixtures

FakeConnector stands in for the websockets-backed connector so registry and
interpreter tests never open sockets.
"""

import asyncio
import functools

import pytest

from vschema.executor.websocket import WebSocketEvent


class FakeSocket:
    def __init__(self, url, protocols, listener):
        self.url = url
        self.protocols = protocols
        self.listener = listener
        self.sent = []
        self.closed = None

    def emit(self, event_type, **kwargs):
        self.listener(WebSocketEvent(event_type, **kwargs))


class FakeConnector:
    """
    Records sockets opened through it

    Args:
        auto_open: Deliver the open event on the next loop iteration
        fail_with: Deliver an error event instead of opening
    """

    def __init__(self, auto_open=True, fail_with=None):
        self.auto_open = auto_open
        self.fail_with = fail_with
        self.sockets = []

    def open(self, url, protocols, listener):
        socket = FakeSocket(url, protocols, listener)
        self.sockets.append(socket)
        loop = asyncio.get_running_loop()
        if self.fail_with is not None:
            loop.call_soon(functools.partial(socket.emit, "error", error=self.fail_with))
        elif self.auto_open:
            loop.call_soon(socket.emit, "open")
        return socket

    async def send(self, handle, payload):
        handle.sent.append(payload)

    async def close(self, handle, code=None, reason=None):
        handle.closed = (code, reason)


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def make_connector():
    return FakeConnector
