import asyncio
import logging

import websockets
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, InvalidHandshake, InvalidURI

from ndt7py.constants import CLOSE_TIMEOUT, MAX_RECV_MESSAGE_SIZE, OPEN_TIMEOUT, SUBPROTOCOL, WRITE_LIMIT
from ndt7py.errors import TransportError

logger = logging.getLogger("ndt7py")


class WebSocketConnection:
    """Message oriented view of an open websocket.

    Sessions only use recv(), send(), close() and buffered_amount, so tests
    can hand any object with the same members to a session.
    """

    def __init__(self, websocket):
        self.websocket = websocket

    @property
    def buffered_amount(self):
        """Bytes handed to the transport but not yet written to the socket."""
        transport = self.websocket.transport
        if transport is None or transport.is_closing():
            return 0
        return transport.get_write_buffer_size()

    async def recv(self):
        """Next frame (bytes or str), or None once the peer closed cleanly."""
        try:
            return await self.websocket.recv()
        except ConnectionClosedOK:
            return None
        except ConnectionClosed as e:
            raise TransportError("connection closed abnormally: %s" % e) from e

    async def send(self, data):
        """Returns False when the connection is already closed cleanly."""
        try:
            await self.websocket.send(data)
        except ConnectionClosedOK:
            return False
        except ConnectionClosed as e:
            raise TransportError("send failed: %s" % e) from e
        return True

    async def close(self):
        await self.websocket.close()


async def connect(url, subprotocol=SUBPROTOCOL, open_timeout=OPEN_TIMEOUT):
    logger.debug("connect(url=%s, subprotocol=%s)", url, subprotocol)
    try:
        websocket = await ws_connect(
            url,
            subprotocols=[subprotocol],
            compression=None,
            max_size=MAX_RECV_MESSAGE_SIZE,
            write_limit=WRITE_LIMIT,
            open_timeout=open_timeout,
            close_timeout=CLOSE_TIMEOUT,
            ping_interval=None,
        )
    except (InvalidURI, InvalidHandshake, OSError, asyncio.TimeoutError) as e:
        raise TransportError("cannot connect to %s: %s" % (url, e)) from e

    if websocket.subprotocol != subprotocol:
        await websocket.close()
        raise TransportError("server did not negotiate subprotocol %s" % subprotocol)

    logger.info("Connected to %s (websockets %s)", url, websockets.__version__)
    return WebSocketConnection(websocket)
