"""
Connected clients.

Each client owns an outbox queue. Producers (project broadcasts, config
pushes) enqueue without blocking; one pump task per connection drains the
queue onto the socket, so messages reach each client in the order they were
produced.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pushkernel.wire import dumps

logger = logging.getLogger(__name__)

_CLOSE = object()


class Client:
    def __init__(
        self,
        client_id: int,
        prefix: str | None = None,
        address: str | None = None,
        auto_login: bool = False,
    ) -> None:
        self.id = client_id
        self.prefix = prefix
        self.address = address
        self.auto_login = auto_login
        self.project_id: str | None = None
        self.outbox: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    def tx(self, message: dict[str, Any]) -> None:
        """Queue a message for this client (non-blocking)."""
        if self.closed:
            return
        self.outbox.put_nowait(dumps(message))

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.outbox.put_nowait(_CLOSE)

    async def pump(self, send: Callable[[str], Awaitable[Any]]) -> None:
        """Drain the outbox onto send until the client is closed."""
        while True:
            item = await self.outbox.get()
            if item is _CLOSE:
                return
            try:
                await send(item)
            except Exception:
                logger.warning("client %d: send failed, dropping connection", self.id, exc_info=True)
                self.closed = True
                return

    def __repr__(self) -> str:
        return f"Client(id={self.id}, project={self.project_id!r}, address={self.address!r})"


class ClientRegistry:
    """Incrementing client ids plus the list of auto-login clients."""

    def __init__(self) -> None:
        self._next_id = 0
        self.clients: dict[int, Client] = {}

    def connect(self, prefix: str | None = None, address: str | None = None, auto_login: bool = False) -> Client:
        self._next_id += 1
        client = Client(self._next_id, prefix=prefix, address=address, auto_login=auto_login)
        self.clients[client.id] = client
        logger.info("client %d: connected from %s", client.id, address)
        return client

    def disconnect(self, client: Client) -> None:
        client.close()
        if self.clients.pop(client.id, None) is not None:
            logger.info("client %d: disconnected", client.id)

    @property
    def auto_logins(self) -> list[Client]:
        return [client for client in self.clients.values() if client.auto_login]
