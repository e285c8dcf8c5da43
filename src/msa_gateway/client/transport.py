"""Event-loop-scoped httpx clients.

An ``httpx.AsyncClient`` pool belongs to the loop that first used it, so a
client shared by several ``asyncio.run()`` calls or threads breaks once the
first loop closes. ``LoopBoundClients`` keeps one client per running loop.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import weakref
from collections.abc import Callable

import httpx

logger = logging.getLogger(__name__)


class LoopBoundClients:
    """Lazily creates one ``httpx.AsyncClient`` per event loop.

    Args:
        factory: Builds a new client; called at most once per loop unless the
            loop's client was closed.
    """

    def __init__(self, factory: Callable[[], httpx.AsyncClient]) -> None:
        self._factory = factory
        self._clients: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, httpx.AsyncClient] = (
            weakref.WeakKeyDictionary()
        )
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)

    def current(self) -> httpx.AsyncClient:
        """Return the client of the running loop, creating it when needed.

        Raises:
            RuntimeError: Called outside a running event loop.
        """
        loop = asyncio.get_running_loop()
        with self._lock:
            self._prune_locked()
            client = self._clients.get(loop)
            if client is None or client.is_closed:
                client = self._clients[loop] = self._factory()
                logger.debug("Created http client for loop %#x", id(loop))
            return client

    async def aclose(self) -> None:
        """Close every client whose loop can still run its shutdown."""
        current = asyncio.get_running_loop()
        with self._lock:
            self._prune_locked()
            clients = list(self._clients.items())
            self._clients.clear()

        for loop, client in clients:
            if loop is current:
                await client.aclose()
            elif loop.is_running():
                await asyncio.wrap_future(asyncio.run_coroutine_threadsafe(client.aclose(), loop))
            else:
                logger.debug("Dropping http client of idle loop %#x", id(loop))

    def _prune_locked(self) -> None:
        for loop in [loop for loop in self._clients if loop.is_closed()]:
            del self._clients[loop]
