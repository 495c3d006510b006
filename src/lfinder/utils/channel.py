"""Bounded, closable channel for passing items between asyncio tasks.

A Channel connects producers and consumers running in the same event loop:

1. Producers await send(), which blocks while the channel holds `capacity`
   items, so a fast producer cannot get arbitrarily far ahead of consumers.
2. Exactly one party calls close() once no more items will be sent.
3. Consumers await receive() (or iterate with `async for`) until every
   buffered item has been taken, after which each of them observes closure.

Cancelling a task blocked in send() or receive() leaves the channel intact.
"""

import asyncio
from typing import Generic, TypeVar

T = TypeVar('T')


class ChannelClosed(Exception):
    """Raised when sending to a closed channel, or receiving from a drained one."""


class _EndOfChannel:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "EndOfChannel"


class Channel(Generic[T]):
    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"channel capacity must be positive, got {capacity}")

        self._items: asyncio.Queue = asyncio.Queue()
        self._slots = asyncio.Semaphore(capacity)
        self._closed = False

    async def send(self, item: T) -> None:
        """Buffer item, waiting for free capacity if the channel is full.

        Raises:
            ChannelClosed: the channel was closed before item could be buffered
        """
        if self._closed:
            raise ChannelClosed("send on closed channel")

        await self._slots.acquire()
        if self._closed:
            self._slots.release()
            raise ChannelClosed("send on closed channel")

        self._items.put_nowait(item)

    def close(self) -> None:
        """Mark the end of input. Items already buffered remain receivable."""
        if self._closed:
            raise RuntimeError("channel is already closed")

        self._closed = True
        self._items.put_nowait(_EndOfChannel())

    async def receive(self) -> T:
        """Take the next item, waiting while the channel is empty.

        Raises:
            ChannelClosed: the channel is closed and no items remain
        """
        item = await self._items.get()
        if item is _EndOfChannel():
            # Leave the marker in place for the other receivers
            self._items.put_nowait(item)
            raise ChannelClosed("channel is closed")

        self._slots.release()
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> T:
        try:
            return await self.receive()
        except ChannelClosed:
            raise StopAsyncIteration
