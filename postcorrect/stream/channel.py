"""
Zero-capacity hand-off between two pipeline stages.

A sender is suspended until the receiver has taken its token, so a slow
stage throttles every stage upstream of it and no stage ever buffers more
than the single token in flight.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from postcorrect.exceptions import PipelineError

if TYPE_CHECKING:
    from postcorrect.models import Token


class _EndOfStream:
    def __repr__(self) -> str:
        return "<end of stream>"


EOS = _EndOfStream()


class HandOff:
    """
    Rendezvous queue carrying tokens from one stage to the next.

    Example:
        >>> handoff = HandOff()
        >>> await handoff.send(token)      # returns once received
        >>> await handoff.receive()        # in the next stage
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Token | _EndOfStream] = asyncio.Queue(maxsize=1)
        self._sealed = False
        self._drained = False

    async def send(self, token: Token) -> None:
        """Hand ``token`` over and wait until the receiving stage took it."""
        if self._sealed:
            raise PipelineError("send on a closed hand-off")
        await self._queue.put(token)
        await self._queue.join()

    async def receive(self) -> Token | None:
        """Wait for the next token; ``None`` once the sender closed the stream."""
        if self._drained:
            return None
        item = await self._queue.get()
        self._queue.task_done()
        if item is EOS:
            self._drained = True
            return None
        return item

    async def close(self) -> None:
        """Mark the end of the stream. Closing twice is a no-op."""
        if self._sealed:
            return
        self._sealed = True
        await self._queue.put(EOS)

    @property
    def closed(self) -> bool:
        return self._sealed
