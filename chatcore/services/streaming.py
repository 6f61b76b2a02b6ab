"""Streaming Lifecycle — cooperative cancellation and the one-stream-at-a-time guard.

Invariants:
    - At most one stream is active per StreamGuard
    - acquire() checks and sets the flag with no await in between (atomic on the loop)
    - The guard and its token are released on every exit path (context manager)
    - abort() is a no-op when nothing is streaming

Design Decisions:
    - CancellationToken wraps asyncio.Event: adapters may poll is_cancelled or await wait()
    - Token is replaced per stream: an abort never leaks into the next stream
"""

import asyncio
import logging
from contextlib import contextmanager
from typing import Iterator

from chatcore.core.errors import ErrorContext, StreamingInProgressError

logger = logging.getLogger(__name__)


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class StreamGuard:
    """Owns the active-stream flag and the current stream's token."""

    def __init__(self) -> None:
        self._active = False
        self._token: CancellationToken | None = None

    @property
    def is_streaming(self) -> bool:
        return self._active

    @contextmanager
    def acquire(self, context: ErrorContext | None = None) -> Iterator[CancellationToken]:
        if self._active:
            raise StreamingInProgressError(context)
        self._active = True
        self._token = CancellationToken()
        try:
            yield self._token
        finally:
            self._active = False
            self._token = None

    def abort(self) -> bool:
        """Cancel the active stream. Returns False if nothing was streaming."""
        if not self._active or self._token is None:
            return False
        self._token.cancel()
        logger.info("Streaming abort requested")
        return True
