"""Polling session bookkeeping for one key."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from .keys import Key

logger = logging.getLogger(__name__)


class Session:
    """One live polling relationship with the value source for a key.

    The source owns the underlying handle (page, client, socket); the Session
    owns the poll task and the last value seen for the key.
    """

    def __init__(self, key: Key, initial_value: str) -> None:
        self.key = key
        self.last_value: str = initial_value
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, poll: Coroutine[Any, Any, None]) -> None:
        """Run the poll coroutine as this session's background task."""
        if self._task is not None:
            raise RuntimeError(f"session for {self.key} already started")
        self._task = asyncio.create_task(poll, name=f"poll:{self.key}")

    async def stop(self) -> None:
        """Cancel the poll task and wait for it to finish. Safe to call twice."""
        task = self._task
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Poll task for %s ended with an error", self.key)
        self._task = None

    def __repr__(self) -> str:
        return f"Session({self.key}, last_value={self.last_value!r}, running={self.running})"
