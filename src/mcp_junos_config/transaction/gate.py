"""Read-serialization gate.

Reads open a short-lived session, run display commands and close it. The gate
makes sure two of those lifecycles never overlap. It is a plain object, so the
inventory can share one per process while tests build their own.
"""
import asyncio
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")

HISTORY_SIZE = 1000


@dataclass
class GateRecord:
    """One acquisition of the gate."""
    label: str
    acquired_at: float
    released_at: Optional[float] = None

    @property
    def held(self) -> bool:
        return self.released_at is None


class ReadGate:
    """Blocking, non re-entrant mutual exclusion for configuration reads."""

    def __init__(self, history_size: int = HISTORY_SIZE):
        self._lock = asyncio.Lock()
        self._owner: Optional[asyncio.Task] = None
        self.history: deque[GateRecord] = deque(maxlen=history_size)

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self, label: str = "read"):
        """Hold the gate for the body of the block.

        Raises:
            RuntimeError: the current task already holds the gate
        """
        task = asyncio.current_task()
        if self._owner is not None and self._owner is task:
            raise RuntimeError(f"read gate is not re-entrant (held by '{self.history[-1].label}')")

        async with self._lock:
            self._owner = task
            record = GateRecord(label=label, acquired_at=time.perf_counter())
            self.history.append(record)
            try:
                yield record
            finally:
                record.released_at = time.perf_counter()
                self._owner = None

    async def run(self, fn: Callable[[], Awaitable[T]], label: str = "read") -> T:
        async with self.hold(label):
            return await fn()
