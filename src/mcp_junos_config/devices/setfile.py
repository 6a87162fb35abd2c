"""Local "set file" used instead of a device when fake mode is enabled."""
import asyncio
import logging
import os
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)


class SetFileWriter:
    """Append set/delete statements to a local file, one per line.

    The file is created with ``permission`` (an octal string such as "644")
    when it does not exist yet. Existing content is never truncated.
    """

    def __init__(self, path: str, permission: str = "644"):
        self.path = Path(os.path.expanduser(path))
        self.mode = int(permission, 8)
        self._lock = asyncio.Lock()

    def _append(self, lines: list[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, self.mode)
        with os.fdopen(fd, "a", encoding="utf-8") as f:
            for line in lines:
                f.write(line + "\n")

    async def append(self, statements: Iterable[str]) -> int:
        """Append statements; returns the number of lines written."""
        lines = list(statements)
        async with self._lock:
            loop = asyncio.get_event_loop()
            await loop.run_in_executor(None, self._append, lines)
        logger.info(f"Wrote {len(lines)} statement(s) to set file {self.path}")
        return len(lines)

    def read_lines(self) -> list[str]:
        if not self.path.exists():
            return []
        return self.path.read_text(encoding="utf-8").splitlines()
