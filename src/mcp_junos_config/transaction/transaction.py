"""Write transaction bound to a locked session."""
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, Optional, TypeVar

from ..errors import DriftError
from .session import ConfigSession
from .statement import StatementLike

if TYPE_CHECKING:
    from .client import JunosClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConfigTransaction:
    """Staging and commit on a session that holds the configuration lock.

    Created by ``JunosClient.transaction()``, which clears the candidate and
    releases the lock when the block exits. ``warnings`` accumulates device
    warnings of successful steps; a failing step raises with its own.
    """

    def __init__(self, client: "JunosClient", session: ConfigSession):
        self.client = client
        self.session = session
        self.warnings: list[str] = []
        self.staged: list[str] = []
        self.committed = False

    @property
    def device_id(self) -> str:
        return self.session.device_id

    async def stage(self, statements: Iterable[StatementLike]) -> None:
        statements = list(statements)
        self.warnings.extend(await self.session.config_set(statements))
        self.staged.extend(str(s) for s in statements)

    async def commit(self, description: str) -> list[str]:
        warnings = await self.session.commit_conf(description)
        self.warnings.extend(warnings)
        self.committed = True
        return warnings

    async def read(self, fn: Callable[[ConfigSession], Awaitable[T]], label: str = "transaction read") -> T:
        """Run a read on this session while holding the read gate."""
        async with self.client.gate.hold(label):
            return await fn(self.session)

    async def exists(self, path: str) -> bool:
        return await self.read(lambda session: session.exists(path), label=f"exists {path}")

    async def verify_exists(self, path: str, what: Optional[str] = None) -> None:
        """Check a committed object is present in the active configuration.

        Raises:
            DriftError: the object is absent after commit
        """
        if not await self.exists(path):
            name = what or path
            logger.error(f"{self.device_id}: {name} missing after commit")
            raise DriftError(f"{name} not exists after commit => check your config")
