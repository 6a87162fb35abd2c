"""Entry point for device sessions, gated reads and write transactions."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional, TypeVar

from ..devices import create_transport
from ..devices.base import DeviceConfig, DeviceTransport, SystemInformation
from ..devices.setfile import SetFileWriter
from ..errors import JunosConfigError
from ..utils.connection import open_with_retry
from ..utils.logging_config import timed_section
from .gate import ReadGate
from .session import ConfigSession
from .transaction import ConfigTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")

TransportFactory = Callable[[str, DeviceConfig], DeviceTransport]


class JunosClient:
    """Client for one Junos device.

    Reads go through ``read`` (gate, fresh session, callback, close, release).
    Writes go through ``transaction`` (session, lock, stage, commit, clear,
    close).

    Usage:
        client = JunosClient(config, gate=inventory.gate)
        async with client.transaction() as txn:
            await txn.stage(["set vlans v10 vlan-id 10"])
            await txn.commit("create resource vlan")
        print(txn.warnings)
    """

    def __init__(
        self,
        config: DeviceConfig,
        device_id: Optional[str] = None,
        gate: Optional[ReadGate] = None,
        transport_factory: Optional[TransportFactory] = None,
    ):
        self.config = config
        self.device_id = device_id or config.name
        self.gate = gate or ReadGate()
        self._transport_factory = transport_factory or create_transport
        self.setfile: Optional[SetFileWriter] = None
        if config.fake_mode:
            self.setfile = SetFileWriter(config.fake_create_with_setfile, config.file_permission)

    @asynccontextmanager
    async def start_session(self):
        """Open a session, closed on every exit path."""
        transport = self._transport_factory(self.device_id, self.config)
        await open_with_retry(transport)
        session = ConfigSession(transport, self.config)
        try:
            yield session
        finally:
            await session.close()

    async def read(self, fn: Callable[[ConfigSession], Awaitable[T]], label: str = "read") -> T:
        """Run ``fn`` on a fresh session while holding the read gate."""
        async with self.gate.hold(label):
            async with self.start_session() as session:
                return await fn(session)

    async def command(self, text: str) -> str:
        return await self.read(lambda session: session.command(text), label=f"command {text}")

    async def exists(self, path: str) -> bool:
        return await self.read(lambda session: session.exists(path), label=f"exists {path}")

    async def show_config(self, path: str, relative: bool = False) -> str:
        return await self.read(
            lambda session: session.read_config(path, relative=relative),
            label=f"show {path}",
        )

    async def facts(self) -> SystemInformation:
        async def _facts(session: ConfigSession) -> SystemInformation:
            return session.system_information

        return await self.read(_facts, label="facts")

    @asynccontextmanager
    async def transaction(self):
        """Lock the candidate and yield a ConfigTransaction.

        On exit the candidate is cleared and unlocked, whether the block
        succeeded or not. Cleanup warnings are added to ``txn.warnings``, and
        on failure the raised error's ``warnings`` holds everything collected.

        Raises:
            SessionOpenError: session could not be opened
            LockError: candidate locked elsewhere (nothing to clean up)
        """
        async with timed_section("transaction", device_id=self.device_id), self.start_session() as session:
            await session.config_lock()
            txn = ConfigTransaction(self, session)
            try:
                yield txn
            except Exception as e:
                clear_warnings = await session.config_clear()
                if isinstance(e, JunosConfigError):
                    e.warnings = txn.warnings + e.warnings + clear_warnings
                txn.warnings.extend(clear_warnings)
                logger.warning(f"{self.device_id}: transaction aborted: {e}")
                raise
            except BaseException:
                # cancelled: the clear has to reach the device before close
                await asyncio.shield(session.config_clear())
                logger.warning(f"{self.device_id}: transaction cancelled")
                raise
            else:
                txn.warnings.extend(await session.config_clear())
