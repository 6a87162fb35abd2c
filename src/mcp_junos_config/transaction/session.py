"""Configuration session: the lock/set/commit/clear primitives over one transport."""
import asyncio
import logging
from typing import Iterable, Optional

from ..devices.base import DeviceConfig, DeviceMessage, DeviceTransport, SystemInformation, EMPTY_OUTPUT
from ..errors import CommandError, CommitError, LockError, ReadError, StageError
from .statement import StatementLike, normalize, show_config_command

logger = logging.getLogger(__name__)


def _split(messages: list[DeviceMessage]) -> tuple[list[DeviceMessage], list[str]]:
    errors = [m for m in messages if m.is_error]
    warnings = [str(m) for m in messages if not m.is_error]
    return errors, warnings


def locate_statement(lines: list[str], errors: list[DeviceMessage]) -> Optional[str]:
    """Find the statement a device error points at through its bad-element."""
    for error in errors:
        if not error.bad_element:
            continue
        for line in lines:
            if error.bad_element in line.split():
                return line
        for line in lines:
            if error.bad_element in line:
                return line
    return None


class ConfigSession:
    """One open session to a device.

    Owned by the operation that opened it. Lock ownership is tracked in
    ``locked``; ``config_clear`` is the only way to give the lock back.
    """

    def __init__(self, transport: DeviceTransport, config: DeviceConfig):
        self.transport = transport
        self.config = config
        self.locked = False
        self.closed = False

    @property
    def device_id(self) -> str:
        return self.transport.device_id

    @property
    def system_information(self) -> SystemInformation:
        return self.transport.system_information

    async def _sleep_short(self) -> None:
        if self.config.sleep_short > 0:
            await asyncio.sleep(self.config.sleep_short / 1000)

    async def command(self, text: str) -> str:
        """Run an operational command; EMPTY_OUTPUT when nothing is displayed."""
        output = await self.transport.command(text)
        await self._sleep_short()
        return output

    async def config_lock(self) -> None:
        """Lock the candidate configuration for this session.

        Raises:
            LockError: already locked by another session or rejected
        """
        if self.locked:
            return
        try:
            messages = await self.transport.lock_candidate()
        except CommandError as e:
            raise LockError(f"locking candidate configuration on {self.device_id}: {e}") from e

        errors, warnings = _split(messages)
        if errors:
            reason = "\n".join(str(m) for m in errors)
            raise LockError(
                f"candidate configuration on {self.device_id} is locked by another session "
                f"or the lock was rejected: {reason}",
                warnings,
            )
        for warning in warnings:
            logger.warning(f"{self.device_id}: config lock: {warning}")
        self.locked = True
        logger.debug(f"{self.device_id}: candidate configuration locked")

    async def config_set(self, statements: Iterable[StatementLike]) -> list[str]:
        """Load statements into the candidate, in the given order.

        Returns the device warnings.

        Raises:
            LockError: the session does not hold the lock
            StageError: the device rejected a statement
        """
        if not self.locked:
            raise LockError(f"staging on {self.device_id} without holding the configuration lock")
        lines = normalize(statements)
        if not lines:
            return []

        messages = await self.transport.load_set(lines)
        await self._sleep_short()
        errors, warnings = _split(messages)
        if errors:
            reason = "\n".join(m.message for m in errors)
            raise StageError(reason, locate_statement(lines, errors), warnings)
        logger.debug(f"{self.device_id}: staged {len(lines)} statement(s)")
        return warnings

    async def commit_conf(self, description: str) -> list[str]:
        """Commit the candidate, returning warnings.

        With ``commit_confirmed`` set, commits with a rollback timer, waits
        the configured share of it, then confirms with a commit check.

        Raises:
            CommitError: validation or activation failed; carries warnings
        """
        if not self.locked:
            raise LockError(f"commit on {self.device_id} without holding the configuration lock")

        confirmed = self.config.commit_confirmed
        messages = await self.transport.commit(description, confirm_timeout=confirmed)
        errors, warnings = _split(messages)
        if errors:
            raise CommitError("\n".join(str(m) for m in errors), warnings)

        if confirmed:
            wait = confirmed * 60 * self.config.commit_confirmed_wait_percent / 100
            logger.info(f"{self.device_id}: commit confirmed {confirmed}m, confirming in {wait:.0f}s")
            await asyncio.sleep(wait)
            errors, check_warnings = _split(await self.transport.commit_check())
            warnings.extend(check_warnings)
            if errors:
                raise CommitError(
                    "confirming commit: " + "\n".join(str(m) for m in errors), warnings
                )

        logger.info(f"{self.device_id}: committed '{description}'")
        return warnings

    async def config_clear(self) -> list[str]:
        """Discard the candidate and release the lock; problems become warnings."""
        if not self.locked:
            return []

        warnings = []
        try:
            warnings.extend(f"config clear: {m}" for m in await self.transport.clear_candidate())
        except CommandError as e:
            warnings.append(f"config clear: {e}")
        try:
            warnings.extend(f"config unlock: {m}" for m in await self.transport.unlock_candidate())
        except CommandError as e:
            warnings.append(f"config unlock: {e}")
        self.locked = False

        for warning in warnings:
            logger.warning(f"{self.device_id}: {warning}")
        return warnings

    async def exists(self, path: str) -> bool:
        """Whether the active configuration holds anything under ``path``.

        Raises:
            ReadError: the display command failed
        """
        try:
            output = await self.command(show_config_command(path))
        except CommandError as e:
            raise ReadError(f"reading configuration '{path}': {e}") from e
        return output != EMPTY_OUTPUT

    async def read_config(self, path: str, relative: bool = True) -> str:
        try:
            return await self.command(show_config_command(path, relative=relative))
        except CommandError as e:
            raise ReadError(f"reading configuration '{path}': {e}") from e

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self.transport.disconnect()
