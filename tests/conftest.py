"""Shared fixtures: a simulated Junos device and a transport bound to it."""
import asyncio
import itertools
from typing import Optional

import pytest

from mcp_junos_config.devices.base import (
    DeviceConfig,
    DeviceMessage,
    DeviceTransport,
    SystemInformation,
    EMPTY_OUTPUT,
)
from mcp_junos_config.errors import SessionOpenError
from mcp_junos_config.transaction.client import JunosClient
from mcp_junos_config.transaction.gate import ReadGate

SHOW_PREFIX = "show configuration "
RELATIVE_SUFFIX = " | display set relative"
SET_SUFFIX = " | display set"


def _under(line: str, path: str) -> bool:
    return line == path or line.startswith(path + " ")


class SimulatedDevice:
    """In-memory Junos device with candidate/active configuration and a lock.

    Configuration lines are kept without their "set " keyword. A statement
    holding "<" or not starting with set/delete is rejected, with the bad
    word reported as bad-element.
    """

    def __init__(self):
        self.active: list[str] = []
        self.candidate: list[str] = []
        self.lock_owner: Optional[int] = None
        self.log: list[tuple[int, str]] = []
        self.commits: list[str] = []
        self.commit_errors: list[DeviceMessage] = []
        self.commit_warnings: list[DeviceMessage] = []
        self.drop_on_commit: set[str] = set()
        self.commit_exception: Optional[Exception] = None
        self.commit_delay = 0.0
        self.fail_connects = 0
        self.connect_exception: Optional[Exception] = None
        self.open_sessions = 0
        self.connects = 0
        self.facts = SystemInformation(
            hardware_model="srx345",
            os_name="junos",
            os_version="21.4R3",
            serial_number="CZ0000",
            host_name="sim",
        )
        self._ids = itertools.count(1)

    def next_id(self) -> int:
        return next(self._ids)

    def display(self, path: str, relative: bool) -> str:
        lines = [line for line in self.active if _under(line, path)]
        if not lines:
            return EMPTY_OUTPUT
        if relative:
            lines = [line[len(path):].strip() for line in lines]
            lines = [line for line in lines if line]
            if not lines:
                return EMPTY_OUTPUT
        return "\n".join("set " + line for line in lines)

    def apply(self, statement: str) -> Optional[DeviceMessage]:
        words = statement.split()
        bad = next((w for w in words if "<" in w), None)
        if not words or words[0] not in ("set", "delete") or len(words) < 2 or bad:
            return DeviceMessage(
                message="syntax error",
                path="[edit]",
                bad_element=bad or (words[0] if words else ""),
            )
        body = " ".join(words[1:])
        if words[0] == "set":
            if body not in self.candidate:
                self.candidate.append(body)
        else:
            self.candidate = [line for line in self.candidate if not _under(line, body)]
        return None

    def factory(self, device_id: str, config: DeviceConfig) -> "FakeTransport":
        return FakeTransport(device_id, config, self)

    def session_ops(self, session_id: int) -> list[str]:
        return [op for sid, op in self.log if sid == session_id]


class FakeTransport(DeviceTransport):
    """Transport talking to a SimulatedDevice; yields to the loop on each call."""

    def __init__(self, device_id: str, config: DeviceConfig, device: SimulatedDevice):
        super().__init__(device_id, config)
        self.device = device
        self.session_id = device.next_id()

    async def _op(self, name: str) -> None:
        await asyncio.sleep(0)
        self.device.log.append((self.session_id, name))

    async def connect(self) -> SystemInformation:
        self.device.connects += 1
        if self.device.connect_exception is not None:
            raise self.device.connect_exception
        if self.device.fail_connects > 0:
            self.device.fail_connects -= 1
            raise SessionOpenError(f"error connecting to {self.config.address}: refused")
        await self._op("open")
        self.device.open_sessions += 1
        self._connected = True
        self.system_information = self.device.facts
        return self.system_information

    async def disconnect(self) -> None:
        await self._op("close")
        if self.device.lock_owner == self.session_id:
            # a closing session drops its lock and uncommitted changes
            self.device.lock_owner = None
            self.device.candidate = list(self.device.active)
        self.device.open_sessions -= 1
        self._connected = False

    async def command(self, text: str) -> str:
        await self._op(f"command {text}")
        if text.startswith(SHOW_PREFIX):
            rest = text[len(SHOW_PREFIX):]
            if rest.endswith(RELATIVE_SUFFIX):
                return self.device.display(rest[:-len(RELATIVE_SUFFIX)], relative=True)
            if rest.endswith(SET_SUFFIX):
                return self.device.display(rest[:-len(SET_SUFFIX)], relative=False)
        return EMPTY_OUTPUT

    async def lock_candidate(self) -> list[DeviceMessage]:
        await self._op("lock")
        owner = self.device.lock_owner
        if owner is not None and owner != self.session_id:
            return [DeviceMessage(message=f"configuration database locked by session {owner}")]
        self.device.lock_owner = self.session_id
        self.device.candidate = list(self.device.active)
        return []

    async def unlock_candidate(self) -> list[DeviceMessage]:
        await self._op("unlock")
        if self.device.lock_owner != self.session_id:
            return [DeviceMessage(message="configuration database not locked")]
        self.device.lock_owner = None
        return []

    async def load_set(self, statements: list[str]) -> list[DeviceMessage]:
        await self._op(f"load {len(statements)}")
        if self.device.lock_owner != self.session_id:
            return [DeviceMessage(message="configuration database locked by another session")]
        for statement in statements:
            error = self.device.apply(statement)
            if error is not None:
                return [error]
        return []

    async def clear_candidate(self) -> list[DeviceMessage]:
        await self._op("clear")
        self.device.candidate = list(self.device.active)
        return []

    async def commit(self, log: str, confirm_timeout: Optional[int] = None) -> list[DeviceMessage]:
        await self._op(f"commit {log}" + (f" confirmed {confirm_timeout}" if confirm_timeout else ""))
        if self.device.commit_delay:
            await asyncio.sleep(self.device.commit_delay)
        if self.device.commit_exception is not None:
            raise self.device.commit_exception
        messages = list(self.device.commit_errors) + list(self.device.commit_warnings)
        if self.device.commit_errors:
            return messages
        self.device.commits.append(log)
        self.device.active = [
            line for line in self.device.candidate
            if not any(_under(line, path) for path in self.device.drop_on_commit)
        ]
        return messages

    async def commit_check(self) -> list[DeviceMessage]:
        await self._op("commit check")
        return []


@pytest.fixture
def device():
    return SimulatedDevice()


@pytest.fixture
def device_config():
    return DeviceConfig(
        name="sim",
        host="192.0.2.1",
        password="secret",
        sleep_short=0,
    )


@pytest.fixture
def gate():
    return ReadGate()


@pytest.fixture
def client(device, device_config, gate):
    return JunosClient(device_config, gate=gate, transport_factory=device.factory)
