"""Base transport abstraction for Junos devices."""
import os
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Marker returned by command() when the device has nothing to display
EMPTY_OUTPUT = "empty"

ERROR_SEVERITY = "error"


@dataclass
class DeviceConfig:
    """Connection and session settings for a Junos device."""
    name: str
    host: str
    port: int = 830
    username: str = "netconf"
    password: Optional[str] = None
    password_env: str = "JUNOS_PASSWORD"
    type: str = "netconf"
    ssh_key_pem: Optional[str] = None
    ssh_key_file: Optional[str] = None
    key_passphrase: Optional[str] = None
    timeout: int = 30
    retries: int = 1
    # Pauses, in milliseconds after each RPC and in seconds after close
    sleep_short: int = 100
    sleep_closed: int = 0
    commit_confirmed: Optional[int] = None
    commit_confirmed_wait_percent: int = 90
    netconf_log_path: str = ""
    # Write statements to a local file instead of the device
    fake_create_with_setfile: str = ""
    fake_update_also: bool = False
    fake_delete_also: bool = False
    file_permission: str = "644"

    def __post_init__(self) -> None:
        if (self.fake_update_also or self.fake_delete_also) and not self.fake_create_with_setfile:
            raise ValueError(
                "'fake_create_with_setfile' need to be set with "
                "'fake_update_also' and 'fake_delete_also'"
            )
        if self.commit_confirmed is not None and not 1 <= self.commit_confirmed <= 65535:
            raise ValueError(
                f"commit_confirmed must be between 1 and 65535 minutes, got {self.commit_confirmed}"
            )
        if not 0 <= self.commit_confirmed_wait_percent <= 99:
            raise ValueError(
                "commit_confirmed_wait_percent must be between 0 and 99, "
                f"got {self.commit_confirmed_wait_percent}"
            )
        try:
            int(self.file_permission, 8)
        except ValueError:
            raise ValueError(f"file_permission '{self.file_permission}' is not an octal mode") from None

    def get_password(self) -> str:
        """Get password from config or environment variable."""
        if self.password:
            return self.password
        return os.environ.get(self.password_env, "")

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def retry_attempts(self) -> int:
        """Connection attempts, bounded to 1..10."""
        return min(max(self.retries, 1), 10)

    @property
    def fake_mode(self) -> bool:
        return bool(self.fake_create_with_setfile)


@dataclass
class SystemInformation:
    """Facts gathered from the device when the session opens."""
    hardware_model: str = ""
    os_name: str = ""
    os_version: str = ""
    serial_number: str = ""
    host_name: str = ""
    cluster_node: Optional[bool] = None

    def supports_security(self) -> bool:
        """SRX, vSRX and J-series platforms carry the security stanza."""
        model = self.hardware_model.lower()
        return model.startswith(("srx", "vsrx", "j"))

    def is_cluster(self) -> bool:
        return bool(self.cluster_node)

    def to_dict(self) -> dict:
        return {
            "hardware_model": self.hardware_model,
            "os_name": self.os_name,
            "os_version": self.os_version,
            "serial_number": self.serial_number,
            "host_name": self.host_name,
            "cluster_node": self.cluster_node,
        }


@dataclass
class DeviceMessage:
    """One rpc-error element returned by the device."""
    message: str
    severity: str = ERROR_SEVERITY
    path: str = ""
    bad_element: str = ""

    @property
    def is_error(self) -> bool:
        return self.severity == ERROR_SEVERITY

    def __str__(self) -> str:
        text = self.message
        if self.path:
            text += f" (path: {self.path})"
        if self.bad_element:
            text += f" (element: {self.bad_element})"
        return text


class DeviceTransport(ABC):
    """Abstract base class for the request/response link to a device.

    Transports report device-side rejections as lists of DeviceMessage and
    leave it to the session layer to decide which of them are fatal. Only
    transport failures (and rpc-errors on plain commands) raise.
    """

    def __init__(self, device_id: str, config: DeviceConfig):
        self.device_id = device_id
        self.config = config
        self._connected = False
        self._connection: Any = None
        self.system_information = SystemInformation()

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def is_connected(self) -> bool:
        return self._connected

    # Connection management
    @abstractmethod
    async def connect(self) -> SystemInformation:
        """Open the session and gather device facts.

        Raises:
            SessionOpenError: transport or handshake failure
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the session."""
        pass

    # Command execution
    @abstractmethod
    async def command(self, text: str) -> str:
        """Run an operational command and return its text output.

        Returns EMPTY_OUTPUT when the device has nothing to display.
        """
        pass

    # Candidate configuration
    @abstractmethod
    async def lock_candidate(self) -> list[DeviceMessage]:
        pass

    @abstractmethod
    async def unlock_candidate(self) -> list[DeviceMessage]:
        pass

    @abstractmethod
    async def load_set(self, statements: list[str]) -> list[DeviceMessage]:
        """Load set/delete statements into the candidate, in order."""
        pass

    @abstractmethod
    async def clear_candidate(self) -> list[DeviceMessage]:
        """Discard uncommitted changes of the candidate."""
        pass

    @abstractmethod
    async def commit(self, log: str, confirm_timeout: Optional[int] = None) -> list[DeviceMessage]:
        """Commit the candidate with a log message.

        Args:
            log: Commit log message
            confirm_timeout: Minutes before automatic rollback (commit confirmed)
        """
        pass

    @abstractmethod
    async def commit_check(self) -> list[DeviceMessage]:
        """Validate the candidate, which also confirms a pending commit confirmed."""
        pass

    # Context manager support
    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
        return False
