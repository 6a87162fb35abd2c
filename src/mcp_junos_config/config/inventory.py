"""Device inventory management from YAML configuration."""
import logging
import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Optional

import yaml

from ..devices.base import DeviceConfig
from ..transaction.client import JunosClient, TransportFactory
from ..transaction.gate import ReadGate

logger = logging.getLogger(__name__)

# Fallbacks for fields missing from the inventory
ENV_FALLBACKS: dict[str, str] = {
    "host": "JUNOS_HOST",
    "port": "JUNOS_PORT",
    "timeout": "JUNOS_SSH_TIMEOUT_TO_ESTABLISH",
    "retries": "JUNOS_SSH_RETRY_TO_ESTABLISH",
    "username": "JUNOS_USERNAME",
    "ssh_key_pem": "JUNOS_KEYPEM",
    "ssh_key_file": "JUNOS_KEYFILE",
    "key_passphrase": "JUNOS_KEYPASS",
    "sleep_short": "JUNOS_SLEEP_SHORT",
    "sleep_closed": "JUNOS_SLEEP_SSH_CLOSED",
    "netconf_log_path": "JUNOS_LOG_PATH",
    "fake_create_with_setfile": "JUNOS_FAKECREATE_SETFILE",
    "fake_update_also": "JUNOS_FAKEUPDATE_ALSO",
    "fake_delete_also": "JUNOS_FAKEDELETE_ALSO",
    "file_permission": "JUNOS_FILE_PERMISSION",
    "commit_confirmed": "JUNOS_COMMIT_CONFIRMED",
    "commit_confirmed_wait_percent": "JUNOS_COMMIT_CONFIRMED_WAIT_PERCENT",
}

INT_FIELDS = {
    "port", "timeout", "retries", "sleep_short", "sleep_closed",
    "commit_confirmed", "commit_confirmed_wait_percent",
}
BOOL_FIELDS = {"fake_update_also", "fake_delete_also"}
STR_FIELDS = {"file_permission"}

DEVICE_CONFIG_FIELDS = {f.name for f in fields(DeviceConfig)}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _coerce(key: str, value: Any) -> Any:
    if value is None:
        return None
    if key in BOOL_FIELDS:
        return _parse_bool(value)
    if key in INT_FIELDS:
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"'{key}' must be an integer, got {value!r}") from None
    if key in STR_FIELDS:
        # YAML reads 0644 as the int 420; only quoted text keeps the octal digits
        if not isinstance(value, str):
            raise ValueError(f"'{key}' must be a quoted octal string such as \"0644\", got {value!r}")
        return value
    return value


class DeviceInventory:
    """Manages the Junos device inventory loaded from YAML config.

    ```yaml
    defaults:
      username: netconf
      password_env: JUNOS_PASSWORD
      sleep_short: 100
    devices:
      srx-edge:
        host: 192.0.2.1
        commit_confirmed: 5
      ex-core:
        host: 192.0.2.2
        ssh_key_file: ~/.ssh/id_ed25519
    ```

    All clients built here share one ReadGate, so reads of every device are
    serialized process-wide.
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        gate: Optional[ReadGate] = None,
        transport_factory: Optional[TransportFactory] = None,
    ):
        self.config_path = config_path or self._find_config()
        self.gate = gate or ReadGate()
        self._transport_factory = transport_factory
        self._config: dict = {}
        self._clients: dict[str, JunosClient] = {}
        self._load_config()

    def _find_config(self) -> str:
        """Find the devices.yaml config file."""
        search_paths = [
            Path.cwd() / "configs" / "devices.yaml",
            Path.cwd() / "devices.yaml",
            Path.home() / ".config" / "mcp-junos-config" / "devices.yaml",
            Path("/etc/mcp-junos-config/devices.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        raise FileNotFoundError(
            "Could not find devices.yaml. Create one in ./configs/devices.yaml "
            "or point MCP_JUNOS_CONFIG at it"
        )

    def _load_config(self) -> None:
        """Load the YAML configuration."""
        with open(self.config_path) as f:
            self._config = yaml.safe_load(f) or {}

        defaults = self._config.get("defaults") or {}
        devices = self._config.get("devices") or {}
        for device_id, device_config in devices.items():
            if device_config is None:
                device_config = devices[device_id] = {}
            for key, value in defaults.items():
                if key not in device_config:
                    device_config[key] = value
            unknown = set(device_config) - DEVICE_CONFIG_FIELDS
            if unknown:
                logger.warning(f"Device '{device_id}' has unknown settings: {sorted(unknown)}")
        self._config["devices"] = devices

    def get_device_ids(self) -> list[str]:
        """Get all device IDs."""
        return list(self._config.get("devices", {}).keys())

    def get_raw_config(self, device_id: str) -> dict:
        devices = self._config.get("devices", {})
        if device_id not in devices:
            raise KeyError(f"Unknown device: {device_id}")
        return devices[device_id]

    def get_device_config(self, device_id: str) -> DeviceConfig:
        """Build the DeviceConfig of a device, filling gaps from the environment.

        Raises:
            KeyError: unknown device
            ValueError: invalid or contradictory settings
        """
        raw = self.get_raw_config(device_id)
        values: dict[str, Any] = {"name": device_id}
        for key, value in raw.items():
            if key in DEVICE_CONFIG_FIELDS:
                values[key] = _coerce(key, value)

        for key, env_name in ENV_FALLBACKS.items():
            if values.get(key) is None and env_name in os.environ:
                values[key] = _coerce(key, os.environ[env_name])

        if not values.get("host"):
            raise ValueError(f"Device '{device_id}' has no host (set 'host' or JUNOS_HOST)")
        return DeviceConfig(**values)

    def get_client(self, device_id: str) -> JunosClient:
        """Get or create the client of a device."""
        if device_id not in self._clients:
            config = self.get_device_config(device_id)
            self._clients[device_id] = JunosClient(
                config,
                device_id=device_id,
                gate=self.gate,
                transport_factory=self._transport_factory,
            )
        return self._clients[device_id]

    def describe(self, device_id: str) -> dict:
        """Connection summary of a device, without secrets."""
        config = self.get_device_config(device_id)
        return {
            "device_id": device_id,
            "host": config.host,
            "port": config.port,
            "username": config.username,
            "auth": "key" if (config.ssh_key_pem or config.ssh_key_file) else "password",
            "commit_confirmed": config.commit_confirmed,
            "set_file": config.fake_create_with_setfile or None,
        }
