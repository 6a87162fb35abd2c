"""Tests for device inventory management."""
import os
import tempfile

import pytest

from mcp_junos_config.config.inventory import DeviceInventory
from mcp_junos_config.transaction.client import JunosClient


class TestDeviceInventory:
    """Tests for DeviceInventory class."""

    @pytest.fixture
    def temp_config(self):
        """Create a temporary config file for testing."""
        config_content = """
defaults:
  password_env: "TEST_PASSWORD"
  timeout: 30
  retries: 3
  file_permission: "0600"

devices:
  srx-edge:
    host: 192.0.2.1
    username: admin
    commit_confirmed: 5

  ex-core:
    host: 192.0.2.2
    port: 22
    ssh_key_file: ~/.ssh/id_ed25519

  from-env:
"""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            f.write(config_content)
            f.flush()
            yield f.name
        os.unlink(f.name)

    def test_load_config(self, temp_config):
        """Inventory loads config file correctly."""
        inv = DeviceInventory(temp_config)
        assert inv.get_device_ids() == ["srx-edge", "ex-core", "from-env"]

    def test_defaults_merged(self, temp_config):
        """Defaults apply unless the device overrides them."""
        inv = DeviceInventory(temp_config)
        config = inv.get_device_config("srx-edge")
        assert config.host == "192.0.2.1"
        assert config.username == "admin"
        assert config.password_env == "TEST_PASSWORD"
        assert config.retries == 3
        assert config.commit_confirmed == 5
        assert config.file_permission == "0600"

    def test_unknown_device(self, temp_config):
        inv = DeviceInventory(temp_config)
        with pytest.raises(KeyError):
            inv.get_device_config("nonexistent")

    def test_env_fallbacks(self, temp_config, monkeypatch):
        """Missing fields are read from the JUNOS_* environment variables."""
        monkeypatch.setenv("JUNOS_HOST", "198.51.100.7")
        monkeypatch.setenv("JUNOS_PORT", "2830")
        monkeypatch.setenv("JUNOS_SLEEP_SHORT", "50")
        monkeypatch.setenv("JUNOS_FAKECREATE_SETFILE", "/tmp/out.set")
        monkeypatch.setenv("JUNOS_FAKEDELETE_ALSO", "true")
        inv = DeviceInventory(temp_config)
        config = inv.get_device_config("from-env")
        assert config.host == "198.51.100.7"
        assert config.port == 2830
        assert config.sleep_short == 50
        assert config.fake_mode
        assert config.fake_delete_also is True

    def test_file_values_win_over_env(self, temp_config, monkeypatch):
        monkeypatch.setenv("JUNOS_HOST", "198.51.100.7")
        inv = DeviceInventory(temp_config)
        assert inv.get_device_config("srx-edge").host == "192.0.2.1"

    def test_missing_host(self, temp_config, monkeypatch):
        monkeypatch.delenv("JUNOS_HOST", raising=False)
        inv = DeviceInventory(temp_config)
        with pytest.raises(ValueError, match="no host"):
            inv.get_device_config("from-env")

    def test_invalid_fake_options(self, temp_config, monkeypatch):
        """Fake update without a set file is rejected."""
        monkeypatch.setenv("JUNOS_HOST", "198.51.100.7")
        monkeypatch.setenv("JUNOS_FAKEUPDATE_ALSO", "true")
        monkeypatch.delenv("JUNOS_FAKECREATE_SETFILE", raising=False)
        inv = DeviceInventory(temp_config)
        with pytest.raises(ValueError):
            inv.get_device_config("from-env")

    def test_unquoted_file_permission_rejected(self, tmp_path):
        """YAML turns an unquoted 0644 into the int 420, which is refused."""
        config_file = tmp_path / "devices.yaml"
        config_file.write_text("devices:\n  srx-edge:\n    host: 192.0.2.1\n    file_permission: 0644\n")
        inv = DeviceInventory(str(config_file))
        with pytest.raises(ValueError, match="quoted octal string"):
            inv.get_device_config("srx-edge")

    def test_file_permission_from_env(self, tmp_path, monkeypatch):
        config_file = tmp_path / "devices.yaml"
        config_file.write_text("devices:\n  srx-edge:\n    host: 192.0.2.1\n")
        monkeypatch.setenv("JUNOS_FILE_PERMISSION", "0640")
        config = DeviceInventory(str(config_file)).get_device_config("srx-edge")
        assert int(config.file_permission, 8) == 0o640

    def test_ssh_establish_env_fallbacks(self, tmp_path, monkeypatch):
        config_file = tmp_path / "devices.yaml"
        config_file.write_text("devices:\n  srx-edge:\n    host: 192.0.2.1\n")
        monkeypatch.setenv("JUNOS_SSH_TIMEOUT_TO_ESTABLISH", "12")
        monkeypatch.setenv("JUNOS_SSH_RETRY_TO_ESTABLISH", "4")
        config = DeviceInventory(str(config_file)).get_device_config("srx-edge")
        assert config.timeout == 12
        assert config.retries == 4

    def test_clients_share_gate(self, temp_config):
        """Every client built by the inventory uses the same read gate."""
        inv = DeviceInventory(temp_config)
        a = inv.get_client("srx-edge")
        b = inv.get_client("ex-core")
        assert isinstance(a, JunosClient)
        assert a.gate is b.gate is inv.gate
        assert inv.get_client("srx-edge") is a

    def test_describe_hides_secrets(self, temp_config):
        inv = DeviceInventory(temp_config)
        info = inv.describe("ex-core")
        assert info["auth"] == "key"
        assert info["port"] == 22
        assert "password" not in info

    def test_missing_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        if os.path.exists("/etc/mcp-junos-config/devices.yaml"):
            pytest.skip("system inventory present")
        with pytest.raises(FileNotFoundError):
            DeviceInventory()
