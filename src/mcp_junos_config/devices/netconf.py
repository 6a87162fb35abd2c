"""Junos NETCONF transport over SSH.

Raw Junos RPCs are sent through ncclient's ``rpc`` operation and the replies
are inspected here, so that rpc-error elements nested in commit results are
seen as well as top-level ones.

RPC reference:
- <command format="text">            : show/operational command, text output
- <load-configuration action="set">  : load set/delete statements into candidate
- <lock>/<unlock> on candidate       : exclusive configuration edit lock
- <delete-config> on candidate       : discard uncommitted changes
- <commit-configuration>             : commit, optionally confirmed or check only
- <get-system-information/>          : facts gathered on connect
"""
import asyncio
import io
import logging
import os
import tempfile
from typing import Optional
from xml.sax.saxutils import escape

import paramiko
from lxml import etree
from ncclient import NCClientError, manager
from ncclient.operations import RaiseMode
from ncclient.operations.errors import TimeoutExpiredError
from ncclient.transport.errors import AuthenticationError, SSHError

from .base import (
    DeviceTransport,
    DeviceConfig,
    DeviceMessage,
    SystemInformation,
    EMPTY_OUTPUT,
    ERROR_SEVERITY,
)
from ..errors import CommandError, CommandTimeoutError, CredentialsError, SessionOpenError
from ..utils.logging_config import timed, get_netconf_logger

logger = logging.getLogger(__name__)

RPC_COMMAND_TEXT = '<command format="text">{}</command>'
RPC_LOAD_CONFIG_SET_TEXT = (
    '<load-configuration action="set" format="text">'
    "<configuration-set>{}</configuration-set></load-configuration>"
)
RPC_GET_SYSTEM_INFORMATION = "<get-system-information/>"
RPC_COMMIT_CONFIG = "<commit-configuration><log>{}</log></commit-configuration>"
RPC_COMMIT_CONFIG_CONFIRMED = (
    "<commit-configuration><confirmed/><confirm-timeout>{}</confirm-timeout>"
    "<log>{}</log></commit-configuration>"
)
RPC_COMMIT_CONFIG_CHECK = "<commit-configuration><check/></commit-configuration>"
RPC_LOCK_CANDIDATE = "<lock><target><candidate/></target></lock>"
RPC_UNLOCK_CANDIDATE = "<unlock><target><candidate/></target></unlock>"
RPC_CLEAR_CANDIDATE = "<delete-config><target><candidate/></target></delete-config>"

OUTPUT_TAGS = ("configuration-output", "output")

KEY_TYPES = (paramiko.RSAKey, paramiko.ECDSAKey, paramiko.Ed25519Key)


def _local_name(element) -> str:
    if not isinstance(element.tag, str):
        return ""
    return etree.QName(element).localname


def _find(element, name: str):
    for child in element.iter():
        if _local_name(child) == name:
            return child
    return None


def _find_text(element, name: str) -> str:
    found = _find(element, name)
    if found is None or found.text is None:
        return ""
    return found.text.strip()


def parse_reply(reply_xml: str):
    """Parse a raw rpc-reply into an element tree."""
    try:
        return etree.fromstring(reply_xml.encode())
    except etree.XMLSyntaxError as e:
        raise CommandError(f"unmarshaling xml reply {reply_xml!r}: {e}") from e


def parse_messages(root) -> list[DeviceMessage]:
    """Collect every rpc-error of a reply, including nested commit results."""
    messages = []
    for element in root.iter():
        if _local_name(element) != "rpc-error":
            continue
        messages.append(DeviceMessage(
            message=_find_text(element, "error-message"),
            severity=_find_text(element, "error-severity") or ERROR_SEVERITY,
            path=_find_text(element, "error-path"),
            bad_element=_find_text(element, "bad-element"),
        ))
    return messages


def parse_command_output(root) -> str:
    """Extract the text output of a <command format="text"> reply."""
    for tag in OUTPUT_TAGS:
        found = _find(root, tag)
        if found is not None:
            text = "".join(found.itertext())
            break
    else:
        text = "".join(
            "".join(child.itertext())
            for child in root
            if _local_name(child) != "rpc-error"
        )
    text = text.strip("\n")
    if not text.strip():
        return EMPTY_OUTPUT
    return text


def parse_system_information(root) -> SystemInformation:
    info = _find(root, "system-information")
    if info is None:
        raise CommandError("get-system-information reply has no system-information element")

    cluster_node: Optional[bool] = None
    node = _find(info, "cluster-node")
    if node is not None:
        text = (node.text or "").strip().lower()
        cluster_node = text in ("", "true", "1")

    return SystemInformation(
        hardware_model=_find_text(info, "hardware-model"),
        os_name=_find_text(info, "os-name"),
        os_version=_find_text(info, "os-version"),
        serial_number=_find_text(info, "serial-number"),
        host_name=_find_text(info, "host-name"),
        cluster_node=cluster_node,
    )


def load_private_key(config: DeviceConfig) -> Optional[paramiko.PKey]:
    """Load the configured SSH private key (PEM string first, then file)."""
    if config.ssh_key_pem:
        source = "PEM private key"
        key_text = config.ssh_key_pem
    elif config.ssh_key_file:
        source = "file private key"
        try:
            with open(os.path.expanduser(config.ssh_key_file)) as f:
                key_text = f.read()
        except OSError as e:
            raise CredentialsError(f"failed to read {source}: {e}") from e
    else:
        return None

    last_error: Optional[Exception] = None
    for key_type in KEY_TYPES:
        try:
            return key_type.from_private_key(
                io.StringIO(key_text), password=config.key_passphrase or None
            )
        except (paramiko.SSHException, ValueError) as e:
            last_error = e
    raise CredentialsError(f"failed to create new SSH config with {source}: {last_error}")


class NetconfTransport(DeviceTransport):
    """NETCONF session to a Junos device using ncclient."""

    def __init__(self, device_id: str, config: DeviceConfig):
        super().__init__(device_id, config)
        self._transcript: Optional[logging.Logger] = None
        if config.netconf_log_path:
            self._transcript = get_netconf_logger(config.netconf_log_path)

    @timed("netconf_connect")
    async def connect(self) -> SystemInformation:
        """Open the SSH/NETCONF session and gather facts."""
        loop = asyncio.get_event_loop()
        key = load_private_key(self.config)
        password = self.config.get_password()
        allow_agent = key is None and bool(os.environ.get("SSH_AUTH_SOCK"))
        if key is None and not password and not allow_agent:
            raise CredentialsError("no credentials/keys available")

        def _connect():
            key_path = None
            try:
                if key is not None:
                    # ncclient only takes key files; hand it an unencrypted copy
                    fd, key_path = tempfile.mkstemp(prefix="junos-key-")
                    os.close(fd)
                    key.write_private_key_file(key_path)
                return manager.connect(
                    host=self.config.host,
                    port=self.config.port,
                    username=self.config.username,
                    password=password or None,
                    key_filename=key_path,
                    allow_agent=allow_agent,
                    look_for_keys=False,
                    hostkey_verify=False,
                    timeout=self.config.timeout,
                    device_params={"name": "junos"},
                )
            finally:
                if key_path:
                    os.unlink(key_path)

        try:
            self._connection = await loop.run_in_executor(None, _connect)
        except AuthenticationError as e:
            raise CredentialsError(f"authentication to {self.config.address} failed: {e}") from e
        except (SSHError, NCClientError, OSError, EOFError) as e:
            raise SessionOpenError(f"error connecting to {self.config.address}: {e}") from e

        self._connection.raise_mode = RaiseMode.NONE
        self._connection.timeout = self.config.timeout
        self._connected = True
        logger.info(f"NETCONF session opened to {self.config.address} ({self.device_id})")

        try:
            await self._gather_facts()
        except CommandError as e:
            await self.disconnect()
            raise SessionOpenError(f"executing netconf get-system-information: {e}") from e
        return self.system_information

    async def _gather_facts(self) -> None:
        root = await self._rpc(RPC_GET_SYSTEM_INFORMATION)
        errors = [m for m in parse_messages(root) if m.is_error]
        if errors:
            raise CommandError("\n".join(str(m) for m in errors))
        self.system_information = parse_system_information(root)
        logger.debug(
            f"{self.device_id}: model={self.system_information.hardware_model} "
            f"version={self.system_information.os_version}"
        )

    async def disconnect(self) -> None:
        """Close the NETCONF session; failures are logged, never raised."""
        if self._connection is None:
            return
        loop = asyncio.get_event_loop()
        connection = self._connection
        self._connection = None
        self._connected = False
        try:
            await loop.run_in_executor(None, connection.close_session)
        except (NCClientError, OSError, EOFError) as e:
            logger.warning(f"closing netconf session to {self.config.address}: {e}")
        if self.config.sleep_closed > 0:
            await asyncio.sleep(self.config.sleep_closed)

    async def _rpc(self, rpc: str):
        """Send one raw RPC and return the parsed reply."""
        if self._connection is None:
            raise CommandError(f"netconf session to {self.config.address} is not open")
        loop = asyncio.get_event_loop()
        connection = self._connection
        if self._transcript:
            self._transcript.debug(f"{self.device_id} >>> {rpc}")
        try:
            reply = await loop.run_in_executor(None, connection.rpc, rpc)
        except TimeoutExpiredError as e:
            raise CommandTimeoutError(
                f"no reply from {self.config.address} within {self.config.timeout}s: {e}"
            ) from e
        except (NCClientError, OSError, EOFError) as e:
            raise CommandError(f"executing netconf rpc: {e}") from e
        if self._transcript:
            self._transcript.debug(f"{self.device_id} <<< {reply.xml}")
        return parse_reply(reply.xml)

    async def command(self, text: str) -> str:
        root = await self._rpc(RPC_COMMAND_TEXT.format(escape(text)))
        messages = parse_messages(root)
        errors = [m for m in messages if m.is_error]
        if errors:
            raise CommandError("\n".join(str(m) for m in errors))
        for message in messages:
            logger.warning(f"{self.device_id}: command '{text}': {message}")
        return parse_command_output(root)

    async def lock_candidate(self) -> list[DeviceMessage]:
        return parse_messages(await self._rpc(RPC_LOCK_CANDIDATE))

    async def unlock_candidate(self) -> list[DeviceMessage]:
        return parse_messages(await self._rpc(RPC_UNLOCK_CANDIDATE))

    async def load_set(self, statements: list[str]) -> list[DeviceMessage]:
        payload = escape("\n".join(statements))
        return parse_messages(await self._rpc(RPC_LOAD_CONFIG_SET_TEXT.format(payload)))

    async def clear_candidate(self) -> list[DeviceMessage]:
        return parse_messages(await self._rpc(RPC_CLEAR_CANDIDATE))

    @timed("netconf_commit")
    async def commit(self, log: str, confirm_timeout: Optional[int] = None) -> list[DeviceMessage]:
        if confirm_timeout:
            rpc = RPC_COMMIT_CONFIG_CONFIRMED.format(confirm_timeout, escape(log))
        else:
            rpc = RPC_COMMIT_CONFIG.format(escape(log))
        return parse_messages(await self._rpc(rpc))

    async def commit_check(self) -> list[DeviceMessage]:
        return parse_messages(await self._rpc(RPC_COMMIT_CONFIG_CHECK))
