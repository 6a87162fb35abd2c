"""Default create/read/update/delete orchestration for configuration resources.

A resource knows how to name itself, which statements create or remove it and
how to parse its configuration back. The functions here run those statements
through the transaction discipline:

    create: lock, pre-check, stage, commit, verify, read back, clear, close
    update: lock, stage delete + set, commit, read back, clear, close
    delete: lock, stage delete, commit, clear, close
    read:   gate, fresh session, exists + read, close, release
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from ..errors import JunosConfigError, ObjectExistsError
from ..utils.audit_log import ChangeTracker
from .client import JunosClient
from .session import ConfigSession
from .statement import StatementLike, normalize

logger = logging.getLogger(__name__)


class ConfigResource(ABC):
    """A configuration object handled through the transaction core."""

    type_name: str = "resource"

    @property
    @abstractmethod
    def identifier(self) -> str:
        pass

    @abstractmethod
    def exists_path(self) -> str:
        """Configuration path shown by ``show configuration <path>``."""
        pass

    @abstractmethod
    def set_statements(self) -> list[StatementLike]:
        pass

    @abstractmethod
    def delete_statements(self) -> list[StatementLike]:
        pass

    @abstractmethod
    async def read(self, session: ConfigSession) -> Optional[dict]:
        """Parse the object's configuration; None when absent."""
        pass

    @property
    def label(self) -> str:
        return f"{self.type_name} {self.identifier}"


class RawConfigObject(ConfigResource):
    """Any configuration path with caller-supplied statements.

    ``statements`` are relative to ``path``, the way
    ``show configuration <path> | display set relative`` prints them
    (e.g. "vlan-id 10" under path "vlans v10").
    """

    type_name = "raw_config"

    def __init__(self, path: str, statements: Optional[list[str]] = None):
        path = path.strip()
        if not path:
            raise ValueError("configuration path must not be empty")
        self.path = path
        self.statements = [s.strip() for s in statements or [] if s.strip()]

    @property
    def identifier(self) -> str:
        return self.path

    def exists_path(self) -> str:
        return self.path

    def set_statements(self) -> list[StatementLike]:
        if not self.statements:
            return [f"set {self.path}"]
        return [f"set {self.path} {s}" for s in self.statements]

    def delete_statements(self) -> list[StatementLike]:
        return [f"delete {self.path}"]

    async def read(self, session: ConfigSession) -> Optional[dict]:
        if not await session.exists(self.path):
            return None
        output = await session.read_config(self.path, relative=True)
        statements = []
        for line in output.splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("set "):
                line = line[len("set "):]
            statements.append(line)
        return {"path": self.path, "statements": statements}


@dataclass
class OperationResult:
    """Outcome of a resource operation."""
    warnings: list[str] = field(default_factory=list)
    state: Optional[dict] = None
    set_file: bool = False

    def to_dict(self) -> dict:
        return {"warnings": self.warnings, "state": self.state, "set_file": self.set_file}


def _audit(
    tracker: Optional[ChangeTracker],
    operation: str,
    resource: ConfigResource,
    statements: list[str],
    result: Optional[OperationResult] = None,
    error: Optional[JunosConfigError] = None,
) -> None:
    if tracker is None:
        return
    if error is not None:
        tracker.log_change(
            operation=f"{operation}_{resource.type_name}",
            resource=resource.identifier,
            success=False,
            statements=statements,
            warnings=error.warnings,
            error=str(error),
        )
        return
    tracker.log_change(
        operation=f"{operation}_{resource.type_name}",
        resource=resource.identifier,
        success=True,
        statements=statements,
        warnings=result.warnings,
        set_file=result.set_file,
        after_state=result.state,
    )


async def create_resource(
    client: JunosClient,
    resource: ConfigResource,
    tracker: Optional[ChangeTracker] = None,
) -> OperationResult:
    """Create ``resource`` on the device, or append it to the set file.

    Raises:
        ObjectExistsError: the object is already configured
        DriftError: the object is absent after a successful commit
    """
    statements = normalize(resource.set_statements())
    if client.setfile is not None:
        await client.setfile.append(statements)
        result = OperationResult(set_file=True)
        _audit(tracker, "create", resource, statements, result)
        return result

    try:
        async with client.transaction() as txn:
            if await txn.exists(resource.exists_path()):
                raise ObjectExistsError(f"{resource.label} already exists")
            await txn.stage(statements)
            await txn.commit(f"create resource {resource.type_name}")
            await txn.verify_exists(resource.exists_path(), resource.label)
            state = await txn.read(resource.read, label=f"read {resource.label}")
    except JunosConfigError as e:
        _audit(tracker, "create", resource, statements, error=e)
        raise

    result = OperationResult(warnings=txn.warnings, state=state)
    _audit(tracker, "create", resource, statements, result)
    return result


async def read_resource(client: JunosClient, resource: ConfigResource) -> Optional[dict]:
    """Read ``resource`` from the active configuration; None when absent."""
    return await client.read(resource.read, label=f"read {resource.label}")


async def update_resource(
    client: JunosClient,
    resource: ConfigResource,
    previous: Optional[ConfigResource] = None,
    tracker: Optional[ChangeTracker] = None,
) -> OperationResult:
    """Replace the configuration of ``previous`` (default: ``resource``) with ``resource``.

    Delete and set statements are staged in one batch and committed together.
    """
    previous = previous or resource
    statements = normalize(previous.delete_statements()) + normalize(resource.set_statements())
    if client.setfile is not None and client.config.fake_update_also:
        await client.setfile.append(statements)
        result = OperationResult(set_file=True)
        _audit(tracker, "update", resource, statements, result)
        return result

    try:
        async with client.transaction() as txn:
            await txn.stage(statements)
            await txn.commit(f"update resource {resource.type_name}")
            state = await txn.read(resource.read, label=f"read {resource.label}")
    except JunosConfigError as e:
        _audit(tracker, "update", resource, statements, error=e)
        raise

    result = OperationResult(warnings=txn.warnings, state=state)
    _audit(tracker, "update", resource, statements, result)
    return result


async def delete_resource(
    client: JunosClient,
    resource: ConfigResource,
    tracker: Optional[ChangeTracker] = None,
) -> OperationResult:
    """Remove ``resource`` from the device, or append its delete statements to the set file."""
    statements = normalize(resource.delete_statements())
    if client.setfile is not None and client.config.fake_delete_also:
        await client.setfile.append(statements)
        result = OperationResult(set_file=True)
        _audit(tracker, "delete", resource, statements, result)
        return result

    try:
        async with client.transaction() as txn:
            await txn.stage(statements)
            await txn.commit(f"delete resource {resource.type_name}")
    except JunosConfigError as e:
        _audit(tracker, "delete", resource, statements, error=e)
        raise

    result = OperationResult(warnings=txn.warnings)
    _audit(tracker, "delete", resource, statements, result)
    return result
