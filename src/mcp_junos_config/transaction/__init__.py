"""Configuration transaction core: sessions, locks, staged commits and the read gate."""
from .statement import (
    Statement,
    StatementKind,
    StatementLike,
    render_statement,
    normalize,
    show_config_command,
)
from .gate import ReadGate, GateRecord
from .session import ConfigSession
from .transaction import ConfigTransaction
from .client import JunosClient
from .operations import (
    ConfigResource,
    RawConfigObject,
    OperationResult,
    create_resource,
    read_resource,
    update_resource,
    delete_resource,
)

__all__ = [
    "Statement",
    "StatementKind",
    "StatementLike",
    "render_statement",
    "normalize",
    "show_config_command",
    "ReadGate",
    "GateRecord",
    "ConfigSession",
    "ConfigTransaction",
    "JunosClient",
    "ConfigResource",
    "RawConfigObject",
    "OperationResult",
    "create_resource",
    "read_resource",
    "update_resource",
    "delete_resource",
]
