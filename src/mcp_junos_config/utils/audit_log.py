"""Audit logging for configuration changes.

Every create/update/delete is written as one JSON line with:
- Timestamp, device and operation
- The statements sent to the device (or to the set file)
- Device warnings and the error, if any
- The state read back after commit
"""
import json
import logging
import os
from datetime import datetime, timezone
from dataclasses import dataclass, asdict, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

audit_logger = logging.getLogger("junos_config.audit")

DEFAULT_AUDIT_DIR = "~/.junos-config"


def get_audit_file(log_dir: Optional[str] = None) -> str:
    return os.path.join(os.path.expanduser(log_dir or DEFAULT_AUDIT_DIR), "audit.log")


def setup_audit_logging(log_dir: Optional[str] = None) -> None:
    """Configure audit logging to file.

    Args:
        log_dir: Directory for audit logs. Defaults to ~/.junos-config/
    """
    audit_file = get_audit_file(log_dir)
    Path(audit_file).parent.mkdir(parents=True, exist_ok=True)

    audit_logger.setLevel(logging.INFO)
    audit_logger.handlers.clear()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
    audit_logger.propagate = False


@dataclass
class ChangeRecord:
    """Record of a configuration change."""
    timestamp: str
    device_id: str
    operation: str  # create_<type>, update_<type>, delete_<type>
    resource: str
    set_file: bool  # written to the fake set file instead of the device
    success: bool
    statements: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    after_state: Optional[dict] = None
    error: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        return cls(**json.loads(json_str))


class ChangeTracker:
    """Track and log configuration changes of one device."""

    def __init__(self, device_id: str):
        self.device_id = device_id

    def log_change(
        self,
        operation: str,
        resource: str,
        success: bool,
        statements: Optional[list[str]] = None,
        warnings: Optional[list[str]] = None,
        error: Optional[str] = None,
        set_file: bool = False,
        after_state: Optional[Any] = None,
    ) -> ChangeRecord:
        """Log a configuration change.

        Args:
            operation: The operation performed (e.g., "create_raw_config")
            resource: Identifier of the configuration object
            success: Whether the operation succeeded
            statements: Statements staged or written
            warnings: Device warnings collected along the way
            error: Error message if failed
            set_file: Whether the statements went to the fake set file
            after_state: State read back after the change

        Returns:
            The ChangeRecord that was logged
        """
        record = ChangeRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            device_id=self.device_id,
            operation=operation,
            resource=resource,
            set_file=set_file,
            success=success,
            statements=list(statements or []),
            warnings=list(warnings or []),
            after_state=after_state,
            error=error,
        )
        audit_logger.info(record.to_json())
        return record


def get_recent_changes(
    log_file: Optional[str] = None,
    device_id: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read recent changes from the audit log, most recent first.

    Malformed lines are skipped.
    """
    log_file = log_file or get_audit_file()
    if not os.path.exists(log_file):
        return []

    records = []
    with open(log_file, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = ChangeRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue

            if device_id and record.device_id != device_id:
                continue
            if operation and record.operation != operation:
                continue
            records.append(record)

    return list(reversed(records[-limit:]))
