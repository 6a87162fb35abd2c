"""Error taxonomy for Junos configuration sessions and transactions.

Every error carries a ``warnings`` list so that device warnings collected
before the failure (commit warnings, clear/unlock problems) reach the caller
together with the error itself.
"""
from typing import Optional


class JunosConfigError(Exception):
    """Base class for all errors raised by the transaction core."""

    def __init__(self, message: str, warnings: Optional[list[str]] = None):
        super().__init__(message)
        self.warnings: list[str] = list(warnings or [])


class SessionOpenError(JunosConfigError, ConnectionError):
    """Transport or NETCONF session could not be established."""


class CredentialsError(SessionOpenError):
    """Authentication failed or no usable credentials; not worth retrying."""


class CommandError(JunosConfigError):
    """A command or RPC was rejected by the device or failed in transport."""


class CommandTimeoutError(CommandError):
    """The device did not answer an RPC within the configured timeout."""


class LockError(JunosConfigError):
    """The candidate configuration could not be locked."""


class StageError(JunosConfigError):
    """A statement was rejected while loading it into the candidate."""

    def __init__(
        self,
        reason: str,
        statement: Optional[str] = None,
        warnings: Optional[list[str]] = None,
    ):
        self.statement = statement
        self.reason = reason
        if statement:
            message = f"statement '{statement}' rejected: {reason}"
        else:
            message = f"statements rejected: {reason}"
        super().__init__(message, warnings)


class CommitError(JunosConfigError):
    """The candidate configuration failed validation or activation."""


class ReadError(JunosConfigError):
    """Reading the configuration back from the device failed."""


class ObjectExistsError(JunosConfigError):
    """Create was requested for an object already present on the device."""


class DriftError(JunosConfigError):
    """Commit succeeded but the object is absent from the active configuration."""


PostCommitVerificationError = DriftError
