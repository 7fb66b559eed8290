"""Exception hierarchy for site provisioning.

ValidationError is raised before anything is committed and never needs a
rollback. Everything under ProvisioningError may happen once the progress
level is at least 1 and is handled by the workflow's single top-level guard.
"""
from typing import Optional


class SiteboxError(Exception):
    """Base class for all sitebox errors."""


class ValidationError(SiteboxError):
    """Invalid or conflicting site parameters."""


class ProvisioningError(SiteboxError):
    """A provisioning stage failed."""


class RenderError(ProvisioningError):
    """Template missing, context key missing or rendered output invalid."""


class RuntimeCommandError(ProvisioningError):
    """A docker or host command failed or timed out."""

    def __init__(self, message: str, command=None, stderr: str = ""):
        super().__init__(message)
        self.command = command
        self.stderr = stderr


class DbError(ProvisioningError):
    """Database bootstrap failure."""


class DbConnectionFailed(DbError):
    """Could not connect to the database server with the given credentials."""


class DbNotEmpty(DbError):
    """Target database already holds tables and force was not given."""


class DbCreateFailed(DbError):
    """Database (or user) could not be created."""


class DbStatementError(DbError):
    """A statement failed on an established connection."""


class RecordWriteError(ProvisioningError):
    """The site record could not be persisted."""


class RecordExistsError(RecordWriteError):
    """A record with the same URL was written first."""


class ProvisioningInterrupted(ProvisioningError):
    """The run was interrupted by a signal."""

    def __init__(self, signum: int):
        super().__init__(f"Interrupted by signal {signum}")
        self.signum = signum


class ProvisioningFailed(ProvisioningError):
    """Terminal failure raised after rollback has run."""

    def __init__(self, cause: BaseException, level: int, report=None):
        super().__init__(str(cause))
        self.cause = cause
        self.level = level
        self.report = report


class RollbackError(SiteboxError):
    """A single rollback step failed. Logged and reported, never raised."""

    def __init__(self, step: str, reason: str, level: Optional[int] = None):
        super().__init__(f"{step}: {reason}")
        self.step = step
        self.reason = reason
        self.level = level
