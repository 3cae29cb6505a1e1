"""Typed failures surfaced to the CLI.

Every error carries a process exit code and, where one exists, the exact
remediation command so the CLI can print an actionable message instead of a
traceback.
"""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    ERROR = 1
    AMBIGUOUS_SIGNAL = 3
    TOOL_NOT_FOUND = 4
    BOOTSTRAP_FAILED = 5
    ENV_CREATION_FAILED = 6
    FAMILY_ISOLATION = 7
    LOCK_OUT_OF_SYNC = 8
    NOT_INITIALIZED = 9


class PyveError(Exception):
    exit_code: ExitCode = ExitCode.ERROR

    def __init__(self, message: str, hint: str | None = None):
        self.message = message
        self.hint = hint
        super().__init__(message)


class ConfigError(PyveError):
    pass


class AmbiguousSignal(PyveError):
    exit_code = ExitCode.AMBIGUOUS_SIGNAL


class ToolNotFound(PyveError):
    exit_code = ExitCode.TOOL_NOT_FOUND


class VersionManagerNotFound(ToolNotFound):
    pass


class BootstrapError(PyveError):
    exit_code = ExitCode.BOOTSTRAP_FAILED

    def __init__(self, reason: str, hint: str | None = None):
        self.reason = reason
        super().__init__(f"Bootstrap failed: {reason}", hint)


class LockOutOfSync(PyveError):
    exit_code = ExitCode.LOCK_OUT_OF_SYNC


class EnvironmentCreationFailed(PyveError):
    exit_code = ExitCode.ENV_CREATION_FAILED


class FamilyIsolationViolation(PyveError):
    exit_code = ExitCode.FAMILY_ISOLATION


class EnvironmentNotInitialized(PyveError):
    exit_code = ExitCode.NOT_INITIALIZED


class ReinitCancelled(PyveError):
    exit_code = ExitCode.OK
