"""Error taxonomy for nodectl.

Every failure surfaced to the user derives from NodeCtlError and carries the
process exit code the CLI should use.
"""
from typing import Optional


class NodeCtlError(Exception):
    """Base class for all nodectl failures."""
    exit_code: int = 1


# Input errors

class UsageError(NodeCtlError):
    exit_code = 2


class MalformedSpecError(UsageError):
    """The --os descriptor could not be split into key=value pairs."""

    def __init__(self, raw: str):
        self.raw = raw
        super().__init__(f"Invalid format for --os flag: {raw}")


class InvalidOSError(UsageError):
    pass


class InvalidWindowsVersionError(UsageError):
    pass


# Precondition errors

class PreconditionError(NodeCtlError):
    exit_code = 3


class UnsupportedRoleError(PreconditionError):
    pass


class DriverIncapableError(PreconditionError):
    pass


class NotHAConfiguredError(PreconditionError):
    pass


# Execution errors

class ExecutionError(NodeCtlError):
    exit_code = 4


class InterpreterNotFoundError(ExecutionError):
    def __init__(self, binary: str = "powershell.exe"):
        self.binary = binary
        super().__init__(f"{binary} was not found in the path")


class SessionUnavailableError(ExecutionError):
    pass


class ExecutionFailedError(ExecutionError):
    """A command ran but exited non-zero; both output buffers are kept."""

    def __init__(self, message: str, stdout: str = "", stderr: str = "",
                 returncode: Optional[int] = None):
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(message)


class PrivilegeRequiredError(ExecutionFailedError):
    pass


class FeatureModuleMissingError(ExecutionFailedError):
    pass


# Workflow errors

class ProvisionError(NodeCtlError):
    exit_code = 4


class GuestNodeAddError(ProvisionError):
    pass


class NodeNotReadyError(ProvisionError):
    pass


class ProfileError(NodeCtlError):
    exit_code = 5


class ProfileNotFoundError(ProfileError):
    pass


class ProfileInvalidError(ProfileError):
    pass


class ProfileSaveError(ProfileError):
    pass
