"""
PowerShell command execution, locally or over an SSH session.

Both runners return an ExecutionResult carrying stdout and stderr whatever
the outcome. Failures are classified into the ExecutionError subclasses so
that provisioners can turn them into actionable messages; nothing here
retries.
"""
import logging
import shutil
import subprocess
import threading
from contextlib import closing
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import paramiko

from nodectl.config import Config
from nodectl.errors import (
    ExecutionError,
    ExecutionFailedError,
    FeatureModuleMissingError,
    InterpreterNotFoundError,
    PrivilegeRequiredError,
    SessionUnavailableError,
)

logger = logging.getLogger("nodectl.powershell")

SAFETY_FLAGS = ("-NoProfile", "-NonInteractive")

_PRIVILEGE_MARKERS = (
    "access is denied",
    "requires elevation",
    "run as an administrator",
    "administrator privilege",
    "required permission",
)
_MISSING_MODULE_MARKERS = (
    "is not recognized as the name of a cmdlet",
    "module could not be loaded",
    "no valid module file was found",
)


@dataclass
class ExecutionResult:
    """Uniform output of a command run on either transport."""
    stdout: str = ""
    stderr: str = ""
    returncode: Optional[int] = None
    error: Optional[ExecutionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def check(self) -> "ExecutionResult":
        """Raise the classified error, if any, otherwise return self."""
        if self.error is not None:
            raise self.error
        return self


class CommandRunner(Protocol):
    def run(self, *args: str) -> ExecutionResult:
        ...


def classify_failure(command: str, stdout: str, stderr: str, returncode: Optional[int]) -> ExecutionFailedError:
    """Map a failed command to the most specific ExecutionFailedError."""
    lowered = stderr.lower()
    if any(marker in lowered for marker in _MISSING_MODULE_MARKERS):
        cls = FeatureModuleMissingError
    elif any(marker in lowered for marker in _PRIVILEGE_MARKERS):
        cls = PrivilegeRequiredError
    else:
        cls = ExecutionFailedError
    message = f"command failed (exit {returncode}): {command}"
    if stderr.strip():
        message = f"{message}: {stderr.strip()}"
    return cls(message, stdout=stdout, stderr=stderr, returncode=returncode)


def _log_output(stdout: str, stderr: str) -> None:
    logger.debug(f"[stdout =====>] : {stdout}")
    logger.debug(f"[stderr =====>] : {stderr}")


class PowerShellResolver:
    """Locates the PowerShell binary once and caches the answer.

    Create one at startup and hand it to every LocalPowerShellRunner. A
    missing binary is cached too, so later lookups never hit the search path.
    """

    _UNSET = object()

    def __init__(self, binary: Optional[str] = None, which: Callable[[str], Optional[str]] = shutil.which):
        self.binary = binary or Config.POWERSHELL_BINARY
        self._which = which
        self._path = self._UNSET
        self._lock = threading.Lock()

    @property
    def path(self) -> Optional[str]:
        if self._path is self._UNSET:
            with self._lock:
                if self._path is self._UNSET:
                    self._path = self._which(self.binary)
                    if self._path is None:
                        logger.debug(f"{self.binary} not found in PATH")
        return self._path


class LocalPowerShellRunner:
    """Runs PowerShell as a local child process."""

    def __init__(self, resolver: PowerShellResolver):
        self.resolver = resolver

    def run(self, *args: str) -> ExecutionResult:
        powershell = self.resolver.path
        if powershell is None:
            return ExecutionResult(error=InterpreterNotFoundError(self.resolver.binary))

        argv = [powershell, *SAFETY_FLAGS, *args]
        command = " ".join(argv)
        logger.debug(f"[executing ==>] : {command}")

        try:
            proc = subprocess.run(argv, capture_output=True, text=True)
        except OSError as e:
            _log_output("", str(e))
            return ExecutionResult(
                stderr=str(e),
                error=ExecutionFailedError(f"failed to start {powershell}: {e}", stderr=str(e)),
            )

        stdout, stderr = proc.stdout or "", proc.stderr or ""
        _log_output(stdout, stderr)

        error = None
        if proc.returncode != 0:
            error = classify_failure(command, stdout, stderr, proc.returncode)
        return ExecutionResult(stdout=stdout, stderr=stderr, returncode=proc.returncode, error=error)


class SSHPowerShellRunner:
    """Runs PowerShell on a remote host over an already connected SSH client.

    Each call opens its own channel and closes it before returning. The
    client belongs to the caller and is left open.
    """

    def __init__(self, client: paramiko.SSHClient):
        self.client = client

    def _open_channel(self) -> paramiko.Channel:
        transport = self.client.get_transport()
        if transport is None or not transport.is_active():
            raise SessionUnavailableError("SSH transport is not connected")
        try:
            return transport.open_session()
        except (paramiko.SSHException, EOFError, OSError) as e:
            raise SessionUnavailableError(f"failed to open SSH channel: {e}") from e

    def run(self, *args: str) -> ExecutionResult:
        try:
            channel = self._open_channel()
        except SessionUnavailableError as e:
            return ExecutionResult(error=e)

        script = " ".join(args)
        command = f'powershell {" ".join(SAFETY_FLAGS)} -Command "{script}"'
        logger.debug(f"[executing ==>] : {command}")

        with closing(channel):
            try:
                channel.exec_command(command)
                stdout = channel.makefile("rb").read().decode("utf-8", errors="replace")
                stderr = channel.makefile_stderr("rb").read().decode("utf-8", errors="replace")
                returncode = channel.recv_exit_status()
            except (paramiko.SSHException, EOFError, OSError) as e:
                _log_output("", str(e))
                return ExecutionResult(
                    stderr=str(e),
                    error=SessionUnavailableError(f"SSH channel failed while running command: {e}"),
                )

        _log_output(stdout, stderr)

        error = None
        if returncode != 0:
            error = classify_failure(command, stdout, stderr, returncode)
        return ExecutionResult(stdout=stdout, stderr=stderr, returncode=returncode, error=error)


def require_module(runner: CommandRunner, module: str) -> None:
    """Raise FeatureModuleMissingError unless the PowerShell module is installed."""
    result = runner.run(f"@(Get-Module -ListAvailable {module}).Name | Get-Unique").check()
    if result.stdout.strip() != module:
        raise FeatureModuleMissingError(
            f"{module} PowerShell Module is not available",
            stdout=result.stdout,
            stderr=result.stderr,
            returncode=result.returncode,
        )


def require_administrator(runner: CommandRunner, what: str = "Hyper-V") -> None:
    """Raise PrivilegeRequiredError unless commands run with administrator rights."""
    result = runner.run(
        "@([Security.Principal.WindowsPrincipal]"
        "[Security.Principal.WindowsIdentity]::GetCurrent())"
        ".IsInRole([Security.Principal.WindowsBuiltInRole] 'Administrator')"
    ).check()
    if result.stdout.strip() != "True":
        raise PrivilegeRequiredError(
            f"{what} commands have to be run as an Administrator",
            stdout=result.stdout,
            stderr=result.stderr,
            returncode=result.returncode,
        )
