import io
import logging
import subprocess

import paramiko
import pytest

from nodectl.errors import (
    ExecutionFailedError,
    FeatureModuleMissingError,
    InterpreterNotFoundError,
    PrivilegeRequiredError,
    SessionUnavailableError,
)
from nodectl.modules.powershell import (
    ExecutionResult,
    LocalPowerShellRunner,
    PowerShellResolver,
    SSHPowerShellRunner,
    require_administrator,
    require_module,
)


class DummyCP:
    def __init__(self, rc=0, out="", err=""):
        self.returncode = rc
        self.stdout = out
        self.stderr = err


def _resolver(path="/usr/bin/pwsh"):
    return PowerShellResolver("powershell.exe", which=lambda name: path)


# ----------------- resolver -----------------

def test_resolver_looks_up_once():
    lookups = []

    def which(name):
        lookups.append(name)
        return None

    resolver = PowerShellResolver("powershell.exe", which=which)
    assert resolver.path is None
    assert resolver.path is None
    assert lookups == ["powershell.exe"]


# ----------------- local runner -----------------

def test_local_runner_prepends_safety_flags(monkeypatch):
    calls = []

    def fake_run(argv, capture_output=False, text=False):
        calls.append(argv)
        return DummyCP(0, out="ok\n")

    monkeypatch.setattr(subprocess, "run", fake_run)

    result = LocalPowerShellRunner(_resolver()).run("Get-VM", "demo")

    assert calls == [["/usr/bin/pwsh", "-NoProfile", "-NonInteractive", "Get-VM", "demo"]]
    assert result.ok
    assert result.stdout == "ok\n"
    assert result.check() is result


def test_local_runner_without_interpreter_never_spawns(monkeypatch):
    def fake_run(*a, **k):
        raise AssertionError("should not spawn")

    monkeypatch.setattr(subprocess, "run", fake_run)

    result = LocalPowerShellRunner(_resolver(path=None)).run("Get-VM")
    assert isinstance(result.error, InterpreterNotFoundError)
    with pytest.raises(InterpreterNotFoundError):
        result.check()


def test_local_runner_keeps_buffers_on_failure(monkeypatch):
    monkeypatch.setattr(subprocess, "run", lambda *a, **k: DummyCP(1, out="partial", err="boom"))

    result = LocalPowerShellRunner(_resolver()).run("Start-VM", "demo")

    assert result.stdout == "partial"
    assert result.stderr == "boom"
    assert result.returncode == 1
    assert isinstance(result.error, ExecutionFailedError)
    assert result.error.stdout == "partial"
    assert result.error.stderr == "boom"


def test_local_runner_spawn_error(monkeypatch):
    def fake_run(*a, **k):
        raise PermissionError("not executable")

    monkeypatch.setattr(subprocess, "run", fake_run)

    result = LocalPowerShellRunner(_resolver()).run("Get-VM")
    assert isinstance(result.error, ExecutionFailedError)
    assert "not executable" in result.stderr


@pytest.mark.parametrize("stderr, expected", [
    ("New-VM : You do not have the required permission to complete this task.", PrivilegeRequiredError),
    ("Access is denied.", PrivilegeRequiredError),
    ("Hyper-V cmdlets must be run as an Administrator.", PrivilegeRequiredError),
    ("Cannot find path 'C:\\Users\\Administrator\\kubelet.log' because it does not exist.", ExecutionFailedError),
    ("The term 'New-VM' is not recognized as the name of a cmdlet, function", FeatureModuleMissingError),
    ("something else went wrong", ExecutionFailedError),
])
def test_failures_are_classified(monkeypatch, stderr, expected):
    monkeypatch.setattr(subprocess, "run", lambda *a, **k: DummyCP(1, err=stderr))
    result = LocalPowerShellRunner(_resolver()).run("New-VM")
    assert type(result.error) is expected


def test_local_runner_log_order(monkeypatch, caplog):
    monkeypatch.setattr(subprocess, "run", lambda *a, **k: DummyCP(0, out="OUT", err="ERR"))
    caplog.set_level(logging.DEBUG, logger="nodectl.powershell")

    LocalPowerShellRunner(_resolver()).run("Get-VM")

    messages = [r.getMessage() for r in caplog.records if r.name == "nodectl.powershell"]
    assert messages[0].startswith("[executing ==>] : /usr/bin/pwsh -NoProfile -NonInteractive Get-VM")
    assert messages[1] == "[stdout =====>] : OUT"
    assert messages[2] == "[stderr =====>] : ERR"


# ----------------- remote runner -----------------

class FakeChannel:
    def __init__(self, out="", err="", rc=0):
        self.out, self.err, self.rc = out, err, rc
        self.command = None
        self.closed = False

    def exec_command(self, command):
        self.command = command

    def makefile(self, mode):
        return io.BytesIO(self.out.encode())

    def makefile_stderr(self, mode):
        return io.BytesIO(self.err.encode())

    def recv_exit_status(self):
        return self.rc

    def close(self):
        self.closed = True


class FakeTransport:
    def __init__(self, channel=None, fail=False):
        self.channel = channel
        self.fail = fail

    def is_active(self):
        return True

    def open_session(self):
        if self.fail:
            raise paramiko.SSHException("channel open failed")
        return self.channel


class FakeSSHClient:
    def __init__(self, transport):
        self.transport = transport
        self.closed = False

    def get_transport(self):
        return self.transport

    def close(self):
        self.closed = True


def test_remote_runner_wraps_command_and_releases_channel():
    channel = FakeChannel(out="Running\n")
    client = FakeSSHClient(FakeTransport(channel))

    result = SSHPowerShellRunner(client).run("Get-Service", "kubelet")

    assert channel.command == 'powershell -NoProfile -NonInteractive -Command "Get-Service kubelet"'
    assert result.ok
    assert result.stdout == "Running\n"
    assert channel.closed
    assert not client.closed


def test_remote_runner_failure_keeps_buffers_and_releases_channel():
    channel = FakeChannel(out="half", err="Access is denied.", rc=1)
    result = SSHPowerShellRunner(FakeSSHClient(FakeTransport(channel))).run("Restart-Computer")

    assert result.stdout == "half"
    assert result.stderr == "Access is denied."
    assert isinstance(result.error, PrivilegeRequiredError)
    assert channel.closed


def test_remote_runner_session_unavailable():
    result = SSHPowerShellRunner(FakeSSHClient(FakeTransport(fail=True))).run("Get-VM")
    assert isinstance(result.error, SessionUnavailableError)
    assert result.stdout == ""


def test_remote_runner_without_transport():
    result = SSHPowerShellRunner(FakeSSHClient(None)).run("Get-VM")
    assert isinstance(result.error, SessionUnavailableError)


def test_remote_runner_channel_closed_when_exec_fails():
    class BrokenChannel(FakeChannel):
        def exec_command(self, command):
            raise paramiko.SSHException("exec refused")

    channel = BrokenChannel()
    result = SSHPowerShellRunner(FakeSSHClient(FakeTransport(channel))).run("Get-VM")
    assert isinstance(result.error, SessionUnavailableError)
    assert channel.closed


def test_remote_runner_log_order(caplog):
    channel = FakeChannel(out="OUT", err="ERR")
    caplog.set_level(logging.DEBUG, logger="nodectl.powershell")

    SSHPowerShellRunner(FakeSSHClient(FakeTransport(channel))).run("Get-Service", "kubelet")

    messages = [r.getMessage() for r in caplog.records if r.name == "nodectl.powershell"]
    assert messages == [
        '[executing ==>] : powershell -NoProfile -NonInteractive -Command "Get-Service kubelet"',
        "[stdout =====>] : OUT",
        "[stderr =====>] : ERR",
    ]


def test_remote_runner_logs_channel_failure_after_command(caplog):
    class DroppedChannel(FakeChannel):
        def recv_exit_status(self):
            raise EOFError("connection dropped")

    caplog.set_level(logging.DEBUG, logger="nodectl.powershell")
    SSHPowerShellRunner(FakeSSHClient(FakeTransport(DroppedChannel()))).run("Get-VM")

    messages = [r.getMessage() for r in caplog.records if r.name == "nodectl.powershell"]
    assert messages == [
        '[executing ==>] : powershell -NoProfile -NonInteractive -Command "Get-VM"',
        "[stdout =====>] : ",
        "[stderr =====>] : connection dropped",
    ]


# ----------------- module and privilege checks -----------------

class ScriptedRunner:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def run(self, *args):
        self.calls.append(args)
        return self.results.pop(0)


def test_require_module_present():
    require_module(ScriptedRunner(ExecutionResult(stdout="Hyper-V\r\n", returncode=0)), "Hyper-V")


def test_require_module_missing():
    with pytest.raises(FeatureModuleMissingError, match="Hyper-V PowerShell Module is not available"):
        require_module(ScriptedRunner(ExecutionResult(stdout="", returncode=0)), "Hyper-V")


def test_require_administrator():
    require_administrator(ScriptedRunner(ExecutionResult(stdout="True\n", returncode=0)))
    with pytest.raises(PrivilegeRequiredError):
        require_administrator(ScriptedRunner(ExecutionResult(stdout="False\n", returncode=0)))


def test_module_check_propagates_interpreter_missing():
    runner = LocalPowerShellRunner(_resolver(path=None))
    with pytest.raises(InterpreterNotFoundError):
        require_module(runner, "Hyper-V")
