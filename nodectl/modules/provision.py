"""
Machine provisioning for new cluster nodes.

Linux nodes are multipass VMs joined with kubeadm. Windows nodes are Hyper-V
VMs created through PowerShell on the host and joined over SSH. Both raise
NodeCtlError subclasses on failure.
"""
import json
import logging
import shlex
import subprocess
import time
from contextlib import contextmanager
from typing import Callable, Optional, Protocol

import paramiko
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from nodectl.config import Config
from nodectl.errors import ExecutionError, NodeCtlError, ProvisionError
from nodectl.models import ClusterConfig, Node
from nodectl.modules import kube
from nodectl.modules.powershell import (
    CommandRunner,
    LocalPowerShellRunner,
    PowerShellResolver,
    SSHPowerShellRunner,
    require_administrator,
    require_module,
)
from nodectl.modules.ssh import open_session

logger = logging.getLogger("nodectl.provision")

WINDOWS_CRI_SOCKET = "npipe:////./pipe/containerd-containerd"

# Raised by kubernetes, paramiko and the filesystem underneath a provisioner
_UNDERLYING_ERRORS = (ApiException, ConfigException, paramiko.SSHException, OSError, ValueError, KeyError)


class Provisioner(Protocol):
    def provision_node(self, cluster: ClusterConfig, node: Node, delete_on_failure: bool) -> None:
        ...

    def delete_and_retry(self, cluster: ClusterConfig, node: Node, prior_error: Exception) -> None:
        ...


@contextmanager
def provision_errors(machine: str):
    """Report failures from the underlying libraries as ProvisionError."""
    try:
        yield
    except _UNDERLYING_ERRORS as e:
        raise ProvisionError(f"Provisioning {machine} failed: {e}") from e


def multipass(*args: str) -> str:
    """Run a multipass subcommand and return its stdout."""
    cmd = ["multipass", *args]
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    except subprocess.CalledProcessError as e:
        raise ProvisionError(f"{' '.join(cmd)} failed: {(e.stderr or '').strip()}") from e
    except FileNotFoundError as e:
        raise ProvisionError("multipass was not found in the path") from e
    return result.stdout


def _wait_ready(cluster: ClusterConfig, node: Node) -> None:
    if not cluster.kubeconfig:
        logger.debug(f"No kubeconfig for {cluster.name}; not waiting for {node.name}")
        return
    kube.wait_for_node_ready(cluster.machine_name(node), kubeconfig=cluster.kubeconfig)


class HyperVProvisioner:
    """Creates Windows nodes as Hyper-V VMs on the local host."""

    def __init__(
        self,
        runner: CommandRunner,
        join_command: Callable[[ClusterConfig, Node], str],
        session_factory: Callable[..., paramiko.SSHClient] = open_session,
        poll_interval: float = 2.0,
    ):
        self.runner = runner
        self.join_command = join_command
        self.session_factory = session_factory
        self.poll_interval = poll_interval

    def provision_node(self, cluster: ClusterConfig, node: Node, delete_on_failure: bool) -> None:
        require_module(self.runner, "Hyper-V")
        require_administrator(self.runner)

        machine = cluster.machine_name(node)
        with provision_errors(machine):
            try:
                self.start_machine(cluster, node)
            except ExecutionError as e:
                if not delete_on_failure:
                    raise
                logger.warning(f"Machine {machine} failed to start, deleting and trying again: {e}")
                self.delete_machine(machine)
                self.start_machine(cluster, node)

            self.join(cluster, node)
            _wait_ready(cluster, node)

    def start_machine(self, cluster: ClusterConfig, node: Node) -> None:
        machine = cluster.machine_name(node)
        base_image = f"{Config.HYPERV_VHD_DIR}\\windows-server-{node.os_version}.vhdx"
        disk = f"{Config.HYPERV_VHD_DIR}\\{machine}.vhdx"

        logger.info(f"Creating Hyper-V VM {machine} (Windows Server {node.os_version})")
        self.runner.run("Hyper-V\\New-VHD", "-Path", f"'{disk}'", "-ParentPath", f"'{base_image}'",
                        "-Differencing").check()
        self.runner.run("Hyper-V\\New-VM", machine, "-Generation", "2",
                        "-SwitchName", f"'{Config.HYPERV_SWITCH}'",
                        "-MemoryStartupBytes", f"{cluster.memory}MB",
                        "-VHDPath", f"'{disk}'").check()
        self.runner.run("Hyper-V\\Set-VMProcessor", machine, "-Count", str(Config.NODE_CPUS)).check()
        self.runner.run("Hyper-V\\Start-VM", machine).check()
        node.ip = self.wait_for_ip(machine)

    def wait_for_ip(self, machine: str, timeout: Optional[int] = None) -> str:
        timeout = timeout if timeout is not None else Config.IP_WAIT_TIMEOUT
        deadline = time.monotonic() + timeout
        while True:
            result = self.runner.run(f"((Hyper-V\\Get-VM {machine}).networkadapters[0]).ipaddresses[0]").check()
            ip = result.stdout.strip()
            if ip:
                logger.info(f"Machine {machine} has IP {ip}")
                return ip
            if time.monotonic() >= deadline:
                raise ProvisionError(f"Timed out waiting for an IP address on {machine}")
            time.sleep(self.poll_interval)

    def join(self, cluster: ClusterConfig, node: Node) -> None:
        join = f"{self.join_command(cluster, node)} --cri-socket '{WINDOWS_CRI_SOCKET}'"
        client = self.session_factory(node.ip, Config.WINDOWS_SSH_USER)
        try:
            SSHPowerShellRunner(client).run(join).check()
        finally:
            client.close()

    def delete_machine(self, machine: str) -> None:
        self.runner.run("Hyper-V\\Stop-VM", machine, "-TurnOff")
        self.runner.run("Hyper-V\\Remove-VM", machine, "-Force").check()


class MultipassProvisioner:
    """Provisions linux nodes with multipass, handing Windows nodes to Hyper-V."""

    def __init__(
        self,
        resolver: Optional[PowerShellResolver] = None,
        windows: Optional[HyperVProvisioner] = None,
    ):
        if windows is None:
            runner = LocalPowerShellRunner(resolver or PowerShellResolver())
            windows = HyperVProvisioner(runner, join_command=self.join_command)
        self.windows = windows

    # ------------------ single node ------------------

    def provision_node(self, cluster: ClusterConfig, node: Node, delete_on_failure: bool) -> None:
        if node.os == "windows":
            self.windows.provision_node(cluster, node, delete_on_failure)
            return

        machine = cluster.machine_name(node)
        with provision_errors(machine):
            try:
                self.start_machine(cluster, node)
            except ProvisionError as e:
                if not delete_on_failure:
                    raise
                logger.warning(f"Machine {machine} failed to start, deleting and trying again: {e}")
                self.delete_machine(machine)
                self.start_machine(cluster, node)

            self.join(cluster, node)
            _wait_ready(cluster, node)

    def start_machine(self, cluster: ClusterConfig, node: Node) -> None:
        machine = cluster.machine_name(node)
        logger.info(f"Launching multipass VM {machine}")
        multipass("launch", Config.MULTIPASS_IMAGE,
                  "--name", machine,
                  "--cpus", str(Config.NODE_CPUS),
                  "--memory", f"{cluster.memory}M",
                  "--disk", Config.NODE_DISK)
        node.ip = self.machine_ip(machine)

    def machine_ip(self, machine: str) -> str:
        try:
            data = json.loads(multipass("info", machine, "--format", "json"))
            ips = data["info"][machine].get("ipv4") or []
        except (ValueError, KeyError, AttributeError) as e:
            raise ProvisionError(f"Unexpected multipass info output for {machine}: {e!r}") from e
        if isinstance(ips, str):
            ips = [ips]
        if not ips:
            raise ProvisionError(f"No IP address found for {machine}")
        return ips[0]

    def join_command(self, cluster: ClusterConfig, node: Node) -> str:
        primary = cluster.machine_name(cluster.primary)
        join = multipass("exec", primary, "--", "sudo", "kubeadm", "token", "create",
                         "--print-join-command").strip()
        if node.control_plane:
            certs = multipass("exec", primary, "--", "sudo", "kubeadm", "init", "phase",
                              "upload-certs", "--upload-certs")
            lines = certs.strip().splitlines()
            if not lines:
                raise ProvisionError(f"kubeadm on {primary} did not print a certificate key")
            certificate_key = lines[-1].strip()
            join = f"{join} --control-plane --certificate-key {certificate_key}"
        return f"{join} --node-name {cluster.machine_name(node)}"

    def join(self, cluster: ClusterConfig, node: Node) -> None:
        machine = cluster.machine_name(node)
        logger.info(f"Joining {machine} to cluster {cluster.name} as {node.roles}")
        multipass("exec", machine, "--", "sudo", *shlex.split(self.join_command(cluster, node)))

    def init_primary(self, cluster: ClusterConfig) -> None:
        machine = cluster.machine_name(cluster.primary)
        cmd = ["sudo", "kubeadm", "init",
               "--kubernetes-version", cluster.kubernetes_config.kubernetes_version]
        if cluster.is_ha:
            cmd += ["--control-plane-endpoint", f"{cluster.primary.ip}:6443", "--upload-certs"]
        multipass("exec", machine, "--", *cmd)

    def delete_machine(self, machine: str) -> None:
        multipass("delete", machine)
        multipass("purge")

    # ------------------ whole cluster ------------------

    def delete_cluster(self, cluster: ClusterConfig) -> None:
        for node in cluster.nodes:
            machine = cluster.machine_name(node)
            logger.info(f"Deleting machine {machine}")
            try:
                if node.os == "windows":
                    self.windows.delete_machine(machine)
                else:
                    multipass("delete", machine)
            except NodeCtlError as e:
                logger.warning(f"Failed to delete {machine}, proceeding with retry anyway: {e}")
        try:
            multipass("purge")
        except ProvisionError as e:
            logger.warning(f"Failed to purge deleted machines, proceeding with retry anyway: {e}")

    def delete_and_retry(self, cluster: ClusterConfig, node: Node, prior_error: Exception) -> None:
        """Delete every machine of the cluster and provision all nodes again, once."""
        logger.warning(f"Node {node.name} failed to start, deleting and trying again: {prior_error}")
        self.delete_cluster(cluster)

        for n in cluster.nodes:
            if n is cluster.primary:
                with provision_errors(cluster.machine_name(n)):
                    self.start_machine(cluster, n)
                    self.init_primary(cluster)
            else:
                self.provision_node(cluster, n, delete_on_failure=False)
