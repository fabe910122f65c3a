import pytest

from nodectl.config import Config
from nodectl.errors import ProvisionError
from nodectl.models import ClusterConfig, KubernetesConfig, Node
from nodectl.registry import ProfileStore


class FakeProvisioner:
    """Records calls; fails provision/retry when told to."""

    def __init__(self, fail_provision=False, fail_retry=False):
        self.fail_provision = fail_provision
        self.fail_retry = fail_retry
        self.calls = []

    def provision_node(self, cluster, node, delete_on_failure):
        self.calls.append(("provision", node.name, delete_on_failure))
        if self.fail_provision:
            raise ProvisionError("multipass launch failed")
        node.ip = "10.0.0.2"

    def delete_and_retry(self, cluster, node, prior_error):
        self.calls.append(("retry", node.name, str(prior_error)))
        if self.fail_retry:
            raise ProvisionError("retry failed too")


@pytest.fixture(autouse=True)
def no_memory_override(monkeypatch):
    monkeypatch.setattr(Config, "MEMORY", "")


@pytest.fixture
def cluster():
    return ClusterConfig(
        name="demo",
        driver="qemu",
        nodes=[Node(name="", worker=True, control_plane=True, kubernetes_version="v1.30.0")],
        memory=6000,
        kubernetes_config=KubernetesConfig(kubernetes_version="v1.30.0"),
    )


@pytest.fixture
def store(tmp_path):
    return ProfileStore(tmp_path / "profiles")


@pytest.fixture
def provisioner():
    return FakeProvisioner()
