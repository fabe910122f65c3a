import logging
import os
import time
from pathlib import Path
from typing import Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from nodectl.config import Config
from nodectl.errors import NodeNotReadyError

logger = logging.getLogger("nodectl.kube")


def load_kubeconfig(path: Optional[str] = None) -> str:
    """
    Load the kubeconfig from a given path or from the KUBECONFIG_CONTENT env var.
    Returns the actual path used to load the kubeconfig.
    """
    # CI/CD secret-based loading
    if "KUBECONFIG_CONTENT" in os.environ:
        temp_path = "/tmp/ci-kubeconfig.yaml"
        with open(temp_path, "w") as f:
            f.write(os.environ["KUBECONFIG_CONTENT"])
        config.load_kube_config(config_file=temp_path)
        return temp_path

    if path:
        resolved = Path(os.path.expanduser(path)).resolve()
        if not resolved.exists():
            raise FileNotFoundError(f"Kubeconfig not found: {resolved}")
        config.load_kube_config(config_file=str(resolved))
        return str(resolved)

    raise ValueError("No kubeconfig path provided and KUBECONFIG_CONTENT is not set.")


def _is_ready(node) -> bool:
    for condition in (node.status.conditions or []):
        if condition.type == "Ready":
            return condition.status == "True"
    return False


def wait_for_node_ready(
    name: str,
    kubeconfig: Optional[str] = None,
    timeout: Optional[int] = None,
    interval: float = 5.0,
    api: Optional[client.CoreV1Api] = None,
) -> None:
    """Block until the Kubernetes node reports Ready.

    Raises:
        NodeNotReadyError: if the node is not Ready within the timeout
    """
    timeout = timeout if timeout is not None else Config.NODE_READY_TIMEOUT
    if api is None:
        load_kubeconfig(kubeconfig)
        api = client.CoreV1Api()

    logger.info(f"Waiting up to {timeout}s for node {name} to become Ready...")
    deadline = time.monotonic() + timeout
    while True:
        try:
            if _is_ready(api.read_node(name)):
                logger.info(f"Node {name} is Ready")
                return
        except ApiException as e:
            if e.status != 404:
                raise
            logger.debug(f"Node {name} not registered yet")

        if time.monotonic() >= deadline:
            raise NodeNotReadyError(f"Node {name} did not become Ready within {timeout}s")
        time.sleep(interval)
