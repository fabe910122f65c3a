"""
Adding a node to an existing cluster.

Preconditions are checked before the cluster config is touched, so a
rejected request leaves it exactly as it was loaded.
"""
import logging

from nodectl.config import Config
from nodectl.errors import (
    DriverIncapableError,
    GuestNodeAddError,
    NodeCtlError,
    NotHAConfiguredError,
    UnsupportedRoleError,
)
from nodectl.models import ClusterConfig, Node, OSSpec
from nodectl.modules import drivers
from nodectl.modules.naming import next_node_name
from nodectl.modules.osspec import resolve_os
from nodectl.modules.provision import Provisioner
from nodectl.registry import ProfileStore

logger = logging.getLogger("nodectl.node_add")

MULTINODE_CNI_WARNING = (
    "Cluster was created without any CNI, adding a node to it might cause broken networking."
)


def check_preconditions(cluster: ClusterConfig, os_spec: OSSpec, control_plane: bool) -> None:
    if control_plane and os_spec.kind == "windows":
        raise UnsupportedRoleError("Windows node cannot be used as control-plane nodes.")

    if not drivers.supports_multi_node(cluster.driver):
        raise DriverIncapableError(f"{cluster.driver} driver does not support multi-node clusters")

    if control_plane and not cluster.is_ha:
        raise NotHAConfiguredError(
            "Adding a control-plane node to a non-HA (non-multi-control plane) cluster is not "
            "currently supported. Please first delete the cluster and use 'nodectl start --ha' "
            "to create new one."
        )


def memory_set_explicitly(cluster: ClusterConfig) -> bool:
    return bool(Config.MEMORY) or cluster.memory_explicit


def adjust_multinode_defaults(cluster: ClusterConfig) -> None:
    """Shrink per-VM memory and warn about CNI when going from one node to two."""
    if len(cluster.nodes) != 1:
        return

    if not memory_set_explicitly(cluster):
        logger.info(f"Lowering default memory per VM to {Config.MULTINODE_MEMORY_MB}MB for multi-node use")
        cluster.memory = Config.MULTINODE_MEMORY_MB

    if not cluster.multi_node_requested or cluster.cni_disabled:
        logger.warning(MULTINODE_CNI_WARNING)


def add_node(
    cluster: ClusterConfig,
    os_flag: str,
    control_plane: bool,
    worker: bool,
    delete_on_failure: bool,
    *,
    provisioner: Provisioner,
    store: ProfileStore,
) -> Node:
    """Validate, provision and persist a new node for ``cluster``.

    Args:
        cluster: Working copy of the cluster profile; mutated on success
        os_flag: Raw --os descriptor, e.g. ``os=windows,version=2022``
        control_plane: Whether the node joins the control plane
        worker: Whether the node schedules workloads
        delete_on_failure: Delete the cluster and retry once if provisioning fails
        provisioner: Creates the machine and joins it to the cluster
        store: Persists the updated profile

    Returns:
        The node that was added

    Raises:
        NodeCtlError: on invalid input, a failed precondition, a failed
            provisioning attempt or a failure to save the profile
    """
    os_spec = resolve_os(os_flag)
    check_preconditions(cluster, os_spec, control_plane)

    if not worker and not control_plane:
        logger.warning("Neither --worker nor --control-plane requested; adding node as a worker")
        worker = True

    node = Node(
        name=next_node_name(cluster.nodes),
        worker=worker,
        control_plane=control_plane,
        kubernetes_version=cluster.kubernetes_config.kubernetes_version,
        os=os_spec.kind,
        os_version=os_spec.version,
    )
    logger.info(f"Adding node {node.name} to cluster {cluster.name} as {node.roles}")

    adjust_multinode_defaults(cluster)
    cluster.nodes.append(node)

    try:
        provisioner.provision_node(cluster, node, delete_on_failure)
    except NodeCtlError as err:
        if not delete_on_failure:
            raise GuestNodeAddError(f"failed to add node: {err}") from err
        try:
            provisioner.delete_and_retry(cluster, node, err)
        except NodeCtlError as retry_err:
            raise GuestNodeAddError(f"failed to add node: {err}; retry failed: {retry_err}") from retry_err

    store.save_profile(cluster.name, cluster)
    logger.info(f"Successfully added {node.name} to {cluster.name}!")
    return node
