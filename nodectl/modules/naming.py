"""Node name allocation.

Added nodes are named ``m02``, ``m03``, ... The primary node created with the
cluster may carry an empty or legacy name; in that case the node count is
used as the last id.
"""
import logging
import re
from typing import Sequence

from nodectl.models import Node

logger = logging.getLogger("nodectl.naming")

_ID_PATTERN = re.compile(r"\d+")


def node_name(node_id: int) -> str:
    if node_id < 0:
        raise ValueError(f"node id must not be negative: {node_id}")
    return f"m{node_id:02d}"


def node_id(name: str) -> int:
    match = _ID_PATTERN.search(name)
    if not match:
        raise ValueError(f"node name {name!r} does not contain an id")
    return int(match.group())


def next_node_name(nodes: Sequence[Node]) -> str:
    """Return the name following the last node in the list."""
    try:
        last_id = node_id(nodes[-1].name)
    except ValueError as e:
        last_id = len(nodes)
        logger.warning(f"determining last node index (will assume {last_id}): {e}")
    return node_name(last_id + 1)
