"""nodectl - add nodes to running Kubernetes clusters."""

__version__ = "0.1.0"
