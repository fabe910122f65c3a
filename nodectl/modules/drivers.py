"""VM driver capabilities."""
from nodectl.config import Config

BARE_METAL = ("none",)


def is_bare_metal(driver: str) -> bool:
    return driver in BARE_METAL


def supports_multi_node(driver: str) -> bool:
    """Bare-metal drivers run Kubernetes on the host itself and cannot add machines."""
    return not is_bare_metal(driver) and driver not in Config.SINGLE_NODE_DRIVERS
