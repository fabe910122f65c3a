"""Configuration management for the nodectl application."""
import os
from pathlib import Path
from typing import Tuple
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


def _split(value: str) -> Tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


class Config:
    """Application configuration with sensible defaults."""

    # Profile persistence
    PROFILES_DIR: Path = Path(
        os.path.expanduser(os.getenv("NODECTL_HOME", "~/.nodectl/profiles"))
    )

    # Memory (MB). MEMORY is the operator override; empty means "not set".
    MEMORY: str = os.getenv("NODECTL_MEMORY", "")
    MULTINODE_MEMORY_MB: int = int(os.getenv("NODECTL_MULTINODE_MEMORY_MB", "2200"))

    # OS defaults
    DEFAULT_WINDOWS_VERSION: str = os.getenv("NODECTL_DEFAULT_WINDOWS_VERSION", "2022")
    POWERSHELL_BINARY: str = os.getenv("NODECTL_POWERSHELL", "powershell.exe")

    # Drivers that can only ever host a single node
    SINGLE_NODE_DRIVERS: Tuple[str, ...] = _split(os.getenv("NODECTL_SINGLE_NODE_DRIVERS", "none"))

    # Machine sizing
    MULTIPASS_IMAGE: str = os.getenv("NODECTL_MULTIPASS_IMAGE", "22.04")
    NODE_CPUS: int = int(os.getenv("NODECTL_NODE_CPUS", "2"))
    NODE_DISK: str = os.getenv("NODECTL_NODE_DISK", "20G")

    # Hyper-V (windows nodes)
    HYPERV_VHD_DIR: str = os.getenv("NODECTL_HYPERV_VHD_DIR", r"C:\nodectl\images")
    HYPERV_SWITCH: str = os.getenv("NODECTL_HYPERV_SWITCH", "Default Switch")
    WINDOWS_SSH_USER: str = os.getenv("NODECTL_WINDOWS_SSH_USER", "Administrator")

    # SSH / timeouts (in seconds)
    SSH_KEY_PATH: str = os.getenv("NODECTL_SSH_KEY_PATH", "~/.ssh/id_rsa")
    SSH_TIMEOUT: int = int(os.getenv("SSH_TIMEOUT", "10"))
    NODE_READY_TIMEOUT: int = int(os.getenv("NODECTL_NODE_READY_TIMEOUT", "300"))
    IP_WAIT_TIMEOUT: int = int(os.getenv("NODECTL_IP_WAIT_TIMEOUT", "180"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # API
    API_KEY: str = os.getenv("NODECTL_API_KEY", "nodectl-secret")
