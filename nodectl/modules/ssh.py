"""
SSH session management for guest machines.
"""
import logging
import os
from typing import Optional

import paramiko

from nodectl.config import Config
from nodectl.errors import SessionUnavailableError

logger = logging.getLogger("nodectl.ssh")


def open_session(
    host: str,
    username: str,
    key_path: Optional[str] = None,
    port: int = 22,
    timeout: Optional[int] = None,
) -> paramiko.SSHClient:
    """Open an SSH client to a guest.

    The caller owns the returned client and must close it.

    Raises:
        SessionUnavailableError: if the connection cannot be established
    """
    key_path = os.path.expanduser(key_path or Config.SSH_KEY_PATH)
    timeout = timeout or Config.SSH_TIMEOUT

    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    logger.info(f"Connecting to {username}@{host}:{port}")
    try:
        client.connect(
            hostname=host,
            port=port,
            username=username,
            key_filename=key_path if os.path.exists(key_path) else None,
            timeout=timeout,
            look_for_keys=False,
            allow_agent=True,
        )
    except (paramiko.SSHException, OSError) as e:
        client.close()
        raise SessionUnavailableError(f"Failed to connect to {username}@{host}:{port}: {e}") from e

    return client
