"""SSH remote command execution and reachability polling."""

import logging
import socket
import time
from pathlib import Path
from typing import Any, Optional

import paramiko

logger = logging.getLogger(__name__)


def _port_open(host: str, port: int, timeout: float = 5.0) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def wait_for_ssh(
    host: str,
    port: int = 22,
    timeout: int = 120,
    poll_interval: float = 5.0,
) -> bool:
    """
    Poll a TCP port until it accepts connections, e.g. after a wake-up.

    Args:
        host: Hostname or IP address
        port: Port to poll (default: 22)
        timeout: Maximum seconds to wait (default: 120)
        poll_interval: Seconds between attempts (default: 5)

    Returns:
        True if the port accepted a connection before the deadline
    """
    deadline = time.monotonic() + timeout
    attempt = 0
    while True:
        attempt += 1
        if _port_open(host, port):
            logger.info("%s:%d is reachable (attempt %d)", host, port, attempt)
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        logger.debug("%s:%d not reachable, %.0f s left (attempt %d)", host, port, remaining, attempt)
        time.sleep(min(poll_interval, remaining))
    logger.warning("%s:%d did not become reachable within %d s", host, port, timeout)
    return False


def _client(
    host: str, user: str, port: int, key_path: Optional[str], connect_timeout: int
) -> paramiko.SSHClient:
    options: dict[str, Any] = {"allow_agent": True, "look_for_keys": key_path is None}
    if key_path:
        options["key_filename"] = str(Path(key_path).expanduser())
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    try:
        client.connect(host, port=port, username=user, timeout=connect_timeout, **options)
    except Exception:
        client.close()
        raise
    return client


def run_command(
    host: str,
    command: str,
    user: str = "root",
    port: int = 22,
    key_path: Optional[str] = None,
    connect_timeout: int = 30,
) -> tuple[int, str, str]:
    """
    Run ``command`` on ``host`` over SSH and wait for it to exit.

    Authenticates with ``key_path`` when given, otherwise with the agent and
    the default key files.

    Returns:
        Tuple of (exit_code, stdout, stderr)

    Raises:
        paramiko.SSHException: On authentication or protocol failures
        OSError: If the host cannot be reached
    """
    logger.debug("Connecting to %s@%s:%d to run sleep command", user, host, port)
    client = _client(host, user, port, key_path, connect_timeout)
    try:
        _, stdout, stderr = client.exec_command(command)
        exit_code = stdout.channel.recv_exit_status()
        out = stdout.read().decode("utf-8", errors="replace")
        err = stderr.read().decode("utf-8", errors="replace")
    finally:
        client.close()
    logger.debug("'%s' on %s exited %d", command, host, exit_code)
    return exit_code, out, err
