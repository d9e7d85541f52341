"""Putting a machine to sleep via a local command or over SSH."""

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import paramiko

if TYPE_CHECKING:
    from wksl.core.machine import Machine

logger = logging.getLogger(__name__)


class SleepError(Exception):
    """Raised when a machine could not be put to sleep."""


class NoSleepCommandError(SleepError):
    """Raised when a machine has no sleep action configured."""

    def __init__(self, machine: str) -> None:
        self.machine = machine
        super().__init__(f"no sleep command configured for '{machine}'")


class SleepCommandFailed(SleepError):
    """Raised when the sleep command exits with a non-zero status."""

    def __init__(self, command: str, returncode: int, stderr: str, stdout: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout
        super().__init__(f"{command} exited {returncode}: {stderr.strip()}")


@dataclass(frozen=True)
class SleepCommand:
    """A local executable and its arguments, run without a shell."""

    cmd: str
    args: tuple[str, ...] = ()
    timeout: Optional[float] = None

    @property
    def argv(self) -> list[str]:
        return [self.cmd, *self.args]


@dataclass(frozen=True)
class SshSleep:
    """A command run on the target itself over SSH."""

    host: str
    command: str
    user: str = "root"
    port: int = 22
    key_path: Optional[str] = None
    connect_timeout: int = 30


def run_local(command: SleepCommand) -> str:
    """
    Run a local sleep command and wait for it to finish.

    Returns:
        The command's stdout

    Raises:
        SleepCommandFailed: If the command exits non-zero
        SleepError: If the command cannot be started or times out
    """
    logger.info("Running sleep command: %s", shlex.join(command.argv))
    try:
        result = subprocess.run(
            command.argv,
            capture_output=True,
            text=True,
            timeout=command.timeout,
        )
    except subprocess.TimeoutExpired as exc:
        raise SleepError(f"{command.cmd} timed out after {command.timeout} s") from exc
    except OSError as exc:
        raise SleepError(f"could not run {command.cmd}: {exc}") from exc

    if result.returncode != 0:
        raise SleepCommandFailed(command.cmd, result.returncode, result.stderr or "", result.stdout or "")
    return result.stdout or ""


def run_remote(target: SshSleep) -> str:
    """
    Run the sleep command on the target over SSH.

    Raises:
        SleepCommandFailed: If the remote command exits non-zero
        SleepError: If the SSH session cannot be established
    """
    from wksl.core.ssh import run_command

    logger.info("Running '%s' on %s@%s:%d", target.command, target.user, target.host, target.port)
    try:
        exit_code, out, err = run_command(
            target.host,
            target.command,
            user=target.user,
            port=target.port,
            key_path=target.key_path,
            connect_timeout=target.connect_timeout,
        )
    except (paramiko.SSHException, OSError) as exc:
        raise SleepError(f"SSH to {target.host} failed: {exc}") from exc

    if exit_code != 0:
        raise SleepCommandFailed(target.command, exit_code, err, out)
    return out


def suspend(machine: "Machine") -> str:
    """Run the sleep action configured for ``machine`` and return its output."""
    if isinstance(machine.sleep, SshSleep):
        return run_remote(machine.sleep)
    if isinstance(machine.sleep, SleepCommand):
        return run_local(machine.sleep)
    raise NoSleepCommandError(machine.name)
