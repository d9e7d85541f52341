"""YAML machine configuration: loading, validation and lookup."""

import ipaddress
import logging
import os
import re
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from wksl.core.machine import Machine
from wksl.core.sleep import SleepCommand, SshSleep
from wksl.core.wol import is_valid_mac

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "~/.config/wksl/config.yaml"

_VAR_RE = re.compile(r"\$(?:\{([^}]*)\}|([A-Za-z_][A-Za-z0-9_]*))")


class ConfigError(Exception):
    """Raised for invalid or missing configuration."""


class ConfigNotFoundError(ConfigError):
    """Raised when the config file does not exist."""


class ConfigParseError(ConfigError):
    """Raised when the config file is not valid YAML or is empty."""


class ConfigValidationError(ConfigError):
    """Raised when the config file parses but describes invalid machines."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("invalid config: " + "; ".join(errors))


class UnknownMachineError(ConfigError):
    """Raised when the requested machine has no section in the config."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"could not find machine '{name}' in config")


def expand_path(path: Union[str, Path]) -> Path:
    """
    Expand ``~`` and ``$VAR`` / ``${VAR}`` references in a config path.

    Raises:
        ConfigError: If a referenced environment variable is not set
    """

    def _lookup(match: "re.Match[str]") -> str:
        var = match.group(1) if match.group(1) is not None else match.group(2)
        if not var:
            raise ConfigError(f"could not expand config path '{path}': empty variable name")
        try:
            return os.environ[var]
        except KeyError:
            raise ConfigError(f"could not expand config path '{path}': ${var} is not set") from None

    return Path(_VAR_RE.sub(_lookup, str(path))).expanduser()


def load_config(path: Path) -> Optional[dict[str, Any]]:
    """
    Load configuration from a YAML file.

    Returns:
        Parsed configuration, or None if the file is empty

    Raises:
        FileNotFoundError: If the config file doesn't exist
        yaml.YAMLError: If the YAML is invalid
    """
    with open(path, encoding="utf-8") as f:
        result: Optional[dict[str, Any]] = yaml.safe_load(f)
        return result


def _valid_port(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 65535


def _validate_sleep_command(prefix: str, sleep: Any) -> list[str]:
    if not isinstance(sleep, dict):
        return [f"{prefix}.sleep_command: must be a mapping with 'cmd' and 'args'"]
    errors: list[str] = []
    cmd = sleep.get("cmd")
    if not isinstance(cmd, str) or not cmd.strip():
        errors.append(f"{prefix}.sleep_command: 'cmd' must be a non-empty string")
    args = sleep.get("args", [])
    if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
        errors.append(f"{prefix}.sleep_command: 'args' must be a list of strings")
    timeout = sleep.get("timeout")
    if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0):
        errors.append(f"{prefix}.sleep_command: 'timeout' must be a positive number")
    return errors


def _validate_sleep_ssh(prefix: str, sleep: Any, machine: dict[str, Any]) -> list[str]:
    if not isinstance(sleep, dict):
        return [f"{prefix}.sleep_ssh: must be a mapping"]
    errors: list[str] = []
    command = sleep.get("command")
    if not command:
        errors.append(f"{prefix}.sleep_ssh: missing required field 'command'")
    elif not isinstance(command, str):
        errors.append(f"{prefix}.sleep_ssh: 'command' must be a string")
    if not (sleep.get("host") or machine.get("host")):
        errors.append(f"{prefix}.sleep_ssh: 'host' is required when the machine has no 'host'")
    if "port" in sleep and not _valid_port(sleep["port"]):
        errors.append(f"{prefix}.sleep_ssh: invalid port {sleep['port']!r}")
    for field in ("host", "user", "key"):
        if field in sleep and not isinstance(sleep[field], str):
            errors.append(f"{prefix}.sleep_ssh: '{field}' must be a string")
    timeout = sleep.get("connect_timeout")
    if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0):
        errors.append(f"{prefix}.sleep_ssh: 'connect_timeout' must be a positive integer")
    return errors


def validate_config(config: Any) -> list[str]:
    """
    Validate a loaded configuration mapping of machine name -> settings.

    Returns:
        List of validation error messages (empty list = valid)
    """
    if not isinstance(config, dict):
        return ["Config root must be a YAML mapping of machine names"]

    errors: list[str] = []
    for name, machine in config.items():
        prefix = f"[{name}]"
        if not isinstance(machine, dict):
            errors.append(f"{prefix}: must be a mapping")
            continue

        mac = machine.get("mac_address")
        if mac is None:
            errors.append(f"{prefix}: missing required field 'mac_address'")
        elif isinstance(mac, int):
            # YAML 1.1 reads unquoted 12:34:56:... as a base-60 integer
            errors.append(f"{prefix}: mac_address must be quoted in YAML")
        elif not isinstance(mac, str) or not is_valid_mac(mac):
            errors.append(f"{prefix}: invalid mac_address '{mac}'")

        for field in ("port", "ssh_port"):
            if field in machine and not _valid_port(machine[field]):
                errors.append(f"{prefix}: invalid {field} {machine[field]!r} (expected 0-65535)")

        if "host" in machine and not isinstance(machine["host"], str):
            errors.append(f"{prefix}: 'host' must be a string")

        addr = machine.get("broadcast_address")
        if addr is not None:
            try:
                ipaddress.ip_address(str(addr))
            except ValueError:
                errors.append(f"{prefix}: invalid broadcast_address '{addr}'")

        if "sleep_command" in machine and "sleep_ssh" in machine:
            errors.append(f"{prefix}: set only one of 'sleep_command' and 'sleep_ssh'")
        elif "sleep_command" in machine:
            errors.extend(_validate_sleep_command(prefix, machine["sleep_command"]))
        elif "sleep_ssh" in machine:
            errors.extend(_validate_sleep_ssh(prefix, machine["sleep_ssh"], machine))

    return errors


def _sleep_from_raw(raw: dict[str, Any]) -> Optional[Union[SleepCommand, SshSleep]]:
    if "sleep_command" in raw:
        sc = raw["sleep_command"]
        timeout = sc.get("timeout")
        return SleepCommand(
            cmd=sc["cmd"],
            args=tuple(sc.get("args", [])),
            timeout=float(timeout) if timeout is not None else None,
        )
    if "sleep_ssh" in raw:
        ss = raw["sleep_ssh"]
        return SshSleep(
            host=ss.get("host") or raw["host"],
            command=ss["command"],
            user=ss.get("user", "root"),
            port=int(ss.get("port", raw.get("ssh_port", 22))),
            key_path=ss.get("key"),
            connect_timeout=int(ss.get("connect_timeout", 30)),
        )
    return None


def machine_from_config(config: dict[str, Any], name: str) -> Machine:
    """
    Build the Machine for ``name`` from a validated config mapping.

    Raises:
        UnknownMachineError: If the config has no section called ``name``
    """
    raw = config.get(name)
    if raw is None:
        raise UnknownMachineError(name)
    addr = raw.get("broadcast_address")
    return Machine(
        name=name,
        mac_address=raw["mac_address"],
        port=raw.get("port"),
        broadcast_address=str(addr) if addr is not None else None,
        host=raw.get("host"),
        ssh_port=int(raw.get("ssh_port", 22)),
        sleep=_sleep_from_raw(raw),
    )


def machines_from_config(config: dict[str, Any]) -> list[Machine]:
    return [machine_from_config(config, name) for name in config]


def read_config(path: Union[str, Path]) -> dict[str, Any]:
    """
    Expand, load and validate a config file.

    Raises:
        ConfigNotFoundError: If the file does not exist
        ConfigParseError: If the file is empty or not valid YAML
        ConfigValidationError: If any machine section is invalid
    """
    real_path = expand_path(path)
    logger.debug("Loading config from %s", real_path)
    try:
        raw = load_config(real_path)
    except FileNotFoundError as exc:
        raise ConfigNotFoundError(f"config file not found: {real_path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigParseError(f"could not parse {real_path}: {exc}") from exc
    if not raw:
        raise ConfigParseError(f"config file is empty: {real_path}")
    errors = validate_config(raw)
    if errors:
        raise ConfigValidationError(errors)
    # Section names like `2` or `yes` are not strings in YAML
    return {str(k): v for k, v in raw.items()}


def read_machine(path: Union[str, Path], name: str) -> Machine:
    """Load the config at ``path`` and return the machine called ``name``."""
    return machine_from_config(read_config(path), name)
