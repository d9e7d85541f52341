"""Configured machine model."""

from dataclasses import dataclass
from typing import Optional, Union

from wksl.core.sleep import SleepCommand, SshSleep


@dataclass
class Machine:
    """Wake and sleep parameters for one named machine."""

    name: str
    mac_address: str
    # None means "use the caller's default" (see wksl.core.wol.DEFAULT_*)
    port: Optional[int] = None
    broadcast_address: Optional[str] = None
    # Hostname polled by `wake --wait`
    host: Optional[str] = None
    ssh_port: int = 22
    sleep: Optional[Union[SleepCommand, SshSleep]] = None

    @property
    def sleep_method(self) -> str:
        if isinstance(self.sleep, SshSleep):
            return "ssh"
        if isinstance(self.sleep, SleepCommand):
            return "command"
        return "-"
