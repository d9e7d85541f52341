"""Wake-on-LAN magic packet construction and transmission."""

import ipaddress
import logging
import re
import socket
from typing import Optional, Union

logger = logging.getLogger(__name__)

# Applied by callers when a machine's config leaves the field out
DEFAULT_PORT = 9
DEFAULT_BROADCAST = "255.255.255.255"

MAC_LENGTH = 6
SYNC_BYTES = b"\xff" * 6
REPETITIONS = 16
PACKET_LENGTH = len(SYNC_BYTES) + MAC_LENGTH * REPETITIONS  # 102

# AA:BB:CC:DD:EE:FF, AA-BB-CC-DD-EE-FF (one separator throughout), AABB.CCDD.EEFF, AABBCCDDEEFF
_MAC_RE = re.compile(
    r"^(?:[0-9A-Fa-f]{2}([:\-])(?:[0-9A-Fa-f]{2}\1){4}[0-9A-Fa-f]{2}"
    r"|[0-9A-Fa-f]{4}\.[0-9A-Fa-f]{4}\.[0-9A-Fa-f]{4}"
    r"|[0-9A-Fa-f]{12})$"
)

_STAGES = {
    "bind": "bind a UDP socket",
    "broadcast": "enable broadcast",
    "send": "send magic packet",
}


class InvalidMacAddress(ValueError):
    """Raised when a MAC address string cannot be parsed."""


class TransmissionError(Exception):
    """Raised when a magic packet could not be handed to the network stack."""

    def __init__(self, stage: str, destination: str, port: int, cause: BaseException) -> None:
        self.stage = stage
        self.destination = destination
        self.port = port
        self.cause = cause
        super().__init__(
            f"could not {_STAGES.get(stage, stage)} for {destination}:{port}: {cause}"
        )


def is_valid_mac(text: str) -> bool:
    return bool(_MAC_RE.match(text.strip()))


def parse_mac(text: str) -> bytes:
    """
    Convert a textual MAC address into its 6 raw bytes.

    Raises:
        InvalidMacAddress: If ``text`` is not in a recognised notation
    """
    cleaned = text.strip()
    if not _MAC_RE.match(cleaned):
        raise InvalidMacAddress(f"invalid MAC address '{text}'")
    return bytes.fromhex(re.sub(r"[:\-.]", "", cleaned))


def build_packet(mac: Union[bytes, bytearray, memoryview]) -> bytes:
    """
    Build the 102-byte Wake-on-LAN magic packet for a hardware address.

    Layout: six 0xFF synchronisation bytes followed by the address repeated
    sixteen times. See https://en.wikipedia.org/wiki/Wake-on-LAN#Magic_packet

    Args:
        mac: The 6 raw bytes of the target interface's MAC address

    Returns:
        A new ``bytes`` object of length 102

    Raises:
        ValueError: If ``mac`` is not exactly 6 bytes long
    """
    address = bytes(mac)
    if len(address) != MAC_LENGTH:
        raise ValueError(f"MAC address must be {MAC_LENGTH} bytes, got {len(address)}")
    return SYNC_BYTES + address * REPETITIONS


def _family_for(destination: str) -> int:
    try:
        ip = ipaddress.ip_address(destination)
    except ValueError:
        # Hostnames are resolved by sendto; assume IPv4 like the default broadcast
        return socket.AF_INET
    return socket.AF_INET6 if ip.version == 6 else socket.AF_INET


def send(
    packet: bytes,
    destination: str = DEFAULT_BROADCAST,
    port: int = DEFAULT_PORT,
    address_family: Optional[int] = None,
) -> None:
    """
    Send ``packet`` once as a UDP datagram to ``destination:port``.

    A fresh socket is bound to an ephemeral port on the wildcard address of
    the destination's family, broadcast is enabled on it, and the datagram is
    handed to the network stack. Nothing is awaited in return.

    Args:
        packet: Payload to send, normally the output of :func:`build_packet`
        destination: Unicast, multicast or broadcast IP address
        port: Destination UDP port
        address_family: ``socket.AF_INET`` or ``socket.AF_INET6``; inferred
            from ``destination`` when omitted

    Raises:
        TransmissionError: If the socket cannot be bound, broadcast cannot be
            enabled, or the send fails. No retry is attempted.
    """
    family = address_family if address_family is not None else _family_for(destination)
    wildcard = "::" if family == socket.AF_INET6 else "0.0.0.0"

    try:
        sock = socket.socket(family, socket.SOCK_DGRAM)
    except OSError as exc:
        raise TransmissionError("bind", destination, port, exc) from exc

    try:
        try:
            sock.bind((wildcard, 0))
        except OSError as exc:
            raise TransmissionError("bind", destination, port, exc) from exc
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        except OSError as exc:
            raise TransmissionError("broadcast", destination, port, exc) from exc
        try:
            sock.sendto(packet, (destination, port))
        except (OSError, OverflowError) as exc:
            raise TransmissionError("send", destination, port, exc) from exc
    finally:
        sock.close()


def wake(
    mac_address: Union[str, bytes],
    ip_address: str = DEFAULT_BROADCAST,
    port: int = DEFAULT_PORT,
    address_family: Optional[int] = None,
) -> bool:
    """
    Send a Wake-on-LAN magic packet to wake a remote machine.

    Args:
        mac_address: MAC address as text (e.g. "AA:BB:CC:DD:EE:FF") or 6 raw bytes
        ip_address: Destination address (default: 255.255.255.255)
        port: UDP port for the packet (default: 9)
        address_family: Optional explicit socket family, see :func:`send`

    Returns:
        True once the packet has been sent

    Raises:
        InvalidMacAddress: If ``mac_address`` is unparseable text
        TransmissionError: If the packet could not be sent
    """
    mac = parse_mac(mac_address) if isinstance(mac_address, str) else mac_address
    logger.info("Sending WOL magic packet to %s via %s:%d", mac.hex(":"), ip_address, port)
    send(build_packet(mac), ip_address, port, address_family)
    logger.debug("WOL packet sent successfully")
    return True
