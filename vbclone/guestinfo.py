"""Discover guest IPv4 addresses through hypervisor guest properties."""

from __future__ import annotations

import re
import time
from typing import Callable, Optional

from loguru import logger

from .config import MAX_NIC, MIN_NIC
from .hypervisor import HypervisorClient
from .poll import poll_until

log = logger

_OCTET = r'(?:25[0-5]|2[0-4][0-9]|1[0-9]{2}|[1-9]?[0-9])'
IPV4_RE = re.compile(rf'^{_OCTET}(?:\.{_OCTET}){{3}}$')

TARGETED_ATTEMPTS = 90
RACE_ATTEMPTS_PER_NIC = 10
IP_POLL_DELAY = 1.0
PLACEHOLDER_IP = '0.0.0.0'


def is_ipv4(value: str) -> bool:
    """
    Example:
        >>> from vbclone.guestinfo import is_ipv4
        >>> [is_ipv4(v) for v in ['192.168.1.5', '10.0.0.255', '', '256.1.1.1']]
        [True, True, False, False]
    """
    return bool(IPV4_RE.match(value or ''))


def ip_property(nic: int) -> str:
    """Guest property key of adapter ``nic`` (1-based)."""
    return f'/VirtualBox/GuestInfo/Net/{nic - 1}/V4/IP'


def read_ip(hv: HypervisorClient, vm: str, nic: int) -> str:
    """One query for the adapter address; '' unless it is a full IPv4."""
    value = hv.guest_property(vm, ip_property(nic))
    return value if is_ipv4(value) else ''


def wait_for_nic_ip(
    hv: HypervisorClient,
    vm: str,
    nic: int,
    *,
    attempts: int = TARGETED_ATTEMPTS,
    delay: float = IP_POLL_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Poll one adapter until it reports an IPv4; '' when the budget runs out."""
    found: list[str] = []

    def _ready() -> bool:
        ip = read_ip(hv, vm, nic)
        if ip:
            found.append(ip)
        return bool(ip)

    poll_until(
        _ready,
        attempts=attempts,
        delay=delay,
        sleep=sleep,
        what=f'NIC{nic} IP',
    )
    return found[0] if found else ''


def detect_ip(
    hv: HypervisorClient,
    vm: str,
    *,
    attempts_per_nic: int = RACE_ATTEMPTS_PER_NIC,
    delay: float = IP_POLL_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[Optional[int], str]:
    """
    Try adapters in ascending order with a small budget each.

    Returns ``(nic, ip)`` for the lowest adapter that reported an address
    within its own budget, or ``(None, '')`` when none did.
    """
    for nic in range(MIN_NIC, MAX_NIC + 1):
        print(f'Trying NIC{nic} -> {ip_property(nic)}')
        ip = wait_for_nic_ip(
            hv, vm, nic, attempts=attempts_per_nic, delay=delay, sleep=sleep
        )
        if ip:
            return nic, ip
    return None, ''


def current_ips(hv: HypervisorClient, vm: str) -> dict[int, str]:
    """Single non-retrying snapshot of every adapter's reported address."""
    out = {}
    for nic in range(MIN_NIC, MAX_NIC + 1):
        ip = read_ip(hv, vm, nic)
        if ip:
            out[nic] = ip
    return out


def render_ips(ips: dict[int, str]) -> str:
    lines = ['IP Addresses:']
    if not ips:
        lines.append('  (no IP addresses reported)')
    for nic, ip in sorted(ips.items()):
        lines.append(f'  NIC{nic:<2} : {ip}')
    return '\n'.join(lines)
