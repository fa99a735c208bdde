"""Resolve and attach the host resource backing the clone's config NIC."""

from __future__ import annotations

from loguru import logger

from .config import NetworkMode
from .hypervisor import HypervisorClient

log = logger


def resolve_attachment(
    hv: HypervisorClient, mode: NetworkMode, *, source_vm: str
) -> str:
    """
    Name of the host resource for ``mode``; '' when none is needed.

    Bridged and host-only pick the first interface the host reports. A NAT
    network is inherited from the source VM. An empty result for those modes
    is passed through so the hypervisor rejects the attach itself.
    """
    if mode is NetworkMode.BRIDGED:
        names = hv.bridged_interfaces()
    elif mode is NetworkMode.HOSTONLY:
        names = hv.hostonly_interfaces()
    elif mode is NetworkMode.NATNETWORK:
        names = [hv.nat_network_of(source_vm)]
    else:
        return ''
    resolved = names[0] if names else ''
    if not resolved:
        log.warning('No host resource found for network mode {}', mode.value)
    else:
        log.debug('Resolved {} attachment to {!r}', mode.value, resolved)
    return resolved


def attach_network(
    hv: HypervisorClient,
    vm: str,
    nic: int,
    mode: NetworkMode,
    *,
    source_vm: str,
) -> str:
    """Switch ``nic`` of ``vm`` to ``mode`` and attach its host resource."""
    hv.set_nic_mode(vm, nic, mode.value)
    resolved = resolve_attachment(hv, mode, source_vm=source_vm)
    if mode is NetworkMode.BRIDGED:
        hv.attach_bridged(vm, nic, resolved)
    elif mode is NetworkMode.HOSTONLY:
        hv.attach_hostonly(vm, nic, resolved)
    elif mode is NetworkMode.NATNETWORK:
        hv.attach_natnetwork(vm, nic, resolved)
    return resolved
