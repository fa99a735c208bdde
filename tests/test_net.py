from __future__ import annotations

from vbclone.config import NetworkMode
from vbclone.net import attach_network, resolve_attachment


def test_resolve_bridged_takes_first_interface(fake_hv) -> None:
    assert (
        resolve_attachment(fake_hv, NetworkMode.BRIDGED, source_vm='base')
        == 'en0: Wi-Fi (AirPort)'
    )


def test_resolve_natnetwork_inherits_source(fake_hv) -> None:
    assert (
        resolve_attachment(fake_hv, NetworkMode.NATNETWORK, source_vm='base')
        == 'NatNet'
    )


def test_resolve_nat_needs_nothing(fake_hv) -> None:
    assert resolve_attachment(fake_hv, NetworkMode.NAT, source_vm='base') == ''
    assert fake_hv.queries == []


def test_attach_hostonly(fake_hv) -> None:
    name = attach_network(
        fake_hv, 'vm-a', 2, NetworkMode.HOSTONLY, source_vm='base'
    )
    assert name == 'vboxnet0'
    assert fake_hv.mutations == [
        ('set_nic_mode', 'vm-a', 2, 'hostonly'),
        ('attach_hostonly', 'vm-a', 2, 'vboxnet0'),
    ]


def test_attach_with_no_interfaces_passes_empty_name(fake_hv) -> None:
    fake_hv.bridged = []
    name = attach_network(fake_hv, 'vm-a', 1, NetworkMode.BRIDGED, source_vm='base')
    assert name == ''
    assert fake_hv.mutations[-1] == ('attach_bridged', 'vm-a', 1, '')


def test_attach_nat_only_sets_mode(fake_hv) -> None:
    attach_network(fake_hv, 'vm-a', 1, NetworkMode.NAT, source_vm='base')
    assert fake_hv.mutations == [('set_nic_mode', 'vm-a', 1, 'nat')]
