"""Hypervisor capability interface and its VBoxManage implementation."""

from __future__ import annotations

import re

from loguru import logger

from .host import HYPERVISOR_CMD
from .runtime import Executor
from .util import CmdResult

log = logger

POWERED_OFF_STATE = 'poweroff'
SNAPSHOT_DESCRIPTION = 'Base snapshot for linked clones'

_MACHINE_LINE = re.compile(r'^"?(?P<key>[^"=]+)"?="?(?P<val>.*?)"?$')
_VM_LIST_LINE = re.compile(r'^"(?P<name>.*)"\s+\{(?P<uuid>[^}]*)\}\s*$')
_SNAPSHOT_NAME_KEY = re.compile(r'^SnapshotName(-\d+)*$')


class HypervisorClient:
    """
    Narrow set of hypervisor operations consumed by the clone and teardown
    pipelines. Query methods must not change hypervisor state; every other
    method is a mutation.
    """

    # queries
    def list_vms(self) -> list[str]:
        raise NotImplementedError

    def vm_exists(self, vm: str) -> bool:
        raise NotImplementedError

    def vm_info(self, vm: str) -> dict[str, str]:
        raise NotImplementedError

    def vm_state(self, vm: str) -> str:
        return self.vm_info(vm).get('VMState', '')

    def snapshot_names(self, vm: str) -> list[str]:
        raise NotImplementedError

    def snapshot_exists(self, vm: str, snapshot: str) -> bool:
        return snapshot in self.snapshot_names(vm)

    def bridged_interfaces(self) -> list[str]:
        raise NotImplementedError

    def hostonly_interfaces(self) -> list[str]:
        raise NotImplementedError

    def nat_network_of(self, vm: str) -> str:
        for key, val in self.vm_info(vm).items():
            if key.startswith('nat-network'):
                return val
        return ''

    def guest_property(self, vm: str, prop: str) -> str:
        raise NotImplementedError

    # mutations
    def take_snapshot(self, vm: str, snapshot: str) -> None:
        raise NotImplementedError

    def clone_linked(self, source: str, snapshot: str, name: str) -> None:
        raise NotImplementedError

    def regenerate_mac(self, vm: str, nic: int) -> None:
        raise NotImplementedError

    def set_nic_mode(self, vm: str, nic: int, mode: str) -> None:
        raise NotImplementedError

    def attach_bridged(self, vm: str, nic: int, iface: str) -> None:
        raise NotImplementedError

    def attach_hostonly(self, vm: str, nic: int, iface: str) -> None:
        raise NotImplementedError

    def attach_natnetwork(self, vm: str, nic: int, network: str) -> None:
        raise NotImplementedError

    def start_vm(self, vm: str, *, headless: bool = True) -> None:
        raise NotImplementedError

    def poweroff(self, vm: str) -> None:
        raise NotImplementedError

    def unregister_delete(self, vm: str) -> None:
        raise NotImplementedError


def parse_machine_readable(text: str) -> dict[str, str]:
    """
    Parse ``key="value"`` lines from ``--machinereadable`` output.

    Example:
        >>> from vbclone.hypervisor import parse_machine_readable
        >>> parse_machine_readable('name="vm a"\\nVMState="poweroff"\\nmemory=2048\\n')
        {'name': 'vm a', 'VMState': 'poweroff', 'memory': '2048'}
    """
    out: dict[str, str] = {}
    for line in (text or '').splitlines():
        m = _MACHINE_LINE.match(line.strip())
        if m:
            out.setdefault(m.group('key'), m.group('val'))
    return out


def parse_interface_names(text: str) -> list[str]:
    """Names from ``VBoxManage list bridgedifs|hostonlyifs`` output, in order."""
    names = []
    for line in (text or '').splitlines():
        if line.startswith('Name:'):
            name = line[len('Name:'):].strip()
            if name:
                names.append(name)
    return names


def parse_vm_list(text: str) -> list[str]:
    names = []
    for line in (text or '').splitlines():
        m = _VM_LIST_LINE.match(line.strip())
        if m:
            names.append(m.group('name'))
    return names


def parse_guest_property(text: str) -> str:
    """Value from ``guestproperty get`` output; '' when no value is set."""
    for line in (text or '').splitlines():
        line = line.strip()
        if line.startswith('Value:'):
            return line[len('Value:'):].strip()
    return ''


class VBoxManageClient(HypervisorClient):
    """HypervisorClient backed by the ``VBoxManage`` command line tool."""

    def __init__(self, executor: Executor | None = None):
        self.executor = executor or Executor()

    def _query(self, *args: str) -> CmdResult:
        return self.executor.query([HYPERVISOR_CMD, *args])

    def _mutate(self, *args: str, check: bool = True) -> CmdResult:
        return self.executor.run([HYPERVISOR_CMD, *args], check=check)

    def list_vms(self) -> list[str]:
        res = self._query('list', 'vms')
        return parse_vm_list(res.stdout) if res.code == 0 else []

    def vm_exists(self, vm: str) -> bool:
        return self._query('showvminfo', vm).code == 0

    def vm_info(self, vm: str) -> dict[str, str]:
        res = self._query('showvminfo', vm, '--machinereadable')
        if res.code != 0:
            return {}
        return parse_machine_readable(res.stdout)

    def snapshot_names(self, vm: str) -> list[str]:
        res = self._query('snapshot', vm, 'list', '--machinereadable')
        if res.code != 0:
            return []
        info = parse_machine_readable(res.stdout)
        return [v for k, v in info.items() if _SNAPSHOT_NAME_KEY.match(k)]

    def bridged_interfaces(self) -> list[str]:
        return parse_interface_names(self._query('list', 'bridgedifs').stdout)

    def hostonly_interfaces(self) -> list[str]:
        return parse_interface_names(self._query('list', 'hostonlyifs').stdout)

    def guest_property(self, vm: str, prop: str) -> str:
        res = self._query('guestproperty', 'get', vm, prop)
        return parse_guest_property(res.stdout) if res.code == 0 else ''

    def take_snapshot(self, vm: str, snapshot: str) -> None:
        self._mutate(
            'snapshot',
            vm,
            'take',
            snapshot,
            '--description',
            SNAPSHOT_DESCRIPTION,
        )

    def clone_linked(self, source: str, snapshot: str, name: str) -> None:
        self._mutate(
            'clonevm',
            source,
            '--snapshot',
            snapshot,
            '--name',
            name,
            '--register',
            '--options',
            'link',
        )

    def regenerate_mac(self, vm: str, nic: int) -> None:
        self._mutate('modifyvm', vm, f'--macaddress{nic}', 'auto')

    def set_nic_mode(self, vm: str, nic: int, mode: str) -> None:
        self._mutate('modifyvm', vm, f'--nic{nic}', mode)

    def attach_bridged(self, vm: str, nic: int, iface: str) -> None:
        self._mutate('modifyvm', vm, f'--bridgeadapter{nic}', iface)

    def attach_hostonly(self, vm: str, nic: int, iface: str) -> None:
        self._mutate('modifyvm', vm, f'--hostonlyadapter{nic}', iface)

    def attach_natnetwork(self, vm: str, nic: int, network: str) -> None:
        self._mutate('modifyvm', vm, f'--nat-network{nic}', network)

    def start_vm(self, vm: str, *, headless: bool = True) -> None:
        self._mutate(
            'startvm', vm, '--type', 'headless' if headless else 'gui'
        )

    def poweroff(self, vm: str) -> None:
        # An already powered-off VM reports an error here.
        res = self._mutate('controlvm', vm, 'poweroff', check=False)
        if res.code != 0:
            log.debug(
                'poweroff {} returned code={}: {}',
                vm,
                res.code,
                res.stderr.strip(),
            )

    def unregister_delete(self, vm: str) -> None:
        self._mutate('unregistervm', vm, '--delete')
