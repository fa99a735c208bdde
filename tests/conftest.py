"""In-memory fakes for the hypervisor, credential store, and command runner."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional, Sequence

import pytest

from vbclone.credstore import Credential, CredentialStoreClient
from vbclone.hypervisor import HypervisorClient
from vbclone.runtime import Executor
from vbclone.util import CmdError, CmdResult


class FakeHypervisor(HypervisorClient):
    """Records mutations; guest properties can be scripted per poll."""

    def __init__(self, vms=None, snapshots=None, bridged=None, hostonly=None):
        self.vms: dict[str, dict[str, str]] = dict(vms or {})
        self.snapshots: dict[str, list[str]] = dict(snapshots or {})
        self.bridged = list(bridged or [])
        self.hostonly = list(hostonly or [])
        # (vm, prop) -> successive values; the last one repeats
        self.props: dict[tuple[str, str], list[str]] = {}
        self.mutations: list[tuple] = []
        self.queries: list[tuple] = []

    def script_property(self, vm: str, prop: str, *values: str) -> None:
        self.props[(vm, prop)] = list(values)

    def list_vms(self):
        self.queries.append(('list_vms',))
        return list(self.vms)

    def vm_exists(self, vm):
        self.queries.append(('vm_exists', vm))
        return vm in self.vms

    def vm_info(self, vm):
        self.queries.append(('vm_info', vm))
        return dict(self.vms.get(vm, {}))

    def snapshot_names(self, vm):
        return list(self.snapshots.get(vm, []))

    def bridged_interfaces(self):
        return list(self.bridged)

    def hostonly_interfaces(self):
        return list(self.hostonly)

    def guest_property(self, vm, prop):
        self.queries.append(('guest_property', vm, prop))
        values = self.props.get((vm, prop))
        if not values:
            return ''
        if len(values) > 1:
            return values.pop(0)
        return values[0]

    def take_snapshot(self, vm, snapshot):
        self.mutations.append(('take_snapshot', vm, snapshot))
        self.snapshots.setdefault(vm, []).append(snapshot)

    def clone_linked(self, source, snapshot, name):
        self.mutations.append(('clone_linked', source, snapshot, name))
        self.vms[name] = {'VMState': 'poweroff'}

    def regenerate_mac(self, vm, nic):
        self.mutations.append(('regenerate_mac', vm, nic))

    def set_nic_mode(self, vm, nic, mode):
        self.mutations.append(('set_nic_mode', vm, nic, mode))

    def attach_bridged(self, vm, nic, iface):
        self.mutations.append(('attach_bridged', vm, nic, iface))

    def attach_hostonly(self, vm, nic, iface):
        self.mutations.append(('attach_hostonly', vm, nic, iface))

    def attach_natnetwork(self, vm, nic, network):
        self.mutations.append(('attach_natnetwork', vm, nic, network))

    def start_vm(self, vm, *, headless=True):
        self.mutations.append(('start_vm', vm, headless))
        self.vms.setdefault(vm, {})['VMState'] = 'running'

    def poweroff(self, vm):
        self.mutations.append(('poweroff', vm))

    def unregister_delete(self, vm):
        self.mutations.append(('unregister_delete', vm))
        self.vms.pop(vm, None)


class FakeCredentialStore(CredentialStoreClient):
    def __init__(self, creds=(), *, authenticated=True, fail_ids=()):
        self.creds = [Credential(str(i), t) for i, t in creds]
        self.authenticated = authenticated
        self.fail_ids = set(fail_ids)
        self.added: list[tuple[str, str]] = []
        self.deleted: list[str] = []

    def is_authenticated(self):
        return self.authenticated

    def add_key(self, pubkey_path, title):
        self.added.append((pubkey_path, title))

    def list_keys(self):
        return list(self.creds)

    def delete_key(self, key_id):
        if key_id in self.fail_ids:
            cmd = ['gh', 'api', '--method', 'DELETE', f'user/keys/{key_id}']
            raise CmdError(cmd, CmdResult(1, '', 'HTTP 404'))
        self.deleted.append(key_id)
        self.creds = [c for c in self.creds if c.id != key_id]


class RecordingExecutor(Executor):
    """Executor whose real execution is replaced by a scripted responder."""

    def __init__(
        self,
        *,
        dry_run: bool = False,
        responder: Optional[Callable[[list[str]], CmdResult]] = None,
    ):
        super().__init__(dry_run=dry_run)
        self.responder = responder or (lambda cmd: CmdResult(0, '', ''))
        self.executed: list[list[str]] = []
        self.rendered: list[list[str]] = []
        self.queried: list[list[str]] = []
        self.envs: list[Optional[dict]] = []

    def render(self, cmd: Sequence[str]) -> CmdResult:
        self.rendered.append(list(cmd))
        return super().render(cmd)

    def execute(self, cmd, *, check=True, capture=True, env=None, timeout=None):
        cmd = list(cmd)
        self.executed.append(cmd)
        self.envs.append(env)
        res = self.responder(cmd)
        if check and res.code != 0:
            raise CmdError(cmd, res)
        return res

    def query(self, cmd, *, env=None, timeout=None):
        cmd = list(cmd)
        self.queried.append(cmd)
        self.envs.append(env)
        return self.responder(cmd)


class FakeRemote:
    """Stand-in for RemoteShell that records every remote call."""

    def __init__(self, *, user='admin', probe_results=(True,), fail_on=()):
        self.user = user
        self.calls: list[tuple] = []
        self.probe_results = list(probe_results)
        self.fail_on = tuple(fail_on)
        self.outputs: dict[str, str] = {}

    def target(self, ip):
        return f'{self.user}@{ip}'

    def run(self, ip, command, *, check=True, capture=False):
        self.calls.append(('run', ip, command))
        if any(part in command for part in self.fail_on):
            if check:
                raise CmdError(['ssh', command], CmdResult(255, '', 'closed'))
            return CmdResult(255, '', 'closed')
        return CmdResult(0, self.outputs.get(command, ''), '')

    def probe(self, ip):
        self.calls.append(('probe', ip))
        if len(self.probe_results) > 1:
            return self.probe_results.pop(0)
        return self.probe_results[0]

    def push(self, ip, sources, dest, *, recursive=False):
        self.calls.append(('push', ip, tuple(sources), dest, recursive))
        return CmdResult(0, '', '')


@pytest.fixture
def fake_hv() -> FakeHypervisor:
    return FakeHypervisor(
        vms={
            'base': {'VMState': 'poweroff', 'nat-network1': 'NatNet'},
        },
        bridged=['en0: Wi-Fi (AirPort)', 'en1'],
        hostonly=['vboxnet0'],
    )


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def all_tools(monkeypatch) -> None:
    monkeypatch.setattr('vbclone.host.which', lambda cmd: f'/usr/bin/{cmd}')


@pytest.fixture
def home(tmp_path: Path) -> Path:
    path = tmp_path / 'home'
    path.mkdir()
    return path
