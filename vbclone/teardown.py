"""Teardown of cloned VMs with optional paired credential deletion."""

from __future__ import annotations

import re
from typing import Optional

from loguru import logger

from .credstore import CredentialStoreClient, find_by_title
from .errors import PreconditionError
from .hypervisor import HypervisorClient
from .keymanage import InputFn, confirm, parse_selection

log = logger


def filter_vms(names: list[str], pattern: str) -> list[str]:
    if not pattern:
        return list(names)
    try:
        rx = re.compile(pattern)
    except re.error as ex:
        raise PreconditionError(f'Invalid --filter regex {pattern!r}: {ex}') from ex
    return [n for n in names if rx.search(n)]


def format_vm_list(names: list[str]) -> str:
    lines = ['', 'Available VMs:']
    lines += [f'{idx:2d}. {name}' for idx, name in enumerate(names, start=1)]
    return '\n'.join(lines)


def delete_credential_for(store: CredentialStoreClient, title: str) -> Optional[str]:
    """Delete the credential titled ``title``; returns its id if one existed."""
    match = find_by_title(store.list_keys(), title)
    if match is None:
        print(f"GitHub: no key found with title '{title}' (skipping)")
        return None
    print(f"GitHub: deleting key title='{title}' id={match.id}")
    store.delete_key(match.id)
    return match.id


def destroy_vm(
    hv: HypervisorClient,
    vm: str,
    *,
    store: Optional[CredentialStoreClient] = None,
) -> None:
    print(f'\n== Destroying VM: {vm} ==')
    if store is not None:
        delete_credential_for(store, vm)
    hv.poweroff(vm)
    hv.unregister_delete(vm)
    log.info('VM removed: {}', vm)


def select_vms(
    hv: HypervisorClient,
    *,
    pattern: str = '',
    input_fn: InputFn = input,
) -> list[str]:
    """Interactive numbered selection; an empty list means nothing to do."""
    all_vms = hv.list_vms()
    if not all_vms:
        print('No VMs found.')
        return []
    vms = filter_vms(all_vms, pattern)
    if not vms:
        print(f'No VMs match filter: {pattern}')
        return []
    print(format_vm_list(vms))
    print()
    raw = input_fn('Select VMs to destroy (numbers, e.g. 1 3 5): ')
    if not raw.strip():
        print('Nothing selected.')
        return []
    return [vms[i] for i in parse_selection(raw, len(vms))]


def run_teardown(
    hv: HypervisorClient,
    *,
    pattern: str = '',
    store: Optional[CredentialStoreClient] = None,
    force: bool = False,
    input_fn: InputFn = input,
) -> list[str]:
    """
    Select VMs, confirm once, then destroy each one.

    ``store`` must already be checked for authentication by the caller;
    when given, each VM's credential (titled by VM name) is deleted first.
    Returns the names of the destroyed VMs.
    """
    selected = select_vms(hv, pattern=pattern, input_fn=input_fn)
    if not selected:
        return []
    print('\nWill destroy:')
    for vm in selected:
        print(f'  - {vm}')
    print()
    if not confirm('Proceed with VM deletion?', assume_yes=force, input_fn=input_fn):
        return []
    for vm in selected:
        destroy_vm(hv, vm, store=store)
    print('\nDone.')
    return selected
