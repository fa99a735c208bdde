"""Host-side bulk listing and deletion of credential store keys by title."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from loguru import logger

from .credstore import (
    Credential,
    CredentialStoreClient,
    find_by_prefix,
    find_by_title,
)
from .errors import PreconditionError
from .util import CmdError

log = logger

InputFn = Callable[[str], str]


@dataclass
class BatchResult:
    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def format_table(creds: list[Credential]) -> str:
    lines = ['', 'GitHub SSH keys:', '----------------']
    for idx, cred in enumerate(creds, start=1):
        lines.append(f'{idx:2d}. {cred.id}  |  {cred.title}')
    return '\n'.join(lines)


def parse_selection(raw: str, count: int) -> list[int]:
    """
    Convert space separated 1-based numbers into 0-based indices.

    Example:
        >>> from vbclone.keymanage import parse_selection
        >>> parse_selection(' 3 1 ', 4)
        [2, 0]
    """
    out = []
    for tok in raw.split():
        if not tok.isdigit():
            raise PreconditionError(f'Invalid selection: {tok}')
        idx = int(tok) - 1
        if not 0 <= idx < count:
            raise PreconditionError(f'Out of range: {tok}')
        out.append(idx)
    return out


def confirm(prompt: str, *, assume_yes: bool, input_fn: InputFn = input) -> bool:
    if assume_yes:
        return True
    ans = input_fn(f'{prompt} (y/N): ').strip().lower()
    return ans in {'y', 'yes'}


def delete_keys(store: CredentialStoreClient, creds: list[Credential]) -> BatchResult:
    """Delete each credential independently; failures do not stop the batch."""
    result = BatchResult()
    for cred in creds:
        try:
            store.delete_key(cred.id)
        except CmdError as ex:
            print(f'Failed to delete key id={cred.id} title={cred.title}: {ex}')
            log.error('Delete failed id={} title={}: {}', cred.id, cred.title, ex)
            result.failed.append(cred.id)
        else:
            result.deleted.append(cred.id)
    if result.failed:
        log.warning(
            'Deleted {} key(s); {} failed: {}',
            len(result.deleted),
            len(result.failed),
            ', '.join(result.failed),
        )
    return result


def list_mode(store: CredentialStoreClient) -> BatchResult:
    creds = store.list_keys()
    if not creds:
        print('No SSH keys found.')
    else:
        print(format_table(creds))
    return BatchResult()


def interactive_delete(
    store: CredentialStoreClient,
    *,
    assume_yes: bool = False,
    input_fn: InputFn = input,
) -> BatchResult:
    creds = store.list_keys()
    if not creds:
        print('No SSH keys found.')
        return BatchResult()
    print(format_table(creds))
    print()
    raw = input_fn('Enter numbers to delete (e.g. 1 3 5): ')
    if not raw.strip():
        print('Nothing selected.')
        return BatchResult()
    chosen = [creds[i] for i in parse_selection(raw, len(creds))]
    for cred in chosen:
        print(f'Selected: id={cred.id} title={cred.title}')
    print()
    if not confirm('Delete selected keys?', assume_yes=assume_yes, input_fn=input_fn):
        return BatchResult()
    result = delete_keys(store, chosen)
    print('Done.')
    return result


def delete_by_title(
    store: CredentialStoreClient,
    title: str,
    *,
    assume_yes: bool = False,
    input_fn: InputFn = input,
) -> BatchResult:
    """Delete the first credential titled exactly ``title``."""
    match = find_by_title(store.list_keys(), title)
    if match is None:
        print(f'No key found with title: {title}')
        return BatchResult()
    print(f'Matched key id={match.id} title={match.title}')
    if not confirm('Delete this key?', assume_yes=assume_yes, input_fn=input_fn):
        return BatchResult()
    result = delete_keys(store, [match])
    if result.ok:
        print('Deleted.')
    return result


def delete_by_prefix(
    store: CredentialStoreClient,
    prefix: str,
    *,
    assume_yes: bool = False,
    input_fn: InputFn = input,
) -> BatchResult:
    if not prefix:
        raise PreconditionError('--match requires PREFIX')
    matches = find_by_prefix(store.list_keys(), prefix)
    if not matches:
        print(f'No keys matched prefix: {prefix}')
        return BatchResult()
    for cred in matches:
        print(f'Matched: id={cred.id} title={cred.title}')
    print(f'Matched {len(matches)} keys.')
    if not confirm(
        'Delete ALL matched keys?', assume_yes=assume_yes, input_fn=input_fn
    ):
        return BatchResult()
    result = delete_keys(store, matches)
    print('Done.')
    return result
