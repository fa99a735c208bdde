"""Credential store capability interface and its GitHub CLI implementation."""

from __future__ import annotations

import json
from dataclasses import dataclass

from loguru import logger

from .errors import CredentialAuthError, VBCloneError
from .host import require_commands
from .runtime import Executor
from .util import CmdError

log = logger

GH_CMD = 'gh'
AUTH_HINT = 'Run: gh auth login'


@dataclass(frozen=True)
class Credential:
    id: str
    title: str


class CredentialStoreClient:
    """Remote public-key store addressed by opaque id and human title."""

    def is_authenticated(self) -> bool:
        raise NotImplementedError

    def add_key(self, pubkey_path: str, title: str) -> None:
        raise NotImplementedError

    def list_keys(self) -> list[Credential]:
        raise NotImplementedError

    def delete_key(self, key_id: str) -> None:
        raise NotImplementedError


def parse_keys_json(text: str) -> list[Credential]:
    """
    Example:
        >>> from vbclone.credstore import parse_keys_json
        >>> parse_keys_json('[{"id": 7, "title": "vm-a", "key": "ssh-ed25519 AAA"}]')
        [Credential(id='7', title='vm-a')]
    """
    try:
        data = json.loads(text or '[]')
    except json.JSONDecodeError as ex:
        raise VBCloneError(f'Could not parse credential listing: {ex}') from ex
    if not isinstance(data, list):
        raise VBCloneError('Unexpected credential listing: expected a JSON list')
    return [
        Credential(str(item.get('id', '')), str(item.get('title') or ''))
        for item in data
        if isinstance(item, dict)
    ]


class GitHubCLIStore(CredentialStoreClient):
    """CredentialStoreClient backed by the ``gh`` command line tool."""

    def __init__(self, executor: Executor | None = None):
        self.executor = executor or Executor()

    def is_authenticated(self) -> bool:
        return self.executor.query([GH_CMD, 'auth', 'status']).code == 0

    def add_key(self, pubkey_path: str, title: str) -> None:
        # Short -t form keeps older gh releases working.
        self.executor.run([GH_CMD, 'ssh-key', 'add', pubkey_path, '-t', title])

    def list_keys(self) -> list[Credential]:
        cmd = [GH_CMD, 'api', 'user/keys']
        res = self.executor.query(cmd)
        if res.code != 0:
            raise CmdError(cmd, res)
        return parse_keys_json(res.stdout)

    def delete_key(self, key_id: str) -> None:
        self.executor.run(
            [GH_CMD, 'api', '--method', 'DELETE', f'user/keys/{key_id}']
        )


def require_authenticated(store: CredentialStoreClient) -> None:
    if isinstance(store, GitHubCLIStore):
        require_commands([GH_CMD])
    if not store.is_authenticated():
        raise CredentialAuthError(f'gh is not authenticated. {AUTH_HINT}')


def find_by_title(creds: list[Credential], title: str) -> Credential | None:
    """First credential whose title equals ``title`` exactly, in store order."""
    matches = [c for c in creds if c.title == title]
    if len(matches) > 1:
        log.warning(
            'Multiple credentials titled {!r} (ids: {}); using the first',
            title,
            ', '.join(c.id for c in matches),
        )
    return matches[0] if matches else None


def find_by_prefix(creds: list[Credential], prefix: str) -> list[Credential]:
    return [c for c in creds if c.title.startswith(prefix)]
