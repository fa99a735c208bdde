"""Guest-side per-host GitHub SSH key generation, configuration, and upload."""

from __future__ import annotations

import re
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from .credstore import CredentialStoreClient, GitHubCLIStore, require_authenticated
from .runtime import Executor
from .util import ensure_dir

log = logger

GITHUB_HOST = 'github.com'
MARKER_NAME = '.github_ssh_done'
_GITHUB_STANZA_RE = re.compile(r'^\s*Host\s+github\.com\s*$', re.MULTILINE)


@dataclass(frozen=True)
class KeyPaths:
    ssh_dir: Path
    key: Path
    pub: Path
    marker: Path
    config: Path
    known_hosts: Path


@dataclass(frozen=True)
class KeyResult:
    paths: KeyPaths
    generated: bool
    uploaded: bool


def short_hostname() -> str:
    return socket.gethostname().split('.')[0]


def key_paths(host: str, *, home: Optional[Path] = None) -> KeyPaths:
    ssh_dir = Path(home or Path.home()) / '.ssh'
    key = ssh_dir / f'id_github_{host}'
    return KeyPaths(
        ssh_dir=ssh_dir,
        key=key,
        pub=key.with_name(key.name + '.pub'),
        marker=ssh_dir / MARKER_NAME,
        config=ssh_dir / 'config',
        known_hosts=ssh_dir / 'known_hosts',
    )


def has_github_stanza(config_text: str) -> bool:
    return bool(_GITHUB_STANZA_RE.search(config_text or ''))


def github_stanza(key: Path) -> str:
    return (
        f'\nHost {GITHUB_HOST}\n'
        f'    HostName {GITHUB_HOST}\n'
        '    User git\n'
        f'    IdentityFile {key}\n'
        '    IdentitiesOnly yes\n'
    )


def describe(host: str, paths: KeyPaths) -> str:
    pub = paths.pub.read_text(encoding='utf-8') if paths.pub.exists() else ''
    return (
        f'Host : {host}\n'
        f'Key  : {paths.key}\n'
        f'Pub  : {paths.pub}\n'
        f'\n{pub}'
    ).rstrip('\n')


def _append(path: Path, text: str) -> None:
    with path.open('a', encoding='utf-8') as file:
        file.write(text)


def ensure_github_key(
    *,
    email: str,
    upload: bool = False,
    force: bool = False,
    show: bool = False,
    host: Optional[str] = None,
    home: Optional[Path] = None,
    executor: Optional[Executor] = None,
    store: Optional[CredentialStoreClient] = None,
) -> KeyResult:
    """
    Create the per-host GitHub key once and wire it into the ssh client.

    The marker file is the only idempotence token: when it exists and
    ``force`` is not given, nothing is regenerated and nothing is uploaded.
    ``force`` deletes the previous key pair locally; the remote copy of the
    old key is left in place.
    """
    host = host or short_hostname()
    executor = executor or Executor()
    paths = key_paths(host, home=home)
    ensure_dir(paths.ssh_dir, mode=0o700)

    if paths.marker.exists() and not force:
        if upload:
            log.warning(
                'Key for {} was already prepared ({} exists); --upload is not '
                'applied retroactively. Re-run with --force to regenerate and upload.',
                host,
                paths.marker,
            )
        if show:
            print(f'Key already prepared: {paths.pub}\n')
            print(describe(host, paths))
        return KeyResult(paths, generated=False, uploaded=False)

    if force:
        for p in (paths.key, paths.pub, paths.marker):
            p.unlink(missing_ok=True)

    log.info('Generating ed25519 key {}', paths.key)
    executor.run(
        ['ssh-keygen', '-t', 'ed25519', '-C', email, '-f', str(paths.key), '-N', '']
    )

    existing = (
        paths.config.read_text(encoding='utf-8') if paths.config.exists() else ''
    )
    if not has_github_stanza(existing):
        _append(paths.config, github_stanza(paths.key))
    else:
        log.debug('ssh config already has a {} stanza', GITHUB_HOST)
    paths.config.chmod(0o600)

    scan = executor.query(['ssh-keyscan', GITHUB_HOST])
    if scan.code == 0 and scan.stdout:
        _append(paths.known_hosts, scan.stdout)
    else:
        log.warning('ssh-keyscan {} failed; known_hosts not seeded', GITHUB_HOST)
    if paths.known_hosts.exists():
        paths.known_hosts.chmod(0o644)

    paths.marker.touch()

    uploaded = False
    if upload:
        store = store or GitHubCLIStore(executor)
        require_authenticated(store)
        store.add_key(str(paths.pub), host)
        uploaded = True
        log.info('Uploaded {} as {!r}', paths.pub, host)

    if show:
        print(describe(host, paths))
    return KeyResult(paths, generated=True, uploaded=uploaded)
