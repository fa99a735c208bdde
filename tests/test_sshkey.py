from __future__ import annotations

import os
from pathlib import Path

import pytest

from conftest import FakeCredentialStore, RecordingExecutor
from vbclone.errors import CredentialAuthError
from vbclone.sshkey import (
    ensure_github_key,
    github_stanza,
    has_github_stanza,
    key_paths,
)
from vbclone.util import CmdResult

KNOWN_HOST_LINE = 'github.com ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIOMqqnkVzrm0SdG6UOoqKLsabgH5C9okWi0dh2l9GKJl\n'


def _keygen_executor() -> RecordingExecutor:
    counter = {'n': 0}

    def responder(cmd):
        if cmd[0] == 'ssh-keygen':
            counter['n'] += 1
            key = Path(cmd[cmd.index('-f') + 1])
            key.write_text(f'PRIVATE {counter["n"]}\n', encoding='utf-8')
            key.with_name(key.name + '.pub').write_text(
                f'ssh-ed25519 AAAA{counter["n"]} {cmd[cmd.index("-C") + 1]}\n',
                encoding='utf-8',
            )
        elif cmd[0] == 'ssh-keyscan':
            return CmdResult(0, KNOWN_HOST_LINE, '')
        return CmdResult(0, '', '')

    return RecordingExecutor(responder=responder)


def test_key_paths_named_by_host(home: Path) -> None:
    paths = key_paths('vm-a', home=home)
    assert paths.key == home / '.ssh' / 'id_github_vm-a'
    assert paths.pub.name == 'id_github_vm-a.pub'
    assert paths.marker.name == '.github_ssh_done'


def test_first_run_generates_and_configures(home: Path) -> None:
    ex = _keygen_executor()
    result = ensure_github_key(email='me@x', host='vm-a', home=home, executor=ex)
    assert result.generated and not result.uploaded
    paths = result.paths
    assert ex.executed == [
        ['ssh-keygen', '-t', 'ed25519', '-C', 'me@x', '-f', str(paths.key), '-N', '']
    ]
    assert paths.marker.exists()
    assert (paths.ssh_dir.stat().st_mode & 0o777) == 0o700
    assert (paths.config.stat().st_mode & 0o777) == 0o600
    config = paths.config.read_text(encoding='utf-8')
    assert f'IdentityFile {paths.key}' in config
    assert paths.known_hosts.read_text(encoding='utf-8') == KNOWN_HOST_LINE


def test_second_run_is_a_no_op(home: Path) -> None:
    ex = _keygen_executor()
    first = ensure_github_key(email='me@x', host='vm-a', home=home, executor=ex)
    paths = first.paths
    key_before = paths.key.read_bytes()
    pub_before = paths.pub.read_bytes()
    # push the marker into the past so any touch would be visible
    os.utime(paths.marker, (1_000_000, 1_000_000))
    mtime_before = paths.marker.stat().st_mtime

    second = ensure_github_key(email='me@x', host='vm-a', home=home, executor=ex)
    assert second.generated is False
    assert paths.key.read_bytes() == key_before
    assert paths.pub.read_bytes() == pub_before
    assert paths.marker.stat().st_mtime == mtime_before
    assert len(ex.executed) == 1


def test_force_regenerates_without_duplicate_stanza(home: Path) -> None:
    ex = _keygen_executor()
    first = ensure_github_key(email='me@x', host='vm-a', home=home, executor=ex)
    old_pub = first.paths.pub.read_text(encoding='utf-8')
    again = ensure_github_key(
        email='me@x', host='vm-a', home=home, executor=ex, force=True
    )
    assert again.generated
    assert again.paths.pub.read_text(encoding='utf-8') != old_pub
    config = again.paths.config.read_text(encoding='utf-8')
    assert config.count('Host github.com') == 1
    # known_hosts is appended, not deduplicated
    assert again.paths.known_hosts.read_text(encoding='utf-8').count('github.com') == 2


def test_existing_stanza_is_respected(home: Path) -> None:
    ssh_dir = home / '.ssh'
    ssh_dir.mkdir()
    (ssh_dir / 'config').write_text('Host github.com\n  User git\n', encoding='utf-8')
    result = ensure_github_key(
        email='me@x', host='vm-a', home=home, executor=_keygen_executor()
    )
    assert result.paths.config.read_text(encoding='utf-8') == 'Host github.com\n  User git\n'


def test_has_github_stanza() -> None:
    assert has_github_stanza(github_stanza(Path('/k')))
    assert not has_github_stanza('Host github.com.evil\n')
    assert not has_github_stanza('')


def test_upload_uses_hostname_title(home: Path) -> None:
    store = FakeCredentialStore()
    result = ensure_github_key(
        email='me@x',
        host='vm-a',
        home=home,
        executor=_keygen_executor(),
        store=store,
        upload=True,
    )
    assert result.uploaded
    assert store.added == [(str(result.paths.pub), 'vm-a')]


def test_upload_requires_authentication(home: Path) -> None:
    store = FakeCredentialStore(authenticated=False)
    with pytest.raises(CredentialAuthError, match='gh auth login') as info:
        ensure_github_key(
            email='me@x',
            host='vm-a',
            home=home,
            executor=_keygen_executor(),
            store=store,
            upload=True,
        )
    assert info.value.exit_code == 3
    assert store.added == []


def test_upload_after_marker_is_not_retroactive(home: Path, capsys) -> None:
    ex = _keygen_executor()
    ensure_github_key(email='me@x', host='vm-a', home=home, executor=ex)
    store = FakeCredentialStore()
    result = ensure_github_key(
        email='me@x',
        host='vm-a',
        home=home,
        executor=ex,
        store=store,
        upload=True,
        show=True,
    )
    assert result.uploaded is False
    assert store.added == []
    out = capsys.readouterr().out
    assert 'Key already prepared' in out
    assert 'ssh-ed25519 AAAA1' in out
