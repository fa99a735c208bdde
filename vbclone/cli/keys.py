"""CLI commands for guest-side key generation and host-side key cleanup."""

from __future__ import annotations

import scriptconfig as scfg

from ..credstore import GitHubCLIStore, require_authenticated
from ..errors import PreconditionError
from ..host import require_commands
from ..keymanage import (
    delete_by_prefix,
    delete_by_title,
    interactive_delete,
    list_mode,
)
from ..runtime import Executor
from ..sshkey import ensure_github_key, short_hostname
from ._common import _BaseCommand, _load_defaults, log


class KeygenCLI(_BaseCommand):
    """Create this host's GitHub SSH key once, and optionally upload it."""

    email = scfg.Value(None, help='Key comment (default from config).')
    upload = scfg.Value(
        False, isflag=True, help='Upload the new key with gh (--no-upload to skip).'
    )
    show = scfg.Value(
        False, isflag=True, help='Print key paths and the public key (--print).'
    )
    force = scfg.Value(
        False,
        isflag=True,
        help='Regenerate even if already prepared (replaces the key).',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        defaults = _load_defaults(args.config)
        require_commands(['ssh-keygen'])
        result = ensure_github_key(
            email=str(args.email or defaults.keys.email),
            upload=bool(args.upload),
            force=bool(args.force),
            show=bool(args.show),
        )
        log.debug(
            'Key {} generated={} uploaded={}',
            result.paths.key,
            result.generated,
            result.uploaded,
        )
        return 0


class KeysCLI(_BaseCommand):
    """List or delete GitHub SSH keys by number, hostname, or title prefix."""

    list_keys = scfg.Value(
        False, isflag=True, help='List keys (default mode; --list).'
    )
    delete = scfg.Value(
        False, isflag=True, help='Choose keys to delete by number.'
    )
    self_delete = scfg.Value(
        False, isflag=True, help="Delete the key titled with this host's name."
    )
    match = scfg.Value(None, help='Delete keys whose title starts with PREFIX.')
    yes = scfg.Value(False, isflag=True, help='Skip confirmation prompts.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        mode = _select_mode(args)
        store = GitHubCLIStore(Executor())
        require_authenticated(store)
        assume_yes = bool(args.yes)
        if mode == 'delete':
            result = interactive_delete(store, assume_yes=assume_yes)
        elif mode == 'self':
            result = delete_by_title(
                store, short_hostname(), assume_yes=assume_yes
            )
        elif mode == 'match':
            result = delete_by_prefix(
                store, str(args.match), assume_yes=assume_yes
            )
        else:
            result = list_mode(store)
        return 0 if result.ok else 1


def _select_mode(args) -> str:
    chosen = [
        mode
        for mode, on in (
            ('list', args.list_keys),
            ('delete', args.delete),
            ('self', args.self_delete),
            ('match', args.match is not None),
        )
        if on
    ]
    if len(chosen) > 1:
        raise PreconditionError(
            'Choose only one of --list, --delete, --self-delete, --match'
        )
    return chosen[0] if chosen else 'list'
