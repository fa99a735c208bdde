"""CLI command that tears down cloned VMs and their GitHub keys."""

from __future__ import annotations

import scriptconfig as scfg

from ..credstore import GitHubCLIStore, require_authenticated
from ..errors import CredentialAuthError
from ..host import HYPERVISOR_CMD, require_commands
from ..hypervisor import VBoxManageClient
from ..runtime import Executor
from ..teardown import run_teardown
from ._common import _BaseCommand, log


class DestroyCLI(_BaseCommand):
    """Interactively power off and delete VMs, optionally removing their keys."""

    filter = scfg.Value('', help='Only offer VMs whose names match this regex.')
    github_delete = scfg.Value(
        False,
        isflag=True,
        help='Also delete the GitHub SSH key titled with each VM name.',
    )
    dry_run = scfg.Value(
        False, isflag=True, help='Print actions without running.'
    )
    force = scfg.Value(
        False, isflag=True, help='Skip the confirmation prompt.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        require_commands([HYPERVISOR_CMD])
        executor = Executor(dry_run=bool(args.dry_run))
        store = None
        if args.github_delete:
            store = GitHubCLIStore(executor)
            try:
                require_authenticated(store)
            except CredentialAuthError as ex:
                raise CredentialAuthError(
                    f'{ex} Or re-run with --no-github-delete.'
                ) from ex
        destroyed = run_teardown(
            VBoxManageClient(executor),
            pattern=str(args.filter or ''),
            store=store,
            force=bool(args.force),
        )
        log.debug('Destroyed VMs: {}', destroyed)
        return 0
