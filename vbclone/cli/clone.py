"""CLI command that runs the linked-clone provisioning pipeline."""

from __future__ import annotations

import scriptconfig as scfg

from ..config import STAGE_NAMES, Defaults, NetworkMode, RunConfig, parse_nic
from ..errors import PreconditionError
from ..hypervisor import VBoxManageClient
from ..pipeline import PipelineContext, run_pipeline
from ..remote import RemoteShell
from ..runtime import Executor
from ._common import _BaseCommand, _load_defaults, _pick, log


class CloneCLI(_BaseCommand):
    """Clone, network, boot, rename, and provision a VM from a base snapshot."""

    base = scfg.Value('', help='Source VM to clone; must be powered off.')
    name = scfg.Value('', help='New VM name; also the default hostname.')
    hostname = scfg.Value('', help='Guest hostname override.')
    config_nic = scfg.Value(None, help='NIC to configure (1-8).')
    ssh_nic = scfg.Value(
        None, help='NIC used for IP/SSH (1-8); auto-detect when omitted.'
    )
    network = scfg.Value(
        '', help='Network mode: nat | bridged | hostonly | natnetwork.'
    )
    snapshot = scfg.Value(None, help='Snapshot name (default: base-clean).')
    user = scfg.Value(None, help='Guest SSH user.')
    password = scfg.Value(None, help='Guest SSH password (with --use-sshpass).')
    use_sshpass = scfg.Value(
        False, isflag=True, help='Authenticate with the password via sshpass.'
    )
    gui = scfg.Value(False, isflag=True, help='Start with a display window.')
    dry_run = scfg.Value(
        False, isflag=True, help='Print actions without running.'
    )
    debug = scfg.Value(
        False, isflag=True, help='Trace every command that is executed.'
    )
    stop_after = scfg.Value(
        '', help=f'Stop after this stage: {", ".join(STAGE_NAMES)}.'
    )
    print_vars = scfg.Value(
        False, isflag=True, help='Print resolved run variables first.'
    )
    github_key = scfg.Value(
        None,
        isflag=True,
        help='Generate a per-host GitHub SSH key on the guest (default on).',
    )
    github_key_upload = scfg.Value(
        False, isflag=True, help='Upload the generated key with gh.'
    )
    ssh_timeout = scfg.Value(
        None,
        help='Seconds allowed for each remote command (0 = no limit).',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = build_run_config(args, _load_defaults(args.config))
        if args.print_vars:
            print(render_vars(cfg))
        executor = Executor(dry_run=cfg.dry_run)
        remote = RemoteShell(
            executor,
            user=cfg.user,
            password=cfg.password,
            use_sshpass=cfg.use_sshpass,
            command_timeout=cfg.ssh_timeout,
        )
        ctx = PipelineContext(
            cfg=cfg, hv=VBoxManageClient(executor), remote=remote
        )
        result = run_pipeline(ctx)
        log.debug(
            'Pipeline finished stages={} stopped_after={}',
            result.completed,
            result.stopped_after or '(none)',
        )
        return 0


def build_run_config(args, defaults: Defaults) -> RunConfig:
    d = defaults.clone
    network = _pick(args.network, d.network)
    missing = [
        flag
        for flag, value in (
            ('--base', args.base),
            ('--name', args.name),
            ('--config-nic', args.config_nic),
            ('--network', network),
        )
        if value is None or str(value).strip() == ''
    ]
    if missing:
        raise PreconditionError(
            f'Missing required arguments: {", ".join(missing)}'
        )
    try:
        timeout = float(_pick(args.ssh_timeout, d.ssh_timeout))
    except ValueError:
        raise PreconditionError(
            f'--ssh-timeout must be a number (got {args.ssh_timeout!r})'
        ) from None
    github_key = d.github_key if args.github_key is None else args.github_key
    cfg = RunConfig(
        base=str(args.base).strip(),
        name=str(args.name).strip(),
        hostname=str(args.hostname or '').strip(),
        config_nic=parse_nic(args.config_nic, flag='--config-nic'),
        ssh_nic=parse_nic(args.ssh_nic, flag='--ssh-nic'),
        network=NetworkMode.parse(network),
        snapshot=str(_pick(args.snapshot, d.snapshot)),
        user=str(_pick(args.user, d.user)),
        password=str(_pick(args.password, d.password)),
        use_sshpass=bool(args.use_sshpass),
        headless=False if args.gui else bool(d.headless),
        dry_run=bool(args.dry_run),
        debug=bool(args.debug),
        stop_after=str(args.stop_after or '').strip(),
        github_key=bool(github_key),
        github_key_upload=bool(args.github_key_upload or d.github_key_upload),
        ssh_timeout=timeout if timeout != 0 else None,
    )
    return cfg.check()


def render_vars(cfg: RunConfig) -> str:
    return '\n'.join(
        f'{key.upper():<18} = {val}' for key, val in cfg.as_vars().items()
    )
