"""Linked-clone provisioning pipeline: ordered, checkpointable stages."""

from __future__ import annotations

import re
import shlex
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from .config import RunConfig
from .errors import PreconditionError, ReadinessTimeout, StageError
from .guestinfo import (
    PLACEHOLDER_IP,
    current_ips,
    detect_ip,
    ip_property,
    render_ips,
    wait_for_nic_ip,
)
from .host import REQUIRED_CMDS, require_commands
from .hypervisor import POWERED_OFF_STATE, HypervisorClient
from .net import attach_network
from .poll import poll_until
from .remote import RemoteShell
from .util import CmdError

log = logger

START_PAUSE = 5.0
REBOOT_PAUSE = 5.0
SSH_ATTEMPTS = 90
SSH_DELAY = 2.0

SMOKE_TEST_PATH = '/usr/local/bin/vbclone-smoke-test'
SMOKE_TEST_MARKER = 'SMOKE TEST OK'
GUEST_TOOLS_STAGING = '/tmp/vbclone-tools'
GUEST_TOOLS_PREFIX = '/opt/vbclone'
GUEST_BIN_DIR = '/usr/local/bin'
GUEST_REQUIREMENTS = ('loguru', 'scriptconfig', 'ubelt')
GUEST_MIN_PYTHON = (3, 11)
# Installed launcher name -> vbclone sub-command it runs on the guest.
GUEST_LAUNCHERS = {
    'github-ssh-key': 'keygen',
    'github-ssh-key-manage': 'keys',
}
PACKAGE_DIR = Path(__file__).resolve().parent

_NIC_KEY = re.compile(r'^nic\d+$')


@dataclass(frozen=True)
class CloneState:
    """Values discovered by earlier stages and consumed by later ones."""

    ip: str = ''
    ssh_nic: Optional[int] = None
    hostname: str = ''


@dataclass
class PipelineContext:
    cfg: RunConfig
    hv: HypervisorClient
    remote: RemoteShell
    sleep: Callable[[float], None] = time.sleep
    tools_dir: Path = PACKAGE_DIR


@dataclass(frozen=True)
class Stage:
    name: str
    action: Callable[[PipelineContext, CloneState], CloneState]
    mutating: bool = True


@dataclass
class PipelineResult:
    state: CloneState
    completed: list[str] = field(default_factory=list)
    stopped_after: str = ''


def section(title: str) -> None:
    bar = '=' * 54
    print(f'\n{bar}\n{title}\n{bar}')


def _pause(ctx: PipelineContext, seconds: float, why: str) -> None:
    if ctx.cfg.dry_run:
        log.info('DRYRUN: skip {}s pause ({})', seconds, why)
        return
    log.debug('Pausing {}s ({})', seconds, why)
    ctx.sleep(seconds)


def required_tools(cfg: RunConfig) -> list[str]:
    tools = list(REQUIRED_CMDS)
    if cfg.use_sshpass:
        tools.append('sshpass')
    if cfg.github_key:
        tools.append('scp')
    return tools


def stage_validate(ctx: PipelineContext, state: CloneState) -> CloneState:
    cfg = ctx.cfg
    require_commands(required_tools(cfg))
    cfg.check()
    if not ctx.hv.vm_exists(cfg.base):
        raise PreconditionError(f'Source VM not found: {cfg.base}')
    vm_state = ctx.hv.vm_state(cfg.base)
    if vm_state != POWERED_OFF_STATE:
        raise PreconditionError(
            f'Base VM must be powered off: {cfg.base} (state={vm_state or "unknown"})'
        )
    if ctx.hv.vm_exists(cfg.name):
        raise PreconditionError(f'Target VM already exists: {cfg.name}')
    return replace(state, ssh_nic=cfg.ssh_nic, hostname='')


def stage_snapshot(ctx: PipelineContext, state: CloneState) -> CloneState:
    cfg = ctx.cfg
    if ctx.hv.snapshot_exists(cfg.base, cfg.snapshot):
        print(f'Using existing snapshot: {cfg.snapshot}')
    else:
        ctx.hv.take_snapshot(cfg.base, cfg.snapshot)
    return state


def stage_clone(ctx: PipelineContext, state: CloneState) -> CloneState:
    cfg = ctx.cfg
    ctx.hv.clone_linked(cfg.base, cfg.snapshot, cfg.name)
    return state


def stage_mac(ctx: PipelineContext, state: CloneState) -> CloneState:
    cfg = ctx.cfg
    for nic in dict.fromkeys([cfg.config_nic, cfg.ssh_nic]):
        if nic is not None:
            ctx.hv.regenerate_mac(cfg.name, nic)
    return state


def stage_network(ctx: PipelineContext, state: CloneState) -> CloneState:
    cfg = ctx.cfg
    attach_network(
        ctx.hv, cfg.name, cfg.config_nic, cfg.network, source_vm=cfg.base
    )
    return state


def stage_start(ctx: PipelineContext, state: CloneState) -> CloneState:
    ctx.hv.start_vm(ctx.cfg.name, headless=ctx.cfg.headless)
    _pause(ctx, START_PAUSE, 'VM start transition')
    return state


def stage_ip(ctx: PipelineContext, state: CloneState) -> CloneState:
    cfg = ctx.cfg
    nic = cfg.ssh_nic
    if cfg.dry_run:
        log.info('DRYRUN: discover guest IP; using placeholder {}', PLACEHOLDER_IP)
        ip = PLACEHOLDER_IP
    elif nic is not None:
        print(f'Waiting for SSH NIC{nic} IP via {ip_property(nic)}')
        ip = wait_for_nic_ip(ctx.hv, cfg.name, nic, sleep=ctx.sleep)
        if not ip:
            raise ReadinessTimeout(f'SSH NIC{nic} did not obtain an IP in time')
    else:
        nic, ip = detect_ip(ctx.hv, cfg.name, sleep=ctx.sleep)
        if not ip:
            log.warning(
                'No adapter reported an IPv4 address; remote stages will fail'
            )
    print(f'VM IP: {ip}')
    return replace(state, ip=ip, ssh_nic=nic)


def stage_ssh(ctx: PipelineContext, state: CloneState) -> CloneState:
    hostname = ctx.cfg.effective_hostname
    ctx.remote.run(
        state.ip, f'sudo hostnamectl set-hostname {shlex.quote(hostname)}'
    )
    return replace(state, hostname=hostname)


def stage_reboot(ctx: PipelineContext, state: CloneState) -> CloneState:
    try:
        ctx.remote.run(state.ip, 'sudo reboot')
    except CmdError as ex:
        # The connection drops while the guest goes down.
        log.debug('Reboot command ended with expected error: {}', ex)
    _pause(ctx, REBOOT_PAUSE, 'guest going down for reboot')
    return state


def stage_wait(ctx: PipelineContext, state: CloneState) -> CloneState:
    if ctx.cfg.dry_run:
        log.info('DRYRUN: wait for SSH on {}', ctx.remote.target(state.ip))
        return state
    ok = poll_until(
        lambda: ctx.remote.probe(state.ip),
        attempts=SSH_ATTEMPTS,
        delay=SSH_DELAY,
        sleep=ctx.sleep,
        what=f'SSH on {state.ip}',
    )
    if not ok:
        raise ReadinessTimeout(f'SSH did not come back on {state.ip}')
    log.info('SSH is ready on {}', state.ip)
    return state


def _heredoc_to(path: str, content: str) -> str:
    return f"sudo tee {shlex.quote(path)} >/dev/null <<'EOF'\n{content}EOF"


def stage_smoke_test(ctx: PipelineContext, state: CloneState) -> CloneState:
    script = (
        '#!/usr/bin/env bash\n'
        f'echo "{SMOKE_TEST_MARKER} from $(hostname)"\n'
    )
    ctx.remote.run(state.ip, _heredoc_to(SMOKE_TEST_PATH, script))
    ctx.remote.run(state.ip, f'sudo chmod +x {SMOKE_TEST_PATH}')
    res = ctx.remote.run(state.ip, SMOKE_TEST_PATH, capture=True)
    if ctx.cfg.dry_run:
        return state
    out = res.stdout.strip()
    if out:
        print(out)
    if SMOKE_TEST_MARKER not in out:
        raise StageError(
            f'Guest smoke test did not report {SMOKE_TEST_MARKER!r} (output={out!r})'
        )
    return state


def _skip_without_github_key(ctx: PipelineContext, what: str) -> bool:
    if ctx.cfg.github_key:
        return False
    print(f'GitHub SSH key disabled; skipping {what}')
    return True


def stage_push_github_tools(
    ctx: PipelineContext, state: CloneState
) -> CloneState:
    if _skip_without_github_key(ctx, 'tool copy'):
        return state
    ctx.remote.run(
        state.ip,
        f'rm -rf {GUEST_TOOLS_STAGING} && mkdir -p {GUEST_TOOLS_STAGING}',
    )
    ctx.remote.push(
        state.ip,
        [str(ctx.tools_dir)],
        f'{GUEST_TOOLS_STAGING}/',
        recursive=True,
    )
    return state


def launcher_script(subcommand: str) -> str:
    return (
        '#!/bin/sh\n'
        f'PYTHONPATH={GUEST_TOOLS_PREFIX} exec python3 -m vbclone {subcommand} "$@"\n'
    )


def install_commands(tools_name: str = 'vbclone') -> list[str]:
    cmds = [
        f'sudo rm -rf {GUEST_TOOLS_PREFIX} && sudo mkdir -p {GUEST_TOOLS_PREFIX} '
        f'&& sudo cp -r {GUEST_TOOLS_STAGING}/{tools_name} {GUEST_TOOLS_PREFIX}/',
        'sudo env PIP_BREAK_SYSTEM_PACKAGES=1 python3 -m pip install --quiet '
        + ' '.join(GUEST_REQUIREMENTS),
    ]
    for name, sub in GUEST_LAUNCHERS.items():
        path = f'{GUEST_BIN_DIR}/{name}'
        cmds.append(_heredoc_to(path, launcher_script(sub)))
        cmds.append(f'sudo chmod 0755 {path}')
    return cmds


# (description, guest command that exits 0 when satisfied)
GUEST_PREFLIGHT_CHECKS = (
    (
        f'python3 >= {GUEST_MIN_PYTHON[0]}.{GUEST_MIN_PYTHON[1]}',
        "python3 -c 'import sys; sys.exit(sys.version_info < "
        f"{GUEST_MIN_PYTHON})'",
    ),
    ('pip for python3', 'python3 -m pip --version'),
)


def check_guest_python(ctx: PipelineContext, state: CloneState) -> None:
    """Fail before installing when the guest cannot run the key tools."""
    missing = []
    for what, cmd in GUEST_PREFLIGHT_CHECKS:
        res = ctx.remote.run(state.ip, cmd, check=False, capture=True)
        if res.code != 0:
            log.debug('Guest preflight failed ({}): code={}', what, res.code)
            missing.append(what)
    if missing:
        raise StageError(
            f'Guest {state.ip} is missing prerequisites for the GitHub key '
            f'tools: {", ".join(missing)}. Install them in the base VM or '
            're-run with --no-github-key.'
        )


def stage_install_github_tools(
    ctx: PipelineContext, state: CloneState
) -> CloneState:
    if _skip_without_github_key(ctx, 'tool installation'):
        return state
    check_guest_python(ctx, state)
    for cmd in install_commands(ctx.tools_dir.name):
        ctx.remote.run(state.ip, cmd)
    return state


def stage_github_ssh_key(ctx: PipelineContext, state: CloneState) -> CloneState:
    cfg = ctx.cfg
    if _skip_without_github_key(ctx, 'key generation'):
        return state
    cmd = f'sudo -iu {shlex.quote(cfg.user)} github-ssh-key'
    if cfg.github_key_upload:
        cmd += ' --upload'
    ctx.remote.run(state.ip, cmd)
    return state


def render_summary(
    cfg: RunConfig, state: CloneState, hv: HypervisorClient
) -> str:
    lines = [
        f'VM Name     : {cfg.name}',
        f'Hostname    : {state.hostname or cfg.effective_hostname}',
        f'Snapshot    : {cfg.snapshot}',
        f'Config NIC  : {cfg.config_nic} ({cfg.network.value})',
        f'SSH NIC     : {cfg.ssh_nic if cfg.ssh_nic is not None else "auto"}',
        render_ips(current_ips(hv, cfg.name)),
    ]
    for key, val in hv.vm_info(cfg.name).items():
        if key == 'VMState' or _NIC_KEY.match(key):
            lines.append(f'{key}="{val}"')
    return '\n'.join(lines)


def stage_summary(ctx: PipelineContext, state: CloneState) -> CloneState:
    print(render_summary(ctx.cfg, state, ctx.hv))
    print('\nDone.')
    return state


STAGES: tuple[Stage, ...] = (
    Stage('validate', stage_validate, mutating=False),
    Stage('snapshot', stage_snapshot),
    Stage('clone', stage_clone),
    Stage('mac', stage_mac),
    Stage('network', stage_network),
    Stage('start', stage_start),
    Stage('ip', stage_ip, mutating=False),
    Stage('ssh', stage_ssh),
    Stage('reboot', stage_reboot),
    Stage('wait', stage_wait, mutating=False),
    Stage('smoke-test', stage_smoke_test),
    Stage('push-github-tools', stage_push_github_tools),
    Stage('install-github-tools', stage_install_github_tools),
    Stage('github-ssh-key', stage_github_ssh_key),
    Stage('summary', stage_summary, mutating=False),
)

def run_pipeline(
    ctx: PipelineContext,
    *,
    stages: tuple[Stage, ...] = STAGES,
    state: CloneState | None = None,
) -> PipelineResult:
    """
    Execute ``stages`` in order, threading :class:`CloneState` through them.

    After each stage the configured ``stop_after`` name is checked; a match
    ends the run successfully without executing later stages.
    """
    result = PipelineResult(state=state or CloneState())
    for stage in stages:
        section(stage.name)
        log.debug('Stage {} (mutating={})', stage.name, stage.mutating)
        result.state = stage.action(ctx, result.state)
        result.completed.append(stage.name)
        if ctx.cfg.stop_after == stage.name:
            result.stopped_after = stage.name
            print(f'\nSTOPPED after stage: {stage.name}')
            break
    return result
