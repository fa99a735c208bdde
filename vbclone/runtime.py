"""Simulate-aware command routing and SSH argument construction."""

from __future__ import annotations

from typing import Optional, Sequence

from loguru import logger

from .util import CmdResult, run_cmd, shell_join

log = logger

DRY_RUN_PREFIX = 'DRY-RUN: '


class Executor:
    """Route state-changing commands through one place.

    Mutating commands go through :meth:`run`. In simulate mode the rendered
    command line is printed and a synthetic success is returned; otherwise
    the command executes via :meth:`execute`. Read-only commands go through
    :meth:`query`, which always executes and never raises on a non-zero exit
    so callers can inspect the result.

    Example:
        >>> from vbclone.runtime import Executor
        >>> ex = Executor(dry_run=True)
        >>> ex.run(['VBoxManage', 'startvm', 'my vm']).code
        DRY-RUN: VBoxManage startvm 'my vm'
        0
    """

    def __init__(self, *, dry_run: bool = False, timeout: Optional[float] = None):
        self.dry_run = dry_run
        self.timeout = timeout

    def run(
        self,
        cmd: Sequence[str],
        *,
        check: bool = True,
        capture: bool = True,
        env: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> CmdResult:
        if self.dry_run:
            return self.render(cmd)
        return self.execute(
            cmd,
            check=check,
            capture=capture,
            env=env,
            timeout=timeout if timeout is not None else self.timeout,
        )

    def render(self, cmd: Sequence[str]) -> CmdResult:
        print(DRY_RUN_PREFIX + shell_join(cmd))
        return CmdResult(0, '', '')

    def execute(
        self,
        cmd: Sequence[str],
        *,
        check: bool = True,
        capture: bool = True,
        env: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> CmdResult:
        return run_cmd(
            cmd, check=check, capture=capture, env=env, timeout=timeout
        )

    def query(
        self,
        cmd: Sequence[str],
        *,
        env: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> CmdResult:
        return run_cmd(cmd, check=False, capture=True, env=env, timeout=timeout)


def ssh_base_args(
    *,
    strict_host_key_checking: str = 'no',
    connect_timeout: int | None = None,
    batch_mode: bool = False,
    user_known_hosts_file: str | None = None,
) -> list[str]:
    args: list[str] = []
    if batch_mode:
        args.extend(['-o', 'BatchMode=yes'])
    if connect_timeout is not None:
        args.extend(['-o', f'ConnectTimeout={connect_timeout}'])
    args.extend(['-o', f'StrictHostKeyChecking={strict_host_key_checking}'])
    if user_known_hosts_file:
        args.extend(['-o', f'UserKnownHostsFile={user_known_hosts_file}'])
    return args
