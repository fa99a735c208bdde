"""Remote shell transport over ssh/scp with password or key authentication."""

from __future__ import annotations

from typing import Optional, Sequence

from loguru import logger

from .runtime import Executor, ssh_base_args
from .util import CmdResult

log = logger

# Connection-establishment timeout used by readiness probes.
PROBE_CONNECT_TIMEOUT = 3


class RemoteShell:
    """
    Run commands on the guest as ``user@ip``.

    With ``use_sshpass`` the password is handed to ``sshpass -e`` through the
    ``SSHPASS`` environment variable so it never appears on a rendered command
    line. Otherwise key authentication is used non-interactively.
    """

    def __init__(
        self,
        executor: Executor,
        *,
        user: str,
        password: str = '',
        use_sshpass: bool = False,
        command_timeout: Optional[float] = None,
    ):
        self.executor = executor
        self.user = user
        self.password = password
        self.use_sshpass = use_sshpass
        self.command_timeout = command_timeout

    def _env(self) -> Optional[dict[str, str]]:
        if self.use_sshpass:
            return {'SSHPASS': self.password}
        return None

    def _wrap(self, program: str, args: Sequence[str]) -> list[str]:
        if self.use_sshpass:
            return ['sshpass', '-e', program, *args]
        return [program, *args]

    def target(self, ip: str) -> str:
        return f'{self.user}@{ip}'

    def ssh_cmd(
        self,
        ip: str,
        command: str,
        *,
        connect_timeout: int | None = None,
    ) -> list[str]:
        opts = ssh_base_args(
            strict_host_key_checking='no',
            connect_timeout=connect_timeout,
            batch_mode=not self.use_sshpass and connect_timeout is not None,
        )
        return self._wrap('ssh', [*opts, self.target(ip), '--', command])

    def run(
        self,
        ip: str,
        command: str,
        *,
        check: bool = True,
        capture: bool = False,
    ) -> CmdResult:
        return self.executor.run(
            self.ssh_cmd(ip, command),
            check=check,
            capture=capture,
            env=self._env(),
            timeout=self.command_timeout or None,
        )

    def probe(self, ip: str) -> bool:
        """True when a trivial login succeeds; never raises."""
        cmd = self.ssh_cmd(
            ip, 'echo ok', connect_timeout=PROBE_CONNECT_TIMEOUT
        )
        res = self.executor.query(cmd, env=self._env())
        return res.code == 0

    def push(
        self, ip: str, sources: Sequence[str], dest: str, *, recursive: bool = False
    ) -> CmdResult:
        opts = ssh_base_args(strict_host_key_checking='no')
        if recursive:
            opts = ['-r', *opts]
        cmd = self._wrap('scp', [*opts, *sources, f'{self.target(ip)}:{dest}'])
        return self.executor.run(
            cmd,
            check=True,
            capture=True,
            env=self._env(),
            timeout=self.command_timeout or None,
        )
