"""Shared utility helpers for subprocess execution, paths, and command formatting."""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

log = logger

# Exit status reported for a command killed by its timeout (matches coreutils timeout).
TIMEOUT_CODE = 124


@dataclass(frozen=True)
class CmdResult:
    code: int
    stdout: str
    stderr: str


class CmdError(RuntimeError):
    def __init__(self, cmd: Sequence[str] | str, result: CmdResult):
        self.cmd = cmd
        self.result = result
        super().__init__(
            f'Command failed (code={result.code}): {cmd}\n{result.stderr}'.strip()
        )


def shell_join(cmd: Sequence[str]) -> str:
    return ' '.join(shlex.quote(c) for c in cmd)


def _text(data: str | bytes | None) -> str:
    if data is None:
        return ''
    if isinstance(data, bytes):
        return data.decode('utf-8', errors='replace')
    return data


def run_cmd(
    cmd: Sequence[str],
    *,
    check: bool = True,
    capture: bool = True,
    text: bool = True,
    input_text: Optional[str] = None,
    env: Optional[dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> CmdResult:
    cmd = list(cmd)
    log.opt(depth=1).debug('RUN: {}', shell_join(cmd))
    if env is not None:
        env = {**os.environ, **env}
    try:
        p = subprocess.run(
            cmd,
            input=input_text if input_text is not None else None,
            capture_output=capture,
            text=text,
            env=env,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as ex:
        res = CmdResult(
            TIMEOUT_CODE,
            _text(ex.stdout),
            f'timed out after {timeout}s',
        )
        log.opt(depth=1).error(
            'Command timed out after {}s cmd={}', timeout, shell_join(cmd)
        )
        if check:
            raise CmdError(cmd, res) from ex
        return res
    res = CmdResult(p.returncode, p.stdout or '', p.stderr or '')
    if check and p.returncode != 0:
        log.opt(depth=1).error(
            'Command failed code={} cmd={} stderr={} stdout={}',
            p.returncode,
            shell_join(cmd),
            res.stderr.strip(),
            res.stdout.strip(),
        )
        raise CmdError(cmd, res)
    if p.returncode == 0:
        log.opt(depth=1).debug('Command ok code=0 cmd={}', shell_join(cmd))
    return res


def which(cmd: str) -> Optional[str]:
    from shutil import which as _which

    return _which(cmd)


def ensure_dir(path: Path, *, mode: int | None = None) -> None:
    path.mkdir(parents=True, exist_ok=True)
    if mode is not None:
        path.chmod(mode)


def expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))
