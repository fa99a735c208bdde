"""Host dependency checks for the tools each workflow shells out to."""

from __future__ import annotations

from typing import Iterable

from loguru import logger

from .errors import MissingToolError
from .util import which

log = logger

HYPERVISOR_CMD = 'VBoxManage'
REQUIRED_CMDS = [HYPERVISOR_CMD, 'ssh']


def require_commands(cmds: Iterable[str]) -> None:
    missing = [c for c in cmds if which(c) is None]
    if missing:
        log.debug('Missing host commands: {}', missing)
        raise MissingToolError(
            f'Missing required command: {", ".join(missing)}'
        )
