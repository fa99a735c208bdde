"""Top-level modal CLI wiring, argv normalization, and logging setup."""

from __future__ import annotations

import os
import re
import sys

import scriptconfig as scfg
from loguru import logger

from ..errors import VBCloneError
from ..util import CmdError
from ._common import log
from .clone import CloneCLI
from .destroy import DestroyCLI
from .keys import KeygenCLI, KeysCLI


class VBCloneModalCLI(scfg.ModalCLI):
    """Linked-clone VirtualBox provisioning with per-host GitHub SSH keys."""

    clone = CloneCLI
    destroy = DestroyCLI
    keys = KeysCLI
    keygen = KeygenCLI


# Spellings accepted on the command line that differ from the field names.
_FLAG_ALIASES = {
    '--pass': '--password',
    '--no-github-key': '--github_key=False',
    '--no-upload': '--upload=False',
    '--no-github-delete': '--github_delete=False',
    '--print': '--show',
    '--list': '--list_keys',
}

# Options whose next token is a literal value that must not be rewritten.
_RAW_VALUE_FLAGS = {'--password', '--pass', '--match', '--filter'}

_LONG_OPT_RE = re.compile(r'^--([a-z][a-z0-9]*(?:-[a-z0-9]+)+)(=.*)?$')


def main(argv: list[str] | None = None) -> None:
    if argv is None:
        argv = sys.argv[1:]
    argv = _normalize_argv(argv)
    _setup_logging(_count_verbose(argv), debug='--debug' in argv)

    try:
        rc = VBCloneModalCLI.main(argv=argv, _noexit=True)
    except VBCloneError as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.debug('vbclone error ({}): {}', type(ex).__name__, ex)
        sys.exit(ex.exit_code)
    except CmdError as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.error('Command failed: {}', ex)
        sys.exit(1)
    except KeyboardInterrupt:
        print('Interrupted.', file=sys.stderr)
        sys.exit(130)
    except Exception as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.error('Unhandled vbclone error: {}', ex)
        sys.exit(2)

    if any(flag in argv for flag in ('-h', '--help')):
        sys.exit(0)
    if isinstance(rc, int):
        sys.exit(rc)
    sys.exit(0)


def github_ssh_key_main() -> None:
    """Entry point for the guest-side ``github-ssh-key`` command."""
    main(['keygen', *sys.argv[1:]])


def github_ssh_key_manage_main() -> None:
    """Entry point for the host-side ``github-ssh-key-manage`` command."""
    main(['keys', *sys.argv[1:]])


def _setup_logging(args_verbose: int, debug: bool = False) -> None:
    logger.remove()
    level = 'INFO'
    if args_verbose >= 2 or debug:
        level = 'DEBUG'
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format='<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>',
    )
    log.debug(
        'Logging configured at {} (verbose={}, debug={}, colorize={})',
        level,
        args_verbose,
        debug,
        colorize,
    )


def _normalize_argv(argv: list[str]) -> list[str]:
    """Map accepted hyphenated spellings onto scriptconfig field names."""
    out: list[str] = []
    skip_next = False
    for item in argv:
        if skip_next:
            out.append(item)
            skip_next = False
            continue
        if item in _RAW_VALUE_FLAGS:
            skip_next = True
        item = _FLAG_ALIASES.get(item, item)
        m = _LONG_OPT_RE.match(item)
        if m:
            item = '--' + m.group(1).replace('-', '_') + (m.group(2) or '')
        out.append(item)
    return out


def _count_verbose(argv: list[str]) -> int:
    count = 0
    for item in argv:
        if item == '--verbose':
            count += 1
        elif item.startswith('-') and not item.startswith('--'):
            short = item[1:]
            if short and set(short) <= {'v'}:
                count += len(short)
    return count
