"""Options and helpers shared by every vbclone command."""

from __future__ import annotations

import scriptconfig as scfg
from loguru import logger

from ..config import Defaults, load_defaults

log = logger


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    config = scfg.Value(
        None,
        help='Path to a defaults TOML (default: per-user vbclone/config.toml).',
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )


def _load_defaults(config_path: str | None) -> Defaults:
    return load_defaults(config_path)


def _pick(value, fallback):
    """Command-line value when given, else the defaults-file value."""
    return fallback if value is None or value == '' else value


__all__ = [name for name in globals() if not name.startswith('__')]
