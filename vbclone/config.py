"""Run configuration for the clone pipeline and the optional TOML defaults file."""

from __future__ import annotations

import tomllib
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import ubelt as ub
from loguru import logger

from .errors import PreconditionError
from .util import expand

log = logger

DEFAULT_SNAPSHOT = 'base-clean'
DEFAULT_SSH_USER = 'admin'
DEFAULT_KEY_EMAIL = 'vbclone@github'
DEFAULT_SSH_TIMEOUT = 900.0
MIN_NIC = 1
MAX_NIC = 8

# Checkpoint names in execution order; every one is a valid --stop-after value.
STAGE_NAMES = (
    'validate',
    'snapshot',
    'clone',
    'mac',
    'network',
    'start',
    'ip',
    'ssh',
    'reboot',
    'wait',
    'smoke-test',
    'push-github-tools',
    'install-github-tools',
    'github-ssh-key',
    'summary',
)


class NetworkMode(str, Enum):
    NAT = 'nat'
    BRIDGED = 'bridged'
    HOSTONLY = 'hostonly'
    NATNETWORK = 'natnetwork'

    @classmethod
    def parse(cls, value: str | 'NetworkMode') -> 'NetworkMode':
        if isinstance(value, cls):
            return value
        text = str(value or '').strip().lower()
        try:
            return cls(text)
        except ValueError:
            allowed = ' | '.join(m.value for m in cls)
            raise PreconditionError(
                f'--network must be one of: {allowed} (got {value!r})'
            ) from None


@dataclass(frozen=True)
class RunConfig:
    """Immutable settings for one provisioning run."""

    base: str
    name: str
    config_nic: int
    network: NetworkMode
    hostname: str = ''
    snapshot: str = DEFAULT_SNAPSHOT
    ssh_nic: Optional[int] = None
    user: str = DEFAULT_SSH_USER
    password: str = ''
    use_sshpass: bool = False
    headless: bool = True
    dry_run: bool = False
    debug: bool = False
    stop_after: str = ''
    github_key: bool = True
    github_key_upload: bool = False
    ssh_timeout: Optional[float] = DEFAULT_SSH_TIMEOUT

    @property
    def effective_hostname(self) -> str:
        return self.hostname or self.name

    @property
    def key_auth(self) -> bool:
        return not self.use_sshpass

    def problems(self) -> list[str]:
        errs: list[str] = []
        if not self.base or not self.name:
            errs.append('Missing required arguments: --base and --name')
        elif self.base == self.name:
            errs.append('--base and --name must name different VMs')
        if not _nic_ok(self.config_nic):
            errs.append(f'--config-nic must be {MIN_NIC}-{MAX_NIC}')
        if self.ssh_nic is not None and not _nic_ok(self.ssh_nic):
            errs.append(f'--ssh-nic must be {MIN_NIC}-{MAX_NIC}')
        if not isinstance(self.network, NetworkMode):
            errs.append(f'--network has unsupported value {self.network!r}')
        if not self.snapshot:
            errs.append('--snapshot must not be empty')
        if not self.user:
            errs.append('--user must not be empty')
        if self.use_sshpass and not self.password:
            errs.append('--use-sshpass requires --pass')
        if self.stop_after and self.stop_after not in STAGE_NAMES:
            errs.append(
                f'--stop-after must be one of: {", ".join(STAGE_NAMES)}'
            )
        if self.ssh_timeout is not None and self.ssh_timeout < 0:
            errs.append('--ssh-timeout must be >= 0')
        return errs

    def check(self) -> 'RunConfig':
        errs = self.problems()
        if errs:
            raise PreconditionError('; '.join(errs))
        return self

    def as_vars(self) -> dict[str, Any]:
        """Resolved variables for display, with the password masked."""
        data = asdict(self)
        data['network'] = self.network.value
        data['hostname'] = self.effective_hostname
        data['ssh_nic'] = self.ssh_nic if self.ssh_nic is not None else 'auto'
        data['password'] = '********' if self.password else ''
        return data


def _nic_ok(value: Any) -> bool:
    return isinstance(value, int) and MIN_NIC <= value <= MAX_NIC


def parse_nic(value: Any, *, flag: str) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        raise PreconditionError(
            f'{flag} must be {MIN_NIC}-{MAX_NIC} (got {value!r})'
        ) from None


@dataclass
class CloneDefaults:
    snapshot: str = DEFAULT_SNAPSHOT
    user: str = DEFAULT_SSH_USER
    password: str = ''
    network: str = ''
    headless: bool = True
    github_key: bool = True
    github_key_upload: bool = False
    ssh_timeout: float = DEFAULT_SSH_TIMEOUT


@dataclass
class KeyDefaults:
    email: str = DEFAULT_KEY_EMAIL


@dataclass
class Defaults:
    clone: CloneDefaults = field(default_factory=CloneDefaults)
    keys: KeyDefaults = field(default_factory=KeyDefaults)


def defaults_path() -> Path:
    return Path(ub.Path.appdir('vbclone', type='config')) / 'config.toml'


def _coerce(section: str, key: str, value: Any, default: Any, path: Path) -> Any:
    """Check a TOML value against the type of the built-in default."""
    where = f'[{section}] {key} in {path}'
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise PreconditionError(f'{where} must be true or false (got {value!r})')
        return value
    if isinstance(default, (int, float)):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise PreconditionError(f'{where} must be a number (got {value!r})')
        return float(value)
    if not isinstance(value, str):
        raise PreconditionError(f'{where} must be a string (got {value!r})')
    return value


def load_defaults(path: str | Path | None = None) -> Defaults:
    """Load user defaults; a missing default file yields built-in values."""
    explicit = path is not None
    p = Path(expand(str(path))) if explicit else defaults_path()
    cfg = Defaults()
    if not p.exists():
        if explicit:
            raise PreconditionError(f'Config not found: {p}')
        return cfg
    log.debug('Loading defaults from {}', p)
    try:
        raw = tomllib.loads(p.read_text(encoding='utf-8'))
    except tomllib.TOMLDecodeError as ex:
        raise PreconditionError(f'Invalid TOML in {p}: {ex}') from ex
    for section in ('clone', 'keys'):
        sec = raw.get(section)
        if not isinstance(sec, dict):
            continue
        obj = getattr(cfg, section)
        known = {f.name for f in fields(obj)}
        for k, v in sec.items():
            if k in known:
                setattr(obj, k, _coerce(section, k, v, getattr(obj, k), p))
            else:
                log.warning('Ignoring unknown key [{}] {} in {}', section, k, p)
    return cfg

