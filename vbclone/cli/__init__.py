"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import (
    VBCloneModalCLI,
    github_ssh_key_main,
    github_ssh_key_manage_main,
    main,
)

__all__ = [
    'VBCloneModalCLI',
    'github_ssh_key_main',
    'github_ssh_key_manage_main',
    'main',
]
