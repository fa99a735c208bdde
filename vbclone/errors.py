"""Project-specific exception types."""

from __future__ import annotations


class VBCloneError(RuntimeError):
    """Base error for domain-level vbclone failures."""

    exit_code = 1


class PreconditionError(VBCloneError):
    """Raised before any mutation when a run cannot be started safely."""


class MissingToolError(PreconditionError):
    """Raised when a required executable is not available on PATH."""

    exit_code = 2


class ReadinessTimeout(VBCloneError):
    """Raised when a polling budget is exhausted for a required resource."""


class StageError(VBCloneError):
    """Raised when a pipeline stage observes an unexpected outcome."""


class CredentialAuthError(VBCloneError):
    """Raised when the credential store session is not authenticated."""

    exit_code = 3
