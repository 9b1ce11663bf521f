"""Error types for fleet deploy/destroy.

Pre-flight errors (validation, flag conflicts, missing state) are raised before
any Azure call. FatalProvisionError aborts a provisioning run; resources created
before the failure are left in place and a re-run converges them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class FleetError(Exception):
    """Base class for all fleet deploy/destroy errors."""

    def format(self) -> str:
        return str(self)


class EnvValidationError(FleetError, ValueError):
    def __init__(self, *, context: str, problems: list[str]):
        super().__init__("; ".join(problems))
        self.context = context
        self.problems = problems

    def format(self) -> str:
        lines = [f"[env] validation failed: {self.context}"]
        for p in self.problems:
            lines.append(f"- {p}")
        return "\n".join(lines)


class FatalProvisionError(FleetError):
    """A required resource could not be created or converged."""

    def __init__(self, *, resource: str, message: str):
        super().__init__(f"{resource}: {message}")
        self.resource = resource
        self.message = message

    def format(self) -> str:
        return f"❌ [deploy] failed at {self.resource}: {self.message}"


class ManifestRenderError(FatalProvisionError):
    pass


class ConfigConflictError(FleetError):
    """Mutually incompatible teardown options."""


class StateMissingError(FleetError):
    def __init__(self, *, searched: Sequence[Path], message: str | None = None):
        self.searched = list(searched)
        if message is None:
            joined = " or ".join(str(p) for p in self.searched) or "<none>"
            message = f"No env file found. Expected {joined}"
        super().__init__(message)
