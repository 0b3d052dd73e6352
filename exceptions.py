"""
exceptions.py — Ergodic Unified Error Hierarchy

All Ergodic-specific exceptions live here. Import from here, not from
individual modules:
    from exceptions import VaultNotFoundError

Hierarchy:
    ErgodicError
    ├── VaultError
    │   ├── VaultNotFoundError
    │   └── VaultReadError
    └── WalkError

Step failures are not exceptions: a step action reports failure by
returning False, and the scheduler ends the walk.
ConfigError lives in config/settings.py next to validate_all().
"""

from __future__ import annotations

from pathlib import Path


class ErgodicError(Exception):
    """Base class for all Ergodic exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Vault layer
# ─────────────────────────────────────────────────────────────────────────────

class VaultError(ErgodicError):
    """Base for note-vault errors."""


class VaultNotFoundError(VaultError):
    """The configured vault path does not exist or is not a directory."""

    def __init__(self, path: str | Path, message: str = "") -> None:
        self.path = Path(path)
        super().__init__(message or f"Vault not found or not a directory: '{path}'")


class VaultReadError(VaultError):
    """A note inside the vault could not be read."""

    def __init__(self, path: str | Path, reason: str = "") -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Could not read note '{path}'" + (f": {reason}" if reason else ""))


# ─────────────────────────────────────────────────────────────────────────────
# Walk layer
# ─────────────────────────────────────────────────────────────────────────────

class WalkError(ErgodicError):
    """A walk could not be started from the host (e.g. interval disabled)."""
