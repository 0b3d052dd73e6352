"""
vault/picker.py — NotePicker

Lists the Markdown notes of a vault that are eligible for a jump and picks
one uniformly at random.

Exclusions
----------
excluded_paths  Comma-separated prefixes matched against the note's path
                relative to the vault root ("templates/, daily/").
excluded_tags   Comma-separated tags without '#' ("archived, person").
                A note carrying any of them is skipped.

Files under hidden directories (.obsidian/, .trash/, .git/) are never
considered. Tags are only read when tag exclusions are configured.

Usage::

    picker = NotePicker.from_settings(settings)
    note = picker.pick()          # Note | None
"""

from __future__ import annotations

import random
from pathlib import Path
from typing import Iterable, Optional

from exceptions import VaultNotFoundError, VaultReadError
from observability.logger import get_logger
from vault.notes import Note

log = get_logger(__name__)


def parse_exclusions(value: str | Iterable[str]) -> list[str]:
    """Accept a comma-separated string or an iterable; drop blanks."""
    items = value.split(",") if isinstance(value, str) else list(value)
    return [item.strip() for item in items if item and item.strip()]


def _normalise_prefix(prefix: str) -> str:
    if prefix.startswith("./"):
        prefix = prefix[2:]
    return prefix.replace("\\", "/")


class NotePicker:

    def __init__(
        self,
        root: str | Path,
        excluded_paths: str | Iterable[str] = "",
        excluded_tags: str | Iterable[str] = "",
        rng: Optional[random.Random] = None,
    ) -> None:
        root = Path(root).expanduser()
        if not root.is_dir():
            raise VaultNotFoundError(root)
        self.root = root
        self.excluded_paths = [_normalise_prefix(p) for p in parse_exclusions(excluded_paths)]
        self.excluded_tags = frozenset(
            t.lstrip("#").lower() for t in parse_exclusions(excluded_tags) if t.lstrip("#")
        )
        self._rng = rng if rng is not None else random.Random()

    @classmethod
    def from_settings(cls, settings, rng: Optional[random.Random] = None) -> "NotePicker":
        return cls(
            root=settings.vault_path,
            excluded_paths=settings.vault.excluded_paths,
            excluded_tags=settings.vault.excluded_tags,
            rng=rng,
        )

    # ── Listing ───────────────────────────────────────────────────────────────

    def markdown_files(self) -> list[Note]:
        notes: list[Note] = []
        for path in sorted(self.root.rglob("*.md")):
            rel = path.relative_to(self.root)
            if any(part.startswith(".") for part in rel.parts[:-1]):
                continue
            if not path.is_file():
                continue
            notes.append(Note(path=path, rel_path=rel.as_posix()))
        return notes

    def is_excluded(self, note: Note) -> bool:
        if any(note.rel_path.startswith(prefix) for prefix in self.excluded_paths):
            return True
        if not self.excluded_tags:
            return False
        try:
            tags = note.tags
        except VaultReadError as e:
            log.warning("picker.note_unreadable", note=note.rel_path, error=str(e))
            return True
        return not tags.isdisjoint(self.excluded_tags)

    def eligible_notes(self) -> list[Note]:
        files = self.markdown_files()
        if not self.excluded_paths and not self.excluded_tags:
            return files
        return [note for note in files if not self.is_excluded(note)]

    # ── Picking ───────────────────────────────────────────────────────────────

    def pick(self) -> Optional[Note]:
        """Return a random eligible note, or None if there is none."""
        eligible = self.eligible_notes()
        if not eligible:
            log.info("picker.no_eligible_notes", root=str(self.root))
            return None
        note = self._rng.choice(eligible)
        log.debug("picker.picked", note=note.rel_path, eligible=len(eligible))
        return note
