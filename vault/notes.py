"""
vault/notes.py — Markdown note model and tag extraction

A note's tags come from two places, matching the usual Markdown-vault
conventions:

  - YAML front matter:   tags: [idea, project/ergodic]   or   tags: idea, person
  - Inline body tags:    ... see #idea and #project/ergodic ...

Tags are normalised to lower case without the leading '#'. Tags inside
fenced code blocks are ignored, and a tag must contain at least one
non-digit character (#2024 is not a tag).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from exceptions import VaultReadError

_FRONT_MATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_FENCED_CODE_RE = re.compile(r"^(```|~~~).*?^\1", re.DOTALL | re.MULTILINE)
_INLINE_TAG_RE = re.compile(r"(?:^|(?<=\s))#([\w/-]+)")
_FRONT_MATTER_TAG_KEYS = ("tags", "tag")


def split_front_matter(text: str) -> tuple[dict[str, Any], str]:
    """
    Split a note into (front_matter, body).
    Missing or malformed front matter yields an empty dict and the full text.
    """
    match = _FRONT_MATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        return {}, text
    if not isinstance(data, dict):
        return {}, text[match.end():]
    return data, text[match.end():]


def _normalise(tag: str) -> Optional[str]:
    tag = tag.strip().lstrip("#").strip().lower()
    if not tag or tag.replace("/", "").isdigit():
        return None
    return tag


def _front_matter_tags(data: dict[str, Any]) -> set[str]:
    tags: set[str] = set()
    for key in _FRONT_MATTER_TAG_KEYS:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str):
            items = re.split(r"[,\s]+", value)
        elif isinstance(value, (list, tuple)):
            items = [str(v) for v in value if v is not None]
        else:
            items = [str(value)]
        for item in items:
            tag = _normalise(item)
            if tag:
                tags.add(tag)
    return tags


def extract_tags(text: str) -> frozenset[str]:
    data, body = split_front_matter(text)
    tags = _front_matter_tags(data)
    body = _FENCED_CODE_RE.sub("", body)
    for raw in _INLINE_TAG_RE.findall(body):
        tag = _normalise(raw)
        if tag:
            tags.add(tag)
    return frozenset(tags)


@dataclass
class Note:
    """
    One Markdown file in the vault.

    path      Absolute path on disk.
    rel_path  POSIX path relative to the vault root (used for exclusions
              and display).
    """
    path: Path
    rel_path: str
    _tags: Optional[frozenset[str]] = field(default=None, repr=False, compare=False)

    @property
    def title(self) -> str:
        return self.path.stem

    def read_text(self) -> str:
        try:
            return self.path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise VaultReadError(self.path, str(e)) from e

    @property
    def tags(self) -> frozenset[str]:
        """Tags of the note, parsed on first access."""
        if self._tags is None:
            self._tags = extract_tags(self.read_text())
        return self._tags
