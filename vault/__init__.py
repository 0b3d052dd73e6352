"""
vault/ — Markdown vault access

Public API:
    from vault import NotePicker, Note

    Note         One Markdown file plus its lazily parsed tags
    NotePicker   Eligible-note listing (path/tag exclusions) and random pick
"""

from vault.notes import Note, extract_tags, split_front_matter
from vault.picker import NotePicker, parse_exclusions

__all__ = [
    "Note",
    "NotePicker",
    "extract_tags",
    "split_front_matter",
    "parse_exclusions",
]
