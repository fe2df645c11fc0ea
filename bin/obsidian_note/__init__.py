"""Obsidian vault notes <-> Anki note fields."""

from .codec import (
    EmbedOrderError,
    FieldCountMismatchError,
    NoteManager,
    NoteParseError,
    NoteTypeNotFoundError,
)
from .formatter import Formatter
from .media import Media, anki_media_markup, is_media, is_picture
from .note import MediaNameMap, Note, NoteDigest, NoteTypeDigest, fields_hash
from .vault import EmbedCache, Vault, VaultFile

__all__ = [
    "EmbedCache",
    "EmbedOrderError",
    "FieldCountMismatchError",
    "Formatter",
    "Media",
    "MediaNameMap",
    "Note",
    "NoteDigest",
    "NoteManager",
    "NoteParseError",
    "NoteTypeDigest",
    "NoteTypeNotFoundError",
    "Vault",
    "VaultFile",
    "anki_media_markup",
    "fields_hash",
    "is_media",
    "is_picture",
]
