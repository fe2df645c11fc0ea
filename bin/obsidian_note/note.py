"""Note model and the digests compared between synchronization runs."""

from __future__ import annotations

from dataclasses import dataclass, field
import hashlib
import json
from typing import Any, Dict, List


CLOZE_TYPE_NAMES = frozenset(("Cloze", "填空题"))
DEFAULT_DECK = "Obsidian"
RESERVED_KEYS = ("mid", "nid", "tags")


@dataclass
class NoteDigest:
    """What Anki is believed to hold for one note."""

    deck: str
    hash: str
    tags: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"deck": self.deck, "hash": self.hash, "tags": list(self.tags)}

    @staticmethod
    def from_dict(data: dict) -> "NoteDigest":
        return NoteDigest(
            deck=str(data.get("deck", "")),
            hash=str(data.get("hash", "")),
            tags=[str(t) for t in data.get("tags") or []],
        )


@dataclass
class NoteTypeDigest:
    """Shape of an Anki note type: its name and ordered field names."""

    name: str
    field_names: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"name": self.name, "fieldNames": list(self.field_names)}

    @staticmethod
    def from_dict(data: dict) -> "NoteTypeDigest":
        return NoteTypeDigest(
            name=str(data.get("name", "")),
            field_names=[str(f) for f in data.get("fieldNames") or []],
        )


@dataclass
class MediaNameMap:
    """Embed text in the vault and the markup that replaced it for Anki."""

    obsidian: str
    anki: str


def fields_hash(fields: Dict[str, str]) -> str:
    """MD5 over the ordered (name, content) pairs."""
    canonical = json.dumps(list(fields.items()), ensure_ascii=False, separators=(",", ":"))
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()


class Note:
    """A vault document parsed into the fields of an Anki note type."""

    def __init__(
        self,
        basename: str,
        folder: str,
        type_name: str,
        front_matter: Dict[str, Any],
        fields: Dict[str, str],
    ) -> None:
        self.basename = basename
        self.folder = folder
        self.type_name = type_name
        self.mid = int(front_matter.get("mid") or 0)
        self.nid = int(front_matter.get("nid") or 0)
        tags = front_matter.get("tags") or []
        if isinstance(tags, str):
            tags = [tags]
        self.tags: List[str] = [str(t) for t in tags]
        self.extras: Dict[str, Any] = {
            k: v for k, v in front_matter.items() if k not in RESERVED_KEYS
        }
        self.fields = fields

    def __repr__(self) -> str:
        return f"Note(basename={self.basename!r}, mid={self.mid}, nid={self.nid})"

    def digest(self) -> NoteDigest:
        return NoteDigest(
            deck=self.render_deck_name(),
            hash=fields_hash(self.fields),
            tags=list(self.tags),
        )

    def title(self) -> str:
        return self.basename

    def render_deck_name(self) -> str:
        return self.folder.replace("/", "::") or DEFAULT_DECK

    def render_tags(self) -> List[str]:
        return [t.replace("/", "::") for t in self.tags]

    def is_cloze(self) -> bool:
        return self.type_name in CLOZE_TYPE_NAMES
