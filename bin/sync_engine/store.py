"""Persisted digest state: schema and YAML IO helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml

from obsidian_note.note import NoteDigest, NoteTypeDigest


STATE_SCHEMA_VERSION = "1"


@dataclass
class PersistedState:
    version: str = STATE_SCHEMA_VERSION
    note_state: Dict[int, NoteDigest] = field(default_factory=dict)
    note_type_state: Dict[int, NoteTypeDigest] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "noteState": {str(k): v.to_dict() for k, v in self.note_state.items()},
            "noteTypeState": {str(k): v.to_dict() for k, v in self.note_type_state.items()},
        }

    @staticmethod
    def from_dict(data: dict) -> "PersistedState":
        return PersistedState(
            version=str(data.get("version", STATE_SCHEMA_VERSION)),
            note_state={
                int(k): NoteDigest.from_dict(v)
                for k, v in (data.get("noteState") or {}).items()
            },
            note_type_state={
                int(k): NoteTypeDigest.from_dict(v)
                for k, v in (data.get("noteTypeState") or {}).items()
            },
        )


def load_state(path: Path) -> PersistedState:
    """Load state written by ``write_state``; a missing file is an empty state."""
    if not path.exists():
        return PersistedState()
    data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return PersistedState()
    if not isinstance(data, dict):
        raise ValueError(f"invalid state file: {path}")
    return PersistedState.from_dict(data)


def write_state(state: PersistedState, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        yaml.safe_dump(state.to_dict(), allow_unicode=True, sort_keys=False),
        encoding="utf-8",
    )
