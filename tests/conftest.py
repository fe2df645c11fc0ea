"""공용 fixture: AnkiConnect 대신 호출을 기록하는 fake client와 임시 vault."""

import json
from pathlib import Path

import pytest

from ankiconnect_client.exceptions import AnkiError


class FakeAnki:
    """In-memory stand-in for AnkiClient that records every call."""

    def __init__(self):
        self.calls = []
        self.note_types = {}
        self.missing_decks = set()
        self.create_deck_fixes = True
        self.fail_actions = set()
        self.next_nid = 1000

    def _record(self, action, *args):
        self.calls.append((action, args))
        if action in self.fail_actions:
            raise AnkiError(f"{action} failed", action=action)

    def actions(self, name=None):
        return [a for a, _ in self.calls if name is None or a == name]

    def note_types_and_ids(self):
        self._record("modelNamesAndIds")
        return {name: mid for name, (mid, _fields) in self.note_types.items()}

    def multi(self, action, params_list):
        self._record("multi", action, params_list)
        assert action == "modelFieldNames"
        return [list(self.note_types[p["modelName"]][1]) for p in params_list]

    def _check_deck(self, action, deck):
        if deck in self.missing_decks:
            raise AnkiError(f"deck was not found: {deck}", action=action)

    def add_note(self, note):
        self._record("addNote", note)
        self._check_deck("addNote", note["deckName"])
        nid = self.next_nid
        self.next_nid += 1
        return nid

    def notes_info(self, note_ids):
        self._record("notesInfo", note_ids)
        return [{"noteId": nid, "cards": [nid * 10]} for nid in note_ids]

    def change_deck(self, cards, deck):
        self._record("changeDeck", cards, deck)
        self._check_deck("changeDeck", deck)

    def create_deck(self, deck):
        self._record("createDeck", deck)
        if self.create_deck_fixes:
            self.missing_decks.discard(deck)
        return 1

    def update_fields(self, note_id, fields):
        self._record("updateNoteFields", note_id, fields)

    def add_tags_to_notes(self, note_ids, tags):
        self._record("addTags", note_ids, tags)

    def remove_tags_from_notes(self, note_ids, tags):
        self._record("removeTags", note_ids, tags)

    def delete_notes(self, note_ids):
        self._record("deleteNotes", note_ids)

    def add_media(self, filename, path):
        self._record("storeMediaFile", filename, path)
        return filename


@pytest.fixture
def fake_anki():
    return FakeAnki()


@pytest.fixture
def vault_dir(tmp_path: Path) -> Path:
    """Templates core plugin이 'Templates' 폴더로 설정된 빈 vault."""
    root = tmp_path / "vault"
    (root / ".obsidian").mkdir(parents=True)
    (root / ".obsidian" / "templates.json").write_text(
        json.dumps({"folder": "Templates"}), encoding="utf-8"
    )
    return root
