"""State 머신 테스트: key 집합 차이에 따른 add/update/delete hook, Anki 반영 로직."""

import pytest

from ankiconnect_client.exceptions import AnkiError
from obsidian_note.codec import NoteManager
from obsidian_note.formatter import Formatter
from obsidian_note.media import Media
from obsidian_note.note import Note, NoteDigest, NoteTypeDigest
from obsidian_note.vault import Vault
from sync_engine.config import ConfigError
from sync_engine.state import NoteState, NoteTypeState, State, SyncReport


class RecordingState(State):
    def __init__(self, fail_on=None):
        super().__init__()
        self.events = []
        self.fail_on = fail_on

    def add(self, key, value, info=None):
        self.events.append(("add", key, value, info))

    def update(self, key, value, info=None):
        if key == self.fail_on:
            raise AnkiError("boom")
        self.events.append(("update", key, value, info))

    def delete(self, key):
        self.events.append(("delete", key))


class TestState:
    def test_apply_dispatches_by_key_membership(self):
        state = RecordingState()
        state.set(1, "a")
        state.set(2, "b")

        state.apply({2: "b2", 3: "c"})

        assert state.events == [
            ("update", 2, "b2", None),
            ("add", 3, "c", None),
            ("delete", 1),
        ]
        assert dict(state) == {2: "b2", 3: "c"}

    def test_tuple_values_carry_info(self):
        state = RecordingState()
        state.set(1, "a")
        state.apply({1: ("a2", "info")})
        assert state.events == [("update", 1, "a2", "info")]
        assert state[1] == "a2"

    def test_update_sees_previous_value(self):
        seen = []

        class Peeking(RecordingState):
            def update(self, key, value, info=None):
                seen.append(self[key])

        state = Peeking()
        state.set(1, "old")
        state.apply({1: "new"})
        assert seen == ["old"]
        assert state[1] == "new"

    def test_empty_target_deletes_everything(self):
        state = RecordingState()
        state.set(1, "a")
        state.set(2, "b")
        state.apply({})
        assert state.events == [("delete", 1), ("delete", 2)]
        assert len(state) == 0

    def test_load_and_dump(self):
        state = RecordingState()
        state.set(9, "stale")
        state.load({1: "a", 2: "b"})
        assert state.dump() == {1: "a", 2: "b"}
        assert state.events == []

        dumped = state.dump()
        dumped[3] = "c"
        assert 3 not in state

    def test_hook_failure_is_reported_and_pass_continues(self):
        state = RecordingState(fail_on=1)
        state.set(1, "a")
        state.set(2, "b")
        state.apply({1: "a2", 2: "b2"})

        assert state.events == [("update", 2, "b2", None)]
        assert state.report.failures == ["1: boom"]
        assert dict(state) == {1: "a2", 2: "b2"}


def test_sync_report_summary():
    report = SyncReport(created=["a"], skipped=[("b", "why")])
    assert report.ok
    report.fail("c")
    assert not report.ok
    assert report.summary() == "created=1 updated=0 deleted=0 skipped=1 failed=1"


# ---------------------------------------------------------------------------
# NoteState
# ---------------------------------------------------------------------------


def _note(folder="Deck", tags=("anki",), back="answer", nid=100):
    return Note(
        "Question",
        folder,
        "Basic",
        {"mid": 1, "nid": nid, "tags": list(tags)},
        {"Front": "Question", "Back": back},
    )


@pytest.fixture
def note_state(fake_anki):
    return NoteState(fake_anki, Formatter("V", render=False))


class TestNoteState:
    def test_unchanged_note_makes_no_calls(self, note_state, fake_anki):
        note = _note()
        note_state.set(100, note.digest())
        note_state.apply({100: (note.digest(), note)})
        assert fake_anki.calls == []

    def test_new_key_is_not_updated(self, note_state, fake_anki):
        note = _note()
        note_state.apply({100: (note.digest(), note)})
        assert fake_anki.calls == []
        assert note_state[100] == note.digest()

    def test_changed_fields(self, note_state, fake_anki):
        note_state.set(100, _note(back="old").digest())
        note = _note(back="new")
        note_state.apply({100: (note.digest(), note)})

        assert fake_anki.calls == [
            ("updateNoteFields", (100, {
                "Front": "[Question](obsidian://open?vault=V&file=Question)",
                "Back": "new",
            })),
        ]
        assert note_state.report.updated == ["Question"]

    def test_changed_deck_moves_cards(self, note_state, fake_anki):
        note_state.set(100, _note(folder="Old").digest())
        note = _note(folder="New/Sub")
        note_state.apply({100: (note.digest(), note)})

        assert fake_anki.calls == [
            ("notesInfo", ([100],)),
            ("changeDeck", ([1000], "New::Sub")),
        ]

    def test_missing_deck_is_created_and_retried_once(self, note_state, fake_anki):
        fake_anki.missing_decks.add("New")
        note_state.set(100, _note(folder="Old").digest())
        note = _note(folder="New")
        note_state.apply({100: (note.digest(), note)})

        assert fake_anki.actions() == ["notesInfo", "changeDeck", "createDeck", "changeDeck"]
        assert note_state.report.ok

    def test_retry_failure_is_reported_without_another_retry(self, note_state, fake_anki):
        fake_anki.missing_decks.add("New")
        fake_anki.create_deck_fixes = False
        note_state.set(100, _note(folder="Old").digest())
        note = _note(folder="New")
        note_state.apply({100: (note.digest(), note)})

        assert fake_anki.actions() == ["notesInfo", "changeDeck", "createDeck", "changeDeck"]
        assert len(note_state.report.failures) == 1

    def test_other_deck_errors_are_not_retried(self, note_state, fake_anki):
        fake_anki.fail_actions.add("changeDeck")
        note_state.set(100, _note(folder="Old").digest())
        note = _note(folder="New")
        note_state.apply({100: (note.digest(), note)})

        assert fake_anki.actions("createDeck") == []
        assert len(note_state.report.failures) == 1

    def test_tag_difference(self, note_state, fake_anki):
        note_state.set(100, _note(tags=["anki", "old/x"]).digest())
        note = _note(tags=["anki", "new/y"])
        note_state.apply({100: (note.digest(), note)})

        assert fake_anki.calls == [
            ("addTags", ([100], ["new::y"])),
            ("removeTags", ([100], ["old::x"])),
        ]

    def test_failed_tag_add_still_removes(self, note_state, fake_anki):
        fake_anki.fail_actions.add("addTags")
        note_state.set(100, _note(tags=["old"]).digest())
        note = _note(tags=["new"])
        note_state.apply({100: (note.digest(), note)})

        assert fake_anki.actions() == ["addTags", "removeTags"]
        assert len(note_state.report.failures) == 1

    def test_vanished_note_is_deleted(self, note_state, fake_anki):
        note_state.set(5, NoteDigest("Obsidian", "h", []))
        note_state.apply({})
        assert fake_anki.calls == [("deleteNotes", ([5],))]
        assert note_state.report.deleted == [5]
        assert 5 not in note_state

    def test_failed_delete_is_reported(self, note_state, fake_anki):
        fake_anki.fail_actions.add("deleteNotes")
        note_state.set(5, NoteDigest("Obsidian", "h", []))
        note_state.apply({})
        assert note_state.report.failures == ["5: deleteNotes failed"]


class TestHandleAdd:
    def test_add_note(self, note_state, fake_anki):
        nid = note_state.handle_add_note(_note(folder="A/B", tags=["x/y"], nid=0))
        assert nid == 1000
        action, (payload,) = fake_anki.calls[0]
        assert action == "addNote"
        assert payload["deckName"] == "A::B"
        assert payload["modelName"] == "Basic"
        assert payload["tags"] == ["x::y"]
        assert payload["fields"]["Back"] == "answer"
        assert note_state.report.created == ["Question"]

    def test_add_note_creates_missing_deck(self, note_state, fake_anki):
        fake_anki.missing_decks.add("A")
        assert note_state.handle_add_note(_note(folder="A", nid=0)) == 1000
        assert fake_anki.actions() == ["addNote", "createDeck", "addNote"]

    def test_add_note_failure_returns_none(self, note_state, fake_anki):
        fake_anki.fail_actions.add("addNote")
        assert note_state.handle_add_note(_note(nid=0)) is None
        assert len(note_state.report.failures) == 1

    def test_add_media(self, note_state, fake_anki):
        note_state.handle_add_media(Media("a.png", "/v/a.png"))
        assert fake_anki.calls == [("storeMediaFile", ("a.png", "/v/a.png"))]


# ---------------------------------------------------------------------------
# NoteTypeState
# ---------------------------------------------------------------------------


@pytest.fixture
def note_type_state(tmp_path):
    state = NoteTypeState(Vault(tmp_path), NoteManager())
    state.set_template_path("Templates")
    return state


class TestNoteTypeState:
    def test_template_path_requires_folder(self, tmp_path):
        state = NoteTypeState(Vault(tmp_path), NoteManager())
        with pytest.raises(ConfigError):
            state.template_path("Basic")

    def test_set_template_path_creates_folder(self, tmp_path, note_type_state):
        assert (tmp_path / "Templates" / "anki").is_dir()
        assert note_type_state.template_path("Basic") == "Templates/anki/anki-Basic.md"

    def test_new_note_type_writes_template(self, tmp_path, note_type_state):
        note_type_state.apply({10: NoteTypeDigest("Basic (extra)", ["Front", "Back", "Extra"])})

        text = (tmp_path / "Templates" / "anki" / "anki-Basic (extra).md").read_text(encoding="utf-8")
        assert text == "---\nmid: 10\nnid: 0\ntags:\n- anki\n---\n\n\n\n# Extra\n\n\n"

    def test_tagged_note_types(self, tmp_path, note_type_state):
        note_type_state.apply({11: NoteTypeDigest("Concept", ["Front", "Back"])})
        text = (tmp_path / "Templates" / "anki" / "anki-Concept.md").read_text(encoding="utf-8")
        assert "tags:\n- concept\n- anki\n" in text

    def test_renamed_note_type_replaces_template(self, tmp_path, note_type_state):
        note_type_state.apply({10: NoteTypeDigest("Basic", ["Front", "Back"])})
        note_type_state.apply({10: NoteTypeDigest("Basic v2", ["Front", "Back"])})

        folder = tmp_path / "Templates" / "anki"
        assert sorted(p.name for p in folder.iterdir()) == ["anki-Basic v2.md"]

    def test_removed_note_type_deletes_template(self, tmp_path, note_type_state):
        note_type_state.apply({10: NoteTypeDigest("Basic", ["Front", "Back"])})
        note_type_state.apply({})

        assert list((tmp_path / "Templates" / "anki").iterdir()) == []
        assert len(note_type_state) == 0
