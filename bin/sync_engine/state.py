"""Digest state 머신: 이전 실행의 digest와 새 digest를 비교하여 Anki/vault에 반영한다.

State는 key → digest 매핑을 보관하고, apply()로 새 target 매핑을 받아
  - 기존 key: update() hook 호출
  - 새 key:   add() hook 호출
  - 사라진 key: delete() hook 호출 후 제거
를 수행한다. hook 실패는 SyncReport와 로그로만 보고되며 pass를 중단하지 않는다.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
import logging
from typing import Callable, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar, Union

from ankiconnect_client.exceptions import AnkiError
from obsidian_note.codec import NoteManager
from obsidian_note.formatter import Formatter
from obsidian_note.media import Media
from obsidian_note.note import Note, NoteDigest, NoteTypeDigest
from obsidian_note.vault import Vault

from .config import ConfigError

K = TypeVar("K")
V = TypeVar("V")
I = TypeVar("I")
R = TypeVar("R")

TEMPLATE_TAG = "anki"
TAGGED_NOTE_TYPES = ("Concept", "Usage", "Think")


@dataclass
class SyncReport:
    """한 번의 pass 결과."""

    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    deleted: List[int] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)  # (item, reason)
    failures: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def fail(self, message: str) -> None:
        self.failures.append(message)

    def summary(self) -> str:
        return (
            f"created={len(self.created)} updated={len(self.updated)} "
            f"deleted={len(self.deleted)} skipped={len(self.skipped)} "
            f"failed={len(self.failures)}"
        )


class State(Mapping, Generic[K, V, I]):
    """Last synchronized digest per key, updated by ``apply``."""

    def __init__(self, logger: Optional[logging.Logger] = None, report: Optional[SyncReport] = None):
        self._items: Dict[K, V] = {}
        self.logger = logger or logging.getLogger(__name__)
        self.report = report or SyncReport()

    def __getitem__(self, key: K) -> V:
        return self._items[key]

    def __iter__(self) -> Iterator[K]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def set(self, key: K, value: V) -> None:
        self._items[key] = value

    def load(self, items: Mapping[K, V]) -> None:
        """Replace the held digests with persisted ones."""
        self._items = dict(items)

    def dump(self) -> Dict[K, V]:
        return dict(self._items)

    def apply(self, target: Mapping[K, Union[V, Tuple[V, I]]]) -> None:
        previous_keys = list(self._items.keys())
        for key, wrap in target.items():
            if isinstance(wrap, tuple):
                value, info = wrap
            else:
                value, info = wrap, None
            hook = self.update if key in self._items else self.add
            self._run_hook(key, lambda: hook(key, value, info))
            self._items[key] = value

        for key in previous_keys:
            if key in target:
                continue
            self._run_hook(key, lambda: self.delete(key))
            self._items.pop(key, None)

    def _run_hook(self, key: K, hook: Callable[[], None]) -> None:
        try:
            hook()
        except (AnkiError, OSError) as e:
            self.logger.error(f"Failed to synchronize key {key}: {e}")
            self.report.fail(f"{key}: {e}")

    def add(self, key: K, value: V, info: Optional[I] = None) -> None:
        """Hook for keys seen for the first time. Does nothing by default."""

    @abstractmethod
    def update(self, key: K, value: V, info: Optional[I] = None) -> None:
        ...

    @abstractmethod
    def delete(self, key: K) -> None:
        ...


class NoteTypeState(State[int, NoteTypeDigest, None]):
    """Keeps one template document per Anki note type.

    Templates are always deleted and written again, never patched.
    """

    def __init__(
        self,
        vault: Vault,
        note_manager: NoteManager,
        logger: Optional[logging.Logger] = None,
        report: Optional[SyncReport] = None,
    ):
        super().__init__(logger, report)
        self.vault = vault
        self.note_manager = note_manager
        self.template_folder_path: Optional[str] = None

    def set_template_path(self, templates_folder: str) -> None:
        self.template_folder_path = f"{templates_folder}/anki" if templates_folder else "anki"
        if not self.vault.exists(self.template_folder_path):
            self.vault.create_folder(self.template_folder_path)
            self.logger.info(f"Created template folder {self.template_folder_path}")

    def template_path(self, name: str) -> str:
        if self.template_folder_path is None:
            raise ConfigError("template folder is not set")
        return f"{self.template_folder_path}/anki-{name}.md"

    def delete(self, key: int) -> None:
        digest = self.get(key)
        if digest is None:
            return
        template = self.vault.get_file(self.template_path(digest.name))
        if template is not None:
            self.vault.delete(template)
            self.logger.info(f"Deleted template {template.path}")

    def update(self, key: int, value: NoteTypeDigest, info: None = None) -> None:
        if key in self:
            self.delete(key)

        tags = [value.name.lower()] if value.name in TAGGED_NOTE_TYPES else []
        tags.append(TEMPLATE_TAG)
        pseudo_front_matter = {"mid": key, "nid": 0, "tags": tags}
        pseudo_fields = {name: "\n\n" for name in value.field_names}
        template_note = Note(
            value.name,
            self.template_folder_path or "",
            value.name,
            pseudo_front_matter,
            pseudo_fields,
        )
        template_path = self.template_path(value.name)
        self.vault.create(template_path, self.note_manager.dump(template_note))
        self.logger.info(f"Created template {template_path}")

    add = update


class NoteState(State[int, NoteDigest, Note]):
    """Pushes note changes to Anki: deck, fields and tags are checked separately."""

    def __init__(
        self,
        anki,
        formatter: Formatter,
        logger: Optional[logging.Logger] = None,
        report: Optional[SyncReport] = None,
    ):
        super().__init__(logger, report)
        self.anki = anki
        self.formatter = formatter

    def update(self, key: int, value: NoteDigest, info: Optional[Note] = None) -> None:
        current = self.get(key)
        if current is None or info is None:
            return
        if current.deck != value.deck:
            self.update_deck(info)
        if current.hash != value.hash:
            self.update_fields(info)
        if current.tags != value.tags:
            self.update_tags(current, info)

    def _retry_on_missing_deck(self, deck: str, operation: Callable[[], R]) -> R:
        """Run ``operation``; if Anki lacks ``deck``, create it and try once more."""
        try:
            return operation()
        except AnkiError as e:
            if not e.is_deck_not_found:
                raise
            self.logger.info(f"{e.message}, try creating {deck}")
        self.anki.create_deck(deck)
        return operation()

    def update_deck(self, note: Note) -> None:
        deck = note.render_deck_name()
        try:
            notes_info = self.anki.notes_info([note.nid])
            cards = notes_info[0].get("cards") if notes_info else None
            if not cards:
                raise AnkiError(f"no cards found for note {note.nid}", action="notesInfo")
            self.logger.info(f"Changing deck for {note.title()} to {deck}")
            self._retry_on_missing_deck(deck, lambda: self.anki.change_deck(cards, deck))
        except AnkiError as e:
            self.logger.error(f"Failed to change deck for {note.title()}: {e}")
            self.report.fail(f"{note.title()}: change deck failed: {e}")
            return
        self.report.updated.append(note.title())

    def update_fields(self, note: Note) -> None:
        try:
            self.anki.update_fields(note.nid, self.formatter.format(note))
        except AnkiError as e:
            self.logger.error(f"Failed to update fields for {note.title()}: {e}")
            self.report.fail(f"{note.title()}: update fields failed: {e}")
            return
        self.logger.info(f"Updated fields for {note.title()}")
        self.report.updated.append(note.title())

    def update_tags(self, current: NoteDigest, note: Note) -> None:
        tags_to_add = [t for t in note.tags if t not in current.tags]
        tags_to_remove = [t for t in current.tags if t not in note.tags]
        if tags_to_add:
            try:
                self.anki.add_tags_to_notes([note.nid], _anki_tags(tags_to_add))
            except AnkiError as e:
                self.logger.error(f"Failed to add tags for {note.title()}: {e}")
                self.report.fail(f"{note.title()}: add tags failed: {e}")
            else:
                self.logger.info(f"Added tags for {note.title()}: {tags_to_add}")
        if tags_to_remove:
            try:
                self.anki.remove_tags_from_notes([note.nid], _anki_tags(tags_to_remove))
            except AnkiError as e:
                self.logger.error(f"Failed to remove tags for {note.title()}: {e}")
                self.report.fail(f"{note.title()}: remove tags failed: {e}")
            else:
                self.logger.info(f"Removed tags for {note.title()}: {tags_to_remove}")

    def delete(self, key: int) -> None:
        self.anki.delete_notes([key])
        self.logger.info(f"Deleted note {key}")
        self.report.deleted.append(key)

    def handle_add_note(self, note: Note) -> Optional[int]:
        """Create ``note`` in Anki and return its id, or None on failure."""
        deck = note.render_deck_name()
        anki_note = {
            "deckName": deck,
            "modelName": note.type_name,
            "fields": self.formatter.format(note),
            "tags": note.render_tags(),
        }
        try:
            nid = self._retry_on_missing_deck(deck, lambda: self.anki.add_note(anki_note))
        except AnkiError as e:
            self.logger.error(f"Failed to add note {note.title()}: {e}")
            self.report.fail(f"{note.title()}: add note failed: {e}")
            return None
        self.logger.info(f"Added note for {note.title()}")
        self.report.created.append(note.title())
        return nid

    def handle_add_media(self, media: Media) -> None:
        self.logger.info(f"Adding media {media.filename}")
        try:
            self.anki.add_media(media.filename, media.path)
        except AnkiError as e:
            self.logger.error(f"Failed to add media {media.filename}: {e}")
            self.report.fail(f"{media.filename}: add media failed: {e}")


def _anki_tags(tags: List[str]) -> List[str]:
    return [t.replace("/", "::") for t in tags]
