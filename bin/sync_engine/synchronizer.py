"""Import note types and synchronize vault notes with Anki."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ankiconnect_client.api_client import AnkiClient
from obsidian_note.codec import NoteManager, NoteParseError
from obsidian_note.formatter import Formatter
from obsidian_note.media import Media
from obsidian_note.note import Note, NoteDigest, NoteTypeDigest
from obsidian_note.vault import EmbedCache, Vault, VaultFile

from .config import Config, ConfigError
from .state import NoteState, NoteTypeState, SyncReport
from .store import PersistedState, load_state, write_state

ANKI_TAG = "anki"


class AnkiSynchronizer:
    """Runs the two passes: note types -> templates, and notes -> Anki."""

    def __init__(
        self,
        config: Config,
        anki=None,
        vault: Optional[Vault] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.vault = vault or Vault(Path(config.vault_path), config.vault_name)
        self.anki = anki or AnkiClient(config, self.logger)
        self.note_manager = NoteManager(config.heading_level)
        self.formatter = Formatter(
            self.vault.get_name(),
            render=config.render,
            linkify=config.linkify,
            highlight_as_cloze=config.highlight_as_cloze,
        )
        self.note_state = NoteState(self.anki, self.formatter, self.logger)
        self.note_type_state = NoteTypeState(self.vault, self.note_manager, self.logger)
        self.state_path = Path(config.state_file)

    # ------------------------------------------------------------------
    # persisted state
    # ------------------------------------------------------------------

    def load(self) -> None:
        persisted = load_state(self.state_path)
        self.note_state.load(persisted.note_state)
        self.note_type_state.load(persisted.note_type_state)
        self.logger.debug(
            f"Loaded {len(persisted.note_state)} note digests and "
            f"{len(persisted.note_type_state)} note type digests from {self.state_path}"
        )

    def save(self) -> None:
        persisted = PersistedState(
            note_state=self.note_state.dump(),
            note_type_state=self.note_type_state.dump(),
        )
        write_state(persisted, self.state_path)

    # ------------------------------------------------------------------
    # passes
    # ------------------------------------------------------------------

    def get_template_path(self) -> str:
        """Templates folder from the config, else from the Templates core plugin."""
        folder = self.config.templates_folder
        if folder is None:
            folder = self.vault.get_templates_folder()
        if folder is None:
            raise ConfigError(
                "Templates folder is not configured: enable the Templates core plugin "
                "or pass --templates-folder"
            )
        return folder.strip("/")

    def import_note_types(self) -> SyncReport:
        report = SyncReport()
        self.note_type_state.report = report
        self.note_type_state.set_template_path(self.get_template_path())

        note_types_and_ids = self.anki.note_types_and_ids()
        names = list(note_types_and_ids.keys())
        field_names = self.anki.multi("modelFieldNames", [{"modelName": name} for name in names])
        state: Dict[int, NoteTypeDigest] = {
            int(note_types_and_ids[name]): NoteTypeDigest(name=name, field_names=list(fields))
            for name, fields in zip(names, field_names)
        }
        self.logger.info(f"Retrieved {len(state)} note types from Anki")

        self.note_type_state.apply(state)
        self.save()
        self.logger.info(f"Imported note types: {report.summary()}")
        return report

    def synchronize(self) -> SyncReport:
        templates_path = self.get_template_path()
        report = SyncReport()
        self.note_state.report = report

        target: Dict[int, Tuple[NoteDigest, Note]] = {}
        for file in self.vault.get_markdown_files(self.config.scan_directories):
            if templates_path and file.path.startswith(templates_path + "/"):
                continue
            frontmatter = self.vault.get_frontmatter(file)
            if frontmatter is None or not self.is_anki_note(file, frontmatter):
                continue

            content = self.vault.read(file)
            embeds = self.vault.get_embeds(file)
            try:
                note, media_name_map = self.note_manager.validate_note(
                    file, frontmatter, content, embeds, self.note_type_state
                )
            except NoteParseError as e:
                self.logger.warning(f"Skipping {file.path}: {e}")
                report.skipped.append((file.path, str(e)))
                continue
            if note is None:
                continue

            if note.nid == 0:
                nid = self.note_state.handle_add_note(note)
                if nid is None:
                    continue
                note.nid = nid
                self.vault.modify(file, self.note_manager.dump(note, media_name_map))

            if note.nid in target:
                self.logger.warning(f"Skipping {file.path}: note id {note.nid} is used by another file")
                report.skipped.append((file.path, f"duplicate note id {note.nid}"))
                continue

            digest = note.digest()
            target[note.nid] = (digest, note)
            held = self.note_state.get(note.nid)
            if held is None or held.hash != digest.hash:
                self.logger.info(f"Updating media for note {note.basename}")
                self.upload_media(file, embeds)

        self.note_state.apply(target)
        self.save()
        self.logger.info(f"Synchronized: {report.summary()}")
        return report

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def is_anki_note(self, file: VaultFile, frontmatter: Mapping[str, Any]) -> bool:
        """Notes opt in with an ``anki`` frontmatter tag or an inline ``#anki``."""
        tags = frontmatter.get("tags")
        if isinstance(tags, list) and ANKI_TAG in tags:
            return True
        if isinstance(tags, str) and tags == ANKI_TAG:
            return True
        return f"#{ANKI_TAG}" in self.vault.get_tags(file)

    def upload_media(self, file: VaultFile, embeds: List[EmbedCache]) -> None:
        for embed in embeds:
            if "." not in embed.link or ".canvas" in embed.link:
                continue
            media = Media.from_embed(embed, self.vault, file.path)
            if media is None:
                self.logger.warning(f"Media {embed.link} referenced by {file.path} not found")
                self.note_state.report.skipped.append((embed.link, "media file not found"))
                continue
            self.note_state.handle_add_media(media)
