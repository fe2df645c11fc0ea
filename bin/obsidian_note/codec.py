"""Parse vault documents into notes and dump notes back into documents."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .media import anki_media_markup, is_media
from .note import CLOZE_TYPE_NAMES, Note, NoteTypeDigest, MediaNameMap, RESERVED_KEYS
from .vault import EmbedCache, VaultFile, split_frontmatter


class NoteParseError(Exception):
    """The document is a managed note but cannot be turned into one."""


class NoteTypeNotFoundError(NoteParseError):
    pass


class FieldCountMismatchError(NoteParseError):
    pass


class EmbedOrderError(NoteParseError):
    """An embed reported by the vault was not met at its position in the text."""


class NoteManager:
    """Converts between vault documents and ``Note`` objects.

    Fields are separated by headings of ``heading_level``. Non-cloze note
    types use the document title as their first field; cloze types start
    with the text before the first heading.
    """

    def __init__(self, heading_level: int = 1) -> None:
        self.heading_level = heading_level

    @property
    def heading_marker(self) -> str:
        return "#" * self.heading_level + " "

    def validate_note(
        self,
        file: VaultFile,
        frontmatter: Mapping[str, Any],
        content: str,
        embeds: Optional[List[EmbedCache]],
        note_types: Mapping[int, NoteTypeDigest],
    ) -> Tuple[Optional[Note], List[MediaNameMap]]:
        """Parse ``content`` into a note.

        Returns ``(None, [])`` for documents that are not managed notes.
        Raises ``NoteParseError`` for managed notes that cannot be parsed.
        """
        if any(key not in frontmatter for key in RESERVED_KEYS):
            return None, []
        front_matter = dict(frontmatter)
        front_matter.pop("position", None)

        try:
            mid = int(front_matter["mid"] or 0)
        except (TypeError, ValueError):
            raise NoteParseError(f"{file.basename}: invalid mid {front_matter['mid']!r}")
        try:
            int(front_matter["nid"] or 0)
        except (TypeError, ValueError):
            raise NoteParseError(f"{file.basename}: invalid nid {front_matter['nid']!r}")
        note_type = note_types.get(mid)
        if note_type is None:
            raise NoteTypeNotFoundError(f"{file.basename}: note type {mid} not found")

        _raw, body = split_frontmatter(content)
        fields, media_name_map = self.parse_fields(file.basename, note_type, body, embeds)
        return Note(file.basename, file.folder, note_type.name, front_matter, fields), media_name_map

    def parse_fields(
        self,
        title: str,
        note_type: NoteTypeDigest,
        body: List[str],
        embeds: Optional[List[EmbedCache]],
    ) -> Tuple[Dict[str, str], List[MediaNameMap]]:
        field_names = note_type.field_names
        is_cloze = note_type.name in CLOZE_TYPE_NAMES
        field_contents: List[str] = [] if is_cloze else [title]
        media_name_map: List[MediaNameMap] = []
        embeds = embeds or []
        cursor = 0
        buffer: List[str] = []

        for line in body:
            if line.startswith(self.heading_marker):
                # heading text is not kept, so its embeds are only stepped over
                _heading, cursor = self._replace_embeds(line, embeds, cursor, media_name_map, rewrite=False)
                field_contents.append("\n".join(buffer))
                buffer = []
                continue
            line, cursor = self._replace_embeds(line, embeds, cursor, media_name_map)
            buffer.append(line)
        # a document that ends at its frontmatter has no leading segment
        if body or len(field_contents) < len(field_names):
            field_contents.append("\n".join(buffer))

        if cursor < len(embeds):
            raise EmbedOrderError(
                f"{title}: embed {embeds[cursor].original!r} not found in text order "
                f"({cursor}/{len(embeds)} matched)"
            )
        if len(field_names) != len(field_contents):
            raise FieldCountMismatchError(
                f"{title}: expected {len(field_names)} fields for {note_type.name}, "
                f"found {len(field_contents)}"
            )
        return dict(zip(field_names, field_contents)), media_name_map

    @staticmethod
    def _replace_embeds(
        line: str,
        embeds: List[EmbedCache],
        cursor: int,
        media_name_map: List[MediaNameMap],
        rewrite: bool = True,
    ) -> Tuple[str, int]:
        # embeds and text are walked together; a line may hold several embeds
        pos = 0
        while cursor < len(embeds):
            embed = embeds[cursor]
            idx = line.find(embed.original, pos)
            if idx < 0:
                break
            cursor += 1
            if not rewrite or not is_media(embed.link):
                pos = idx + len(embed.original)
                continue
            markup = anki_media_markup(embed.link)
            line = line[:idx] + markup + line[idx + len(embed.original):]
            pos = idx + len(markup)
            if embed.original not in [m.obsidian for m in media_name_map]:
                media_name_map.append(MediaNameMap(obsidian=embed.original, anki=markup))
        return line, cursor

    def dump(self, note: Note, media_name_map: Optional[List[MediaNameMap]] = None) -> str:
        front_matter = {"mid": note.mid, "nid": note.nid, "tags": note.tags}
        front_matter.update(note.extras)
        dumped = yaml.safe_dump(
            front_matter,
            allow_unicode=True,
            sort_keys=False,
            default_flow_style=False,
        ).strip()

        field_names = list(note.fields.keys())
        lines = ["---", dumped, "---"]
        first = 0 if note.is_cloze() else 1
        if len(field_names) > first:
            lines.append(note.fields[field_names[first]])
        for name in field_names[first + 1:]:
            lines.extend([f"{self.heading_marker}{name}", note.fields[name]])

        if media_name_map:
            for i, line in enumerate(lines):
                for media_name in media_name_map:
                    line = line.replace(media_name.anki, media_name.obsidian)
                lines[i] = line

        return "\n".join(lines)
