"""Map embedded vault media to Anki media files and markup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .vault import EmbedCache, Vault

PICTURE_EXTENSIONS = frozenset(("png", "jpg", "jpeg", "gif", "bmp", "svg"))
AUDIO_VIDEO_EXTENSIONS = frozenset((
    "mp3", "wav", "m4a", "ogg", "3gp", "flac",
    "mp4", "ogv", "mov", "mkv", "webm",
))


def _extension(link: str) -> str:
    name = media_filename(link)
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[1].lower()


def media_filename(link: str) -> str:
    """Last path segment of an embed link, used as the Anki media filename."""
    return link.split("/")[-1]


def is_picture(link: str) -> bool:
    return _extension(link) in PICTURE_EXTENSIONS


def is_media(link: str) -> bool:
    ext = _extension(link)
    return ext in PICTURE_EXTENSIONS or ext in AUDIO_VIDEO_EXTENSIONS


def anki_media_markup(link: str) -> str:
    """Markup Anki uses to show the media file behind ``link``."""
    filename = media_filename(link)
    if is_picture(link):
        return f'<img src="{filename}">'
    return f"[sound:{filename}]"


@dataclass
class Media:
    """A vault file to be stored in Anki's media folder."""

    filename: str
    path: str

    @classmethod
    def from_embed(cls, embed: EmbedCache, vault: Vault, source_path: str) -> Optional["Media"]:
        resolved = vault.resolve_link(embed.link, source_path)
        if resolved is None:
            return None
        return cls(filename=media_filename(embed.link), path=str(vault.absolute_path(resolved)))
