"""Filesystem-backed Obsidian vault: file listing, frontmatter, embeds and tags."""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import posixpath
import re
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

import yaml

logger = logging.getLogger(__name__)

_WIKI_EMBED = r"!\[\[(?P<wiki>[^\]]+?)\]\]"
_MARKDOWN_EMBED = r"!\[[^\]]*\]\((?P<md>[^)\s]+)(?:\s+\"[^\"]*\")?\)"
_EMBED_RE = re.compile(f"{_WIKI_EMBED}|{_MARKDOWN_EMBED}")
_INLINE_TAG_RE = re.compile(r"(?<![\w#&/])#([^\s#.,;:!?()\[\]{}'\"`]+)")
_EXTERNAL_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


@dataclass
class EmbedCache:
    """One embed as it appears in a document: its link target and full text."""

    link: str
    original: str


@dataclass(frozen=True)
class VaultFile:
    """A file inside the vault, addressed by its vault-relative POSIX path."""

    path: str

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def basename(self) -> str:
        return PurePosixPath(self.path).stem

    @property
    def extension(self) -> str:
        return PurePosixPath(self.path).suffix.lstrip(".").lower()

    @property
    def folder(self) -> str:
        parent = PurePosixPath(self.path).parent.as_posix()
        return "" if parent == "." else parent


def split_frontmatter(content: str) -> tuple[Optional[str], List[str]]:
    """Split ``content`` into raw frontmatter text and body lines.

    Returns ``(None, lines)`` when the document has no closed frontmatter block.
    """
    lines = content.split("\n")
    if not lines or lines[0] != "---":
        return None, lines
    try:
        end = lines.index("---", 1)
    except ValueError:
        return None, lines
    return "\n".join(lines[1:end]), lines[end + 1:]


def parse_frontmatter(content: str) -> Optional[Dict[str, Any]]:
    raw, _body = split_frontmatter(content)
    if raw is None:
        return None
    try:
        loaded = yaml.safe_load(raw) if raw.strip() else {}
    except yaml.YAMLError as e:
        logger.warning(f"Invalid frontmatter: {e}")
        return None
    if not isinstance(loaded, dict):
        return None
    return loaded


def _embed_link(match: re.Match[str]) -> str:
    wiki = match.group("wiki")
    if wiki is not None:
        target = wiki.split("|", 1)[0]
        return target.split("#", 1)[0].strip()
    return unquote(match.group("md")).split("#", 1)[0].strip()


def find_embeds(body: str) -> List[EmbedCache]:
    """Embeds in text order, the way the host's metadata cache reports them."""
    embeds: List[EmbedCache] = []
    for match in _EMBED_RE.finditer(body):
        if match.group("md") is not None and _EXTERNAL_SCHEME_RE.match(match.group("md")):
            continue
        embeds.append(EmbedCache(link=_embed_link(match), original=match.group(0)))
    return embeds


class Vault:
    """Document store over a vault directory."""

    IGNORED_DIRS = frozenset((".obsidian", ".trash", ".git", ".anki-sync"))

    def __init__(self, root: Path, name: Optional[str] = None) -> None:
        self.root = Path(root)
        self.name = name or self.root.name

    def get_name(self) -> str:
        return self.name

    def absolute_path(self, path: str) -> Path:
        return self.root / path

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def get_file(self, path: str) -> Optional[VaultFile]:
        if self.absolute_path(path).is_file():
            return VaultFile(path)
        return None

    def get_markdown_files(self, scan_directories: Optional[List[str]] = None) -> List[VaultFile]:
        """All Markdown files, optionally only those under ``scan_directories``."""
        files: List[VaultFile] = []
        for file_path in sorted(self.root.rglob("*.md")):
            relative = self._relative(file_path)
            if any(part in self.IGNORED_DIRS for part in PurePosixPath(relative).parts):
                continue
            if scan_directories and not any(relative.startswith(d) for d in scan_directories):
                continue
            files.append(VaultFile(relative))
        return files

    def read(self, file: VaultFile) -> str:
        return self.absolute_path(file.path).read_text(encoding="utf-8")

    def read_binary(self, file: VaultFile) -> bytes:
        return self.absolute_path(file.path).read_bytes()

    def get_frontmatter(self, file: VaultFile) -> Optional[Dict[str, Any]]:
        return parse_frontmatter(self.read(file))

    def get_embeds(self, file: VaultFile) -> List[EmbedCache]:
        _raw, body = split_frontmatter(self.read(file))
        return find_embeds("\n".join(body))

    def get_tags(self, file: VaultFile) -> List[str]:
        """Inline ``#tags`` of the body, code fences excluded."""
        _raw, body = split_frontmatter(self.read(file))
        tags: List[str] = []
        in_fence = False
        for line in body:
            if line.lstrip().startswith("```"):
                in_fence = not in_fence
                continue
            if in_fence:
                continue
            tags.extend(f"#{tag}" for tag in _INLINE_TAG_RE.findall(line))
        return tags

    def modify(self, file: VaultFile, text: str) -> None:
        self.absolute_path(file.path).write_text(text, encoding="utf-8")

    def create(self, path: str, text: str) -> VaultFile:
        target = self.absolute_path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
        return VaultFile(path)

    def delete(self, file: VaultFile) -> None:
        self.absolute_path(file.path).unlink(missing_ok=True)

    def exists(self, path: str) -> bool:
        return self.absolute_path(path).exists()

    def create_folder(self, path: str) -> None:
        self.absolute_path(path).mkdir(parents=True, exist_ok=True)

    def resolve_link(self, link: str, source_path: str) -> Optional[str]:
        """Resolve an embed link to a vault path.

        Tries the link relative to the source note's folder, then relative to
        the vault root, then a unique file with the same name anywhere.
        """
        if not link:
            return None
        source_dir = posixpath.dirname(source_path)
        candidates = [
            posixpath.normpath(posixpath.join(source_dir, link)),
            posixpath.normpath(link.lstrip("/")),
        ]
        for candidate in candidates:
            if not candidate.startswith("..") and self.absolute_path(candidate).is_file():
                return candidate

        name = posixpath.basename(link)
        matches = [p for p in self.root.rglob(name) if p.is_file()]
        if len(matches) == 1:
            return self._relative(matches[0])
        if len(matches) > 1:
            logger.warning(f"Ambiguous link {link!r} from {source_path}: {len(matches)} candidates")
        return None

    def get_templates_folder(self) -> Optional[str]:
        """Folder configured in the Templates core plugin, if any."""
        settings_file = self.root / ".obsidian" / "templates.json"
        if not settings_file.exists():
            return None
        try:
            data: Any = json.loads(settings_file.read_text(encoding="utf-8"))
        except ValueError as e:
            logger.warning(f"Could not read {settings_file}: {e}")
            return None
        if not isinstance(data, dict) or not data.get("folder"):
            return None
        return str(data["folder"]).strip("/")
