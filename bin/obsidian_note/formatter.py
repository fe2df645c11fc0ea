"""Convert note fields into the markup Anki displays."""

from __future__ import annotations

import re
from typing import Dict
from urllib.parse import quote

from markdown_it import MarkdownIt

from .note import Note

_WIKILINK_RE = re.compile(r"!?\[\[(.+?)\]\]")
_HIGHLIGHT_RE = re.compile(r"==(.+?)==")
_DISPLAY_MATH_RE = re.compile(r"\$\$(.+?)\$\$", flags=re.DOTALL)
_INLINE_MATH_RE = re.compile(r"\$(.+?)\$")
_TIMESTAMP_RE = re.compile(r"#t=[^|#]*$")

# characters encodeURIComponent leaves alone
_URI_COMPONENT_SAFE = "-_.!~*'()"

# tables, strikethrough and bare-URL links on top of CommonMark; raw HTML passes through
_MARKDOWN_PRESET = "js-default"
_MARKDOWN_OPTIONS = {"html": True, "linkify": True}


def encode_uri_component(text: str) -> str:
    return quote(text, safe=_URI_COMPONENT_SAFE)


class Formatter:
    """Turns raw note fields into Anki field values.

    Pipeline per field: wikilinks become ``obsidian://`` links, highlights
    optionally become cloze deletions, then the Markdown is optionally
    rendered to HTML (first field inline, the rest as blocks).
    """

    def __init__(
        self,
        vault_name: str,
        render: bool = True,
        linkify: bool = True,
        highlight_as_cloze: bool = False,
    ) -> None:
        self.vault_name = vault_name
        self.render = render
        self.linkify = linkify
        self.highlight_as_cloze = highlight_as_cloze
        self.md = MarkdownIt(_MARKDOWN_PRESET, _MARKDOWN_OPTIONS)

    def open_url(self, target: str) -> str:
        return f"obsidian://open?vault={encode_uri_component(self.vault_name)}&file={encode_uri_component(target)}"

    def convert_wikilink(self, markup: str) -> str:
        def _replace(match: re.Match[str]) -> str:
            inner = match.group(1)
            target, sep, alias = inner.partition("|")
            if target.startswith("#"):
                return match.group(0)

            timestamp = ""
            ts_match = _TIMESTAMP_RE.search(target)
            if ts_match:
                timestamp = ts_match.group(0)
                target = target[:ts_match.start()]

            display = alias if sep else target
            return f"[{display}]({self.open_url(target)}{timestamp})"

        return _WIKILINK_RE.sub(_replace, markup)

    @staticmethod
    def convert_highlight_to_cloze(markup: str) -> str:
        index = 0
        while _HIGHLIGHT_RE.search(markup) is not None:
            index += 1
            markup = _HIGHLIGHT_RE.sub(lambda m: f"{{{{c{index}::{m.group(1)}}}}}", markup, count=1)
        return markup

    def markdown(self, markup: str) -> str:
        markup = self.convert_wikilink(markup)
        if self.highlight_as_cloze:
            markup = self.convert_highlight_to_cloze(markup)
        return markup

    @staticmethod
    def convert_math_delimiter(text: str) -> str:
        text = _DISPLAY_MATH_RE.sub(lambda m: f"\\\\[{m.group(1)}\\\\]", text)
        text = _INLINE_MATH_RE.sub(lambda m: f"\\\\({m.group(1)}\\\\)", text)
        return text

    def html(self, text: str, index: int) -> str:
        text = self.convert_math_delimiter(text)
        if index == 0:
            return self.md.renderInline(text)
        return self.md.render(text)

    def format(self, note: Note) -> Dict[str, str]:
        result: Dict[str, str] = {}
        for index, (key, value) in enumerate(note.fields.items()):
            linkify = index == 0 and self.linkify and not note.is_cloze()
            field = f"[[{value}]]" if linkify else value
            text = self.markdown(field)
            result[key] = self.html(text, index) if self.render else text
        return result

