"""Centralized configuration management."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


class ConfigError(Exception):
    """Invalid or incomplete configuration."""


@dataclass
class Config:
    """Centralized configuration management"""
    vault_path: str = "."
    vault_name: Optional[str] = None  # None = directory name of vault_path
    anki_connect_url: Optional[str] = None
    anki_connect_version: int = 6
    request_timeout: float = 30.0
    render: bool = True  # Render fields to HTML before sending them to Anki
    linkify: bool = True  # Turn the title field into a link back to the note
    heading_level: int = 1  # Heading depth that separates fields
    highlight_as_cloze: bool = False  # ==text== -> {{c1::text}}
    scan_directories: List[str] = field(default_factory=list)  # Empty = whole vault
    templates_folder: Optional[str] = None  # None = read from .obsidian/templates.json
    state_file: str = ".anki-sync/state.yaml"

    def __post_init__(self):
        if self.anki_connect_url is None:
            self.anki_connect_url = os.environ.get('ANKI_CONNECT_URL', 'http://127.0.0.1:8765')
        if not 1 <= self.heading_level <= 6:
            raise ConfigError(f"heading_level must be between 1 and 6, got {self.heading_level}")

        self.vault_path = str(Path(self.vault_path).expanduser().resolve())
        if self.vault_name is None:
            self.vault_name = Path(self.vault_path).name

        # Resolve relative paths against the vault root
        if not os.path.isabs(self.state_file):
            self.state_file = str(Path(self.vault_path) / self.state_file)
        self.scan_directories = [d.strip().strip("/") for d in self.scan_directories if d.strip()]
