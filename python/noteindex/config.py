"""
Indexing Configuration - Centralized settings for the note indexer.

Uses environment variables with sensible defaults. All paths are resolved
to absolute paths for reliability.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Set


@dataclass
class IndexerConfig:
    """
    Configuration for the note indexing system.

    Paths default to the current directory (vault) and a settings file
    under ~/.noteindex. The concurrency limit is sized for remote
    embedding APIs, not for local hardware.
    """

    # --- Paths ---
    vault_root: Path = field(default_factory=lambda: Path.cwd())
    settings_path: Path = field(
        default_factory=lambda: Path.home() / ".noteindex" / "settings.json"
    )

    # --- Concurrency Limits ---
    max_concurrency: int = 5             # In-flight embedding requests
    embed_timeout: Optional[float] = 60.0  # Seconds per call, None disables

    # --- Skip Patterns ---
    skip_dirs: Set[str] = field(default_factory=lambda: {
        # Vault internals
        ".obsidian", ".trash",
        # Version control
        ".git", ".svn", ".hg",
        # Tooling
        "node_modules", "__pycache__", ".venv",
    })

    # --- Supported File Types ---
    note_extensions: Set[str] = field(default_factory=lambda: {".md"})

    # --- Watcher ---
    debounce_ms: int = 2000              # Batch rapid changes within this window

    def __post_init__(self):
        """Ensure all paths are absolute."""
        self.vault_root = Path(self.vault_root).expanduser().resolve()
        self.settings_path = Path(self.settings_path).expanduser().resolve()
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {self.max_concurrency}")

    @classmethod
    def from_env(cls) -> "IndexerConfig":
        """
        Create config from environment variables.

        Supported env vars:
            NOTEINDEX_VAULT: Root directory of the notes
            NOTEINDEX_SETTINGS: Path to the persisted settings file
            NOTEINDEX_MAX_CONCURRENCY: Parallel embedding requests
            NOTEINDEX_EMBED_TIMEOUT: Per-call timeout in seconds (0 disables)
            NOTEINDEX_DEBOUNCE_MS: Watcher debounce window
        """
        config = cls()

        if vault := os.environ.get("NOTEINDEX_VAULT"):
            config.vault_root = Path(vault)

        if settings_path := os.environ.get("NOTEINDEX_SETTINGS"):
            config.settings_path = Path(settings_path)

        if concurrency := os.environ.get("NOTEINDEX_MAX_CONCURRENCY"):
            config.max_concurrency = int(concurrency)

        if timeout := os.environ.get("NOTEINDEX_EMBED_TIMEOUT"):
            config.embed_timeout = float(timeout) or None

        if debounce := os.environ.get("NOTEINDEX_DEBOUNCE_MS"):
            config.debounce_ms = int(debounce)

        config.__post_init__()
        return config


# Singleton default config
_default_config: IndexerConfig | None = None


def get_config() -> IndexerConfig:
    """Get the default configuration (singleton)."""
    global _default_config
    if _default_config is None:
        _default_config = IndexerConfig.from_env()
    return _default_config


def set_config(config: IndexerConfig | None) -> None:
    """Override the default configuration (for testing)."""
    global _default_config
    _default_config = config
