"""
Test Configuration - Shared fixtures for indexing tests.

Uses pytest fixtures to create isolated vaults and instrumented fake
embedding functions.
"""

import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import Generator, Iterable, List

import pytest
import xxhash

from noteindex.config import IndexerConfig, set_config
from noteindex.errors import EmbeddingError
from noteindex.hasher import fingerprint_text
from noteindex.models import Document


class FakeEmbedder:
    """
    Deterministic embedding function that records how it was called.

    Tracks the peak number of simultaneous calls and fails for any text
    containing one of the fail_on markers.
    """

    def __init__(self, dimension: int = 4, delay: float = 0.0, fail_on: Iterable[str] = ()):
        self.dimension = dimension
        self.delay = delay
        self.fail_on = set(fail_on)
        self.calls: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def __call__(self, text: str) -> List[float]:
        self.calls.append(text)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if any(marker in text for marker in self.fail_on):
                raise EmbeddingError("provider unavailable")
            return vector_for(text, self.dimension)
        finally:
            self.in_flight -= 1


def vector_for(text: str, dimension: int = 4) -> List[float]:
    """Unquantized, text-dependent vector with plenty of decimals."""
    digest = xxhash.xxh64(text.encode("utf-8")).intdigest()
    return [(((digest >> (8 * i)) & 0xFF) + 1) / 97.0 for i in range(dimension)]


def make_document(identity: str, content: str) -> Document:
    return Document.from_text(identity, content, fingerprint_text(content))


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    tmp = tempfile.mkdtemp(prefix="noteindex_test_")
    # Resolve to handle macOS /var -> /private/var symlink
    resolved = Path(tmp).resolve()
    yield resolved
    shutil.rmtree(str(resolved), ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> Generator[IndexerConfig, None, None]:
    """Create an isolated test configuration."""
    vault = temp_dir / "vault"
    vault.mkdir()
    config = IndexerConfig(
        vault_root=vault,
        settings_path=temp_dir / "settings.json",
        max_concurrency=3,
        embed_timeout=5.0,
        debounce_ms=50,
    )
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def sample_vault(test_config: IndexerConfig) -> dict[str, Path]:
    """Create a small vault of notes."""
    root = test_config.vault_root
    files = {}

    zettel = root / "Zettelkasten"
    zettel.mkdir()

    files["atomic"] = zettel / "atomic notes.md"
    files["atomic"].write_text("# Atomic notes\n\nOne idea per note keeps links meaningful.")

    files["links"] = zettel / "links.md"
    files["links"].write_text("# Links\n\nConnect notes to build a web of ideas.")

    nested = zettel / "sources"
    nested.mkdir()
    files["nested"] = nested / "luhmann.md"
    files["nested"].write_text("Niklas Luhmann kept a slip box of 90,000 cards.")

    files["inbox"] = root / "inbox.md"
    files["inbox"].write_text("Unprocessed thought outside the zettelkasten folder.")

    # Not a note
    files["image"] = zettel / "diagram.png"
    files["image"].write_bytes(b"\x89PNG\r\n")

    # Vault internals (should be skipped)
    internals = root / ".obsidian"
    internals.mkdir()
    files["internal"] = internals / "workspace.md"
    files["internal"].write_text("editor state")

    # Hidden note (should be skipped)
    files["hidden"] = zettel / ".draft.md"
    files["hidden"].write_text("secret draft")

    return files


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()
