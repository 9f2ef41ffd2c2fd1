"""
Vault Source - Enumerates notes from a directory tree.

Produces Document objects (identity, content, fingerprint) for the
orchestrator. Directories matching skip patterns are never entered.
"""

import logging
import os
from pathlib import Path
from typing import Iterator, List, Optional

from .config import get_config, IndexerConfig
from .errors import handle_error
from .filters import DocumentFilter, normalize_scope
from .hasher import fingerprint_text
from .models import Document, IndexGroup


logger = logging.getLogger(__name__)


class VaultSource:
    """
    Document source backed by a notes directory.

    Identities are vault-relative POSIX paths, so the same note keeps the
    same identity on every platform.
    """

    def __init__(
        self,
        root: Path | None = None,
        document_filter: DocumentFilter | None = None,
        config: IndexerConfig | None = None,
    ):
        self.config = config or get_config()
        self.root = Path(root or self.config.vault_root).expanduser().resolve()
        self._filter = document_filter or DocumentFilter(self.config)

    def identity_for(self, path: Path) -> str:
        """Vault-relative POSIX identity for an absolute path."""
        return Path(path).resolve().relative_to(self.root).as_posix()

    def iter_documents(self, scope: Optional[str] = "") -> Iterator[Document]:
        """
        Walk the vault (or one folder of it) and yield notes.

        Args:
            scope: Vault-relative folder; "" walks the whole vault and
                   None yields nothing.
        """
        normalized = normalize_scope(scope)
        if normalized is None:
            return

        start = self.root / normalized if normalized else self.root
        if not start.is_dir():
            logger.warning(f"Folder not found in vault: {start}")
            return

        for dirpath, dirnames, filenames in os.walk(start):
            # Prune in place so os.walk never descends into skipped dirs
            dirnames[:] = sorted(d for d in dirnames if not self._filter.should_skip_dir(d))

            for filename in sorted(filenames):
                if filename.startswith("."):
                    continue
                path = Path(dirpath) / filename
                if path.suffix.lower() not in self.config.note_extensions:
                    continue
                document = self._load(path)
                if document is not None:
                    yield document

    def documents_in_group(self, group: IndexGroup) -> List[Document]:
        """All notes inside a group's folder (empty when no folder is selected)."""
        documents = list(self.iter_documents(group.source_scope))
        logger.info(f"Found {len(documents)} notes in group '{group.name}'")
        return documents

    def document(self, identity: str) -> Optional[Document]:
        """Load a single note by identity. Returns None if it cannot be read."""
        return self._load(self.root / identity)

    def _load(self, path: Path) -> Optional[Document]:
        try:
            identity = self.identity_for(path)
        except ValueError:
            logger.warning(f"Path outside vault: {path}")
            return None

        try:
            # Decode bytes directly so line endings match the file fingerprint
            content = path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            handle_error(e, identity, "read_note")
            return None

        return Document.from_text(identity, content, fingerprint_text(content))
