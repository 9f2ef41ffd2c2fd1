"""
Document Filter - Decides which notes are eligible for (re-)indexing.

The filter is a pure predicate: it only looks at the Document it is given
and its own configuration, so it can be evaluated once per note per run
in any order.
"""

import logging
import re
from pathlib import PurePosixPath
from typing import Iterable, List, Optional, Set

from .config import get_config, IndexerConfig
from .models import Document, IndexGroup


logger = logging.getLogger(__name__)

# Frontmatter line that opts a note out of indexing, e.g. "embeddings: false"
_OPT_OUT_MARKER = re.compile(r"^embeddings:\s*(false|no|off)\s*$", re.IGNORECASE | re.MULTILINE)


def normalize_scope(scope: Optional[str]) -> Optional[str]:
    """
    Normalize a group folder to a vault-relative POSIX prefix.

    None stays None (nothing selected); "", "/" and "." select the whole vault.
    """
    if scope is None:
        return None
    cleaned = scope.replace("\\", "/").strip().strip("/")
    if cleaned in ("", "."):
        return ""
    return cleaned


def in_scope(identity: str, scope: Optional[str]) -> bool:
    """True if the note identity lies under the (normalized) scope folder."""
    normalized = normalize_scope(scope)
    if normalized is None:
        return False
    if normalized == "":
        return True
    return identity == normalized or identity.startswith(normalized + "/")


class DocumentFilter:
    """
    Eligibility predicate for notes.

    Criteria:
    - extension is one of the configured note extensions
    - note lies inside the active group's folder (when a group is given)
    - no hidden path component and no skip directory on the path
    - content does not carry the opt-out frontmatter marker
    """

    def __init__(
        self,
        config: IndexerConfig | None = None,
        group: Optional[IndexGroup] = None,
    ):
        self.config = config or get_config()
        self.group = group
        self._extensions: Set[str] = {e.lower() for e in self.config.note_extensions}
        self._skip_dirs: Set[str] = set(self.config.skip_dirs)

    def for_group(self, group: Optional[IndexGroup]) -> "DocumentFilter":
        """Return a filter with the same criteria scoped to another group."""
        return DocumentFilter(self.config, group)

    def __call__(self, document: Document) -> bool:
        return self.is_eligible(document)

    def is_eligible(self, document: Document) -> bool:
        """Return True if the document should be indexed."""
        if self.should_skip_path(document.identity):
            return False

        if document.extension.lower() not in self._extensions:
            return False

        if self.group is not None and not in_scope(document.identity, self.group.source_scope):
            return False

        if _OPT_OUT_MARKER.search(_frontmatter(document.content)):
            return False

        return True

    def select(self, documents: Iterable[Document]) -> List[Document]:
        """Apply the predicate once per document, preserving order."""
        return [d for d in documents if self.is_eligible(d)]

    def should_skip_dir(self, name: str) -> bool:
        """Check if a directory should be skipped while walking the vault."""
        return name.startswith(".") or name in self._skip_dirs

    def should_skip_path(self, identity: str) -> bool:
        """Check every component of a vault-relative path."""
        parts = PurePosixPath(identity).parts
        if not parts:
            return True
        for part in parts[:-1]:
            if self.should_skip_dir(part):
                return True
        return parts[-1].startswith(".")


def _frontmatter(content: str) -> str:
    """Return the YAML frontmatter block of a note, or "" if it has none."""
    if not content.startswith("---"):
        return ""
    end = content.find("\n---", 3)
    if end == -1:
        return ""
    return content[3:end]
