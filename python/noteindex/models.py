"""
Data Models - Type definitions for the indexing pipeline.

These dataclasses represent the data flowing through the pipeline stages,
ensuring type safety and clear interfaces between modules.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum


class TaskState(Enum):
    """Lifecycle of one embedding task inside a single run."""
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.SUCCEEDED, TaskState.FAILED)


class IndexStatus(Enum):
    """Status of the orchestrator."""
    IDLE = "idle"
    FILTERING = "filtering"
    INDEXING = "indexing"


@dataclass
class Document:
    """
    One candidate note from a document source.

    The identity is the vault-relative POSIX path and is the key of the
    note's StoredVector.
    """
    identity: str
    content: str
    fingerprint: str
    extension: str = ""
    folder: str = ""

    @classmethod
    def from_text(cls, identity: str, content: str, fingerprint: str) -> "Document":
        """Create a Document, deriving extension and folder from the identity."""
        name = identity.rsplit("/", 1)[-1]
        extension = ""
        if "." in name.lstrip("."):
            extension = "." + name.rsplit(".", 1)[-1].lower()
        folder = identity.rsplit("/", 1)[0] if "/" in identity else ""
        return cls(
            identity=identity,
            content=content,
            fingerprint=fingerprint,
            extension=extension,
            folder=folder,
        )


@dataclass
class StoredVector:
    """
    A persisted embedding for one note.

    Vectors from different models are never compared with each other.
    """
    identity: str              # Vault-relative path, unique in a store
    vector: List[float]        # Quantized components
    model_name: str            # Embedding model that produced the vector
    content_fingerprint: str   # xxh64 of the note text when embedded

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.identity,
            "embedding": list(self.vector),
            "model": self.model_name,
            "fingerprint": self.content_fingerprint,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoredVector":
        return cls(
            identity=data["path"],
            vector=[float(v) for v in data.get("embedding", [])],
            model_name=data.get("model", ""),
            content_fingerprint=str(data.get("fingerprint", "")),
        )


@dataclass
class IndexGroup:
    """
    A named, folder-scoped subset of the vault.

    source_scope of None means no folder is selected and nothing gets
    indexed. An empty string selects the whole vault.
    """
    name: str
    source_scope: Optional[str] = None
    prompt: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "folder": self.source_scope, "prompt": self.prompt}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IndexGroup":
        return cls(
            name=data.get("name", ""),
            source_scope=data.get("folder"),
            prompt=data.get("prompt", ""),
        )


DEFAULT_INDEX_GROUPS: List[IndexGroup] = [
    IndexGroup(
        name="Zettelkasten",
        source_scope=None,
        prompt="You are an assistant helping the user connect ideas across their permanent notes.",
    ),
]


@dataclass
class SimilarityResult:
    """A ranked match from a similarity query."""
    identity: str
    score: float


@dataclass
class IndexingStats:
    """Statistics from an indexing run."""
    documents_seen: int = 0
    documents_eligible: int = 0
    documents_unchanged: int = 0   # Skipped by the fingerprint check
    documents_indexed: int = 0
    errors: int = 0
    duration_seconds: float = 0.0
    failed: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return (
            f"Indexed {self.documents_indexed} notes "
            f"({self.documents_eligible} eligible, "
            f"{self.documents_unchanged} unchanged, "
            f"{self.errors} errors) "
            f"in {self.duration_seconds:.1f}s"
        )
