"""
noteindex - Incremental semantic index for a notes vault.

Modules:
    - config: Centralized configuration
    - filters: Eligibility predicate for notes
    - hasher: xxHash note fingerprints
    - source: Vault walker producing Documents
    - concurrency: Bounded-concurrency scheduler for embedding calls
    - vector_store: Quantized vectors and cosine-similarity queries
    - orchestrator: One indexing run (filter → skip unchanged → embed → store)
    - embedders: Remote (httpx) and local (sentence-transformers) backends
    - settings: Persisted settings blob holding the vectors
    - watcher: Re-index on note changes

Flow:
    Notes → DocumentFilter → needs_reindex → ConcurrencyManager → VectorStore

Usage:
    from noteindex import Orchestrator, VectorStore

    store = VectorStore("text-embedding-3-small")
    orchestrator = Orchestrator(store, embed)
    stats = await orchestrator.run(documents)
"""

from .filters import DocumentFilter
from .models import Document, IndexGroup, StoredVector
from .orchestrator import Orchestrator
from .vector_store import VectorStore

__all__ = ["Document", "DocumentFilter", "IndexGroup", "Orchestrator", "StoredVector", "VectorStore"]
