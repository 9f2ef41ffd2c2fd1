"""
Orchestrator - Drives one end-to-end indexing run.

Flow for a run:
- Filter 1: DocumentFilter (extension, group folder, exclusion markers)
- Filter 2: VectorStore.needs_reindex (skip unchanged notes)
- Embed: bounded-concurrency calls to the embedding function
- Persist: upsert each vector as its call completes

Only one run per orchestrator (and so per store) is active at a time.
A run requested while another is active is ignored, not queued.
"""

import logging
import time
from typing import Callable, Iterable, Optional

from . import concurrency
from .concurrency import ConcurrencyHandle
from .config import get_config, IndexerConfig
from .embedders import EmbeddingFunction
from .errors import ConfigurationError, EmptyContentError
from .filters import DocumentFilter
from .models import Document, IndexGroup, IndexingStats, IndexStatus, StoredVector
from .source import VaultSource
from .vector_store import VectorStore, quantize


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]
StatusCallback = Callable[[IndexStatus], None]
PersistHook = Callable[[VectorStore], None]


class Orchestrator:
    """
    Composes DocumentFilter, ConcurrencyManager and VectorStore.

    Progress and status are reported through the callbacks given at
    construction; there is no global event bus.
    """

    def __init__(
        self,
        store: VectorStore,
        embed: Optional[EmbeddingFunction],
        document_filter: Optional[DocumentFilter] = None,
        config: Optional[IndexerConfig] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_status: Optional[StatusCallback] = None,
        persist: Optional[PersistHook] = None,
    ):
        self.config = config or get_config()
        self.store = store
        self.embed = embed
        self.document_filter = document_filter or DocumentFilter(self.config)
        self.on_progress = on_progress
        self.on_status = on_status
        self.persist = persist

        self.status = IndexStatus.IDLE
        self.last_indexed_count = 0
        self._handle: Optional[ConcurrencyHandle[Document]] = None

    @property
    def is_indexing(self) -> bool:
        """True while any orchestrator is running over this store."""
        return self.store.indexing

    async def run(
        self,
        documents: Iterable[Document],
        document_filter: Optional[DocumentFilter] = None,
    ) -> Optional[IndexingStats]:
        """
        Index every eligible, changed note from documents.

        Args:
            documents: Document source, enumerated once
            document_filter: Overrides the orchestrator's filter for this run

        Returns:
            Run statistics, or None if another run over the same store was
            already active

        Raises:
            ConfigurationError: No embedding function configured
        """
        if self.embed is None:
            raise ConfigurationError("No embedding function configured")

        if self.is_indexing:
            logger.info("Indexing already in progress; ignoring request")
            return None

        document_filter = document_filter or self.document_filter
        start_time = time.monotonic()
        stats = IndexingStats()
        self.last_indexed_count = 0
        self.store.indexing = True

        try:
            # Phase 1: filter
            self._set_status(IndexStatus.FILTERING)
            candidates = list(documents)
            stats.documents_seen = len(candidates)
            eligible = document_filter.select(candidates)
            stats.documents_eligible = len(eligible)

            # Phase 2: skip notes whose fingerprint and model still match
            pending = [
                d for d in eligible
                if self.store.needs_reindex(d.identity, d.fingerprint)
            ]
            stats.documents_unchanged = len(eligible) - len(pending)
            logger.info(
                f"{len(pending)} notes to embed "
                f"({stats.documents_unchanged} unchanged, "
                f"{stats.documents_seen - stats.documents_eligible} filtered out)"
            )

            # Phase 3: embed and store
            self._set_status(IndexStatus.INDEXING)
            self._handle = concurrency.start(
                pending,
                self._embed_and_store,
                max_concurrency=self.config.max_concurrency,
                notify=self._on_completed,
                timeout=self.config.embed_timeout,
                label=_identity,
            )
            await self._handle.done()

            stats.documents_indexed = len(self._handle.succeeded)
            failed = self._handle.failed
            stats.errors = len(failed)
            stats.failed = [d.identity for d in failed]
        finally:
            if self._handle is not None and not self._handle.drained:
                # Run interrupted before draining; cancel in-flight calls
                self._handle.stop(cancel=True)
            self._handle = None
            try:
                if self.persist is not None:
                    self.persist(self.store)
            finally:
                self.store.indexing = False
                self._set_status(IndexStatus.IDLE)

        stats.duration_seconds = time.monotonic() - start_time
        logger.info(f"Indexing run complete: {stats}")
        return stats

    async def index_group(
        self,
        source: VaultSource,
        group: Optional[IndexGroup],
    ) -> Optional[IndexingStats]:
        """
        Index the notes in a group's folder. A missing group indexes nothing.

        Records for notes that were deleted from the folder are dropped first.
        """
        if group is None:
            logger.warning("No index group selected")
            return await self.run([])
        if self.is_indexing:
            logger.info("Indexing already in progress; ignoring request")
            return None

        documents = source.documents_in_group(group)
        self.store.remove_stale({d.identity for d in documents}, group.source_scope)
        return await self.run(documents, self.document_filter.for_group(group))

    async def index_document(self, document: Document) -> Optional[IndexingStats]:
        """Index a single note (same filtering and guard as a full run)."""
        return await self.run([document])

    def stop(self, cancel: bool = False) -> None:
        """Stop admitting new notes in the active run, e.g. on shutdown."""
        if self._handle is not None:
            self._handle.stop(cancel=cancel)

    async def _embed_and_store(self, document: Document) -> StoredVector:
        if not document.content.strip():
            raise EmptyContentError(document.identity)

        vector = await self.embed(document.content)

        record = StoredVector(
            identity=document.identity,
            vector=quantize(vector, self.store.decimals),
            model_name=self.store.model_name,
            content_fingerprint=document.fingerprint,
        )
        return self.store.upsert(record)

    def _on_completed(self, completed: int) -> None:
        self.last_indexed_count = completed
        if self.on_progress is not None:
            self.on_progress(completed)

    def _set_status(self, status: IndexStatus) -> None:
        self.status = status
        logger.debug(f"Indexing status: {status.value}")
        if self.on_status is None:
            return
        try:
            self.on_status(status)
        except Exception:
            logger.warning("Status callback raised; continuing", exc_info=True)


def _identity(document: Document) -> str:
    return document.identity
