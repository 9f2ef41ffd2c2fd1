"""
Vector Store - Persisted note embeddings with cosine-similarity search.

Records are kept in insertion order. Re-indexing a note replaces its
record in place, so ranking ties stay deterministic across queries on
unchanged data.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

import numpy as np

from .errors import DimensionMismatchError, EmptyIndexError
from .filters import in_scope, normalize_scope
from .models import SimilarityResult, StoredVector


logger = logging.getLogger(__name__)

DEFAULT_DECIMALS = 3


def quantize(vector: Iterable[float], decimals: int = DEFAULT_DECIMALS) -> List[float]:
    """
    Round each component to a fixed number of decimal places.

    Rounds half away from zero on the shortest decimal representation of
    each float, so the same input always produces bit-identical output.
    """
    exponent = Decimal(1).scaleb(-decimals)
    result = []
    for value in vector:
        rounded = Decimal(repr(float(value))).quantize(exponent, rounding=ROUND_HALF_UP)
        # Normalize -0.0 so equal vectors serialize identically
        result.append(float(rounded) + 0.0)
    return result


def cosine_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """
    Cosine similarity of a query vector against each row of a matrix.

    A zero-magnitude vector on either side scores 0 instead of dividing by zero.
    """
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float64)

    dots = matrix @ query
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    scores = np.zeros(len(matrix), dtype=np.float64)
    nonzero = norms > 0
    scores[nonzero] = dots[nonzero] / norms[nonzero]
    return scores


class VectorStore:
    """
    Collection of StoredVector records, one per note identity.

    The store is the single writer of its records. Queries work on a
    snapshot of the record list, so a query interleaved with upserts sees
    either the old or the new record, never a partial one.
    """

    def __init__(
        self,
        model_name: str,
        decimals: int = DEFAULT_DECIMALS,
        records: Optional[Iterable[StoredVector]] = None,
    ):
        self.model_name = model_name
        self.decimals = decimals
        # Set by the orchestrator while a run writes to this store
        self.indexing = False
        self._records: List[StoredVector] = []
        self._positions: Dict[str, int] = {}

        for record in records or []:
            self.upsert(record)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def from_list(
        cls,
        data: Optional[Sequence[Dict[str, Any]]],
        model_name: str,
        decimals: int = DEFAULT_DECIMALS,
    ) -> "VectorStore":
        """Build a store from persisted record dicts. None or [] gives an empty store."""
        records = [StoredVector.from_dict(item) for item in data or []]
        store = cls(model_name, decimals, records)
        logger.debug(f"Loaded {len(store)} vectors")
        return store

    def to_list(self) -> List[Dict[str, Any]]:
        """Serialize records in insertion order."""
        return [record.to_dict() for record in self._records]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def upsert(self, record: StoredVector) -> StoredVector:
        """
        Insert a record, or replace the one with the same identity.

        The vector is quantized before it is stored.

        Raises:
            DimensionMismatchError: The vector length differs from the other
                vectors stored under the same model.
            ValueError: The vector is empty.
        """
        if not record.vector:
            raise ValueError(f"Refusing to store an empty vector for {record.identity}")

        expected = self.dimension(record.model_name, exclude=record.identity)
        if expected is not None and expected != len(record.vector):
            raise DimensionMismatchError(record.model_name, expected, len(record.vector))

        stored = StoredVector(
            identity=record.identity,
            vector=quantize(record.vector, self.decimals),
            model_name=record.model_name,
            content_fingerprint=record.content_fingerprint,
        )

        position = self._positions.get(stored.identity)
        if position is None:
            self._positions[stored.identity] = len(self._records)
            self._records.append(stored)
        else:
            self._records[position] = stored
        return stored

    def remove(self, identity: str) -> bool:
        """Delete the record for identity. Returns False if there was none."""
        position = self._positions.pop(identity, None)
        if position is None:
            return False
        del self._records[position]
        self._reindex_positions(position)
        return True

    def remove_stale(self, valid_identities: Set[str], scope: Optional[str] = "") -> int:
        """
        Remove records for notes that no longer exist.

        Args:
            valid_identities: Notes currently present
            scope: Only records inside this vault folder are considered;
                   "" covers the whole vault and None removes nothing.

        Returns:
            Number of records removed
        """
        scope = normalize_scope(scope)
        if scope is None:
            return 0

        stale = [
            r.identity for r in self._records
            if in_scope(r.identity, scope) and r.identity not in valid_identities
        ]
        if not stale:
            return 0

        stale_set = set(stale)
        self._records = [r for r in self._records if r.identity not in stale_set]
        self._positions = {}
        self._reindex_positions(0)

        logger.info(f"Removed {len(stale)} stale vectors")
        return len(stale)

    def clear(self) -> None:
        """Remove every record."""
        self._records = []
        self._positions = {}

    def switch_model(self, model_name: str) -> bool:
        """
        Make model_name the active embedding model.

        Vectors from different models are not comparable, so a real change
        clears the store. Returns True if records were dropped.
        """
        if model_name == self.model_name:
            return False

        previous = self.model_name
        self.model_name = model_name
        if not self._records:
            return False

        count = len(self._records)
        self.clear()
        logger.info(f"Embedding model changed from {previous} to {model_name}; cleared {count} vectors")
        return True

    def _reindex_positions(self, start: int) -> None:
        for position in range(start, len(self._records)):
            self._positions[self._records[position].identity] = position

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identity: object) -> bool:
        return identity in self._positions

    def get(self, identity: str) -> Optional[StoredVector]:
        position = self._positions.get(identity)
        return self._records[position] if position is not None else None

    def identities(self) -> List[str]:
        return [r.identity for r in self._records]

    def records(self) -> List[StoredVector]:
        """Snapshot of all records in insertion order."""
        return list(self._records)

    def dimension(self, model_name: str, exclude: Optional[str] = None) -> Optional[int]:
        """Vector length used by model_name, or None if it has no vectors."""
        for record in self._records:
            if record.model_name == model_name and record.identity != exclude:
                return len(record.vector)
        return None

    def needs_reindex(self, identity: str, content_fingerprint: str) -> bool:
        """
        Decide whether a note must be (re-)embedded.

        True if the note has no record, its fingerprint changed, or it was
        embedded by a different model than the active one.
        """
        record = self.get(identity)
        if record is None:
            return True
        if record.content_fingerprint != content_fingerprint:
            return True
        return record.model_name != self.model_name

    def query_similar(
        self,
        query_vector: Sequence[float],
        k: int,
        model_name: Optional[str] = None,
        exclude: Optional[Set[str]] = None,
    ) -> List[SimilarityResult]:
        """
        Top-k notes by cosine similarity to query_vector.

        Only vectors produced by model_name (default: the active model) are
        considered. Results are ranked by descending score; ties keep
        insertion order.

        Raises:
            EmptyIndexError: No vector is stored for the model.
            DimensionMismatchError: The query has the wrong length.
            ValueError: k < 1.
        """
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")

        model_name = model_name or self.model_name
        snapshot = [r for r in self._records if r.model_name == model_name]
        if not snapshot:
            raise EmptyIndexError(model_name)

        if exclude:
            snapshot = [r for r in snapshot if r.identity not in exclude]
            if not snapshot:
                return []

        query = np.asarray(query_vector, dtype=np.float64)
        dimension = len(snapshot[0].vector)
        if query.ndim != 1 or len(query) != dimension:
            raise DimensionMismatchError(model_name, dimension, int(query.size))

        matrix = np.array([r.vector for r in snapshot], dtype=np.float64)
        scores = cosine_similarities(query, matrix)

        order = np.argsort(-scores, kind="stable")[:k]
        return [SimilarityResult(snapshot[i].identity, float(scores[i])) for i in order]

    def query_similar_to(self, identity: str, k: int) -> List[SimilarityResult]:
        """
        Notes most similar to an already indexed note, excluding the note itself.

        Raises:
            KeyError: The note has no stored vector.
        """
        record = self.get(identity)
        if record is None:
            raise KeyError(identity)
        return self.query_similar(record.vector, k, record.model_name, exclude={identity})
