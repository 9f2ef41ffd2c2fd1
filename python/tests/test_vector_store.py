"""
Vector Store Tests - Verify storage, staleness and similarity ranking.

Tests:
- Cosine ranking and tie-breaking
- Model isolation
- Quantization
- Upsert/remove/clear and dimension checks
- needs_reindex decisions
"""

import asyncio

import pytest

from noteindex.errors import DimensionMismatchError, EmptyIndexError
from noteindex.models import StoredVector
from noteindex.orchestrator import Orchestrator
from noteindex.vector_store import VectorStore, cosine_similarities, quantize

import numpy as np

from conftest import FakeEmbedder, make_document, vector_for


def record(identity, vector, model="m1", fingerprint="f1"):
    return StoredVector(identity, vector, model, fingerprint)


class TestSimilarity:
    """Tests for query_similar ranking."""

    @pytest.fixture
    def store(self):
        s = VectorStore("m1")
        s.upsert(record("A", [1, 0]))
        s.upsert(record("B", [0.9, 0.1]))
        s.upsert(record("C", [0, 1]))
        return s

    def test_ranks_by_cosine(self, store):
        """Query [1,0] with k=2 returns A then B."""
        results = store.query_similar([1, 0], k=2, model_name="m1")

        assert [r.identity for r in results] == ["A", "B"]
        assert results[0].score == pytest.approx(1.0)
        assert results[1].score == pytest.approx(0.9939, abs=1e-4)

    def test_k_larger_than_store(self, store):
        results = store.query_similar([1, 0], k=10)
        assert [r.identity for r in results] == ["A", "B", "C"]
        assert results[2].score == pytest.approx(0.0)

    def test_ties_keep_insertion_order(self):
        s = VectorStore("m1")
        for name in ["first", "second", "third"]:
            s.upsert(record(name, [0.5, 0.5]))

        for _ in range(3):
            results = s.query_similar([1, 1], k=3)
            assert [r.identity for r in results] == ["first", "second", "third"]

    def test_replaced_record_keeps_position(self):
        s = VectorStore("m1")
        s.upsert(record("x", [1, 1]))
        s.upsert(record("y", [1, 1]))
        s.upsert(record("x", [1, 1], fingerprint="f2"))

        assert s.identities() == ["x", "y"]
        assert [r.identity for r in s.query_similar([1, 1], k=2)] == ["x", "y"]

    def test_zero_vector_scores_zero(self):
        s = VectorStore("m1")
        s.upsert(record("zero", [0, 0]))
        s.upsert(record("one", [1, 0]))

        results = s.query_similar([1, 0], k=2)
        assert results[0].identity == "one"
        assert results[1].score == 0.0

        zero_query = s.query_similar([0, 0], k=2)
        assert all(r.score == 0.0 for r in zero_query)

    def test_rejects_bad_k(self, store):
        with pytest.raises(ValueError):
            store.query_similar([1, 0], k=0)

    def test_rejects_query_of_wrong_dimension(self, store):
        with pytest.raises(DimensionMismatchError):
            store.query_similar([1, 0, 0], k=1)

    def test_similar_to_excludes_note_itself(self, store):
        results = store.query_similar_to("A", k=2)
        assert [r.identity for r in results] == ["B", "C"]

    def test_similar_to_unknown_note(self, store):
        with pytest.raises(KeyError):
            store.query_similar_to("missing", k=2)

    def test_cosine_helper_on_empty_matrix(self):
        assert cosine_similarities(np.array([1.0]), np.zeros((0, 1))).size == 0


class TestModelIsolation:
    """Vectors from different models are never compared."""

    def test_other_model_not_returned(self):
        s = VectorStore("m1")
        s.upsert(record("one", [1, 0], model="m1"))
        s.upsert(record("two", [1, 0, 0], model="m2"))

        assert [r.identity for r in s.query_similar([1, 0], k=5, model_name="m1")] == ["one"]
        assert [r.identity for r in s.query_similar([1, 0, 0], k=5, model_name="m2")] == ["two"]

    def test_query_model_without_vectors(self):
        s = VectorStore("m1")
        s.upsert(record("one", [1, 0], model="m1"))

        with pytest.raises(EmptyIndexError):
            s.query_similar([1, 0], k=1, model_name="m2")

    def test_empty_store_query(self):
        with pytest.raises(EmptyIndexError):
            VectorStore("m1").query_similar([1, 0], k=1)


class TestQuantization:
    """Tests for component rounding."""

    def test_rounds_to_three_places_by_default(self):
        assert quantize([0.12345, -0.98765, 1.0]) == [0.123, -0.988, 1.0]

    def test_rounds_half_away_from_zero(self):
        assert quantize([0.0005, -0.0005, 0.0015]) == [0.001, -0.001, 0.002]

    def test_custom_precision(self):
        assert quantize([0.123456], decimals=5) == [0.12346]

    def test_idempotent(self):
        vector = [0.1234567, -0.7654321, 0.5]
        once = quantize(vector)
        assert quantize(once) == once
        assert quantize(vector) == once

    def test_no_negative_zero(self):
        assert str(quantize([-0.0001])[0]) == "0.0"

    def test_upsert_quantizes(self):
        s = VectorStore("m1", decimals=2)
        stored = s.upsert(record("x", [0.123, 0.456]))
        assert stored.vector == [0.12, 0.46]
        assert s.get("x").vector == [0.12, 0.46]


class TestMutation:
    """Tests for upsert, remove and clear."""

    def test_upsert_replaces_without_duplicating(self):
        s = VectorStore("m1")
        s.upsert(record("x", [1, 0], fingerprint="old"))
        s.upsert(record("x", [0, 1], fingerprint="new"))

        assert len(s) == 1
        assert s.get("x").content_fingerprint == "new"

    def test_rejects_mismatched_dimension(self):
        s = VectorStore("m1")
        s.upsert(record("x", [1, 0]))

        with pytest.raises(DimensionMismatchError):
            s.upsert(record("y", [1, 0, 0]))
        assert "y" not in s

    def test_only_record_of_model_may_change_dimension(self):
        s = VectorStore("m1")
        s.upsert(record("x", [1, 0]))
        s.upsert(record("x", [1, 0, 0]))
        assert len(s.get("x").vector) == 3

    def test_other_model_may_use_other_dimension(self):
        s = VectorStore("m1")
        s.upsert(record("x", [1, 0], model="m1"))
        s.upsert(record("y", [1, 0, 0], model="m2"))
        assert len(s) == 2

    def test_rejects_empty_vector(self):
        with pytest.raises(ValueError):
            VectorStore("m1").upsert(record("x", []))

    def test_remove(self):
        s = VectorStore("m1")
        s.upsert(record("a", [1, 0]))
        s.upsert(record("b", [0, 1]))
        s.upsert(record("c", [1, 1]))

        assert s.remove("b") is True
        assert s.identities() == ["a", "c"]
        assert s.get("c").vector == [1.0, 1.0]

    def test_remove_missing_is_noop(self):
        s = VectorStore("m1")
        s.upsert(record("a", [1, 0]))
        assert s.remove("zzz") is False
        assert len(s) == 1

    def test_remove_stale(self):
        s = VectorStore("m1")
        for name in ["a", "b", "c"]:
            s.upsert(record(name, [1, 0]))

        assert s.remove_stale({"a", "c"}) == 1
        assert s.identities() == ["a", "c"]
        assert s.get("c") is not None

    def test_remove_stale_within_scope(self):
        """Only records inside the folder are candidates for removal."""
        s = VectorStore("m1")
        for name in ["Zettel/a.md", "Zettel/sub/b.md", "inbox.md"]:
            s.upsert(record(name, [1, 0]))

        assert s.remove_stale({"Zettel/a.md"}, "Zettel") == 1
        assert s.identities() == ["Zettel/a.md", "inbox.md"]

    def test_remove_stale_without_scope_removes_nothing(self):
        s = VectorStore("m1")
        s.upsert(record("a", [1, 0]))
        assert s.remove_stale(set(), None) == 0
        assert len(s) == 1

    def test_clear(self):
        s = VectorStore("m1")
        s.upsert(record("a", [1, 0]))
        s.clear()
        assert len(s) == 0
        assert s.get("a") is None

    def test_switch_model_clears(self):
        s = VectorStore("m1")
        s.upsert(record("a", [1, 0]))

        assert s.switch_model("m1") is False
        assert len(s) == 1

        assert s.switch_model("m2") is True
        assert len(s) == 0
        assert s.model_name == "m2"


class TestNeedsReindex:
    """Tests for the incremental indexing decision."""

    @pytest.fixture
    def store(self):
        s = VectorStore("m1")
        s.upsert(record("note.md", [1, 0], fingerprint="abc"))
        return s

    def test_missing_record(self, store):
        assert store.needs_reindex("other.md", "abc")

    def test_unchanged(self, store):
        assert not store.needs_reindex("note.md", "abc")

    def test_changed_fingerprint(self, store):
        assert store.needs_reindex("note.md", "def")

    def test_model_changed(self):
        s = VectorStore("m2")
        s.upsert(record("note.md", [1, 0], model="m1", fingerprint="abc"))
        assert s.needs_reindex("note.md", "abc")


class TestPersistence:
    """Tests for list serialization."""

    def test_round_trip_preserves_order(self):
        s = VectorStore("m1")
        s.upsert(record("b", [0.5, 0.25]))
        s.upsert(record("a", [0.125, 1]))

        loaded = VectorStore.from_list(s.to_list(), "m1")
        assert loaded.identities() == ["b", "a"]
        assert loaded.to_list() == s.to_list()

    @pytest.mark.parametrize("data", [None, []])
    def test_missing_collection_is_empty(self, data):
        assert len(VectorStore.from_list(data, "m1")) == 0

    def test_persisted_layout(self):
        s = VectorStore("m1")
        s.upsert(record("note.md", [0.5, 0.25], fingerprint="abc"))
        assert s.to_list() == [
            {"path": "note.md", "embedding": [0.5, 0.25], "model": "m1", "fingerprint": "abc"}
        ]


class TestConcurrentReaders:
    """Queries interleaved with an indexing run."""

    @pytest.mark.asyncio
    async def test_query_during_run_sees_complete_records(self, test_config):
        store = VectorStore("fake-model")
        store.upsert(StoredVector("seed.md", vector_for("seed"), "fake-model", "seed"))
        documents = [make_document(f"notes/{i:02d}.md", f"note number {i}") for i in range(12)]
        orchestrator = Orchestrator(store, FakeEmbedder(delay=0.002), config=test_config)

        run = asyncio.create_task(orchestrator.run(documents))
        seen = set()
        queries = 0
        while not run.done():
            for result in store.query_similar(vector_for("query text"), k=50):
                stored = store.get(result.identity)
                assert stored is not None
                assert len(stored.vector) == 4
                assert stored.model_name == "fake-model"
                assert abs(result.score) <= 1.0 + 1e-9
                seen.add(result.identity)
            queries += 1
            await asyncio.sleep(0)

        stats = await run
        assert stats.documents_indexed == 12
        assert queries > 1
        assert "seed.md" in seen
        assert len(store.query_similar(vector_for("query text"), k=50)) == 13
