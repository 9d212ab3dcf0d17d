"""Tests for document ingestion, rebuild and the RAGSystem owner object."""
from __future__ import annotations

from datetime import datetime

import pytest

from conftest import FakeEmbedder, FakeGenerator
from config.settings import OpenAIConfig, RetrievalConfig, Settings
from ragcore.exceptions import EmbeddingFailure, InvalidRequest
from ragcore.rag_pipeline import Ingestor, RAGSystem, create_rag_system
from ragcore.vector_store import InMemorySimilarityIndex


def test_ingest_stores_content_and_returns_fresh_ids(embedder, index):
    ingestor = Ingestor(embedder, index)

    first = ingestor.ingest("Paris is the capital of France.", {"category": "geo"})
    second = ingestor.ingest("Berlin is the capital of Germany.")

    assert first != second
    assert index.size() == 2
    entry = index.get(first)
    assert entry.attributes["content"] == "Paris is the capital of France."
    assert entry.attributes["category"] == "geo"
    assert embedder.calls == ["Paris is the capital of France.", "Berlin is the capital of Germany."]


def test_ingest_content_overrides_caller_attribute(embedder, index):
    doc_id = Ingestor(embedder, index).ingest("real text", {"content": "spoofed"})
    assert index.get(doc_id).attributes["content"] == "real text"


def test_ingest_then_self_query(index):
    embedder = FakeEmbedder({"alpha": [0.2, 0.9, 0.1]})
    doc_id = Ingestor(embedder, index).ingest("alpha")
    results = index.query([0.2, 0.9, 0.1], 1, -1.0)
    assert results[0].id == doc_id
    assert results[0].score == pytest.approx(1.0)


def test_embedding_failure_leaves_index_untouched(index):
    ingestor = Ingestor(FakeEmbedder(fail=True), index)
    with pytest.raises(EmbeddingFailure):
        ingestor.ingest("text")
    assert index.size() == 0


def test_blank_text_rejected(embedder, index):
    with pytest.raises(InvalidRequest):
        Ingestor(embedder, index).ingest("  ")
    assert embedder.calls == []


def test_ingest_document_stamps_attributes(embedder, index):
    ingestor = Ingestor(embedder, index, id_factory=lambda: "fixed-id")

    result = ingestor.ingest_document(
        "Some policy text",
        category="policy",
        metadata={"author": "ops"},
    )

    assert result.id == "fixed-id"
    assert result.dimensions == 2
    assert result.model == "fake-embedding"
    stored = index.get("fixed-id").attributes
    assert stored["category"] == "policy"
    assert stored["document_id"] == "fixed-id"
    assert stored["author"] == "ops"
    assert stored["content"] == "Some policy text"
    assert datetime.fromisoformat(stored["created_at"]).tzinfo is not None


def test_ingest_document_metadata_applied_last(embedder, index):
    ingestor = Ingestor(embedder, index, id_factory=lambda: "doc-1")

    ingestor.ingest_document(
        "body",
        category="policy",
        metadata={"category": "handbook", "document_id": "HB-7", "content": "spoofed"},
    )

    stored = index.get("doc-1").attributes
    assert stored["category"] == "handbook"
    assert stored["document_id"] == "HB-7"
    assert stored["content"] == "body"


def test_ingest_file(tmp_path, embedder, index):
    path = tmp_path / "notes.md"
    path.write_text("# Notes\nRAG combines retrieval and generation.", encoding="utf-8")

    result = Ingestor(embedder, index).ingest_file(path, category="notes")

    stored = index.get(result.id).attributes
    assert stored["format"] == "md"
    assert stored["source"] == str(path)
    assert stored["document_id"] == str(path)
    assert stored["category"] == "notes"
    assert "retrieval and generation" in stored["content"]


def test_rebuild_replaces_contents(embedder, index):
    index.upsert("stale", [0.0, 1.0], {"content": "stale"})
    records = [("r1", "first", {"category": "a"}), ("r2", "second", None)]

    count = Ingestor(embedder, index).rebuild(records)

    assert count == 2
    assert index.ids() == ["r1", "r2"]
    assert index.get("r2").attributes["content"] == "second"


class _SnapshotRecordingIndex(InMemorySimilarityIndex):
    """Records the visible id set after every mutation."""

    def __init__(self):
        super().__init__()
        self.states = []

    def _record(self):
        self.states.append(tuple(self.ids()))

    def upsert(self, id, vector, attributes=None):
        super().upsert(id, vector, attributes)
        self._record()

    def clear(self):
        super().clear()
        self._record()

    def replace_all(self, entries):
        count = super().replace_all(entries)
        self._record()
        return count


def test_rebuild_never_exposes_empty_or_partial_index(embedder):
    index = _SnapshotRecordingIndex()
    for n in range(5):
        index.upsert(f"old-{n}", [0.0, 1.0], {"content": f"old {n}"})
    old = tuple(index.ids())
    index.states.clear()

    records = [(f"new-{n}", f"new {n}", None) for n in range(5)]
    Ingestor(embedder, index).rebuild(records)

    new = tuple(f"new-{n}" for n in range(5))
    assert index.states == [new]


def test_rebuild_failure_keeps_current_contents(index):
    index.upsert("keep", [1.0, 0.0], {"content": "keep"})
    with pytest.raises(EmbeddingFailure):
        Ingestor(FakeEmbedder(fail=True), index).rebuild([("x", "text", {})])
    assert index.ids() == ["keep"]


# ── RAGSystem ────────────────────────────────────────────────────────────────


def test_rag_system_round_trip():
    embedder = FakeEmbedder({"Paris is the capital of France.": [1.0, 0.0], "capital?": [1.0, 0.0]})
    generator = FakeGenerator(reply="Paris")
    rag = RAGSystem(embedder, generator, retrieval=RetrievalConfig(top_k=5, score_threshold=0.5))

    rag.ingest_document("Paris is the capital of France.", category="geo")
    result = rag.query("capital?")

    assert result.generated_text == "Paris"
    assert result.context_count == 1
    assert result.retrieved[0].category == "geo"


def test_rag_system_query_uses_configured_defaults():
    generator = FakeGenerator()
    rag = RAGSystem(FakeEmbedder(), generator, generation_model="gpt-4o-mini",
                    retrieval=RetrievalConfig(top_k=1, score_threshold=0.0))
    rag.ingest("one")
    rag.ingest("two")

    result = rag.query("q")

    assert result.context_count == 1
    assert generator.calls[0][1] == "gpt-4o-mini"


def test_check_connections_and_stats(embedder, generator):
    rag = RAGSystem(embedder, generator)
    rag.ingest("doc")

    assert rag.check_connections() == {"openai": True, "index": True, "vector_count": 1}
    stats = rag.get_stats()
    assert stats["vector_count"] == 1
    assert stats["dimensions"] == 2


def test_check_connections_reports_unreachable_provider(generator):
    embedder = FakeEmbedder()
    embedder.test_connection = lambda: False
    assert RAGSystem(embedder, generator).check_connections()["openai"] is False


def test_close_clears_index(embedder, generator):
    with RAGSystem(embedder, generator) as rag:
        rag.ingest("doc")
        index = rag.index
    assert index.size() == 0


def test_create_rag_system_uses_settings():
    settings = Settings(
        openai=OpenAIConfig(api_key="sk-test", chat_model="gpt-4o-mini"),
        retrieval=RetrievalConfig(top_k=2, score_threshold=0.1),
    )
    index = InMemorySimilarityIndex()

    rag = create_rag_system(settings, embedding_provider=FakeEmbedder(),
                            generation_provider=FakeGenerator(), index=index)

    assert rag.index is index
    assert rag.generation_model == "gpt-4o-mini"
    assert rag.retrieval.top_k == 2


def test_create_rag_system_builds_openai_providers():
    settings = Settings(openai=OpenAIConfig(api_key="sk-test", embedding_model="text-embedding-3-large"))
    rag = create_rag_system(settings)
    assert rag.embedding_provider.model == "text-embedding-3-large"
    assert rag.generation_provider.model == "gpt-4o"
    rag.close()
