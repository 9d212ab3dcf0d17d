"""
Vector Store Module

WHAT IS A VECTOR STORE:
A store for embeddings plus the attributes that describe them, searched by
meaning similarity instead of keywords.

THIS INDEX:
- In-memory, volatile: it is a cache rebuilt from the caller's document
  store, nothing here is persisted
- Exact search: compare the query to every vector, O(n * d) per query
  (n entries, d dimensions). Fine for hundreds to thousands of entries;
  an approximate index (HNSW, IVF) would be needed far beyond that
- Keyed by id: upserting an existing id replaces vector and attributes

CONCURRENCY (copy-on-write):
Writers take a lock, build a new mapping and publish it with one reference
swap. Readers grab the current mapping once and scan it, so a query sees a
concurrent upsert/clear/replace_all completely or not at all.

Callers depend on SimilarityIndex, so another backend can replace
InMemorySimilarityIndex without touching the pipeline.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ragcore.embeddings import cosine_similarity
from ragcore.exceptions import DimensionMismatch, InvalidRequest
from ragcore.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class IndexEntry:
    """
    One stored vector.

    - id: Identity of the entry
    - vector: The embedding (read-only numpy array)
    - attributes: Free-form data returned with search hits ("content" holds
      the document text)
    - position: Insertion sequence number, used to break score ties
    """
    id: str
    vector: np.ndarray
    attributes: Mapping[str, Any] = field(default_factory=dict)
    position: int = 0

    @property
    def dimension(self) -> int:
        return int(self.vector.shape[0])


@dataclass(frozen=True)
class SearchResult:
    """
    A single search hit: an entry projected with its similarity score.

    WHY SEPARATE FROM IndexEntry:
    - The score only exists for one query
    - Callers never get a handle on the stored entry itself
    """
    id: str
    score: float
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.attributes.get("content", "") or ""

    @property
    def category(self) -> str:
        return self.attributes.get("category") or "unknown"

    @property
    def timestamp(self) -> Optional[str]:
        return self.attributes.get("created_at")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "score": self.score,
            "text": self.text,
            "category": self.category,
            "timestamp": self.timestamp,
            "attributes": dict(self.attributes),
        }

    def __repr__(self):
        preview = self.text[:50] + "..." if len(self.text) > 50 else self.text
        return f"SearchResult(id={self.id!r}, score={self.score:.4f}, text='{preview}')"


def validate_search_params(top_k: int, score_threshold: float):
    """Raise InvalidRequest unless top_k > 0 and -1 <= score_threshold <= 1."""
    if isinstance(top_k, bool) or not isinstance(top_k, int):
        raise InvalidRequest(f"top_k must be an integer, got {top_k!r}")
    if top_k <= 0:
        raise InvalidRequest(f"top_k must be >= 1, got {top_k}")
    if isinstance(score_threshold, bool) or not isinstance(score_threshold, (int, float)):
        raise InvalidRequest(f"score_threshold must be a number, got {score_threshold!r}")
    if not -1.0 <= score_threshold <= 1.0:
        raise InvalidRequest(f"score_threshold must be within [-1, 1], got {score_threshold}")


def _freeze(id: str, vector: Sequence[float], attributes: Optional[Mapping[str, Any]]):
    """Validate one entry and return a read-only (vector, attributes) pair."""
    if not isinstance(id, str) or not id:
        raise InvalidRequest("Entry id must be a non-empty string")

    array = np.array(vector, dtype=np.float64)
    if array.ndim != 1 or array.size == 0:
        raise InvalidRequest(f"Vector for {id!r} must be a non-empty 1-d sequence")
    array.setflags(write=False)

    return array, MappingProxyType(dict(attributes or {}))


class SimilarityIndex(ABC):
    """Contract for exact-similarity indexes used by the query pipeline."""

    @abstractmethod
    def upsert(self, id: str, vector: Sequence[float], attributes: Optional[Mapping[str, Any]] = None) -> None:
        """Insert or fully replace the entry for ``id``."""

    @abstractmethod
    def query(self, vector: Sequence[float], top_k: int, score_threshold: float) -> List[SearchResult]:
        """Return up to ``top_k`` hits scoring at least ``score_threshold``, best first."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""

    @abstractmethod
    def replace_all(
        self,
        entries: Iterable[Tuple[str, Sequence[float], Optional[Mapping[str, Any]]]]
    ) -> int:
        """Swap the whole contents for ``(id, vector, attributes)`` entries; return the new size."""

    @abstractmethod
    def size(self) -> int:
        """Current number of entries."""

    def __len__(self):
        return self.size()


class InMemorySimilarityIndex(SimilarityIndex):
    """
    Dictionary-backed index with linear-scan cosine search.

    USAGE:
        index = InMemorySimilarityIndex()
        index.upsert("d1", [1.0, 0.0], {"content": "Paris is the capital of France."})
        hits = index.query([1.0, 0.0], top_k=5, score_threshold=0.5)
    """

    def __init__(self):
        # Published snapshot. Never mutated in place, only replaced.
        self._entries: Mapping[str, IndexEntry] = MappingProxyType({})
        self._write_lock = threading.Lock()
        self._next_position = 0

    def upsert(
        self,
        id: str,
        vector: Sequence[float],
        attributes: Optional[Mapping[str, Any]] = None
    ) -> None:
        """
        Insert or replace an entry.

        Replacing keeps the entry's original insertion position, so tie
        ordering does not change when a document is re-indexed.
        """
        array, frozen_attributes = _freeze(id, vector, attributes)

        with self._write_lock:
            current = self._entries
            dimension = self._dimension_of(current)
            if dimension is not None and dimension != array.size:
                logger.warning(
                    "Upserting %d-d vector for %r into an index of %d-d vectors",
                    array.size, id, dimension
                )

            existing = current.get(id)
            if existing is not None:
                position = existing.position
            else:
                position = self._next_position
                self._next_position += 1

            updated = dict(current)
            updated[id] = IndexEntry(
                id=id,
                vector=array,
                attributes=frozen_attributes,
                position=position
            )
            self._entries = MappingProxyType(updated)

        logger.debug("%s entry %r (%d dims)", "Replaced" if existing else "Inserted", id, array.size)

    def query(
        self,
        vector: Sequence[float],
        top_k: int,
        score_threshold: float
    ) -> List[SearchResult]:
        """
        Search for similar entries.

        HOW IT WORKS:
        1. Check every stored vector has the query's dimension
        2. Calculate cosine similarity with every entry
        3. Keep scores >= score_threshold
        4. Sort by score, highest first (stable: earlier inserts win ties)
        5. Return the first top_k

        Raises:
            InvalidRequest: top_k <= 0 or score_threshold outside [-1, 1]
            DimensionMismatch: a stored vector's length differs from the query's
        """
        validate_search_params(top_k, score_threshold)
        query_vector = np.asarray(vector, dtype=np.float64)

        snapshot = self._entries
        if not snapshot:
            return []

        entries = sorted(snapshot.values(), key=lambda entry: entry.position)
        for entry in entries:
            if entry.dimension != query_vector.size:
                raise DimensionMismatch(expected=entry.dimension, actual=query_vector.size)

        results = []
        for entry in entries:
            score = cosine_similarity(query_vector, entry.vector)
            if score >= score_threshold:
                results.append(SearchResult(
                    id=entry.id,
                    score=score,
                    attributes=entry.attributes
                ))

        results.sort(key=lambda result: result.score, reverse=True)

        return results[:top_k]

    def get(self, id: str) -> Optional[IndexEntry]:
        """Get an entry by id."""
        return self._entries.get(id)

    def ids(self) -> List[str]:
        """Entry ids in insertion order."""
        entries = sorted(self._entries.values(), key=lambda entry: entry.position)
        return [entry.id for entry in entries]

    def clear(self) -> None:
        """Remove all entries in one swap."""
        with self._write_lock:
            removed = len(self._entries)
            self._entries = MappingProxyType({})
            self._next_position = 0
        logger.info("Cleared similarity index (%d entries removed)", removed)

    def replace_all(
        self,
        entries: Iterable[Tuple[str, Sequence[float], Optional[Mapping[str, Any]]]]
    ) -> int:
        """
        Replace every entry in one swap.

        The new mapping is built and validated before the lock is taken, so
        a query sees either the old contents or the new ones, never an empty
        or half-filled index. A repeated id keeps its first position and its
        last vector/attributes.
        """
        positions = {}
        frozen = {}
        for id, vector, attributes in entries:
            array, frozen_attributes = _freeze(id, vector, attributes)
            positions.setdefault(id, len(positions))
            frozen[id] = IndexEntry(
                id=id,
                vector=array,
                attributes=frozen_attributes,
                position=positions[id]
            )

        with self._write_lock:
            removed = len(self._entries)
            self._entries = MappingProxyType(frozen)
            self._next_position = len(positions)

        logger.info("Replaced similarity index contents (%d removed, %d added)", removed, len(frozen))
        return len(frozen)

    def size(self) -> int:
        return len(self._entries)

    @property
    def dimensions(self) -> Optional[int]:
        """Dimension of the stored vectors, or None when empty."""
        return self._dimension_of(self._entries)

    def stats(self) -> Dict[str, Any]:
        snapshot = self._entries
        return {
            "vector_count": len(snapshot),
            "dimensions": self._dimension_of(snapshot),
        }

    @staticmethod
    def _dimension_of(entries: Mapping[str, IndexEntry]) -> Optional[int]:
        for entry in entries.values():
            return entry.dimension
        return None
