"""In-memory vector index persisted as a single JSON snapshot.

The index is an ordered mapping ``chunk id -> Chunk`` searched by an
exhaustive cosine-similarity scan.  It is the one piece of shared mutable
state in the service: it is constructed (or loaded) once at startup, passed
by reference to the ingestion worker and the retrieval service, and guarded
by a :class:`~legal_advisory_rag.retrieval.locking.ReadWriteLock`.

Snapshot layout::

    {
      "format":    "legal-advisory-rag/vector-index",
      "version":   1,
      "dimension": 384,
      "chunks": {
        "<chunk id>": {"id": "...", "text": "...", "metadata": {...}, "embedding": [...]},
        ...
      }
    }

Chunk order in the file is insertion order, so a reload preserves search
tie-breaking.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Literal

import numpy as np
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from legal_advisory_rag.errors import CorruptIndexError, IndexPersistError
from legal_advisory_rag.retrieval.locking import ReadWriteLock
from legal_advisory_rag.retrieval.models import Chunk, SearchHit
from legal_advisory_rag.storage import atomic_write_bytes

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT = "legal-advisory-rag/vector-index"
SNAPSHOT_VERSION = 1


class _SnapshotRecord(BaseModel):
    id: str
    text: str
    metadata: dict[str, str] = {}
    embedding: list[float]


class _Snapshot(BaseModel):
    format: Literal["legal-advisory-rag/vector-index"]
    version: Literal[1]
    dimension: int | None = None
    chunks: dict[str, _SnapshotRecord]


class VectorIndex:
    """Ordered chunk store with cosine search and atomic snapshot persistence.

    Parameters
    ----------
    dimension:
        Fixed vector dimension.  When ``None`` the first added chunk fixes it.
    """

    def __init__(self, dimension: int | None = None) -> None:
        self._chunks: dict[str, Chunk] = {}
        self._dimension = dimension
        self._lock = ReadWriteLock()
        self._matrix: np.ndarray | None = None

    # -- construction ---------------------------------------------------------

    @classmethod
    def load(cls, path: str | Path, *, dimension: int | None = None) -> VectorIndex:
        """Deserialise the snapshot at *path*.

        A missing file yields an empty index.  A file that exists but is not
        a valid snapshot raises :class:`CorruptIndexError`; the file itself
        is left untouched.
        """
        path = Path(path)
        if not path.exists():
            logger.info("No index snapshot at %s, starting empty", path)
            return cls(dimension=dimension)

        raw = path.read_bytes()
        try:
            snapshot = _Snapshot.model_validate_json(raw)
        except PydanticValidationError as exc:
            raise CorruptIndexError(
                f"Index snapshot {path} is malformed",
                details={"path": str(path), "errors": exc.error_count()},
            ) from exc

        found = snapshot.dimension
        for key, record in snapshot.chunks.items():
            if key != record.id:
                raise CorruptIndexError(
                    f"Index snapshot {path} has a record stored under the wrong id",
                    details={"path": str(path), "key": key, "id": record.id},
                )
            if not record.embedding:
                raise CorruptIndexError(
                    f"Index snapshot {path} has a chunk without a vector",
                    details={"path": str(path), "id": key},
                )
            if found is None:
                found = len(record.embedding)
            elif len(record.embedding) != found:
                raise CorruptIndexError(
                    f"Index snapshot {path} mixes vector dimensions",
                    details={"path": str(path), "id": key, "expected": found, "got": len(record.embedding)},
                )
        if dimension is not None and found is not None and found != dimension:
            raise CorruptIndexError(
                f"Index snapshot {path} has dimension {found}, expected {dimension}",
                details={"path": str(path)},
            )

        index = cls(dimension=found if found is not None else dimension)
        index._chunks = {
            key: Chunk(id=record.id, text=record.text, metadata=record.metadata, vector=record.embedding)
            for key, record in snapshot.chunks.items()
        }
        logger.info("Loaded %d chunks (dim=%s) from %s", len(index._chunks), index._dimension, path)
        return index

    def copy(self) -> VectorIndex:
        """Return an independent index holding the same chunks."""
        with self._lock.read_locked():
            clone = VectorIndex(dimension=self._dimension)
            clone._chunks = dict(self._chunks)
        return clone

    # -- locking ----------------------------------------------------------------

    @contextmanager
    def write_locked(self) -> Iterator[VectorIndex]:
        """Hold the exclusive write permit; searches wait until it is released."""
        with self._lock.write_locked():
            yield self

    # -- mutation -------------------------------------------------------------

    def add(self, chunks: Iterable[Chunk]) -> None:
        """Insert or overwrite *chunks* by id.

        Every chunk must carry a vector of the index dimension; the whole
        batch is validated before anything is stored.

        Raises
        ------
        ValueError
            A chunk has no vector or a vector of the wrong dimension.
        """
        chunks = list(chunks)
        with self._lock.write_locked():
            dimension = self._dimension
            for chunk in chunks:
                if not chunk.vector:
                    raise ValueError(f"Chunk {chunk.id!r} has no vector")
                if dimension is None:
                    dimension = len(chunk.vector)
                elif len(chunk.vector) != dimension:
                    raise ValueError(
                        f"Chunk {chunk.id!r} has dimension {len(chunk.vector)}, index expects {dimension}"
                    )
            self._dimension = dimension
            for chunk in chunks:
                # overwriting keeps the id's original position
                self._chunks[chunk.id] = chunk
            self._matrix = None

    def replace_with(self, other: VectorIndex) -> None:
        """Adopt the contents of *other* (commit of a merged state)."""
        with other._lock.read_locked():
            chunks = dict(other._chunks)
            dimension = other._dimension
        with self._lock.write_locked():
            self._chunks = chunks
            self._dimension = dimension
            self._matrix = None

    # -- persistence ------------------------------------------------------------

    def to_snapshot(self) -> dict:
        with self._lock.read_locked():
            return {
                "format": SNAPSHOT_FORMAT,
                "version": SNAPSHOT_VERSION,
                "dimension": self._dimension,
                "chunks": {
                    cid: {"id": c.id, "text": c.text, "metadata": c.metadata, "embedding": c.vector}
                    for cid, c in self._chunks.items()
                },
            }

    def persist(self, path: str | Path) -> None:
        """Atomically replace the snapshot at *path* with the current state.

        Raises
        ------
        IndexPersistError
            The temporary file could not be written or renamed.  The previous
            snapshot is still in place.
        """
        path = Path(path)
        with self._lock.write_locked():
            payload = json.dumps(self.to_snapshot(), ensure_ascii=False).encode("utf-8")
            try:
                atomic_write_bytes(path, payload)
            except OSError as exc:
                raise IndexPersistError(
                    f"Could not persist index to {path}",
                    details={"path": str(path), "reason": str(exc)},
                ) from exc
            logger.info("Persisted %d chunks to %s (%d bytes)", len(self._chunks), path, len(payload))

    # -- queries ----------------------------------------------------------------

    def search(self, query_vector: Sequence[float], k: int = 4) -> list[SearchHit]:
        """Return the *k* chunks most similar to *query_vector*.

        Cosine similarity over every stored vector, highest first; equal
        scores keep insertion order.

        Raises
        ------
        ValueError
            *query_vector* does not match the index dimension.
        """
        with self._lock.read_locked():
            if k <= 0 or not self._chunks:
                return []
            query = np.asarray(query_vector, dtype=np.float64)
            if query.ndim != 1 or query.shape[0] != self._dimension:
                raise ValueError(
                    f"Query vector has shape {query.shape}, index dimension is {self._dimension}"
                )
            chunks = list(self._chunks.values())
            matrix = self._normalized_matrix(chunks)
            norm = np.linalg.norm(query)
            if norm == 0:
                scores = np.zeros(len(chunks))
            else:
                scores = matrix @ (query / norm)
            order = np.argsort(-scores, kind="stable")[:k]
            return [SearchHit(chunk=chunks[i], score=float(scores[i])) for i in order]

    def _normalized_matrix(self, chunks: list[Chunk]) -> np.ndarray:
        matrix = self._matrix
        if matrix is None or matrix.shape[0] != len(chunks):
            matrix = np.asarray([c.vector for c in chunks], dtype=np.float64)
            norms = np.linalg.norm(matrix, axis=1, keepdims=True)
            norms[norms == 0] = 1.0
            matrix = matrix / norms
            self._matrix = matrix
        return matrix

    # -- inspection -------------------------------------------------------------

    @property
    def dimension(self) -> int | None:
        return self._dimension

    def get(self, chunk_id: str) -> Chunk | None:
        with self._lock.read_locked():
            return self._chunks.get(chunk_id)

    def ids(self) -> list[str]:
        with self._lock.read_locked():
            return list(self._chunks)

    def chunks(self) -> list[Chunk]:
        with self._lock.read_locked():
            return list(self._chunks.values())

    def __len__(self) -> int:
        return len(self._chunks)

    def __contains__(self, chunk_id: object) -> bool:
        return chunk_id in self._chunks
