"""Sentence embeddings for digest clustering.

Flagged items are embedded from their title and executive summary. Vectors
are L2-normalized so cosine distance in clustering reduces to 1 - dot.

The default model is BAAI/bge-small-en-v1.5 (384 dimensions, CPU friendly),
loaded lazily through sentence-transformers on the first encode call. Any
object with an `encode_batch` method satisfying `Embedder` can replace it.

Usage:
    >>> from embeddings import get_embeddings
    >>> embedder = get_embeddings(config.embedding_model)
    >>> vectors = embedder.encode_batch([embedding_text(title, summary)])
"""

import logging
import threading
from typing import Protocol

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "BAAI/bge-small-en-v1.5"


class Embedder(Protocol):
    """Maps texts to an (n, dim) float32 array of unit vectors."""

    def encode_batch(self, texts: list[str], batch_size: int = 32) -> np.ndarray: ...


def embedding_text(title: str, summary: str = "") -> str:
    """Text embedded for an item: title, then executive summary."""
    return f"{title}\n{summary}".strip()


def normalize_rows(vectors: np.ndarray) -> np.ndarray:
    """Scale each row to unit length; zero rows are left as zeros."""
    vectors = np.asarray(vectors, dtype=np.float32)
    if vectors.ndim == 1:
        vectors = vectors.reshape(1, -1)
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return vectors / norms


class SentenceEmbedder:
    """sentence-transformers model loaded on first use.

    Loading is guarded by a lock because encode calls run in worker threads
    (`asyncio.to_thread`) and the first two could race.
    """

    def __init__(self, model_name: str = DEFAULT_MODEL, batch_size: int = 32):
        self.model_name = model_name
        self.batch_size = batch_size
        self._model = None
        self._lock = threading.Lock()

    @property
    def dim(self) -> int | None:
        """Vector size, known once the model is loaded."""
        if self._model is None:
            return None
        return self._model.get_sentence_embedding_dimension()

    def _load(self):
        with self._lock:
            if self._model is None:
                logger.info("Loading embedding model | model=%s", self.model_name)
                from sentence_transformers import SentenceTransformer
                self._model = SentenceTransformer(self.model_name)
                logger.info(
                    "Embedding model loaded | model=%s dim=%s",
                    self.model_name, self._model.get_sentence_embedding_dimension(),
                )
        return self._model

    def encode_batch(self, texts: list[str], batch_size: int | None = None) -> np.ndarray:
        """Encode texts to unit-length float32 rows, one per text."""
        model = self._load()
        if not texts:
            return np.zeros((0, model.get_sentence_embedding_dimension()), dtype=np.float32)
        vectors = model.encode(
            texts,
            batch_size=batch_size or self.batch_size,
            convert_to_numpy=True,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        logger.debug("Encoded batch | count=%d", len(texts))
        return normalize_rows(vectors)


_embedders: dict[str, SentenceEmbedder] = {}


def get_embeddings(model_name: str = DEFAULT_MODEL, batch_size: int = 32) -> SentenceEmbedder:
    """Shared embedder for a model name, created on first request."""
    embedder = _embedders.get(model_name)
    if embedder is None:
        embedder = _embedders[model_name] = SentenceEmbedder(model_name, batch_size)
    return embedder
