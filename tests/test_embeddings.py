"""
Embedding Helper Tests
======================

Text selection, row normalization and the shared-embedder registry. The
sentence-transformers model is never loaded here.
"""

import numpy as np

from embeddings import SentenceEmbedder, embedding_text, get_embeddings, normalize_rows


class TestEmbeddingText:

    def test_title_and_summary(self):
        assert embedding_text("Budget vote", "Congress voted.") == "Budget vote\nCongress voted."

    def test_title_only(self):
        assert embedding_text("Budget vote") == "Budget vote"


class TestNormalizeRows:

    def test_unit_length(self):
        rows = normalize_rows(np.array([[3.0, 4.0], [0.0, 2.0]]))

        assert np.allclose(np.linalg.norm(rows, axis=1), [1.0, 1.0])
        assert np.allclose(rows[0], [0.6, 0.8])
        assert rows.dtype == np.float32

    def test_zero_row_stays_zero(self):
        rows = normalize_rows(np.array([[0.0, 0.0]]))
        assert np.allclose(rows, [[0.0, 0.0]])

    def test_single_vector_becomes_one_row(self):
        assert normalize_rows(np.array([2.0, 0.0])).shape == (1, 2)


class TestRegistry:

    def test_same_model_shares_instance(self):
        first = get_embeddings("test/model-a")
        assert get_embeddings("test/model-a") is first
        assert get_embeddings("test/model-b") is not first

    def test_lazy_until_first_encode(self):
        embedder = SentenceEmbedder("test/model-c", batch_size=8)
        assert embedder.dim is None
        assert embedder.batch_size == 8
