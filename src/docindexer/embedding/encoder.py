"""Document embeddings computed from a token vector dictionary."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, TextIO

import numpy as np

from docindexer.embedding.vector_dict import KnnVectorDict
from docindexer.utils.text import iter_tokens

logger = logging.getLogger(__name__)

VECTOR_SIMILARITY = "dot_product"


@dataclass(slots=True)
class EmbeddingConfig:
    normalize: bool = True
    read_chars: int = 1 << 16


class DictionaryEmbeddings:
    """Embeds text as the sum of its token vectors.

    Tokens missing from the dictionary contribute nothing. With ``normalize``
    on, the sum is scaled to unit length so documents can be compared by dot
    product; a document with no known tokens gets the zero vector.
    """

    def __init__(self, vector_dict: KnnVectorDict, config: EmbeddingConfig | None = None) -> None:
        self.vector_dict = vector_dict
        self.config = config or EmbeddingConfig()
        self.dimension = vector_dict.dimension
        logger.debug("Dictionary embeddings ready | Dimension: %d | Tokens: %d", self.dimension, len(vector_dict))

    def embed_tokens(self, tokens: Iterable[str]) -> np.ndarray:
        """Return the float32 embedding of a token sequence."""
        result = np.zeros(self.dimension, dtype="float32")
        for token in tokens:
            if token in self.vector_dict:
                result += self.vector_dict.get(token)
        if self.config.normalize:
            norm = float(np.linalg.norm(result))
            if norm > 0:
                result /= norm
        return result

    def compute_embedding(self, content: TextIO) -> np.ndarray:
        """Embed everything readable from ``content``."""
        return self.embed_tokens(iter_tokens(content, read_chars=self.config.read_chars))
