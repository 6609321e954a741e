"""Token to vector dictionary used to compute document embeddings."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np

from docindexer.exceptions import VectorDictionaryError

logger = logging.getLogger(__name__)

# Per-token bookkeeping counted on top of the token bytes in ram_bytes_used().
_TOKEN_OVERHEAD_BYTES = 8


def _vectors_file(directory: Path, name: str) -> Path:
    return Path(directory) / f"{name}.npy"


def _tokens_file(directory: Path, name: str) -> Path:
    return Path(directory) / f"{name}.tokens.json"


def _parse_source(source: Path) -> tuple[list[str], np.ndarray]:
    tokens: list[str] = []
    rows: list[list[float]] = []
    seen: set[str] = set()
    dimension: int | None = None

    with Path(source).open("r", encoding="utf-8") as handle:
        for lineno, line in enumerate(handle, start=1):
            fields = line.split()
            if not fields:
                continue
            token, values = fields[0], fields[1:]
            if not values:
                raise VectorDictionaryError(f"{source}:{lineno}: no vector for token {token!r}")
            if dimension is None:
                dimension = len(values)
            elif len(values) != dimension:
                raise VectorDictionaryError(
                    f"{source}:{lineno}: expected {dimension} values, got {len(values)}"
                )
            if token in seen:
                raise VectorDictionaryError(f"{source}:{lineno}: duplicate token {token!r}")
            try:
                rows.append([float(value) for value in values])
            except ValueError as exc:
                raise VectorDictionaryError(f"{source}:{lineno}: {exc}") from exc
            seen.add(token)
            tokens.append(token)

    if not tokens:
        raise VectorDictionaryError(f"{source}: no vectors found")

    vectors = np.asarray(rows, dtype="float32")
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    np.divide(vectors, norms, out=vectors, where=norms > 0)
    return tokens, vectors


class KnnVectorDict:
    """Read-only token -> vector lookup backed by files in the index directory.

    Build it once with :meth:`build`, then open it by ``directory`` and ``name``.
    Vectors are memory-mapped; close the dictionary when the run is over.
    """

    def __init__(self, directory: Path, name: str) -> None:
        self.directory = Path(directory)
        self.name = name
        try:
            with _tokens_file(self.directory, name).open("r", encoding="utf-8") as handle:
                tokens = json.load(handle)
            vectors = np.load(_vectors_file(self.directory, name), mmap_mode="r")
        except (OSError, ValueError) as exc:
            raise VectorDictionaryError(f"Cannot open vector dictionary {name!r} in {directory}: {exc}") from exc

        if vectors.ndim != 2 or vectors.shape[0] != len(tokens):
            raise VectorDictionaryError(
                f"Vector dictionary {name!r} is inconsistent: {len(tokens)} tokens, "
                f"vectors of shape {vectors.shape}"
            )
        self._ordinals: dict[str, int] | None = {token: i for i, token in enumerate(tokens)}
        self._vectors: np.ndarray | None = vectors
        self.dimension = int(vectors.shape[1])
        self._token_bytes = sum(len(token.encode("utf-8")) for token in tokens)

    @staticmethod
    def build(source: Path, directory: Path, name: str) -> None:
        """Convert a ``token v1 v2 ...`` text file into dictionary files.

        Every line holds one token followed by its vector components separated
        by whitespace. All vectors must have the same length. Rows are stored
        normalised to unit length.
        """
        tokens, vectors = _parse_source(source)
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        np.save(_vectors_file(directory, name), vectors)
        with _tokens_file(directory, name).open("w", encoding="utf-8") as handle:
            json.dump(tokens, handle, ensure_ascii=False)
        logger.info("Built vector dictionary %s: %d tokens, dimension %d", name, len(tokens), vectors.shape[1])

    def __len__(self) -> int:
        return len(self._require_ordinals())

    def __contains__(self, token: str) -> bool:
        return token in self._require_ordinals()

    def _require_ordinals(self) -> dict[str, int]:
        if self._ordinals is None:
            raise VectorDictionaryError(f"Vector dictionary {self.name!r} is closed")
        return self._ordinals

    def get(self, token: str) -> np.ndarray:
        """Vector for ``token``, or zeros when the token is unknown."""
        ordinal = self._require_ordinals().get(token)
        if ordinal is None:
            return np.zeros(self.dimension, dtype="float32")
        assert self._vectors is not None
        return np.array(self._vectors[ordinal], dtype="float32")

    def ram_bytes_used(self) -> int:
        """Approximate size of the dictionary: vector data plus token table."""
        ordinals = self._require_ordinals()
        assert self._vectors is not None
        return int(self._vectors.nbytes) + self._token_bytes + _TOKEN_OVERHEAD_BYTES * len(ordinals)

    def close(self) -> None:
        self._ordinals = None
        self._vectors = None

    @property
    def closed(self) -> bool:
        return self._ordinals is None

    def __enter__(self) -> "KnnVectorDict":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
