"""Exceptions raised by the indexing pipeline.

Per-file failures (``OSError``, ``sqlite3.Error`` and :class:`EmbeddingError`)
are recovered by the traversal loop. :class:`SetupError` and
:class:`ToyDictionaryError` abort the run.
"""

from __future__ import annotations


class DocIndexerError(Exception):
    """Base class for docindexer errors."""


class SetupError(DocIndexerError):
    """Raised when the docs root, the index or the dictionary cannot be opened.

    Nothing has been written to the index when this is raised.
    """


class VectorDictionaryError(DocIndexerError):
    """Raised when a vector dictionary source is malformed or cannot be loaded."""


class EmbeddingError(DocIndexerError):
    """Raised when computing the embedding of a single document fails."""

    def __init__(self, path: str, cause: BaseException | None = None):
        message = f"Failed to compute embedding for {path}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.path = path


class ToyDictionaryError(DocIndexerError):
    """Raised when many documents were indexed against a tiny vector dictionary.

    A small dictionary is fine for trying the indexer out but produces
    meaningless vectors at scale, so the run is rejected after commit.

    Attributes:
        document_count: Number of documents in the committed index
        dictionary_size: ``ram_bytes_used()`` of the dictionary, 0 if none
    """

    def __init__(self, document_count: int, dictionary_size: int):
        super().__init__(
            f"Indexed {document_count} documents against a vector dictionary of "
            f"{dictionary_size} bytes. Are you using a sample dictionary for a real "
            "corpus? Supply a full-size dictionary or set DOCINDEXER_SMOKETESTER "
            "to skip this check."
        )
        self.document_count = document_count
        self.dictionary_size = dictionary_size
