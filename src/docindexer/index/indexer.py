"""Document indexing pipeline."""

from __future__ import annotations

import logging
import os
import sqlite3
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, TextIO

import numpy as np

from docindexer.config import KNN_DICT_NAME, AppConfig
from docindexer.embedding.encoder import DictionaryEmbeddings
from docindexer.embedding.vector_dict import KnnVectorDict
from docindexer.exceptions import EmbeddingError, SetupError, VectorDictionaryError
from docindexer.index.guard import check_vector_dictionary
from docindexer.index.storage import SQLiteIndexWriter
from docindexer.models import DocumentRecord, FileOutcome, WriteMode
from docindexer.utils.files import iter_files, modified_millis

LOGGER = logging.getLogger(__name__)

# Errors that fail one file and let the run continue.
PER_FILE_ERRORS = (OSError, sqlite3.Error, EmbeddingError)

WriteAction = Callable[[DocumentRecord], object]


def select_write(writer: SQLiteIndexWriter, mode: WriteMode) -> WriteAction:
    """Return the write used for every document of a run.

    A fresh index cannot hold an older copy of a document, so ``CREATE`` adds
    blindly. ``UPSERT`` replaces whatever is stored under the same path.
    """
    if WriteMode(mode) is WriteMode.CREATE:
        return writer.insert
    return lambda document: writer.replace_by_key(document.path, document)


@dataclass(slots=True)
class IndexStats:
    added: int = 0
    updated: int = 0
    failed: int = 0
    processed_files: list[Path] = field(default_factory=list)
    document_count: int = 0
    elapsed_ms: int = 0

    def increment(self, outcome: FileOutcome) -> None:
        if outcome.status == "added":
            self.added += 1
        elif outcome.status == "updated":
            self.updated += 1
        else:
            self.failed += 1
        self.processed_files.append(outcome.path)


class Indexer:
    """Walks a docs tree and feeds every file to the index writer."""

    def __init__(
        self,
        writer: SQLiteIndexWriter,
        embeddings: DictionaryEmbeddings | None = None,
        *,
        mode: WriteMode | None = None,
    ) -> None:
        self.writer = writer
        self.embeddings = embeddings
        self.mode = WriteMode(mode if mode is not None else writer.mode)
        self._write = select_write(writer, self.mode)
        if self.mode is WriteMode.CREATE:
            self._status, self._verb = "added", "adding"
        else:
            self._status, self._verb = "updated", "updating"

    def index(self, root: Path) -> IndexStats:
        """Index every regular file under ``root``.

        Files that fail are logged and counted; the walk goes on. Failing to
        read ``root`` itself raises :class:`SetupError` before any write.
        """
        root = Path(root)
        if not root.exists() or not os.access(root, os.R_OK):
            raise SetupError(f"Document path '{root.absolute()}' does not exist or is not readable")

        stats = IndexStats()
        try:
            for path in iter_files(root):
                stats.increment(self.index_file(path))
        except OSError as exc:
            raise SetupError(f"Cannot walk document path '{root}': {exc}") from exc

        if not stats.processed_files:
            LOGGER.warning("No files found under %s", root)
        return stats

    def index_file(self, path: Path) -> FileOutcome:
        """Index one file, turning per-file errors into a failed outcome."""
        try:
            self._index_document(path, modified_millis(path))
        except PER_FILE_ERRORS as exc:
            LOGGER.error("Failed to index %s: %s", path, exc)
            return FileOutcome(path, "failed", exc)
        return FileOutcome(path, self._status)

    def _index_document(self, path: Path, modified: int) -> None:
        with self._open_text(path) as content:
            document = DocumentRecord(path=str(path), modified=modified, content=content)
            if self.embeddings is not None:
                document.vector = self._embed(path)
            LOGGER.info("%s %s", self._verb, path)
            self._write(document)

    def _embed(self, path: Path) -> np.ndarray:
        # Independent stream; the indexing stream stays at its start.
        with self._open_text(path) as content:
            try:
                return self.embeddings.compute_embedding(content)
            except Exception as exc:
                raise EmbeddingError(str(path), exc) from exc

    @staticmethod
    def _open_text(path: Path) -> TextIO:
        # Undecodable bytes become U+FFFD instead of failing the file.
        return open(path, "r", encoding="utf-8", errors="replace")


def _open_vector_dict(source: Path, index_dir: Path) -> KnnVectorDict:
    try:
        KnnVectorDict.build(source, index_dir, KNN_DICT_NAME)
        return KnnVectorDict(index_dir, KNN_DICT_NAME)
    except (OSError, VectorDictionaryError) as exc:
        raise SetupError(f"Cannot load vector dictionary from {source}: {exc}") from exc


def _check_vector_dimension(writer: SQLiteIndexWriter, dimension: int) -> None:
    stored = writer.field_value("vector_dimension")
    if stored is not None and int(stored) != dimension:
        raise SetupError(
            f"Index {writer.db_path} holds {stored}-dimensional vectors, "
            f"the dictionary produces {dimension}"
        )


def run_indexing(config: AppConfig) -> IndexStats:
    """Index ``config.docs_path`` into ``config.index_path``.

    The vector dictionary and the writer are released on every exit path. The
    toy dictionary check runs once the documents are committed.
    """
    if config.docs_path is None:
        raise SetupError("No document path given")
    docs_path = Path(config.docs_path)
    if not docs_path.exists() or not os.access(docs_path, os.R_OK):
        raise SetupError(f"Document path '{docs_path.absolute()}' does not exist or is not readable")

    index_dir = Path(config.index_path)
    started = time.monotonic()
    dictionary_size = 0

    with ExitStack() as stack:
        embeddings = None
        if config.knn_dict_path is not None:
            vector_dict = stack.enter_context(_open_vector_dict(Path(config.knn_dict_path), index_dir))
            dictionary_size = vector_dict.ram_bytes_used()
            embeddings = DictionaryEmbeddings(vector_dict)

        writer = stack.enter_context(SQLiteIndexWriter.open(index_dir, config.mode))
        if embeddings is not None and WriteMode(config.mode) is WriteMode.UPSERT:
            _check_vector_dimension(writer, embeddings.dimension)

        stats = Indexer(writer, embeddings).index(docs_path)
        stats.document_count = writer.commit()

    stats.elapsed_ms = int((time.monotonic() - started) * 1000)
    LOGGER.info("Indexed %d documents in %d milliseconds", stats.document_count, stats.elapsed_ms)

    check_vector_dictionary(
        stats.document_count,
        dictionary_size,
        allow_toy_dictionary=config.allow_toy_dictionary,
    )
    return stats
