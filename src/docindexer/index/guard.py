"""Post-run check against indexing a real corpus with a sample dictionary."""

from __future__ import annotations

import logging

from docindexer.exceptions import ToyDictionaryError

LOGGER = logging.getLogger(__name__)

MAX_TOY_DOCUMENTS = 100
MIN_DICTIONARY_BYTES = 1_000_000


def is_toy_dictionary_run(document_count: int, dictionary_size: int) -> bool:
    return document_count > MAX_TOY_DOCUMENTS and dictionary_size < MIN_DICTIONARY_BYTES


def check_vector_dictionary(
    document_count: int, dictionary_size: int, *, allow_toy_dictionary: bool = False
) -> None:
    """Raise :class:`ToyDictionaryError` for large runs against a tiny dictionary.

    ``dictionary_size`` is 0 when no dictionary was used.
    """
    if not is_toy_dictionary_run(document_count, dictionary_size):
        return
    if allow_toy_dictionary:
        LOGGER.warning(
            "Indexed %d documents with a %d byte vector dictionary; check skipped",
            document_count,
            dictionary_size,
        )
        return
    raise ToyDictionaryError(document_count, dictionary_size)
