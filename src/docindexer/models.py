"""Core docindexer data models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TextIO

import numpy as np


class WriteMode(str, Enum):
    """How documents reach the index for the whole run."""

    CREATE = "create"
    UPSERT = "upsert"


@dataclass(slots=True)
class DocumentRecord:
    """One file ready to be handed to the index writer.

    ``content`` is an open text stream; the record is only valid while the
    stream is open.
    """

    path: str
    modified: int
    content: TextIO
    vector: np.ndarray | None = None


@dataclass(slots=True)
class StoredDocument:
    """Stored attributes of an indexed document."""

    path: str
    modified: int
    vector: np.ndarray | None = None


@dataclass(slots=True)
class FileOutcome:
    """Result of indexing a single file."""

    path: Path
    status: str
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"
