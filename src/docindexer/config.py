"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from docindexer.models import WriteMode

DEFAULT_INDEX_PATH = Path("index")
INDEX_DB_NAME = "index.db"
KNN_DICT_NAME = "knn-dict"
SMOKETESTER_ENV = "DOCINDEXER_SMOKETESTER"


def _smoketester_enabled() -> bool:
    """Whether the toy dictionary check is switched off via the environment."""
    return bool(os.environ.get(SMOKETESTER_ENV))


@dataclass(slots=True)
class AppConfig:
    index_path: Path = DEFAULT_INDEX_PATH
    docs_path: Path | None = None
    knn_dict_path: Path | None = None
    mode: WriteMode = WriteMode.CREATE
    allow_toy_dictionary: bool = field(default_factory=_smoketester_enabled)

    def resolve_index_path(self, base_dir: Path | None = None) -> Path:
        if Path(self.index_path).is_absolute() or base_dir is None:
            return Path(self.index_path)
        return base_dir / self.index_path
