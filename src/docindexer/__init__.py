"""docindexer - index a directory tree of text files for hybrid search."""

__version__ = "0.1.0"
