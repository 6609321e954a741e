"""Text helpers: streaming word tokenization."""

from __future__ import annotations

import re
from typing import Iterator, TextIO

MAX_TOKEN_LENGTH = 255
READ_CHARS = 1 << 16

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)
_NON_WORD_RE = re.compile(r"\W", re.UNICODE)


def tokenize(text: str) -> list[str]:
    """Split text into lower-cased word tokens."""
    return [
        token.lower()
        for token in _TOKEN_RE.findall(text)
        if len(token) <= MAX_TOKEN_LENGTH
    ]


def _split_trailing_word(buffer: str) -> tuple[str, str]:
    """Split ``buffer`` before the word that touches its end, if any."""
    # Searching the reversed buffer keeps this linear in the buffer length.
    match = _NON_WORD_RE.search(buffer[::-1])
    cut = 0 if match is None else len(buffer) - match.start()
    return buffer[:cut], buffer[cut:]


def iter_tokens(stream: TextIO, *, read_chars: int = READ_CHARS) -> Iterator[str]:
    """Yield lower-cased word tokens from a text stream.

    Reads ``read_chars`` characters at a time. A word cut by the read boundary
    is carried over to the next read so it is never split in two. A word that
    grows past ``MAX_TOKEN_LENGTH`` is dropped as it is read, so at most
    ``read_chars + MAX_TOKEN_LENGTH`` characters are held at once.
    """
    carry = ""
    skipping = False
    while True:
        part = stream.read(read_chars)
        if not part:
            break
        if skipping:
            boundary = _NON_WORD_RE.search(part)
            if boundary is None:
                continue
            part = part[boundary.start() :]
            skipping = False

        head, tail = _split_trailing_word(carry + part)
        yield from tokenize(head)
        if len(tail) > MAX_TOKEN_LENGTH:
            carry, skipping = "", True
        else:
            carry = tail

    if carry:
        yield from tokenize(carry)
