"""Sentence boundary splitter for streaming text-to-speech."""

from __future__ import annotations

import re
from collections.abc import AsyncIterator

# Sentence-ending punctuation followed by whitespace.
_SENTENCE_END = re.compile(r"[.!?][\s]")

DEFAULT_MIN_CHUNK_CHARS = 20


class SentenceChunker:
    """Incremental sentence splitter fed with streamed text deltas.

    :meth:`push` returns every sentence completed by the new delta once
    the buffered text is at least *min_chunk_chars* long, so very short
    fragments like ``"Hi."`` are merged with what follows instead of
    being synthesized alone.  :meth:`flush` returns the remainder at end
    of stream.
    """

    def __init__(self, min_chunk_chars: int = DEFAULT_MIN_CHUNK_CHARS) -> None:
        self._min_chunk_chars = min_chunk_chars
        self._buf = ""

    @property
    def pending(self) -> str:
        return self._buf

    def push(self, delta: str) -> list[str]:
        self._buf += delta
        sentences: list[str] = []
        while True:
            match = _SENTENCE_END.search(self._buf, self._min_chunk_chars)
            if match is None:
                break
            # Split right after the punctuation (before the trailing space)
            split_pos = match.start() + 1
            sentence = self._buf[:split_pos].strip()
            self._buf = self._buf[split_pos:].lstrip()
            if sentence:
                sentences.append(sentence)
        return sentences

    def flush(self) -> list[str]:
        remaining = self._buf.strip()
        self._buf = ""
        return [remaining] if remaining else []

    def reset(self) -> None:
        self._buf = ""


async def split_sentences(
    token_stream: AsyncIterator[str],
    min_chunk_chars: int = DEFAULT_MIN_CHUNK_CHARS,
) -> AsyncIterator[str]:
    """Buffer streaming tokens and yield complete sentences.

    On stream end any remaining buffered text is yielded as-is (the final
    partial sentence).
    """
    chunker = SentenceChunker(min_chunk_chars)
    async for token in token_stream:
        for sentence in chunker.push(token):
            yield sentence
    for sentence in chunker.flush():
        yield sentence
