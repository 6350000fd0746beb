"""Text-to-speech collaborator interface."""

from ganglia.voice.tts.base import TTSProvider
from ganglia.voice.tts.sentence_splitter import SentenceChunker, split_sentences

__all__ = ["SentenceChunker", "TTSProvider", "split_sentences"]
