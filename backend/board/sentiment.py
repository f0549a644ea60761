"""
Keyword sentiment policy.

A fixed substring matcher, not a statistical model. The word lists are
data; pass a different SentimentPolicy to tune them.

A word counts as a hit when it *contains* a keyword ("loved" hits "love").
Any toxic hit makes the text negative regardless of the other counts.
"""

from dataclasses import dataclass, field
from typing import FrozenSet

from .models import Post

DEFAULT_POSITIVE_WORDS = frozenset({
    'love', 'great', 'awesome', 'excellent', 'happy', 'good', 'wonderful', 'amazing',
})
DEFAULT_NEGATIVE_WORDS = frozenset({
    'hate', 'bad', 'terrible', 'awful', 'sad', 'angry', 'horrible', 'worst',
})
DEFAULT_TOXIC_WORDS = frozenset({
    'stupid', 'idiot', 'dumb', 'kill', 'die',
})


@dataclass(frozen=True)
class SentimentPolicy:
    positive_words: FrozenSet[str] = field(default=DEFAULT_POSITIVE_WORDS)
    negative_words: FrozenSet[str] = field(default=DEFAULT_NEGATIVE_WORDS)
    toxic_words: FrozenSet[str] = field(default=DEFAULT_TOXIC_WORDS)

    @staticmethod
    def _hits(words, keywords) -> int:
        return sum(1 for word in words if any(k in word for k in keywords))

    def analyze(self, text: str) -> str:
        """Classify ``text`` as one of Post.Sentiment's values."""
        words = text.lower().split()

        if self._hits(words, self.toxic_words):
            return Post.Sentiment.NEGATIVE

        positive = self._hits(words, self.positive_words)
        negative = self._hits(words, self.negative_words)
        if positive > negative:
            return Post.Sentiment.POSITIVE
        if negative > positive:
            return Post.Sentiment.NEGATIVE
        return Post.Sentiment.NEUTRAL


DEFAULT_POLICY = SentimentPolicy()
