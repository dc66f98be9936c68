"""
Sentiment scoring for journal entries.

Scores come straight from NLTK's VADER analyzer: the normalized ``compound``
value in [-1, 1], which already weighs negation ("not happy"), intensifiers
and punctuation. The analyzer is built up front so a missing lexicon stops the
app at start-up instead of failing inside a request.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import nltk
from nltk.sentiment.vader import SentimentIntensityAnalyzer
from nltk.tokenize import RegexpTokenizer

logger = logging.getLogger(__name__)


@dataclass
class SentimentResult:
    comparative: float
    positive: float = 0.0
    neutral: float = 0.0
    negative: float = 0.0
    tokens: List[str] = field(default_factory=list)


def load_vader_analyzer() -> SentimentIntensityAnalyzer:
    try:
        nltk.data.find('sentiment/vader_lexicon.zip')
    except LookupError:
        logger.info("Downloading NLTK vader_lexicon")
        nltk.download('vader_lexicon', quiet=True)

    # Raises LookupError when the download did not succeed
    return SentimentIntensityAnalyzer()


class ComparativeScorer:
    def __init__(self, analyzer: Optional[SentimentIntensityAnalyzer] = None):
        self.analyzer = analyzer or load_vader_analyzer()
        self.tokenizer = RegexpTokenizer(r"\w+")

    def tokenize(self, text: str) -> List[str]:
        return self.tokenizer.tokenize((text or "").lower())

    def analyze(self, text: str) -> SentimentResult:
        scores = self.analyzer.polarity_scores(text or "")
        return SentimentResult(
            comparative=scores.get('compound', 0.0),
            positive=scores.get('pos', 0.0),
            neutral=scores.get('neu', 0.0),
            negative=scores.get('neg', 0.0),
            tokens=self.tokenize(text),
        )

    def score(self, text: str) -> float:
        return self.analyze(text).comparative
