"""
Local sentiment fallback.

When the AI service can't score an entry, VADER's compound score is bucketed
onto the 1-5 mood scale so the entry still gets a mood.
"""

import logging
from typing import Optional, Dict, Any

import nltk
from nltk.sentiment.vader import SentimentIntensityAnalyzer

logger = logging.getLogger(__name__)

_analyzer: Optional[SentimentIntensityAnalyzer] = None


def get_analyzer() -> SentimentIntensityAnalyzer:
    """Create the VADER analyzer, downloading the lexicon on first use."""
    global _analyzer
    if _analyzer is None:
        try:
            nltk.data.find('sentiment/vader_lexicon.zip')
        except LookupError:
            logger.info("Downloading NLTK VADER lexicon...")
            nltk.download('vader_lexicon', quiet=True)
        _analyzer = SentimentIntensityAnalyzer()
    return _analyzer


def compound_to_mood(compound: float) -> int:
    """Bucket a compound score (-1 to 1) onto the 1-5 mood scale."""
    if compound >= 0.5:
        return 5
    elif compound >= 0.2:
        return 4
    elif compound > -0.2:
        return 3
    elif compound > -0.5:
        return 2
    return 1


def analyze_sentiment(text: str) -> Dict[str, Any]:
    """
    Analyze sentiment of text using VADER.
    Returns compound score (-1 to 1) and the matching mood score.
    """
    if not text or not text.strip():
        return {"compound": 0.0, "mood_score": 3}

    compound = get_analyzer().polarity_scores(text)["compound"]
    return {
        "compound": round(compound, 3),
        "mood_score": compound_to_mood(compound),
    }


def infer_mood(text: str) -> int:
    return analyze_sentiment(text)["mood_score"]
