"""Content agents for the Dailies pipeline.

Classifier:
    Assigns one category per captured item through the provider fallback
    chain. Low-confidence answers go to manual review.

PoliticalAnalyzer:
    Bias, quality, credibility, loaded language and summaries for items
    accepted into the flagged category.

GeneralProcessor:
    Keywords, extractive summary and reading time for completed items
    outside the flagged category. No provider calls.

Example:
    >>> from agents import Classifier, PoliticalAnalyzer
    >>> classifier = Classifier(manager, db, config)
    >>> analyzer = PoliticalAnalyzer(manager, db, config)
"""

from agents.classifier import Classifier
from agents.general_processor import GeneralProcessor
from agents.political_analyzer import PoliticalAnalyzer

__all__ = [
    "Classifier",
    "GeneralProcessor",
    "PoliticalAnalyzer",
]
