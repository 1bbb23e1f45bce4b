"""
Headline tagging: ordered regex rules for region, markets and themes.
"""
from news_terminal.tagger.classifier import (
    Classification,
    ClassifierStats,
    NewsClassifier,
    classify,
    tags_for,
)
from news_terminal.tagger.rules import RULES_VERSION

__all__ = [
    "Classification",
    "ClassifierStats",
    "NewsClassifier",
    "RULES_VERSION",
    "classify",
    "tags_for",
]
