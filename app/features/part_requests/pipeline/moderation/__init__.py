from .adjudicator import ModerationAdjudicator, moderation_adjudicator
from .classifier import (
    ModerationClassifier,
    ParsedVerdict,
    UnparsedVerdict,
    moderation_classifier,
    parse_verdict,
)

__all__ = [
    "ModerationAdjudicator",
    "ModerationClassifier",
    "ParsedVerdict",
    "UnparsedVerdict",
    "moderation_adjudicator",
    "moderation_classifier",
    "parse_verdict",
]
