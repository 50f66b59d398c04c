"""
Moderation adjudicator.

Turns a classifier verdict into a moderation outcome. Every failure path
degrades to needs_human_review at confidence 0.5, so a broken or slow
classifier can hold a request back but never auto-approve it.
"""

from app.config import settings
from app.features.part_requests.domain.errors import UpstreamUnavailable
from app.features.part_requests.domain.models import (
    ModerationDecision,
    ModerationOutcome,
    PartRequest,
)
from app.features.part_requests.pipeline.moderation.classifier import (
    ModerationClassifier,
    ParsedVerdict,
    moderation_classifier,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

DEGRADED_CONFIDENCE = 0.5


class ModerationAdjudicator:
    def __init__(
        self,
        classifier: ModerationClassifier | None = None,
        confidence_threshold: float | None = None,
    ):
        self.classifier = classifier or moderation_classifier
        self.confidence_threshold = (
            confidence_threshold
            if confidence_threshold is not None
            else settings.MODERATION_CONFIDENCE_THRESHOLD
        )

    async def adjudicate(self, request: PartRequest) -> ModerationOutcome:
        """Classify a request; never raises."""
        try:
            verdict = await self.classifier.classify(request)
        except UpstreamUnavailable as e:
            logger.warning("Moderation degraded to human review", request_id=request.id, error=str(e))
            return ModerationOutcome(
                decision=ModerationDecision.NEEDS_HUMAN_REVIEW,
                confidence=DEGRADED_CONFIDENCE,
                rationale=f"Classifier unavailable: {e}",
                degraded=True,
            )
        except Exception as e:
            logger.error(
                "Unexpected classifier failure, degrading to human review",
                request_id=request.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ModerationOutcome(
                decision=ModerationDecision.NEEDS_HUMAN_REVIEW,
                confidence=DEGRADED_CONFIDENCE,
                rationale="Classifier call failed",
                degraded=True,
            )

        if not isinstance(verdict, ParsedVerdict):
            logger.warning(
                "Classifier response could not be parsed",
                request_id=request.id,
                error=verdict.error,
            )
            return ModerationOutcome(
                decision=ModerationDecision.NEEDS_HUMAN_REVIEW,
                confidence=DEGRADED_CONFIDENCE,
                rationale="AI response could not be parsed",
                degraded=True,
            )

        logger.info(
            "Moderation verdict received",
            request_id=request.id,
            decision=verdict.decision.value,
            confidence=verdict.confidence,
        )
        return ModerationOutcome(
            decision=verdict.decision,
            confidence=verdict.confidence,
            rationale=verdict.rationale,
        )

    def should_publish(self, outcome: ModerationOutcome) -> bool:
        """Auto-publish only on approval strictly above the threshold."""
        return (
            outcome.decision == ModerationDecision.APPROVED
            and outcome.confidence > self.confidence_threshold
        )

    def should_block(self, outcome: ModerationOutcome) -> bool:
        """Confident rejections are blocked; unsure ones go to a human."""
        return (
            outcome.decision == ModerationDecision.REJECTED
            and outcome.confidence > self.confidence_threshold
        )


moderation_adjudicator = ModerationAdjudicator()
