"""
Anti-spam rules for part request intake.

SpamGuard is stateless: it evaluates a candidate submission against a
snapshot of recent request rows (loaded by the repository inside the
submission transaction) and returns a verdict. There are no counters.

Rules, first match wins:
    1. duplicate: same phone + make + model + part, not completed, within 24h
    2. hourly: >= 3 requests from the same phone in the trailing 60 minutes
    3. daily: >= 10 requests from the same account in the trailing 24 hours

The suspicious-content heuristic is separate. It never blocks a request,
it only routes it to the moderation classifier.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.config import settings
from app.features.part_requests.domain.models import (
    PartRequestDraft,
    RequestStatus,
    SpamReason,
    SpamVerdict,
    SubmissionHistoryEntry,
    SuspicionReport,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

HOURLY_WINDOW = timedelta(hours=1)
DAILY_WINDOW = timedelta(hours=24)


def _normalize(value: str | None) -> str:
    return " ".join((value or "").lower().split())


def _format_wait(retry_after: timedelta) -> str:
    minutes = int(retry_after.total_seconds() // 60)
    if minutes >= 120 and minutes % 60 == 0:
        return f"{minutes // 60} hours"
    return f"{minutes} minutes"


@dataclass(slots=True)
class SpamLimits:
    duplicate_window: timedelta
    hourly_phone_limit: int
    daily_user_limit: int

    @classmethod
    def from_settings(cls) -> "SpamLimits":
        return cls(
            duplicate_window=timedelta(hours=settings.SPAM_DUPLICATE_WINDOW_HOURS),
            hourly_phone_limit=settings.SPAM_HOURLY_PHONE_LIMIT,
            daily_user_limit=settings.SPAM_DAILY_USER_LIMIT,
        )

    @property
    def lookback(self) -> timedelta:
        """Widest window any rule needs, used to bound the history query."""
        return max(self.duplicate_window, HOURLY_WINDOW, DAILY_WINDOW)


class SpamGuard:
    """Duplicate and rate-window checks over recent request history."""

    def __init__(
        self,
        limits: SpamLimits | None = None,
        spam_keywords: Iterable[str] | None = None,
        expensive_part_keywords: Iterable[str] | None = None,
    ):
        self.limits = limits or SpamLimits.from_settings()
        self.spam_keywords = [
            k.lower() for k in (spam_keywords if spam_keywords is not None else settings.SPAM_KEYWORDS)
        ]
        self.expensive_part_keywords = [
            k.lower()
            for k in (
                expensive_part_keywords
                if expensive_part_keywords is not None
                else settings.EXPENSIVE_PART_KEYWORDS
            )
        ]

    def evaluate(
        self,
        draft: PartRequestDraft,
        history: Iterable[SubmissionHistoryEntry],
        now: datetime,
    ) -> SpamVerdict:
        """
        Decide whether a submission may be created.

        Args:
            draft: The candidate submission
            history: Recent rows matching the draft's phone or owner
            now: Evaluation time; windows are measured back from here

        Returns:
            SpamVerdict with allowed=False, a reason and retry_after on rejection
        """
        entries = list(history)

        if self._is_duplicate(draft, entries, now):
            return SpamVerdict(
                allowed=False,
                reason=SpamReason.DUPLICATE_REQUEST,
                retry_after=self.limits.duplicate_window,
                message="Similar request already exists from this phone number",
            )

        hourly_start = now - HOURLY_WINDOW
        phone_count = sum(
            1 for e in entries if e.phone == draft.phone and e.created_at >= hourly_start
        )
        if phone_count >= self.limits.hourly_phone_limit:
            return SpamVerdict(
                allowed=False,
                reason=SpamReason.HOURLY_RATE_LIMIT,
                retry_after=HOURLY_WINDOW,
                message=f"Too many requests. Try again in {_format_wait(HOURLY_WINDOW)}.",
            )

        daily_start = now - DAILY_WINDOW
        user_count = sum(
            1 for e in entries if e.owner_id == draft.owner_id and e.created_at >= daily_start
        )
        if user_count >= self.limits.daily_user_limit:
            return SpamVerdict(
                allowed=False,
                reason=SpamReason.DAILY_RATE_LIMIT,
                retry_after=DAILY_WINDOW,
                message=f"Too many requests. Try again in {_format_wait(DAILY_WINDOW)}.",
            )

        return SpamVerdict(allowed=True)

    def _is_duplicate(
        self, draft: PartRequestDraft, entries: list[SubmissionHistoryEntry], now: datetime
    ) -> bool:
        window_start = now - self.limits.duplicate_window
        make = _normalize(draft.car_make)
        model = _normalize(draft.car_model)
        part = _normalize(draft.part_name)

        return any(
            e.phone == draft.phone
            and e.status != RequestStatus.COMPLETED
            and e.created_at >= window_start
            and _normalize(e.car_make) == make
            and _normalize(e.car_model) == model
            and _normalize(e.part_name) == part
            for e in entries
        )

    def check_suspicious(self, draft: PartRequestDraft) -> SuspicionReport:
        """Flag spam keywords, or an expensive part named without a description."""
        part = (draft.part_name or "").lower()
        description = (draft.description or "").strip().lower()
        reasons = []

        hits = [k for k in self.spam_keywords if k in part or k in description]
        if hits:
            reasons.append(f"spam_keywords:{','.join(hits)}")

        expensive = [k for k in self.expensive_part_keywords if k in part]
        if expensive and not description:
            reasons.append(f"expensive_part_without_description:{','.join(expensive)}")

        if reasons:
            logger.info("Submission flagged as suspicious", owner_id=draft.owner_id, reasons=reasons)

        return SuspicionReport(suspicious=bool(reasons), reasons=reasons)


spam_guard = SpamGuard()
