"""
OpenAI-backed classifier for part request moderation.

The model is asked for a JSON verdict, but its output is treated as
untrusted: `parse_verdict` either returns a `ParsedVerdict` or an
`UnparsedVerdict`, never a half-filled structure. Transport failures and
timeouts surface as `UpstreamUnavailable`.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any

import openai
from openai import AsyncOpenAI

from app.config import settings
from app.features.part_requests.domain.errors import UpstreamUnavailable
from app.features.part_requests.domain.models import ModerationDecision, PartRequest
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ParsedVerdict:
    decision: ModerationDecision
    confidence: float
    rationale: str


@dataclass(frozen=True, slots=True)
class UnparsedVerdict:
    raw: str
    error: str


ClassifierVerdict = ParsedVerdict | UnparsedVerdict


SYSTEM_MESSAGE = (
    "You are a careful AI moderator that reviews car part requests for a parts "
    "marketplace. Return ONLY a JSON object, no prose and no markdown."
)


def build_user_message(request: PartRequest) -> str:
    """Fixed evaluation rubric plus the request fields."""
    return f"""### Request
- Car: {request.car_make} {request.car_model} {request.car_year}
- Part needed: {request.part_name}
- Description: {request.description or 'No description provided'}
- Location: {request.location}
- Phone: {request.phone}

### Review criteria
1. Is this a legitimate car part request?
2. Is the language appropriate (no spam, no offensive content)?
3. Are the vehicle details realistic and properly formatted?
4. Is the part name reasonable and not suspicious?
5. Is the phone number in a valid format?

### Response format
{{
  "decision": "approved" | "rejected" | "needs_human_review",
  "confidence": 0.0-1.0,
  "rationale": "Brief explanation of the decision"
}}

Be conservative: if anything seems suspicious or unclear, choose "needs_human_review"."""


def parse_verdict(raw: str | None) -> ClassifierVerdict:
    """
    Coerce a model response into a verdict.

    Anything that is not a JSON object with a known decision, a numeric
    confidence in [0, 1] and a string rationale is Unparsed.
    """
    text = (raw or "").strip()
    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        return UnparsedVerdict(raw=text[:500], error=f"invalid JSON: {e}")

    if not isinstance(payload, dict):
        return UnparsedVerdict(raw=text[:500], error="response is not a JSON object")

    try:
        decision = ModerationDecision(payload.get("decision"))
    except ValueError:
        return UnparsedVerdict(raw=text[:500], error=f"unknown decision: {payload.get('decision')!r}")

    confidence = payload.get("confidence")
    # bool is an int subclass; "true" is not a confidence
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        return UnparsedVerdict(raw=text[:500], error="confidence is not a number")
    if not 0.0 <= float(confidence) <= 1.0:
        return UnparsedVerdict(raw=text[:500], error=f"confidence out of range: {confidence}")

    rationale = payload.get("rationale", payload.get("reasoning"))
    if not isinstance(rationale, str):
        return UnparsedVerdict(raw=text[:500], error="rationale missing")

    return ParsedVerdict(decision=decision, confidence=float(confidence), rationale=rationale.strip())


class ModerationClassifier:
    """Thin async wrapper around the chat completions API."""

    def __init__(self, client: Any | None = None, timeout_seconds: float | None = None):
        self._client = client
        self.timeout_seconds = timeout_seconds or settings.MODERATION_TIMEOUT_SECONDS

    def _get_client(self) -> Any:
        if self._client is None:
            if not settings.OPENAI_API_KEY:
                raise UpstreamUnavailable("OPENAI_API_KEY not configured")
            self._client = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=self.timeout_seconds,
                max_retries=0,
            )
            logger.info("OpenAI moderation client initialized", model=settings.OPENAI_MODEL)
        return self._client

    async def classify(self, request: PartRequest) -> ClassifierVerdict:
        """
        Ask the model for a verdict on one request.

        Raises:
            UpstreamUnavailable: timeout, API error, or missing configuration
        """
        client = self._get_client()

        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(
                    model=settings.OPENAI_MODEL,
                    messages=[
                        {"role": "system", "content": SYSTEM_MESSAGE},
                        {"role": "user", "content": build_user_message(request)},
                    ],
                    max_tokens=settings.OPENAI_MAX_TOKENS,
                    temperature=settings.OPENAI_TEMPERATURE,
                    response_format={"type": "json_object"},
                ),
                timeout=self.timeout_seconds,
            )
        except (TimeoutError, openai.APITimeoutError) as e:
            logger.warning(
                "Moderation classifier timed out",
                request_id=request.id,
                timeout=self.timeout_seconds,
            )
            raise UpstreamUnavailable(f"Classifier timed out after {self.timeout_seconds}s") from e
        except openai.APIError as e:
            logger.warning(
                "Moderation classifier API error",
                request_id=request.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise UpstreamUnavailable(f"Classifier error: {e}") from e

        if not response.choices or not response.choices[0].message.content:
            return UnparsedVerdict(raw="", error="empty response")

        content = response.choices[0].message.content
        logger.debug(
            "Moderation classifier responded",
            request_id=request.id,
            response_length=len(content),
            usage_tokens=response.usage.total_tokens if response.usage else 0,
        )
        return parse_verdict(content)


moderation_classifier = ModerationClassifier()
