"""
Due-From-Me classification for mail threads.

Primary path: OpenAI structured output validated by ThreadClassification.
Fallback path: deterministic regex heuristic, used whenever the model call
fails for any reason (network, refusal, malformed or out-of-range output).
classify() never raises.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass

from ..clients.openai_client import OpenAIClient
from ..errors import ClassificationError
from ..logging import get_logger
from ..models.items import ActionItemType, default_suggested_action
from ..models.sources import ParsedThread
from ..prompts.classify_thread import ThreadClassification, build_classification_prompt

logger = get_logger(__name__)


@dataclass
class Classification:
    """Classification result for one thread. type=None means nothing is due."""

    type: ActionItemType | None
    confidence: int
    rationale: str
    blocking_who: str | None = None
    suggested_action: str | None = None
    used_fallback: bool = False


# =============================================================================
# Fallback heuristic
# =============================================================================

# Ordered by priority; first match wins
FALLBACK_RULES: list[tuple[ActionItemType, re.Pattern[str], int]] = [
    (
        ActionItemType.APPROVAL,
        re.compile(r'please\s+approve|needs?\s+(your\s+)?approval|sign[\s-]?off|for\s+(your\s+)?approval'),
        60,
    ),
    (
        ActionItemType.DECISION,
        re.compile(r'please\s+(decide|choose)|which\s+option|need\s+(your\s+)?(decision|input)'),
        55,
    ),
    (
        ActionItemType.FOLLOW_UP,
        re.compile(
            r'following\s+up|circling\s+back|any\s+updates?\s+on|checking\s+in\s+on'
            r'|gentle\s+reminder|as\s+you\s+(promised|mentioned)'
        ),
        50,
    ),
    (
        ActionItemType.REPLY,
        re.compile(
            r'please\s+(reply|respond)|waiting\s+(for|on)\s+(your|a)\s+(reply|response)'
            r'|could\s+you\s+(please\s+)?(confirm|clarify)'
        ),
        50,
    ),
]


def fallback_classify(thread: ParsedThread, owner_email: str) -> Classification:
    """Rule-based classification over subject + last message body."""
    if not thread.messages:
        return Classification(None, 0, 'Thread has no messages', used_fallback=True)

    if thread.last_message_from(owner_email):
        return Classification(None, 0, 'Owner sent the last message', used_fallback=True)

    last = thread.last_message
    text = f'{thread.subject} {last.body}'.lower()

    for item_type, pattern, confidence in FALLBACK_RULES:
        match = pattern.search(text)
        if match:
            return Classification(
                type=item_type,
                confidence=confidence,
                rationale=f'Heuristic: matched {item_type.value} phrase "{match.group(0)}"',
                blocking_who=last.from_address or None,
                suggested_action=default_suggested_action(item_type),
                used_fallback=True,
            )

    return Classification(None, 0, 'No Due-From-Me indicators detected', used_fallback=True)


# =============================================================================
# ThreadClassifier
# =============================================================================


class ThreadClassifier:
    """
    Classifies threads with OpenAI, falling back to the heuristic.

    Usage:
        classifier = ThreadClassifier(openai_client)
        result = await classifier.classify(thread, owner_email)
        results = await classifier.classify_many(threads, owner_email, concurrency=10)
    """

    def __init__(
        self,
        openai_client: OpenAIClient | None,
        max_body_chars: int = 2000,
        temperature: float = 0.1,
        max_tokens: int = 300,
    ):
        """
        Args:
            openai_client: Structured-output client; None forces the heuristic
            max_body_chars: Per-message body truncation for the prompt
            temperature: Sampling temperature
            max_tokens: Response token ceiling
        """
        self.openai = openai_client
        self.max_body_chars = max_body_chars
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def classify(self, thread: ParsedThread, owner_email: str) -> Classification:
        """Classify one thread. Never raises."""
        if self.openai is None or not thread.messages:
            return fallback_classify(thread, owner_email)

        try:
            answer = await self.openai.chat_completion_structured(
                messages=build_classification_prompt(thread, owner_email, self.max_body_chars),
                response_model=ThreadClassification,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            if not isinstance(answer, ThreadClassification):
                raise ClassificationError(
                    'Unexpected classification response',
                    context={'response_type': type(answer).__name__},
                )
        except Exception as e:
            logger.warning(
                'classifier.model_failed',
                thread_id=thread.thread_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return fallback_classify(thread, owner_email)

        return self._from_answer(answer)

    @staticmethod
    def _from_answer(answer: ThreadClassification) -> Classification:
        if not answer.is_due_from_me or answer.type is None:
            return Classification(None, answer.confidence, answer.rationale)

        item_type = ActionItemType(answer.type)
        return Classification(
            type=item_type,
            confidence=answer.confidence,
            rationale=answer.rationale,
            blocking_who=answer.blocking_who,
            suggested_action=answer.suggested_action or default_suggested_action(item_type),
        )

    async def classify_many(
        self,
        threads: list[ParsedThread],
        owner_email: str,
        concurrency: int = 10,
    ) -> dict[str, Classification]:
        """
        Classify threads with at most `concurrency` in flight.

        A thread whose classification raises is logged and left out of the
        result; every other thread is unaffected.
        """
        semaphore = asyncio.Semaphore(concurrency)

        async def _bounded(thread: ParsedThread) -> Classification:
            async with semaphore:
                return await self.classify(thread, owner_email)

        outcomes = await asyncio.gather(
            *(_bounded(thread) for thread in threads),
            return_exceptions=True,
        )

        results: dict[str, Classification] = {}
        for thread, outcome in zip(threads, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    'classifier.thread_failed',
                    thread_id=thread.thread_id,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )
                continue
            results[thread.thread_id] = outcome
        return results
