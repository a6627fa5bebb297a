"""
Signal aggregation: turns similarity, classifier and heuristic signals into a
single moderation verdict.

Content creation must never block on the classifier. The similarity check and
the classifier call run concurrently on executor threads; the classifier is
additionally bounded by ``evaluation_timeout_seconds`` and any failure falls
back to the local signals with reduced confidence.
"""

import asyncio
import enum
import functools
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from fastapi import Depends

from moderation_pipeline.clients.classifier_client import (
    HUMAN_DEFAULT,
    ClassificationOutcome,
    ClassificationResult,
    ClassifierClient,
)
from moderation_pipeline.core.config import Settings, settings as default_settings
from moderation_pipeline.core.exceptions import ClassifierUnavailable, SimilarityTimeout
from moderation_pipeline.core.logger import logger
from moderation_pipeline.db.session import SessionLocal
from moderation_pipeline.schemas.moderation import ContentToCheck, ModerationVerdictResponse
from moderation_pipeline.services.corpus_store import (
    CorpusStore,
    InMemoryCorpusStore,
    SqlCorpusStore,
)
from moderation_pipeline.services.heuristics import KIND_POLICIES, HeuristicSignals, analyze
from moderation_pipeline.services.similarity import DuplicateCheck, check_duplicate

# Ambiguous heuristic hits never claim more certainty than this
REVIEW_CONFIDENCE_CAP = 0.6
REVIEW_CONFIDENCE_FLOOR = 0.3

NO_DUPLICATE = DuplicateCheck(is_match=False, score=0.0)


class VerdictStatus(str, enum.Enum):
    approved = "approved"
    pending_review = "pending_review"
    flagged = "flagged"
    rejected = "rejected"


@dataclass
class ModerationVerdict:
    status: VerdictStatus
    confidence: float
    reasons: List[str]
    plagiarism: DuplicateCheck = NO_DUPLICATE
    ai_content: ClassificationOutcome = HUMAN_DEFAULT
    classifier_available: bool = True
    citation_required: bool = False
    citations_missing: bool = False
    spam_score: float = 0.0
    signals: Optional[HeuristicSignals] = None
    appeal_deadline: Optional[datetime] = None
    degraded_signals: List[str] = field(default_factory=list)

    def to_response(self) -> ModerationVerdictResponse:
        return ModerationVerdictResponse(
            status=self.status.value,
            confidence=self.confidence,
            reasons=self.reasons,
            requires_citations=self.citations_missing,
            plagiarism=self.plagiarism.as_dict(),
            ai_content=self.ai_content.as_dict(),
            appeal_deadline=self.appeal_deadline,
        )

    def signals_dict(self) -> dict:
        return {
            "heuristics": self.signals.as_dict() if self.signals else None,
            "plagiarism": self.plagiarism.as_dict(),
            "ai_content": self.ai_content.as_dict(),
            "degraded_signals": self.degraded_signals,
        }


class ModerationEngine:
    def __init__(
        self,
        corpus: CorpusStore,
        classifier: ClassifierClient,
        config: Optional[Settings] = None,
    ):
        self.corpus = corpus
        self.classifier = classifier
        self.config = config or default_settings

    async def evaluate(self, content: ContentToCheck, record: bool = True) -> ModerationVerdict:
        """
        Evaluate one submission.

        Never raises for signal failures: a broken or slow corpus or classifier
        only lowers the verdict's confidence. With ``record=False`` the text is
        not added to the duplicate corpus.
        """
        text = content.canonical_text
        policy = KIND_POLICIES[content.kind]

        signals = analyze(content.kind, text, content.links, content.account_age_days)

        degraded: List[str] = []
        if policy.originality_checks:
            plagiarism, classification = await self._originality_checks(content, text, degraded, record)
        else:
            plagiarism, classification = NO_DUPLICATE, ClassificationResult(outcome=HUMAN_DEFAULT)

        verdict = self._decide(content, signals, plagiarism, classification, degraded)

        logger.info(
            "Moderation verdict computed",
            extra={
                "author_id": content.author_id,
                "verdict": verdict.status.value,
                "confidence": verdict.confidence,
                "kind": content.kind.value,
            }
        )
        return verdict

    async def _originality_checks(
        self,
        content: ContentToCheck,
        text: str,
        degraded: List[str],
        record: bool = True,
    ) -> Tuple[DuplicateCheck, ClassificationResult]:
        loop = asyncio.get_running_loop()
        deadline = time.monotonic() + self.config.evaluation_timeout_seconds
        similarity_future = loop.run_in_executor(
            None,
            functools.partial(
                check_duplicate,
                text,
                self.corpus,
                author_id=content.author_id,
                kind=content.kind,
                threshold=self.config.similarity_threshold,
                max_chars=self.config.max_compare_chars,
                exclude_own=self.config.similarity_exclude_own_submissions,
                record=record,
                deadline=deadline,
            ),
        )
        classifier_future = loop.run_in_executor(None, self.classifier.classify, text)

        plagiarism, classification = await asyncio.gather(
            self._similarity_within_budget(similarity_future),
            self._classify_within_budget(classifier_future),
            return_exceptions=True,
        )

        if isinstance(plagiarism, Exception):
            logger.warning(
                f"Similarity check failed, continuing without it: {str(plagiarism)}",
                extra={"author_id": content.author_id}
            )
            degraded.append("similarity")
            plagiarism = NO_DUPLICATE

        if isinstance(classification, Exception):
            classification = ClassificationResult(
                error=ClassifierUnavailable(str(classification), provider=self.classifier.provider)
            )
        if not classification.ok:
            logger.warning(
                f"Classifier unavailable, using local signals only: {classification.error.message}",
                extra={
                    "author_id": content.author_id,
                    "error_code": classification.error.error_code,
                }
            )
            degraded.append("classifier")

        return plagiarism, classification

    async def _similarity_within_budget(self, future) -> DuplicateCheck:
        try:
            return await asyncio.wait_for(future, timeout=self.config.evaluation_timeout_seconds)
        except asyncio.TimeoutError:
            raise SimilarityTimeout(
                f"Similarity check exceeded the {self.config.evaluation_timeout_seconds}s evaluation budget"
            )

    async def _classify_within_budget(self, future) -> ClassificationResult:
        try:
            return await asyncio.wait_for(future, timeout=self.config.evaluation_timeout_seconds)
        except asyncio.TimeoutError:
            return ClassificationResult(
                error=ClassifierUnavailable(
                    f"Classifier exceeded the {self.config.evaluation_timeout_seconds}s evaluation budget",
                    provider=self.classifier.provider,
                )
            )

    def _decide(
        self,
        content: ContentToCheck,
        signals: HeuristicSignals,
        plagiarism: DuplicateCheck,
        classification: ClassificationResult,
        degraded: List[str],
    ) -> ModerationVerdict:
        cfg = self.config
        outcome = classification.outcome_or_default()
        spam_score = signals.spam_score

        ai_flag = outcome.is_generated and outcome.score > cfg.ai_confidence_threshold
        citation_required = plagiarism.is_match or ai_flag
        citations_missing = citation_required and not content.has_citations

        originality_reasons = []
        if plagiarism.is_match:
            originality_reasons.append(
                f"plagiarism: {plagiarism.score * 100:.0f}% similar to a previously submitted text"
            )
        if ai_flag:
            originality_reasons.append(
                f"ai_content: classifier reports machine authorship ({outcome.score * 100:.0f}%)"
            )

        if spam_score >= cfg.reject_threshold:
            status = VerdictStatus.rejected
            confidence = spam_score
            reasons = (signals.reasons or ["automated_spam_detection: combined spam signals"]) + originality_reasons
        elif citation_required:
            confidence = max(
                plagiarism.score if plagiarism.is_match else 0.0,
                outcome.score if ai_flag else 0.0,
            )
            reasons = originality_reasons
            if citations_missing:
                status = VerdictStatus.flagged
                reasons.append("citations: sources must be cited before this content is accepted")
            else:
                status = VerdictStatus(cfg.cited_content_status)
                reasons.append(
                    f"citations: {len(content.citations)} citation(s) supplied, held for review"
                )
        elif spam_score >= cfg.review_threshold or signals.anomaly:
            status = VerdictStatus.pending_review
            confidence = min(max(spam_score, REVIEW_CONFIDENCE_FLOOR), REVIEW_CONFIDENCE_CAP)
            reasons = signals.reasons or ["routine_quality_check: elevated spam signals"]
        else:
            status = VerdictStatus.approved
            confidence = 1.0 - spam_score
            reasons = ["automated_approval"]

        if degraded:
            confidence *= cfg.classifier_unavailable_penalty

        appeal_deadline = None
        if status != VerdictStatus.approved:
            appeal_deadline = datetime.utcnow() + timedelta(days=cfg.appeal_window_days)

        return ModerationVerdict(
            status=status,
            confidence=round(min(max(confidence, 0.0), 1.0), 4),
            reasons=reasons,
            plagiarism=plagiarism,
            ai_content=outcome,
            classifier_available=classification.ok,
            citation_required=citation_required,
            citations_missing=citations_missing,
            spam_score=spam_score,
            signals=signals,
            appeal_deadline=appeal_deadline,
            degraded_signals=degraded,
        )


# ---- Dependencies ----
@functools.lru_cache
def get_corpus_store() -> CorpusStore:
    if default_settings.corpus_backend == "memory":
        return InMemoryCorpusStore(max_entries=default_settings.corpus_max_entries)
    return SqlCorpusStore(SessionLocal, max_entries=default_settings.corpus_max_entries)


@functools.lru_cache
def get_classifier_client() -> ClassifierClient:
    return ClassifierClient()


def get_moderation_engine(
    corpus: CorpusStore = Depends(get_corpus_store),
    classifier: ClassifierClient = Depends(get_classifier_client),
) -> ModerationEngine:
    return ModerationEngine(corpus, classifier)
