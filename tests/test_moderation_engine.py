"""
Unit tests for the moderation signals, the verdict engine and the status
lifecycle. None of these touch the HTTP layer or the database.
"""

import time
from unittest.mock import Mock, patch

import pytest
import requests

from moderation_pipeline.clients.classifier_client import (
    HUMAN_DEFAULT,
    ClassificationOutcome,
    ClassificationResult,
    ClassifierClient,
    interpret_labels,
)
from moderation_pipeline.core.config import Settings
from moderation_pipeline.core.exceptions import (
    ClassifierUnavailable,
    ContentTooLargeException,
    DatabaseException,
    InvalidTargetState,
    SimilarityTimeout,
    ValidationException,
)
from moderation_pipeline.core.security import Actor, ensure_valid_text, sanitize_input
from moderation_pipeline.models.content_item import ContentKind, ModerationStatus
from moderation_pipeline.schemas.moderation import ContentToCheck
from moderation_pipeline.services.corpus_store import InMemoryCorpusStore
from moderation_pipeline.services.heuristics import (
    KIND_POLICIES,
    HeuristicSignals,
    analyze,
    detect_char_runs,
    detect_repetition,
)
from moderation_pipeline.services.moderation_engine import (
    NO_DUPLICATE,
    ModerationEngine,
    ModerationVerdict,
    VerdictStatus,
)
from moderation_pipeline.services.similarity import (
    best_match,
    check_duplicate,
    could_match,
    levenshtein_distance,
    similarity,
    trigrams,
)
from moderation_pipeline.services.state_machine import (
    ModerationEvent,
    initial_status,
    next_status,
)

POST_TEXT = (
    "I have been thinking about how community gardens change the way "
    "neighbours talk to each other on quiet weekend mornings."
)
OTHER_TEXT = (
    "Our library started lending seed packets last spring and the swap table "
    "has become a surprisingly lively meeting spot."
)
# Near-copies of this cost seconds each to measure in full
LONG_TEXT = " ".join(f"entry{i}" for i in range(600))


class FakeClassifier:
    provider = "fake"

    def __init__(self, result=None, delay=0.0, error=None):
        self.result = result or ClassificationResult(outcome=HUMAN_DEFAULT)
        self.delay = delay
        self.error = error
        self.calls = 0

    def classify(self, text):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


class BrokenCorpus(InMemoryCorpusStore):
    def snapshot(self, exclude_author=None):
        raise DatabaseException("corpus offline", operation="corpus_snapshot")


def generated(score):
    return ClassificationResult(outcome=ClassificationOutcome(
        is_generated=True, score=score, label="Fake", provider="fake"
    ))


def post(text=POST_TEXT, **extra):
    return ContentToCheck(kind=ContentKind.DISCUSSION_POST, text=text, author_id="author-1", **extra)


class TestSimilarity:
    """Test the edit-distance similarity engine."""

    def test_levenshtein_known_values(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("same", "same") == 0

    def test_bounds_and_symmetry(self):
        pairs = [("abc", "abd"), ("garden", "gardens"), ("", "text"), ("short", "a much longer text")]
        for a, b in pairs:
            score = similarity(a, b)
            assert 0.0 <= score <= 1.0
            assert score == similarity(b, a)

    def test_identical_and_empty(self):
        assert similarity(POST_TEXT, POST_TEXT) == 1.0
        assert similarity("", "") == 1.0
        assert similarity("", "abc") == 0.0

    def test_threshold_is_strict(self):
        base = "a" * 100
        assert similarity(base, "a" * 81 + "b" * 19) == pytest.approx(0.81)
        assert similarity(base, "a" * 79 + "b" * 21) == pytest.approx(0.79)

        corpus = InMemoryCorpusStore()
        corpus.append(base, author_id="someone", kind=ContentKind.DISCUSSION_POST)
        assert check_duplicate("a" * 81 + "b" * 19, corpus, threshold=0.8).is_match
        assert not check_duplicate("a" * 79 + "b" * 21, corpus, threshold=0.8).is_match

    def test_truncation(self):
        assert similarity("x" * 10 + "abc", "x" * 10 + "xyz", max_chars=10) == 1.0

    def test_empty_corpus_appends(self):
        corpus = InMemoryCorpusStore()

        result = check_duplicate(POST_TEXT, corpus, author_id="author-1")

        assert not result.is_match
        assert result.score == 0.0
        assert len(corpus) == 1

    def test_match_is_not_appended(self):
        corpus = InMemoryCorpusStore()
        check_duplicate(POST_TEXT, corpus, author_id="author-1")

        result = check_duplicate(POST_TEXT, corpus, author_id="author-2")

        assert result.is_match
        assert result.score == 1.0
        assert result.matched_reference == corpus.snapshot()[0].id
        assert len(corpus) == 1

    def test_exclude_own_submissions(self):
        corpus = InMemoryCorpusStore()
        check_duplicate(POST_TEXT, corpus, author_id="author-1")

        result = check_duplicate(POST_TEXT, corpus, author_id="author-1", exclude_own=True)

        assert not result.is_match

    def test_corpus_cap(self):
        corpus = InMemoryCorpusStore(max_entries=2)
        for text in ("first entry", "second entry", "third entry"):
            corpus.append(text, author_id="a", kind=ContentKind.WORK)
        assert [r.text for r in corpus.snapshot()] == ["second entry", "third entry"]

    def test_banded_distance_agrees_within_band(self):
        assert levenshtein_distance("kitten", "sitting", max_distance=3) == 3
        assert levenshtein_distance("kitten", "sitting", max_distance=2) == 3
        assert levenshtein_distance("a" * 100, "a" * 81 + "b" * 19, max_distance=19) == 19
        assert levenshtein_distance("a" * 100, "a" * 81 + "b" * 19, max_distance=10) == 11
        # Length difference alone exceeds the band
        assert levenshtein_distance("a" * 100, "a" * 50, max_distance=10) == 11

    def test_near_copy_scores_exactly(self):
        near_copy = POST_TEXT.replace("quiet", "sunny")
        corpus = InMemoryCorpusStore()
        corpus.append(POST_TEXT, author_id="someone", kind=ContentKind.DISCUSSION_POST)

        result = check_duplicate(near_copy, corpus)

        assert result.is_match
        assert result.score == pytest.approx(similarity(near_copy, POST_TEXT))

    def test_unrelated_records_are_skipped(self):
        assert not could_match(POST_TEXT, trigrams(POST_TEXT), OTHER_TEXT, 0.8)
        assert not could_match("abc" * 10, trigrams("abc" * 10), "abc" * 50, 0.8)
        assert could_match(POST_TEXT, trigrams(POST_TEXT), POST_TEXT.replace("quiet", "sunny"), 0.8)

        corpus = InMemoryCorpusStore()
        corpus.append(OTHER_TEXT, author_id="someone", kind=ContentKind.DISCUSSION_POST)
        assert best_match(POST_TEXT, corpus.snapshot(), 0.8) == (0.0, None)

    def test_scan_stops_at_deadline(self):
        corpus = InMemoryCorpusStore()
        for i in range(30):
            corpus.append(LONG_TEXT.replace(f"entry{i} ", f"entri{i} ", 1), author_id="someone", kind=ContentKind.WORK)

        start = time.monotonic()
        with pytest.raises(SimilarityTimeout):
            check_duplicate(LONG_TEXT, corpus, deadline=start + 0.05)

        assert time.monotonic() - start < 1.0
        assert len(corpus) == 30

    def test_check_without_recording(self):
        corpus = InMemoryCorpusStore()

        result = check_duplicate(POST_TEXT, corpus, record=False)

        assert not result.is_match
        assert len(corpus) == 0


class TestClassifierClient:
    """Test the generated-content classifier adapter."""

    def configured(self):
        return ClassifierClient(Settings(classifier_provider="huggingface", huggingface_api_key="hf_test"))

    def test_unconfigured_returns_human_default(self):
        client = ClassifierClient(Settings(classifier_provider="none"))
        result = client.classify(POST_TEXT)
        assert client.provider == "none"
        assert result.ok
        assert result.outcome == HUMAN_DEFAULT

    def test_huggingface_nested_response(self):
        mock_response = Mock()
        mock_response.json.return_value = [[
            {"label": "Fake", "score": 0.92},
            {"label": "Real", "score": 0.08},
        ]]
        with patch("moderation_pipeline.clients.classifier_client.requests.post") as mock_post:
            mock_post.return_value = mock_response
            result = self.configured().classify(POST_TEXT)

        assert result.ok
        assert result.outcome.is_generated is True
        assert result.outcome.score == pytest.approx(0.92)
        assert result.outcome.label == "Fake"
        _, kwargs = mock_post.call_args
        assert kwargs["headers"]["Authorization"] == "Bearer hf_test"
        assert kwargs["json"] == {"inputs": POST_TEXT}

    def test_human_only_label(self):
        outcome = interpret_labels([{"label": "Real", "score": 0.9}], "huggingface")
        assert outcome.is_generated is False
        assert outcome.score == pytest.approx(0.1)

    def test_timeout_is_reported_not_raised(self):
        with patch("moderation_pipeline.clients.classifier_client.requests.post") as mock_post:
            mock_post.side_effect = requests.exceptions.Timeout("slow")
            result = self.configured().classify(POST_TEXT)

        assert not result.ok
        assert isinstance(result.error, ClassifierUnavailable)
        assert result.error.error_code == "CLASSIFIER_UNAVAILABLE"
        assert result.outcome_or_default() == HUMAN_DEFAULT

    def test_unexpected_payload(self):
        mock_response = Mock()
        mock_response.json.return_value = {"error": "Model is currently loading"}
        with patch("moderation_pipeline.clients.classifier_client.requests.post") as mock_post:
            mock_post.return_value = mock_response
            result = self.configured().classify(POST_TEXT)

        assert not result.ok


class TestHeuristics:
    """Test the local spam heuristics."""

    def test_every_kind_has_a_policy(self):
        assert set(KIND_POLICIES) == set(ContentKind)

    def test_clean_text(self):
        signals = analyze(ContentKind.COMMENT, "Thanks, this fixed my build.")
        assert signals.spam_score == 0.0
        assert not signals.anomaly
        assert signals.reasons == []

    def test_char_runs_ignore_whitespace(self):
        assert detect_char_runs("wowwwww") == 0.25
        assert detect_char_runs("spaced" + " " * 10 + "out") == 0.0

    def test_repetition_needs_enough_words(self):
        assert detect_repetition("spam spam spam") == 0.0
        assert detect_repetition(" ".join(["spam"] * 20)) == pytest.approx(0.95)

    def test_new_account_links(self):
        signals = analyze(ContentKind.COMMENT, "see http://example.com/x", account_age_days=1)
        assert signals.new_account_links

    def test_profile_length_anomaly(self):
        signals = analyze(ContentKind.PROFILE, "word " * 300)
        assert signals.length_anomaly
        assert signals.anomaly


class TestModerationEngine:
    """Test verdict aggregation and degradation."""

    def engine(self, classifier=None, corpus=None, **config):
        return ModerationEngine(
            corpus if corpus is not None else InMemoryCorpusStore(),
            classifier or FakeClassifier(),
            Settings(**config),
        )

    @pytest.mark.asyncio
    async def test_clean_post_is_approved(self):
        verdict = await self.engine().evaluate(post())
        assert verdict.status == VerdictStatus.approved
        assert verdict.confidence == 1.0
        assert verdict.appeal_deadline is None
        assert verdict.classifier_available

    @pytest.mark.asyncio
    async def test_duplicate_without_citations_is_flagged(self):
        engine = self.engine()
        await engine.evaluate(post())

        verdict = await engine.evaluate(post())

        assert verdict.status == VerdictStatus.flagged
        assert verdict.citations_missing
        assert verdict.plagiarism.is_match
        assert verdict.appeal_deadline is not None

    @pytest.mark.asyncio
    async def test_duplicate_with_citations_goes_to_review(self):
        engine = self.engine()
        await engine.evaluate(post())

        verdict = await engine.evaluate(post(citations=[{"source": "Local paper"}]))

        assert verdict.status == VerdictStatus.pending_review
        assert verdict.citation_required
        assert not verdict.citations_missing

    @pytest.mark.asyncio
    async def test_cited_status_is_configurable(self):
        engine = self.engine(cited_content_status="flagged")
        await engine.evaluate(post())

        verdict = await engine.evaluate(post(citations=[{"source": "Local paper"}]))

        assert verdict.status == VerdictStatus.flagged
        assert not verdict.citations_missing

    @pytest.mark.asyncio
    async def test_ai_threshold_is_strict(self):
        at_threshold = await self.engine(FakeClassifier(generated(0.7))).evaluate(post())
        above = await self.engine(FakeClassifier(generated(0.71))).evaluate(post())

        assert at_threshold.status == VerdictStatus.approved
        assert above.status == VerdictStatus.flagged
        assert above.ai_content.score == pytest.approx(0.71)

    @pytest.mark.asyncio
    async def test_classifier_error_degrades(self):
        classifier = FakeClassifier(ClassificationResult(
            error=ClassifierUnavailable("503 from upstream", provider="fake")
        ))

        verdict = await self.engine(classifier).evaluate(post())

        assert verdict.status == VerdictStatus.approved
        assert verdict.ai_content.score == 0.0
        assert not verdict.classifier_available
        assert verdict.degraded_signals == ["classifier"]
        assert verdict.confidence == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_classifier_exception_never_escapes(self):
        classifier = FakeClassifier(error=RuntimeError("socket closed"))

        verdict = await self.engine(classifier).evaluate(post())

        assert verdict.status == VerdictStatus.approved
        assert "classifier" in verdict.degraded_signals

    @pytest.mark.asyncio
    async def test_slow_classifier_is_abandoned(self):
        classifier = FakeClassifier(generated(0.99), delay=0.5)

        verdict = await self.engine(classifier, evaluation_timeout_seconds=0.05).evaluate(post())

        assert verdict.status == VerdictStatus.approved
        assert "classifier" in verdict.degraded_signals

    @pytest.mark.asyncio
    async def test_corpus_failure_degrades(self):
        verdict = await self.engine(corpus=BrokenCorpus()).evaluate(post())

        assert verdict.status == VerdictStatus.approved
        assert verdict.plagiarism == NO_DUPLICATE
        assert verdict.degraded_signals == ["similarity"]

    @pytest.mark.asyncio
    async def test_comments_skip_originality_checks(self):
        classifier = FakeClassifier(generated(0.99))
        corpus = InMemoryCorpusStore()
        content = ContentToCheck(kind=ContentKind.COMMENT, text=POST_TEXT, author_id="author-1")

        verdict = await self.engine(classifier, corpus).evaluate(content)

        assert verdict.status == VerdictStatus.approved
        assert classifier.calls == 0
        assert len(corpus) == 0

    @pytest.mark.asyncio
    async def test_evaluate_without_recording(self):
        corpus = InMemoryCorpusStore()
        engine = self.engine(corpus=corpus)

        first = await engine.evaluate(post(), record=False)
        second = await engine.evaluate(post())

        assert first.status == VerdictStatus.approved
        assert second.status == VerdictStatus.approved
        assert len(corpus) == 1

    @pytest.mark.asyncio
    async def test_slow_similarity_scan_degrades(self):
        corpus = InMemoryCorpusStore()
        for i in range(30):
            corpus.append(LONG_TEXT.replace(f"entry{i} ", f"entri{i} ", 1), author_id="someone", kind=ContentKind.WORK)

        start = time.monotonic()
        verdict = await self.engine(corpus=corpus, evaluation_timeout_seconds=0.05).evaluate(post(text=LONG_TEXT))

        assert time.monotonic() - start < 1.0
        assert verdict.status == VerdictStatus.approved
        assert verdict.plagiarism == NO_DUPLICATE
        assert "similarity" in verdict.degraded_signals

    def test_spam_is_rejected(self):
        signals = HeuristicSignals(
            keyword_spam=1.0, repetition=1.0, link_spam=1.0, sentiment=1.0, char_runs=1.0,
            reasons=["spam_keywords: promotional or spam phrasing detected"],
        )
        verdict = self.engine()._decide(
            post(), signals, NO_DUPLICATE, ClassificationResult(outcome=HUMAN_DEFAULT), []
        )
        assert verdict.status == VerdictStatus.rejected
        assert verdict.confidence == 1.0
        assert verdict.reasons == signals.reasons

    def test_review_band_confidence_is_clamped(self):
        signals = HeuristicSignals(keyword_spam=1.0, repetition=0.6)
        verdict = self.engine()._decide(
            post(), signals, NO_DUPLICATE, ClassificationResult(outcome=HUMAN_DEFAULT), []
        )
        assert verdict.status == VerdictStatus.pending_review
        assert verdict.confidence == pytest.approx(0.45)

        anomaly = HeuristicSignals(length_anomaly=True)
        verdict = self.engine()._decide(
            post(), anomaly, NO_DUPLICATE, ClassificationResult(outcome=HUMAN_DEFAULT), []
        )
        assert verdict.status == VerdictStatus.pending_review
        assert verdict.confidence == pytest.approx(0.3)


class TestStateMachine:
    """Test moderation status transitions."""

    def verdict(self, status, citations_missing=False):
        return ModerationVerdict(status=status, confidence=0.9, reasons=[], citations_missing=citations_missing)

    def test_initial_status(self):
        assert initial_status(self.verdict(VerdictStatus.approved)) == ModerationStatus.CLEAN
        assert initial_status(self.verdict(VerdictStatus.pending_review)) == ModerationStatus.PENDING_REVIEW
        assert initial_status(self.verdict(VerdictStatus.flagged, True)) == ModerationStatus.FLAGGED
        assert initial_status(self.verdict(VerdictStatus.rejected)) == ModerationStatus.REJECTED
        assert initial_status(self.verdict(VerdictStatus.rejected, True)) == ModerationStatus.FLAGGED

    def test_allowed_transitions(self):
        assert next_status(ModerationStatus.FLAGGED, ModerationEvent.FILE_APPEAL) == ModerationStatus.UNDER_APPEAL
        assert next_status(ModerationStatus.UNDER_APPEAL, ModerationEvent.APPROVE_APPEAL) == ModerationStatus.OVERRIDDEN
        assert next_status(ModerationStatus.UNDER_APPEAL, ModerationEvent.REJECT_APPEAL) == ModerationStatus.FLAGGED

    def test_disallowed_transitions(self):
        for status in (ModerationStatus.CLEAN, ModerationStatus.OVERRIDDEN, ModerationStatus.REJECTED):
            with pytest.raises(InvalidTargetState) as exc_info:
                next_status(status, ModerationEvent.FILE_APPEAL)
            assert exc_info.value.details["current_status"] == status.value
            assert exc_info.value.details["terminal"] is True
            assert "final" in exc_info.value.message

        with pytest.raises(InvalidTargetState) as exc_info:
            next_status(ModerationStatus.FLAGGED, ModerationEvent.APPROVE_APPEAL)
        assert exc_info.value.details["terminal"] is False


class TestSecurityValidation:
    """Test identity and input validation helpers."""

    def test_staff_roles(self):
        assert Actor("mod-1", "Moderator").is_staff
        assert not Actor("user-1", "member").is_staff
        assert not Actor("user-1").is_staff

    def test_ensure_valid_text(self):
        assert ensure_valid_text("  hello\x00 world  ") == "hello world"
        with pytest.raises(ValidationException):
            ensure_valid_text("javascript:alert(1)")
        with pytest.raises(ContentTooLargeException):
            ensure_valid_text("x" * 100001)

    def test_sanitize_keeps_paragraphs(self):
        assert sanitize_input("Title\n\nBody     text") == "Title\n\nBody  text"
