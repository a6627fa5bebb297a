"""
Near-duplicate detection by normalized edit distance.

The engine is stateless: the corpus it compares against is passed in by the
caller, and the only side effect is appending unmatched text to that corpus.

Edit distance is O(n*m), so a corpus scan is bounded three ways. Records whose
length or trigram overlap rules out a match are skipped without running the
distance at all. The distance itself is computed inside a band of width
``floor((1 - threshold) * longest)`` and abandoned as soon as it leaves the
band. A monotonic ``deadline`` stops the scan with ``SimilarityTimeout``.
"""

import math
import time
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Optional

from moderation_pipeline.core.config import settings
from moderation_pipeline.core.exceptions import SimilarityTimeout
from moderation_pipeline.services.corpus_store import CorpusRecord, CorpusStore
from moderation_pipeline.models.content_item import ContentKind

TRIGRAM = 3


@dataclass(frozen=True)
class DuplicateCheck:
    is_match: bool
    score: float
    matched_reference: Optional[str] = None  # corpus entry id

    def as_dict(self) -> dict:
        return {
            "isPlagiarized": self.is_match,
            "score": round(self.score, 4),
            "matchedReference": self.matched_reference,
        }


def _check_deadline(deadline: Optional[float]) -> None:
    if deadline is not None and time.monotonic() > deadline:
        raise SimilarityTimeout("Similarity check exceeded its time budget")


def levenshtein_distance(
    a: str,
    b: str,
    max_distance: Optional[int] = None,
    deadline: Optional[float] = None,
) -> int:
    """
    Edit distance with unit cost insert, delete and substitute.

    With ``max_distance`` only cells within that band of the diagonal are
    computed, and any distance above it is reported as ``max_distance + 1``.

    Raises:
        SimilarityTimeout: If ``deadline`` passes mid-computation
    """
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if max_distance is not None and len(a) - len(b) > max_distance:
        return max_distance + 1
    if not b:
        return len(a)

    band = len(a) if max_distance is None else max_distance
    beyond = band + 1
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        if i % 64 == 0:
            _check_deadline(deadline)
        lo = max(1, i - band)
        hi = min(len(b), i + band)
        current = [beyond] * (len(b) + 1)
        current[0] = i if i <= band else beyond
        for j in range(lo, hi + 1):
            if char_a == b[j - 1]:
                current[j] = previous[j - 1]
            else:
                current[j] = 1 + min(previous[j - 1], previous[j], current[j - 1])
        if max_distance is not None and min(current[lo - 1:hi + 1]) > band:
            return beyond
        previous = current

    distance = previous[len(b)]
    if max_distance is not None and distance > max_distance:
        return beyond
    return distance


def similarity(
    a: str,
    b: str,
    max_chars: Optional[int] = None,
    min_score: Optional[float] = None,
    deadline: Optional[float] = None,
) -> float:
    """
    Normalized similarity in [0, 1].

    ``(max(len) - distance) / max(len)`` over both texts truncated to
    ``max_chars``. Two empty strings are identical. With ``min_score``, pairs
    that cannot reach it are not measured exactly and score 0.0.
    """
    max_chars = settings.max_compare_chars if max_chars is None else max_chars
    a = a[:max_chars]
    b = b[:max_chars]
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0

    max_distance = None
    if min_score is not None:
        max_distance = math.floor((1.0 - min_score) * longest)
    distance = levenshtein_distance(a, b, max_distance=max_distance, deadline=deadline)
    if max_distance is not None and distance > max_distance:
        return 0.0
    return (longest - distance) / longest


def trigrams(text: str) -> Counter:
    return Counter(text[i:i + TRIGRAM] for i in range(len(text) - TRIGRAM + 1))


def could_match(text: str, grams: Counter, candidate: str, threshold: float) -> bool:
    """
    Cheap necessary condition for ``similarity(text, candidate) > threshold``.

    Similarity never exceeds ``min(len) / max(len)``. Strings within edit
    distance ``k`` share at least ``longest - 2 - 3k`` trigrams.
    """
    shortest, longest = sorted((len(text), len(candidate)))
    if longest == 0:
        return True
    if shortest / longest <= threshold:
        return False
    if shortest < TRIGRAM:
        return True
    max_distance = math.floor((1.0 - threshold) * longest)
    required = longest - (TRIGRAM - 1) - TRIGRAM * max_distance
    if required <= 0:
        return True
    shared = sum((grams & trigrams(candidate)).values())
    return shared >= required


def best_match(
    text: str,
    records: Iterable[CorpusRecord],
    threshold: float,
    max_chars: Optional[int] = None,
    deadline: Optional[float] = None,
) -> tuple[float, Optional[CorpusRecord]]:
    """
    Return the best score above ``threshold`` and its record, or ``(0.0, None)``.

    Raises:
        SimilarityTimeout: If ``deadline`` passes before the scan finishes
    """
    max_chars = settings.max_compare_chars if max_chars is None else max_chars
    text = text[:max_chars]
    grams = trigrams(text)

    best_score = 0.0
    best_record = None
    for record in records:
        _check_deadline(deadline)
        candidate = record.text[:max_chars]
        if candidate == text:
            return 1.0, record
        if not could_match(text, grams, candidate, max(threshold, best_score)):
            continue
        score = similarity(text, candidate, max_chars, min_score=threshold, deadline=deadline)
        if score > threshold and score > best_score:
            best_score, best_record = score, record
    return best_score, best_record


def check_duplicate(
    text: str,
    corpus: CorpusStore,
    author_id: str = "",
    kind: ContentKind = ContentKind.DISCUSSION_POST,
    threshold: Optional[float] = None,
    max_chars: Optional[int] = None,
    exclude_own: bool = False,
    record: bool = True,
    deadline: Optional[float] = None,
) -> DuplicateCheck:
    """
    Compare ``text`` with every corpus entry and report the closest one.

    When nothing exceeds the threshold and ``record`` is set, the text is
    appended to the corpus so later submissions are compared against it.
    Scores of non-matching texts are reported as 0.0.

    Raises:
        SimilarityTimeout: If ``deadline`` passes before the scan finishes
    """
    threshold = settings.similarity_threshold if threshold is None else threshold
    max_chars = settings.max_compare_chars if max_chars is None else max_chars

    records = corpus.snapshot(exclude_author=author_id if exclude_own else None)
    score, match = best_match(text, records, threshold, max_chars, deadline=deadline)

    if match is not None:
        return DuplicateCheck(is_match=True, score=score, matched_reference=match.id)

    if record:
        corpus.append(text[:max_chars], author_id=author_id, kind=kind)
    return DuplicateCheck(is_match=False, score=0.0)
