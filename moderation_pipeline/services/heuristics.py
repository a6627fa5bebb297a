"""
Local spam and abuse heuristics.

Every content kind has an explicit ``KindPolicy``; the table is checked at
import time so a new kind cannot silently fall through to a default.
"""

import re
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Sequence

from moderation_pipeline.models.content_item import ContentKind


@dataclass(frozen=True)
class KindPolicy:
    max_links: int
    max_length: Optional[int] = None
    min_length: int = 1
    # Run the similarity engine and classifier for this kind
    originality_checks: bool = False


KIND_POLICIES: Dict[ContentKind, KindPolicy] = {
    ContentKind.WORK: KindPolicy(max_links=10, originality_checks=True),
    ContentKind.COMMENT: KindPolicy(max_links=3, max_length=5000),
    ContentKind.PROFILE: KindPolicy(max_links=1, max_length=1000),
    ContentKind.COLLECTION: KindPolicy(max_links=2, max_length=2000),
    ContentKind.DISCUSSION_POST: KindPolicy(max_links=5, max_length=20000, min_length=10, originality_checks=True),
    ContentKind.DISCUSSION_REPLY: KindPolicy(max_links=3, max_length=10000, originality_checks=True),
    ContentKind.COMMUNITY_PROPOSAL: KindPolicy(max_links=3, max_length=5000, min_length=20),
}

_missing = set(ContentKind) - set(KIND_POLICIES)
if _missing:
    raise RuntimeError(f"No moderation policy for content kinds: {sorted(k.value for k in _missing)}")


SPAM_KEYWORDS = [
    'click here', 'buy now', 'limited time', 'act now', 'free money',
    'make money fast', 'work from home', 'get rich quick', 'no experience',
    'guaranteed income', 'earn $$$', 'miracle cure', 'lose weight fast'
]

SUSPICIOUS_PATTERNS = [
    re.compile(r'\b[A-Z]{3,}\b'),  # shouting
    re.compile(r'!{3,}'),
    re.compile(r'\$+[\d,]+'),  # money amounts
    re.compile(r'https?://[^\s]+'),
]

SHORTENER_DOMAINS = ['bit.ly', 'tinyurl.com', 'shorturl.at', 't.co']

NEGATIVE_WORDS = [
    'hate', 'terrible', 'awful', 'disgusting', 'worst', 'horrible',
    'scam', 'fraud', 'fake', 'lies', 'stupid', 'idiot'
]

PROMOTIONAL_WORDS = [
    'amazing', 'incredible', 'revolutionary', 'breakthrough', 'exclusive',
    'limited', 'special', 'bonus', 'discount', 'offer'
]

URL_PATTERN = re.compile(r'https?://[^\s]+')
CHAR_RUN_PATTERN = re.compile(r'(.)\1{4,}', re.DOTALL)

MIN_WORDS_FOR_REPETITION = 10
LINK_DENSITY_LIMIT = 5.0  # links per 100 words
NEW_ACCOUNT_DAYS = 7

SIGNAL_WEIGHTS = {
    "keyword_spam": 0.30,
    "repetition": 0.25,
    "link_spam": 0.25,
    "sentiment": 0.10,
    "char_runs": 0.10,
}
NEW_ACCOUNT_LINK_PENALTY = 0.1


@dataclass
class HeuristicSignals:
    keyword_spam: float = 0.0
    repetition: float = 0.0
    link_spam: float = 0.0
    sentiment: float = 0.0
    char_runs: float = 0.0
    link_density: float = 0.0
    length_anomaly: bool = False
    new_account_links: bool = False
    reasons: List[str] = field(default_factory=list)

    @property
    def spam_score(self) -> float:
        score = sum(getattr(self, name) * weight for name, weight in SIGNAL_WEIGHTS.items())
        if self.new_account_links:
            score += NEW_ACCOUNT_LINK_PENALTY
        return min(score, 1.0)

    @property
    def anomaly(self) -> bool:
        """Hits that warrant review regardless of the overall score."""
        return self.length_anomaly or self.link_density > LINK_DENSITY_LIMIT or self.char_runs >= 0.5

    def as_dict(self) -> dict:
        data = asdict(self)
        data["spam_score"] = round(self.spam_score, 4)
        return data


def detect_keyword_spam(content: str) -> float:
    lower = content.lower()
    score = sum(0.1 for keyword in SPAM_KEYWORDS if keyword in lower)
    for pattern in SUSPICIOUS_PATTERNS:
        score += len(pattern.findall(content)) * 0.05
    return min(score, 1.0)


def detect_repetition(content: str) -> float:
    """1 - type/token ratio over words longer than three characters."""
    words = [w for w in re.findall(r"\w+", content.lower()) if len(w) > 3]
    if len(words) < MIN_WORDS_FOR_REPETITION:
        return 0.0
    return 1.0 - len(set(words)) / len(words)


def extract_links(content: str, links: Sequence[str] = ()) -> List[str]:
    return URL_PATTERN.findall(content) + [link for link in links if link]


def detect_link_spam(all_links: Sequence[str], policy: KindPolicy) -> float:
    if not all_links:
        return 0.0
    score = 0.0
    if len(all_links) > policy.max_links:
        score += 0.3
    for url in all_links:
        for domain in SHORTENER_DOMAINS:
            if domain in url:
                score += 0.2
    return min(score, 1.0)


def analyze_sentiment(content: str) -> float:
    lower = content.lower()
    negative = sum(0.1 for word in NEGATIVE_WORDS if word in lower)
    promotional = sum(0.1 for word in PROMOTIONAL_WORDS if word in lower)
    return min(max(negative, promotional), 1.0)


def detect_char_runs(content: str) -> float:
    """Runs of five or more identical characters, 0.25 each."""
    runs = [m.group(0) for m in CHAR_RUN_PATTERN.finditer(content) if not m.group(1).isspace()]
    return min(len(runs) * 0.25, 1.0)


def link_density(content: str, link_count: int) -> float:
    words = len(content.split())
    if link_count == 0:
        return 0.0
    return link_count * 100.0 / max(words, 1)


def analyze(
    kind: ContentKind,
    text: str,
    links: Sequence[str] = (),
    account_age_days: Optional[int] = None,
) -> HeuristicSignals:
    """Run every local heuristic for ``kind`` over ``text``."""
    policy = KIND_POLICIES[kind]
    all_links = extract_links(text, links)

    signals = HeuristicSignals(
        keyword_spam=detect_keyword_spam(text),
        repetition=detect_repetition(text),
        link_spam=detect_link_spam(all_links, policy),
        sentiment=analyze_sentiment(text),
        char_runs=detect_char_runs(text),
        link_density=link_density(text, len(all_links)),
    )

    length = len(text.strip())
    if length < policy.min_length or (policy.max_length is not None and length > policy.max_length):
        signals.length_anomaly = True

    if account_age_days is not None and account_age_days < NEW_ACCOUNT_DAYS and all_links:
        signals.new_account_links = True

    signals.reasons = _reasons(signals, policy, len(all_links), length)
    return signals


def _reasons(signals: HeuristicSignals, policy: KindPolicy, link_count: int, length: int) -> List[str]:
    reasons = []
    if signals.keyword_spam > 0.3:
        reasons.append("spam_keywords: promotional or spam phrasing detected")
    if signals.repetition > 0.5:
        reasons.append("repetition: text repeats the same words excessively")
    if signals.link_spam > 0.3:
        reasons.append(f"suspicious_links: {link_count} links, shortened or above the limit of {policy.max_links}")
    if signals.link_density > LINK_DENSITY_LIMIT:
        reasons.append(f"link_density: {signals.link_density:.1f} links per 100 words")
    if signals.char_runs >= 0.5:
        reasons.append("repeated_characters: long runs of the same character")
    if signals.length_anomaly:
        reasons.append(f"length_anomaly: {length} characters is outside the expected range")
    if signals.new_account_links:
        reasons.append("new_account: links posted by an account younger than "
                       f"{NEW_ACCOUNT_DAYS} days")
    if signals.sentiment > 0.3:
        reasons.append("sentiment: strongly negative or promotional language")
    return reasons
