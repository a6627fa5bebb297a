# moderation_pipeline/clients/classifier_client.py
"""
Adapter around the external generated-content classifier.

The classifier is an enrichment signal. ``classify`` never raises: failures
come back as a ``ClassificationResult`` carrying a ``ClassifierUnavailable``
so callers handle the fallback as an explicit branch.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import requests

from moderation_pipeline.core.config import Settings, settings as default_settings
from moderation_pipeline.core.exceptions import ClassifierUnavailable

# Label tokens that indicate machine authorship
GENERATED_LABEL_TOKENS = {"ai", "fake", "machine", "generated", "gpt", "chatgpt"}


@dataclass(frozen=True)
class ClassificationOutcome:
    is_generated: bool
    score: float  # probability of machine authorship
    label: str = "unknown"
    detail: str = ""
    provider: str = "none"

    def as_dict(self) -> dict:
        return {
            "isAI": self.is_generated,
            "score": round(self.score, 4),
            "label": self.label,
            "details": self.detail,
        }


# Returned when no classifier is configured, or a call failed
HUMAN_DEFAULT = ClassificationOutcome(
    is_generated=False, score=0.0, label="unknown", detail="classifier disabled"
)


@dataclass(frozen=True)
class ClassificationResult:
    outcome: Optional[ClassificationOutcome] = None
    error: Optional[ClassifierUnavailable] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def outcome_or_default(self) -> ClassificationOutcome:
        return self.outcome if self.outcome is not None else HUMAN_DEFAULT


def is_generated_label(label: str) -> bool:
    tokens = set(re.split(r"[^a-z0-9]+", label.lower()))
    return bool(tokens & GENERATED_LABEL_TOKENS)


def interpret_labels(entries: List[dict], provider: str) -> ClassificationOutcome:
    """
    Turn ``[{label, score}, ...]`` into an outcome.

    The top-scoring entry decides ``is_generated``. The reported score is the
    probability of machine authorship: the generated entry's score when the
    model returned one, otherwise ``1 - score`` of the human entry.
    """
    parsed: List[Tuple[str, float]] = []
    for entry in entries:
        if not isinstance(entry, dict) or "label" not in entry or "score" not in entry:
            continue
        parsed.append((str(entry["label"]), float(entry["score"])))
    if not parsed:
        raise ValueError("no label/score pairs in classifier response")

    top_label, top_score = max(parsed, key=lambda pair: pair[1])
    generated = [score for label, score in parsed if is_generated_label(label)]
    if generated:
        ai_score = max(generated)
    else:
        ai_score = 1.0 - top_score
    ai_score = min(max(ai_score, 0.0), 1.0)

    return ClassificationOutcome(
        is_generated=is_generated_label(top_label),
        score=ai_score,
        label=top_label,
        detail=f"{provider}: {top_label} ({top_score * 100:.1f}%)",
        provider=provider,
    )


class ClassifierClient:
    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings

    @property
    def provider(self) -> str:
        provider = self.config.classifier_provider
        if provider == "huggingface" and self.config.huggingface_api_key:
            return "huggingface"
        if provider == "openai" and self.config.openai_api_key:
            return "openai"
        return "none"

    @property
    def configured(self) -> bool:
        return self.provider != "none"

    def classify(self, text: str) -> ClassificationResult:
        """Classify ``text`` once, with the configured timeout."""
        provider = self.provider
        if provider == "none":
            return ClassificationResult(outcome=HUMAN_DEFAULT)

        try:
            if provider == "huggingface":
                outcome = self._huggingface_classify(text)
            else:
                outcome = self._openai_classify(text)
            return ClassificationResult(outcome=outcome)
        except requests.exceptions.Timeout as e:
            error = ClassifierUnavailable(
                f"Classifier timed out after {self.config.classifier_timeout_seconds}s",
                provider=provider,
                details={"error": str(e)}
            )
        except requests.exceptions.RequestException as e:
            error = ClassifierUnavailable(
                f"Error contacting classifier: {str(e)}",
                provider=provider
            )
        except (ValueError, KeyError, TypeError, IndexError) as e:
            error = ClassifierUnavailable(
                f"Unparseable classifier response: {str(e)}",
                provider=provider
            )
        except Exception as e:
            # The OpenAI SDK raises its own error hierarchy
            error = ClassifierUnavailable(
                f"Classifier call failed: {str(e)}",
                provider=provider
            )
        return ClassificationResult(error=error)

    # --- HuggingFace inference API ---
    def _huggingface_classify(self, text: str) -> ClassificationOutcome:
        url = f"{self.config.classifier_endpoint.rstrip('/')}/{self.config.classifier_model}"
        headers = {
            "Authorization": f"Bearer {self.config.huggingface_api_key}",
            "Content-Type": "application/json",
        }
        response = requests.post(
            url,
            headers=headers,
            json={"inputs": text},
            timeout=self.config.classifier_timeout_seconds,
        )
        response.raise_for_status()

        data: Any = response.json()
        # Either [{label, score}, ...] or [[{label, score}, ...]]
        if isinstance(data, list) and data and isinstance(data[0], list):
            data = data[0]
        if not isinstance(data, list):
            raise ValueError(f"unexpected payload type {type(data).__name__}")
        return interpret_labels(data, "huggingface")

    # --- OpenAI chat completion ---
    def _openai_classify(self, text: str) -> ClassificationOutcome:
        import openai

        client = openai.OpenAI(
            api_key=self.config.openai_api_key,
            timeout=self.config.classifier_timeout_seconds,
        )
        prompt = (
            "Decide whether the following text was written by a human or generated by an AI model. "
            "Return JSON strictly in this format: "
            '{"label":"human" or "ai-generated", "score":0-1}\n\n'
            f"Text:\n{text}"
        )
        response = client.chat.completions.create(
            model=self.config.openai_model,
            messages=[
                {"role": "system", "content": "You are a detector of machine-generated writing."},
                {"role": "user", "content": prompt}
            ],
            temperature=0,
            max_tokens=100
        )
        parsed = json.loads(response.choices[0].message.content.strip())
        return interpret_labels([parsed], "openai")

