from typing import List, Literal, Optional

from pydantic_settings import BaseSettings

# A candidate is a duplicate when its similarity strictly exceeds this value
SIMILARITY_THRESHOLD = 0.8

# Edit distance is O(n*m); inputs are truncated to bound cost per submission
MAX_COMPARE_CHARS = 5000


class Settings(BaseSettings):
    app_name: str = "Content Moderation & Appeals API"
    database_url: str = "sqlite:///./moderation.db"
    database_echo: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Generated-content classifier
    classifier_provider: Literal["huggingface", "openai", "none"] = "huggingface"
    huggingface_api_key: Optional[str] = None
    classifier_model: str = "roberta-base-openai-detector"
    classifier_endpoint: str = "https://api-inference.huggingface.co/models"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    classifier_timeout_seconds: float = 10.0
    evaluation_timeout_seconds: float = 12.0

    # Policy thresholds
    similarity_threshold: float = SIMILARITY_THRESHOLD
    ai_confidence_threshold: float = 0.7
    reject_threshold: float = 0.8
    review_threshold: float = 0.4
    classifier_unavailable_penalty: float = 0.9
    cited_content_status: Literal["pending_review", "flagged"] = "pending_review"

    # Duplicate corpus
    max_compare_chars: int = MAX_COMPARE_CHARS
    corpus_backend: Literal["memory", "database"] = "database"
    corpus_max_entries: int = 10000
    similarity_exclude_own_submissions: bool = False

    # Appeals and access
    appeal_window_days: int = 30
    staff_roles: List[str] = ["admin", "staff", "moderator"]
    max_content_length: int = 100000

    class Config:
        env_file = ".env"


settings = Settings()
