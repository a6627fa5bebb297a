# Import every model so Base.metadata knows all tables before create_all
from moderation_pipeline.db.session import Base  # noqa: F401
from moderation_pipeline.models.content_item import ContentItem  # noqa: F401
from moderation_pipeline.models.appeal import Appeal  # noqa: F401
from moderation_pipeline.models.corpus_entry import CorpusEntry  # noqa: F401
from moderation_pipeline.models.moderation_log import ModerationLog  # noqa: F401
