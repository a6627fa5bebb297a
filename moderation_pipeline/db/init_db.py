import sys

from moderation_pipeline.db.base import Base
from moderation_pipeline.db.session import engine
from moderation_pipeline.core.logger import logger


def init_db(reset: bool = False):
    """Create the content, appeal, corpus and audit tables; ``reset`` drops them first."""
    if reset:
        logger.warning("Dropping moderation tables", extra={"database": engine.url.render_as_string(hide_password=True)})
        Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    logger.info(f"Moderation tables ready: {', '.join(sorted(Base.metadata.tables))}")

if __name__ == "__main__":
    init_db(reset="--reset" in sys.argv[1:])
