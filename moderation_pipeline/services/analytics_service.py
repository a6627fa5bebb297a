from sqlalchemy.orm import Session
from sqlalchemy import func
from moderation_pipeline.models.appeal import Appeal
from moderation_pipeline.models.content_item import ContentItem
from moderation_pipeline.schemas.analytics import AnalyticsSummary

def get_author_summary(author_id: str, db: Session) -> AnalyticsSummary:
    total = db.query(func.count(ContentItem.id)).filter(
        ContentItem.author_id == author_id
    ).scalar()

    status_query = db.query(
        ContentItem.moderation_status,
        func.count(ContentItem.id)
    ).filter(
        ContentItem.author_id == author_id
    ).group_by(ContentItem.moderation_status).all()

    appeal_query = db.query(
        Appeal.status,
        func.count(Appeal.id)
    ).filter(
        Appeal.user_id == author_id
    ).group_by(Appeal.status).all()

    return AnalyticsSummary(
        author_id=author_id,
        total_submissions=total or 0,
        breakdown={status.value: count for status, count in status_query},
        appeals={status.value: count for status, count in appeal_query},
    )
