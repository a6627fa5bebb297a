from pydantic import BaseModel
from typing import Dict

class AnalyticsSummary(BaseModel):
    author_id: str
    total_submissions: int
    breakdown: Dict[str, int]
    appeals: Dict[str, int] = {}
