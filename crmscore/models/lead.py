"""
Lead model — one row per prospect, with the latest score embedded.

score_history keeps the newest SCORE_HISTORY_LIMIT results. The version
column makes concurrent score writes to the same row fail loudly
(StaleDataError) instead of losing history entries.
"""
from sqlalchemy import Column, Integer, Text, Boolean, DateTime, JSON
from sqlalchemy.sql import func

from crmscore.database import Base


def _iso(value):
    return value.isoformat() if value else None


class Lead(Base):
    __tablename__ = 'leads'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    company = Column(Text, nullable=True)
    job_title = Column(Text, nullable=True)
    source = Column(Text, nullable=False, default='website')
    status = Column(Text, nullable=False, default='new', index=True)
    priority = Column(Text, nullable=False, default='medium')
    assigned_to = Column(Text, nullable=True)
    converted = Column(Boolean, nullable=False, default=False)
    engagement = Column(JSON, default=dict)

    ai_score = Column(Integer, nullable=False, default=0, index=True)
    ai_grade = Column(Text, nullable=False, default='cold')
    ai_prediction = Column(JSON, nullable=True)
    ai_factors = Column(JSON, default=list)
    ai_analyzed_at = Column(DateTime(timezone=True), nullable=True)
    score_history = Column(JSON, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {'version_id_col': version}

    def insights(self, history_size=10):
        """Score view for the lead detail panel."""
        return {
            'score': self.ai_score,
            'grade': self.ai_grade,
            'prediction': self.ai_prediction,
            'factors': self.ai_factors or [],
            'analyzed_at': _iso(self.ai_analyzed_at),
            'score_history': (self.score_history or [])[-history_size:],
        }

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'company': self.company,
            'job_title': self.job_title,
            'source': self.source,
            'status': self.status,
            'priority': self.priority,
            'assigned_to': self.assigned_to,
            'converted': bool(self.converted),
            'engagement': self.engagement or {},
            'ai_score': self.ai_score,
            'ai_grade': self.ai_grade,
            'ai_prediction': self.ai_prediction,
            'ai_factors': self.ai_factors or [],
            'ai_analyzed_at': _iso(self.ai_analyzed_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
